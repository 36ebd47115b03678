from datetime import datetime
import json

from teloven.extensions import db


class AuditEntry(db.Model):
    __tablename__ = "audit_entries"

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    action = db.Column(db.String(80), nullable=False, index=True)
    actor_user_id = db.Column(db.String(64), nullable=True, index=True)

    entity_type = db.Column(db.String(40), nullable=False, index=True)
    entity_id = db.Column(db.String(128), nullable=True, index=True)

    request_id = db.Column(db.String(80), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    def metadata_dict(self) -> dict:
        raw = self.metadata_json
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return parsed
        except Exception:
            pass
        return {"raw": str(raw)}

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "action": self.action or "",
            "actor_user_id": self.actor_user_id,
            "entity_type": self.entity_type or "",
            "entity_id": self.entity_id or "",
            "request_id": self.request_id or "",
            "metadata": self.metadata_dict(),
        }
