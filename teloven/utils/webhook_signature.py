from __future__ import annotations

import hashlib
import hmac


def parse_signature_header(value: str | None) -> tuple[str, str]:
    ts = ""
    v1 = ""
    for part in (value or "").split(","):
        key, _, val = part.partition("=")
        key = key.strip().lower()
        if key == "ts":
            ts = val.strip()
        elif key == "v1":
            v1 = val.strip()
    return ts, v1


def build_manifest(*, data_id: str | None, request_id: str | None, ts: str) -> str:
    manifest = ""
    data_id = (data_id or "").strip()
    if data_id:
        if data_id.isalnum():
            data_id = data_id.lower()
        manifest += f"id:{data_id};"
    if request_id:
        manifest += f"request-id:{request_id.strip()};"
    manifest += f"ts:{ts};"
    return manifest


def verify_signature(secret: str, signature_header: str | None, *, request_id: str | None, data_id: str | None) -> bool:
    ts, v1 = parse_signature_header(signature_header)
    if not secret or not ts or not v1:
        return False
    manifest = build_manifest(data_id=data_id, request_id=request_id, ts=ts)
    expected = hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, v1.lower())
