from sqlalchemy import text
from sqlalchemy.engine.url import make_url

from teloven import create_app
from teloven.extensions import db


def _safe_uri(uri: str) -> str:
    if not uri:
        return "unknown"
    try:
        return make_url(uri).render_as_string(hide_password=True)
    except Exception:
        return "unknown"


def main():
    app = create_app()
    with app.app_context():
        uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
        print("SQLALCHEMY_DATABASE_URI:", _safe_uri(uri))
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                pending = conn.execute(text("SELECT COUNT(*) FROM orders WHERE status = 'CREATED'")).scalar()
            print("SELECT 1: success")
            print("orders awaiting payment:", int(pending or 0))
        except Exception as e:
            print("SELECT 1: fail")
            msg = str(e)
            if msg:
                msg = (msg[:300] + "...") if len(msg) > 300 else msg
                print("error:", msg)


if __name__ == "__main__":
    main()
