import os
import subprocess
from datetime import datetime
from pathlib import Path

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from teloven.config import EngineConfig, env_int
from teloven.errors import GatewayError, LifecycleError
from teloven.extensions import db, migrate
from teloven.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from teloven.integrations.listings import SqlListingDirectory
from teloven.integrations.payments.factory import build_payments_gateway, payment_health
from teloven.services.audit_service import AuditChannel
from teloven.services.order_lifecycle import LifecycleEngine
from teloven.segments.segment_orders_api import orders_bp, admin_orders_bp
from teloven.segments.segment_payment_webhooks import webhooks_bp
from teloven.utils.observability import init_sentry, install_request_observers


def _resolve_git_sha() -> str:
    for env_key in ("GIT_SHA", "SOURCE_VERSION"):
        val = (os.getenv(env_key) or "").strip()
        if val:
            return val
    try:
        repo_root = Path(__file__).resolve().parents[1]
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(repo_root),
            stderr=subprocess.DEVNULL,
        )
        return out.decode().strip()
    except Exception:
        return "unknown"


def _error_payload(payload: dict) -> dict:
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def build_engine(app, engine_config: EngineConfig, *, gateway=None, listings=None, audit=None) -> LifecycleEngine:
    if gateway is None:
        try:
            gateway = build_payments_gateway(engine_config)
        except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
            app.logger.warning("payments_gateway_unavailable err=%s", e)
            gateway = None
    return LifecycleEngine(
        config=engine_config,
        gateway=gateway,
        listings=listings or SqlListingDirectory(),
        audit=audit or AuditChannel(engine_config.audit_channel),
    )


def create_app(config_overrides: dict | None = None, *, engine_config: EngineConfig | None = None, gateway=None, listings=None, audit=None):
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("TELOVEN_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))

    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{os.path.join(instance_dir, 'teloven.db').replace(os.sep, '/')}"
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config.update(config_overrides or {})
    database_url = app.config["SQLALCHEMY_DATABASE_URI"]

    if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
        os.makedirs(instance_dir, exist_ok=True)

    engine_options = {
        "pool_pre_ping": True,
        "pool_recycle": env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        engine_options.update(
            {
                "pool_size": env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s",
            int(engine_options.get("pool_size", 0) or 0),
            int(engine_options.get("max_overflow", 0) or 0),
            int(engine_options.get("pool_timeout", 0) or 0),
        )
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", engine_options)

    db.init_app(app)
    migrate.init_app(app, db, directory=os.path.join(os.path.dirname(__file__), "..", "migrations"))
    install_request_observers(app)

    engine_config = engine_config or EngineConfig.from_env()
    engine = build_engine(app, engine_config, gateway=gateway, listings=listings, audit=audit)
    app.extensions["lifecycle_engine"] = engine

    if database_url.startswith("sqlite://"):
        # Dev/test convenience; real databases go through migrations.
        with app.app_context():
            db.create_all()

    @app.errorhandler(LifecycleError)
    def _lifecycle_error(error: LifecycleError):
        if isinstance(error, GatewayError):
            app.logger.warning("gateway_error path=%s err=%s", request.path, error.message)
            payload = {
                "ok": False,
                "error": error.code,
                "message": "Payment provider unavailable",
                "status": int(error.http_status),
            }
        else:
            payload = error.to_dict()
        return jsonify(_error_payload(payload)), int(error.http_status)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        payload = {
            "ok": False,
            "error": error.name,
            "message": error.description or error.name,
            "status": int(error.code or 500),
        }
        return jsonify(_error_payload(payload)), int(error.code or 500)

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        payload = {
            "ok": False,
            "error": "InternalServerError",
            "message": "Internal server error",
            "status": 500,
        }
        return jsonify(_error_payload(payload)), 500

    app.register_blueprint(orders_bp)
    app.register_blueprint(admin_orders_bp)
    app.register_blueprint(webhooks_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            msg = str(e)
            if msg:
                db_error = (msg[:300] + "...") if len(msg) > 300 else msg
        payload = {
            "ok": True,
            "service": "teloven-api",
            "env": env,
            "db": db_state,
            "git_sha": _resolve_git_sha(),
            "payments": payment_health(engine.config),
            "audit": engine.audit.stats(),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("reconcile-payment")
    @click.argument("payment_id")
    def reconcile_payment(payment_id: str):
        """Re-resolve one provider payment and apply it to its order."""
        try:
            ack = engine.reconcile_payment(payment_id)
        except GatewayError as e:
            raise click.ClickException(f"gateway error: {e.message}")
        click.echo(f"reconcile_payment_ok payment_id={payment_id} outcome={ack.outcome} order_id={ack.order_id or ''}")

    @app.cli.command("reconcile-ledger")
    @click.option("--since", "since", required=False, help="ISO timestamp; only events recorded after it")
    @click.option("--limit", "limit", default=500, show_default=True, type=int)
    def reconcile_ledger(since: str | None, limit: int):
        """Replay recorded payment events that never reached their order."""
        from teloven.services.reconciliation_service import reconcile_recorded_events

        since_dt = None
        if since:
            try:
                since_dt = datetime.fromisoformat(since)
            except ValueError:
                raise click.ClickException("--since must be an ISO timestamp")
        summary = reconcile_recorded_events(engine, since=since_dt, limit=limit)
        click.echo(f"reconcile_ledger_ok checked={summary['checked_count']} applied={summary['applied_count']}")

    @app.cli.command("create-listing")
    @click.option("--seller", "seller_id", required=True)
    @click.option("--price", "price", required=True, type=int, help="Minor currency units")
    @click.option("--currency", "currency", default="CLP", show_default=True)
    @click.option("--title", "title", default="Demo listing", show_default=True)
    @click.option("--type", "listing_type", default="product", type=click.Choice(["product", "service"]))
    def create_listing(seller_id: str, price: int, currency: str, title: str, listing_type: str):
        """Insert a listing for local testing (listing CRUD lives elsewhere)."""
        if env not in ("dev", "development", "local", "test"):
            raise click.ClickException("create-listing is only available in dev.")
        from teloven.models import Listing

        row = Listing(seller_id=seller_id, price=price, currency=currency.upper(), title=title, type=listing_type)
        db.session.add(row)
        db.session.commit()
        click.echo(f"listing_created id={row.id}")

    @app.cli.command("issue-token")
    @click.argument("user_id")
    def issue_token(user_id: str):
        """Print a bearer token for a user id (dev only)."""
        if env not in ("dev", "development", "local", "test"):
            raise click.ClickException("issue-token is only available in dev.")
        from teloven.utils.jwt_utils import create_access_token

        click.echo(create_access_token(user_id))

    return app
