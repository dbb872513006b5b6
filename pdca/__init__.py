"""
PDCA Action Tracker
Flask Application Factory.

Usage:
    from pdca import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from pdca.config import config
from pdca.models import db
from pdca.middleware.logging_config import configure_logging
from pdca.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def init_rate_limits(app):
    """Write-heavy blueprints 60/minute, reporting 200/minute, health exempt.

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("projects", "settings"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("60/minute", methods=["POST", "PUT", "PATCH", "DELETE"])(bp)

    bp = app.blueprints.get("reports")
    if bp:
        limiter.limit("200/minute")(bp)

    app.logger.info("Rate limiter configured: write 60/min, reports 200/min")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_class = config[config_name]
    if config_name == "production":
        config_class()  # raises when DATABASE_URL or SECRET_KEY is missing
    app.config.from_object(config_class)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from pdca.models import project as _project_models      # noqa: F401
    from pdca.models import settings as _settings_models    # noqa: F401

    # ── Auto-create tables + default statuses ────────────────────────────
    with app.app_context():
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") \
                and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
            os.makedirs(app.instance_path, exist_ok=True)
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

        if not app.config.get("TESTING"):
            from pdca.services.entity_store import store
            from pdca.core.exceptions import StoreError
            try:
                store.seed_default_statuses()
            except StoreError as e:
                app.logger.warning("Default status seeding failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from pdca.blueprints.project_bp import project_bp
    from pdca.blueprints.settings_bp import settings_bp
    from pdca.blueprints.report_bp import report_bp

    app.register_blueprint(project_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(report_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-statuses")
    def seed_statuses_cmd():
        """Store the default status list if none is configured."""
        from pdca.services.entity_store import store
        seeded = store.seed_default_statuses()
        logger.info("Default statuses %s.", "seeded" if seeded else "already present")

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "PDCA Action Tracker"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app)

    return app
