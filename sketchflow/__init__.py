"""
SketchFlow — land-survey sketch workflow service.
Flask Application Factory.

Usage:
    from sketchflow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from sketchflow.config import config
from sketchflow.models import db
from sketchflow.middleware.jwt_auth import init_jwt_middleware
from sketchflow.middleware.logging_config import configure_logging
from sketchflow.middleware.rate_limiter import init_rate_limits
from sketchflow.middleware.timing import init_request_timing
from sketchflow.utils.errors import init_error_handlers

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
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",  # Redis in production, memory for dev
)


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
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # Local SQLite databases live under instance/
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") \
            and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        db_dir = os.path.dirname(app.config["SQLALCHEMY_DATABASE_URI"][len("sqlite:///"):])
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

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

    # ── JWT auth middleware (sets g.actor) ───────────────────────────────
    init_jwt_middleware(app)

    # ── Request guard (Content-Type) ─────────────────────────────────────
    @app.before_request
    def _guard_request():
        from flask import request as _req, abort
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            # Form bodies are parsed into request.form, so test the length
            if (_req.content_length or 0) > 0 and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Error handlers ───────────────────────────────────────────────────
    init_error_handlers(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from sketchflow.models import hierarchy as _hierarchy_models          # noqa: F401
    from sketchflow.models import drafting_center as _center_models       # noqa: F401
    from sketchflow.models import sketch_request as _sketch_request_models  # noqa: F401
    from sketchflow.models import assignment as _assignment_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS; migrations own changes) ─
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from sketchflow.blueprints.hierarchy_bp import hierarchy_bp
    from sketchflow.blueprints.drafting_center_bp import drafting_center_bp
    from sketchflow.blueprints.sketch_request_bp import sketch_request_bp
    from sketchflow.blueprints.assignment_bp import assignment_bp
    from sketchflow.blueprints.health_bp import health_bp

    app.register_blueprint(hierarchy_bp)
    app.register_blueprint(drafting_center_bp)
    app.register_blueprint(sketch_request_bp)
    app.register_blueprint(assignment_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("reconcile-sketch-statuses")
    def reconcile_sketch_statuses_cmd():
        """Re-derive PENDING / ASSIGNED request statuses from live assignments."""
        from sketchflow.services.sketch_request_service import reconcile_all
        count = reconcile_all()
        logger.info("Reconciled %s sketch request statuses.", count)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
