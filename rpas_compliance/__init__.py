"""
RPAS Compliance Platform
Flask Application Factory.

Usage:
    from rpas_compliance import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from rpas_compliance.config import config
from rpas_compliance.middleware.logging_config import configure_logging
from rpas_compliance.middleware.rate_limiter import init_rate_limits
from rpas_compliance.middleware.timing import init_request_timing
from rpas_compliance.models import db
from rpas_compliance.services.subscriptions import change_feed
from rpas_compliance.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    storage_uri=os.getenv("REDIS_URL", "memory://"),
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
    config_cls = config[config_name]
    # ProductionConfig validates its environment on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

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

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from rpas_compliance.models import organization as _organization_models  # noqa: F401
    from rpas_compliance.models import collaboration as _collaboration_models  # noqa: F401
    from rpas_compliance.models import sfoc as _sfoc_models                  # noqa: F401
    from rpas_compliance.models import compliance as _compliance_models      # noqa: F401
    from rpas_compliance.models import hazard as _hazard_models              # noqa: F401
    from rpas_compliance.models import permit as _permit_models              # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from rpas_compliance.blueprints.collaboration_bp import collaboration_bp
    from rpas_compliance.blueprints.compliance_bp import compliance_bp
    from rpas_compliance.blueprints.hazard_bp import hazard_bp, master_hazard_bp
    from rpas_compliance.blueprints.health_bp import health_bp
    from rpas_compliance.blueprints.organization_bp import organization_bp
    from rpas_compliance.blueprints.permit_bp import permit_bp
    from rpas_compliance.blueprints.sfoc_bp import sfoc_bp

    app.register_blueprint(organization_bp)
    app.register_blueprint(sfoc_bp)
    app.register_blueprint(compliance_bp)
    app.register_blueprint(master_hazard_bp)
    app.register_blueprint(hazard_bp)
    app.register_blueprint(permit_bp)
    app.register_blueprint(collaboration_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    # ── Change feed (post-commit snapshot delivery) ──────────────────────
    change_feed.init_app(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-compliance-templates")
    def seed_compliance_templates_cmd():
        """Seed the platform compliance matrix templates."""
        from rpas_compliance.seed_data.compliance_templates import DEFAULT_TEMPLATES
        from rpas_compliance.services.compliance_service import seed_default_templates
        results = seed_default_templates(DEFAULT_TEMPLATES, user="cli")
        logger.info("Seeded %s new compliance templates (%s skipped).",
                    results["created"], results["skipped"])

    @app.cli.command("seed-master-hazards")
    def seed_master_hazards_cmd():
        """Seed the published master FHA library."""
        from rpas_compliance.seed_data.master_hazards import DEFAULT_MASTER_HAZARDS
        from rpas_compliance.services.master_hazard_service import seed_master_hazards
        results = seed_master_hazards(DEFAULT_MASTER_HAZARDS, user="cli")
        logger.info("Seeded %s new master hazards (%s skipped, %s errors).",
                    results["created"], results["skipped"], len(results["errors"]))

    return app
