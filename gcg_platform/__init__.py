"""
GCG Assessment Platform
Flask Application Factory.

Usage:
    from gcg_platform import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config

Services are built once per app and live on ``app.extensions["gcg"]``.
"""

import logging
import os

import click
from flask import Flask
from flask_migrate import Migrate

from gcg_platform.config import config
from gcg_platform.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from gcg_platform.middleware.logging_config import configure_logging
from gcg_platform.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine  # noqa: E402


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()


def _default_gateways(app):
    from gcg_platform.integrations.dictionary_gateway import StaticDictionaryGateway
    from gcg_platform.integrations.evidence_gateway import InMemoryEvidenceGateway
    from gcg_platform.integrations.identity_gateway import InMemoryIdentityGateway
    from gcg_platform.services.email_service import EmailService

    return {
        "identity": InMemoryIdentityGateway(),
        "evidence": InMemoryEvidenceGateway(),
        "dictionary": StaticDictionaryGateway(),
        "sender": EmailService(db.session, app.config),
    }


def _register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def validation_error(e):
        return {"error": str(e), "details": e.details}, 422

    @app.errorhandler(NotFoundError)
    def not_found_error(e):
        logger.info("Not found: %s", e)
        return {"error": f"{e.resource} not found"}, 404

    @app.errorhandler(ConflictError)
    def conflict_error(e):
        return {"error": str(e)}, 409

    @app.errorhandler(PermissionDenied)
    def permission_denied(e):
        return {"error": str(e)}, 403

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found"}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500


def create_app(config_name=None, gateways=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        gateways:    Optional overrides for the collaborator gateways
                     ("identity", "evidence", "dictionary", "sender").

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)

    # ── Import all models so Alembic can detect them ─────────────────────
    from gcg_platform.models import hierarchy as _hierarchy_models        # noqa: F401
    from gcg_platform.models import pic as _pic_models                    # noqa: F401
    from gcg_platform.models import aoi as _aoi_models                    # noqa: F401
    from gcg_platform.models import notification as _notification_models  # noqa: F401

    if app.config.get("TESTING") or (app.config.get("SQLALCHEMY_DATABASE_URI") or "").startswith("sqlite"):
        with app.app_context():
            try:
                db.create_all()
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Services ─────────────────────────────────────────────────────────
    from gcg_platform.services.container import ServiceContainer

    wired = _default_gateways(app)
    wired.update(gateways or {})
    app.extensions["gcg"] = ServiceContainer(db.session, config=app.config, **wired)

    _register_error_handlers(app)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "GCG Assessment Platform"}

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-template-assessment")
    @click.option("--title", default="GCG Self-Assessment", help="Assessment title.")
    @click.option("--user", "user_id", required=True, help="Creating user id.")
    def seed_template_assessment_cmd(title, user_id):
        """Create an assessment holding a copy of the master template."""
        services = app.extensions["gcg"]
        result = services.builder.create_from_template({"title": title}, user_id)
        logger.info(
            "Seeded assessment %s with %d factor(s).",
            result.assessment.id, result.counts["factor"],
        )
        click.echo(result.assessment.id)

    @app.cli.command("mark-overdue-aois")
    def mark_overdue_aois_cmd():
        """Move past-due AOIs to overdue."""
        changed = app.extensions["gcg"].aois.mark_overdue()
        click.echo(f"{len(changed)} AOI(s) marked overdue")

    return app
