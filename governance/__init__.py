"""
Governance Central
Flask Application Factory.

Usage:
    from governance import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_migrate import Migrate

from governance.config import config
from governance.models import db
from governance.middleware.logging_config import configure_logging
from governance.middleware.timing import init_request_timing
from governance.middleware.jwt_auth import init_jwt_middleware
from governance.middleware.rate_limiter import init_rate_limits, rate_limit_key
from governance.utils.errors import register_error_handlers

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[],  # applied per blueprint
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
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request middleware ───────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    # after the JWT hook: rate_limit_key reads g.jwt_user_id
    limiter.init_app(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from governance.models import identity as _identity_models    # noqa: F401
    from governance.models import project as _project_models      # noqa: F401
    from governance.models import evidence as _evidence_models    # noqa: F401
    from governance.models import hooks as _hook_models           # noqa: F401
    from governance.models import knowledge as _knowledge_models  # noqa: F401
    from governance.models import mcp as _mcp_models              # noqa: F401

    if app.config.get("DEBUG") and app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from governance.blueprints.evidence_bp import evidence_bp
    from governance.blueprints.health_bp import health_bp
    from governance.blueprints.hooks_bp import hooks_bp
    from governance.blueprints.identity_bp import identity_bp
    from governance.blueprints.knowledge_bp import knowledge_bp
    from governance.blueprints.mcp_bp import mcp_bp
    from governance.blueprints.metrics_bp import metrics_bp
    from governance.blueprints.projects_bp import projects_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(identity_bp)
    app.register_blueprint(evidence_bp)
    app.register_blueprint(hooks_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(knowledge_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(mcp_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-rules")
    @click.argument("team_id", type=int)
    def seed_rules_cmd(team_id):
        """Seed the default verification rule catalogue for TEAM_ID."""
        from governance.services.hook_service import seed_default_rules
        count = seed_default_rules(team_id)
        logger.info("Seeded %s verification rules for team %s.", count, team_id)

    @app.cli.command("create-team")
    @click.argument("name")
    @click.option("--organization", default=None)
    def create_team_cmd(name, organization):
        """Create a team."""
        from governance.services.identity_service import create_team
        team = create_team({"name": name, "organization": organization})
        click.echo(f"Team {team.id} created")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.argument("email")
    @click.option("--team-id", type=int, default=None)
    @click.option("--role", default="developer")
    def create_user_cmd(username, email, team_id, role):
        """Register a user and print an access token for local use."""
        from governance.services.identity_service import create_user
        from governance.services.jwt_service import generate_access_token
        user = create_user({"username": username, "email": email, "team_id": team_id, "role": role})
        click.echo(f"User {user.id} created")
        click.echo(generate_access_token(user.id, user.team_id, user.role))

    @app.cli.command("issue-token")
    @click.argument("username")
    def issue_token_cmd(username):
        """Print an access token for USERNAME and stamp its last login."""
        from governance.services.identity_service import get_user_by_username, record_login
        from governance.services.jwt_service import generate_access_token
        from governance.core.exceptions import NotFoundError
        try:
            user = record_login(get_user_by_username(username).id)
        except NotFoundError:
            raise click.ClickException(f"Unknown user {username}")
        click.echo(generate_access_token(user.id, user.team_id, user.role))

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
