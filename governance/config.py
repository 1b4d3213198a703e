"""
Governance Central
Configuration classes for the Flask app factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'governance_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _database_url(default=None):
    # Heroku-style postgres:// URLs are rejected by SQLAlchemy 2.0
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY") or SECRET_KEY
    JWT_ALGORITHM = "HS256"
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # Graph store (ArangoDB)
    GRAPH_STORE_URL = os.getenv("GRAPH_STORE_URL", "http://localhost:8529")
    GRAPH_STORE_DATABASE = os.getenv("GRAPH_STORE_DATABASE", "governance")
    GRAPH_STORE_USER = os.getenv("GRAPH_STORE_USER", "root")
    GRAPH_STORE_PASSWORD = os.getenv("GRAPH_STORE_PASSWORD", "")
    GRAPH_STORE_TIMEOUT = float(os.getenv("GRAPH_STORE_TIMEOUT", "10"))
    GRAPH_STORE_GRAPH = os.getenv("GRAPH_STORE_GRAPH", "knowledge_graph")

    # Hook dry runs: isolated executor service; local subprocess only when opted in
    HOOK_SANDBOX_URL = os.getenv("HOOK_SANDBOX_URL", "")
    HOOK_SANDBOX_TOKEN = os.getenv("HOOK_SANDBOX_TOKEN", "")
    HOOK_SANDBOX_LOCAL = os.getenv("HOOK_SANDBOX_LOCAL", "false").lower() == "true"
    HOOK_SANDBOX_TIMEOUT = float(os.getenv("HOOK_SANDBOX_TIMEOUT", "10"))

    # Rate limiter storage: Redis in production, memory for dev
    REDIS_URL = os.getenv("REDIS_URL", "")
    RATELIMIT_STORAGE_URI = REDIS_URL or "memory://"
    RATELIMIT_ENABLED = True

    # Legacy unauthenticated evidence endpoint
    LEGACY_EVIDENCE_ENABLED = os.getenv("LEGACY_EVIDENCE_ENABLED", "true").lower() == "true"

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite uses a StaticPool, which takes no pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret"
    RATELIMIT_ENABLED = False
    GRAPH_STORE_URL = "http://graph.invalid:8529"
    HOOK_SANDBOX_URL = ""
    HOOK_SANDBOX_LOCAL = False
    HOOK_SANDBOX_TIMEOUT = 5.0


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production
    LEGACY_EVIDENCE_ENABLED = os.getenv("LEGACY_EVIDENCE_ENABLED", "false").lower() == "true"
    HOOK_SANDBOX_LOCAL = False  # never execute hook scripts on a production host

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
