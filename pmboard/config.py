"""
PM Board
Configuration classes for the Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _database_url(env_var: str, fallback: str | None) -> str | None:
    """Read a database URL, accepting the legacy ``postgres://`` scheme."""
    url = os.getenv(env_var, "")
    if not url:
        return fallback
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


class Config:
    """Settings shared by every environment."""

    # Per-process random key unless one is provided
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Comma-separated origin list, "*" for any
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # The data editor posts the whole store in one body
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_MB", "50")) * 1024 * 1024

    # Offered in the priority dropdowns when the config document has none
    PRIORITY_OPTIONS = [str(n) for n in range(1, 11)]
    LOGO_URL = os.getenv(
        "LOGO_URL",
        "https://raw.githubusercontent.com/marvinpacsands/base64-image/refs/heads/main/logo.png",
    )


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        "DATABASE_URL", f"sqlite:///{os.path.join(basedir, 'instance', 'pmboard_dev.db')}",
    )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL", "sqlite:///:memory:")
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL", None)
    # No wildcard default outside development
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
