"""
PM Board
Flask Application Factory.

Usage:
    from pmboard import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")  # explicit config
"""

import json
import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from pmboard.config import config
from pmboard.models import db
from pmboard.middleware.logging_config import configure_logging
from pmboard.middleware.timing import init_request_timing
from pmboard.middleware.rate_limiter import init_rate_limits

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # per-blueprint limits only
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to the APP_ENV env var, else "development".

    Returns:
        Configured Flask application instance.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so environment checks in __init__ run
    app.config.from_object(config[config_name]())
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    limiter.init_app(app)
    origins = [o.strip() for o in (app.config.get("CORS_ORIGINS") or "").split(",") if o.strip()]
    if origins and origins != ["*"]:
        CORS(app, origins=origins)
    elif origins:
        CORS(app)

    # ── Request hooks ────────────────────────────────────────────────────
    init_request_timing(app)

    @app.before_request
    def _require_json_body():
        if request.method == "POST" and request.path.startswith("/api/"):
            if request.get_data() and not request.is_json:
                abort(415, description="Content-Type must be application/json")

    # ── Document table (CREATE IF NOT EXISTS) ────────────────────────────
    from pmboard.models import document as _document_models  # noqa: F401

    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from pmboard.blueprints.project_bp import project_bp
    from pmboard.blueprints.notification_bp import notification_bp
    from pmboard.blueprints.health_bp import health_bp

    app.register_blueprint(project_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    init_rate_limits(app, limiter)

    _register_cli(app)
    _register_error_handlers(app)

    logger.info("PM Board started (config=%s)", config_name)
    return app


def _register_cli(app):
    @app.cli.command("seed-db")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    def seed_db_cmd(path):
        """Load an imported JSON document (projects, users, colors, config)."""
        from pmboard.services.project_service import seed

        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise click.ClickException(f"{path} must contain a JSON object")

        counts = seed(data)
        logger.info("Seeded %s from %s", counts, path)
        click.echo(", ".join(f"{name}: {n}" for name, n in counts.items()) or "nothing to seed")


def _register_error_handlers(app):
    """JSON bodies for errors raised outside the API blueprints."""

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media(e):
        return {"error": e.description}, 415

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500
