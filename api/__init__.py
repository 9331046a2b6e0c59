import atexit
from datetime import timedelta

import click
from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config, validate_config
from .errors import register_error_handlers
from .middleware import register_request_logging
from models.db_storage import DBStorage
from services.session_service import SessionService
from services.user_data import UserDataService
from utils.logger import configure_logging

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Session Auth API",
        "version": "1.0.0",
        "description": "Registration, sign-in and refresh-token rotated login sessions.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the access token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, storage: DBStorage | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    The database handle is built here (or passed in, e.g. by tests) and shared by
    the services stored in app.extensions:
      - "storage"          DBStorage
      - "session_service"  SessionService
      - "user_data"        UserDataService
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    validate_config(app.config)
    configure_logging(app.config["LOG_LEVEL"])

    if storage is None:
        storage = DBStorage(app.config["DATABASE_URL"], echo=app.config["SQL_ECHO"])
        storage.reload()
        # process shutdown releases the pool
        atexit.register(storage.dispose)

    app.extensions["storage"] = storage
    app.extensions["session_service"] = SessionService(
        storage,
        idle_threshold=timedelta(hours=app.config["SESSION_IDLE_HOURS"]),
        revoke_on_reuse=app.config["REVOKE_SESSION_ON_TOKEN_REUSE"],
    )
    app.extensions["user_data"] = UserDataService(storage)

    # Cross-Origin Resource Sharing: credentials are needed for the refresh cookie
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        supports_credentials=True,
    )

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)
    register_request_logging(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # This calls scoped_session.remove(), preventing connection leaks
        storage.close()

    @app.cli.command("sweep-sessions")
    def sweep_sessions():
        """Delete idle and expired sessions (run from cron or a scheduler)."""
        service = app.extensions["session_service"]
        for label, sweep in (("idle", service.sweep_idle), ("expired", service.sweep_expired)):
            outcome = sweep()
            if not outcome.success:
                raise click.ClickException(f"{label} sweep failed: {outcome.error.message}")
            click.echo(f"{label}: removed {len(outcome.result)} session(s)")

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Session Auth API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
