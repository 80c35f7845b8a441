"""
hive/__init__.py — Flask application factory.

create_app(config_name) creates and returns a configured Flask app. Nothing
is initialised at import time, so tests can build isolated app instances and
`alembic` can import the models without starting the server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging from LOG_LEVEL
  3. Initialise SQLAlchemy via init_app()
  4. Register route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500),
     rolling back the session first so a failed request never commits
     a partial write
"""

from __future__ import annotations

import logging
import traceback

from flask import Flask, jsonify, request
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from hive.config import config_by_name, validate_production_config


def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to "development".
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    from hive.extensions import db
    db.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Populates SQLAlchemy's MetaData for create_all() and Alembic.
    with app.app_context():
        from hive.models import (  # noqa: F401
            membership,
            message,
            platform_admin,
            server,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Applies LOG_LEVEL to the Flask logger and to the `hive` package loggers,
    which the services use for moderation and membership audit lines.
    """
    level = getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO)
    app.logger.setLevel(level)

    package_logger = logging.getLogger("hive")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        ))
        package_logger.addHandler(handler)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    messages_bp is registered at /api/v1 (not /api/v1/messages) because it
    owns BOTH /servers/<id>/messages AND /messages/<id>.
    """
    from hive.routes.messages import messages_bp
    from hive.routes.servers import servers_bp

    app.register_blueprint(servers_bp,  url_prefix="/api/v1/servers")
    app.register_blueprint(messages_bp, url_prefix="/api/v1")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with its HTTP status
      ValidationError → first marshmallow error as MISSING_FIELD /
                        INVALID_FIELD / a registered code (400)
      Exception       → generic INTERNAL_ERROR (500); traceback logged only
    """
    from hive.errors import AppError, ErrorCode
    from hive.extensions import db

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """Routes never catch AppError — they let it propagate here."""
        db.session.rollback()
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST error only ("one error, not many").

        If the message is itself a registered ErrorCode constant it is used
        as the code; otherwise MISSING_FIELD or INVALID_FIELD.
        """
        db.session.rollback()
        known_codes = set(vars(ErrorCode).values())
        messages = error.messages  # e.g. {"role": ["INVALID_ROLE"]}

        field = None
        raw_message = "Invalid input."

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None
                if isinstance(field_errors, list):
                    raw_message = field_errors[0] if field_errors else "Invalid value."
                else:
                    raw_message = str(field_errors)
                break
        elif isinstance(messages, list) and messages:
            raw_message = messages[0]

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif str(raw_message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        response_body = {"error": {"code": code, "message": message}}
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        """
        Errors raised by Flask/werkzeug themselves: unknown route (404),
        wrong method (405), unparseable JSON body (400).
        """
        db.session.rollback()
        if error.code == 400:
            code = ErrorCode.INVALID_FIELD
        else:
            code = error.name.upper().replace(" ", "_")  # e.g. METHOD_NOT_ALLOWED
        return jsonify({
            "error": {"code": code, "message": error.description},
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Returns a generic 500. The traceback goes to the log, never to the
        client.
        """
        db.session.rollback()
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development when DEBUG or
    TESTING is on, so a frontend on another port can call the API with
    Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """
    Human-readable default message for a code raised as a ValidationError
    message (e.g. INVALID_ROLE from SetRoleSchema).
    """
    _messages = {
        "INVALID_ROLE": "Unknown role. Known roles are 'member', 'moderator' and 'owner'.",
        "EMPTY_MESSAGE": "A message needs text content or an attached media_url.",
    }
    return _messages.get(code, "Invalid input.")
