"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - Alembic to load metadata without starting the full server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  3. Build the collaborators (attachment storage, email sender) and store
     them in app.extensions
  4. Register all route blueprints under /api/v1, plus the uploads route
  5. Register global error handlers (AppError, ValidationError,
     HTTPException, Exception → JSON)
  6. Register a custom JSON provider to serialise Decimal as string

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here — the import side-effect is sufficient.
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify
from flask.json.provider import DefaultJSONProvider
from flask.logging import default_handler
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from eventledger.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal.
# Monetary amounts are serialised as strings to preserve precision.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from eventledger.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    _register_collaborators(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    with app.app_context():
        from eventledger.app.models import (  # noqa: F401
            collected_cash,
            event,
            expense,
            refresh_token,
            user,
        )

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Applies LOG_LEVEL to app.logger and to the package's module loggers
    (services, storage, mailer), which share Flask's stderr handler.
    """
    level = app.config.get("LOG_LEVEL", "INFO")
    app.logger.setLevel(level)

    package_logger = logging.getLogger("eventledger")
    package_logger.setLevel(level)
    if default_handler not in package_logger.handlers:
        package_logger.addHandler(default_handler)


def _register_collaborators(app: Flask) -> None:
    """
    Builds the default attachment storage and email sender. Tests replace
    the entries in app.extensions with fakes after the app is created.
    """
    from eventledger.app.extensions import ATTACHMENT_STORAGE_KEY, EMAIL_SENDER_KEY
    from eventledger.app.mailer import SmtpEmailSender
    from eventledger.app.storage import LocalAttachmentStorage

    app.extensions[ATTACHMENT_STORAGE_KEY] = LocalAttachmentStorage(
        root=app.config["UPLOAD_FOLDER"],
        url_prefix=app.config["UPLOAD_URL_PREFIX"],
    )
    app.extensions[EMAIL_SENDER_KEY] = SmtpEmailSender.from_config(app.config)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    Blueprint names match the route files in app/routes/.
    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "" and "/<int:id>").
    """
    from eventledger.app.routes.auth import auth_bp
    from eventledger.app.routes.collected_cash import collected_cash_bp
    from eventledger.app.routes.dashboard import dashboard_bp
    from eventledger.app.routes.events import events_bp
    from eventledger.app.routes.expenses import expenses_bp
    from eventledger.app.routes.users import users_bp
    from eventledger.app.storage import uploads_bp

    app.register_blueprint(auth_bp,           url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp,          url_prefix="/api/v1/users")
    app.register_blueprint(events_bp,         url_prefix="/api/v1/events")
    # expenses_bp and collected_cash_bp are registered at /api/v1 because each
    # owns both /events/<id>/... paths and its own /<resource>/<id> paths.
    app.register_blueprint(expenses_bp,       url_prefix="/api/v1")
    app.register_blueprint(collected_cash_bp, url_prefix="/api/v1")
    app.register_blueprint(dashboard_bp,      url_prefix="/api/v1/dashboard")
    app.register_blueprint(uploads_bp,        url_prefix=app.config["UPLOAD_URL_PREFIX"])


# ── Validation error flattening ────────────────────────────────────────────

def _first_validation_error(messages) -> tuple[str | None, str]:
    """
    Walks marshmallow's messages structure and returns (field, message) for
    the first error. Nested errors (e.g. {"payments": {0: {"paid_amount":
    [...]}}}) are reported against the top-level field.
    """
    if isinstance(messages, dict):
        for field_name, field_errors in messages.items():
            _, raw_message = _first_validation_error(field_errors)
            field = field_name if isinstance(field_name, str) and field_name != "_schema" else None
            return field, raw_message
        return None, "Invalid input."
    if isinstance(messages, list):
        if not messages:
            return None, "Invalid value."
        return _first_validation_error(messages[0])
    return None, str(messages)


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with its HTTP status
      ValidationError → first schema error as MISSING_FIELD / INVALID_FIELD
                        (or the registered code the schema raised), 400
      HTTPException   → werkzeug errors (404 routing, 405, 413 ...) keep their
                        status inside the same envelope
      Exception       → generic INTERNAL_ERROR (500); traceback logged, and
                        returned in the body only when EXPOSE_TRACEBACKS is set
    """
    from eventledger.app.errors import CODE_MESSAGES, AppError, ErrorCode

    registered_codes = set(vars(ErrorCode).values())

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns only the FIRST error ("one error, not many").

        A message that is itself a registered ErrorCode is used as the code
        and replaced by that code's default prose.
        """
        field, raw_message = _first_validation_error(error.messages)

        if raw_message in registered_codes:
            code = raw_message
            message = CODE_MESSAGES.get(code, "Invalid input.")
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        return jsonify(AppError(code, message, 400, field=field).to_dict()), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        code = ErrorCode.RESOURCE_NOT_FOUND if error.code == 404 else ErrorCode.INVALID_FIELD
        if error.code is not None and error.code >= 500:
            code = ErrorCode.INTERNAL_ERROR
        return jsonify({
            "error": {
                "code": code,
                "message": error.description or error.name,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger. It is added
        to the body only when EXPOSE_TRACEBACKS is on (development).
        """
        formatted = traceback.format_exc()
        app.logger.error("Unhandled exception: %s\n%s", str(error), formatted)

        payload = {
            "code": ErrorCode.INTERNAL_ERROR,
            "message": "An unexpected error occurred. Please try again later.",
        }
        if app.config.get("EXPOSE_TRACEBACKS"):
            payload["traceback"] = formatted
        return jsonify({"error": payload}), 500
