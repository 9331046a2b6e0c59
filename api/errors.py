from flask import jsonify, current_app, g
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

from services.errors import AuthError, TOKEN_REJECTIONS

logger = logging.getLogger(__name__)

# What the client sees; the detailed error only goes to the log
GENERIC_MESSAGES = {
    401: "Incorrect sign-in credentials. Please try again.",
    403: "Invalid session. Please sign in again.",
    409: "User already exists.",
    500: "An error occurred. Please try again later.",
}
ERROR_KINDS = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 409: "CONFLICT"}


def error_response(error: str, message: str, status: int, details: dict | None = None):
    payload = {"success": False, "error": error, "message": message, "status": status}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def auth_error_response(err: AuthError, log_message: str, public_message: str | None = None):
    """
    Log err with full detail and answer with a non-revealing message.
    Token rejections all share one 403 so clients cannot tell a missing
    session from a replayed token.
    """
    status = 403 if isinstance(err, TOKEN_REJECTIONS) else err.status_code
    level = logging.ERROR if status >= 500 else logging.WARNING
    logger.log(
        level,
        "%s request_id=%s %s",
        log_message,
        getattr(g, "request_id", None),
        err.to_log(),
        exc_info=err.cause if status >= 500 and err.cause is not None else None,
    )
    message = public_message if status >= 500 and public_message else GENERIC_MESSAGES.get(status, err.message)
    return error_response(ERROR_KINDS.get(status, "INTERNAL_ERROR"), message, status)


def register_error_handlers(app):
    # 400 Bad Request (generic)
    @app.errorhandler(400)
    def bad_request(e):
        if current_app and current_app.debug:
            logger.exception("Bad request", exc_info=e)
        message = getattr(e, "description", "Bad request")
        return error_response("BAD_REQUEST", message, 400)

    # 401 Unauthorized
    @app.errorhandler(401)
    def unauthorized(e):
        message = getattr(e, "description", "Unauthorized")
        return error_response("UNAUTHORIZED", message, 401)

    # 404 Not Found
    @app.errorhandler(404)
    def not_found(e):
        return error_response("NOT_FOUND", "Resource not found", 404)

    # 422 Unprocessable Entity (validation)
    @app.errorhandler(422)
    def unprocessable(e):
        message = getattr(e, "description", "Unprocessable entity")
        return error_response("VALIDATION_ERROR", message, 422)

    # Marshmallow validation errors map to 422
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        # err.messages contains field-level details
        return error_response("VALIDATION_ERROR", "Invalid input", 422, details=err.messages)

    # AuthError raised outside the result flow (e.g. config checks)
    @app.errorhandler(AuthError)
    def handle_auth_error(err: AuthError):
        return auth_error_response(err, "Unhandled auth error.")

    # Integrity errors (unique constraints, FK violations, check constraints)
    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        message = str(getattr(err, "orig", err))
        lower_msg = message.lower()
        logger.warning("Integrity error: %s", message)
        # Heuristics: tailor the status
        if "unique constraint" in lower_msg or "unique violation" in lower_msg:
            return error_response("CONFLICT", "Unique constraint violated.", 409)
        if "foreign key constraint" in lower_msg or "foreign key mismatch" in lower_msg:
            return error_response("BAD_REQUEST", "Foreign key constraint failed.", 400)
        return error_response("BAD_REQUEST", "Integrity error.", 400)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(err: SQLAlchemyError):
        logger.exception("Database error", exc_info=err)
        return error_response("INTERNAL_ERROR", GENERIC_MESSAGES[500], 500)

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        return error_response("BAD_REQUEST", err.description, err.code or 400)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        details = None
        # In dev, include exception details to speed up debugging
        if current_app and current_app.debug:
            details = {"type": err.__class__.__name__, "message": str(err)}
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=details)
