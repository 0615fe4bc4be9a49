"""Standardised API error responses.

Usage
-----
    from sketchflow.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Assignment not found")
    return api_error(E.VALIDATION_REQUIRED, "sketch_request_id is required")
    return api_error(E.ALREADY_ASSIGNED, "Already assigned", details={"assignment_id": 4})

``init_error_handlers(app)`` registers the app-wide handlers that turn
service exceptions into the same body shape.
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from sketchflow.core.exceptions import ServiceError
from sketchflow.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for generic application errors
     • bare upper-case names for workflow-specific outcomes clients branch on
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NO_DOCUMENTS = "NO_DOCUMENTS"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INVALID_STATUS_FOR_RESPONSE = "INVALID_STATUS_FOR_RESPONSE"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    CENTER_NOT_LINKED = "CENTER_NOT_LINKED"
    NOT_YOUR_CENTER = "ASSIGNMENT_NOT_FOR_YOUR_CENTER"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"
    HIERARCHY_MISMATCH = "ERR_HIERARCHY_MISMATCH"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    DUPLICATE_CODE = "DUPLICATE_CODE"
    ALREADY_ASSIGNED = "ALREADY_ASSIGNED"
    APPLICATION_ID_COLLISION = "APPLICATION_ID_COLLISION"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NO_DOCUMENTS: 400,
    E.INVALID_TRANSITION: 400,
    E.INVALID_STATUS_FOR_RESPONSE: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.CENTER_NOT_LINKED: 403,
    E.NOT_YOUR_CENTER: 403,
    E.NOT_FOUND: 404,
    E.HIERARCHY_MISMATCH: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.DUPLICATE_CODE: 409,
    E.ALREADY_ASSIGNED: 409,
    E.APPLICATION_ID_COLLISION: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (offending field, blocking id, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


# ── App-wide handlers ─────────────────────────────────────────────────

_HTTP_CODES = {
    400: E.VALIDATION_INVALID,
    401: E.UNAUTHORIZED,
    403: E.FORBIDDEN,
    404: E.NOT_FOUND,
}


def init_error_handlers(app):
    """Register handlers mapping exceptions to ``api_error`` bodies."""

    @app.errorhandler(ServiceError)
    def _handle_service_error(error: ServiceError):
        if error.status_code >= 500:
            logger.error("Service error on %s: %s", request.path, error)
        else:
            logger.info("%s on %s %s: %s", error.code, request.method, request.path, error)
        return api_error(error.code, str(error), status=error.status_code, details=error.details)

    @app.errorhandler(HTTPException)
    def _handle_http_error(error: HTTPException):
        code = _HTTP_CODES.get(error.code, f"ERR_HTTP_{error.code}")
        return api_error(code, error.description or error.name, status=error.code)

    @app.errorhandler(SQLAlchemyError)
    def _handle_database_error(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error on %s %s endpoint=%s",
                         request.method, request.path, request.endpoint)
        return api_error(E.DATABASE, "Database error", status=500)

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        # Full detail goes to the log only
        logger.exception("Unhandled error on %s %s endpoint=%s",
                         request.method, request.path, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error", status=500)
