"""JSON error bodies for the API blueprints.

Every error response has the shape ``{"error": <message>, "code": <E.*>}``
plus ``details`` when there is field-level information.

    from pmboard.utils.errors import api_error, E

    return api_error(E.MISSING_FIELD, "email is required")
    return api_error(E.NOT_FOUND, str(exc))
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes."""

    # Malformed request: 400
    MISSING_FIELD = "ERR_MISSING_FIELD"
    INVALID_FIELD = "ERR_INVALID_FIELD"

    # Well-formed but not allowed: 422
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Unknown user / project: 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Store write failed (rolled back) or anything unexpected: 500
    STORE_WRITE = "ERR_STORE_WRITE"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE = {
    E.MISSING_FIELD: 400,
    E.INVALID_FIELD: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.STORE_WRITE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view.

    ``status`` defaults to the code's usual HTTP status (400 for unknown codes).
    """
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)
