"""
PM Board
Project Blueprint.

Endpoints:
    GET   /api/bootstrap?email=                       identity + static config
    GET   /api/projects?email=&mode=&pmName=          role-scoped card list
    POST  /api/update        {email, mode, payload}   single-card edit
    GET   /api/raw-data                               whole store (data editor)
    POST  /api/raw-data      {projects, ...}          bulk replace
    POST  /api/custom-order  {email, pmName, orderedRowIndexes}

Identity is the supplied email; it is trusted, not verified.
Service layer owns all business logic and writes.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from pmboard.blueprints import request_data
from pmboard.core.exceptions import NotFoundError, ValidationError
from pmboard.services import project_service, user_service
from pmboard.utils.errors import E, api_error

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api")


# ── Error handlers ────────────────────────────────────────────────────────────


@project_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@project_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_RULE, str(error), details=error.details)


@project_bp.errorhandler(SQLAlchemyError)
def _handle_store_write(error: SQLAlchemyError):
    logger.error("Store write failed in %s: %s", request.endpoint, error)
    return api_error(E.STORE_WRITE, "Could not save changes; nothing was written")


@project_bp.errorhandler(HTTPException)
def _handle_http(error: HTTPException):
    return jsonify({"error": error.description}), error.code


@project_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in project_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


def _require_mode(mode):
    if mode not in project_service.MODES:
        return api_error(
            E.INVALID_FIELD,
            f"mode must be one of: {', '.join(project_service.MODES)}",
        )
    return None


# ═════════════════════════════════════════════════════════════════════════
#  Identity
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/bootstrap", methods=["GET"])
def bootstrap():
    """Resolve ``email`` to role flags, priority options and phase colors."""
    email = request.args.get("email", "").strip()
    if not email:
        return api_error(E.MISSING_FIELD, "email is required")
    return jsonify(user_service.bootstrap(email))


# ═════════════════════════════════════════════════════════════════════════
#  Projects
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    """Cards for one view.

    Query params: email (required), mode (mine | pm | ops), pmName (pm mode).
    """
    email = request.args.get("email", "").strip()
    if not email:
        return api_error(E.MISSING_FIELD, "email is required")
    mode = request.args.get("mode", "")
    err = _require_mode(mode)
    if err:
        return err

    result = project_service.list_projects(email, mode, request.args.get("pmName"))
    return jsonify(result)


@project_bp.route("/update", methods=["POST"])
def update_project():
    """Apply one role-scoped edit.

    Body: {email, mode, payload: {rowIndex, ...fields}}
    """
    data = request_data()
    mode = data.get("mode", "")
    err = _require_mode(mode)
    if err:
        return err
    payload = data.get("payload")
    if not isinstance(payload, dict):
        return api_error(E.MISSING_FIELD, "payload object is required")
    if payload.get("rowIndex") in (None, ""):
        return api_error(E.MISSING_FIELD, "payload.rowIndex is required")

    result = project_service.update_project(data.get("email", ""), mode, payload)
    return jsonify(result)


@project_bp.route("/raw-data", methods=["GET"])
def get_raw_data():
    """Every collection in the store."""
    return jsonify(project_service.raw_snapshot())


@project_bp.route("/raw-data", methods=["POST"])
def save_raw_data():
    """Bulk replace. Body must carry a ``projects`` list."""
    data = request_data()
    if not isinstance(data.get("projects"), list):
        return api_error(E.INVALID_FIELD, "Invalid DB structure")

    result = project_service.replace_raw_data(data)
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════
#  Card ordering
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/custom-order", methods=["POST"])
def save_custom_order():
    """Store a manual card order for one PM filter.

    Body: {email, pmName, orderedRowIndexes: [...]}
    """
    data = request_data()
    email = str(data.get("email") or "").strip()
    if not email:
        return api_error(E.MISSING_FIELD, "email is required")
    ordered = data.get("orderedRowIndexes")
    if not isinstance(ordered, list):
        return api_error(E.INVALID_FIELD, "orderedRowIndexes must be a list")

    result = user_service.save_custom_order(email, data.get("pmName", ""), ordered)
    return jsonify(result)
