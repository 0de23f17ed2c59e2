"""
PM Board
Notification Blueprint.

Endpoints:
    GET   /api/notifications?email=&name=    unread notifications, newest first
    POST  /api/notifications/ack {id, email} mark one notification read

Clients poll the list; acknowledging an unknown id is not an error.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from pmboard.blueprints import request_data
from pmboard.services.notification_service import NotificationService
from pmboard.utils.errors import E, api_error

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api")


@notification_bp.errorhandler(SQLAlchemyError)
def _handle_store_write(error: SQLAlchemyError):
    logger.error("Store write failed in %s: %s", request.endpoint, error)
    return api_error(E.STORE_WRITE, "Could not save changes; nothing was written")


@notification_bp.errorhandler(HTTPException)
def _handle_http(error: HTTPException):
    return jsonify({"error": error.description}), error.code


@notification_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in notification_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """Unread notifications addressed to ``email`` or ``name``."""
    email = request.args.get("email", "")
    name = request.args.get("name", "")
    if not email.strip() and not name.strip():
        return api_error(E.MISSING_FIELD, "email or name is required")
    return jsonify(NotificationService.list_unread(email=email, name=name))


@notification_bp.route("/notifications/ack", methods=["POST"])
def acknowledge_notification():
    """Mark a notification read for the caller."""
    data = request_data()
    if data.get("id") in (None, ""):
        return api_error(E.MISSING_FIELD, "id is required")
    email = str(data.get("email") or "").strip()
    if not email:
        return api_error(E.MISSING_FIELD, "email is required")

    NotificationService.acknowledge(data["id"], email)
    return jsonify({"success": True})
