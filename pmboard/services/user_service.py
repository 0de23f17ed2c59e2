"""User lookup, identity bootstrap and per-user card ordering."""

from __future__ import annotations

import logging

from flask import current_app

from pmboard.core.exceptions import NotFoundError
from pmboard.store import DocumentStore, get_store, write_lock
from pmboard.utils.identity import clean, normalize

logger = logging.getLogger(__name__)


def find_user(users: list[dict], email) -> dict | None:
    """Return the user whose email matches (case-insensitive), if any."""
    key = normalize(email)
    if not key:
        return None
    for user in users or []:
        if normalize(user.get("email")) == key:
            return user
    return None


def get_user(store: DocumentStore, email) -> dict:
    user = find_user(store.get_all("users"), email)
    if user is None:
        raise NotFoundError(resource="User", resource_id=email)
    return user


def parse_roles(role) -> list[str]:
    """``"pm, designer"`` → ``["PM", "DESIGNER"]``."""
    return [r.strip().upper() for r in str(role or "").split(",") if r.strip()]


def bootstrap(email, *, store: DocumentStore | None = None) -> dict:
    """Resolve an email to its role flags plus the client's static config."""
    store = store or get_store()
    user = get_user(store, email)
    config = store.get_all("config") or {}
    roles = parse_roles(user.get("role"))

    return {
        "email": user.get("email"),
        "name": user.get("name"),
        "roles": roles,
        "isPM": "PM" in roles,
        "isOps": "OPERATIONAL" in roles,
        "isDesigner": "DESIGNER" in roles,
        "priorityOptions": config.get("priorityOptions") or list(current_app.config["PRIORITY_OPTIONS"]),
        "phaseColors": store.get_all("colors") or {},
        "logoUrl": current_app.config.get("LOGO_URL", ""),
    }


def save_custom_order(email, pm_name, ordered_row_indexes, *, store: DocumentStore | None = None) -> dict:
    """Store the user's manual card order for one PM filter."""
    store = store or get_store()
    with write_lock:
        users = store.get_all("users")
        user = find_user(users, email)
        if user is None:
            raise NotFoundError(resource="User", resource_id=email)

        order = user.get("customSortOrder")
        if not isinstance(order, dict):
            order = {}
        order[clean(pm_name)] = list(ordered_row_indexes)
        user["customSortOrder"] = order

        store.set("users", users)
        store.write()

    logger.info("Saved custom order for %s (pm=%s, %d cards)",
                user.get("email"), pm_name, len(ordered_row_indexes))
    return {"success": True, "message": "Custom order saved"}
