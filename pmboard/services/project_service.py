"""
PM Board
Project service: role-scoped views and the two save paths.

Save paths:
    update_project     one card, one role (pm / mine / ops)
    replace_raw_data   the data editor's full replace of every project

Both follow the same order: locate the old record, compute the new one on a
copy, run the notification rules and filter, queue survivors in the log,
then write the store once. The bulk path also rebalances designer priorities
(after the rules, so notifications see the priorities as submitted).
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime

from pmboard.core.exceptions import NotFoundError, ValidationError
from pmboard.models.document import COLLECTIONS
from pmboard.services.notification_filter import drop_self_targeted, drop_superseded, filter_candidates
from pmboard.services.notification_rules import UpdateScope, diff_project
from pmboard.services.notification_service import NotificationService, now_ms
from pmboard.services.priority import SLOTS, is_inactive_status, rebalance_priorities
from pmboard.services.user_service import find_user
from pmboard.store import DocumentStore, get_store, write_lock
from pmboard.utils.identity import clean, is_assigned, normalize

logger = logging.getLogger(__name__)


# ── Constants ────────────────────────────────────────────────────────────────

MODES = ("pm", "mine", "ops")

ALL_PMS = "__ALL__"
NO_PM = "Unassigned"

# Statuses (or PM priorities) that keep an unassigned project out of the
# "needs a PM" counter
ARCHIVE_WORDS = ("completed", "cancelled", "on hold", "abandoned")

REQUIRED_FIELDS = ("projectNumber", "projectName", "status", "pm")


# ── Local coercion ───────────────────────────────────────────────────────────

def _as_int(value):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ── Row indexes ──────────────────────────────────────────────────────────────

def ensure_row_indexes(projects: list[dict], last_assigned: int = 0) -> tuple[int, int]:
    """Give every project without a ``rowIndex`` the next free one.

    New indexes continue from the highest index ever handed out
    (``last_assigned``) or present, so an index is never reused.

    Returns:
        (number of projects fixed, new high-water mark)
    """
    high = _as_int(last_assigned) or 0
    for project in projects:
        current = _as_int(project.get("rowIndex"))
        if current is not None and current > high:
            high = current

    fixed = 0
    for project in projects:
        if clean(project.get("rowIndex")) == "":
            high += 1
            project["rowIndex"] = high
            fixed += 1
            logger.info("Assigned rowIndex %d to project %r", high, project.get("projectName"))
    return fixed, high


def _repair_row_indexes(store: DocumentStore, projects: list[dict], last_assigned=None) -> None:
    """Assign missing row indexes in place; stages ``config`` with the new mark."""
    config = store.get_all("config")
    if not isinstance(config, dict):
        config = {}
    mark = max(_as_int(config.get("lastRowIndex")) or 0, _as_int(last_assigned) or 0)
    fixed, high = ensure_row_indexes(projects, mark)
    if fixed or _as_int(config.get("lastRowIndex")) != high:
        config["lastRowIndex"] = high
        store.set("config", config)
    if fixed:
        store.set("projects", projects)


# ── Card shapes ──────────────────────────────────────────────────────────────

def _build_team(row: dict) -> list[dict]:
    return [
        {
            "slot": slot,
            "name": row.get(f"designer{slot}"),
            "priority": row.get(f"priority{slot}"),
            "notes": row.get(f"notes{slot}"),
            "dateDisplay": "",
        }
        for slot in SLOTS
    ]


def _build_pm_fields(row: dict) -> dict:
    return {
        "priority": row.get("pmPriority"),
        "notes": row.get("pmNotes"),
        "datePriorityDisplay": "",
        "dateNotesDisplay": "",
    }


def _missing_fields(row: dict) -> list[str]:
    missing = []
    for key in REQUIRED_FIELDS:
        value = row.get(key)
        if key == "pm" and not is_assigned(value):
            missing.append(key)
        elif key != "pm" and clean(value) == "":
            missing.append(key)
    return missing


def _base_card(row: dict) -> dict:
    return {
        "rowIndex": row.get("rowIndex"),
        "projectNumber": row.get("projectNumber"),
        "projectName": row.get("projectName"),
        "status": row.get("status"),
        "pmName": row.get("pm"),
        "pm": _build_pm_fields(row),
        "team": _build_team(row),
    }


def _identity_matcher(user: dict):
    name = normalize(user.get("name"))
    email = normalize(user.get("email"))

    def matches(value) -> bool:
        v = normalize(value)
        if not v:
            return False
        return v == name or v == email or (bool(name) and name in v)

    return matches


def _user_slot(project: dict, user: dict) -> int:
    """First slot the user occupies on the project, 0 when none."""
    matches = _identity_matcher(user)
    for slot in SLOTS:
        if matches(project.get(f"designer{slot}")):
            return slot
    return 0


# ── Views ────────────────────────────────────────────────────────────────────

def list_projects(email, mode: str, pm_name=None, *, store: DocumentStore | None = None) -> dict:
    """Role-shaped project list plus the auxiliary lists each view needs."""
    if mode not in MODES:
        raise ValidationError(f"Unknown mode {mode!r}", details={"mode": f"one of {list(MODES)}"})

    store = store or get_store()
    with write_lock:
        users = store.get_all("users")
        user = find_user(users, email)
        if user is None:
            raise NotFoundError(resource="User", resource_id=email)

        projects = store.get_all("projects") or []
        _repair_row_indexes(store, projects)
        store.write()

    if mode == "pm":
        return _pm_view(projects, users, user, pm_name)
    if mode == "mine":
        return _designer_view(projects, users, user)
    return _ops_view(projects, users)


def _pm_view(projects: list[dict], users: list[dict], user: dict, pm_name) -> dict:
    pm_filter = clean(pm_name) or clean(user.get("name"))

    def wanted(p):
        if pm_filter == ALL_PMS:
            return True
        if pm_filter == NO_PM:
            return not is_assigned(p.get("pm"))
        return normalize(pm_filter) in normalize(p.get("pm"))

    cards = []
    for p in projects:
        if not wanted(p):
            continue
        card = _base_card(p)
        card["internalId"] = p.get("internalId")
        card["missing"] = _missing_fields(p)
        card["lastModified"] = p.get("lastModified")
        cards.append(card)

    total_unassigned = 0
    designer_counts: dict[str, int] = {}
    for p in projects:
        status = normalize(p.get("status"))
        if not is_assigned(p.get("pm")):
            pm_priority = normalize(p.get("pmPriority"))
            if not any(w in status or w in pm_priority for w in ARCHIVE_WORDS):
                total_unassigned += 1
        if is_inactive_status(status):
            continue
        for slot in SLOTS:
            designer = normalize(p.get(f"designer{slot}"))
            if is_assigned(designer):
                designer_counts[designer] = designer_counts.get(designer, 0) + 1

    sort_orders = user.get("customSortOrder") if isinstance(user.get("customSortOrder"), dict) else {}

    return {
        "projects": cards,
        "pmList": [ALL_PMS] + sorted({clean(p.get("pm")) for p in projects} - {""}),
        "statusList": sorted({clean(p.get("status")) for p in projects} - {""}),
        "people": users,
        "totalUnassigned": total_unassigned,
        "designerCounts": designer_counts,
        "customSortOrder": sort_orders.get(pm_filter) or [],
    }


def _designer_view(projects: list[dict], users: list[dict], user: dict) -> dict:
    cards = []
    for p in projects:
        slot = _user_slot(p, user)
        if not slot:
            continue
        card = _base_card(p)
        card["my"] = {
            "priority": p.get(f"priority{slot}"),
            "notes": p.get(f"notes{slot}"),
        }
        cards.append(card)
    return {"projects": cards, "people": users}


def _ops_view(projects: list[dict], users: list[dict]) -> dict:
    cards = []
    for p in projects:
        card = _base_card(p)
        card["operational"] = {
            "user": p.get("operational"),
            "notes": p.get("operationalNotes"),
        }
        cards.append(card)
    return {"projects": cards, "people": users}


def raw_snapshot(*, store: DocumentStore | None = None) -> dict:
    """Every collection, as the data editor expects it."""
    store = store or get_store()
    return store.snapshot()


# ── Single update ────────────────────────────────────────────────────────────

def _modification_stamp(actor_name: str) -> dict:
    now = datetime.now()
    display = f"{now.month}/{now.day}/{now.year}"
    return {"dateMs": now_ms(), "by": actor_name, "dateDisplay": display, "display": display}


def _apply_pm_changes(project: dict, payload: dict) -> None:
    if "pmPriority" in payload:
        project["pmPriority"] = payload["pmPriority"]
    if "pmNotes" in payload:
        project["pmNotes"] = payload["pmNotes"]
    if "pmName" in payload:
        project["pm"] = payload["pmName"]
    if "status" in payload:
        project["status"] = payload["status"]
    for slot in SLOTS:
        key = f"designer{slot}"
        if key in payload:
            # A new designer starts unranked with empty notes
            if project.get(key) != payload[key]:
                project[f"priority{slot}"] = "-"
                project[f"notes{slot}"] = ""
            project[key] = payload[key]
    for slot in SLOTS:
        key = f"designer{slot}Priority"
        if key in payload:
            project[f"priority{slot}"] = payload[key]


def _apply_designer_changes(project: dict, payload: dict, user: dict) -> None:
    slot = _user_slot(project, user)
    if not slot:
        raise ValidationError(
            "User is not assigned to this project",
            details={"rowIndex": project.get("rowIndex"), "email": user.get("email")},
        )
    if "priority" in payload:
        project[f"priority{slot}"] = payload["priority"]
    if "notes" in payload:
        project[f"notes{slot}"] = payload["notes"]


def _apply_ops_changes(project: dict, payload: dict) -> None:
    if "pmName" in payload:
        project["pm"] = payload["pmName"]
    if "operational" in payload:
        project["operational"] = payload["operational"]
    if "operationalNotes" in payload:
        project["operationalNotes"] = payload["operationalNotes"]
    for slot in SLOTS:
        key = f"designer{slot}"
        if key in payload:
            project[key] = payload[key]


def update_project(email, mode: str, payload: dict, *, store: DocumentStore | None = None) -> dict:
    """Apply one role-scoped edit to the project at ``payload["rowIndex"]``.

    Args:
        email: Identity of the caller.
        mode: ``pm``, ``mine`` (designer) or ``ops``.
        payload: Field changes; ``rowIndex`` selects the project,
            ``realActorEmail`` overrides who is credited with the change,
            ``skipNotifications`` saves without notifying anyone.

    Raises:
        NotFoundError: unknown rowIndex, or unknown user in ``mine`` mode.
        ValidationError: unknown mode, or a designer editing a card they
            are not on.
    """
    if mode not in MODES:
        raise ValidationError(f"Unknown mode {mode!r}", details={"mode": f"one of {list(MODES)}"})

    store = store or get_store()
    row_key = clean(payload.get("rowIndex"))

    with write_lock:
        projects = store.get_all("projects") or []
        position = next(
            (i for i, p in enumerate(projects) if row_key and clean(p.get("rowIndex")) == row_key),
            None,
        )
        if position is None:
            logger.warning("Update for unknown project rowIndex=%r", payload.get("rowIndex"))
            raise NotFoundError(resource="Project", resource_id=payload.get("rowIndex"))

        users = store.get_all("users")
        actor_email = payload.get("realActorEmail") or email
        actor = find_user(users, actor_email)
        actor_name = clean(actor.get("name")) if actor else ""
        actor_name = actor_name or clean(actor_email) or "Unknown"

        old = projects[position]
        new = copy.deepcopy(old)
        new["lastModified"] = _modification_stamp(actor_name)

        if mode == "pm":
            _apply_pm_changes(new, payload)
        elif mode == "mine":
            user = find_user(users, email)
            if user is None:
                raise NotFoundError(resource="User", resource_id=email)
            _apply_designer_changes(new, payload, user)
        else:
            _apply_ops_changes(new, payload)

        survivors = []
        if not payload.get("skipNotifications"):
            candidates = diff_project(old, new, actor_name, UpdateScope(mode))
            survivors = filter_candidates(candidates, actor_name)
            logger.debug("Update rowIndex=%s by %s: %d candidate(s), %d kept",
                         row_key, actor_name, len(candidates), len(survivors))

        projects[position] = new
        store.set("projects", projects)
        NotificationService.record(store, survivors)
        store.write()

    logger.info("Project rowIndex=%s updated by %s (mode=%s)", row_key, actor_name, mode)
    return {
        "ok": True,
        "savedAtDisplay": datetime.now().strftime("%I:%M:%S %p").lstrip("0"),
        "notifsGenerated": len(survivors),
    }


# ── Bulk replace ─────────────────────────────────────────────────────────────

def _match_key(project: dict) -> str | None:
    """Stable key pairing a submitted project with its stored version."""
    internal_id = clean(project.get("internalId"))
    if internal_id:
        return f"internal:{internal_id}"
    record_id = clean(project.get("id"))
    if record_id:
        return f"id:{record_id}"
    row_index = clean(project.get("rowIndex"))
    if row_index:
        return f"row:{row_index}"
    return None


def _editor_of(project: dict) -> str:
    stamp = project.get("lastModified")
    if isinstance(stamp, dict):
        return clean(stamp.get("by")) or "System"
    return "System"


def replace_raw_data(data: dict, *, store: DocumentStore | None = None) -> dict:
    """Replace every project (and any other submitted collection).

    The notification log is never taken from the payload: the stored log is
    kept and the notifications generated by this save are appended to it.

    Raises:
        ValidationError: ``projects`` missing or not a list of objects.
    """
    submitted = data.get("projects") if isinstance(data, dict) else None
    if not isinstance(submitted, list):
        raise ValidationError("Invalid DB structure", details={"projects": "a list is required"})
    if not all(isinstance(p, dict) for p in submitted):
        raise ValidationError("Invalid DB structure", details={"projects": "every entry must be an object"})

    store = store or get_store()
    new_projects = copy.deepcopy(submitted)

    with write_lock:
        old_by_key = {}
        for p in store.get_all("projects") or []:
            key = _match_key(p)
            if key and key not in old_by_key:
                old_by_key[key] = p

        batch = []
        compared = 0
        for np in new_projects:
            key = _match_key(np)
            op = old_by_key.get(key) if key else None
            if op is None:
                continue
            compared += 1
            editor = _editor_of(np)
            batch.extend(drop_self_targeted(diff_project(op, np, editor, UpdateScope.BULK), editor))
        survivors = drop_superseded(batch)

        rebalanced = rebalance_priorities(new_projects)

        previous_mark = (store.get_all("config") or {}).get("lastRowIndex")
        for name in data:
            if name in ("projects", "notifications"):
                continue
            if name not in COLLECTIONS:
                logger.warning("Ignoring unknown collection %r in raw data", name)
                continue
            store.set(name, data[name])

        _repair_row_indexes(store, rebalanced, previous_mark)
        store.set("projects", rebalanced)
        NotificationService.record(store, survivors)
        store.write()

    logger.info("Raw data saved: %d projects (%d compared), %d notification(s)",
                len(rebalanced), compared, len(survivors))
    return {"success": True, "count": len(rebalanced), "notifsGenerated": len(survivors)}


def seed(data: dict, *, store: DocumentStore | None = None) -> dict:
    """Load an imported document (projects, users, colors, config).

    The notification log is left untouched. Returns per-collection counts.
    """
    store = store or get_store()
    counts = {}
    with write_lock:
        for name in COLLECTIONS:
            if name == "notifications" or name not in data:
                continue
            store.set(name, data[name])
            counts[name] = len(data[name]) if hasattr(data[name], "__len__") else 1
        _repair_row_indexes(store, store.get_all("projects") or [])
        store.write()
    return counts
