"""
PM Board
Notification rules: derive notifications from an old/new project snapshot.

``diff_project(old, new, editor_name, scope)`` is a pure function: the same
inputs always give the same ordered list of candidates, and nothing is read
from or written to the store. Ids, timestamps and read tracking are added
later by ``notification_service.record``.

Rules run in a fixed order and are not mutually exclusive:
    1. Assignment added / removed / replaced   (per slot, + Team Update)
    2. PM notes changed
    3. Priority changed in or out of the top 3 (per slot)
    4. Project manager reassigned
    5. Status moved into a celebration state    (COMPLETED_MODAL)

Which rules apply depends on the ``UpdateScope`` of the save (see _RULES).
A designer editing only their own notes never produces a notification.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from markupsafe import escape

from pmboard.services.priority import SLOTS, is_top3
from pmboard.utils.identity import clean, dedupe, is_assigned, normalize


# ── Constants ────────────────────────────────────────────────────────────────

TARGET_PM = "PM"
TARGET_DESIGNER = "DESIGNER"
TARGET_ANY = "ANY"

COMPLETED_MODAL = "COMPLETED_MODAL"

CELEBRATION_STATUSES = frozenset({
    "completed - sent to client",
    "approved - construction phase",
})

NOTE_PREVIEW_CHARS = 60


class UpdateScope(str, enum.Enum):
    """Where a save came from; selects the rule set."""

    PM = "pm"
    DESIGNER = "mine"
    OPS = "ops"
    BULK = "bulk"


@dataclass(frozen=True)
class NotificationCandidate:
    """A notification before it is written to the log."""

    target_role: str
    target_name: str
    title: str
    body: str
    project_number: str = ""
    type: str | None = None
    team: tuple[str, ...] | None = None
    project_name: str | None = None
    status: str | None = None
    hide_view_button: bool = False

    @property
    def is_celebration(self) -> bool:
        return self.type == COMPLETED_MODAL

    def to_dict(self) -> dict:
        data = {
            "targetRole": self.target_role,
            "targetName": self.target_name,
            "title": self.title,
            "body": self.body,
            "projectNumber": self.project_number,
        }
        if self.hide_view_button:
            data["hideViewButton"] = True
        if self.type is not None:
            data["type"] = self.type
        if self.team is not None:
            data["team"] = list(self.team)
        if self.project_name is not None:
            data["projectName"] = self.project_name
        if self.status is not None:
            data["status"] = self.status
        return data


# ── Body rendering ───────────────────────────────────────────────────────────

_USER_STYLE = ("color:#fff;background:rgba(0,0,0,0.2);padding:2px 6px;"
               "border-radius:3px;font-size:12px;display:inline-block;")
_PROJECT_STYLE = ("color:#fff;background:rgba(59,130,246,0.5);padding:2px 6px;"
                  "border-radius:3px;font-size:12px;display:inline-block;")
_OLD_RANK_STYLE = ("background:#f59e0b;color:#000;padding:2px 5px;border-radius:3px;"
                   "font-size:11px;font-weight:600;margin:0 2px;display:inline-block;")
_NEW_RANK_STYLE = ("background:#10b981;color:#fff;padding:2px 5px;border-radius:3px;"
                   "font-size:11px;font-weight:600;margin:0 2px;display:inline-block;")


def _hl_user(name) -> str:
    return f'<strong style="{_USER_STYLE}">{escape(clean(name))}</strong>'


def _hl_project(name) -> str:
    return f'<strong style="{_PROJECT_STYLE}">{escape(clean(name))}</strong>'


def _rank_change(old_p: str, new_p: str) -> str:
    return (f'Priority: <span style="{_OLD_RANK_STYLE}">{escape(old_p or "None")}</span>'
            f' → <span style="{_NEW_RANK_STYLE}">{escape(new_p or "None")}</span>')


def _note_preview(notes: str) -> str:
    if len(notes) > NOTE_PREVIEW_CHARS:
        return notes[:NOTE_PREVIEW_CHARS] + "..."
    return notes


def _text(record: dict, key: str) -> str:
    value = record.get(key)
    return "" if value is None else str(value)


def _assigned_designers(record: dict) -> list[str]:
    names = [normalize(record.get(f"designer{slot}")) for slot in SLOTS]
    return dedupe(n for n in names if is_assigned(n))


def _pm_key(value) -> str:
    return normalize(value) if is_assigned(value) else ""


# ── Rules ────────────────────────────────────────────────────────────────────

def _assignment_changes(old: dict, new: dict, editor: str, scope: UpdateScope) -> list:
    out = []
    project = _hl_project(new.get("projectName"))
    number = _text(new, "projectNumber")

    for slot in SLOTS:
        old_d = normalize(old.get(f"designer{slot}"))
        new_d = normalize(new.get(f"designer{slot}"))
        was, now = is_assigned(old_d), is_assigned(new_d)

        if not was and now:
            out.append(NotificationCandidate(
                target_role=TARGET_DESIGNER,
                target_name=new_d,
                title="New Assignment",
                body=(f"You have been assigned to {project} (Slot {slot}) by "
                      f"{_hl_user(editor)}. Please prioritize this project."),
                project_number=number,
            ))
        elif was and not now:
            out.append(NotificationCandidate(
                target_role=TARGET_DESIGNER,
                target_name=old_d,
                title="Assignment Removed",
                body=f"You have been removed from {project} (Slot {slot}) by {_hl_user(editor)}.",
                project_number=number,
                hide_view_button=True,
            ))
        elif was and now and old_d != new_d:
            out.append(NotificationCandidate(
                target_role=TARGET_DESIGNER,
                target_name=old_d,
                title="Assignment Changed",
                body=f"You have been replaced on {project} by {_hl_user(new_d)}.",
                project_number=number,
                hide_view_button=True,
            ))
            out.append(NotificationCandidate(
                target_role=TARGET_DESIGNER,
                target_name=new_d,
                title="New Assignment",
                body=(f"You have been assigned to replace {_hl_user(old_d)} on {project}. "
                      "Please prioritize this project."),
                project_number=number,
            ))
            mates = []
            for mate_slot in SLOTS:
                if mate_slot == slot:
                    continue
                mate = normalize(new.get(f"designer{mate_slot}"))
                if is_assigned(mate) and is_top3(new.get(f"priority{mate_slot}")):
                    mates.append(mate)
            for mate in dedupe(mates):
                out.append(NotificationCandidate(
                    target_role=TARGET_DESIGNER,
                    target_name=mate,
                    title="Team Update",
                    body=f"{_hl_user(old_d)} was replaced by {_hl_user(new_d)} on {project}",
                    project_number=number,
                ))
    return out


def _pm_notes_changes(old: dict, new: dict, editor: str, scope: UpdateScope) -> list:
    if _text(old, "pmNotes") == _text(new, "pmNotes"):
        return []
    preview = escape(_note_preview(_text(new, "pmNotes")))
    body = f'{_hl_project(new.get("projectName"))}<br>PM updated notes: "{preview}"'
    return [
        NotificationCandidate(
            target_role=TARGET_DESIGNER,
            target_name=designer,
            title="PM Note Update",
            body=body,
            project_number=_text(new, "projectNumber"),
        )
        for designer in _assigned_designers(new)
    ]


def _priority_changes(old: dict, new: dict, editor: str, scope: UpdateScope) -> list:
    out = []
    project = _hl_project(new.get("projectName"))
    number = _text(new, "projectNumber")
    tell_pm = scope in _PM_HEARS_PRIORITY and is_assigned(new.get("pm"))

    for slot in SLOTS:
        old_p = clean(old.get(f"priority{slot}"))
        new_p = clean(new.get(f"priority{slot}"))
        if old_p == new_p or not (is_top3(old_p) or is_top3(new_p)):
            continue

        designer = normalize(new.get(f"designer{slot}"))
        change = _rank_change(old_p, new_p)

        if is_assigned(designer) and designer == normalize(old.get(f"designer{slot}")):
            out.append(NotificationCandidate(
                target_role=TARGET_DESIGNER,
                target_name=designer,
                title="Priority Changed by PM",
                body=f"{project}<br>{change}<br>Changed by {_hl_user(editor)}",
                project_number=number,
            ))

        on_behalf = ""
        if is_assigned(designer) and normalize(editor) != designer:
            on_behalf = f" for {_hl_user(designer)}"
        others = []
        for other_slot in SLOTS:
            if other_slot == slot:
                continue
            other = normalize(new.get(f"designer{other_slot}"))
            if is_assigned(other) and is_top3(new.get(f"priority{other_slot}")):
                others.append(other)
        for other in dedupe(others):
            out.append(NotificationCandidate(
                target_role=TARGET_DESIGNER,
                target_name=other,
                title="Shared Project Update",
                body=(f"{_hl_user(editor)} changed priority on {project}{on_behalf}<br>{change}"
                      "<br>This project is also in your Top 3"),
                project_number=number,
            ))

        if tell_pm:
            out.append(NotificationCandidate(
                target_role=TARGET_PM,
                target_name=normalize(new.get("pm")),
                title="Designer Priority Change",
                body=(f"{_hl_user(designer or 'A designer')} changed priority on "
                      f"{project} (Slot {slot})<br>{change}"),
                project_number=number,
            ))
    return out


def _pm_reassignment(old: dict, new: dict, editor: str, scope: UpdateScope) -> list:
    if _pm_key(old.get("pm")) == _pm_key(new.get("pm")):
        return []
    project = _hl_project(new.get("projectName"))
    old_pm = clean(old.get("pm")) if is_assigned(old.get("pm")) else ""
    new_pm = clean(new.get("pm")) if is_assigned(new.get("pm")) else ""
    if not old_pm:
        message = f"{project}<br>PM assigned: {_hl_user(new_pm)}"
    elif not new_pm:
        message = f"{project}<br>PM removed: {_hl_user(old_pm)}"
    else:
        message = f"{project}<br>PM changed: {_hl_user(old_pm)} → {_hl_user(new_pm)}"
    return [
        NotificationCandidate(
            target_role=TARGET_DESIGNER,
            target_name=designer,
            title="PM Assignment Update",
            body=message,
            project_number=_text(new, "projectNumber"),
        )
        for designer in _assigned_designers(new)
    ]


def _completion(old: dict, new: dict, editor: str, scope: UpdateScope) -> list:
    new_status = normalize(new.get("status"))
    if normalize(old.get("status")) == new_status or new_status not in CELEBRATION_STATUSES:
        return []

    members = _assigned_designers(new)
    if is_assigned(new.get("pm")):
        members.append(normalize(new.get("pm")))
    team = tuple(dedupe(members))

    status = _text(new, "status")
    body = f"{_hl_project(new.get('projectName'))}<br>Status changed to: <strong>{escape(status)}</strong>"
    return [
        NotificationCandidate(
            target_role=TARGET_ANY,
            target_name=member,
            title="Project Celebration! 🎉",
            body=body,
            project_number=_text(new, "projectNumber"),
            type=COMPLETED_MODAL,
            team=team,
            project_name=_text(new, "projectName"),
            status=status,
        )
        for member in team
    ]


# ── Rule table ───────────────────────────────────────────────────────────────

# (rule, scopes it runs in); output follows this order
_RULES = (
    (_assignment_changes, frozenset({UpdateScope.PM, UpdateScope.OPS, UpdateScope.BULK})),
    (_pm_notes_changes, frozenset({UpdateScope.PM, UpdateScope.BULK})),
    (_priority_changes, frozenset({UpdateScope.PM, UpdateScope.DESIGNER, UpdateScope.BULK})),
    (_pm_reassignment, frozenset({UpdateScope.PM, UpdateScope.OPS, UpdateScope.BULK})),
    (_completion, frozenset({UpdateScope.PM, UpdateScope.BULK})),
)

# Scopes where the project manager hears about slot priority moves
_PM_HEARS_PRIORITY = frozenset({UpdateScope.DESIGNER, UpdateScope.BULK})


def diff_project(old: dict | None, new: dict | None, editor_name,
                 scope: UpdateScope = UpdateScope.PM) -> list[NotificationCandidate]:
    """Return the notifications implied by going from ``old`` to ``new``.

    Args:
        old: Project record before the save (missing fields read as empty).
        new: Project record after the save.
        editor_name: Display name of whoever saved; used in message bodies.
        scope: Which save path produced the change.

    Returns:
        Candidates in rule order, slot order 1→2→3 inside a rule.
    """
    old = old or {}
    new = new or {}
    editor = clean(editor_name) or "System"
    scope = UpdateScope(scope)

    candidates: list[NotificationCandidate] = []
    for rule, scopes in _RULES:
        if scope in scopes:
            candidates.extend(rule(old, new, editor, scope))
    return candidates
