"""
PM Board
Priority ranks and the per-designer rebalancer.

Priorities are stored as strings on the project record (``priority1`` ..
``priority3``). ``PriorityRank.parse`` turns one into a tagged value at the
boundary; the raw string is kept so records round-trip unchanged.

The rebalancer runs on every bulk save:
    1. Projects in an inactive status lose all three priorities.
    2. For every designer, the positive-integer ranks they hold across all
       active projects and slots are rewritten as a dense 1..N sequence.
Blank, "-", zero and non-numeric values are left exactly as they were.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass

from pmboard.utils.identity import clean, is_assigned, normalize

logger = logging.getLogger(__name__)


# ── Constants ────────────────────────────────────────────────────────────────

SLOTS = (1, 2, 3)
TOP3 = frozenset({"1", "2", "3"})

INACTIVE_STATUSES = (
    "Abandoned",
    "Expired",
    "Approved - Construction Phase",
    "Completed - Sent to Client",
    "Paused - Stalled by 3rd Party",
    "Do Not Click - Final Submit for Approval",
)
_INACTIVE_NORMALIZED = tuple(normalize(s) for s in INACTIVE_STATUSES)


@dataclass(frozen=True)
class PriorityRank:
    """Parsed priority value: ``rank`` is None when the slot is unranked."""

    raw: str
    rank: int | None = None

    @classmethod
    def parse(cls, value) -> "PriorityRank":
        raw = clean(value)
        # ASCII digits only; "²" or "①" pass isdigit() but not int()
        if raw.isascii() and raw.isdecimal() and int(raw) > 0:
            return cls(raw=raw, rank=int(raw))
        return cls(raw=raw)

    @property
    def is_ranked(self) -> bool:
        return self.rank is not None

    @property
    def is_top3(self) -> bool:
        # Literal "1"/"2"/"3" only; "01" is ranked but not top-3.
        return self.raw in TOP3


def is_top3(value) -> bool:
    return clean(value) in TOP3


def is_inactive_status(status) -> bool:
    """True when the status contains (or equals) one of the archival statuses."""
    s = normalize(status)
    if not s:
        return False
    return any(s == inactive or inactive in s for inactive in _INACTIVE_NORMALIZED)


# ── Rebalancer ───────────────────────────────────────────────────────────────

def rebalance_priorities(projects: list[dict]) -> list[dict]:
    """Return copies of ``projects`` with inactive priorities cleared and
    every designer's ranks compacted to 1..N.

    Entries are grouped by normalized designer name across all active
    projects and slots. Within a group, ties keep project order then slot
    order.
    """
    rebalanced = [copy.deepcopy(p) for p in projects]

    cleared = 0
    groups: dict[str, list[tuple[dict, str]]] = {}
    for project in rebalanced:
        if is_inactive_status(project.get("status")):
            for slot in SLOTS:
                project[f"priority{slot}"] = ""
            cleared += 1
            continue
        for slot in SLOTS:
            designer = project.get(f"designer{slot}")
            if not is_assigned(designer):
                continue
            groups.setdefault(normalize(designer), []).append((project, f"priority{slot}"))

    renumbered = 0
    for entries in groups.values():
        ranked = []
        for project, key in entries:
            parsed = PriorityRank.parse(project.get(key))
            if parsed.is_ranked:
                ranked.append((parsed.rank, project, key))
        ranked.sort(key=lambda item: item[0])
        for position, (rank, project, key) in enumerate(ranked, start=1):
            if rank != position or project.get(key) != str(position):
                renumbered += 1
            project[key] = str(position)

    logger.debug("Rebalanced priorities: %d inactive cleared, %d ranks rewritten, %d designers",
                 cleared, renumbered, len(groups))
    return rebalanced
