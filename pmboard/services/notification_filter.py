"""
PM Board
Post-processing of a batch of notification candidates.

Two passes, always in this order:
    1. drop_self_targeted: the person who saved is never notified.
    2. drop_superseded: when someone gets a celebration for a project,
                        every other notification to them about that
                        project in the same batch is dropped.
"""

from __future__ import annotations

from typing import Iterable

from pmboard.services.notification_rules import NotificationCandidate
from pmboard.utils.identity import normalize, same_identity


def drop_self_targeted(candidates: Iterable[NotificationCandidate], actor) -> list[NotificationCandidate]:
    if not normalize(actor):
        return list(candidates)
    return [c for c in candidates if not same_identity(c.target_name, actor)]


def drop_superseded(candidates: Iterable[NotificationCandidate]) -> list[NotificationCandidate]:
    candidates = list(candidates)
    covered = {
        (normalize(c.target_name), c.project_number)
        for c in candidates
        if c.is_celebration
    }
    if not covered:
        return candidates
    return [
        c for c in candidates
        if c.is_celebration or (normalize(c.target_name), c.project_number) not in covered
    ]


def filter_candidates(candidates: Iterable[NotificationCandidate], actor) -> list[NotificationCandidate]:
    """Apply self-suppression, then celebration supersession, to one save's batch."""
    return drop_superseded(drop_self_targeted(candidates, actor))
