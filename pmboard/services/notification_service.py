"""
PM Board
Notification Service.

Owns the append-only notification log (the ``notifications`` collection):
    - record:       turn filtered candidates into log entries
    - list_unread:  what a polling client still has to show
    - acknowledge:  mark one entry read for one identity

Entries are never deleted; ``readBy`` only grows.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Iterable

from pmboard.services.notification_rules import (
    TARGET_ANY,
    TARGET_DESIGNER,
    TARGET_PM,
    NotificationCandidate,
)
from pmboard.store import DocumentStore, get_store, write_lock
from pmboard.utils.identity import normalize

logger = logging.getLogger(__name__)

COLLECTION = "notifications"


def now_ms() -> int:
    return int(time.time() * 1000)


def new_notification_id() -> str:
    return uuid.uuid4().hex


class NotificationService:
    """Stateless service class for notification log operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def record(store: DocumentStore, candidates: Iterable[NotificationCandidate],
               *, created_at: int | None = None) -> list[dict]:
        """
        Append candidates to the log (staged; caller writes the store).

        All entries of one batch share ``createdAt``.

        Returns:
            The new log entries.
        """
        candidates = list(candidates)
        if not candidates:
            return []

        created_at = created_at if created_at is not None else now_ms()
        entries = []
        for candidate in candidates:
            entry = {"id": new_notification_id(), "createdAt": created_at, "readBy": []}
            entry.update(candidate.to_dict())
            entries.append(entry)
            logger.debug("Notification %r -> %s (%s) project=%s",
                         candidate.title, candidate.target_name,
                         candidate.target_role, candidate.project_number)

        log = store.get_all(COLLECTION) or []
        log.extend(entries)
        store.set(COLLECTION, log)
        logger.info("Queued %d notification(s); log size %d", len(entries), len(log))
        return entries

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_unread(*, email="", name="", store: DocumentStore | None = None) -> list[dict]:
        """
        Notifications addressed to ``email``/``name`` that neither has read,
        newest first.
        """
        store = store or get_store()
        identities = {i for i in (normalize(email), normalize(name)) if i}
        if not identities:
            return []

        mine = []
        for entry in store.get_all(COLLECTION) or []:
            if not _is_addressed_to(entry, identities):
                continue
            read_by = {normalize(r) for r in entry.get("readBy") or []}
            if read_by & identities:
                continue
            mine.append(entry)

        mine.sort(key=lambda e: _as_ms(e.get("createdAt")), reverse=True)
        return mine

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def acknowledge(notification_id, email, *, store: DocumentStore | None = None) -> bool:
        """Add ``email`` to the entry's ``readBy``. Unknown ids are a no-op."""
        store = store or get_store()
        identity = normalize(email)
        wanted = str(notification_id)

        with write_lock:
            log = store.get_all(COLLECTION) or []
            entry = next((e for e in log if str(e.get("id")) == wanted), None)
            if entry is None:
                logger.debug("Acknowledge for unknown notification id=%s", wanted)
                return True

            read_by = entry.setdefault("readBy", [])
            if identity and identity not in {normalize(r) for r in read_by}:
                read_by.append(identity)
                store.set(COLLECTION, log)
                store.write()
        return True


def _is_addressed_to(entry: dict, identities: set[str]) -> bool:
    target = normalize(entry.get("targetName"))
    role = entry.get("targetRole")
    if role == TARGET_ANY:
        return not target or target in identities
    if role in (TARGET_PM, TARGET_DESIGNER):
        return target in identities
    return False


def _as_ms(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
