"""
PM Board
Document store.

Every collection (projects, users, colors, config, notifications) is one JSON
document, read and written whole. Services talk to the store only through
``get_all`` / ``find`` / ``set`` / ``write``; the diff engine and rebalancer
never see it and work on the plain records it hands out.

Usage:
    store = get_store()
    projects = store.get_all("projects")
    store.set("projects", projects)
    store.write()
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from pmboard.models import db
from pmboard.models.document import COLLECTION_DEFAULTS, COLLECTIONS, Document

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Key-value document store with whole-document reads and writes."""

    @abstractmethod
    def get_all(self, collection: str) -> Any:
        """Return a private copy of the collection (list or dict)."""

    @abstractmethod
    def set(self, collection: str, records: Any) -> None:
        """Stage a full replacement of the collection until ``write()``."""

    @abstractmethod
    def write(self) -> None:
        """Flush every staged collection in one step."""

    @abstractmethod
    def collections(self) -> list[str]:
        """Names of every collection the store knows about."""

    def find(self, collection: str, predicate: Callable[[dict], bool]) -> dict | None:
        """Return the first record of a list collection matching ``predicate``."""
        for record in self.get_all(collection) or []:
            if predicate(record):
                return record
        return None

    def snapshot(self) -> dict[str, Any]:
        """Every collection keyed by name."""
        return {name: self.get_all(name) for name in self.collections()}


class SQLDocumentStore(DocumentStore):
    """Document store backed by the ``documents`` table."""

    def __init__(self, session=None):
        self.session = session or db.session
        self._staged: dict[str, Any] = {}

    def _load(self, collection: str) -> Any:
        if collection in self._staged:
            return self._staged[collection]
        doc = self.session.get(Document, collection)
        if doc is not None and doc.data is not None:
            return doc.data
        factory = COLLECTION_DEFAULTS.get(collection, list)
        return factory()

    def get_all(self, collection: str) -> Any:
        return copy.deepcopy(self._load(collection))

    def set(self, collection: str, records: Any) -> None:
        self._staged[collection] = copy.deepcopy(records)

    def collections(self) -> list[str]:
        names = list(COLLECTIONS)
        stored = self.session.query(Document.collection).all()
        for (name,) in stored:
            if name not in names:
                names.append(name)
        for name in self._staged:
            if name not in names:
                names.append(name)
        return names

    def write(self) -> None:
        if not self._staged:
            return
        try:
            for collection, records in self._staged.items():
                doc = self.session.get(Document, collection)
                if doc is None:
                    doc = Document(collection=collection, data=records)
                    self.session.add(doc)
                else:
                    doc.data = records
            self.session.commit()
        except SQLAlchemyError:
            logger.exception("Document store write failed for %s", sorted(self._staged))
            self.session.rollback()
            raise
        logger.debug("Document store wrote %s", sorted(self._staged))
        self._staged.clear()

    def discard(self) -> None:
        """Drop staged changes without writing them."""
        self._staged.clear()


def get_store() -> SQLDocumentStore:
    """Return a store bound to the current app's database session."""
    return SQLDocumentStore(db.session)


# Single-writer lock: every read-modify-write of the store runs under it.
write_lock = threading.RLock()
