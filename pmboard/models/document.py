"""
PM Board
Document model.

Models:
    - Document: one row per collection, holding the whole collection as JSON.
"""

from datetime import datetime, timezone

from pmboard.models import db


# ── Constants ────────────────────────────────────────────────────────────────

COLLECTIONS = ("projects", "users", "colors", "config", "notifications")

# Empty value returned for a collection that has never been written
COLLECTION_DEFAULTS = {
    "projects": list,
    "users": list,
    "colors": dict,
    "config": dict,
    "notifications": list,
}


class Document(db.Model):
    """
    Whole-collection JSON document.

    The row is always read and rewritten in full; there is no partial update.
    """

    __tablename__ = "documents"

    collection = db.Column(db.String(64), primary_key=True)
    data = db.Column(db.JSON, nullable=False, default=list)
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Document {self.collection}>"
