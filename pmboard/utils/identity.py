"""Identity and free-text normalization shared by every matching rule.

normalize:      lowercase + trim, ``None`` becomes ``""``
is_assigned:    a slot/PM value that names someone (not blank, not "Unassigned")
same_identity:  normalized equality of two identity strings
dedupe:         order-preserving de-duplication

The diff engine, the notification filter and the delivery API all compare
names through these helpers, so a name typed "  Alice " on one card and
"alice" on another always refers to the same person.
"""

from __future__ import annotations

from typing import Iterable

UNASSIGNED = "unassigned"


def normalize(value) -> str:
    """Lowercase, trimmed string form of any field value."""
    if value is None:
        return ""
    return str(value).strip().lower()


def clean(value) -> str:
    """Trimmed string form, case preserved."""
    if value is None:
        return ""
    return str(value).strip()


def is_assigned(value) -> bool:
    name = normalize(value)
    return bool(name) and name != UNASSIGNED


def same_identity(a, b) -> bool:
    return normalize(a) == normalize(b)


def dedupe(values: Iterable[str]) -> list[str]:
    seen = set()
    out = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out
