"""Identifier helpers shared by repositories."""

from __future__ import annotations

import uuid


def as_uuid(value: str) -> uuid.UUID | None:
    """Parse a UUID string; malformed ids simply match no row."""
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        return None
