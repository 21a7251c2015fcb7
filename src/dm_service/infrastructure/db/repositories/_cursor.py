"""Keyset cursors for message history pages.

A cursor names the last message of a page:
urlsafe base64 of "<iso created_at>|<message id>", padding stripped.
"""
from __future__ import annotations

import base64
from datetime import datetime
from uuid import UUID

from dm_service.application.exceptions import ValidationError


def encode_cursor(created_at: datetime, message_id: UUID) -> str:
    raw = f"{created_at.isoformat()}|{message_id}"
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    padded = cursor + "=" * ((4 - len(cursor) % 4) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode()).decode()
        ts_str, id_str = raw.split("|", 1)
        return datetime.fromisoformat(ts_str), UUID(id_str)
    except ValueError:
        raise ValidationError("Invalid cursor") from None
