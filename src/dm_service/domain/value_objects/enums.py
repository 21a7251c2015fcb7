from __future__ import annotations

from enum import StrEnum


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class ConversationType(StrEnum):
    DIRECT = "direct"


class AutoMessageKind(StrEnum):
    AUTO = "auto"
    SCHEDULED = "scheduled"
    TEST = "test"


class AutoMessageState(StrEnum):
    DRAFTED = "drafted"
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"
