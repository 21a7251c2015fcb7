from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_push(
    origin: str,
    event: str,
    data: dict[str, Any],
    *,
    target: int | None = None,
    exclude: int | None = None,
) -> str:
    envelope = {
        "origin": origin,
        "event": event,
        "target": target,
        "exclude": exclude,
        "data": data,
    }
    return json.dumps(envelope, cls=_Encoder)


def deserialize_push(raw: str | bytes) -> dict[str, Any]:
    envelope = json.loads(raw)
    for key in ("origin", "event", "data"):
        if key not in envelope:
            raise ValueError(f"push envelope missing {key!r}")
    return envelope
