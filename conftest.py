"""Root conftest: test settings must be in the environment before dm_service.config is imported."""
from __future__ import annotations

import os
from pathlib import Path

ENV_FILE = Path(__file__).resolve().parent / ".env.test"


def _read_env_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    for raw in path.read_text().splitlines():
        entry = raw.strip()
        if entry and not entry.startswith("#") and "=" in entry:
            key, value = entry.split("=", 1)
            values[key.strip()] = value.strip()
    return values


if ENV_FILE.exists():
    for key, value in _read_env_file(ENV_FILE).items():
        os.environ.setdefault(key, value)
