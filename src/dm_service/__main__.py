"""Entrypoint: python -m dm_service"""
from __future__ import annotations

import uvicorn

from dm_service.config import settings
from dm_service.logging_config import configure_logging


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    # log_config=None keeps uvicorn on the root handler and its correlation-id format
    uvicorn.run(
        "dm_service.app:create_app",
        factory=True,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
