from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from dm_service.infrastructure.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


async def _check_postgres() -> str:
    async with AsyncSessionLocal() as session:
        await session.execute(text("SELECT 1"))
    return "ok"


async def _check_redis(request: Request) -> str:
    await request.app.state.redis.ping()
    return "ok"


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    """Report each dependency separately; 503 if any of them is down."""
    checks: dict[str, str] = {}
    ready = True

    for name, check in (("postgres", _check_postgres()), ("redis", _check_redis(request))):
        try:
            checks[name] = await check
        except Exception as exc:  # noqa: BLE001
            logger.warning("Readiness check %s failed: %s", name, exc)
            checks[name] = f"error: {exc}"
            ready = False

    # Only present when this instance runs the background workers
    consumer = getattr(request.app.state, "consumer", None)
    if consumer is not None:
        checks["delivery_consumer"] = "running" if consumer.running else "stopped"
        ready = ready and consumer.running

    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "unavailable", "checks": checks},
    )
