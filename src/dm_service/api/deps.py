"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from dm_service.application.dto.principal import Principal
from dm_service.application.exceptions import AuthenticationError
from dm_service.application.policies.permissions import assert_admin
from dm_service.application.ports.auth import TokenVerifier
from dm_service.application.uow import UnitOfWork, UoWFactory
from dm_service.config import settings
from dm_service.infrastructure.auth.hs256_verifier import HS256Verifier
from dm_service.infrastructure.auth.jwks_verifier import JWKSVerifier
from dm_service.infrastructure.db.uow import uow_scope
from dm_service.services.presence_service import PresenceRegistry
from dm_service.workers.scheduler import Scheduler

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_uow() -> AsyncIterator[UnitOfWork]:
    async with uow_scope() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def get_uow_factory() -> UoWFactory:
    """Session-per-operation factory for long-lived handlers such as WebSockets."""
    return uow_scope


UoWFactoryDep = Annotated[UoWFactory, Depends(get_uow_factory)]


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
) -> Principal:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
        )
    try:
        return await verifier.verify(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail,
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def get_current_admin(principal: CurrentPrincipal) -> Principal:
    assert_admin(principal)
    return principal


CurrentAdmin = Annotated[Principal, Depends(get_current_admin)]


def get_presence(conn: HTTPConnection) -> PresenceRegistry:
    return conn.app.state.presence


PresenceDep = Annotated[PresenceRegistry, Depends(get_presence)]


def get_scheduler(conn: HTTPConnection) -> Scheduler:
    return conn.app.state.scheduler


SchedulerDep = Annotated[Scheduler, Depends(get_scheduler)]
