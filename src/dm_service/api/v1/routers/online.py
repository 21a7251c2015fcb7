from __future__ import annotations

from fastapi import APIRouter

from dm_service.api.deps import CurrentPrincipal, PresenceDep
from dm_service.api.v1.schemas.online import (
    OnlineCountResponse,
    OnlineUsersResponse,
    UserStatusResponse,
)

router = APIRouter(prefix="/api/v1/online", tags=["online"])


@router.get("/count", response_model=OnlineCountResponse)
async def online_count(
    _principal: CurrentPrincipal,
    presence: PresenceDep,
) -> OnlineCountResponse:
    return OnlineCountResponse(online_count=await presence.online_count())


@router.get("/users", response_model=OnlineUsersResponse)
async def online_users(
    _principal: CurrentPrincipal,
    presence: PresenceDep,
) -> OnlineUsersResponse:
    user_ids = sorted(await presence.online_users())
    return OnlineUsersResponse(user_ids=user_ids, count=len(user_ids))


@router.get("/users/{user_id}/status", response_model=UserStatusResponse)
async def user_status(
    user_id: int,
    _principal: CurrentPrincipal,
    presence: PresenceDep,
) -> UserStatusResponse:
    return UserStatusResponse(user_id=user_id, is_online=await presence.is_reachable(user_id))
