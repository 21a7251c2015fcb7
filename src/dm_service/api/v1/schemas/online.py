from __future__ import annotations

from pydantic import BaseModel


class OnlineCountResponse(BaseModel):
    online_count: int


class OnlineUsersResponse(BaseModel):
    user_ids: list[int]
    count: int


class UserStatusResponse(BaseModel):
    user_id: int
    is_online: bool
