"""Cross-instance reachability stored as a Redis hash of user id -> live connection count.

Counting connections rather than keeping a plain set lets a user stay
reachable while any instance still holds one of their sockets.
"""
from __future__ import annotations

import redis.asyncio as aioredis

# Keys: [presence_hash]  Args: [user_id]
# Returns 1 when the user's last connection anywhere went away.
LUA_RELEASE_CONNECTION = """
local left = redis.call('HINCRBY', KEYS[1], ARGV[1], -1)
if left <= 0 then
    redis.call('HDEL', KEYS[1], ARGV[1])
    return 1
end
return 0
"""


class RedisReachabilitySet:
    """Implements application.ports.presence.ReachabilitySet."""

    def __init__(self, redis: aioredis.Redis, key: str) -> None:
        self._redis = redis
        self._key = key
        self._release = redis.register_script(LUA_RELEASE_CONNECTION)

    async def add(self, user_id: int) -> None:
        await self._redis.hincrby(self._key, str(user_id), 1)

    async def remove(self, user_id: int) -> bool:
        return bool(await self._release(keys=[self._key], args=[str(user_id)]))

    async def contains(self, user_id: int) -> bool:
        return bool(await self._redis.hexists(self._key, str(user_id)))

    async def count(self) -> int:
        return int(await self._redis.hlen(self._key))

    async def members(self) -> list[int]:
        return sorted(int(m) for m in await self._redis.hkeys(self._key))
