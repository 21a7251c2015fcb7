from __future__ import annotations

import jwt

from dm_service.application.dto.principal import Principal
from dm_service.application.exceptions import AuthenticationError


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
            user_id = int(payload.get("sub", payload.get("userId")))
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            raise AuthenticationError(f"Invalid token: {exc}") from exc
        return Principal(user_id=user_id, roles=payload.get("roles", []))
