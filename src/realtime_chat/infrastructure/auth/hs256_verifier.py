from __future__ import annotations

import jwt

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import UnauthorizedError
from realtime_chat.infrastructure.auth.claims import identity_from_claims


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Identity:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.PyJWTError as exc:
            raise UnauthorizedError(str(exc)) from exc
        return identity_from_claims(payload)
