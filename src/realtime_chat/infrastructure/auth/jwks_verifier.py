from __future__ import annotations

import asyncio
import logging

import jwt
from jwt import PyJWKClient

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import UnauthorizedError
from realtime_chat.infrastructure.auth.claims import identity_from_claims

logger = logging.getLogger(__name__)


class JWKSVerifier:
    """Verify JWTs using a remote JWKS endpoint."""

    def __init__(self, jwks_url: str) -> None:
        self._jwks_url = jwks_url
        self._jwk_client = PyJWKClient(jwks_url)

    async def verify(self, token: str) -> Identity:
        try:
            # PyJWKClient fetches keys over blocking HTTP.
            signing_key = await asyncio.to_thread(
                self._jwk_client.get_signing_key_from_jwt, token,
            )
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
            )
        except jwt.PyJWTError as exc:
            logger.debug("JWKS verification failed against %s", self._jwks_url)
            raise UnauthorizedError(str(exc)) from exc
        return identity_from_claims(payload)
