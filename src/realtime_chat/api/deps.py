"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyCookie, HTTPAuthorizationCredentials, HTTPBearer

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import UnauthorizedError
from realtime_chat.application.ports.auth import TokenVerifier
from realtime_chat.config import settings
from realtime_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from realtime_chat.infrastructure.auth.jwks_verifier import JWKSVerifier
from realtime_chat.infrastructure.db.session import AsyncSessionLocal
from realtime_chat.infrastructure.db.uow import SqlAlchemyUoW
from realtime_chat.infrastructure.ws.hub import ChatHub

_bearer_scheme = HTTPBearer(auto_error=False)
_cookie_scheme = APIKeyCookie(name=settings.AUTH_COOKIE_NAME, auto_error=False)


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        try:
            yield uow
        finally:
            await session.close()


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]


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


async def get_current_identity(
    cookie_token: Annotated[str | None, Depends(_cookie_scheme)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> Identity:
    """Resolve the caller from the auth cookie, falling back to a bearer token."""
    token = cookie_token or (credentials.credentials if credentials else None)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    try:
        return await get_verifier().verify(token)
    except UnauthorizedError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail or "Invalid token",
        ) from exc


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]


def get_hub(request: Request) -> ChatHub:
    return request.app.state.hub


HubDep = Annotated[ChatHub, Depends(get_hub)]
