from __future__ import annotations

from typing import Any

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import UnauthorizedError


def identity_from_claims(payload: dict[str, Any]) -> Identity:
    """Build an Identity from decoded JWT claims (``sub`` + optional ``provider`` flag)."""
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise UnauthorizedError("Token has no valid subject") from exc
    return Identity(user_id=user_id, is_provider=bool(payload.get("provider", False)))
