from __future__ import annotations

from uuid import UUID


class AppError(Exception):
    """Base application error.

    ``chat_id`` and ``temp_id`` are echoed back to the originating client so
    it can attribute the failure to a chat or an optimistic message.
    """

    code = "error"

    def __init__(
        self,
        detail: str = "",
        *,
        chat_id: UUID | None = None,
        temp_id: str | None = None,
    ) -> None:
        self.detail = detail
        self.chat_id = chat_id
        self.temp_id = temp_id
        super().__init__(detail)


class UnauthorizedError(AppError):
    code = "unauthorized"


class NotFoundError(AppError):
    code = "not_found"


class ForbiddenError(AppError):
    code = "forbidden"


class ConflictError(AppError):
    code = "conflict"


class ValidationError(AppError):
    code = "invalid"


class InvalidContentError(ValidationError):
    code = "invalid_content"


class NotJoinedError(AppError):
    code = "not_joined"


class PersistenceError(AppError):
    code = "persistence_failure"


class ProtocolError(AppError):
    code = "protocol_error"


class InternalError(AppError):
    code = "internal_error"
