from __future__ import annotations

from dataclasses import dataclass

from realtime_chat.domain.value_objects.enums import Role


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated caller extracted from the JWT credential."""

    user_id: int
    is_provider: bool = False

    @property
    def role(self) -> Role:
        return Role.of(self.is_provider)

    def acting_as(self, role: Role | None) -> Identity:
        is_provider = role is Role.PROVIDER
        if is_provider == self.is_provider:
            return self
        return Identity(user_id=self.user_id, is_provider=is_provider)
