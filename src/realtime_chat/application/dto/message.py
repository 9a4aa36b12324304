from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from realtime_chat.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class MessagePage:
    """One page of chat history, newest first.

    ``last_timestamp`` is the cursor for the next (older) page; it is None
    when the history is exhausted.
    """

    items: list[Message]
    limit: int
    last_timestamp: datetime | None

    @property
    def has_more(self) -> bool:
        return self.last_timestamp is not None
