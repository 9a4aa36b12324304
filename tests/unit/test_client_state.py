from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from realtime_chat.client.state import ChatTimeline
from realtime_chat.infrastructure.ws.protocol import MessagePayload

CHAT = uuid.uuid4()


def payload(content: str, ts: datetime) -> MessagePayload:
    return MessagePayload(
        message_id=uuid.uuid4(),
        chat_id=CHAT,
        sender_id=7,
        is_provider=True,
        content=content,
        timestamp=ts,
        read_by_user=False,
        read_by_provider=True,
    )


def test_history_goes_under_live_entries():
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    older = [payload(f"h{i}", base + timedelta(seconds=i)) for i in range(3)]
    live = payload("live", base + timedelta(minutes=1))
    timeline = ChatTimeline()
    timeline.reset(CHAT)
    timeline.receive(live)

    # Newest first, as served by the history endpoint; "live" is already shown.
    timeline.load_history([live, *reversed(older)])

    assert [m.content for m in timeline.messages] == ["h0", "h1", "h2", "live"]


def test_acknowledge_without_optimistic_entry_appends():
    timeline = ChatTimeline()
    timeline.reset(CHAT)
    confirmed = payload("from another tab", datetime.now(timezone.utc))

    timeline.acknowledge(confirmed, "temp-unknown")
    timeline.acknowledge(confirmed, "temp-unknown")

    assert len(timeline.messages) == 1


def test_events_for_other_chats_are_ignored():
    timeline = ChatTimeline()
    timeline.reset(uuid.uuid4())

    assert timeline.receive(payload("elsewhere", datetime.now(timezone.utc))) is None
    assert timeline.messages == []


def test_reset_without_keep_pending_drops_everything():
    timeline = ChatTimeline()
    timeline.reset(CHAT)
    timeline.add_optimistic(42, False, "pending")

    timeline.reset(CHAT)

    assert timeline.pending == []
