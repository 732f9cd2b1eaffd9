"""Tests for windowed batching and state deduplication."""

import asyncio

import pytest

from cognisim.distribution import EventBatcher, coalesce
from cognisim.events import Event, EventType


def _state(room: int, name: str, timestamp: float) -> Event:
    return Event(
        type=EventType.ROOM_STATE,
        channel=f"room:{room}",
        data={"name": name},
        entity_key=f"room:{room}",
        timestamp=timestamp,
    )


def _speech(message: str, timestamp: float) -> Event:
    return Event(type=EventType.SPEECH, channel="room:1", data={"message": message}, timestamp=timestamp)


def test_batches_are_ordered_by_timestamp():
    batch = coalesce([_speech("c", 3.0), _speech("a", 1.0), _speech("b", 2.0)])
    assert [event.data["message"] for event in batch] == ["a", "b", "c"]


def test_latest_state_per_entity_wins():
    batch = coalesce([_state(1, "old", 1.0), _state(2, "other", 1.5), _state(1, "new", 2.0)])
    assert [(event.entity_key, event.data["name"]) for event in batch] == [("room:2", "other"), ("room:1", "new")]


def test_non_state_events_are_never_dropped():
    batch = coalesce([_speech("same", 1.0), _speech("same", 1.0)])
    assert len(batch) == 2


@pytest.mark.asyncio
async def test_two_room_updates_in_one_window_deliver_only_the_second():
    delivered = []
    batcher = EventBatcher(delivered.append, window_seconds=0.05)

    batcher.submit(_state(1, "Lab (2 occupants)", 1.0))
    batcher.submit(_state(1, "Lab (3 occupants)", 2.0))
    await asyncio.sleep(0.1)

    assert len(delivered) == 1
    (batch,) = delivered
    assert [event.data["name"] for event in batch] == ["Lab (3 occupants)"]


def test_max_batch_forces_a_flush():
    delivered = []
    batcher = EventBatcher(delivered.append, max_batch=2)

    batcher.submit(_speech("one", 1.0))
    assert delivered == []
    batcher.submit(_speech("two", 2.0))

    assert len(delivered) == 1
    assert batcher.pending == 0


def test_connection_events_bypass_the_buffer():
    delivered = []
    batcher = EventBatcher(delivered.append)
    batcher.submit(_speech("buffered", 1.0))

    batcher.submit(Event(type=EventType.CONNECTED, channel="session", timestamp=5.0))

    assert [[event.type for event in batch] for batch in delivered] == [[EventType.CONNECTED]]
    assert batcher.pending == 1
    assert [event.data["message"] for event in batcher.close()] == ["buffered"]


def test_invalid_max_batch():
    with pytest.raises(ValueError):
        EventBatcher(lambda batch: None, max_batch=0)
