"""Tests for the channel bus."""

from cognisim.events import (
    AGENT_WILDCARD,
    ROOM_WILDCARD,
    Event,
    EventBus,
    EventType,
    agent_channel,
    room_channel,
)


def test_exact_and_wildcard_delivery():
    bus = EventBus()
    exact = bus.subscribe(room_channel(1))
    other = bus.subscribe(room_channel(2))
    rooms = bus.subscribe(ROOM_WILDCARD)
    agents = bus.subscribe(AGENT_WILDCARD)

    delivered = bus.publish(Event(type=EventType.TICK, channel=room_channel(1), data={"tick": 1}))

    assert delivered == 2
    assert len(exact) == 1
    assert len(other) == 0
    assert len(rooms) == 1
    assert len(agents) == 0


def test_agent_event_is_mirrored_to_room():
    bus = EventBus()
    agent_sub = bus.subscribe(agent_channel(5))
    room_sub = bus.subscribe(room_channel(1))

    event = bus.publish_agent_event(5, 1, EventType.SPEECH, {"message": "hi"})

    assert agent_sub.drain()[0] == event
    mirrored = room_sub.drain()[0]
    assert mirrored.channel == room_channel(1)
    assert mirrored.data == {"message": "hi"}
    assert mirrored.timestamp == event.timestamp


def test_full_mailbox_drops_oldest():
    bus = EventBus()
    sub = bus.subscribe(room_channel(1), maxsize=2)

    for tick in range(3):
        bus.emit(EventType.TICK, room_channel(1), {"tick": tick})

    assert [event.data["tick"] for event in sub.drain()] == [1, 2]
    assert sub.dropped == 1


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    sub = bus.subscribe(room_channel(1))

    assert bus.unsubscribe(sub) is True
    assert bus.unsubscribe(sub) is False
    bus.emit(EventType.TICK, room_channel(1))

    assert len(sub) == 0
    assert bus.subscriber_count(room_channel(1)) == 0


def test_state_event_dedup_key_prefers_entity_key():
    event = Event(type=EventType.ROOM_STATE, channel=room_channel(1), entity_key="room:1", timestamp=1.0)
    assert event.is_state
    assert event.dedup_key() == "room_state:room:1"
    assert Event(type=EventType.SUBSCRIBED, channel="room:1").is_connection
