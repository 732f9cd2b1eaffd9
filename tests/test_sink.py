"""Tests for mirroring bus events into report sinks."""

import pytest

from cognisim.events import EventBus, EventType, agent_channel, room_channel
from cognisim.sink import InMemorySink, JsonlSink, ReportSink, SinkMirror, build_sink


class BrokenSink(InMemorySink):
    async def write(self, event):
        if event.type == EventType.ERROR:
            raise OSError("disk full")
        await super().write(event)


@pytest.mark.asyncio
async def test_mirror_forwards_room_and_agent_events():
    bus = EventBus()
    sink = InMemorySink()
    mirror = SinkMirror(sink, bus)
    await mirror.start()

    bus.emit(EventType.SPEECH, room_channel(1), {"message": "hi"})
    bus.emit(EventType.THOUGHT, agent_channel(2), {"content": "hmm"})
    bus.emit(EventType.CONNECTED, "session", {})
    await mirror.flush()

    events = await sink.read_all()
    assert [event.type for event in events] == [EventType.SPEECH, EventType.THOUGHT]
    assert mirror.written == 2
    await mirror.stop()
    assert bus.subscriber_count("room:*") == 0


@pytest.mark.asyncio
async def test_sink_failures_are_counted_not_raised():
    bus = EventBus()
    sink = BrokenSink()
    mirror = SinkMirror(sink, bus)
    await mirror.start()

    bus.emit(EventType.ERROR, room_channel(1), {"error": "boom"})
    bus.emit(EventType.TICK, room_channel(1), {"tick": 1})
    await mirror.stop()

    assert mirror.failures == 1
    assert [event.type for event in sink.events] == [EventType.TICK]


@pytest.mark.asyncio
async def test_jsonl_sink_writes_one_event_per_line(tmp_path):
    path = tmp_path / "reports" / "run.jsonl"
    sink = JsonlSink(path)
    await sink.initialize()
    assert await sink.read_all() == []

    bus = EventBus()
    mirror = SinkMirror(sink, bus, channels=[room_channel(7)])
    await mirror.start()
    bus.emit(EventType.SPEECH, room_channel(7), {"message": "first"})
    bus.emit(EventType.SPEECH, room_channel(7), {"message": "second"})
    bus.emit(EventType.SPEECH, room_channel(8), {"message": "elsewhere"})
    await mirror.stop()

    assert len(path.read_text("utf-8").splitlines()) == 2
    events = await sink.read_all()
    assert [event.data["message"] for event in events] == ["first", "second"]
    assert events[0].channel == "room:7"


def test_build_sink_picks_backend(tmp_path):
    assert isinstance(build_sink(None), InMemorySink)
    jsonl = build_sink(str(tmp_path / "out.jsonl"))
    assert isinstance(jsonl, JsonlSink)
    assert isinstance(jsonl, ReportSink)
