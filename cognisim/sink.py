"""
ReportSink interface for mirroring bus events to a log/report store.

Sinks are OPTIONAL - a runtime runs the same with or without one. When one is
attached, a SinkMirror subscribes to the ``room:*`` and ``agent:*`` wildcards
and forwards every event to the sink from its own tasks, so a slow or broken
sink never blocks a tick.

Two included implementations:
1. InMemorySink - list-backed, data lost on exit (testing, prototyping)
2. JsonlSink - one JSON event per line in a single file (small runs, debugging)

Failure policy:
- Sink write errors are logged with log_error and swallowed
- The mirror counts them in ``failures`` for inspection

Usage pattern:
    sink = JsonlSink("reports/run.jsonl")
    mirror = SinkMirror(sink, runtime.bus)
    await mirror.start()
    ...
    await mirror.stop()
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from .events import AGENT_WILDCARD, ROOM_WILDCARD, Event, EventBus, Subscription
from .logging_utils import LOG_TAG_ERROR, log_error


class ReportSink(ABC):
    """Abstract destination for mirrored events.

    All methods are async so file or network backed sinks can do I/O without
    blocking the tick loop.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open files/connections. Called once before the first write."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Flush and release resources. Called once after the last write."""
        pass

    @abstractmethod
    async def write(self, event: Event) -> None:
        pass

    @abstractmethod
    async def read_all(self) -> List[Event]:
        """Every event written so far, in write order."""
        pass


class InMemorySink(ReportSink):
    def __init__(self):
        self.events: List[Event] = []

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def write(self, event: Event) -> None:
        self.events.append(event)

    async def read_all(self) -> List[Event]:
        return list(self.events)


class JsonlSink(ReportSink):
    """Append-only JSON Lines file, one event envelope per line.

    File I/O runs in the default thread pool (asyncio.to_thread).
    """

    def __init__(self, path: Path | str = "cognisim_report.jsonl"):
        self.path = Path(path)

    async def initialize(self) -> None:
        await asyncio.to_thread(self.path.parent.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        # Every write opens and closes the file
        return None

    async def write(self, event: Event) -> None:
        line = event.model_dump_json()

        def _append() -> None:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)
                handle.write("\n")

        await asyncio.to_thread(_append)

    async def read_all(self) -> List[Event]:
        if not self.path.exists():
            return []

        def _read() -> List[str]:
            return self.path.read_text("utf-8").splitlines()

        lines = await asyncio.to_thread(_read)
        return [Event.model_validate_json(line) for line in lines if line]


class SinkMirror:
    """Forwards bus events to a ReportSink without blocking publishers."""

    def __init__(
        self,
        sink: ReportSink,
        bus: EventBus,
        *,
        channels: Sequence[str] = (ROOM_WILDCARD, AGENT_WILDCARD),
        maxsize: int = 1000,
    ) -> None:
        self.sink = sink
        self.bus = bus
        self.channels = list(channels)
        self.maxsize = maxsize
        self.failures = 0
        self.written = 0
        self._subscriptions: List[Subscription] = []
        self._tasks: List[asyncio.Task] = []

    @property
    def started(self) -> bool:
        return bool(self._subscriptions)

    async def start(self) -> None:
        if self.started:
            return
        await self.sink.initialize()
        loop = asyncio.get_running_loop()
        for channel in self.channels:
            subscription = self.bus.subscribe(channel, maxsize=self.maxsize)
            self._subscriptions.append(subscription)
            self._tasks.append(loop.create_task(self._pump(subscription)))

    async def _pump(self, subscription: Subscription) -> None:
        while True:
            event = await subscription.get()
            await self._write(event)

    async def _write(self, event: Event) -> None:
        try:
            await self.sink.write(event)
        except Exception as exc:
            self.failures += 1
            log_error(f"  {LOG_TAG_ERROR} [Sink] failed to write {event.type.value} event on {event.channel}: {exc}")
            return
        self.written += 1

    async def flush(self) -> None:
        """Write everything currently queued, without waiting for new events."""
        for subscription in self._subscriptions:
            for event in subscription.drain():
                await self._write(event)

    async def stop(self) -> None:
        if not self.started:
            return
        await self.flush()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        for subscription in self._subscriptions:
            self.bus.unsubscribe(subscription)
        self._tasks.clear()
        self._subscriptions.clear()
        try:
            await self.sink.close()
        except Exception as exc:
            log_error(f"  {LOG_TAG_ERROR} [Sink] close failed: {exc}")


def build_sink(report_path: Optional[str]) -> ReportSink:
    """JsonlSink when a report path is configured, otherwise InMemorySink."""
    if report_path:
        return JsonlSink(report_path)
    return InMemorySink()
