"""Client-side batching of bus events.

Events are collected into fixed time windows (100ms by default, at most 10
events per batch). When a batch is flushed:

- state events (room/agent/world snapshots) are deduplicated per entity key,
  keeping only the most recent by timestamp;
- every other event is kept;
- the batch is delivered in ascending timestamp order.

Connection events (connected, subscribed, ...) skip the buffer entirely.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .events import Event
from .logging_utils import LOG_TAG_ERROR, log_error


DEFAULT_WINDOW_SECONDS = 0.1
DEFAULT_MAX_BATCH = 10


def coalesce(events: Sequence[Event]) -> List[Event]:
    """Deduplicate state events per entity and order the batch by timestamp.

    Among state events with the same key the latest timestamp wins; on a tie
    the one submitted later wins. The sort is stable, so non-state events with
    equal timestamps keep their submission order.
    """
    latest_state: Dict[str, Tuple[float, int]] = {}
    for index, event in enumerate(events):
        if not event.is_state:
            continue
        key = event.dedup_key()
        current = latest_state.get(key)
        if current is None or (event.timestamp, index) >= current:
            latest_state[key] = (event.timestamp, index)

    keep = {index for _, index in latest_state.values()}
    kept = [event for index, event in enumerate(events) if not event.is_state or index in keep]
    return sorted(kept, key=lambda event: event.timestamp)


class EventBatcher:
    """Windowed batching in front of a ``deliver`` callback."""

    def __init__(
        self,
        deliver: Callable[[List[Event]], None],
        *,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_batch: int = DEFAULT_MAX_BATCH,
    ) -> None:
        if max_batch < 1:
            raise ValueError("max_batch must be at least 1")
        self.deliver = deliver
        self.window_seconds = window_seconds
        self.max_batch = max_batch
        self._buffer: List[Event] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self.batches_delivered = 0

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def submit(self, event: Event) -> None:
        if event.is_connection:
            self.deliver([event])
            return

        self._buffer.append(event)
        if len(self._buffer) >= self.max_batch:
            self.flush()
            return

        if self._timer is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # No loop: the owner flushes explicitly.
                return
            self._timer = loop.call_later(self.window_seconds, self._flush_from_timer)

    def flush(self) -> List[Event]:
        """Deliver whatever is buffered now; returns the delivered batch."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        batch, self._buffer = self._buffer, []
        delivered = coalesce(batch)
        if delivered:
            self.batches_delivered += 1
            self.deliver(delivered)
        return delivered

    def _flush_from_timer(self) -> None:
        self._timer = None
        try:
            self.flush()
        except Exception as exc:
            log_error(f"  {LOG_TAG_ERROR} [Distribution] batch delivery failed: {exc}")

    def close(self) -> List[Event]:
        return self.flush()
