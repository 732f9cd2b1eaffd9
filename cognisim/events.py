"""Event envelopes and the channel bus.

Channels come in two kinds, ``room:<id>`` and ``agent:<id>``, plus the
wildcards ``room:*`` and ``agent:*`` which receive every event of their kind.
Each subscriber owns a mailbox (an ``asyncio.Queue``). Publishing is
synchronous: the event is put into every matching mailbox before ``publish``
returns. A bounded mailbox that is full drops its oldest event and counts the
drop, so a slow consumer is visible instead of stalling the simulation.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

from .logging_utils import LOG_TAG_WARNING, log_warning


class EventType(str, Enum):
    # State snapshots: last write wins per entity
    ROOM_STATE = "room_state"
    AGENT_STATE = "agent_state"
    WORLD_STATE = "world_state"
    # Happenings: never dropped
    AGENT_ACTION = "agent_action"
    SPEECH = "speech"
    STIMULUS = "stimulus"
    THOUGHT = "thought"
    TICK = "tick"
    CONTROL = "control"
    ERROR = "error"
    # Connection lifecycle: delivered immediately
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


STATE_EVENT_TYPES: FrozenSet[EventType] = frozenset(
    {EventType.ROOM_STATE, EventType.AGENT_STATE, EventType.WORLD_STATE}
)

CONNECTION_EVENT_TYPES: FrozenSet[EventType] = frozenset(
    {EventType.CONNECTED, EventType.DISCONNECTED, EventType.SUBSCRIBED, EventType.UNSUBSCRIBED}
)

ROOM_WILDCARD = "room:*"
AGENT_WILDCARD = "agent:*"


def room_channel(room_id: int) -> str:
    return f"room:{room_id}"


def agent_channel(agent_id: int) -> str:
    return f"agent:{agent_id}"


def wildcard_for(channel: str) -> Optional[str]:
    kind, _, key = channel.partition(":")
    if not key or key == "*":
        return None
    if kind == "room":
        return ROOM_WILDCARD
    if kind == "agent":
        return AGENT_WILDCARD
    return None


def now_ms() -> float:
    return time.time() * 1000.0


class Event(BaseModel):
    """Envelope pushed to subscribers: ``{type, channel, data, timestamp}``.

    ``timestamp`` is epoch milliseconds. ``entity_key`` identifies the entity a
    state event describes and drives per-window deduplication.
    """

    type: EventType
    channel: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=now_ms)
    entity_key: Optional[str] = None

    @property
    def is_state(self) -> bool:
        return self.type in STATE_EVENT_TYPES

    @property
    def is_connection(self) -> bool:
        return self.type in CONNECTION_EVENT_TYPES

    def dedup_key(self) -> str:
        return f"{self.type.value}:{self.entity_key or self.channel}"


class Subscription:
    """One subscriber's mailbox on one channel."""

    def __init__(self, channel: str, maxsize: int = 0) -> None:
        self.channel = channel
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def deliver(self, event: Event) -> None:
        if self.closed:
            return
        if self.queue.full():
            # Make room by discarding the oldest undelivered event.
            self.queue.get_nowait()
            self.dropped += 1
            log_warning(f"  {LOG_TAG_WARNING} [EventBus] mailbox on {self.channel} full; dropped oldest event")
        self.queue.put_nowait(event)

    async def get(self) -> Event:
        return await self.queue.get()

    def drain(self) -> List[Event]:
        """Take every event currently queued without waiting."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events

    def __len__(self) -> int:
        return self.queue.qsize()


class EventBus:
    """Synchronous publish into per-subscriber mailboxes."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self.published = 0

    def subscribe(self, channel: str, *, maxsize: int = 0) -> Subscription:
        subscription = Subscription(channel, maxsize=maxsize)
        self._subscriptions.setdefault(channel, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        subscription.closed = True
        subscribers = self._subscriptions.get(subscription.channel)
        if not subscribers or subscription not in subscribers:
            return False
        subscribers.remove(subscription)
        if not subscribers:
            del self._subscriptions[subscription.channel]
        return True

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscriptions.get(channel, ()))

    def publish(self, event: Event) -> int:
        """Deliver to the exact channel and its wildcard; returns deliveries."""
        self.published += 1
        targets = list(self._subscriptions.get(event.channel, ()))
        wildcard = wildcard_for(event.channel)
        if wildcard is not None:
            targets.extend(self._subscriptions.get(wildcard, ()))
        for subscription in targets:
            subscription.deliver(event)
        return len(targets)

    def emit(
        self,
        type: EventType,
        channel: str,
        data: Optional[Dict[str, Any]] = None,
        *,
        entity_key: Optional[str] = None,
        timestamp: Optional[float] = None,
    ) -> Event:
        event = Event(
            type=type,
            channel=channel,
            data=data or {},
            entity_key=entity_key,
            timestamp=timestamp if timestamp is not None else now_ms(),
        )
        self.publish(event)
        return event

    def publish_agent_event(
        self,
        agent_id: int,
        room_id: Optional[int],
        type: EventType,
        data: Optional[Dict[str, Any]] = None,
        *,
        entity_key: Optional[str] = None,
    ) -> Event:
        """Publish on the agent's channel and, when it has one, its room's channel."""
        event = self.emit(type, agent_channel(agent_id), data, entity_key=entity_key)
        if room_id is not None:
            self.publish(event.model_copy(update={"channel": room_channel(room_id)}))
        return event

    def close_all(self) -> None:
        for subscribers in self._subscriptions.values():
            for subscription in subscribers:
                subscription.closed = True
        self._subscriptions.clear()
