"""Subscriber protocol: one session per connected client.

Inbound messages are validated into ``ClientMessage``. Outbound traffic is
``Event`` envelopes grouped into batches by an ``EventBatcher`` and placed in
the session's ``outbox`` queue; a transport (websocket, SSE, test harness)
only has to drain that queue.

On SUBSCRIBE the current ``room_state``/``agent_state`` snapshot is pushed
first, followed by incremental events from the bus.
"""

from __future__ import annotations

import asyncio
import json
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, model_validator
from pydantic import ValidationError as SchemaValidationError

from .config import Config
from .distribution import EventBatcher
from .errors import CognisimError
from .events import Event, EventType, Subscription, agent_channel, room_channel
from .logging_utils import LOG_TAG_INFO, LOG_TAG_WARNING, is_verbose, log_info, log_warning
from .world import find_agent, find_room

SESSION_CHANNEL = "session"


class ClientMessageType(str, Enum):
    SUBSCRIBE = "SUBSCRIBE"
    UNSUBSCRIBE = "UNSUBSCRIBE"
    START = "START"
    STOP = "STOP"
    RESET = "RESET"
    CHAT = "CHAT"


class ClientMessage(BaseModel):
    type: ClientMessageType
    room: Optional[Union[int, str]] = None
    agent: Optional[Union[int, str]] = None
    message: Optional[str] = None
    timestamp: Optional[float] = None

    @model_validator(mode="after")
    def _check_targets(self) -> "ClientMessage":
        if self.type in (ClientMessageType.SUBSCRIBE, ClientMessageType.UNSUBSCRIBE, ClientMessageType.CHAT):
            if (self.room is None) == (self.agent is None):
                raise ValueError(f"{self.type.value} requires exactly one of 'room' or 'agent'")
        if self.type == ClientMessageType.CHAT and not self.message:
            raise ValueError("CHAT requires a non-empty 'message'")
        return self


class SubscriberSession:
    """Bridges one client to a SimulationRuntime."""

    def __init__(
        self,
        runtime: Any,
        *,
        window_seconds: Optional[float] = None,
        max_batch: Optional[int] = None,
        mailbox_size: int = 1000,
    ) -> None:
        self.runtime = runtime
        self.outbox: asyncio.Queue[List[Event]] = asyncio.Queue()
        self.batcher = EventBatcher(
            self.outbox.put_nowait,
            window_seconds=window_seconds if window_seconds is not None else Config.BATCH_WINDOW_MS / 1000.0,
            max_batch=max_batch if max_batch is not None else Config.BATCH_MAX_EVENTS,
        )
        self.mailbox_size = mailbox_size
        self._subscriptions: Dict[str, Subscription] = {}
        self._pumps: Dict[str, asyncio.Task] = {}
        self.closed = False

    @property
    def channels(self) -> List[str]:
        return sorted(self._subscriptions)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        self._send(EventType.CONNECTED, SESSION_CHANNEL, {"tick": self.runtime.tick, "running": self.runtime.running})

    async def close(self) -> None:
        if self.closed:
            return
        for channel in list(self._subscriptions):
            await self._unsubscribe(channel)
        self.batcher.close()
        self._send(EventType.DISCONNECTED, SESSION_CHANNEL, {})
        self.closed = True

    async def next_batch(self) -> List[Event]:
        return await self.outbox.get()

    def drain_outbox(self) -> List[Event]:
        """Pull pending bus events, flush the batcher, and return everything queued."""
        for subscription in self._subscriptions.values():
            for event in subscription.drain():
                self.batcher.submit(event)
        self.batcher.flush()
        events: List[Event] = []
        while not self.outbox.empty():
            events.extend(self.outbox.get_nowait())
        return events

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle(self, raw: Union[str, bytes, Mapping[str, Any]]) -> None:
        """Process one inbound message. Problems become error events."""
        try:
            if isinstance(raw, (str, bytes)):
                message = ClientMessage.model_validate_json(raw)
            else:
                message = ClientMessage.model_validate(dict(raw))
        except SchemaValidationError as exc:
            issues = [err.get("msg", "") for err in exc.errors(include_url=False)]
            self._error("Invalid message", issues)
            return
        except (TypeError, ValueError, json.JSONDecodeError) as exc:
            self._error("Invalid message", [str(exc)])
            return

        if is_verbose():
            log_info(f"  {LOG_TAG_INFO} [Session] {message.type.value}")

        if message.type == ClientMessageType.SUBSCRIBE:
            await self._handle_subscribe(message)
        elif message.type == ClientMessageType.UNSUBSCRIBE:
            await self._handle_unsubscribe(message)
        elif message.type == ClientMessageType.START:
            self.runtime.start()
        elif message.type == ClientMessageType.STOP:
            self.runtime.stop()
        elif message.type == ClientMessageType.RESET:
            self.runtime.reset()
        elif message.type == ClientMessageType.CHAT:
            result = self.runtime.chat(message.message, room=message.room, agent=message.agent)
            if isinstance(result, CognisimError):
                self._error(str(result).splitlines()[0], getattr(result, "issues", []))

    def _resolve_channel(self, message: ClientMessage) -> Optional[str]:
        world = self.runtime.world
        if message.room is not None:
            room_id = find_room(world, message.room)
            if room_id is None:
                self._error(f"Unknown room: {message.room}")
                return None
            return room_channel(room_id)
        agent_id = find_agent(world, message.agent)
        if agent_id is None:
            self._error(f"Unknown agent: {message.agent}")
            return None
        return agent_channel(agent_id)

    def _snapshot(self, channel: str) -> Optional[Event]:
        kind, _, key = channel.partition(":")
        if kind == "room":
            return self.runtime.room_state(int(key))
        return self.runtime.agent_state(int(key))

    async def _handle_subscribe(self, message: ClientMessage) -> None:
        channel = self._resolve_channel(message)
        if channel is None:
            return
        if channel not in self._subscriptions:
            subscription = self.runtime.bus.subscribe(channel, maxsize=self.mailbox_size)
            self._subscriptions[channel] = subscription
            self._pumps[channel] = asyncio.get_running_loop().create_task(self._pump(subscription))
        self._send(EventType.SUBSCRIBED, channel, {"channel": channel})
        snapshot = self._snapshot(channel)
        if snapshot is not None:
            self.batcher.submit(snapshot)

    async def _handle_unsubscribe(self, message: ClientMessage) -> None:
        channel = self._resolve_channel(message)
        if channel is None:
            return
        if await self._unsubscribe(channel):
            self._send(EventType.UNSUBSCRIBED, channel, {"channel": channel})
        else:
            self._error(f"Not subscribed to {channel}")

    async def _unsubscribe(self, channel: str) -> bool:
        subscription = self._subscriptions.pop(channel, None)
        if subscription is None:
            return False
        pump = self._pumps.pop(channel)
        pump.cancel()
        await asyncio.gather(pump, return_exceptions=True)
        # Events published before the unsubscribe still go out.
        for event in subscription.drain():
            self.batcher.submit(event)
        self.runtime.bus.unsubscribe(subscription)
        if subscription.dropped:
            log_warning(f"  {LOG_TAG_WARNING} [Session] {channel}: {subscription.dropped} events dropped")
        return True

    async def _pump(self, subscription: Subscription) -> None:
        while True:
            event = await subscription.get()
            self.batcher.submit(event)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _send(self, type: EventType, channel: str, data: Dict[str, Any]) -> None:
        self.batcher.submit(Event(type=type, channel=channel, data=data))

    def _error(self, message: str, issues: Optional[List[str]] = None) -> None:
        self._send(EventType.ERROR, SESSION_CHANNEL, {"message": message, "issues": list(issues or [])})
