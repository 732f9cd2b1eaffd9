"""
Simulation runtime.

Fully decoupled from transports and storage.
The oracle, action registry, sink, and clock are injected by the user.

Wires the world store, stimulus manager, perception, attention, reasoning,
meta-cognition, action dispatch, and the event bus into a Scheduler with the
default system order:

1. RoomSystem - room input, appearance and ambience become stimuli
2. Perception - per agent, gather and rank stimuli
3. Attention - per agent, update the focus stack and mode
4. Reasoning - per agent, run the staged pipeline (oracle calls)
5. MetaCognition - per agent whose evaluation trigger fired
6. Actions - per agent, dispatch the pending action, then arbitrate moves
7. Cleanup - decay pass and sweep of stimuli
8. Broadcast - tick marker plus room/agent state events
"""

import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .actions import ActionDispatcher, ActionRegistry, build_default_registry
from .attention import AttentionSystem
from .cognition import CognitionOracle, LLMOracle, MetaCognition, ReasoningEngine
from .config import Config
from .errors import NotFoundError, SchedulerFault, ValidationError
from .events import Event, EventBus, EventType, agent_channel, room_channel
from .logging_utils import LOG_TAG_ERROR, LOG_TAG_INFO, LOG_TAG_SUCCESS, log_error, log_info, log_success
from .perception import PerceptionFilter
from .rooms import RoomSystem
from .scheduler import Scheduler, System, TickContext
from .snapshots import agent_entity_key, agent_snapshot, room_entity_key, room_snapshot, world_snapshot
from .stimulus import StimulusManager
from .systems import (
    ActionStep,
    AttentionStep,
    BroadcastStep,
    CleanupStep,
    MetaCognitionStep,
    PerceptionStep,
    ReasoningStep,
)
from .world import (
    COMPONENT_TYPES,
    RELATION_SPECS,
    ComponentKind,
    Goal,
    Room,
    WorldStore,
    agent_room,
    create_room,
    find_agent,
    find_room,
    spawn_agent,
)


class SimulationRuntime:
    """Owns one simulated world and the scheduler that advances it."""

    def __init__(
        self,
        oracle: CognitionOracle,
        *,
        registry: Optional[ActionRegistry] = None,
        clock: Callable[[], float] = time.time,
        tick_interval: Optional[float] = None,
        attention_capacity: Optional[int] = None,
        memory_capacity: Optional[int] = None,
        experience_limit: Optional[int] = None,
        on_tick: Optional[Callable[[TickContext], None]] = None,
    ) -> None:
        self.oracle = oracle
        self.clock = clock
        self.attention_capacity = attention_capacity or Config.ATTENTION_CAPACITY
        self.memory_capacity = memory_capacity or Config.WORKING_MEMORY_CAPACITY
        self.experience_limit = experience_limit or Config.EXPERIENCE_LOG_LIMIT

        self.world = WorldStore(COMPONENT_TYPES, RELATION_SPECS)
        self.bus = EventBus()
        self.stimuli = StimulusManager(self.world, clock=clock)
        self.perception = PerceptionFilter(self.world, self.stimuli)
        self.attention = AttentionSystem(self.world)
        self.registry = registry if registry is not None else build_default_registry()
        self.dispatcher = ActionDispatcher(self.world, self.registry, self.stimuli, self.bus, clock=clock)
        self.engine = ReasoningEngine(self.world, oracle, action_catalog=self.dispatcher.catalog)
        self.meta = MetaCognition(self.world, oracle)

        self.systems: List[System] = [
            RoomSystem(self.world, self.stimuli, self.bus),
            PerceptionStep(self.world, self.perception),
            AttentionStep(self.world, self.attention),
            ReasoningStep(self.world, self.engine, self.bus),
            MetaCognitionStep(self.world, self.meta),
            ActionStep(self.world, self.dispatcher),
            CleanupStep(self.stimuli),
            BroadcastStep(self.world, self.bus),
        ]
        interval = tick_interval if tick_interval is not None else Config.TICK_INTERVAL_MS / 1000.0
        self.scheduler = Scheduler(
            self.systems,
            tick_interval=interval,
            on_tick=on_tick,
            on_fault=self._on_fault,
            clock=clock,
        )

    @classmethod
    def from_config(cls, oracle: Optional[CognitionOracle] = None, **kwargs: Any) -> "SimulationRuntime":
        """Build a runtime with an LLMOracle configured from the environment."""
        if oracle is None:
            Config.validate()
            oracle = LLMOracle(
                provider=Config.LLM_PROVIDER,
                model=Config.LLM_MODEL,
                max_attempts=Config.ORACLE_MAX_ATTEMPTS,
            )
        return cls(oracle, **kwargs)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def tick(self) -> int:
        return self.scheduler.tick

    @property
    def running(self) -> bool:
        return self.scheduler.running

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def spawn_room(
        self,
        name: str,
        *,
        description: str = "",
        ambience: str = "",
        capacity: Optional[int] = None,
    ) -> int:
        room_id = create_room(self.world, name, description=description, ambience=ambience, capacity=capacity)
        self.publish_room_state(room_id)
        return room_id

    def spawn_agent(
        self,
        name: str,
        *,
        room: Union[int, str, None] = None,
        role: str = "",
        system_prompt: str = "",
        appearance: str = "",
        goals: Iterable[Union[Goal, str]] = (),
    ) -> int:
        """Create an agent, optionally placing it in ``room`` (id or name)."""
        room_id = None
        if room is not None:
            room_id = find_room(self.world, room)
            if room_id is None:
                raise ValueError(f"Unknown room: {room}")
        agent_id = spawn_agent(
            self.world,
            name,
            room_id=room_id,
            role=role,
            system_prompt=system_prompt,
            appearance=appearance,
            goals=goals,
            attention_capacity=self.attention_capacity,
            memory_capacity=self.memory_capacity,
            experience_limit=self.experience_limit,
            now=self.clock(),
        )
        self.publish_agent_state(agent_id)
        if room_id is not None:
            self.publish_room_state(room_id)
        return agent_id

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def room_state(self, room_id: int) -> Optional[Event]:
        snapshot = room_snapshot(self.world, room_id)
        if snapshot is None:
            return None
        return Event(
            type=EventType.ROOM_STATE,
            channel=room_channel(room_id),
            data=snapshot,
            entity_key=room_entity_key(room_id),
        )

    def agent_state(self, agent_id: int) -> Optional[Event]:
        snapshot = agent_snapshot(self.world, agent_id)
        if snapshot is None:
            return None
        return Event(
            type=EventType.AGENT_STATE,
            channel=agent_channel(agent_id),
            data=snapshot,
            entity_key=agent_entity_key(agent_id),
        )

    def world_state(self) -> Dict[str, Any]:
        return world_snapshot(self.world, tick=self.tick, running=self.running)

    def publish_room_state(self, room_id: int) -> None:
        event = self.room_state(room_id)
        if event is not None:
            self.bus.publish(event)

    def publish_agent_state(self, agent_id: int) -> None:
        event = self.agent_state(agent_id)
        if event is not None:
            self.bus.publish(event)

    def _broadcast(self, type: EventType, data: Dict[str, Any]) -> None:
        for room_id in self.world.query(ComponentKind.ROOM):
            self.bus.emit(type, room_channel(room_id), data)

    # ------------------------------------------------------------------
    # Outside input
    # ------------------------------------------------------------------

    def chat(
        self,
        message: str,
        *,
        room: Union[int, str, None] = None,
        agent: Union[int, str, None] = None,
        sender: str = "user",
    ) -> Union[int, ValidationError, NotFoundError]:
        """Inject a message now.

        To a room it becomes an auditory stimulus everyone there hears; to an
        agent it becomes a cognitive stimulus only that agent perceives.
        Returns the stimulus id or an error value.
        """
        if (room is None) == (agent is None):
            return ValidationError("Invalid chat message", ["exactly one of room or agent is required"])

        if agent is not None:
            agent_id = find_agent(self.world, agent)
            if agent_id is None:
                return NotFoundError("agent", agent)
            room_id = agent_room(self.world, agent_id)
            if room_id is None:
                return ValidationError("Invalid chat message", [f"agent {agent_id} is not in a room"])
            created = self.stimuli.create_user_message(room_id, message, target_agent=agent_id, sender=sender)
            if not isinstance(created, ValidationError):
                self.bus.emit(
                    EventType.STIMULUS,
                    agent_channel(agent_id),
                    {"stimulus_id": created, "type": "cognitive", "source_kind": "user", "message": message},
                )
            return created

        room_id = find_room(self.world, room)
        if room_id is None:
            return NotFoundError("room", room)
        created = self.stimuli.create_user_message(room_id, message, sender=sender)
        if not isinstance(created, ValidationError):
            self.bus.emit(
                EventType.STIMULUS,
                room_channel(room_id),
                {"stimulus_id": created, "type": "auditory", "source_kind": "user", "message": message},
            )
        return created

    def queue_room_input(self, room: Union[int, str], message: str) -> bool:
        """Queue a message the RoomSystem turns into a stimulus at the next tick."""
        room_id = find_room(self.world, room)
        if room_id is None:
            return False
        record: Room = self.world.get_component(room_id, ComponentKind.ROOM)
        record.queued_input.append(message)
        return True

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Publish fresh state for every room and agent, then start ticking."""
        if self.running:
            return
        for room_id in self.world.query(ComponentKind.ROOM):
            self.publish_room_state(room_id)
        for agent_id in self.world.query(ComponentKind.AGENT):
            self.publish_agent_state(agent_id)
        self.scheduler.start()
        self._broadcast(EventType.CONTROL, {"state": "running", "tick": self.tick})
        log_success(f"  {LOG_TAG_SUCCESS} [Runtime] started")

    def stop(self) -> None:
        self.scheduler.stop()
        self._broadcast(EventType.CONTROL, {"state": "stopped", "tick": self.tick})
        log_info(f"  {LOG_TAG_INFO} [Runtime] stopped at tick {self.tick}")

    def reset(self) -> None:
        """Stop, remove every entity, and zero the tick counter."""
        self._broadcast(EventType.CONTROL, {"state": "reset", "tick": self.tick})
        self.scheduler.reset()
        self.world.clear()
        self.stimuli.begin_tick()
        log_info(f"  {LOG_TAG_INFO} [Runtime] reset")

    async def run_tick(self) -> TickContext:
        return await self.scheduler.run_tick()

    async def run(self, num_ticks: int) -> List[TickContext]:
        """Run ``num_ticks`` ticks back to back (scripted and offline runs)."""
        log_info(f"  {LOG_TAG_INFO} [Runtime] running {num_ticks} ticks")
        return await self.scheduler.run(num_ticks)

    async def wait_stopped(self) -> None:
        await self.scheduler.wait_stopped()

    def _on_fault(self, fault: SchedulerFault) -> None:
        self._broadcast(
            EventType.ERROR,
            {"tick": fault.tick, "system": fault.system, "error": str(fault.underlying)},
        )
        log_error(f"  {LOG_TAG_ERROR} [Runtime] stopped by fault in '{fault.system}'")
