"""
Scheduler systems wrapping the per-agent stages of a tick.

The default order, as assembled by ``SimulationRuntime``:

    RoomSystem -> PerceptionStep -> AttentionStep -> ReasoningStep
    -> MetaCognitionStep -> ActionStep -> CleanupStep -> BroadcastStep

Every per-agent step goes through ``fan_out``: agents run concurrently,
failures are logged and recorded on the tick context, and the step returns
only once every agent has finished.
"""

from typing import Dict, List, Optional

from .actions import ActionDispatcher, ActionResult
from .attention import AttentionSystem
from .cognition import MetaCognition, ReasoningEngine
from .events import EventBus, EventType, agent_channel, room_channel
from .logging_utils import LOG_TAG_DETERMINISTIC, LOG_TAG_LLM, is_verbose, log_deterministic, log_llm
from .perception import PerceptionFilter
from .scheduler import TickContext, fan_out
from .snapshots import agent_entity_key, agent_snapshot, room_entity_key, room_snapshot
from .stimulus import StimulusManager
from .world import ComponentKind, Perception, Thought, WorldStore, active_agents, agent_room


def _placed_agents(world: WorldStore) -> List[int]:
    return [agent_id for agent_id in active_agents(world) if agent_room(world, agent_id) is not None]


class PerceptionStep:
    name = "perception"

    def __init__(self, world: WorldStore, perception: PerceptionFilter) -> None:
        self.world = world
        self.perception = perception

    async def run(self, ctx: TickContext) -> None:
        async def worker(agent_id: int) -> Perception:
            return self.perception.perceive(agent_id, now=ctx.now)

        _, failures = await fan_out(_placed_agents(self.world), worker, label="Perception")
        ctx.record_failures(self.name, failures)


class AttentionStep:
    name = "attention"

    def __init__(self, world: WorldStore, attention: AttentionSystem) -> None:
        self.world = world
        self.attention = attention

    async def run(self, ctx: TickContext) -> None:
        async def worker(agent_id: int):
            perception = self.world.get_component(agent_id, ComponentKind.PERCEPTION)
            if perception is None:
                return None
            return self.attention.update(agent_id, perception, now=ctx.now)

        _, failures = await fan_out(_placed_agents(self.world), worker, label="Attention")
        ctx.record_failures(self.name, failures)


class ReasoningStep:
    name = "reasoning"

    def __init__(self, world: WorldStore, engine: ReasoningEngine, bus: Optional[EventBus] = None) -> None:
        self.world = world
        self.engine = engine
        self.bus = bus

    async def run(self, ctx: TickContext) -> None:
        async def worker(agent_id: int):
            return await self.engine.run(agent_id, now=ctx.now, clock=ctx.clock)

        agent_ids = _placed_agents(self.world)
        if is_verbose():
            log_llm(f"  {LOG_TAG_LLM} [Reasoning] {len(agent_ids)} agents reasoning in parallel...")
        results, failures = await fan_out(agent_ids, worker, label="Reasoning")
        ctx.record_failures(self.name, failures)

        if self.bus is None:
            return
        for agent_id in sorted(results):
            thought: Optional[Thought] = self.world.get_component(agent_id, ComponentKind.THOUGHT)
            if thought is None:
                continue
            self.bus.publish_agent_event(
                agent_id,
                agent_room(self.world, agent_id),
                EventType.THOUGHT,
                {
                    "agent_id": agent_id,
                    "tick": ctx.tick,
                    "content": thought.content,
                    "stage": thought.stage.value,
                    "confidence": thought.confidence,
                    "mode": results[agent_id].mode.value,
                },
            )


class MetaCognitionStep:
    name = "metacognition"

    def __init__(self, world: WorldStore, meta: MetaCognition) -> None:
        self.world = world
        self.meta = meta

    async def run(self, ctx: TickContext) -> None:
        due = [agent_id for agent_id in _placed_agents(self.world) if self.meta.should_evaluate(agent_id, now=ctx.now)]
        if not due:
            return

        async def worker(agent_id: int):
            return await self.meta.evaluate(agent_id, now=ctx.now)

        _, failures = await fan_out(due, worker, label="MetaCognition")
        ctx.record_failures(self.name, failures)


class ActionStep:
    name = "actions"

    def __init__(self, world: WorldStore, dispatcher: ActionDispatcher) -> None:
        self.world = world
        self.dispatcher = dispatcher

    async def run(self, ctx: TickContext) -> None:
        results: Dict[int, ActionResult] = await self.dispatcher.dispatch_pending(
            active_agents(self.world), tick=ctx.tick
        )
        ctx.data["actions"] = results


class CleanupStep:
    name = "cleanup"

    def __init__(self, stimuli: StimulusManager) -> None:
        self.stimuli = stimuli

    async def run(self, ctx: TickContext) -> None:
        tagged, removed = self.stimuli.cleanup_pass()
        ctx.data["stimuli_removed"] = len(removed)
        if is_verbose():
            log_deterministic(
                f"  {LOG_TAG_DETERMINISTIC} [Cleanup] {len(removed)} stimuli removed, "
                f"{self.stimuli.active_count()} active"
            )


class BroadcastStep:
    """Publishes the tick marker and fresh room/agent state snapshots."""

    name = "broadcast"

    def __init__(self, world: WorldStore, bus: EventBus) -> None:
        self.world = world
        self.bus = bus

    async def run(self, ctx: TickContext) -> None:
        actions = ctx.data.get("actions", {})
        summary = {
            "tick": ctx.tick,
            "actions": len(actions),
            "failures": ctx.failure_count,
            "stimuli_removed": ctx.data.get("stimuli_removed", 0),
        }
        for room_id in self.world.query(ComponentKind.ROOM):
            channel = room_channel(room_id)
            self.bus.emit(EventType.TICK, channel, summary)
            snapshot = room_snapshot(self.world, room_id)
            self.bus.emit(EventType.ROOM_STATE, channel, snapshot, entity_key=room_entity_key(room_id))
        for agent_id in self.world.query(ComponentKind.AGENT):
            snapshot = agent_snapshot(self.world, agent_id)
            self.bus.emit(
                EventType.AGENT_STATE, agent_channel(agent_id), snapshot, entity_key=agent_entity_key(agent_id)
            )
