"""Factory functions that assemble entities from components."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Union

from .components import (
    Agent,
    Appearance,
    Attention,
    ExperienceLog,
    Goal,
    Goals,
    Plan,
    ReasoningContext,
    Room,
    WorkingMemory,
)
from .queries import move_agent
from .store import WorldStore


def create_room(
    world: WorldStore,
    name: str,
    *,
    description: str = "",
    ambience: str = "",
    capacity: Optional[int] = None,
) -> int:
    eid = world.create_entity()
    world.add_component(
        eid, Room(name=name, description=description, ambience=ambience, capacity=capacity)
    )
    return eid


def spawn_agent(
    world: WorldStore,
    name: str,
    *,
    room_id: Optional[int] = None,
    role: str = "",
    system_prompt: str = "",
    appearance: str = "",
    goals: Iterable[Union[Goal, str]] = (),
    attention_capacity: int = 5,
    memory_capacity: int = 20,
    experience_limit: int = 50,
    now: float = 0.0,
) -> int:
    """Create an agent with the full cognitive component set.

    Goals may be given as ``Goal`` records or plain descriptions (priority 0.5).
    When ``room_id`` is supplied the agent is placed there; a full or missing
    room raises ``ValueError`` since spawning is a setup-time operation.
    """
    eid = world.create_entity()
    world.add_component(eid, Agent(name=name, role=role, system_prompt=system_prompt))
    world.add_component(eid, Appearance(description=appearance, updated_at=now))
    goal_items: Sequence[Goal] = [
        goal if isinstance(goal, Goal) else Goal(description=str(goal)) for goal in goals
    ]
    world.add_component(eid, Goals(items=list(goal_items)))
    world.add_component(eid, Plan(updated_at=now))
    world.add_component(eid, WorkingMemory(capacity=memory_capacity))
    world.add_component(eid, ReasoningContext(last_deep_reasoning=now, last_meta_evaluation=now))
    world.add_component(eid, Attention(capacity=attention_capacity, last_update=now))
    world.add_component(eid, ExperienceLog(limit=experience_limit))

    if room_id is not None and not move_agent(world, eid, room_id, now=now):
        world.destroy_entity(eid)
        raise ValueError(f"Cannot place agent '{name}' in room {room_id}")
    return eid
