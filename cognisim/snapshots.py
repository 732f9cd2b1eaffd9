"""JSON-friendly state snapshots pushed to subscribers as state events."""

from typing import Any, Dict, List, Optional

from .world import (
    Agent,
    Appearance,
    Attention,
    ComponentKind,
    ExperienceLog,
    Goals,
    PendingAction,
    Plan,
    ReasoningContext,
    Room,
    Thought,
    WorldStore,
    agent_room,
    room_occupants,
)


def room_entity_key(room_id: int) -> str:
    return f"room:{room_id}"


def agent_entity_key(agent_id: int) -> str:
    return f"agent:{agent_id}"


def agent_snapshot(world: WorldStore, agent_id: int) -> Optional[Dict[str, Any]]:
    """Public view of one agent, or None if it is not an agent."""
    agent: Optional[Agent] = world.get_component(agent_id, ComponentKind.AGENT)
    if agent is None:
        return None

    appearance: Optional[Appearance] = world.get_component(agent_id, ComponentKind.APPEARANCE)
    attention: Optional[Attention] = world.get_component(agent_id, ComponentKind.ATTENTION)
    context: Optional[ReasoningContext] = world.get_component(agent_id, ComponentKind.REASONING_CONTEXT)
    thought: Optional[Thought] = world.get_component(agent_id, ComponentKind.THOUGHT)
    goals: Optional[Goals] = world.get_component(agent_id, ComponentKind.GOALS)
    plan: Optional[Plan] = world.get_component(agent_id, ComponentKind.PLAN)
    pending: Optional[PendingAction] = world.get_component(agent_id, ComponentKind.PENDING_ACTION)
    log: Optional[ExperienceLog] = world.get_component(agent_id, ComponentKind.EXPERIENCE_LOG)
    last = log.entries[-1] if log and log.entries else None

    return {
        "id": agent_id,
        "name": agent.name,
        "role": agent.role,
        "active": agent.active,
        "room": agent_room(world, agent_id),
        "appearance": (
            {
                "description": appearance.description,
                "expression": appearance.expression,
                "activity": appearance.activity,
            }
            if appearance
            else None
        ),
        "attention": (
            {
                "mode": attention.mode.value,
                "focus": [
                    {"target": item.target, "kind": item.kind, "score": round(item.score, 3)}
                    for item in attention.focus
                ],
            }
            if attention
            else None
        ),
        "reasoning_mode": context.current_mode.value if context else None,
        "thought": (
            {"content": thought.content, "stage": thought.stage.value, "confidence": thought.confidence}
            if thought
            else None
        ),
        "goals": [goal.description for goal in goals.active()] if goals else [],
        "plan": list(plan.steps) if plan else [],
        "pending_action": {"tool": pending.tool, "parameters": pending.parameters} if pending else None,
        "last_action": (
            {"tool": last.tool, "success": last.success, "result": last.message, "tick": last.tick}
            if last
            else None
        ),
    }


def room_snapshot(world: WorldStore, room_id: int) -> Optional[Dict[str, Any]]:
    """Public view of one room and its occupants, or None if it is not a room."""
    room: Optional[Room] = world.get_component(room_id, ComponentKind.ROOM)
    if room is None:
        return None
    occupants: List[Dict[str, Any]] = []
    for agent_id in room_occupants(world, room_id):
        agent: Optional[Agent] = world.get_component(agent_id, ComponentKind.AGENT)
        occupants.append({"id": agent_id, "name": agent.name if agent else str(agent_id)})
    return {
        "id": room_id,
        "name": room.name,
        "description": room.description,
        "ambience": room.ambience,
        "capacity": room.capacity,
        "occupants": occupants,
    }


def world_snapshot(world: WorldStore, *, tick: int, running: bool) -> Dict[str, Any]:
    return {
        "tick": tick,
        "running": running,
        "rooms": [room_snapshot(world, room_id) for room_id in world.query(ComponentKind.ROOM)],
        "agents": world.query(ComponentKind.AGENT),
        "entities": world.entity_count,
    }
