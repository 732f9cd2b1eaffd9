"""Room/occupancy helpers built on top of the WorldStore."""

from __future__ import annotations

from typing import List, Optional

from .components import Agent, ComponentKind, Room
from .relations import OccupancyMeta, RelationKind
from .store import WorldStore


def agent_room(world: WorldStore, agent_id: int) -> Optional[int]:
    """Room the agent currently occupies, or None."""
    return world.get_relation_target(RelationKind.OCCUPIES, agent_id)


def room_occupants(world: WorldStore, room_id: int) -> List[int]:
    """Agents occupying ``room_id`` in ascending id order."""
    return world.get_relation_sources(RelationKind.OCCUPIES, room_id)


def find_room(world: WorldStore, key: object) -> Optional[int]:
    """Resolve a room by entity id, numeric string, or case-insensitive name."""
    if isinstance(key, int) and not isinstance(key, bool):
        return key if world.has_component(key, ComponentKind.ROOM) else None
    if not isinstance(key, str):
        return None
    text = key.strip()
    if text.isdigit():
        return find_room(world, int(text))
    lowered = text.lower()
    for eid in world.query(ComponentKind.ROOM):
        room: Room = world.get_component(eid, ComponentKind.ROOM)
        if room.name.lower() == lowered:
            return eid
    return None


def find_agent(world: WorldStore, key: object) -> Optional[int]:
    """Resolve an agent by entity id, numeric string, or case-insensitive name."""
    if isinstance(key, int) and not isinstance(key, bool):
        return key if world.has_component(key, ComponentKind.AGENT) else None
    if not isinstance(key, str):
        return None
    text = key.strip()
    if text.isdigit():
        return find_agent(world, int(text))
    lowered = text.lower()
    for eid in world.query(ComponentKind.AGENT):
        agent: Agent = world.get_component(eid, ComponentKind.AGENT)
        if agent.name.lower() == lowered:
            return eid
    return None


def can_enter(world: WorldStore, room_id: int, agent_id: int) -> bool:
    """Check if an agent can enter a room without exceeding its capacity.

    Returns True if the agent is already there (staying is not a new entry),
    if the room has no capacity limit, or if it has space for one more.
    """
    room: Optional[Room] = world.get_component(room_id, ComponentKind.ROOM)
    if room is None:
        return False
    occupants = room_occupants(world, room_id)
    if agent_id in occupants:
        return True
    if room.capacity is None:
        return True
    return len(occupants) < room.capacity


def move_agent(world: WorldStore, agent_id: int, room_id: int, *, now: float) -> bool:
    """Place the agent in ``room_id``, replacing its previous room.

    Returns False when the room does not exist or is full.
    """
    if not can_enter(world, room_id, agent_id):
        return False
    world.add_relation(RelationKind.OCCUPIES, agent_id, room_id, OccupancyMeta(since=now))
    return True


def active_agents(world: WorldStore) -> List[int]:
    """Agents flagged active, ascending by id."""
    result = []
    for eid in world.query(ComponentKind.AGENT):
        agent: Agent = world.get_component(eid, ComponentKind.AGENT)
        if agent.active:
            result.append(eid)
    return result
