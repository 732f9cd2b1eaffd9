"""
Room system: turns room state into stimuli at the start of every tick.

For each room:
- queued outside input (chat messages addressed to the room) becomes an
  auditory stimulus with source kind ``user``;
- each occupant's appearance becomes a visual stimulus (source kind ``room``)
  so the other occupants can see them;
- the room's ambience, when set, becomes an environmental stimulus.

Appearance and ambience stimuli decay immediately, so they are re-announced
every tick and never accumulate.
"""

from typing import List, Optional

from .errors import ValidationError
from .logging_utils import LOG_TAG_DETERMINISTIC, LOG_TAG_WARNING, is_verbose, log_deterministic, log_warning
from .events import EventBus, EventType, room_channel
from .scheduler import TickContext
from .stimulus import StimulusManager
from .world import Agent, Appearance, ComponentKind, Room, WorldStore, room_occupants


class RoomSystem:
    name = "rooms"

    def __init__(self, world: WorldStore, stimuli: StimulusManager, bus: Optional[EventBus] = None) -> None:
        self.world = world
        self.stimuli = stimuli
        self.bus = bus

    async def run(self, ctx: TickContext) -> None:
        self.stimuli.begin_tick()
        created = 0
        for room_id in self.world.query(ComponentKind.ROOM):
            created += len(self.process_room(room_id))
        if is_verbose():
            log_deterministic(f"  {LOG_TAG_DETERMINISTIC} [Rooms] tick {ctx.tick}: {created} stimuli created")

    def process_room(self, room_id: int) -> List[int]:
        """Create this tick's stimuli for one room; returns their ids."""
        room: Room = self.world.get_component(room_id, ComponentKind.ROOM)
        created: List[int] = []

        queued, room.queued_input = room.queued_input, []
        for message in queued:
            result = self.stimuli.create_user_message(room_id, message)
            self._keep(created, result, room)
            if self.bus is not None and not isinstance(result, ValidationError):
                self.bus.emit(
                    EventType.STIMULUS,
                    room_channel(room_id),
                    {"stimulus_id": result, "type": "auditory", "source_kind": "user", "message": message},
                )

        for agent_id in room_occupants(self.world, room_id):
            appearance: Optional[Appearance] = self.world.get_component(agent_id, ComponentKind.APPEARANCE)
            if appearance is None:
                continue
            agent: Optional[Agent] = self.world.get_component(agent_id, ComponentKind.AGENT)
            payload = {
                "agent_id": agent_id,
                "name": agent.name if agent else str(agent_id),
                "description": appearance.description,
                "expression": appearance.expression,
                "activity": appearance.activity,
                "changed": appearance.dirty,
            }
            self._keep(created, self.stimuli.create_appearance(agent_id, room_id, payload), room)
            appearance.dirty = False

        if room.ambience:
            self._keep(created, self.stimuli.create_ambient(room_id, room.ambience), room)

        return created

    @staticmethod
    def _keep(created: List[int], result, room: Room) -> None:
        if isinstance(result, ValidationError):
            log_warning(f"  {LOG_TAG_WARNING} [Rooms] {room.name}: stimulus rejected: {result.message}")
            return
        created.append(result)
