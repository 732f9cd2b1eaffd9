"""Stimulus lifecycle: creation, gathering, prioritization, decay, and sweep.

A stimulus is an ephemeral entity carrying a ``Stimulus`` component plus two
exclusive relations: ``IN_ROOM`` (with intensity) and ``SOURCED_FROM`` (with a
type-dependent strength). Removal is two-phase. ``decay_pass`` only tags
expired or orphaned stimuli with ``Cleanup``; ``sweep`` destroys everything
tagged. Systems that iterate stimuli mid-tick therefore never see an entity
vanish underneath them.
"""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type, TypeVar, Union

from .errors import ValidationError
from .world import (
    Cleanup,
    ComponentKind,
    PerceivedStimulus,
    RelationKind,
    Stimulus,
    StimulusRoomMeta,
    StimulusSource,
    StimulusSourceMeta,
    StimulusType,
    WorldStore,
    agent_room,
)
from .world.components import StimulusContent


MAX_CONTENT_LENGTH = 10_000
MIN_INTENSITY = 0.0
MAX_INTENSITY = 100.0
DEFAULT_INTENSITY = 1.0
MAX_STIMULI_PER_ROOM_PER_TICK = 50


class DecayRate(int, Enum):
    """Named lifetimes, in cleanup passes."""

    IMMEDIATE = 1
    SHORT = 2
    EXTENDED = 3
    PERSISTENT = 4


TYPE_PRIORITY: Dict[StimulusType, float] = {
    StimulusType.VISUAL: 3,
    StimulusType.AUDITORY: 4,
    StimulusType.COGNITIVE: 5,
    StimulusType.TECHNICAL: 2,
    StimulusType.ENVIRONMENTAL: 1,
}

DEFAULT_DECAY: Dict[StimulusType, int] = {
    StimulusType.VISUAL: DecayRate.IMMEDIATE,
    StimulusType.AUDITORY: DecayRate.SHORT,
    StimulusType.COGNITIVE: DecayRate.SHORT,
    StimulusType.TECHNICAL: DecayRate.SHORT,
    StimulusType.ENVIRONMENTAL: DecayRate.IMMEDIATE,
}

SOURCE_STRENGTH: Dict[StimulusType, float] = {
    StimulusType.VISUAL: 1.0,
    StimulusType.AUDITORY: 1.0,
    StimulusType.COGNITIVE: 1.0,
    StimulusType.TECHNICAL: 0.8,
    StimulusType.ENVIRONMENTAL: 0.5,
}


EnumT = TypeVar("EnumT", bound=Enum)


def _coerce_enum(enum_type: Type[EnumT], value: Any) -> Optional[EnumT]:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        return None


def content_text(content: StimulusContent) -> str:
    """Flatten a stimulus payload to text for matching and prompts."""
    if isinstance(content, str):
        return content
    return json.dumps(content, sort_keys=True, default=str)


def validate_stimulus_payload(
    type: Any,
    source_kind: Any,
    content: Any,
    *,
    intensity: Any = DEFAULT_INTENSITY,
    decay: Any = None,
) -> Union[Tuple[StimulusType, StimulusSource], ValidationError]:
    """Check a stimulus payload without touching the world.

    Returns the coerced ``(type, source_kind)`` pair on success, or a
    ``ValidationError`` describing every problem found.
    """
    issues: List[str] = []

    stimulus_type = _coerce_enum(StimulusType, type)
    if stimulus_type is None:
        allowed = ", ".join(member.value for member in StimulusType)
        issues.append(f"type: {type!r} is not one of ({allowed})")

    source = _coerce_enum(StimulusSource, source_kind)
    if source is None:
        allowed = ", ".join(member.value for member in StimulusSource)
        issues.append(f"source_kind: {source_kind!r} is not one of ({allowed})")

    if not isinstance(content, (str, dict)):
        issues.append(f"content: expected text or mapping, got {type_name(content)}")
    else:
        text = content_text(content)
        if not text.strip():
            issues.append("content: must not be empty")
        elif len(text) > MAX_CONTENT_LENGTH:
            issues.append(f"content: {len(text)} characters exceeds limit of {MAX_CONTENT_LENGTH}")

    if isinstance(intensity, bool) or not isinstance(intensity, (int, float)):
        issues.append(f"intensity: expected a number, got {type_name(intensity)}")
    elif not MIN_INTENSITY <= intensity <= MAX_INTENSITY:
        issues.append(f"intensity: {intensity} outside [{MIN_INTENSITY:g}, {MAX_INTENSITY:g}]")

    if decay is not None:
        if isinstance(decay, bool) or not isinstance(decay, int):
            issues.append(f"decay: expected an integer, got {type_name(decay)}")
        elif decay < 0:
            issues.append(f"decay: {decay} must be >= 0")

    if issues:
        return ValidationError("Invalid stimulus payload", issues)
    return stimulus_type, source


def type_name(value: Any) -> str:
    return type(value).__name__ if value is not None else "None"


class StimulusManager:
    """Creates, gathers, ranks, decays, and removes stimulus entities."""

    def __init__(
        self,
        world: WorldStore,
        *,
        clock: Callable[[], float] = time.time,
        max_per_room_per_tick: int = MAX_STIMULI_PER_ROOM_PER_TICK,
    ) -> None:
        self.world = world
        self.clock = clock
        self.max_per_room_per_tick = max_per_room_per_tick
        self._created_this_tick: Dict[int, int] = {}

    def begin_tick(self) -> None:
        """Reset the per-room creation budget."""
        self._created_this_tick.clear()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        type: Union[StimulusType, str],
        source: int,
        room_id: int,
        content: StimulusContent,
        decay: Optional[int] = None,
        *,
        source_kind: Union[StimulusSource, str] = StimulusSource.AGENT,
        intensity: float = DEFAULT_INTENSITY,
    ) -> Union[int, ValidationError]:
        """Create a stimulus entity, or return a ValidationError.

        On rejection nothing in the world is mutated.
        """
        checked = validate_stimulus_payload(
            type, source_kind, content, intensity=intensity, decay=decay
        )
        if isinstance(checked, ValidationError):
            return checked
        stimulus_type, resolved_kind = checked

        if not self.world.has_component(room_id, ComponentKind.ROOM):
            return ValidationError("Invalid stimulus payload", [f"room: unknown room {room_id}"])
        if not self.world.entity_exists(source):
            return ValidationError("Invalid stimulus payload", [f"source: unknown entity {source}"])
        if self._created_this_tick.get(room_id, 0) >= self.max_per_room_per_tick:
            return ValidationError(
                "Stimulus budget exhausted",
                [f"room {room_id}: more than {self.max_per_room_per_tick} stimuli this tick"],
            )

        now = self.clock()
        eid = self.world.create_entity()
        self.world.add_component(
            eid,
            Stimulus(
                type=stimulus_type,
                source=source,
                source_kind=resolved_kind,
                timestamp=now,
                content=content,
                decay=DEFAULT_DECAY[stimulus_type] if decay is None else decay,
                intensity=float(intensity),
            ),
        )
        self.world.add_relation(
            RelationKind.IN_ROOM, eid, room_id, StimulusRoomMeta(timestamp=now, intensity=float(intensity))
        )
        self.world.add_relation(
            RelationKind.SOURCED_FROM,
            eid,
            source,
            StimulusSourceMeta(
                timestamp=now,
                strength=SOURCE_STRENGTH[stimulus_type],
                source_kind=resolved_kind,
            ),
        )
        self._created_this_tick[room_id] = self._created_this_tick.get(room_id, 0) + 1
        return eid

    def create_speech(self, speaker: int, room_id: int, message: str, **extra: Any) -> Union[int, ValidationError]:
        payload: Dict[str, Any] = {"speaker": speaker, "message": message, **extra}
        return self.create(
            StimulusType.AUDITORY, speaker, room_id, payload, DecayRate.SHORT, source_kind=StimulusSource.AGENT
        )

    def create_appearance(self, agent_id: int, room_id: int, description: Dict[str, Any]) -> Union[int, ValidationError]:
        return self.create(
            StimulusType.VISUAL, agent_id, room_id, description, DecayRate.IMMEDIATE, source_kind=StimulusSource.ROOM
        )

    def create_thought(self, agent_id: int, room_id: int, thought: str) -> Union[int, ValidationError]:
        return self.create(
            StimulusType.COGNITIVE, agent_id, room_id, thought, DecayRate.SHORT, source_kind=StimulusSource.SELF
        )

    def create_ambient(self, room_id: int, description: str) -> Union[int, ValidationError]:
        return self.create(
            StimulusType.ENVIRONMENTAL,
            room_id,
            room_id,
            description,
            DecayRate.IMMEDIATE,
            source_kind=StimulusSource.ENVIRONMENT,
        )

    def create_user_message(
        self, room_id: int, message: str, *, target_agent: Optional[int] = None, sender: str = "user"
    ) -> Union[int, ValidationError]:
        """Inject outside input into a room, or directly into one agent's context.

        Direct input is a cognitive stimulus attributed to the agent itself, so
        it reaches that agent's perception without being heard by the room.
        """
        if target_agent is not None:
            return self.create(
                StimulusType.COGNITIVE,
                target_agent,
                room_id,
                {"sender": sender, "message": message, "direct": True},
                DecayRate.SHORT,
                source_kind=StimulusSource.USER,
            )
        return self.create(
            StimulusType.AUDITORY,
            room_id,
            room_id,
            {"sender": sender, "message": message},
            DecayRate.SHORT,
            source_kind=StimulusSource.USER,
        )

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get(self, eid: int) -> Optional[Stimulus]:
        return self.world.get_component(eid, ComponentKind.STIMULUS)

    def is_orphaned(self, eid: int) -> bool:
        """A stimulus missing its record or its room is structurally orphaned."""
        if not self.world.has_component(eid, ComponentKind.STIMULUS):
            return True
        room = self.world.get_relation_target(RelationKind.IN_ROOM, eid)
        return room is None or not self.world.entity_exists(room)

    def gather_for_agent(self, agent_id: int) -> List[int]:
        """Stimuli in the agent's room plus stimuli attributed to the agent.

        Orphans found along the way are tagged for cleanup and left out.
        """
        candidates: List[int] = []
        room = agent_room(self.world, agent_id)
        if room is not None:
            candidates.extend(self.world.get_relation_sources(RelationKind.IN_ROOM, room))
        candidates.extend(self.world.get_relation_sources(RelationKind.SOURCED_FROM, agent_id))

        gathered: List[int] = []
        seen = set()
        for eid in candidates:
            if eid in seen:
                continue
            seen.add(eid)
            if self.world.has_component(eid, ComponentKind.CLEANUP):
                continue
            if self.is_orphaned(eid):
                self.world.add_component(eid, Cleanup())
                continue
            gathered.append(eid)
        return gathered

    def priority(self, stimulus: Stimulus, now: Optional[float] = None) -> float:
        current = self.clock() if now is None else now
        age_seconds = max(0.0, current - stimulus.timestamp)
        return max(0.0, TYPE_PRIORITY[stimulus.type] - min(age_seconds / 10, 1.0))

    def prioritize(
        self,
        stimulus_ids: Iterable[int],
        agent_id: int,
        *,
        threshold: float = 0.0,
        now: Optional[float] = None,
    ) -> List[PerceivedStimulus]:
        """Rank stimuli for one agent, highest priority first.

        The agent's own visual stimuli are dropped (its appearance is not novel
        input to itself), as are cognitive stimuli attributed to someone else
        (thoughts and direct messages are private) and anything at or below
        ``threshold``.
        """
        current = self.clock() if now is None else now
        ranked: List[PerceivedStimulus] = []
        for eid in stimulus_ids:
            stimulus = self.get(eid)
            if stimulus is None:
                continue
            if stimulus.type == StimulusType.VISUAL and stimulus.source == agent_id:
                continue
            if stimulus.type == StimulusType.COGNITIVE and stimulus.source != agent_id:
                continue
            score = self.priority(stimulus, current)
            if score <= threshold:
                continue
            ranked.append(
                PerceivedStimulus(
                    stimulus_id=eid,
                    type=stimulus.type,
                    source=stimulus.source,
                    source_kind=stimulus.source_kind,
                    content=content_text(stimulus.content),
                    priority=score,
                    timestamp=stimulus.timestamp,
                )
            )
        ranked.sort(key=lambda item: (item.priority, item.timestamp), reverse=True)
        return ranked

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def decay_pass(self) -> List[int]:
        """Decrement decay and tag expired or orphaned stimuli for removal."""
        candidates = set(self.world.query(ComponentKind.STIMULUS))
        candidates.update(self.world.entities_with_relation(RelationKind.IN_ROOM))

        tagged: List[int] = []
        for eid in sorted(candidates):
            if self.world.has_component(eid, ComponentKind.CLEANUP):
                continue
            stimulus = self.get(eid)
            if stimulus is not None and stimulus.decay > 0:
                stimulus.decay -= 1
            if stimulus is None or stimulus.decay <= 0 or self.is_orphaned(eid):
                self.world.add_component(eid, Cleanup())
                tagged.append(eid)
        return tagged

    def sweep(self) -> List[int]:
        """Destroy every entity tagged with Cleanup."""
        removed = []
        for eid in self.world.query(ComponentKind.CLEANUP):
            if self.world.destroy_entity(eid):
                removed.append(eid)
        return removed

    def cleanup_pass(self) -> Tuple[List[int], List[int]]:
        """One full pass: tag, then sweep. Returns (tagged, removed)."""
        tagged = self.decay_pass()
        removed = self.sweep()
        return tagged, removed

    def active_count(self) -> int:
        return len(self.world.query(ComponentKind.STIMULUS))
