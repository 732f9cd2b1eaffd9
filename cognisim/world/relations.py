"""Relation kinds, their declared properties, and metadata records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from .components import StimulusSource


class RelationKind(str, Enum):
    OCCUPIES = "occupies"                  # agent -> room
    IN_ROOM = "in_room"                    # stimulus -> room
    SOURCED_FROM = "sourced_from"          # stimulus -> source entity
    INTERACTING_WITH = "interacting_with"  # agent -> agent


@dataclass(frozen=True)
class RelationSpec:
    """Declared behaviour of a relation kind.

    ``exclusive``: a source holds at most one target; adding replaces.
    ``cascade_on_target_removal``: destroying the target destroys the sources.
    """

    kind: RelationKind
    exclusive: bool = False
    cascade_on_target_removal: bool = False


RELATION_SPECS: Dict[RelationKind, RelationSpec] = {
    RelationKind.OCCUPIES: RelationSpec(RelationKind.OCCUPIES, exclusive=True),
    RelationKind.IN_ROOM: RelationSpec(
        RelationKind.IN_ROOM, exclusive=True, cascade_on_target_removal=True
    ),
    RelationKind.SOURCED_FROM: RelationSpec(
        RelationKind.SOURCED_FROM, exclusive=True, cascade_on_target_removal=True
    ),
    RelationKind.INTERACTING_WITH: RelationSpec(RelationKind.INTERACTING_WITH),
}


@dataclass
class OccupancyMeta:
    since: float
    intensity: float = 1.0


@dataclass
class StimulusRoomMeta:
    timestamp: float
    intensity: float = 1.0


@dataclass
class StimulusSourceMeta:
    timestamp: float
    strength: float
    source_kind: StimulusSource


@dataclass
class InteractionMeta:
    since: float
    kind: str = "conversation"
