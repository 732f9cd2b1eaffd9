"""Entity/component/relation world model."""

from .components import (
    COMPONENT_TYPES,
    Agent,
    Appearance,
    Attention,
    AttentionFilters,
    AttentionMetrics,
    AttentionMode,
    Cleanup,
    ComponentKind,
    ExperienceEntry,
    ExperienceLog,
    FocusItem,
    Goal,
    Goals,
    MemoryItem,
    MetaObservation,
    PendingAction,
    PerceivedStimulus,
    Perception,
    Plan,
    QualitySample,
    ReasoningContext,
    ReasoningMode,
    ReasoningStage,
    ReasoningThread,
    Room,
    StageType,
    Stimulus,
    StimulusSource,
    StimulusType,
    Thought,
    WorkingMemory,
)
from .relations import (
    RELATION_SPECS,
    InteractionMeta,
    OccupancyMeta,
    RelationKind,
    RelationSpec,
    StimulusRoomMeta,
    StimulusSourceMeta,
)
from .store import WorldStore
from .queries import (
    active_agents,
    agent_room,
    can_enter,
    find_agent,
    find_room,
    move_agent,
    room_occupants,
)
from .factories import create_room, spawn_agent

__all__ = [
    "WorldStore",
    "COMPONENT_TYPES",
    "ComponentKind",
    "RELATION_SPECS",
    "RelationKind",
    "RelationSpec",
    "OccupancyMeta",
    "StimulusRoomMeta",
    "StimulusSourceMeta",
    "InteractionMeta",
    "Agent",
    "Appearance",
    "Attention",
    "AttentionFilters",
    "AttentionMetrics",
    "AttentionMode",
    "Cleanup",
    "ExperienceEntry",
    "ExperienceLog",
    "FocusItem",
    "Goal",
    "Goals",
    "MemoryItem",
    "MetaObservation",
    "PendingAction",
    "PerceivedStimulus",
    "Perception",
    "Plan",
    "QualitySample",
    "ReasoningContext",
    "ReasoningMode",
    "ReasoningStage",
    "ReasoningThread",
    "Room",
    "StageType",
    "Stimulus",
    "StimulusSource",
    "StimulusType",
    "Thought",
    "WorkingMemory",
    "active_agents",
    "agent_room",
    "can_enter",
    "find_agent",
    "find_room",
    "move_agent",
    "room_occupants",
    "create_room",
    "spawn_agent",
]
