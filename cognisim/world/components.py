"""Component records stored in the WorldStore.

Each component type is a plain dataclass. ``ComponentKind`` names the column a
record lives in and ``COMPONENT_TYPES`` maps kinds to record classes; the
store builds its reverse index from this table once at construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


# =============================
# Enumerations
# =============================


class StimulusType(str, Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    COGNITIVE = "cognitive"
    TECHNICAL = "technical"
    ENVIRONMENTAL = "environmental"


class StimulusSource(str, Enum):
    """What kind of thing produced a stimulus."""

    AGENT = "agent"
    SELF = "self"
    SYSTEM = "system"
    ROOM = "room"
    ENVIRONMENT = "environment"
    USER = "user"


class AttentionMode(str, Enum):
    FOCUSED = "focused"
    SCANNING = "scanning"
    ALERT = "alert"
    DIVIDED = "divided"
    WANDERING = "wandering"


class ReasoningMode(str, Enum):
    REACTIVE = "reactive"
    DELIBERATIVE = "deliberative"
    REFLECTIVE = "reflective"
    EXPLORATORY = "exploratory"


class StageType(str, Enum):
    PERCEPTION_ANALYSIS = "perception_analysis"
    SITUATION_ASSESSMENT = "situation_assessment"
    GOAL_ALIGNMENT = "goal_alignment"
    OPTION_GENERATION = "option_generation"
    EVALUATION = "evaluation"
    DECISION = "decision"
    META_REFLECTION = "meta_reflection"


StimulusContent = Union[str, Dict[str, Any]]


# =============================
# Nested value records
# =============================


@dataclass
class Goal:
    description: str
    priority: float = 0.5
    active: bool = True


@dataclass
class MemoryItem:
    """One working-memory entry (insight, observation, experience)."""

    content: str
    kind: str = "observation"
    importance: float = 0.5
    timestamp: float = 0.0


@dataclass
class ExperienceEntry:
    tool: str
    success: bool
    message: str
    tick: int
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FocusItem:
    """One entry of the attention focus stack."""

    target: str
    kind: str
    relevance: float
    urgency: float
    timestamp: float
    decay_rate: float = 0.1
    source: Optional[int] = None

    @property
    def score(self) -> float:
        return 0.6 * self.relevance + 0.4 * self.urgency


@dataclass
class AttentionFilters:
    include_types: List[StimulusType] = field(default_factory=list)
    exclude_types: List[StimulusType] = field(default_factory=list)
    min_relevance: float = 0.3
    min_urgency: float = 0.0


@dataclass
class AttentionMetrics:
    focus_switches: int = 0
    missed_important: int = 0
    last_focus_change: float = 0.0


@dataclass
class PerceivedStimulus:
    """Compact view of a stimulus handed from perception to cognition."""

    stimulus_id: int
    type: StimulusType
    source: int
    source_kind: StimulusSource
    content: str
    priority: float
    timestamp: float


@dataclass
class ReasoningStage:
    stage: StageType
    content: str
    confidence: float
    timestamp: float
    evidence: List[str] = field(default_factory=list)
    alternatives: List[str] = field(default_factory=list)


@dataclass
class ReasoningThread:
    mode: ReasoningMode
    stages: List[ReasoningStage]
    started_at: float
    completed_at: float

    def stage(self, stage_type: StageType) -> Optional[ReasoningStage]:
        for entry in self.stages:
            if entry.stage == stage_type:
                return entry
        return None


@dataclass
class QualitySample:
    coherence: float
    goal_alignment: float
    novelty: float
    depth: float
    timestamp: float

    @property
    def overall(self) -> float:
        return (self.coherence + self.goal_alignment + self.depth) / 3


@dataclass
class MetaObservation:
    pattern: str
    impact: str = "low"
    description: str = ""
    timestamp: float = 0.0
    resolved: bool = False


# =============================
# Components
# =============================


@dataclass
class Agent:
    name: str
    role: str = ""
    system_prompt: str = ""
    active: bool = True


@dataclass
class Room:
    name: str
    description: str = ""
    ambience: str = ""
    capacity: Optional[int] = None
    # Messages waiting to be turned into stimuli by the RoomSystem
    queued_input: List[str] = field(default_factory=list)


@dataclass
class Appearance:
    description: str = ""
    expression: str = ""
    activity: str = ""
    updated_at: float = 0.0
    # Set when the appearance changed since the RoomSystem last announced it
    dirty: bool = True


@dataclass
class Goals:
    items: List[Goal] = field(default_factory=list)

    def active(self) -> List[Goal]:
        return [goal for goal in self.items if goal.active]


@dataclass
class Plan:
    steps: List[str] = field(default_factory=list)
    current_step: int = 0
    updated_at: float = 0.0


@dataclass
class WorkingMemory:
    capacity: int = 20
    items: List[MemoryItem] = field(default_factory=list)


@dataclass
class ReasoningContext:
    current_mode: ReasoningMode = ReasoningMode.REACTIVE
    preferred_mode: Optional[ReasoningMode] = None
    follow_attention: bool = False
    min_stages_required: int = 3
    threads: List[ReasoningThread] = field(default_factory=list)
    last_deep_reasoning: float = 0.0
    last_meta_evaluation: float = 0.0
    quality_history: List[QualitySample] = field(default_factory=list)
    meta_observations: List[MetaObservation] = field(default_factory=list)
    strategies: List[str] = field(default_factory=list)


@dataclass
class Attention:
    capacity: int = 5
    mode: AttentionMode = AttentionMode.WANDERING
    focus: List[FocusItem] = field(default_factory=list)
    filters: AttentionFilters = field(default_factory=AttentionFilters)
    metrics: AttentionMetrics = field(default_factory=AttentionMetrics)
    last_update: float = 0.0


@dataclass
class Perception:
    room: Optional[int] = None
    stimuli: List[PerceivedStimulus] = field(default_factory=list)
    total_gathered: int = 0
    timestamp: float = 0.0


@dataclass
class Thought:
    content: str
    stage: StageType
    confidence: float
    timestamp: float


@dataclass
class PendingAction:
    tool: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0


@dataclass
class ExperienceLog:
    limit: int = 50
    entries: List[ExperienceEntry] = field(default_factory=list)


@dataclass
class Stimulus:
    type: StimulusType
    source: int
    source_kind: StimulusSource
    timestamp: float
    content: StimulusContent
    decay: int
    intensity: float = 1.0


@dataclass
class Cleanup:
    """Tag: the entity is removed by the next sweep."""


class ComponentKind(str, Enum):
    AGENT = "agent"
    ROOM = "room"
    APPEARANCE = "appearance"
    GOALS = "goals"
    PLAN = "plan"
    WORKING_MEMORY = "working_memory"
    REASONING_CONTEXT = "reasoning_context"
    ATTENTION = "attention"
    PERCEPTION = "perception"
    THOUGHT = "thought"
    PENDING_ACTION = "pending_action"
    EXPERIENCE_LOG = "experience_log"
    STIMULUS = "stimulus"
    CLEANUP = "cleanup"


COMPONENT_TYPES: Dict[ComponentKind, type] = {
    ComponentKind.AGENT: Agent,
    ComponentKind.ROOM: Room,
    ComponentKind.APPEARANCE: Appearance,
    ComponentKind.GOALS: Goals,
    ComponentKind.PLAN: Plan,
    ComponentKind.WORKING_MEMORY: WorkingMemory,
    ComponentKind.REASONING_CONTEXT: ReasoningContext,
    ComponentKind.ATTENTION: Attention,
    ComponentKind.PERCEPTION: Perception,
    ComponentKind.THOUGHT: Thought,
    ComponentKind.PENDING_ACTION: PendingAction,
    ComponentKind.EXPERIENCE_LOG: ExperienceLog,
    ComponentKind.STIMULUS: Stimulus,
    ComponentKind.CLEANUP: Cleanup,
}
