"""
Cognisim - concurrent runtime for LLM-driven agent simulations.

Agents live in rooms, perceive stimuli, attend to what matters, reason in
stages through a cognition oracle, and act through registered action modules.
A tick scheduler drives the systems and an event bus streams the results to
subscribers.

No file I/O required. No database required.
The oracle, action registry, report sink, and clock are injected by the user.
"""

__version__ = "0.1.0"

# Runtime
from .runtime import SimulationRuntime
from .scheduler import Scheduler, System, TickContext, fan_out

# World model
from .world import (
    WorldStore,
    ComponentKind,
    RelationKind,
    COMPONENT_TYPES,
    RELATION_SPECS,
    Goal,
    StimulusType,
    StimulusSource,
    AttentionMode,
    ReasoningMode,
    StageType,
    create_room,
    spawn_agent,
)
from .stimulus import StimulusManager, DecayRate, validate_stimulus_payload
from .perception import PerceptionFilter
from .attention import AttentionSystem
from .rooms import RoomSystem

# Cognition
from .cognition import (
    CognitionOracle,
    LLMOracle,
    ScriptedOracle,
    OracleResponse,
    ReasoningEngine,
    MetaCognition,
    PromptLibrary,
    DEFAULT_PROMPTS,
)

# Actions
from .actions import (
    ActionDispatcher,
    ActionModule,
    ActionRegistry,
    ActionResult,
    build_default_registry,
)

# Events and distribution
from .events import Event, EventBus, EventType, Subscription
from .distribution import EventBatcher, coalesce
from .protocol import ClientMessage, SubscriberSession
from .sink import ReportSink, InMemorySink, JsonlSink, SinkMirror

# Errors
from .errors import CognisimError, ValidationError, NotFoundError, OracleError, SchedulerFault

__all__ = [
    # Runtime
    "SimulationRuntime",
    "Scheduler",
    "System",
    "TickContext",
    "fan_out",
    # World model
    "WorldStore",
    "ComponentKind",
    "RelationKind",
    "COMPONENT_TYPES",
    "RELATION_SPECS",
    "Goal",
    "StimulusType",
    "StimulusSource",
    "AttentionMode",
    "ReasoningMode",
    "StageType",
    "create_room",
    "spawn_agent",
    "StimulusManager",
    "DecayRate",
    "validate_stimulus_payload",
    "PerceptionFilter",
    "AttentionSystem",
    "RoomSystem",
    # Cognition
    "CognitionOracle",
    "LLMOracle",
    "ScriptedOracle",
    "OracleResponse",
    "ReasoningEngine",
    "MetaCognition",
    "PromptLibrary",
    "DEFAULT_PROMPTS",
    # Actions
    "ActionDispatcher",
    "ActionModule",
    "ActionRegistry",
    "ActionResult",
    "build_default_registry",
    # Events
    "Event",
    "EventBus",
    "EventType",
    "Subscription",
    "EventBatcher",
    "coalesce",
    "ClientMessage",
    "SubscriberSession",
    "ReportSink",
    "InMemorySink",
    "JsonlSink",
    "SinkMirror",
    # Errors
    "CognisimError",
    "ValidationError",
    "NotFoundError",
    "OracleError",
    "SchedulerFault",
]
