"""Action modules, the registry, and the dispatcher."""

from .registry import ActionContext, ActionModule, ActionRegistry, ActionResult, OccupancyChange
from .builtin import (
    BUILTIN_ACTIONS,
    MoveAction,
    ReflectAction,
    SpeakAction,
    WaitAction,
    build_default_registry,
)
from .dispatcher import ActionDispatcher

__all__ = [
    "ActionContext",
    "ActionModule",
    "ActionRegistry",
    "ActionResult",
    "OccupancyChange",
    "BUILTIN_ACTIONS",
    "MoveAction",
    "ReflectAction",
    "SpeakAction",
    "WaitAction",
    "build_default_registry",
    "ActionDispatcher",
]
