"""Action modules and the registry the dispatcher resolves them from."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from cognisim.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from cognisim.events import EventBus
    from cognisim.stimulus import StimulusManager
    from cognisim.world import WorldStore


@dataclass
class ActionResult:
    """Outcome of one dispatched action."""

    success: bool
    message: str
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)
    tool: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "success": self.success,
            "result": self.message,
            "timestamp": self.timestamp,
            "data": self.data,
        }


@dataclass
class OccupancyChange:
    """A room change requested during fan-out, applied after the barrier."""

    agent_id: int
    room_id: int


@dataclass
class ActionContext:
    """What an action module may touch while it executes."""

    world: "WorldStore"
    stimuli: "StimulusManager"
    bus: Optional["EventBus"]
    tick: int
    now: float
    staged: List[OccupancyChange] = field(default_factory=list)

    def stage_move(self, agent_id: int, room_id: int) -> None:
        self.staged.append(OccupancyChange(agent_id=agent_id, room_id=room_id))


class ActionModule(ABC):
    """Base class for a named action.

    Subclasses set ``name``, ``description`` and ``parameters_model`` and
    implement ``execute``. Parameters are validated against the pydantic model
    before ``execute`` is called.
    """

    name: str = ""
    description: str = ""
    parameters_model: Type[BaseModel] = BaseModel

    def validate(self, parameters: Mapping[str, Any]) -> Union[BaseModel, ValidationError]:
        try:
            return self.parameters_model.model_validate(dict(parameters or {}))
        except SchemaValidationError as exc:
            issues = [
                f"{'.'.join(str(part) for part in err.get('loc', [])) or 'root'}: {err.get('msg')}"
                for err in exc.errors(include_url=False)
            ]
            return ValidationError(f"Invalid parameters for action '{self.name}'", issues)

    @abstractmethod
    async def execute(self, ctx: ActionContext, agent_id: int, params: Any) -> ActionResult:
        ...

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_model.model_json_schema(),
        }

    def ok(self, ctx: ActionContext, message: str, **data: Any) -> ActionResult:
        return ActionResult(success=True, message=message, timestamp=ctx.now, data=data, tool=self.name)

    def fail(self, ctx: ActionContext, message: str, **data: Any) -> ActionResult:
        return ActionResult(success=False, message=message, timestamp=ctx.now, data=data, tool=self.name)


class ActionRegistry:
    """Name-to-module table; lookups are case-sensitive."""

    def __init__(self) -> None:
        self._modules: Dict[str, ActionModule] = {}

    def register(self, module: ActionModule) -> None:
        if not module.name:
            raise ValueError(f"{type(module).__name__} has no name")
        if module.name in self._modules:
            raise ValueError(f"Action '{module.name}' is already registered")
        self._modules[module.name] = module

    def get(self, name: str) -> Optional[ActionModule]:
        return self._modules.get(name)

    def lookup(self, name: str) -> Union[ActionModule, NotFoundError]:
        module = self._modules.get(name)
        if module is None:
            return NotFoundError("action", name)
        return module

    def names(self) -> List[str]:
        return sorted(self._modules)

    def describe(self) -> List[Dict[str, Any]]:
        return [self._modules[name].describe() for name in self.names()]

    def __contains__(self, name: object) -> bool:
        return name in self._modules

    def __len__(self) -> int:
        return len(self._modules)
