"""Built-in action modules: speak, wait, move, reflect."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field

from cognisim.errors import NotFoundError, ValidationError
from cognisim.events import EventType
from cognisim.stimulus import MAX_CONTENT_LENGTH
from cognisim.world import (
    Agent,
    ComponentKind,
    InteractionMeta,
    RelationKind,
    Room,
    agent_room,
    find_agent,
    find_room,
)

from .registry import ActionContext, ActionModule, ActionRegistry, ActionResult


def _agent_name(ctx: ActionContext, agent_id: int) -> str:
    agent: Optional[Agent] = ctx.world.get_component(agent_id, ComponentKind.AGENT)
    return agent.name if agent else f"Agent {agent_id}"


class SpeakParameters(BaseModel):
    message: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH)
    target: Optional[Union[int, str]] = None


class SpeakAction(ActionModule):
    name = "speak"
    description = "Say something out loud to everyone in your current room, optionally addressed to one agent."
    parameters_model = SpeakParameters

    async def execute(self, ctx: ActionContext, agent_id: int, params: SpeakParameters) -> ActionResult:
        room_id = agent_room(ctx.world, agent_id)
        if room_id is None:
            return self.fail(ctx, "You are not in a room")

        target_id = None
        if params.target is not None:
            target_id = find_agent(ctx.world, params.target)
            if target_id is None:
                return self.fail(
                    ctx, f"Unknown agent: {params.target}", error=str(NotFoundError("agent", params.target))
                )

        extra = {"target": target_id} if target_id is not None else {}
        created = ctx.stimuli.create_speech(agent_id, room_id, params.message, **extra)
        if isinstance(created, ValidationError):
            return self.fail(ctx, created.message, issues=created.issues)

        if target_id is not None and target_id != agent_id:
            ctx.world.add_relation(
                RelationKind.INTERACTING_WITH, agent_id, target_id, InteractionMeta(since=ctx.now, kind="speech")
            )

        if ctx.bus is not None:
            ctx.bus.publish_agent_event(
                agent_id,
                room_id,
                EventType.SPEECH,
                {
                    "agent_id": agent_id,
                    "name": _agent_name(ctx, agent_id),
                    "message": params.message,
                    "target": target_id,
                    "stimulus_id": created,
                },
            )
        return self.ok(ctx, f"Said: {params.message}", stimulus_id=created, room=room_id, target=target_id)


class WaitParameters(BaseModel):
    reason: str = ""
    is_thinking: bool = False


class WaitAction(ActionModule):
    name = "wait"
    description = "Do nothing this tick, optionally noting why or that you are thinking."
    parameters_model = WaitParameters

    async def execute(self, ctx: ActionContext, agent_id: int, params: WaitParameters) -> ActionResult:
        message = "Thinking" if params.is_thinking else "Waiting"
        if params.reason:
            message = f"{message}: {params.reason}"
        return self.ok(ctx, message, reason=params.reason, is_thinking=params.is_thinking)


class MoveParameters(BaseModel):
    room: Union[int, str]


class MoveAction(ActionModule):
    """Request a room change.

    The change is staged on the context; the dispatcher applies it once every
    agent's action for the tick has finished.
    """

    name = "move"
    description = "Walk to another room, given by its id or name."
    parameters_model = MoveParameters

    async def execute(self, ctx: ActionContext, agent_id: int, params: MoveParameters) -> ActionResult:
        room_id = find_room(ctx.world, params.room)
        if room_id is None:
            return self.fail(ctx, f"Unknown room: {params.room}", error=str(NotFoundError("room", params.room)))
        if agent_room(ctx.world, agent_id) == room_id:
            return self.fail(ctx, "You are already in that room", room=room_id)

        room: Room = ctx.world.get_component(room_id, ComponentKind.ROOM)
        ctx.stage_move(agent_id, room_id)
        return self.ok(ctx, f"Moved to {room.name}", room=room_id)


class ReflectParameters(BaseModel):
    thought: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH)


class ReflectAction(ActionModule):
    name = "reflect"
    description = "Record a private thought that feeds back into your own perception."
    parameters_model = ReflectParameters

    async def execute(self, ctx: ActionContext, agent_id: int, params: ReflectParameters) -> ActionResult:
        room_id = agent_room(ctx.world, agent_id)
        if room_id is None:
            return self.fail(ctx, "You are not in a room")
        created = ctx.stimuli.create_thought(agent_id, room_id, params.thought)
        if isinstance(created, ValidationError):
            return self.fail(ctx, created.message, issues=created.issues)
        if ctx.bus is not None:
            ctx.bus.publish_agent_event(
                agent_id, None, EventType.THOUGHT, {"agent_id": agent_id, "thought": params.thought}
            )
        return self.ok(ctx, f"Reflected: {params.thought}", stimulus_id=created)


BUILTIN_ACTIONS = (SpeakAction, WaitAction, MoveAction, ReflectAction)


def build_default_registry() -> ActionRegistry:
    registry = ActionRegistry()
    for action_cls in BUILTIN_ACTIONS:
        registry.register(action_cls())
    return registry
