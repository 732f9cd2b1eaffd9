"""Executes agents' pending actions against the action registry.

Modules run concurrently for every agent with a pending action. Changes to
the exclusive ``OCCUPIES`` relation are staged during that fan-out and applied
afterwards in ascending agent-id order, re-checking room capacity at the time
each one is applied. An agent that loses the race gets a failure result.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from cognisim.errors import NotFoundError, ValidationError
from cognisim.events import EventBus, EventType
from cognisim.logging_utils import LOG_TAG_ERROR, LOG_TAG_DETERMINISTIC, is_verbose, log_deterministic, log_error
from cognisim.memory import record_experience
from cognisim.scheduler import fan_out
from cognisim.stimulus import StimulusManager
from cognisim.world import (
    Appearance,
    ComponentKind,
    ExperienceEntry,
    ExperienceLog,
    PendingAction,
    Room,
    WorldStore,
    agent_room,
    move_agent,
)

from .registry import ActionContext, ActionRegistry, ActionResult


class ActionDispatcher:
    def __init__(
        self,
        world: WorldStore,
        registry: ActionRegistry,
        stimuli: StimulusManager,
        bus: Optional[EventBus] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.world = world
        self.registry = registry
        self.stimuli = stimuli
        self.bus = bus
        self.clock = clock

    def catalog(self) -> List[Dict[str, Any]]:
        """Action descriptions handed to the reasoning context."""
        return self.registry.describe()

    def _context(self, tick: int) -> ActionContext:
        return ActionContext(world=self.world, stimuli=self.stimuli, bus=self.bus, tick=tick, now=self.clock())

    async def _run(self, ctx: ActionContext, tool: str, agent_id: int, parameters: Mapping[str, Any]) -> ActionResult:
        module = self.registry.lookup(tool)
        if isinstance(module, NotFoundError):
            return ActionResult(
                success=False, message=f"Unknown action: {tool}", timestamp=ctx.now, data={"error": str(module)}, tool=tool
            )

        params = module.validate(parameters)
        if isinstance(params, ValidationError):
            return ActionResult(
                success=False, message=params.message, timestamp=ctx.now, data={"issues": params.issues}, tool=tool
            )

        try:
            result = await module.execute(ctx, agent_id, params)
        except Exception as exc:
            log_error(f"  {LOG_TAG_ERROR} [Actions] agent {agent_id} '{tool}' raised: {exc}")
            return ActionResult(
                success=False, message=f"Action {tool} failed: {exc}", timestamp=ctx.now, tool=tool
            )
        result.tool = result.tool or tool
        return result

    def _resolve_staged(self, ctx: ActionContext, results: Dict[int, ActionResult]) -> None:
        for change in sorted(ctx.staged, key=lambda c: c.agent_id):
            result = results.get(change.agent_id)
            room: Optional[Room] = self.world.get_component(change.room_id, ComponentKind.ROOM)
            name = room.name if room else str(change.room_id)
            if not move_agent(self.world, change.agent_id, change.room_id, now=ctx.now):
                if result is not None:
                    result.success = False
                    result.message = f"Room {name} is full"
                    result.data["room"] = change.room_id
                continue
            appearance: Optional[Appearance] = self.world.get_component(change.agent_id, ComponentKind.APPEARANCE)
            if appearance is not None:
                appearance.dirty = True
        ctx.staged.clear()

    def _finish(self, agent_id: int, result: ActionResult, tick: int) -> None:
        self.world.remove_component(agent_id, ComponentKind.PENDING_ACTION)

        log: Optional[ExperienceLog] = self.world.get_component(agent_id, ComponentKind.EXPERIENCE_LOG)
        if log is not None:
            record_experience(
                log,
                ExperienceEntry(
                    tool=result.tool,
                    success=result.success,
                    message=result.message,
                    tick=tick,
                    timestamp=result.timestamp,
                    data=dict(result.data),
                ),
            )

        if self.bus is not None:
            self.bus.publish_agent_event(
                agent_id,
                agent_room(self.world, agent_id),
                EventType.AGENT_ACTION,
                {"agent_id": agent_id, "tick": tick, **result.to_payload()},
            )
        if is_verbose():
            status = "ok" if result.success else "failed"
            log_deterministic(f"  {LOG_TAG_DETERMINISTIC} [Actions] agent {agent_id} {result.tool} {status}: {result.message}")

    async def execute(
        self, tool: str, agent_id: int, parameters: Optional[Mapping[str, Any]] = None, *, tick: int = 0
    ) -> ActionResult:
        """Run one action immediately, including any room change it stages."""
        ctx = self._context(tick)
        result = await self._run(ctx, tool, agent_id, parameters or {})
        self._resolve_staged(ctx, {agent_id: result})
        self._finish(agent_id, result, tick)
        return result

    async def dispatch_pending(self, agent_ids: Iterable[int], *, tick: int) -> Dict[int, ActionResult]:
        """Run every listed agent's pending action concurrently.

        Agents without a pending action are skipped. A worker that raises is
        turned into a failure result for that agent only.
        """
        ctx = self._context(tick)
        pending: Dict[int, PendingAction] = {}
        for agent_id in sorted(agent_ids):
            action = self.world.get_component(agent_id, ComponentKind.PENDING_ACTION)
            if action is not None:
                pending[agent_id] = action
        if not pending:
            return {}

        async def worker(agent_id: int) -> ActionResult:
            action = pending[agent_id]
            return await self._run(ctx, action.tool, agent_id, action.parameters)

        results, failures = await fan_out(list(pending), worker, label="Actions")
        for agent_id, exc in failures.items():
            results[agent_id] = ActionResult(
                success=False,
                message=f"Action {pending[agent_id].tool} failed: {exc}",
                timestamp=ctx.now,
                tool=pending[agent_id].tool,
            )

        self._resolve_staged(ctx, results)
        for agent_id in sorted(results):
            self._finish(agent_id, results[agent_id], tick)
        return results
