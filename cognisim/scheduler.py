"""
Tick scheduler.

Runs an ordered list of systems once per tick on a single asyncio loop:

1. Each system's ``run`` is awaited in order; systems never overlap.
2. Per-agent work inside a system goes through ``fan_out`` so agents proceed
   concurrently and one agent's failure never affects its siblings.
3. A tick that takes longer than half the interval is reported as an overrun.
4. An exception escaping a system is fatal: it is wrapped in SchedulerFault
   and the loop stops.

Stopping only cancels the wait between ticks. A tick already in progress runs
to completion, including any oracle calls it has in flight.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from .errors import SchedulerFault
from .logging_utils import (
    LOG_TAG_DETERMINISTIC,
    LOG_TAG_ERROR,
    LOG_TAG_WARNING,
    is_verbose,
    log_deterministic,
    log_error,
    log_warning,
)


DEFAULT_TICK_INTERVAL_SECONDS = 5.0


@dataclass
class TickContext:
    """State shared by all systems during one tick."""

    tick: int
    now: float
    clock: Callable[[], float] = time.time
    # label -> agent id -> exception
    failures: Dict[str, Dict[int, BaseException]] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)

    def record_failures(self, label: str, failures: Dict[int, BaseException]) -> None:
        if failures:
            self.failures.setdefault(label, {}).update(failures)

    @property
    def failure_count(self) -> int:
        return sum(len(entries) for entries in self.failures.values())


@runtime_checkable
class System(Protocol):
    name: str

    async def run(self, ctx: TickContext) -> None:
        ...


async def fan_out(
    agent_ids: Sequence[int],
    worker: Callable[[int], Awaitable[Any]],
    *,
    label: str,
) -> Tuple[Dict[int, Any], Dict[int, BaseException]]:
    """Run ``worker`` for every agent concurrently and wait for all of them.

    Returns ``(results, failures)`` keyed by agent id. A failing worker is
    logged and reported in ``failures``; the others are unaffected.
    """
    ids = list(agent_ids)
    if not ids:
        return {}, {}

    # return_exceptions=True keeps one agent's failure from cancelling the rest.
    outcomes = await asyncio.gather(*(worker(agent_id) for agent_id in ids), return_exceptions=True)

    results: Dict[int, Any] = {}
    failures: Dict[int, BaseException] = {}
    for agent_id, outcome in zip(ids, outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            failures[agent_id] = outcome
            log_error(f"  {LOG_TAG_ERROR} [{label}] agent {agent_id} failed: {type(outcome).__name__}: {outcome}")
        else:
            results[agent_id] = outcome
    return results, failures


class Scheduler:
    """Drives the systems at a fixed tick interval."""

    def __init__(
        self,
        systems: Sequence[System],
        tick_interval: float = DEFAULT_TICK_INTERVAL_SECONDS,
        on_tick: Optional[Callable[[TickContext], None]] = None,
        on_fault: Optional[Callable[[SchedulerFault], None]] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        self.systems: List[System] = list(systems)
        self.tick_interval = tick_interval
        self.on_tick = on_tick
        self.on_fault = on_fault
        self.clock = clock

        self.tick = 0
        self.running = False
        self.overruns = 0
        self.last_duration = 0.0
        self.last_fault: Optional[SchedulerFault] = None
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Start the tick loop on the running event loop.

        If a stopped loop is still finishing its last tick, it is told to keep
        going instead of exiting.
        """
        if self._task is not None and not self._task.done():
            self.running = True
            if self._wake is not None:
                self._wake.clear()
            return self._task
        self.running = True
        self._wake = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._loop())
        return self._task

    def stop(self) -> None:
        """Stop after the current tick; cancels only the wait between ticks."""
        self.running = False
        if self._wake is not None:
            self._wake.set()

    def reset(self) -> None:
        self.stop()
        self.tick = 0
        self.overruns = 0
        self.last_duration = 0.0
        self.last_fault = None

    async def wait_stopped(self) -> None:
        """Wait for the loop task (and any tick it is running) to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def run_tick(self) -> TickContext:
        """Run every system once. Raises SchedulerFault if a system fails."""
        self.tick += 1
        ctx = TickContext(tick=self.tick, now=self.clock(), clock=self.clock)
        started = time.perf_counter()

        for system in self.systems:
            try:
                await system.run(ctx)
            except Exception as exc:
                fault = SchedulerFault(tick=ctx.tick, system=system.name, underlying=exc)
                self._handle_fault(fault)
                raise fault from exc

        self.last_duration = time.perf_counter() - started
        if self.last_duration > self.tick_interval / 2:
            self.overruns += 1
            log_warning(
                f"  {LOG_TAG_WARNING} [Scheduler] tick {ctx.tick} took {self.last_duration:.3f}s "
                f"(more than half of the {self.tick_interval:.3f}s interval)"
            )
        if is_verbose():
            log_deterministic(
                f"  {LOG_TAG_DETERMINISTIC} [Scheduler] tick {ctx.tick} done in {self.last_duration:.3f}s "
                f"({ctx.failure_count} agent failures)"
            )

        if self.on_tick is not None:
            try:
                self.on_tick(ctx)
            except Exception as exc:  # pragma: no cover - diagnostic hook
                log_error(f"  {LOG_TAG_ERROR} [Scheduler] on_tick listener failed: {exc}")
        return ctx

    async def run(self, num_ticks: int) -> List[TickContext]:
        """Run ``num_ticks`` ticks back to back, without waiting between them."""
        contexts = []
        self.running = True
        try:
            for _ in range(num_ticks):
                if not self.running:
                    break
                contexts.append(await self.run_tick())
        finally:
            self.running = False
        return contexts

    def _handle_fault(self, fault: SchedulerFault) -> None:
        log_error(f"  {LOG_TAG_ERROR} [Scheduler] {fault}")
        self.running = False
        self.last_fault = fault
        if self.on_fault is not None:
            try:
                self.on_fault(fault)
            except Exception as exc:  # pragma: no cover - diagnostic hook
                log_error(f"  {LOG_TAG_ERROR} [Scheduler] on_fault listener failed: {exc}")

    async def _loop(self) -> None:
        if self._wake is None:
            self._wake = asyncio.Event()
        while self.running:
            tick_started = time.perf_counter()
            try:
                await self.run_tick()
            except SchedulerFault:
                return
            if not self.running:
                return
            remaining = self.tick_interval - (time.perf_counter() - tick_started)
            if remaining <= 0:
                continue
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
