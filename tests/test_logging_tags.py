"""Tests for log tags and colour handling in runtime output."""

from __future__ import annotations

import asyncio
import contextlib
import io

import pytest

from cognisim import SimulationRuntime
from cognisim.cognition import ScriptedOracle
from cognisim.logging_utils import Color, colored, log_llm, log_warning
from cognisim.scheduler import Scheduler


class SlowSystem:
    name = "slow"

    async def run(self, ctx):
        await asyncio.sleep(0.03)


def test_colored_respects_no_color(monkeypatch):
    monkeypatch.delenv("COGNISIM_NO_COLOR", raising=False)
    assert colored("hi", Color.RED) == "\033[91mhi\033[0m"
    assert colored("hi", Color.GREEN, bold=True).startswith("\033[1m\033[92m")

    monkeypatch.setenv("COGNISIM_NO_COLOR", "1")
    assert colored("hi", Color.RED) == "hi"


def test_log_helpers_print_plain_text_without_color(monkeypatch):
    monkeypatch.setenv("COGNISIM_NO_COLOR", "1")
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        log_llm("  [AI] [Reasoning] thinking")
        log_warning("  [~] [EventBus] dropped")
    assert buf.getvalue().splitlines() == ["  [AI] [Reasoning] thinking", "  [~] [EventBus] dropped"]


@pytest.mark.asyncio
async def test_overrun_is_tagged_as_warning(monkeypatch):
    monkeypatch.setenv("COGNISIM_NO_COLOR", "1")
    scheduler = Scheduler([SlowSystem()], tick_interval=0.02)

    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        await scheduler.run_tick()

    assert "[~] [Scheduler] tick 1 took" in buf.getvalue()
    assert scheduler.overruns == 1


@pytest.mark.asyncio
async def test_verbose_tick_tags_deterministic_and_oracle_steps(monkeypatch):
    monkeypatch.setenv("COGNISIM_NO_COLOR", "1")
    monkeypatch.setenv("COGNISIM_VERBOSE", "1")
    runtime = SimulationRuntime(ScriptedOracle(), clock=lambda: 1000.0, tick_interval=1.0)
    runtime.spawn_room("Lab", ambience="Freezers hum")
    runtime.spawn_agent("Ada", room="Lab")

    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        await runtime.run_tick()
    out = buf.getvalue()

    assert "[•] [Rooms] tick 1:" in out
    assert "[AI] [Reasoning] 1 agents reasoning in parallel..." in out
    assert "[•] [Cleanup]" in out
    assert "[•] [Scheduler] tick 1 done" in out
