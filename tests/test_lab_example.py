"""The lab example must run offline when no LLM provider is configured."""

import contextlib
import importlib.util
import io
from pathlib import Path

import pytest

from cognisim.cognition import ScriptedOracle
from cognisim.world import ComponentKind


EXAMPLE_PATH = Path(__file__).resolve().parent.parent / "examples" / "lab" / "run.py"


def load_example():
    module_spec = importlib.util.spec_from_file_location("lab_example", EXAMPLE_PATH)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


@pytest.mark.asyncio
async def test_lab_example_falls_back_to_scripted_oracle(monkeypatch):
    monkeypatch.delenv("LLM_PROVIDER", raising=False)
    monkeypatch.delenv("LLM_MODEL", raising=False)
    monkeypatch.setenv("COGNISIM_NO_COLOR", "1")
    example = load_example()

    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        runtime = example.build_runtime()
        contexts = await runtime.run(1)

    assert "running on a scripted oracle" in buf.getvalue()
    assert isinstance(runtime.oracle, ScriptedOracle)
    assert len(contexts) == 1
    assert len(runtime.world.query(ComponentKind.AGENT)) == 2
