"""Tests for oracle output coercion and the bundled oracles."""

from unittest.mock import AsyncMock

import pytest

from cognisim.cognition import LLMOracle, OracleResponse, ScriptedOracle
from cognisim.cognition.oracle import DEGRADED_CONFIDENCE, coerce_oracle_output
from cognisim.errors import OracleError


def test_valid_json_is_parsed():
    response = coerce_oracle_output('{"content": "Go to the lab", "confidence": 0.9}')
    assert response.content == "Go to the lab"
    assert response.confidence == 0.9


def test_code_fenced_json_is_accepted():
    response = coerce_oracle_output('```json\n{"content": "fenced", "evidence": ["a"]}\n```')
    assert response.content == "fenced"
    assert response.evidence == ["a"]


def test_malformed_output_degrades_to_plain_thought():
    response = coerce_oracle_output("I am not sure what to do.")
    assert response.content == "I am not sure what to do."
    assert response.confidence == DEGRADED_CONFIDENCE == 0.2
    assert response.action is None


def test_confidence_is_clamped():
    assert coerce_oracle_output({"content": "x", "confidence": 7}).confidence == 1.0
    assert coerce_oracle_output({"content": "x", "confidence": -1}).confidence == 0.0


def test_llm_oracle_requires_configuration():
    with pytest.raises(ValueError):
        LLMOracle(provider="", model="")


@pytest.mark.asyncio
async def test_llm_oracle_renders_prompt_and_returns_response(monkeypatch):
    captured = {}

    async def fake_call(**kwargs):
        captured.update(kwargs)
        return OracleResponse(content="Ask Bo about the samples", confidence=0.7)

    monkeypatch.setattr("cognisim.cognition.oracle.call_llm_with_retries", fake_call)

    oracle = LLMOracle(provider="openai", model="gpt-5-nano")
    response = await oracle.invoke(
        "situation_assessment",
        {"agent": {"name": "Ada", "system_prompt": "You are a chemist."}, "mode": "deliberative"},
    )

    assert response.content == "Ask Bo about the samples"
    assert captured["response_model"] is OracleResponse
    assert captured["system_prompt"].startswith("You are a chemist.")
    assert "situation_assessment" in captured["system_prompt"]


@pytest.mark.asyncio
async def test_llm_oracle_degrades_unparseable_output(monkeypatch):
    async def fake_call(**kwargs):
        raise OracleError("stayed invalid", retryable=False, raw_output="We should leave now")

    monkeypatch.setattr("cognisim.cognition.oracle.call_llm_with_retries", fake_call)

    response = await LLMOracle(provider="openai", model="gpt-5-nano").invoke("decision", {"agent": {"name": "Ada"}})

    assert response.content == "We should leave now"
    assert response.confidence == 0.2


@pytest.mark.asyncio
async def test_llm_oracle_propagates_transport_failure(monkeypatch):
    call_mock = AsyncMock(side_effect=OracleError("timed out"))
    monkeypatch.setattr("cognisim.cognition.oracle.call_llm_with_retries", call_mock)

    with pytest.raises(OracleError):
        await LLMOracle(provider="openai", model="gpt-5-nano").invoke("decision", {})
    call_mock.assert_awaited_once()


@pytest.mark.asyncio
async def test_scripted_oracle_lookup_order():
    oracle = ScriptedOracle({"decision": {"content": "stage default"}}, default="global default")
    oracle.enqueue({"content": "queued for decision"}, stage="decision")
    oracle.enqueue("shared queue")

    assert (await oracle.invoke("decision", {})).content == "queued for decision"
    assert (await oracle.invoke("decision", {})).content == "shared queue"
    assert (await oracle.invoke("decision", {})).content == "stage default"
    assert (await oracle.invoke("evaluation", {})).content == "global default"
    assert oracle.stages_called() == ["decision", "decision", "decision", "evaluation"]


@pytest.mark.asyncio
async def test_scripted_oracle_raises_queued_exceptions_and_calls_functions():
    oracle = ScriptedOracle()
    oracle.enqueue(OracleError("boom"))
    oracle.enqueue(lambda stage, context: {"content": f"{stage} for {context['agent']['name']}"})

    with pytest.raises(OracleError):
        await oracle.invoke("decision", {})
    response = await oracle.invoke("decision", {"agent": {"name": "Ada"}})
    assert response.content == "decision for Ada"


@pytest.mark.asyncio
async def test_scripted_oracle_returns_independent_copies():
    shared = OracleResponse(content="same", evidence=["x"])
    oracle = ScriptedOracle(default=shared)

    first = await oracle.invoke("decision", {})
    first.evidence.append("mutated")
    second = await oracle.invoke("decision", {})

    assert second.evidence == ["x"]


@pytest.mark.asyncio
async def test_llm_oracle_keeps_truncated_local_reply_as_low_confidence_thought(monkeypatch):
    calls = 0

    def fake_request(payload, base_url, timeout):
        nonlocal calls
        calls += 1
        return {"message": {"role": "assistant", "content": "Evacuate the lab now and"}, "done_reason": "length"}

    monkeypatch.setattr("cognisim.local_llm._perform_ollama_request", fake_request)

    oracle = LLMOracle(provider="ollama", model="llama3.1")
    response = await oracle.invoke("decision", {"agent": {"name": "Ada"}})

    assert calls == 1
    assert response.content == "Evacuate the lab now and"
    assert response.confidence == DEGRADED_CONFIDENCE
