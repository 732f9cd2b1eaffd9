"""Unit tests for the oracle retry helper."""

import pytest
from pydantic import BaseModel, ValidationError

from cognisim.errors import OracleError
from cognisim.llm_utils import call_llm_with_retries
from cognisim.local_llm import LocalLLMError


class DummyModel(BaseModel):
    content: str


def _decorator_for(fake_caller):
    def fake_decorator(*, provider, model, response_model):
        assert response_model is DummyModel

        def wrapper(fn):
            async def inner(prompt: str):
                return await fake_caller(prompt)

            return inner

        return wrapper

    return fake_decorator


@pytest.mark.asyncio
async def test_call_llm_with_retries_success(monkeypatch):
    recorded_prompts: list[str] = []

    async def fake_caller(prompt: str) -> DummyModel:
        recorded_prompts.append(prompt)
        return DummyModel(content="ok")

    monkeypatch.setattr("cognisim.llm_utils.llm.call", _decorator_for(fake_caller))

    result = await call_llm_with_retries(
        system_prompt="System context",
        user_prompt="What now?",
        llm_provider="openai",
        llm_model="gpt-5-nano",
        response_model=DummyModel,
    )

    assert result.content == "ok"
    assert recorded_prompts == ["System context\n\nWhat now?"]


@pytest.mark.asyncio
async def test_call_llm_with_retries_injects_feedback(monkeypatch):
    attempts: list[str] = []

    try:
        DummyModel.model_validate({})
    except ValidationError as exc:
        validation_error = exc

    async def fake_caller(prompt: str) -> DummyModel:
        attempts.append(prompt)
        if len(attempts) == 1:
            raise validation_error
        return DummyModel(content="fixed")

    monkeypatch.setattr("cognisim.llm_utils.llm.call", _decorator_for(fake_caller))

    result = await call_llm_with_retries(
        system_prompt="System",
        user_prompt="User",
        llm_provider="openai",
        llm_model="gpt-5-nano",
        response_model=DummyModel,
    )

    assert result.content == "fixed"
    assert len(attempts) == 2
    assert "Your previous JSON response failed to validate against the required schema." in attempts[1]
    assert "- content: Field required" in attempts[1]


@pytest.mark.asyncio
async def test_persistent_schema_failure_carries_raw_output(monkeypatch):
    try:
        DummyModel.model_validate_json("I would rather just talk")
    except ValidationError as exc:
        validation_error = exc

    calls = 0

    async def fake_caller(prompt: str) -> DummyModel:
        nonlocal calls
        calls += 1
        raise validation_error

    monkeypatch.setattr("cognisim.llm_utils.llm.call", _decorator_for(fake_caller))

    with pytest.raises(OracleError) as excinfo:
        await call_llm_with_retries(
            system_prompt="System",
            user_prompt="User",
            llm_provider="openai",
            llm_model="gpt-5-nano",
            response_model=DummyModel,
            max_attempts=3,
        )

    assert calls == 3
    assert excinfo.value.retryable is False
    assert excinfo.value.raw_output == "I would rather just talk"


@pytest.mark.asyncio
async def test_provider_errors_are_normalised_and_retried(monkeypatch):
    calls = 0

    async def fake_caller(prompt: str) -> DummyModel:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise ConnectionResetError("socket closed")
        return DummyModel(content="recovered")

    monkeypatch.setattr("cognisim.llm_utils.llm.call", _decorator_for(fake_caller))

    result = await call_llm_with_retries(
        system_prompt="System",
        user_prompt="User",
        llm_provider="anthropic",
        llm_model="claude",
        response_model=DummyModel,
        backoff_seconds=0,
    )

    assert result.content == "recovered"
    assert calls == 3


@pytest.mark.asyncio
async def test_call_llm_with_retries_local_provider(monkeypatch):
    captured_kwargs: dict[str, str] = {}

    async def fake_local_call(*, system_prompt, user_prompt, llm_model, base_url=None, timeout=120.0, json_mode=True):
        captured_kwargs["system_prompt"] = system_prompt
        captured_kwargs["user_prompt"] = user_prompt
        captured_kwargs["llm_model"] = llm_model
        return '{"content":"ok"}'

    def fail_decorator(*args, **kwargs):
        raise AssertionError("remote provider path should not be used for ollama")

    monkeypatch.setattr("cognisim.llm_utils.call_ollama_chat", fake_local_call)
    monkeypatch.setattr("cognisim.llm_utils.llm.call", fail_decorator)

    result = await call_llm_with_retries(
        system_prompt="System context",
        user_prompt="User payload",
        llm_provider="ollama",
        llm_model="llama3.1",
        response_model=DummyModel,
    )

    assert result.content == "ok"
    assert captured_kwargs["system_prompt"] == "System context"
    assert captured_kwargs["user_prompt"] == "User payload"
    assert captured_kwargs["llm_model"] == "llama3.1"


@pytest.mark.asyncio
async def test_local_invalid_json_keeps_last_raw_text(monkeypatch):
    async def fake_local_call(**kwargs):
        return "Sure! Here is my answer."

    monkeypatch.setattr("cognisim.llm_utils.call_ollama_chat", fake_local_call)

    with pytest.raises(OracleError) as excinfo:
        await call_llm_with_retries(
            system_prompt="System",
            user_prompt="User",
            llm_provider="ollama",
            llm_model="llama3.1",
            response_model=DummyModel,
            max_attempts=2,
        )

    assert excinfo.value.raw_output == "Sure! Here is my answer."


@pytest.mark.asyncio
async def test_local_transport_error_retries_then_succeeds(monkeypatch):
    calls = 0

    async def fake_local_call(**kwargs):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise LocalLLMError("Could not reach Ollama")
        return '{"content":"back online"}'

    monkeypatch.setattr("cognisim.llm_utils.call_ollama_chat", fake_local_call)

    result = await call_llm_with_retries(
        system_prompt="System",
        user_prompt="User",
        llm_provider="ollama",
        llm_model="llama3.1",
        response_model=DummyModel,
        backoff_seconds=0,
    )

    assert result.content == "back online"
    assert calls == 2


@pytest.mark.asyncio
async def test_non_retryable_error_stops_immediately(monkeypatch):
    calls = 0

    async def fake_local_call(**kwargs):
        nonlocal calls
        calls += 1
        raise LocalLLMError("model 'nope' not found", retryable=False)

    monkeypatch.setattr("cognisim.llm_utils.call_ollama_chat", fake_local_call)

    with pytest.raises(LocalLLMError):
        await call_llm_with_retries(
            system_prompt="System",
            user_prompt="User",
            llm_provider="ollama",
            llm_model="nope",
            response_model=DummyModel,
            backoff_seconds=0,
        )

    assert calls == 1
