import pytest

from cognisim.local_llm import LocalLLMError, assistant_content, call_ollama_chat


def _envelope(content, **extra):
    return {"model": "llama3.1", "message": {"role": "assistant", "content": content}, "done": True, **extra}


@pytest.mark.asyncio
async def test_call_ollama_chat_builds_payload(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        captured["base_url"] = base_url
        captured["timeout"] = timeout
        return _envelope('{"content":"ok"}')

    monkeypatch.setattr("cognisim.local_llm._perform_ollama_request", fake_request)

    result = await call_ollama_chat(
        system_prompt="System context",
        user_prompt="User payload",
        llm_model="llama3.1",
        base_url="http://localhost:11434",
        timeout=30,
    )

    assert result == '{"content":"ok"}'
    payload = captured["payload"]
    assert payload["model"] == "llama3.1"
    assert payload["messages"][0] == {"role": "system", "content": "System context"}
    assert payload["messages"][1] == {"role": "user", "content": "User payload"}
    assert payload["format"] == "json"
    assert payload["stream"] is False
    assert captured["base_url"] == "http://localhost:11434"
    assert captured["timeout"] == 30


@pytest.mark.asyncio
async def test_call_ollama_chat_uses_env_base_url_and_plain_mode(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        captured["base_url"] = base_url
        return _envelope("hello")

    monkeypatch.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434")
    monkeypatch.setattr("cognisim.local_llm._perform_ollama_request", fake_request)

    result = await call_ollama_chat(system_prompt="", user_prompt="hi", llm_model="llama3.1", json_mode=False)

    assert result == "hello"
    assert captured["base_url"] == "http://gpu-box:11434"
    assert "format" not in captured["payload"]
    assert [message["role"] for message in captured["payload"]["messages"]] == ["user"]


@pytest.mark.asyncio
async def test_empty_user_prompt_is_rejected():
    with pytest.raises(LocalLLMError) as excinfo:
        await call_ollama_chat(system_prompt="System", user_prompt="   ", llm_model="llama3.1")
    assert excinfo.value.retryable is False


def test_truncated_reply_carries_partial_text_and_is_not_retried():
    with pytest.raises(LocalLLMError) as excinfo:
        assistant_content(_envelope('{"content": "Evacuate the', done_reason="length"))

    assert excinfo.value.retryable is False
    assert excinfo.value.raw_output == '{"content": "Evacuate the'


def test_empty_reply_is_a_retryable_transport_error():
    with pytest.raises(LocalLLMError) as excinfo:
        assistant_content({"message": {"role": "assistant", "content": "  "}})

    assert excinfo.value.retryable is True
    assert excinfo.value.raw_output is None
