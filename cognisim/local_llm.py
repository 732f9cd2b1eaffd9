"""Oracle transport for locally hosted models served by Ollama."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any
from urllib import error, request

from cognisim.errors import OracleError

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
_CHAT_ENDPOINT = "/api/chat"


class LocalLLMError(OracleError):
    """Raised when a local model invocation fails.

    Connection problems and 5xx responses are retryable; 4xx responses
    (unknown model, bad request) are not. A reply cut off at the token limit
    is not retried either: the partial text travels as ``raw_output`` so the
    oracle can keep it as a low-confidence thought.
    """


def _perform_ollama_request(
    payload: dict[str, Any],
    base_url: str,
    timeout: float,
) -> dict[str, Any]:
    """POST to the Ollama chat endpoint and return the decoded envelope."""

    url = f"{base_url.rstrip('/')}{_CHAT_ENDPOINT}"
    req = request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        detail = body or exc.reason
        if exc.code == 404:
            detail = f"{detail} (is the model pulled? try `ollama pull {payload['model']}`)"
        raise LocalLLMError(
            f"Ollama chat request failed with status {exc.code}: {detail}",
            retryable=exc.code >= 500,
        ) from exc
    except error.URLError as exc:
        raise LocalLLMError(f"Could not reach Ollama at {url}: {exc.reason}") from exc

    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError("Ollama returned a non-JSON envelope.") from exc


def assistant_content(envelope: dict[str, Any]) -> str:
    """Pull the assistant text out of a chat envelope."""
    content = (envelope.get("message") or {}).get("content") or ""
    if envelope.get("done_reason") == "length":
        raise LocalLLMError(
            "Ollama stopped at the token limit; the reply is truncated.",
            retryable=False,
            raw_output=content or None,
        )
    if not content.strip():
        raise LocalLLMError("Ollama response did not include assistant content.")
    return content


async def call_ollama_chat(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str,
    base_url: str | None = None,
    timeout: float = 120.0,
    json_mode: bool = True,
) -> str:
    """Invoke a local Ollama model and return the assistant text.

    ``json_mode`` asks the server to constrain output to JSON; the caller still
    validates it, since small local models do not always comply.
    """

    resolved_base = base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL

    user_prompt = user_prompt.strip()
    if not user_prompt:
        raise LocalLLMError("Cannot call Ollama with an empty user prompt.", retryable=False)

    messages: list[dict[str, str]] = []
    if system_prompt.strip():
        messages.append({"role": "system", "content": system_prompt.strip()})
    messages.append({"role": "user", "content": user_prompt})

    payload: dict[str, Any] = {"model": llm_model, "messages": messages, "stream": False}
    if json_mode:
        payload["format"] = "json"

    envelope = await asyncio.to_thread(_perform_ollama_request, payload, resolved_base, timeout)
    return assistant_content(envelope)


__all__ = ["LocalLLMError", "assistant_content", "call_ollama_chat", "DEFAULT_OLLAMA_BASE_URL"]
