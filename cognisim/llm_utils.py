"""Structured oracle calls with validation feedback and transport backoff."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, TypeVar

from mirascope import llm
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base, wait_exponential

from cognisim.errors import OracleError
from cognisim.local_llm import call_ollama_chat
from cognisim.logging_utils import LOG_TAG_ERROR, log_error


ModelT = TypeVar("ModelT", bound=BaseModel)
LLM_TIMEOUT_SECONDS = 120.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 0.5
BACKOFF_MULTIPLIER = 1.5
MAX_BACKOFF_SECONDS = 10.0


@dataclass(slots=True)
class ValidationFeedback:
    """Structured feedback for retrying failed schema outputs."""

    llm_text: str
    issues: Sequence[str]


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    """Return a compact preview of the offending input value."""

    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def inject_validation_feedback(error: SchemaValidationError) -> ValidationFeedback:
    """Produce guidance for the model plus structured issues for logging.

    Each pydantic error becomes one line with its dotted field path, message,
    error type, and a preview of the rejected input, so the next attempt can
    correct exactly what was wrong.
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):  # pragma: no branch - typically small
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        details = f"{loc}: {err.get('msg', 'validation error')}"
        if err.get("type"):
            details += f" [type={err['type']}]"
        if "input" in err:
            preview = _truncate_preview(err.get("input"))
            if preview:
                details += f" | received={preview}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")

    instructions = [
        "Your previous JSON response failed to validate against the required schema.",
        "Produce a corrected response that strictly matches the schema.",
        "Do not include explanations or code fences. Return only valid JSON.",
        "Issues detected:",
    ]
    instructions.extend(f"- {issue}" for issue in issues)

    return ValidationFeedback(llm_text="\n".join(instructions), issues=issues)


def _raw_text_from(error: SchemaValidationError) -> Optional[str]:
    """Best-effort recovery of the raw model text from a validation error."""

    for err in error.errors(include_url=False):
        value = err.get("input")
        if isinstance(value, str) and value.strip():
            return value
    return None


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, SchemaValidationError):
        return True
    return isinstance(exc, OracleError) and exc.retryable


class wait_for_transport_errors(wait_base):
    """Exponential backoff for transport failures; schema retries go immediately."""

    def __init__(self, initial: float, multiplier: float = BACKOFF_MULTIPLIER) -> None:
        self._exponential = wait_exponential(
            multiplier=initial, exp_base=multiplier, max=MAX_BACKOFF_SECONDS
        )

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and isinstance(outcome.exception(), OracleError):
            return self._exponential(retry_state)
        return 0.0


async def call_llm_with_retries(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    feedback_builder: Callable[[SchemaValidationError], ValidationFeedback] = inject_validation_feedback,
) -> ModelT:
    """Invoke a structured oracle call with validation-aware retries.

    Two failure classes are retried up to ``max_attempts`` total attempts:

    - schema violations: the next prompt carries validation feedback;
    - transport failures (timeouts, provider/network errors): retried after an
      exponential backoff starting at ``backoff_seconds``.

    When attempts run out, an ``OracleError`` is raised. For schema failures it
    is marked non-retryable and carries the last raw text in ``raw_output``.
    """

    system_prompt = system_prompt.strip()
    base_user_prompt = user_prompt.strip()

    def _build_user_prompt(feedback_payload: ValidationFeedback | None) -> str:
        sections = [base_user_prompt]
        if feedback_payload is not None:
            sections.append(feedback_payload.llm_text)
        return "\n\n".join(section for section in sections if section)

    def _build_combined_prompt(user_section: str) -> str:
        return "\n\n".join(section for section in (system_prompt, user_section) if section)

    feedback_payload: ValidationFeedback | None = None
    last_raw_text: Optional[str] = None

    use_local_llm = llm_provider.lower() == "ollama"

    remote_invoke: Callable[[str], Any] | None = None
    if not use_local_llm:
        @llm.call(provider=llm_provider, model=llm_model, response_model=response_model)
        async def _invoke(prompt: str) -> str:
            return prompt

        remote_invoke = _invoke

    attempt_number = 0
    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_should_retry),
            stop=stop_after_attempt(max_attempts),
            wait=wait_for_transport_errors(backoff_seconds),
            reraise=True,
        ):
            with attempt:
                attempt_number += 1
                if attempt_number > 1:
                    log_error(
                        f"  {LOG_TAG_ERROR} Oracle retry {attempt_number}/{max_attempts} "
                        f"for {response_model.__name__}"
                    )
                user_section = _build_user_prompt(feedback_payload)
                try:
                    if use_local_llm:
                        raw_response = await asyncio.wait_for(
                            call_ollama_chat(
                                system_prompt=system_prompt,
                                user_prompt=user_section,
                                llm_model=llm_model,
                            ),
                            timeout=LLM_TIMEOUT_SECONDS,
                        )
                        last_raw_text = raw_response
                        return response_model.model_validate_json(raw_response)

                    if remote_invoke is None:
                        raise RuntimeError("Remote LLM invoke is not initialized.")

                    return await asyncio.wait_for(
                        remote_invoke(_build_combined_prompt(user_section)),
                        timeout=LLM_TIMEOUT_SECONDS,
                    )
                except SchemaValidationError as exc:
                    feedback_payload = feedback_builder(exc)
                    if not use_local_llm:
                        last_raw_text = _raw_text_from(exc) or last_raw_text
                    log_error(
                        f"  {LOG_TAG_ERROR} Oracle schema validation failed for {response_model.__name__} "
                        f"(attempt {attempt_number}/{max_attempts})."
                    )
                    for issue in feedback_payload.issues:
                        log_error(f"      - {issue}")
                    raise
                except asyncio.TimeoutError as exc:
                    raise OracleError(
                        f"Oracle call timed out after {int(LLM_TIMEOUT_SECONDS)}s for {response_model.__name__}."
                    ) from exc
                except OracleError:
                    raise
                except Exception as exc:
                    # Provider SDK errors (rate limits, connection resets) surface
                    # with SDK-specific types; normalise them for the retry policy.
                    raise OracleError(f"Oracle provider error ({llm_provider}): {exc}") from exc
    except SchemaValidationError as exc:
        raise OracleError(
            f"Oracle output for {response_model.__name__} stayed invalid after {attempt_number} attempts",
            retryable=False,
            raw_output=last_raw_text,
        ) from exc

    raise RuntimeError("LLM retry mechanism exited unexpectedly")
