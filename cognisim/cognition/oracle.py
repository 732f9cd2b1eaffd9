"""Cognition oracle: the collaborator that turns context into thought.

The reasoning engine only depends on the ``CognitionOracle`` protocol. Two
implementations ship here:

- ``LLMOracle`` renders a stage prompt and calls a language model through
  ``call_llm_with_retries`` (mirascope for hosted providers, Ollama locally).
- ``ScriptedOracle`` returns canned responses; it backs offline runs and tests.

Oracles are assumed unreliable. Malformed output is degraded into a plain-text
thought with low confidence by ``coerce_oracle_output``; transport failures
surface as ``OracleError`` after retries and the engine substitutes a fallback
stage.
"""

from __future__ import annotations

import json
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as SchemaValidationError

from cognisim.errors import OracleError
from cognisim.llm_utils import call_llm_with_retries
from cognisim.logging_utils import LOG_TAG_LLM, LOG_TAG_WARNING, debug_enabled, log_llm, log_warning

from .prompts import DEFAULT_PROMPTS, PromptLibrary
from .renderers import render_prompt


DEGRADED_CONFIDENCE = 0.2


class AdjustmentType(str, Enum):
    REASONING_MODE = "reasoning_mode"
    MIN_STAGES = "min_stages"
    RESET_PATTERNS = "reset_patterns"
    STRATEGY = "strategy"


class ProposedAction(BaseModel):
    tool: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class AppearanceUpdate(BaseModel):
    description: Optional[str] = None
    expression: Optional[str] = None
    activity: Optional[str] = None


class MetaInsight(BaseModel):
    content: str
    importance: float = Field(default=0.5, ge=0.0, le=1.0)


class MetaObservationPayload(BaseModel):
    pattern: str
    impact: str = "low"
    description: str = ""


class StrategyAdjustment(BaseModel):
    type: AdjustmentType
    value: Any = None
    reason: str = ""


class OracleResponse(BaseModel):
    """Everything an oracle may say about one stage or task.

    Only ``content`` is required. ``confidence`` is left None when the oracle
    does not state one so the engine can apply stage defaults.
    """

    content: str = ""
    confidence: Optional[float] = None
    evidence: List[str] = Field(default_factory=list)
    alternatives: List[str] = Field(default_factory=list)
    action: Optional[ProposedAction] = None
    appearance: Optional[AppearanceUpdate] = None
    plan: List[str] = Field(default_factory=list)
    insights: List[MetaInsight] = Field(default_factory=list)
    observations: List[MetaObservationPayload] = Field(default_factory=list)
    adjustments: List[StrategyAdjustment] = Field(default_factory=list)
    effectiveness: Optional[float] = None

    @field_validator("confidence", "effectiveness", mode="before")
    @classmethod
    def _clamp_unit(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return min(1.0, max(0.0, float(value)))
        return value


@runtime_checkable
class CognitionOracle(Protocol):
    """Protocol for anything that can think on an agent's behalf."""

    async def invoke(self, stage: str, context: Mapping[str, Any]) -> OracleResponse:
        ...


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def coerce_oracle_output(raw: Union[str, Mapping[str, Any], OracleResponse, None]) -> OracleResponse:
    """Turn whatever the oracle produced into an ``OracleResponse``.

    Valid JSON matching the schema is parsed as-is. Anything else becomes a
    plain-text thought with ``DEGRADED_CONFIDENCE`` instead of an exception.
    """
    if isinstance(raw, OracleResponse):
        return raw
    if raw is None:
        return OracleResponse(content="", confidence=DEGRADED_CONFIDENCE)
    if isinstance(raw, Mapping):
        try:
            return OracleResponse.model_validate(dict(raw))
        except SchemaValidationError:
            return OracleResponse(content=json.dumps(raw, default=str), confidence=DEGRADED_CONFIDENCE)

    text = _strip_code_fence(str(raw))
    try:
        return OracleResponse.model_validate_json(text)
    except SchemaValidationError:
        return OracleResponse(content=text, confidence=DEGRADED_CONFIDENCE)


class LLMOracle:
    """Oracle backed by a language model."""

    def __init__(
        self,
        *,
        provider: str,
        model: str,
        prompt_library: Optional[PromptLibrary] = None,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        if not provider or not model:
            raise ValueError(
                "LLMOracle requires LLM configuration. Set LLM_PROVIDER and LLM_MODEL environment "
                "variables, or use ScriptedOracle for offline runs."
            )
        self.provider = provider
        self.model = model
        self.prompt_library = prompt_library or DEFAULT_PROMPTS
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    async def invoke(self, stage: str, context: Mapping[str, Any]) -> OracleResponse:
        template = self.prompt_library.resolve(stage)
        rendered = render_prompt(template, stage, context)
        debug_llm = debug_enabled("DEBUG_LLM")
        agent_name = context.get("agent", {}).get("name", "?")

        if debug_llm:
            print(f"\n{'=' * 80}")
            print(f"[ORACLE {stage.upper()}] Agent: {agent_name}")
            print(f"{'=' * 80}")
            print("\n[SYSTEM PROMPT]")
            print(rendered.system)
            print("\n[USER PROMPT]")
            print(rendered.user)
            print(f"{'=' * 80}\n")

        try:
            response = await call_llm_with_retries(
                system_prompt=rendered.system,
                user_prompt=rendered.user,
                llm_provider=self.provider,
                llm_model=self.model,
                response_model=OracleResponse,
                max_attempts=self.max_attempts,
                backoff_seconds=self.backoff_seconds,
            )
        except OracleError as exc:
            if exc.raw_output is None:
                raise
            # Malformed output: keep what the model said as a low-confidence thought.
            log_warning(f"  {LOG_TAG_WARNING} [{stage}] {agent_name}: degraded unparseable oracle output")
            degraded = coerce_oracle_output(exc.raw_output)
            if degraded.confidence is None or degraded.confidence > DEGRADED_CONFIDENCE:
                degraded.confidence = DEGRADED_CONFIDENCE
            return degraded

        if debug_llm:
            log_llm(f"  {LOG_TAG_LLM} [{stage}] {agent_name}: {response.content[:200]}")
        return response


class ScriptedOracle:
    """Deterministic oracle returning queued or per-stage canned responses.

    Lookup order for each call: the per-stage queue, then the shared queue,
    then the per-stage default, then ``default``. Raw strings and mappings go
    through ``coerce_oracle_output``; exception instances are raised, which
    lets tests exercise failure paths.
    """

    def __init__(
        self,
        responses: Optional[Mapping[str, Any]] = None,
        *,
        default: Any = None,
    ) -> None:
        self.stage_defaults: Dict[str, Any] = dict(responses or {})
        self.default = default if default is not None else OracleResponse(content="...")
        self.queue: Deque[Any] = deque()
        self.stage_queues: Dict[str, Deque[Any]] = {}
        self.calls: List[tuple[str, Dict[str, Any]]] = []

    def enqueue(self, response: Any, *, stage: Optional[str] = None) -> None:
        if stage is None:
            self.queue.append(response)
        else:
            self.stage_queues.setdefault(stage, deque()).append(response)

    async def invoke(self, stage: str, context: Mapping[str, Any]) -> OracleResponse:
        self.calls.append((stage, dict(context)))
        stage_queue = self.stage_queues.get(stage)
        if stage_queue:
            scripted = stage_queue.popleft()
        elif self.queue:
            scripted = self.queue.popleft()
        else:
            scripted = self.stage_defaults.get(stage, self.default)

        if isinstance(scripted, BaseException):
            raise scripted
        if callable(scripted):
            scripted = scripted(stage, context)
        response = coerce_oracle_output(scripted)
        return response.model_copy(deep=True)

    def stages_called(self) -> List[str]:
        return [stage for stage, _ in self.calls]
