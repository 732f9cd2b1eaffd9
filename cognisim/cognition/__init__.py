"""Cognition stack for cognisim agents.

This package houses the reasoning pipeline, the periodic meta-cognitive
evaluation, and the oracle adapters both of them call.
"""

from .oracle import (
    AdjustmentType,
    AppearanceUpdate,
    CognitionOracle,
    LLMOracle,
    MetaInsight,
    MetaObservationPayload,
    OracleResponse,
    ProposedAction,
    ScriptedOracle,
    StrategyAdjustment,
    coerce_oracle_output,
)
from .prompts import DEFAULT_PROMPTS, PromptLibrary, PromptTemplate
from .renderers import RenderedPrompt, render_prompt
from .reasoning import (
    STAGE_ORDER,
    ReasoningEngine,
    assess_quality,
    fallback_stage,
    select_reasoning_mode,
)
from .metacognition import MetaAnalysis, MetaCognition

__all__ = [
    "AdjustmentType",
    "AppearanceUpdate",
    "CognitionOracle",
    "LLMOracle",
    "MetaInsight",
    "MetaObservationPayload",
    "OracleResponse",
    "ProposedAction",
    "ScriptedOracle",
    "StrategyAdjustment",
    "coerce_oracle_output",
    "DEFAULT_PROMPTS",
    "PromptLibrary",
    "PromptTemplate",
    "RenderedPrompt",
    "render_prompt",
    "STAGE_ORDER",
    "ReasoningEngine",
    "assess_quality",
    "fallback_stage",
    "select_reasoning_mode",
    "MetaAnalysis",
    "MetaCognition",
]
