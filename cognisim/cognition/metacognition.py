"""Periodic meta-cognitive evaluation of an agent's reasoning.

Runs far less often than the reasoning pipeline. It is triggered by elapsed
time, by poor recent reasoning quality, or by a pile-up of unresolved
high-impact observations, and it may retune how the agent reasons: pin a
reasoning mode, raise the minimum chain length, or clear repetitive thread
history.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cognisim.logging_utils import LOG_TAG_ERROR, LOG_TAG_LLM, is_verbose, log_error, log_llm
from cognisim.memory import recent_experiences, remember_many
from cognisim.world import (
    Agent,
    ComponentKind,
    ExperienceLog,
    Goals,
    MemoryItem,
    MetaObservation,
    ReasoningContext,
    ReasoningMode,
    WorldStore,
)

from .oracle import AdjustmentType, CognitionOracle, MetaInsight, OracleResponse, StrategyAdjustment
from .reasoning import FOLLOW_ATTENTION, STAGE_ORDER


EVALUATION_INTERVAL_SECONDS = 600.0
LOW_QUALITY = 0.5
MIN_QUALITY_SAMPLES = 3
HIGH_IMPACT_LIMIT = 3
INSIGHT_IMPORTANCE = 0.7
MAX_OBSERVATIONS = 20
RESET_KEEP_THREADS = 5
META_TASK = "meta_cognition"


@dataclass
class MetaAnalysis:
    """Outcome of one evaluation, as applied to the agent."""

    insights: List[MetaInsight] = field(default_factory=list)
    adjustments: List[StrategyAdjustment] = field(default_factory=list)
    effectiveness: float = 0.5
    fallback: bool = False
    trigger: str = ""


def fallback_analysis() -> OracleResponse:
    return OracleResponse(
        content="Meta-cognitive evaluation unavailable; continuing with the current strategy.",
        insights=[MetaInsight(content="Continue with the current reasoning strategy.", importance=0.3)],
        effectiveness=0.5,
    )


def quality_average(context: ReasoningContext, window: int = 5) -> Optional[float]:
    samples = context.quality_history[-window:]
    if len(samples) < MIN_QUALITY_SAMPLES:
        return None
    return sum(sample.overall for sample in samples) / len(samples)


def unresolved_high_impact(context: ReasoningContext) -> List[MetaObservation]:
    return [obs for obs in context.meta_observations if obs.impact == "high" and not obs.resolved]


class MetaCognition:
    """Decides when to evaluate and applies the oracle's recommendations."""

    def __init__(self, world: WorldStore, oracle: CognitionOracle) -> None:
        self.world = world
        self.oracle = oracle

    def trigger_reason(self, agent_id: int, *, now: float) -> Optional[str]:
        """Why an evaluation is due now, or None."""
        context: Optional[ReasoningContext] = self.world.get_component(agent_id, ComponentKind.REASONING_CONTEXT)
        if context is None:
            return None
        if now - context.last_meta_evaluation > EVALUATION_INTERVAL_SECONDS:
            return "interval"
        average = quality_average(context)
        if average is not None and average < LOW_QUALITY:
            return "low_quality"
        if len(unresolved_high_impact(context)) > HIGH_IMPACT_LIMIT:
            return "observations"
        return None

    def should_evaluate(self, agent_id: int, *, now: float) -> bool:
        return self.trigger_reason(agent_id, now=now) is not None

    def build_context(self, agent_id: int, context: ReasoningContext) -> Dict[str, Any]:
        agent: Optional[Agent] = self.world.get_component(agent_id, ComponentKind.AGENT)
        goals: Optional[Goals] = self.world.get_component(agent_id, ComponentKind.GOALS)
        log: Optional[ExperienceLog] = self.world.get_component(agent_id, ComponentKind.EXPERIENCE_LOG)
        return {
            "agent": {"id": agent_id, "name": agent.name if agent else str(agent_id)},
            "mode": context.current_mode.value,
            "min_stages_required": context.min_stages_required,
            "goals": [
                {"description": goal.description, "priority": goal.priority}
                for goal in (goals.active() if goals else [])
            ],
            "threads": [
                {"mode": thread.mode.value, "stages": [stage.content for stage in thread.stages]}
                for thread in context.threads[-5:]
            ],
            "quality": [
                {"coherence": s.coherence, "goal_alignment": s.goal_alignment, "novelty": s.novelty, "depth": s.depth}
                for s in context.quality_history[-5:]
            ],
            "observations": [
                {"pattern": obs.pattern, "impact": obs.impact, "description": obs.description}
                for obs in context.meta_observations
                if not obs.resolved
            ],
            "experiences": [
                {"tool": entry.tool, "success": entry.success, "message": entry.message}
                for entry in recent_experiences(log)
            ],
        }

    async def evaluate(self, agent_id: int, *, now: float) -> MetaAnalysis:
        """Run one evaluation and apply it. Never raises on oracle failure."""
        context: ReasoningContext = self.world.get_component(agent_id, ComponentKind.REASONING_CONTEXT)
        if context is None:
            context = ReasoningContext(last_meta_evaluation=now)
            self.world.add_component(agent_id, context)
        trigger = self.trigger_reason(agent_id, now=now) or "manual"

        fallback = False
        try:
            response = await self.oracle.invoke(META_TASK, self.build_context(agent_id, context))
        except Exception as exc:
            log_error(f"  {LOG_TAG_ERROR} [MetaCognition] agent {agent_id} evaluation failed: {exc}")
            response = fallback_analysis()
            fallback = True

        analysis = MetaAnalysis(
            insights=list(response.insights),
            adjustments=list(response.adjustments),
            effectiveness=response.effectiveness if response.effectiveness is not None else 0.5,
            fallback=fallback,
            trigger=trigger,
        )
        self._apply(agent_id, context, response, analysis, now)

        if is_verbose():
            log_llm(
                f"  {LOG_TAG_LLM} [MetaCognition] agent {agent_id} ({trigger}): "
                f"{len(analysis.insights)} insights, {len(analysis.adjustments)} adjustments"
            )
        return analysis

    def _apply(
        self,
        agent_id: int,
        context: ReasoningContext,
        response: OracleResponse,
        analysis: MetaAnalysis,
        now: float,
    ) -> None:
        # Observations pending before this evaluation are considered addressed.
        for observation in context.meta_observations:
            observation.resolved = True
        for payload in response.observations:
            context.meta_observations.append(
                MetaObservation(
                    pattern=payload.pattern,
                    impact=payload.impact,
                    description=payload.description,
                    timestamp=now,
                )
            )
        del context.meta_observations[:-MAX_OBSERVATIONS]

        for adjustment in analysis.adjustments:
            self.apply_adjustment(context, adjustment)

        memory = self.world.get_component(agent_id, ComponentKind.WORKING_MEMORY)
        if memory is not None:
            items = [
                MemoryItem(content=insight.content, kind="meta_insight", importance=insight.importance, timestamp=now)
                for insight in analysis.insights
                if insight.importance > INSIGHT_IMPORTANCE
            ]
            if items:
                remember_many(memory, items)

        context.last_meta_evaluation = now

    @staticmethod
    def apply_adjustment(context: ReasoningContext, adjustment: StrategyAdjustment) -> bool:
        """Apply one adjustment; returns False when its value is unusable."""
        if adjustment.type == AdjustmentType.REASONING_MODE:
            value = adjustment.value
            if value is None:
                context.preferred_mode = None
                context.follow_attention = False
                return True
            if value == FOLLOW_ATTENTION:
                context.preferred_mode = None
                context.follow_attention = True
                return True
            try:
                context.preferred_mode = ReasoningMode(value)
            except ValueError:
                return False
            context.follow_attention = False
            return True

        if adjustment.type == AdjustmentType.MIN_STAGES:
            try:
                stages = int(adjustment.value)
            except (TypeError, ValueError):
                return False
            context.min_stages_required = max(1, min(stages, len(STAGE_ORDER)))
            return True

        if adjustment.type == AdjustmentType.RESET_PATTERNS:
            del context.threads[:-RESET_KEEP_THREADS]
            return True

        if adjustment.type == AdjustmentType.STRATEGY:
            if adjustment.value:
                context.strategies.append(str(adjustment.value))
            return True

        return False
