"""Multi-stage reasoning pipeline.

One pipeline run ("thread") walks a fixed stage order::

    perception_analysis -> situation_assessment -> goal_alignment
        -> [option_generation -> evaluation -> decision] -> meta_reflection

The bracketed sub-chain is skipped when the agent is in reflective mode and
already confident (>= 0.7) that its goals are served; meta_reflection runs in
reflective mode or once the chain has reached five stages. Every stage calls
the cognition oracle. An oracle failure never aborts the chain: the stage is
recorded with fallback content and confidence 0.1.

Only the decision stage may write the agent's PendingAction slot.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from cognisim.attention import ATTENTION_TO_REASONING, focused_stimuli
from cognisim.logging_utils import LOG_TAG_ERROR, LOG_TAG_LLM, is_verbose, log_error, log_llm
from cognisim.memory import recent_contents, recent_experiences, relevant_items, remember_many
from cognisim.world import (
    Agent,
    Appearance,
    Attention,
    ComponentKind,
    ExperienceLog,
    Goals,
    MemoryItem,
    PendingAction,
    PerceivedStimulus,
    Perception,
    Plan,
    QualitySample,
    ReasoningContext,
    ReasoningMode,
    ReasoningStage,
    ReasoningThread,
    Room,
    StageType,
    Thought,
    WorkingMemory,
    WorldStore,
    agent_room,
)

from .oracle import CognitionOracle, OracleResponse


STAGE_ORDER: Tuple[StageType, ...] = (
    StageType.PERCEPTION_ANALYSIS,
    StageType.SITUATION_ASSESSMENT,
    StageType.GOAL_ALIGNMENT,
    StageType.OPTION_GENERATION,
    StageType.EVALUATION,
    StageType.DECISION,
    StageType.META_REFLECTION,
)

ACTION_SUBCHAIN: Tuple[StageType, ...] = (
    StageType.OPTION_GENERATION,
    StageType.EVALUATION,
    StageType.DECISION,
)

DEFAULT_CONFIDENCE: Dict[StageType, float] = {
    StageType.PERCEPTION_ANALYSIS: 0.8,
    StageType.SITUATION_ASSESSMENT: 0.8,
    StageType.GOAL_ALIGNMENT: 0.8,
    StageType.OPTION_GENERATION: 0.7,
    StageType.EVALUATION: 0.8,
    StageType.DECISION: 0.9,
    StageType.META_REFLECTION: 0.9,
}

FALLBACK_CONFIDENCE = 0.1
DEEP_REASONING_INTERVAL_SECONDS = 300.0
SKIP_ACTION_CONFIDENCE = 0.7
INSIGHT_CONFIDENCE = 0.8
MIN_THREAD_STAGES = 5
MAX_THREADS = 10
MAX_QUALITY_SAMPLES = 20
DEFAULT_MIN_STAGES = 3

# Meta-cognition may pin this value to defer to the attention-derived mode.
FOLLOW_ATTENTION = "attention"


def select_reasoning_mode(
    context: ReasoningContext,
    *,
    goal_count: int,
    stimulus_count: int,
    now: float,
    attention_mode: Optional[ReasoningMode] = None,
) -> ReasoningMode:
    """Pick the reasoning mode for this tick.

    A mode pinned by meta-cognition wins, as does the attention-derived mode
    when meta-cognition asked to follow attention. Otherwise, in order:
    reflective when five minutes have passed since the last deep pass;
    exploratory with fewer than two goals; deliberative under load (more than
    five stimuli or more than three goals); reactive otherwise.
    """
    if context.preferred_mode is not None:
        return context.preferred_mode
    if context.follow_attention and attention_mode is not None:
        return attention_mode
    if now - context.last_deep_reasoning >= DEEP_REASONING_INTERVAL_SECONDS:
        return ReasoningMode.REFLECTIVE
    if goal_count < 2:
        return ReasoningMode.EXPLORATORY
    if stimulus_count > 5 or goal_count > 3:
        return ReasoningMode.DELIBERATIVE
    return ReasoningMode.REACTIVE


def fallback_stage(stage: StageType, now: float) -> ReasoningStage:
    return ReasoningStage(
        stage=stage,
        content=f"Unable to complete {stage.value} reasoning at this time.",
        confidence=FALLBACK_CONFIDENCE,
        timestamp=now,
    )


def assess_quality(thread: ReasoningThread, prior_memory: Sequence[str], now: float) -> QualitySample:
    stages = thread.stages
    coherence = sum(stage.confidence for stage in stages) / len(stages) if stages else 0.0
    alignment_stage = thread.stage(StageType.GOAL_ALIGNMENT)
    known = set(prior_memory)
    novel = sum(1 for stage in stages if stage.content not in known)
    return QualitySample(
        coherence=coherence,
        goal_alignment=alignment_stage.confidence if alignment_stage else 0.0,
        novelty=novel / len(stages) if stages else 0.0,
        depth=len(stages) / len(STAGE_ORDER),
        timestamp=now,
    )


class ReasoningEngine:
    """Runs the staged pipeline for one agent at a time.

    ``action_catalog`` returns the registered action descriptions shown to the
    oracle; it is a callable so the engine always sees the live registry.
    """

    def __init__(
        self,
        world: WorldStore,
        oracle: CognitionOracle,
        *,
        action_catalog: Optional[Callable[[], List[Dict[str, Any]]]] = None,
    ) -> None:
        self.world = world
        self.oracle = oracle
        self.action_catalog = action_catalog or (lambda: [])

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def _context_record(self, agent_id: int) -> ReasoningContext:
        context = self.world.get_component(agent_id, ComponentKind.REASONING_CONTEXT)
        if context is None:
            context = ReasoningContext()
            self.world.add_component(agent_id, context)
        return context

    def _stimuli_for(self, agent_id: int) -> List[PerceivedStimulus]:
        perception: Optional[Perception] = self.world.get_component(agent_id, ComponentKind.PERCEPTION)
        if perception is None:
            return []
        attention: Optional[Attention] = self.world.get_component(agent_id, ComponentKind.ATTENTION)
        if attention is None:
            return list(perception.stimuli)
        return focused_stimuli(perception, attention)

    def build_oracle_context(
        self,
        agent_id: int,
        *,
        mode: ReasoningMode,
        stimuli: Sequence[PerceivedStimulus],
        prior_stages: Sequence[ReasoningStage],
    ) -> Dict[str, Any]:
        """JSON-friendly snapshot of everything a stage may reason about."""
        world = self.world
        agent: Optional[Agent] = world.get_component(agent_id, ComponentKind.AGENT)
        goals: Optional[Goals] = world.get_component(agent_id, ComponentKind.GOALS)
        memory: Optional[WorkingMemory] = world.get_component(agent_id, ComponentKind.WORKING_MEMORY)
        log: Optional[ExperienceLog] = world.get_component(agent_id, ComponentKind.EXPERIENCE_LOG)
        attention: Optional[Attention] = world.get_component(agent_id, ComponentKind.ATTENTION)
        appearance: Optional[Appearance] = world.get_component(agent_id, ComponentKind.APPEARANCE)
        plan: Optional[Plan] = world.get_component(agent_id, ComponentKind.PLAN)
        room_id = agent_room(world, agent_id)
        room: Optional[Room] = world.get_component(room_id, ComponentKind.ROOM) if room_id else None
        # Recall what bears on what the agent is looking at and working toward.
        recall_query = " ".join(
            [item.content for item in stimuli] + [goal.description for goal in (goals.active() if goals else [])]
        )

        return {
            "agent": {
                "id": agent_id,
                "name": agent.name if agent else str(agent_id),
                "role": agent.role if agent else "",
                "system_prompt": agent.system_prompt if agent else "",
            },
            "mode": mode.value,
            "room": {"id": room_id, "name": room.name if room else None, "description": room.description if room else ""},
            "attention_mode": attention.mode.value if attention else None,
            "focus": [
                {"target": item.target, "kind": item.kind, "relevance": round(item.relevance, 3), "urgency": round(item.urgency, 3)}
                for item in (attention.focus if attention else [])
            ],
            "goals": [
                {"description": goal.description, "priority": goal.priority}
                for goal in (goals.active() if goals else [])
            ],
            "perceptions": [
                {"type": item.type.value, "source": item.source, "content": item.content, "priority": round(item.priority, 3)}
                for item in stimuli
            ],
            "working_memory": [item.content for item in relevant_items(memory, recall_query, limit=10)],
            "experiences": [
                {"tool": entry.tool, "success": entry.success, "message": entry.message}
                for entry in recent_experiences(log)
            ],
            "appearance": {
                "description": appearance.description,
                "expression": appearance.expression,
                "activity": appearance.activity,
            } if appearance else {},
            "plan": list(plan.steps) if plan else [],
            "prior_stages": [
                {"stage": stage.stage.value, "content": stage.content, "confidence": stage.confidence}
                for stage in prior_stages
            ],
            "actions": self.action_catalog(),
        }

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_stage(
        self,
        agent_id: int,
        stage: StageType,
        *,
        mode: ReasoningMode,
        stimuli: Sequence[PerceivedStimulus],
        prior: Sequence[ReasoningStage],
        clock: Callable[[], float],
    ) -> Tuple[ReasoningStage, Optional[OracleResponse]]:
        context = self.build_oracle_context(agent_id, mode=mode, stimuli=stimuli, prior_stages=prior)
        try:
            response = await self.oracle.invoke(stage.value, context)
        except Exception as exc:
            log_error(f"  {LOG_TAG_ERROR} [Reasoning] agent {agent_id} {stage.value} failed: {exc}")
            return fallback_stage(stage, clock()), None

        confidence = response.confidence if response.confidence is not None else DEFAULT_CONFIDENCE[stage]
        record = ReasoningStage(
            stage=stage,
            content=response.content,
            confidence=confidence,
            timestamp=clock(),
            evidence=list(response.evidence),
            alternatives=list(response.alternatives),
        )
        return record, response

    async def run(
        self,
        agent_id: int,
        *,
        now: float,
        clock: Optional[Callable[[], float]] = None,
        stimuli: Optional[Sequence[PerceivedStimulus]] = None,
    ) -> ReasoningThread:
        """Run one full pipeline for ``agent_id`` and apply its outcome."""
        tick_clock = clock or (lambda: now)
        context = self._context_record(agent_id)
        goals: Optional[Goals] = self.world.get_component(agent_id, ComponentKind.GOALS)
        memory: Optional[WorkingMemory] = self.world.get_component(agent_id, ComponentKind.WORKING_MEMORY)
        attention: Optional[Attention] = self.world.get_component(agent_id, ComponentKind.ATTENTION)
        perceived = list(stimuli) if stimuli is not None else self._stimuli_for(agent_id)

        goal_count = len(goals.active()) if goals else 0
        mode = select_reasoning_mode(
            context,
            goal_count=goal_count,
            stimulus_count=len(perceived),
            now=now,
            attention_mode=ATTENTION_TO_REASONING[attention.mode] if attention else None,
        )
        context.current_mode = mode
        prior_memory = recent_contents(memory, limit=memory.capacity if memory else 0)

        stages: List[ReasoningStage] = []
        decision: Optional[OracleResponse] = None

        async def step(stage_type: StageType) -> ReasoningStage:
            nonlocal decision
            record, response = await self._run_stage(
                agent_id, stage_type, mode=mode, stimuli=perceived, prior=stages, clock=tick_clock
            )
            stages.append(record)
            if stage_type == StageType.DECISION:
                decision = response
            return record

        for stage_type in STAGE_ORDER[:3]:
            await step(stage_type)

        alignment = stages[-1]
        skip_action = (
            mode == ReasoningMode.REFLECTIVE
            and alignment.confidence >= SKIP_ACTION_CONFIDENCE
            and context.min_stages_required <= DEFAULT_MIN_STAGES
        )
        if not skip_action:
            for stage_type in ACTION_SUBCHAIN:
                await step(stage_type)

        if mode == ReasoningMode.REFLECTIVE or len(stages) >= MIN_THREAD_STAGES:
            await step(StageType.META_REFLECTION)

        thread = ReasoningThread(mode=mode, stages=stages, started_at=now, completed_at=tick_clock())
        self._apply(agent_id, thread, decision, context, prior_memory, now)

        if is_verbose():
            log_llm(
                f"  {LOG_TAG_LLM} [Reasoning] agent {agent_id} ({mode.value}): "
                + " -> ".join(f"{stage.stage.value}:{stage.confidence:.2f}" for stage in stages)
            )
        return thread

    def _apply(
        self,
        agent_id: int,
        thread: ReasoningThread,
        decision: Optional[OracleResponse],
        context: ReasoningContext,
        prior_memory: Sequence[str],
        now: float,
    ) -> None:
        world = self.world

        if len(thread.stages) >= MIN_THREAD_STAGES:
            context.threads.append(thread)
            del context.threads[:-MAX_THREADS]

        memory: Optional[WorkingMemory] = world.get_component(agent_id, ComponentKind.WORKING_MEMORY)
        if memory is not None:
            insights = [
                MemoryItem(content=stage.content, kind="insight", importance=stage.confidence, timestamp=stage.timestamp)
                for stage in thread.stages
                if stage.confidence > INSIGHT_CONFIDENCE and stage.content
            ]
            if insights:
                remember_many(memory, insights)

        if thread.stages:
            last = thread.stages[-1]
            world.add_component(
                agent_id,
                Thought(content=last.content, stage=last.stage, confidence=last.confidence, timestamp=last.timestamp),
            )

        if decision is not None:
            if decision.action is not None:
                world.add_component(
                    agent_id,
                    PendingAction(tool=decision.action.tool, parameters=dict(decision.action.parameters), timestamp=now),
                )
            if decision.appearance is not None:
                appearance: Optional[Appearance] = world.get_component(agent_id, ComponentKind.APPEARANCE)
                if appearance is None:
                    appearance = Appearance()
                    world.add_component(agent_id, appearance)
                update = decision.appearance
                appearance.description = update.description or appearance.description
                appearance.expression = update.expression or appearance.expression
                appearance.activity = update.activity or appearance.activity
                appearance.updated_at = now
                appearance.dirty = True
            if decision.plan:
                world.add_component(agent_id, Plan(steps=list(decision.plan), current_step=0, updated_at=now))

        context.quality_history.append(assess_quality(thread, prior_memory, now))
        del context.quality_history[:-MAX_QUALITY_SAMPLES]

        if thread.mode in (ReasoningMode.REFLECTIVE, ReasoningMode.DELIBERATIVE):
            context.last_deep_reasoning = now
