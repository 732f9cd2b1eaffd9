"""Attention: a bounded, decaying focus stack derived from perception.

Every tick each perceived stimulus is scored for salience (goal relevance,
novelty, social weight, threat). Salient items are merged into the agent's
focus stack, which decays exponentially with wall-clock age, is re-sorted by
``0.6 * relevance + 0.4 * urgency`` and truncated to the agent's capacity.
The stack then determines an attention mode that the reasoning engine reads
through ``ATTENTION_TO_REASONING``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

from .memory import recent_contents
from .world import (
    Attention,
    AttentionMode,
    ComponentKind,
    FocusItem,
    Goals,
    PerceivedStimulus,
    Perception,
    ReasoningMode,
    StimulusSource,
    StimulusType,
    WorkingMemory,
    WorldStore,
)


NOVELTY_THRESHOLD = 0.6
RELEVANCE_THRESHOLD = 0.5
SOCIAL_THRESHOLD = 0.4
THREAT_THRESHOLD = 0.8

GOAL_MATCH_RELEVANCE = 0.8
HIGH_PRIORITY_GOAL = 0.7
GOAL_MATCH_URGENCY = 0.6
SOCIAL_URGENCY = 0.5
THREAT_URGENCY = 0.9

NEGLIGIBLE = 0.1
DEFAULT_DECAY_RATE = 0.1
URGENT = 0.6
IMPORTANT_SCORE = 0.7

THREAT_WORDS: Sequence[str] = (
    "danger",
    "threat",
    "attack",
    "hurt",
    "damage",
    "emergency",
    "fire",
    "help",
)

ATTENTION_TO_REASONING: Dict[AttentionMode, ReasoningMode] = {
    AttentionMode.FOCUSED: ReasoningMode.DELIBERATIVE,
    AttentionMode.SCANNING: ReasoningMode.EXPLORATORY,
    AttentionMode.ALERT: ReasoningMode.REACTIVE,
    AttentionMode.DIVIDED: ReasoningMode.REACTIVE,
    AttentionMode.WANDERING: ReasoningMode.REFLECTIVE,
}

_WORD = re.compile(r"[a-z0-9']+")


def _words(text: str) -> Set[str]:
    return set(_WORD.findall(text.lower()))


@dataclass
class Salience:
    target: str
    kind: str
    relevance: float
    urgency: float

    @property
    def score(self) -> float:
        return 0.6 * self.relevance + 0.4 * self.urgency


def compute_salience(
    stimulus: PerceivedStimulus,
    *,
    agent_id: int,
    goals: Optional[Goals],
    recent_memory: Sequence[str],
) -> Salience:
    """Score one perceived stimulus.

    The dominant signal names the focus item: threat over goal over social
    over plain novelty.
    """
    words = _words(stimulus.content)
    relevance = 0.0
    urgency = 0.0
    kind = "novelty"
    target = stimulus.content[:40].strip()

    if stimulus.content not in recent_memory:
        relevance = max(relevance, NOVELTY_THRESHOLD)

    social = (
        stimulus.source != agent_id
        and stimulus.type != StimulusType.ENVIRONMENTAL
        and stimulus.source_kind not in (StimulusSource.ENVIRONMENT, StimulusSource.SELF)
    )
    if social:
        relevance = max(relevance, SOCIAL_THRESHOLD)
        urgency = max(urgency, SOCIAL_URGENCY)
        kind = "agent"
        target = f"{stimulus.source_kind.value}:{stimulus.source}"

    for goal in goals.active() if goals else []:
        keywords = {word for word in _words(goal.description) if len(word) > 3}
        matched = sorted(keywords & words)
        if matched:
            relevance = max(relevance, GOAL_MATCH_RELEVANCE)
            if goal.priority > HIGH_PRIORITY_GOAL:
                urgency = max(urgency, GOAL_MATCH_URGENCY)
            kind = "goal"
            target = matched[0]
            break

    threats = [word for word in THREAT_WORDS if word in words]
    if threats:
        relevance = max(relevance, THREAT_THRESHOLD)
        urgency = max(urgency, THREAT_URGENCY)
        kind = "threat"
        target = threats[0]

    return Salience(target=target, kind=kind, relevance=relevance, urgency=urgency)


def decay_focus(focus: List[FocusItem], elapsed_seconds: float) -> List[FocusItem]:
    """Apply exponential decay and drop negligible items.

    Decay is applied incrementally per update, so the accumulated factor is
    ``exp(-rate * age)`` over the item's whole lifetime.
    """
    kept = []
    for item in focus:
        factor = math.exp(-item.decay_rate * max(0.0, elapsed_seconds))
        item.relevance *= factor
        item.urgency *= factor
        if item.relevance > NEGLIGIBLE or item.urgency > NEGLIGIBLE:
            kept.append(item)
    return kept


def determine_mode(focus: Sequence[FocusItem], stimulus_volume: int) -> AttentionMode:
    """Derive the attention mode from a focus stack sorted by score.

    Threat items are checked ahead of the single-item rule so that one alarming
    stimulus produces "alert" rather than "focused".
    """
    if not focus:
        return AttentionMode.WANDERING
    if any(item.kind == "threat" and item.urgency > THREAT_THRESHOLD for item in focus):
        return AttentionMode.ALERT
    top = focus[0]
    if len(focus) == 1 or (top.relevance > 0.8 and top.urgency > 0.8):
        return AttentionMode.FOCUSED
    if sum(1 for item in focus if item.urgency > URGENT) > 3:
        return AttentionMode.ALERT
    if len(focus) > 3 and focus[2].relevance > RELEVANCE_THRESHOLD:
        return AttentionMode.DIVIDED
    if stimulus_volume > 10:
        return AttentionMode.SCANNING
    return AttentionMode.SCANNING


def focused_stimuli(perception: Perception, attention: Attention) -> List[PerceivedStimulus]:
    """Perceptions passed on to reasoning.

    In focused mode only stimuli matching the top target (by content) or the
    top item's source survive.
    """
    if attention.mode != AttentionMode.FOCUSED or not attention.focus:
        return list(perception.stimuli)
    top = attention.focus[0]
    needle = top.target.lower()
    return [
        item
        for item in perception.stimuli
        if (needle and needle in item.content.lower())
        or (top.source is not None and item.source == top.source)
    ]


class AttentionSystem:
    """Maintains each agent's Attention component."""

    def __init__(self, world: WorldStore) -> None:
        self.world = world

    def update(self, agent_id: int, perception: Perception, *, now: float) -> Attention:
        attention: Optional[Attention] = self.world.get_component(agent_id, ComponentKind.ATTENTION)
        if attention is None:
            attention = Attention(last_update=now)
            self.world.add_component(agent_id, attention)

        goals: Optional[Goals] = self.world.get_component(agent_id, ComponentKind.GOALS)
        memory: Optional[WorkingMemory] = self.world.get_component(agent_id, ComponentKind.WORKING_MEMORY)
        recent = recent_contents(memory, limit=10)

        previous_top = attention.focus[0].target if attention.focus else None

        focus = decay_focus(attention.focus, now - attention.last_update)
        index = {(item.target, item.kind): item for item in focus}
        fresh: Set[int] = set()

        filters = attention.filters
        for stimulus in perception.stimuli:
            salience = compute_salience(stimulus, agent_id=agent_id, goals=goals, recent_memory=recent)
            passes = salience.relevance >= filters.min_relevance and salience.urgency >= filters.min_urgency
            if not passes and salience.urgency < SOCIAL_URGENCY:
                continue
            key = (salience.target, salience.kind)
            existing = index.get(key)
            if existing is not None:
                existing.relevance = max(existing.relevance, salience.relevance)
                existing.urgency = max(existing.urgency, salience.urgency)
                existing.timestamp = now
                existing.source = stimulus.source
                fresh.add(id(existing))
                continue
            item = FocusItem(
                target=salience.target,
                kind=salience.kind,
                relevance=salience.relevance,
                urgency=salience.urgency,
                timestamp=now,
                decay_rate=DEFAULT_DECAY_RATE,
                source=stimulus.source,
            )
            focus.append(item)
            index[key] = item
            fresh.add(id(item))

        focus.sort(key=lambda entry: entry.score, reverse=True)
        dropped = focus[attention.capacity:]
        attention.metrics.missed_important += sum(
            1 for item in dropped if id(item) in fresh and item.score > IMPORTANT_SCORE
        )
        attention.focus = focus[: attention.capacity]

        new_top = attention.focus[0].target if attention.focus else None
        if new_top is not None and new_top != previous_top:
            attention.metrics.focus_switches += 1
            attention.metrics.last_focus_change = now

        attention.mode = determine_mode(attention.focus, perception.total_gathered)
        attention.last_update = now
        return attention

    def suggested_reasoning_mode(self, agent_id: int) -> Optional[ReasoningMode]:
        attention: Optional[Attention] = self.world.get_component(agent_id, ComponentKind.ATTENTION)
        if attention is None:
            return None
        return ATTENTION_TO_REASONING[attention.mode]
