"""
Perception filtering: what a single agent can observe this tick.

An agent perceives the stimuli in the room it occupies plus the stimuli
attributed directly to it (its own thoughts, direct messages). Everything
else in the world is invisible to it. The gathered set is ranked by
``StimulusManager.prioritize`` which drops the agent's own appearance and
anything that has decayed to zero priority.

Type filters configured on the agent's Attention component
(``include_types``/``exclude_types``) are applied after ranking so that an
agent can, for example, be made deaf to technical chatter.

Usage:
    perception = PerceptionFilter(world, stimuli).perceive(agent_id, now=clock())
    # perception.stimuli is ordered highest priority first
"""

from typing import List, Optional

from .logging_utils import debug_enabled, log_deterministic, LOG_TAG_DETERMINISTIC
from .stimulus import StimulusManager
from .world import (
    Attention,
    ComponentKind,
    PerceivedStimulus,
    Perception,
    WorldStore,
    agent_room,
)


class PerceptionFilter:
    """Builds the per-agent Perception component from room stimuli."""

    def __init__(self, world: WorldStore, stimuli: StimulusManager, *, threshold: float = 0.0):
        self.world = world
        self.stimuli = stimuli
        self.threshold = threshold

    def perceive(self, agent_id: int, *, now: float) -> Perception:
        gathered = self.stimuli.gather_for_agent(agent_id)
        ranked = self.stimuli.prioritize(gathered, agent_id, threshold=self.threshold, now=now)

        attention: Optional[Attention] = self.world.get_component(agent_id, ComponentKind.ATTENTION)
        if attention is not None:
            ranked = apply_type_filters(ranked, attention)

        perception = Perception(
            room=agent_room(self.world, agent_id),
            stimuli=ranked,
            total_gathered=len(gathered),
            timestamp=now,
        )
        self.world.add_component(agent_id, perception)

        if debug_enabled("DEBUG_PERCEPTION"):
            log_deterministic(
                f"  {LOG_TAG_DETERMINISTIC} [Perception] agent {agent_id}: "
                f"{len(ranked)}/{len(gathered)} stimuli kept"
            )
            for item in ranked:
                log_deterministic(f"      - ({item.type.value}, p={item.priority:.2f}) {item.content[:80]}")

        return perception


def apply_type_filters(ranked: List[PerceivedStimulus], attention: Attention) -> List[PerceivedStimulus]:
    filters = attention.filters
    result = ranked
    if filters.include_types:
        allowed = set(filters.include_types)
        result = [item for item in result if item.type in allowed]
    if filters.exclude_types:
        blocked = set(filters.exclude_types)
        result = [item for item in result if item.type not in blocked]
    return result
