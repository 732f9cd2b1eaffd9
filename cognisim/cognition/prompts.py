"""Prompt templates for reasoning stages and meta-cognition."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass
class PromptTemplate:
    """Represents a templated prompt with placeholders."""

    name: str
    system: str
    user: str
    description: str = ""


class PromptLibrary:
    """Container for named prompt templates per reasoning stage."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]

    def resolve(self, name: str) -> PromptTemplate:
        """Template for ``name``, falling back to the generic stage template."""
        return self.templates.get(name) or self.templates["stage"]


_STAGE_SYSTEM = (
    "{{system_prompt}}\n\n"
    "You are the inner voice of {{agent_name}}, an agent living in a shared simulated world. "
    "You think in stages; this step is '{{stage}}' in {{mode}} mode.\n"
    "{{stage_instructions}}\n\n"
    "Respond with a single JSON object: "
    '{"content": str, "confidence": number between 0 and 1, "evidence": [str], "alternatives": [str]}'
    "{{stage_extra_fields}}"
)

_STAGE_USER = (
    "Room: {{room_name}}\n"
    "Attention mode: {{attention_mode}}\n\n"
    "Goals:\n{{goals_text}}\n\n"
    "What you perceive (highest priority first):\n{{perceptions_text}}\n\n"
    "Working memory:\n{{memory_text}}\n\n"
    "Recent outcomes of your actions:\n{{experiences_text}}\n\n"
    "Earlier stages of this thought:\n{{prior_stages_text}}\n\n"
    "{{action_catalog}}\n\n"
    "Return JSON only."
)

STAGE_INSTRUCTIONS: Dict[str, str] = {
    "perception_analysis": "Describe what is happening around you and what stands out.",
    "situation_assessment": "Assess what the situation means for you and for others present.",
    "goal_alignment": (
        "Judge how the situation relates to your goals. Report high confidence only if your goals are "
        "clearly served by continuing as you are."
    ),
    "option_generation": "List the concrete things you could do next. Put each option in 'alternatives'.",
    "evaluation": "Weigh the options against your goals and the situation; name the strongest.",
    "decision": (
        "Commit to exactly one action from the catalog. Fill 'action' with the tool name and its parameters. "
        "You may also update how you look via 'appearance'."
    ),
    "meta_reflection": "Reflect on how well this chain of thought went and what you would do differently.",
}

STAGE_EXTRA_FIELDS: Dict[str, str] = {
    "decision": (
        ', plus "action": {"tool": str, "parameters": object} and optionally '
        '"appearance": {"description": str, "expression": str, "activity": str} and "plan": [str]'
    ),
}

DEFAULT_PROMPTS = PromptLibrary()

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="stage",
        system=_STAGE_SYSTEM,
        user=_STAGE_USER,
        description="Generic reasoning stage; stage-specific instructions are substituted in.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="meta_cognition",
        system=(
            "You are the meta-cognitive monitor of {{agent_name}}. Review how the agent has been reasoning "
            "and recommend adjustments.\n\n"
            "Respond with a single JSON object: "
            '{"content": str, "insights": [{"content": str, "importance": number}], '
            '"observations": [{"pattern": str, "impact": "low"|"medium"|"high", "description": str}], '
            '"adjustments": [{"type": "reasoning_mode"|"min_stages"|"reset_patterns"|"strategy", '
            '"value": any, "reason": str}], "effectiveness": number between 0 and 1}'
        ),
        user=(
            "Goals:\n{{goals_text}}\n\n"
            "Recent reasoning threads:\n{{threads_text}}\n\n"
            "Reasoning quality samples:\n{{quality_text}}\n\n"
            "Open observations:\n{{observations_text}}\n\n"
            "Recent outcomes of actions:\n{{experiences_text}}\n\n"
            "Return JSON only."
        ),
        description="Periodic evaluation of reasoning quality and strategy.",
    )
)
