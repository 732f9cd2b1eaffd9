"""Prompt rendering utilities."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping

from .prompts import STAGE_EXTRA_FIELDS, STAGE_INSTRUCTIONS, PromptTemplate


@dataclass
class RenderedPrompt:
    system: str
    user: str


def _bullets(lines: Iterable[str]) -> str:
    rendered = [f"- {line}" for line in lines]
    return "\n".join(rendered) if rendered else "- (none)"


def _action_catalog(actions: List[Mapping[str, Any]]) -> str:
    if not actions:
        return ""
    lines = ["Action Catalog (choose one):"]
    for item in actions:
        lines.append(f"- {item.get('name', '(unnamed)')}: {item.get('description', '')}")
        schema = item.get("parameters")
        if schema:
            lines.append("  Parameters schema:")
            lines.append("    " + json.dumps(schema, indent=2).replace("\n", "\n    "))
    return "\n".join(lines)


def render_prompt(template: PromptTemplate, stage: str, context: Mapping[str, Any]) -> RenderedPrompt:
    """Render a template against an oracle context mapping.

    Placeholders use ``{{double_brace}}`` syntax so JSON braces inside the
    templates need no escaping. Unknown placeholders are left untouched.
    """

    agent = context.get("agent", {})
    replacements: Dict[str, str] = {
        "{{stage}}": stage,
        "{{mode}}": str(context.get("mode", "")),
        "{{stage_instructions}}": STAGE_INSTRUCTIONS.get(stage, ""),
        "{{stage_extra_fields}}": STAGE_EXTRA_FIELDS.get(stage, ""),
        "{{agent_name}}": str(agent.get("name", "")),
        "{{system_prompt}}": str(agent.get("system_prompt", "")),
        "{{room_name}}": str(context.get("room", {}).get("name", "(nowhere)")),
        "{{attention_mode}}": str(context.get("attention_mode", "")),
        "{{goals_text}}": _bullets(
            f"{goal['description']} (priority {goal['priority']:.1f})" for goal in context.get("goals", [])
        ),
        "{{perceptions_text}}": _bullets(
            f"[{item['type']}] {item['content']}" for item in context.get("perceptions", [])
        ),
        "{{memory_text}}": _bullets(context.get("working_memory", [])),
        "{{experiences_text}}": _bullets(
            f"{entry['tool']}: {'ok' if entry['success'] else 'FAILED'} ({entry['message']})"
            for entry in context.get("experiences", [])
        ),
        "{{prior_stages_text}}": _bullets(
            f"{entry['stage']} ({entry['confidence']:.2f}): {entry['content']}"
            for entry in context.get("prior_stages", [])
        ),
        "{{action_catalog}}": _action_catalog(context.get("actions", [])),
        "{{threads_text}}": _bullets(
            f"{thread['mode']}: " + " | ".join(thread["stages"]) for thread in context.get("threads", [])
        ),
        "{{quality_text}}": _bullets(
            f"coherence {sample['coherence']:.2f}, goal alignment {sample['goal_alignment']:.2f}, "
            f"depth {sample['depth']:.2f}"
            for sample in context.get("quality", [])
        ),
        "{{observations_text}}": _bullets(
            f"[{obs['impact']}] {obs['pattern']}: {obs['description']}" for obs in context.get("observations", [])
        ),
    }

    system = template.system
    user = template.user
    for placeholder, value in replacements.items():
        system = system.replace(placeholder, value)
        user = user.replace(placeholder, value)

    return RenderedPrompt(system=system.strip(), user=user.strip())
