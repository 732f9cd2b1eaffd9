from cognisim.cognition.prompts import DEFAULT_PROMPTS, PromptTemplate
from cognisim.cognition.renderers import render_prompt


def _context(**extra):
    context = {
        "agent": {"name": "Alice Smith", "system_prompt": "I am a test agent for this simulation."},
        "mode": "deliberative",
        "room": {"name": "Workshop"},
        "attention_mode": "focused",
        "goals": [{"description": "Test the system", "priority": 0.8}],
        "perceptions": [{"type": "auditory", "content": "Bo: the build is green"}],
        "working_memory": ["The build was red yesterday"],
        "experiences": [{"tool": "move", "success": False, "message": "Room Closet is full"}],
        "prior_stages": [],
    }
    context.update(extra)
    return context


def test_stage_template_fills_identity_and_instructions():
    rendered = render_prompt(DEFAULT_PROMPTS.resolve("decision"), "decision", _context())

    assert rendered.system.startswith("I am a test agent for this simulation.")
    assert "inner voice of Alice Smith" in rendered.system
    assert "Commit to exactly one action" in rendered.system
    assert '"action": {"tool": str' in rendered.system


def test_user_section_lists_world_state():
    rendered = render_prompt(DEFAULT_PROMPTS.resolve("evaluation"), "evaluation", _context())

    assert "Room: Workshop" in rendered.user
    assert "- Test the system (priority 0.8)" in rendered.user
    assert "- [auditory] Bo: the build is green" in rendered.user
    assert "- move: FAILED (Room Closet is full)" in rendered.user
    assert "Earlier stages of this thought:\n- (none)" in rendered.user


def test_action_catalog_is_rendered():
    tmpl = PromptTemplate(name="t", system="S", user="{{action_catalog}}")
    actions = [
        {"name": "move", "description": "Walk to another room", "parameters": {"type": "object"}},
    ]
    rendered = render_prompt(tmpl, "decision", _context(actions=actions))
    assert "Action Catalog" in rendered.user
    assert "- move: Walk to another room" in rendered.user


def test_unknown_placeholders_are_left_untouched():
    tmpl = PromptTemplate(name="t", system="{{agent_name}} {{unknown}}", user="U")
    rendered = render_prompt(tmpl, "decision", _context())
    assert rendered.system == "Alice Smith {{unknown}}"


def test_meta_cognition_template_resolves_by_name():
    assert DEFAULT_PROMPTS.resolve("meta_cognition").name == "meta_cognition"
    assert DEFAULT_PROMPTS.resolve("option_generation").name == "stage"
