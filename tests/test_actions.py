"""Tests for the action registry, built-in actions, and dispatch."""

import pytest
from pydantic import BaseModel

from cognisim.actions import ActionDispatcher, ActionModule, ActionRegistry, build_default_registry
from cognisim.errors import NotFoundError
from cognisim.events import EventBus, EventType, agent_channel, room_channel
from cognisim.stimulus import StimulusManager
from cognisim.world import (
    ComponentKind,
    PendingAction,
    RelationKind,
    StimulusType,
    WorldStore,
    agent_room,
    create_room,
    room_occupants,
    spawn_agent,
)


class NoParameters(BaseModel):
    pass


class ExplodingAction(ActionModule):
    name = "explode"
    description = "Always raises."
    parameters_model = NoParameters

    async def execute(self, ctx, agent_id, params):
        raise RuntimeError("kaboom")


def make_dispatcher(registry=None):
    world = WorldStore()
    stimuli = StimulusManager(world, clock=lambda: 100.0)
    bus = EventBus()
    dispatcher = ActionDispatcher(world, registry or build_default_registry(), stimuli, bus, clock=lambda: 100.0)
    lab = create_room(world, "Lab")
    closet = create_room(world, "Closet", capacity=1)
    ada = spawn_agent(world, "Ada", room_id=lab)
    bo = spawn_agent(world, "Bo", room_id=lab)
    return dispatcher, world, bus, {"lab": lab, "closet": closet}, {"ada": ada, "bo": bo}


def test_registry_rejects_duplicates_and_reports_unknown_names():
    registry = build_default_registry()
    assert registry.names() == ["move", "reflect", "speak", "wait"]
    assert "speak" in registry
    assert len(registry) == 4

    with pytest.raises(ValueError):
        registry.register(build_default_registry().get("speak"))
    missing = registry.lookup("fly")
    assert isinstance(missing, NotFoundError)
    assert str(missing) == "Unknown action: fly"


def test_catalog_exposes_json_schemas():
    registry = ActionRegistry()
    registry.register(build_default_registry().get("move"))
    (entry,) = registry.describe()
    assert entry["name"] == "move"
    assert "room" in entry["parameters"]["properties"]


@pytest.mark.asyncio
async def test_unknown_tool_returns_failure_result():
    dispatcher, world, _, _, agents = make_dispatcher()

    result = await dispatcher.execute("teleport", agents["ada"], {})

    assert result.success is False
    assert result.message == "Unknown action: teleport"
    log = world.get_component(agents["ada"], ComponentKind.EXPERIENCE_LOG)
    assert log.entries[-1].tool == "teleport"
    assert log.entries[-1].success is False


@pytest.mark.asyncio
async def test_invalid_parameters_are_reported():
    dispatcher, _, _, _, agents = make_dispatcher()

    result = await dispatcher.execute("speak", agents["ada"], {"message": ""})

    assert result.success is False
    assert result.message == "Invalid parameters for action 'speak'"
    assert any(issue.startswith("message:") for issue in result.data["issues"])


@pytest.mark.asyncio
async def test_speak_creates_stimulus_relation_and_events():
    dispatcher, world, bus, rooms, agents = make_dispatcher()
    room_sub = bus.subscribe(room_channel(rooms["lab"]))
    agent_sub = bus.subscribe(agent_channel(agents["ada"]))

    result = await dispatcher.execute("speak", agents["ada"], {"message": "Morning, Bo", "target": "Bo"})

    assert result.success is True
    assert result.message == "Said: Morning, Bo"
    stimulus = world.get_component(result.data["stimulus_id"], ComponentKind.STIMULUS)
    assert stimulus.type == StimulusType.AUDITORY
    assert stimulus.content["target"] == agents["bo"]
    assert world.has_relation(RelationKind.INTERACTING_WITH, agents["ada"], agents["bo"])

    room_types = [event.type for event in room_sub.drain()]
    assert room_types == [EventType.SPEECH, EventType.AGENT_ACTION]
    action_event = agent_sub.drain()[-1]
    assert action_event.data["tool"] == "speak"
    assert action_event.data["success"] is True


@pytest.mark.asyncio
async def test_speak_to_unknown_agent_fails():
    dispatcher, _, _, _, agents = make_dispatcher()
    result = await dispatcher.execute("speak", agents["ada"], {"message": "hi", "target": "Zed"})
    assert result.success is False
    assert result.message == "Unknown agent: Zed"


@pytest.mark.asyncio
async def test_wait_and_reflect():
    dispatcher, world, _, _, agents = make_dispatcher()

    waited = await dispatcher.execute("wait", agents["ada"], {"reason": "letting the gel set", "is_thinking": True})
    assert waited.message == "Thinking: letting the gel set"

    reflected = await dispatcher.execute("reflect", agents["ada"], {"thought": "I rushed the last batch"})
    assert reflected.success is True
    thought = world.get_component(reflected.data["stimulus_id"], ComponentKind.STIMULUS)
    assert thought.type == StimulusType.COGNITIVE
    assert thought.source == agents["ada"]


@pytest.mark.asyncio
async def test_move_between_rooms():
    dispatcher, world, _, rooms, agents = make_dispatcher()
    appearance = world.get_component(agents["ada"], ComponentKind.APPEARANCE)
    appearance.dirty = False

    result = await dispatcher.execute("move", agents["ada"], {"room": "closet"})

    assert result.success is True
    assert result.message == "Moved to Closet"
    assert agent_room(world, agents["ada"]) == rooms["closet"]
    assert appearance.dirty is True

    again = await dispatcher.execute("move", agents["ada"], {"room": rooms["closet"]})
    assert again.message == "You are already in that room"

    nowhere = await dispatcher.execute("move", agents["ada"], {"room": "Attic"})
    assert nowhere.message == "Unknown room: Attic"


@pytest.mark.asyncio
async def test_concurrent_moves_into_single_slot_room_resolve_by_agent_id():
    dispatcher, world, _, rooms, agents = make_dispatcher()
    for agent in agents.values():
        world.add_component(agent, PendingAction(tool="move", parameters={"room": "Closet"}))

    results = await dispatcher.dispatch_pending(list(agents.values()), tick=3)

    winner, loser = sorted(agents.values())
    assert results[winner].success is True
    assert results[loser].success is False
    assert results[loser].message == "Room Closet is full"
    assert room_occupants(world, rooms["closet"]) == [winner]
    assert agent_room(world, loser) == rooms["lab"]


@pytest.mark.asyncio
async def test_pending_action_cleared_even_on_failure():
    registry = build_default_registry()
    registry.register(ExplodingAction())
    dispatcher, world, _, _, agents = make_dispatcher(registry)
    world.add_component(agents["ada"], PendingAction(tool="explode"))
    world.add_component(agents["bo"], PendingAction(tool="wait"))

    results = await dispatcher.dispatch_pending(list(agents.values()), tick=1)

    assert results[agents["ada"]].success is False
    assert results[agents["ada"]].message == "Action explode failed: kaboom"
    assert results[agents["bo"]].success is True
    for agent in agents.values():
        assert world.get_component(agent, ComponentKind.PENDING_ACTION) is None
        log = world.get_component(agent, ComponentKind.EXPERIENCE_LOG)
        assert log.entries[-1].tick == 1


@pytest.mark.asyncio
async def test_dispatch_skips_agents_without_pending_action():
    dispatcher, _, _, _, agents = make_dispatcher()
    assert await dispatcher.dispatch_pending(list(agents.values()), tick=1) == {}
