"""End-to-end tests of the runtime with a scripted oracle."""

import asyncio

import pytest

from cognisim import SimulationRuntime
from cognisim.cognition import ScriptedOracle
from cognisim.errors import NotFoundError, SchedulerFault, ValidationError
from cognisim.events import ROOM_WILDCARD, EventType, agent_channel, room_channel
from cognisim.world import AttentionMode, ComponentKind, agent_room


NOW = 1000.0


def decide(actions):
    """Decision-stage responder keyed by agent name."""

    def respond(stage, context):
        action = actions.get(context["agent"]["name"])
        if action is None:
            return {"content": "Nothing to do yet"}
        return {"content": f"I will {action['tool']}", "action": action}

    return respond


def make_runtime(actions=None, **kwargs):
    oracle = ScriptedOracle({"decision": decide(actions or {})})
    kwargs.setdefault("tick_interval", 1.0)
    runtime = SimulationRuntime(oracle, clock=lambda: NOW, **kwargs)
    lab = runtime.spawn_room("Lab", description="A cramped wet lab", ambience="Freezers hum")
    closet = runtime.spawn_room("Closet", capacity=1)
    ada = runtime.spawn_agent("Ada", room="Lab", role="chemist", goals=["finish the assay", "keep the lab safe"])
    bo = runtime.spawn_agent("Bo", room=lab, role="technician")
    return runtime, oracle, {"lab": lab, "closet": closet}, {"ada": ada, "bo": bo}


@pytest.mark.asyncio
async def test_tick_runs_every_stage_and_broadcasts_state():
    runtime, oracle, rooms, agents = make_runtime(
        {"Ada": {"tool": "speak", "parameters": {"message": "Bo, the centrifuge is done"}}}
    )
    room_sub = runtime.bus.subscribe(room_channel(rooms["lab"]))

    ctx = await runtime.run_tick()

    assert ctx.tick == 1
    assert ctx.failure_count == 0
    assert ctx.data["actions"][agents["ada"]].success is True
    assert "decision" in oracle.stages_called()

    types = [event.type for event in room_sub.drain()]
    assert EventType.THOUGHT in types
    assert EventType.SPEECH in types
    assert EventType.AGENT_ACTION in types
    assert types[-2:] == [EventType.TICK, EventType.ROOM_STATE]

    log = runtime.world.get_component(agents["ada"], ComponentKind.EXPERIENCE_LOG)
    assert log.entries[-1].message == "Said: Bo, the centrifuge is done"
    assert runtime.world.get_component(agents["ada"], ComponentKind.PENDING_ACTION) is None


@pytest.mark.asyncio
async def test_speech_is_heard_by_roommates_on_the_next_tick():
    runtime, _, _, agents = make_runtime({"Ada": {"tool": "speak", "parameters": {"message": "Lunch?"}}})

    await runtime.run(2)

    perception = runtime.world.get_component(agents["bo"], ComponentKind.PERCEPTION)
    assert any("Lunch?" in item.content for item in perception.stimuli)


@pytest.mark.asyncio
async def test_unknown_tool_fails_without_stopping_the_scheduler():
    runtime, _, _, agents = make_runtime({"Ada": {"tool": "teleport", "parameters": {}}})

    contexts = await runtime.run(2)

    assert len(contexts) == 2
    result = contexts[0].data["actions"][agents["ada"]]
    assert result.success is False
    assert result.message == "Unknown action: teleport"
    assert runtime.scheduler.last_fault is None


@pytest.mark.asyncio
async def test_two_agents_racing_for_a_single_slot_room():
    move = {"tool": "move", "parameters": {"room": "Closet"}}
    runtime, _, rooms, agents = make_runtime({"Ada": move, "Bo": move})

    ctx = await runtime.run_tick()

    results = ctx.data["actions"]
    assert results[agents["ada"]].success is True
    assert results[agents["bo"]].message == "Room Closet is full"
    assert agent_room(runtime.world, agents["ada"]) == rooms["closet"]
    assert agent_room(runtime.world, agents["bo"]) == rooms["lab"]


@pytest.mark.asyncio
async def test_threat_in_room_puts_agents_on_alert_within_one_tick():
    runtime, _, rooms, agents = make_runtime()

    runtime.chat("Fire in the fume hood!", room="Lab")
    await runtime.run_tick()

    attention = runtime.world.get_component(agents["bo"], ComponentKind.ATTENTION)
    assert attention.mode == AttentionMode.ALERT


@pytest.mark.asyncio
async def test_direct_chat_reaches_only_its_agent():
    runtime, _, _, agents = make_runtime()
    agent_sub = runtime.bus.subscribe(agent_channel(agents["ada"]))

    stimulus_id = runtime.chat("Ada, call me back", agent="Ada")
    await runtime.run_tick()

    assert isinstance(stimulus_id, int)
    assert agent_sub.drain()[0].type == EventType.STIMULUS
    ada_seen = runtime.world.get_component(agents["ada"], ComponentKind.PERCEPTION).stimuli
    bo_seen = runtime.world.get_component(agents["bo"], ComponentKind.PERCEPTION).stimuli
    assert stimulus_id in [item.stimulus_id for item in ada_seen]
    assert stimulus_id not in [item.stimulus_id for item in bo_seen]


def test_chat_errors_are_returned_as_values():
    runtime, _, _, _ = make_runtime()

    assert isinstance(runtime.chat("hi"), ValidationError)
    assert isinstance(runtime.chat("hi", room="Lab", agent="Ada"), ValidationError)
    assert isinstance(runtime.chat("hi", room="Attic"), NotFoundError)
    assert isinstance(runtime.chat("hi", agent="Zed"), NotFoundError)


@pytest.mark.asyncio
async def test_queued_room_input_becomes_a_stimulus_at_the_next_tick():
    runtime, _, rooms, agents = make_runtime()
    assert runtime.queue_room_input("Lab", "Inspection in ten minutes") is True
    assert runtime.queue_room_input("Attic", "nobody hears this") is False

    await runtime.run_tick()

    perception = runtime.world.get_component(agents["ada"], ComponentKind.PERCEPTION)
    assert any("Inspection in ten minutes" in item.content for item in perception.stimuli)
    room = runtime.world.get_component(rooms["lab"], ComponentKind.ROOM)
    assert room.queued_input == []


def test_spawn_into_unknown_room_raises():
    runtime, _, _, _ = make_runtime()
    with pytest.raises(ValueError):
        runtime.spawn_agent("Cy", room="Attic")


def test_snapshots_describe_rooms_and_agents():
    runtime, _, rooms, agents = make_runtime()

    room_event = runtime.room_state(rooms["lab"])
    assert room_event.entity_key == f"room:{rooms['lab']}"
    assert [occupant["name"] for occupant in room_event.data["occupants"]] == ["Ada", "Bo"]

    agent_event = runtime.agent_state(agents["ada"])
    assert agent_event.data["role"] == "chemist"
    assert agent_event.data["goals"] == ["finish the assay", "keep the lab safe"]
    assert runtime.room_state(agents["ada"]) is None

    world = runtime.world_state()
    assert world["tick"] == 0
    assert len(world["rooms"]) == 2


@pytest.mark.asyncio
async def test_start_and_stop_broadcast_control_events():
    runtime, _, _, _ = make_runtime(tick_interval=0.05)
    sub = runtime.bus.subscribe(ROOM_WILDCARD)

    runtime.start()
    assert runtime.running is True
    await asyncio.sleep(0.12)
    runtime.stop()
    await asyncio.wait_for(runtime.wait_stopped(), timeout=2.0)

    assert runtime.running is False
    assert runtime.tick >= 1
    controls = [event.data["state"] for event in sub.drain() if event.type == EventType.CONTROL]
    assert controls[:2] == ["running", "running"]
    assert controls[-1] == "stopped"


@pytest.mark.asyncio
async def test_reset_removes_everything_and_zeroes_tick():
    runtime, _, rooms, _ = make_runtime()
    sub = runtime.bus.subscribe(room_channel(rooms["lab"]))
    await runtime.run_tick()

    runtime.reset()

    assert runtime.tick == 0
    assert runtime.world.entity_count == 0
    assert sub.drain()[-1].data == {"state": "reset", "tick": 1}


@pytest.mark.asyncio
async def test_system_fault_broadcasts_error_and_stops():
    runtime, _, rooms, _ = make_runtime()

    class Broken:
        name = "broken"

        async def run(self, ctx):
            raise KeyError("missing component")

    runtime.scheduler.systems.append(Broken())
    sub = runtime.bus.subscribe(room_channel(rooms["lab"]))

    with pytest.raises(SchedulerFault) as excinfo:
        await runtime.run(3)

    assert excinfo.value.system == "broken"
    errors = [event for event in sub.drain() if event.type == EventType.ERROR]
    assert errors[0].data["system"] == "broken"
    assert runtime.running is False
