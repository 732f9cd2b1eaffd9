"""
Lab Shift - Two Agents Sharing a Room
=====================================

WHAT THIS SHOWS:
- Spawning rooms and agents into a SimulationRuntime
- A chat message injected into a room reaching both agents
- Speech from one agent perceived by the other on the next tick
- Mirroring every room/agent event into a JSONL report

REQUIRES (LLM mode):
- LLM_PROVIDER environment variable (e.g., "openai" or "ollama")
- LLM_MODEL environment variable (e.g., "gpt-5-nano" or "llama3.1")
- API key for your provider (e.g., OPENAI_API_KEY)

Without LLM_PROVIDER the example runs offline on a ScriptedOracle.

RUN:
    export LLM_PROVIDER=openai
    export LLM_MODEL=gpt-5-nano
    export OPENAI_API_KEY=your_key
    uv run python -m examples.lab.run
"""

import asyncio
import os

from cognisim import SimulationRuntime
from cognisim.cognition import ScriptedOracle
from cognisim.config import Config
from cognisim.events import ROOM_WILDCARD, EventType
from cognisim.sink import SinkMirror, build_sink


def scripted_decision(stage, context):
    name = context["agent"]["name"]
    if name == "Ada":
        return {
            "content": "The fume hood alarm needs attention before anything else.",
            "confidence": 0.8,
            "action": {"tool": "speak", "parameters": {"message": "Bo, can you check the fume hood?", "target": "Bo"}},
        }
    return {
        "content": "I will go grab the spare filters.",
        "confidence": 0.7,
        "action": {"tool": "move", "parameters": {"room": "Storage"}},
    }


def build_runtime() -> SimulationRuntime:
    provider = os.getenv("LLM_PROVIDER")
    model = os.getenv("LLM_MODEL")

    if provider and model:
        print(f"Using {provider}/{model}")
        runtime = SimulationRuntime.from_config()
    else:
        print("LLM_PROVIDER not set; running on a scripted oracle")
        runtime = SimulationRuntime(ScriptedOracle({"decision": scripted_decision}))

    runtime.spawn_room("Lab", description="A wet lab with two benches and a fume hood", ambience="Freezers hum")
    runtime.spawn_room("Storage", description="Shelves of consumables", capacity=2)
    runtime.spawn_agent(
        "Ada",
        room="Lab",
        role="chemist",
        appearance="Lab coat, safety glasses pushed up",
        goals=["finish the titration series", "keep the lab safe"],
    )
    runtime.spawn_agent(
        "Bo",
        room="Lab",
        role="technician",
        appearance="Gloves on, carrying a sample rack",
        goals=["restock consumables"],
    )
    return runtime


async def main() -> None:
    print(Config.display())
    runtime = build_runtime()

    sink = build_sink(Config.REPORT_PATH)
    mirror = SinkMirror(sink, runtime.bus)
    await mirror.start()
    watcher = runtime.bus.subscribe(ROOM_WILDCARD)

    runtime.chat("The fume hood alarm just went off!", room="Lab")
    await runtime.run(3)
    await mirror.stop()

    print("\n=== Room events ===")
    for event in watcher.drain():
        if event.type == EventType.SPEECH:
            print(f"  {event.data['name']}: {event.data['message']}")
        elif event.type == EventType.AGENT_ACTION:
            status = "ok" if event.data.get("success") else "failed"
            print(f"  [tick {event.data['tick']}] agent {event.data['agent_id']} {event.data.get('tool')}: {status}")

    print(f"\nMirrored {mirror.written} events ({mirror.failures} failures)")
    print(runtime.world_state())


if __name__ == "__main__":
    asyncio.run(main())
