"""
Example 01: Tool Loop
=====================

Demonstrates one agent turn with a tool call:
- Adding the user's input and the model's streamed output as it arrives
- How a tool result merges into the assistant message that issued the call
- What the next model request looks like (system messages first, then the
  sanitized conversation)
- Draining the messages that still need to be persisted

Run:
    uv run python examples/01_tool_loop.py
"""

import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from threadline import EventBus, MessageList, ThreadlineEvent  # noqa: E402


def fake_weather(city: str) -> dict:
    return {"city": city, "temp_c": 18, "sky": "clear"}


def main() -> None:
    bus = EventBus()
    bus.subscribe_all(lambda event, payload: print(f"  [event] {event}: {payload}"))

    messages = MessageList(thread_id="thread_demo", resource_id="user_demo", event_bus=bus)
    messages.add_system("You are a concise weather assistant.")

    print("User turn:")
    messages.add("What's the weather in Paris?", "user")

    print("\nModel requests a tool:")
    messages.add(
        {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Let me check."},
                {"type": "tool-call", "toolCallId": "call_1", "toolName": "weather",
                 "input": {"city": "Paris"}},
            ],
        },
        "response",
    )

    # An unresolved call never reaches the model
    assert all(m["role"] != "tool" for m in messages.get.prompt())

    print("\nTool result arrives:")
    messages.add(
        {
            "role": "tool",
            "content": [
                {"type": "tool-result", "toolCallId": "call_1", "toolName": "weather",
                 "output": fake_weather("Paris")},
            ],
        },
        "response",
    )

    print("\nModel answers:")
    messages.add({"role": "assistant", "content": "It's 18°C and clear in Paris."}, "response")

    print("\nNext prompt:")
    print(json.dumps(messages.get.prompt(), indent=2, default=str))

    saved = messages.drain_unsaved_messages()
    print(f"\nPersisting {len(saved)} message(s): {[m.id for m in saved]}")

    bus.subscribe(
        ThreadlineEvent.MESSAGES_DRAINED,
        lambda event, payload: print("  (nothing new, so this never prints)"),
    )
    assert messages.drain_unsaved_messages() == []


if __name__ == "__main__":
    main()
