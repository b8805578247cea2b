"""
Example 02: History Replay
==========================

Demonstrates loading stored history written by older versions of an app:
- Oldest-generation rows (one message per tool call / tool result)
- Prior-generation rows (``content.format == 2``)
- Replaying rows that are already loaded without duplicating them
- Writing the conversation back out in each storage generation

Run:
    uv run python examples/02_history_replay.py
"""

import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from threadline import MessageList  # noqa: E402

THREAD = "thread_history"

OLDEST_ROWS = [
    {"id": "r1", "role": "user", "type": "text", "content": "Find me a flight to Lisbon",
     "threadId": THREAD, "createdAt": "2024-02-01T09:00:00Z"},
    {"id": "r2", "role": "assistant", "type": "tool-call", "threadId": THREAD,
     "createdAt": "2024-02-01T09:00:01Z",
     "content": [{"type": "tool-call", "toolCallId": "t1", "toolName": "search_flights",
                  "args": {"to": "LIS"}}]},
    {"id": "r3", "role": "tool", "type": "tool-result", "threadId": THREAD,
     "createdAt": "2024-02-01T09:00:02Z",
     "content": [{"type": "tool-result", "toolCallId": "t1", "toolName": "search_flights",
                  "result": [{"flight": "TP123", "price": 180}]}]},
]

PRIOR_ROWS = [
    {"id": "r4", "role": "assistant", "threadId": THREAD, "createdAt": "2024-02-01T09:00:03Z",
     "content": {"format": 2, "parts": [{"type": "text", "text": "TP123 leaves at 10:40 for 180 EUR."}]}},
]


def main() -> None:
    messages = MessageList(thread_id=THREAD)
    messages.add(OLDEST_ROWS + PRIOR_ROWS, "memory")
    # r1 and r4 are already loaded and identical, so both are skipped
    messages.add([OLDEST_ROWS[0], *PRIOR_ROWS], "memory")

    print(f"{len(messages)} canonical messages:")
    for message in messages:
        kinds = [part.type for part in message.parts]
        print(f"  {message.id:>4} {message.role:<9} {message.created_at.isoformat()} {kinds}")

    print("\nPrior generation:")
    print(json.dumps(messages.get.all.prior_gen(), indent=2, default=str))

    print("\nOldest generation:")
    for row in messages.get.all.oldest_gen():
        print(f"  {row['id']:<14} {row['role']:<9} {row['type']}")

    print(f"\nNothing to persist: {messages.drain_unsaved_messages()}")


if __name__ == "__main__":
    main()
