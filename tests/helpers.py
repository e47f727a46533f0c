"""Test helpers shared across modules."""

import asyncio
from typing import Any, Dict, List


class RecordingSend:
    """Stands in for websocket.send_json; keeps every payload it was given."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    async def __call__(self, payload: Dict[str, Any]) -> None:
        self.sent.append(payload)

    def of_type(self, msg_type: str) -> List[Dict[str, Any]]:
        return [p for p in self.sent if p.get("type") == msg_type]


class FailingSend:
    async def __call__(self, payload: Dict[str, Any]) -> None:
        raise ConnectionResetError("socket gone")


async def settle() -> None:
    """Let session drain tasks run."""
    await asyncio.sleep(0.05)


def post_fields(**overrides: str) -> Dict[str, str]:
    fields = {
        "id": "p1",
        "title": "Game Day",
        "topic": "sports",
        "description": "Kickoff at noon",
        "author": "bob",
        "dateCreated": "2024-05-01",
    }
    fields.update(overrides)
    return fields
