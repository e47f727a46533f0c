"""Example: in-process feed hub (memory backend) with one live session and one offline subscriber."""

import asyncio
import logging

from feedhub import FeedHub, Settings

logging.basicConfig(level=logging.INFO)


async def main() -> None:
    hub = FeedHub(Settings(heartbeat_interval_sec=0))
    await hub.start()

    async def send(payload: dict) -> None:
        print("alice's session got:", payload)

    session = hub.connect(send)
    await hub.register(session.session_id, "alice")
    await hub.join_topic(session.session_id, "sports")
    await hub.subscribe("carol", "sports")

    result = await hub.publish({
        "id": "p1",
        "title": "Game Day",
        "topic": "sports",
        "description": "Kickoff at noon",
        "author": "bob",
        "dateCreated": "2024-05-01",
    })
    print(f"notified {result.notified} of {result.subscribers} subscribers, pushed to {result.pushed} sessions")
    await asyncio.sleep(0.1)

    for username in ("alice", "carol"):
        for n in await hub.notifications(username):
            print(username, "->", n.message)

    await hub.stop()


if __name__ == "__main__":
    asyncio.run(main())
