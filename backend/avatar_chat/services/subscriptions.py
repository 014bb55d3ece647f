# snapshot hub: push-based live updates for store consumers
# writers publish a fresh snapshot per key, subscribers get it without polling

import logging
from typing import Any, Awaitable, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

Subscriber = Callable[[Any], Awaitable[None]]

TOPICS = ("messages", "conversation", "user_conversations", "company", "company_documents")


class SnapshotHub:
    """
    Channel-style registry of snapshot subscribers.

    Data structure:
    - _topics: Dict[topic_name, Dict[key, List[(token, callback)]]]

    The store decides what a snapshot is; the hub only routes it. A failing
    subscriber is logged and skipped so one broken view cannot block writes.
    """

    def __init__(self):
        self._topics: Dict[str, Dict[str, List[Tuple[object, Subscriber]]]] = {
            topic: {} for topic in TOPICS
        }

    def add(self, topic: str, key: str, callback: Subscriber) -> Callable[[], None]:
        """register a subscriber and return its unsubscribe function"""
        token = object()
        self._topics[topic].setdefault(key, []).append((token, callback))

        def unsubscribe() -> None:
            entries = self._topics[topic].get(key, [])
            self._topics[topic][key] = [e for e in entries if e[0] is not token]
            if not self._topics[topic][key]:
                self._topics[topic].pop(key, None)

        return unsubscribe

    def has_subscribers(self, topic: str, key: str) -> bool:
        return bool(self._topics[topic].get(key))

    def count(self, topic: str, key: str) -> int:
        return len(self._topics[topic].get(key, []))

    async def publish(self, topic: str, key: str, snapshot: Any) -> None:
        for _, callback in list(self._topics[topic].get(key, [])):
            try:
                await callback(snapshot)
            except Exception as e:
                logger.warning(f"Snapshot subscriber failed on {topic}:{key}: {e}")


# singleton instance shared by every store and websocket session
hub = SnapshotHub()


async def get_hub() -> SnapshotHub:
    """dependency injection for the snapshot hub"""
    return hub
