import logging
from datetime import timedelta
from typing import List

from orderflow.core.clock import utc_now, parse_timestamp
from orderflow.core.config import settings
from orderflow.interfaces.IKeyValueStore import IKeyValueStore

logger = logging.getLogger(__name__)

QUEUE_SET = "order_queue"


def _entry_key(order_id: int) -> str:
    return f"dispatch:order:{order_id}"


class DispatchQueue:
    """
    Orders that are ready for pickup and not yet claimed.

    Passive: partners pull from it, nothing pops from it. An entry disappears
    when the arbiter removes it after a claim, or reads as gone once its TTL
    has passed. Expired entries are skipped at read time, not garbage collected.
    """

    def __init__(self, store: IKeyValueStore, ttl_seconds: int = settings.DISPATCH_TTL_SECONDS,
                 clock=utc_now):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def enqueue(self, order_id: int, payload: dict) -> dict:
        now = self.clock()
        entry = {
            **payload,
            "orderId": order_id,
            "enqueuedAt": now.isoformat(),
            "expiresAt": (now + timedelta(seconds=self.ttl_seconds)).isoformat(),
        }
        self.store.put(_entry_key(order_id), entry, self.ttl_seconds)
        self.store.add_member(QUEUE_SET, str(order_id))
        logger.info(f"📦 Order {order_id} added to distribution queue")
        return entry

    def remove(self, order_id: int) -> None:
        self.store.delete(_entry_key(order_id))
        self.store.remove_member(QUEUE_SET, str(order_id))
        logger.info(f"✅ Order {order_id} removed from queue")

    def contains(self, order_id: int) -> bool:
        return self._live_entry(str(order_id)) is not None

    def list_all(self) -> List[dict]:
        """Live entries, oldest first."""
        entries = []
        for member in self.store.members(QUEUE_SET):
            entry = self._live_entry(member)
            if entry is not None:
                entries.append(entry)
        return sorted(entries, key=lambda e: e["enqueuedAt"])

    def _live_entry(self, member: str):
        entry = self.store.get(_entry_key(member))
        if entry is None:
            return None
        if parse_timestamp(entry["expiresAt"]) <= self.clock():
            return None
        return entry
