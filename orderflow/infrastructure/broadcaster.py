import logging
import threading

import redis

from orderflow.core.config import settings
from orderflow.interfaces.IEventBroadcaster import IEventBroadcaster

logger = logging.getLogger(__name__)


class RedisEventBroadcaster(IEventBroadcaster):
    """
    Publishes each event as JSON on a Redis pub/sub channel named after the topic
    (user_<id>, restaurant_<id>, delivery_<id>). The socket gateway that fans
    these out to browsers subscribes on the other side.
    Errors propagate; EventPublisher decides they are not fatal.
    """

    def __init__(self, url: str = settings.REDIS_URL):
        self.redis = redis.from_url(url, decode_responses=True, socket_connect_timeout=1)

    def publish(self, topic: str, event) -> None:
        receivers = self.redis.publish(topic, event.to_json())
        logger.debug(f"📤 Published {event.event_type.value} on {topic} to {receivers} subscribers")


class InMemoryEventBroadcaster(IEventBroadcaster):
    """Keeps every published event; handy for tests and local runs without Redis."""

    def __init__(self):
        self.published = []
        self._lock = threading.Lock()

    def publish(self, topic: str, event) -> None:
        with self._lock:
            self.published.append((topic, event))

    def events_for(self, topic: str) -> list:
        with self._lock:
            return [e for t, e in self.published if t == topic]

    def clear(self) -> None:
        with self._lock:
            self.published.clear()
