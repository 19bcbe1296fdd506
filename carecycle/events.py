"""
Change notifications for schedule data

Writes emit ``Invalidation(organization_id, reason)`` after commit. Local
subscribers (caches, tests) get them in-process; other processes get them
over Redis pub/sub. The scheduling engine publishes only and never listens.
"""

import json
import logging
from dataclasses import asdict, dataclass
from typing import Callable, Optional

import redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)

INVALIDATION_CHANNEL = "carecycle:invalidate"


@dataclass(frozen=True)
class Invalidation:
    organization_id: int
    reason: str
    schedule_id: Optional[int] = None


Subscriber = Callable[[Invalidation], None]


class RedisPublisher:
    """Fan-out over Redis pub/sub; fails open when Redis is unreachable"""

    def __init__(self, url: Optional[str] = REDIS_URL, channel: str = INVALIDATION_CHANNEL):
        self.url = url
        self.channel = channel
        self._client = None

    def _get_client(self) -> Optional[redis.Redis]:
        """Lazy load Redis client"""
        if not self.url:
            return None
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._client

    def __call__(self, event: Invalidation) -> None:
        client = self._get_client()
        if client is None:
            return
        try:
            client.publish(self.channel, json.dumps(asdict(event)))
        except redis.RedisError as e:
            logger.warning(f"⚠️ Invalidation for org {event.organization_id} not published: {e}")


class InvalidationBus:
    """In-process publish/subscribe of invalidation events"""

    def __init__(self, publisher: Optional[Subscriber] = None):
        self._subscribers: list[Subscriber] = []
        self.publisher = publisher

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: Invalidation) -> None:
        logger.debug(f"📣 invalidate org={event.organization_id} reason={event.reason}")
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                # One failing listener must not block the write that triggered it
                logger.error(f"❌ Invalidation subscriber {callback!r} failed: {e}")

        if self.publisher is not None:
            self.publisher(event)

    def invalidate(self, organization_id: int, reason: str, schedule_id: Optional[int] = None) -> None:
        self.publish(Invalidation(organization_id, reason, schedule_id))


bus = InvalidationBus(publisher=RedisPublisher())
