"""Best-effort event publishing over Redis pub/sub."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from .errors import PublishError, PublisherConnectionError

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    def publish(self, channel: str, payload: dict[str, Any]) -> int: ...

    def ping(self) -> bool: ...

    def close(self) -> None: ...


class EventPublisher:
    """Publishes JSON payloads through a process-wide Redis connection pool.

    Each call borrows a pooled connection and hands it back; nothing
    reconnects per request.
    """

    def __init__(self, pool: redis.ConnectionPool) -> None:
        self._pool = pool
        self._client = redis.Redis(connection_pool=pool)

    @classmethod
    def from_url(
        cls, url: str, timeout: float | None = None, max_connections: int = 10
    ) -> "EventPublisher":
        pool = redis.ConnectionPool.from_url(
            url,
            socket_connect_timeout=timeout or None,
            socket_timeout=timeout or None,
            max_connections=max_connections,
            retry_on_timeout=False,
            retry=Retry(NoBackoff(), 0),
        )
        return cls(pool)

    def publish(self, channel: str, payload: dict[str, Any]) -> int:
        try:
            return int(self._client.publish(channel, json.dumps(payload)))
        except (redis.ConnectionError, redis.TimeoutError) as exc:
            raise PublisherConnectionError(str(exc)) from exc
        except redis.RedisError as exc:
            raise PublishError(str(exc)) from exc

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def close(self) -> None:
        self._pool.disconnect()


class NullPublisher:
    """Stands in when no Redis URL is configured."""

    def publish(self, channel: str, payload: dict[str, Any]) -> int:  # noqa: ARG002
        logger.debug("publishing disabled; dropped event on %s", channel)
        return 0

    def ping(self) -> bool:
        return False

    def close(self) -> None:
        return None


def build_publisher(
    url: str, timeout: float | None = None, max_connections: int = 10
) -> Publisher:
    if not url.strip():
        return NullPublisher()
    return EventPublisher.from_url(url, timeout=timeout, max_connections=max_connections)
