import json

import pytest

from newsletter_api.errors import PublishError, PublisherConnectionError
from newsletter_api.publisher import EventPublisher, NullPublisher, build_publisher


class _FakeRedis:
    def __init__(self, exc=None):
        self.exc = exc
        self.calls = []

    def publish(self, channel, message):
        if self.exc is not None:
            raise self.exc
        self.calls.append((channel, message))
        return 3

    def ping(self):
        if self.exc is not None:
            raise self.exc
        return True


def _publisher_with(client) -> EventPublisher:
    pub = EventPublisher.from_url("redis://localhost:6379/0", timeout=1)
    pub._client = client
    return pub


def test_publish_encodes_json_payload():
    fake = _FakeRedis()
    pub = _publisher_with(fake)

    receivers = pub.publish("newsletter:subscribe", {"email": "a@example.com"})

    assert receivers == 3
    channel, message = fake.calls[0]
    assert channel == "newsletter:subscribe"
    assert json.loads(message) == {"email": "a@example.com"}


def test_other_redis_errors_are_publish_errors():
    import redis

    pub = _publisher_with(_FakeRedis(redis.ResponseError("NOPERM")))

    with pytest.raises(PublishError) as info:
        pub.publish("c", {"email": "a@example.com"})
    assert not isinstance(info.value, PublisherConnectionError)


def test_unreachable_server_raises_connection_error():
    pub = EventPublisher.from_url("redis://127.0.0.1:1/0", timeout=1)
    try:
        with pytest.raises(PublisherConnectionError):
            pub.publish("newsletter:subscribe", {"email": "a@example.com"})
        assert pub.ping() is False
    finally:
        pub.close()


def test_connection_error_is_a_connection_error():
    assert issubclass(PublisherConnectionError, ConnectionError)


def test_pool_is_shared_across_calls():
    pub = EventPublisher.from_url("redis://localhost:6379/0", timeout=1, max_connections=4)
    try:
        assert pub._client.connection_pool is pub._pool
        assert pub._pool.max_connections == 4
    finally:
        pub.close()


def test_build_publisher_without_url_is_null():
    pub = build_publisher("  ")

    assert isinstance(pub, NullPublisher)
    assert pub.publish("newsletter:subscribe", {"email": "a@example.com"}) == 0
    assert pub.ping() is False


def test_build_publisher_with_url():
    pub = build_publisher("redis://localhost:6379/0", timeout=1)
    try:
        assert isinstance(pub, EventPublisher)
    finally:
        pub.close()
