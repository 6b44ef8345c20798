from newsletter_api import ratelimit


def test_bucket_allows_burst_then_blocks():
    ratelimit.reset()
    assert ratelimit.allow("client", rps=0.0, burst=2)
    assert ratelimit.allow("client", rps=0.0, burst=2)
    assert not ratelimit.allow("client", rps=0.0, burst=2)
    assert ratelimit.allow("other", rps=0.0, burst=2)


def test_rate_limited_requests_get_429(make_client):
    with make_client(RATE_LIMIT_ENABLED="1", RATE_LIMIT_RPS="0", RATE_LIMIT_BURST="2") as client:
        statuses = [client.get("/health").status_code for _ in range(3)]
        blocked = client.get("/")

    assert statuses == [200, 200, 429]
    assert blocked.status_code == 429
    assert blocked.json() == {"success": False, "message": "Too many requests"}
    assert blocked.headers["X-Request-ID"]


def test_rate_limit_disabled_by_default(client):
    assert all(client.get("/health").status_code == 200 for _ in range(30))
