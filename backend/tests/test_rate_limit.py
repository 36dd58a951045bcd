"""
Blog API Backend: Rate Limiter Tests
====================================

What:  Fixed window counting per key, window reset, and the 429 response.
How:   A fake clock drives the limiter so no test sleeps.
"""

import threading

import pytest

from blog_api.exceptions import RateLimitExceededError
from blog_api.middleware.rate_limit import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateLimiter:
    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(max_requests=3, window_seconds=60, clock=self.clock)

    def test_allows_up_to_limit(self):
        for expected in (1, 2, 3):
            window = self.limiter.check("10.0.0.1")
            assert window.count == expected
        assert self.limiter.remaining(window) == 0

    def test_rejects_request_over_limit(self):
        for _ in range(3):
            self.limiter.check("10.0.0.1")

        with pytest.raises(RateLimitExceededError) as exc_info:
            self.limiter.check("10.0.0.1")

        assert exc_info.value.retry_after == 60
        assert exc_info.value.context["limit"] == 3

    def test_window_reset_after_elapsed(self):
        for _ in range(3):
            self.limiter.check("10.0.0.1")
        self.clock.advance(30)
        with pytest.raises(RateLimitExceededError) as exc_info:
            self.limiter.check("10.0.0.1")
        assert exc_info.value.retry_after == 30

        self.clock.advance(30)
        window = self.limiter.check("10.0.0.1")

        assert window.count == 1
        assert window.window_start == self.clock.now

    def test_keys_are_independent(self):
        for _ in range(3):
            self.limiter.check("10.0.0.1")
        assert self.limiter.check("10.0.0.2").count == 1

    def test_returned_window_is_a_snapshot(self):
        window = self.limiter.check("10.0.0.1")
        self.limiter.check("10.0.0.1")
        assert window.count == 1
        assert self.limiter.get_window("10.0.0.1").count == 2

    def test_expired_windows_are_pruned(self):
        limiter = RateLimiter(max_requests=10_000, window_seconds=60, clock=self.clock)
        limiter.check("stale")
        self.clock.advance(120)
        for i in range(RateLimiter.CLEANUP_INTERVAL - 2):
            limiter.check(f"client-{i % 2}")
        assert limiter.get_window("stale") is not None

        limiter.check("client-0")

        assert limiter.get_window("stale") is None
        assert limiter.get_window("client-0") is not None

    def test_no_lost_updates_across_threads(self):
        limiter = RateLimiter(max_requests=10_000, window_seconds=60)

        def hammer():
            for _ in range(500):
                limiter.check("shared")

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert limiter.get_window("shared").count == 4000

    @pytest.mark.parametrize("max_requests, window", [(0, 60), (5, 0)])
    def test_rejects_invalid_configuration(self, max_requests, window):
        with pytest.raises(ValueError):
            RateLimiter(max_requests=max_requests, window_seconds=window)


class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_n_plus_one_request_rejected(self, make_client, make_settings):
        client = await make_client(make_settings(rate_limit_requests=2))

        first = await client.get("/api/v1/")
        second = await client.get("/api/v1/")
        third = await client.get("/api/v1/")

        assert first.status_code == 200
        assert first.headers["ratelimit-limit"] == "2"
        assert first.headers["ratelimit-remaining"] == "1"
        assert second.headers["ratelimit-remaining"] == "0"

        assert third.status_code == 429
        assert int(third.headers["retry-after"]) >= 1
        body = third.json()
        assert body["error"] == "rate_limit_exceeded"
        assert "too many requests" in body["message"]

    @pytest.mark.asyncio
    async def test_rejection_still_carries_security_headers(self, make_client, make_settings):
        client = await make_client(make_settings(rate_limit_requests=1))
        await client.get("/")
        response = await client.get("/")

        assert response.status_code == 429
        assert response.headers["x-content-type-options"] == "nosniff"
