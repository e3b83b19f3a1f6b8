import pytest

from genai_proxy.core.rate_limit import RateLimiter, RateLimitExceeded


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_requests_over_the_limit_are_rejected():
    clock = _Clock()
    limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)

    limiter.hit("1.2.3.4")
    limiter.hit("1.2.3.4")
    clock.now += 15
    with pytest.raises(RateLimitExceeded) as excinfo:
        limiter.hit("1.2.3.4")

    assert excinfo.value.retry_after == pytest.approx(45)
    assert excinfo.value.retry_after_seconds == 45


def test_clients_are_counted_separately():
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=_Clock())

    limiter.hit("1.2.3.4")
    limiter.hit("5.6.7.8")

    with pytest.raises(RateLimitExceeded):
        limiter.hit("1.2.3.4")


def test_window_resets():
    clock = _Clock()
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)

    limiter.hit("1.2.3.4")
    clock.now += 60
    limiter.hit("1.2.3.4")


def test_reset_clears_all_buckets():
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=_Clock())

    limiter.hit("1.2.3.4")
    limiter.reset()
    limiter.hit("1.2.3.4")


def test_expired_clients_are_forgotten():
    clock = _Clock()
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)

    limiter.hit("1.2.3.4")
    limiter.hit("5.6.7.8")
    assert limiter.tracked_clients == 2

    clock.now += 61
    limiter.hit("9.9.9.9")

    assert limiter.tracked_clients == 1
