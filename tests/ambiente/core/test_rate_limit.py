from ambiente.core.rate_limit import ApiRateLimiter, RateLimitPolicy


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_limiter_blocks_after_max_requests_in_window():
    clock = Clock()
    limiter = ApiRateLimiter(RateLimitPolicy(max_requests=3, window_s=60), clock=clock)

    assert [limiter.hit("1.2.3.4") for _ in range(4)] == [True, True, True, False]
    # Other clients have their own window.
    assert limiter.hit("5.6.7.8") is True


def test_limiter_window_resets():
    clock = Clock()
    limiter = ApiRateLimiter(RateLimitPolicy(max_requests=1, window_s=60), clock=clock)

    assert limiter.hit("a") is True
    assert limiter.hit("a") is False
    clock.now = 60.0
    assert limiter.hit("a") is True


def test_reset_clears_counters():
    limiter = ApiRateLimiter(RateLimitPolicy(max_requests=1, window_s=60), clock=Clock())
    limiter.hit("a")
    limiter.reset()
    assert limiter.hit("a") is True


def test_expired_client_windows_are_forgotten():
    clock = Clock()
    limiter = ApiRateLimiter(RateLimitPolicy(max_requests=5, window_s=60), clock=clock)
    for n in range(100):
        limiter.hit(f"10.0.0.{n}")
    assert len(limiter) == 100

    clock.now = 61.0
    assert limiter.hit("10.0.1.1") is True
    assert len(limiter) == 1
