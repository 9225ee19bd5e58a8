"""Sliding-window limiter with a fake clock."""

from conftest import run
from agp.llm.rate_limit import WINDOW_S, RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(rpm=2, tpm=1000):
    clock = FakeClock()
    return RateLimiter(rpm, tpm, name="m", clock=clock, sleep=clock.sleep), clock


def test_admits_up_to_rpm_without_waiting():
    limiter, clock = _limiter(rpm=2)

    async def go():
        await limiter.acquire(10)
        await limiter.acquire(10)

    run(go())
    assert clock.sleeps == []
    assert limiter.usage() == {"requests": 2, "tokens": 20}


def test_waits_for_window_when_rpm_reached():
    limiter, clock = _limiter(rpm=2)

    async def go():
        await limiter.acquire(10)
        clock.now += 5
        await limiter.acquire(10)
        await limiter.acquire(10)

    run(go())
    # The first entry leaves the window 60s after it was recorded
    assert clock.sleeps == [WINDOW_S - 5]
    assert limiter.usage()["requests"] == 2


def test_token_ceiling_blocks_until_window_clears():
    limiter, clock = _limiter(rpm=100, tpm=1000)

    async def go():
        await limiter.acquire(800)
        await limiter.acquire(300)

    run(go())
    assert clock.sleeps == [WINDOW_S]


def test_oversized_request_admitted_on_empty_window():
    limiter, clock = _limiter(rpm=10, tpm=100)
    run(limiter.acquire(5000))
    assert clock.sleeps == []


def test_report_usage_charges_only_the_excess():
    limiter, _ = _limiter(rpm=10, tpm=10_000)
    run(limiter.acquire(100))
    limiter.report_usage(100, 60)
    assert limiter.usage() == {"requests": 1, "tokens": 100}
    limiter.report_usage(100, 250)
    assert limiter.usage() == {"requests": 1, "tokens": 250}


def test_entries_expire_after_window():
    limiter, clock = _limiter(rpm=1)
    run(limiter.acquire(10))
    clock.now += WINDOW_S
    assert limiter.usage() == {"requests": 0, "tokens": 0}
