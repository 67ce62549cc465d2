"""Unit tests for utils/rate_limiter."""

from unittest.mock import patch

import pytest

from trial_navigator.utils.rate_limiter import SlidingWindowRateLimiter


@pytest.fixture
def limiter(clock):
    return SlidingWindowRateLimiter(window_seconds=1.0, clock=clock)


@pytest.fixture
def fake_sleep(clock):
    """Replace asyncio.sleep with one that advances the fake clock."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)
        clock.advance(seconds)

    with patch("trial_navigator.utils.rate_limiter.asyncio.sleep", new=_sleep):
        yield delays


async def test_calls_under_limit_do_not_wait(limiter, fake_sleep):
    for _ in range(3):
        waited = await limiter.wait_if_needed("clinical_trials", 3)
        assert waited == 0.0

    assert fake_sleep == []
    assert limiter.recent_calls("clinical_trials") == 3


async def test_call_over_limit_waits_until_window_clears(limiter, clock, fake_sleep):
    for _ in range(3):
        await limiter.wait_if_needed("clinical_trials", 3)
        clock.advance(0.1)

    # Calls at t=0.0, 0.1, 0.2; now t=0.3, so the oldest leaves at t=1.0.
    waited = await limiter.wait_if_needed("clinical_trials", 3)

    assert waited == pytest.approx(0.7)
    assert fake_sleep == [pytest.approx(0.7)]


async def test_no_more_than_limit_in_any_window(limiter, clock, fake_sleep):
    stamps = []
    for _ in range(10):
        await limiter.wait_if_needed("pubmed", 3)
        stamps.append(clock())

    for i in range(len(stamps) - 3):
        assert stamps[i + 3] - stamps[i] >= 1.0 - 1e-9


async def test_sources_are_limited_independently(limiter, fake_sleep):
    for _ in range(3):
        await limiter.wait_if_needed("clinical_trials", 3)

    waited = await limiter.wait_if_needed("openfda", 5)

    assert waited == 0.0
    assert fake_sleep == []


async def test_old_calls_expire_from_window(limiter, clock, fake_sleep):
    for _ in range(3):
        await limiter.wait_if_needed("icd10", 3)
    clock.advance(1.0)

    waited = await limiter.wait_if_needed("icd10", 3)

    assert waited == 0.0
    assert limiter.recent_calls("icd10") == 1


async def test_rejects_non_positive_limit(limiter):
    with pytest.raises(ValueError):
        await limiter.wait_if_needed("x", 0)
