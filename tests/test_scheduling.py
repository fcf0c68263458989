from datetime import datetime

import pytest

from keyscout.models import SearchProvider, SearchToken
from keyscout.scheduling import (
    SlidingWindowLimiter,
    TokenRotator,
    query_cutoff,
    recheck_cutoff,
    retry_cutoff,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _token(token_id: int) -> SearchToken:
    return SearchToken(id=token_id, token=f"tok-{token_id}", search_provider=SearchProvider.GITHUB)


def test_limiter_allows_n_per_window_per_key() -> None:
    clock = FakeClock()
    limiter = SlidingWindowLimiter(2, 60.0, clock=clock)

    assert limiter.try_acquire("a") is True
    assert limiter.try_acquire("a") is True
    assert limiter.try_acquire("a") is False
    assert limiter.try_acquire("b") is True
    assert limiter.remaining("a") == 0
    assert limiter.remaining("b") == 1

    clock.now += 59.0
    assert limiter.try_acquire("a") is False
    clock.now += 1.0
    assert limiter.remaining("a") == 2
    assert limiter.try_acquire("a") is True


def test_limiter_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError):
        SlidingWindowLimiter(0, 60.0)
    with pytest.raises(ValueError):
        SlidingWindowLimiter(1, 0)


def test_rotator_round_robins_and_skips_exhausted_tokens() -> None:
    clock = FakeClock()
    limiter = SlidingWindowLimiter(1, 60.0, clock=clock)
    rotator = TokenRotator([_token(1), _token(2)], limiter)

    assert len(rotator) == 2
    first = rotator.acquire()
    second = rotator.acquire()
    assert first is not None and second is not None
    assert (first.id, second.id) == (1, 2)
    assert rotator.acquire() is None

    clock.now += 60.0
    again = rotator.acquire()
    assert again is not None and again.id == 1


def test_rotator_without_tokens() -> None:
    assert TokenRotator([], SlidingWindowLimiter(1, 1.0)).acquire() is None


def test_cutoffs() -> None:
    now = datetime(2026, 1, 2, 12, 0, 0)
    assert retry_cutoff(now, 30) == datetime(2026, 1, 2, 11, 30, 0)
    assert recheck_cutoff(now, 24) == datetime(2026, 1, 1, 12, 0, 0)
    assert query_cutoff(now, 6) == datetime(2026, 1, 2, 6, 0, 0)
