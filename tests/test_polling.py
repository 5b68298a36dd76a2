import asyncio

import pytest

from safe_quorum.polling import Found, TimedOut, poll_until


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.mark.asyncio
async def test_found_after_some_attempts(sleep):
    values = iter([[], [], ["tx"]])

    result = await poll_until(lambda: next(values), interval=0.5, max_attempts=10, sleep=sleep)

    assert result == Found(value=["tx"], attempts=3)
    assert sleep.calls == [0.5, 0.5]


@pytest.mark.asyncio
async def test_timeout_is_bounded_and_spaced(sleep):
    calls = 0

    def fetch():
        nonlocal calls
        calls += 1
        return []

    result = await poll_until(fetch, interval=0.5, max_attempts=120, sleep=sleep)

    assert isinstance(result, TimedOut)
    assert result.attempts == 120
    assert not result.cancelled
    assert calls == 120
    # one gap between each pair of queries, none after the last
    assert len(sleep.calls) == 119
    assert all(s >= 0.5 for s in sleep.calls)


@pytest.mark.asyncio
async def test_async_fetch_and_custom_predicate(sleep):
    counter = {"n": 0}

    async def fetch():
        counter["n"] += 1
        return counter["n"]

    result = await poll_until(fetch, lambda n: n >= 4, interval=0.1, max_attempts=10, sleep=sleep)

    assert isinstance(result, Found)
    assert result.value == 4
    assert result.attempts == 4


@pytest.mark.asyncio
async def test_deadline_stops_early():
    clock = FakeClock()

    result = await poll_until(
        lambda: None,
        interval=0.5,
        max_attempts=120,
        deadline=1.0,
        sleep=clock.sleep,
        clock=clock,
    )

    assert isinstance(result, TimedOut)
    assert result.attempts == 3
    assert result.elapsed == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_cancel_before_next_attempt(sleep):
    cancel = asyncio.Event()
    calls = 0

    def fetch():
        nonlocal calls
        calls += 1
        if calls == 2:
            cancel.set()
        return None

    result = await poll_until(fetch, interval=0.5, max_attempts=120, cancel=cancel, sleep=sleep)

    assert isinstance(result, TimedOut)
    assert result.cancelled
    assert result.attempts == 2


@pytest.mark.asyncio
async def test_fetch_errors_propagate(sleep):
    def fetch():
        raise ConnectionError("relay down")

    with pytest.raises(ConnectionError):
        await poll_until(fetch, sleep=sleep)


@pytest.mark.asyncio
async def test_rejects_empty_attempt_budget(sleep):
    with pytest.raises(ValueError):
        await poll_until(lambda: None, max_attempts=0, sleep=sleep)
