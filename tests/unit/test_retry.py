"""Unit tests for retry utilities."""

import pytest

from libris.utils.retry import retry_with_exponential_backoff

from tests.fakes import RecordingSleep


class Flaky:
    def __init__(self, failures: int, exc: Exception | None = None):
        self.failures = failures
        self.exc = exc or ConnectionError("flaky")
        self.calls = 0

    async def __call__(self, value: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return value


class RetryAfterError(Exception):
    retry_after = 12.0


@pytest.mark.asyncio
async def test_succeeds_after_backoff():
    sleep = RecordingSleep()
    func = Flaky(failures=2)

    result = await retry_with_exponential_backoff(
        func, "ok", max_retries=3, initial_delay=1.0, sleep=sleep
    )

    assert result == "ok"
    assert sleep.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_raises_after_exhaustion():
    sleep = RecordingSleep()
    func = Flaky(failures=10)

    with pytest.raises(ConnectionError):
        await retry_with_exponential_backoff(func, "ok", max_retries=2, sleep=sleep)

    assert func.calls == 3


@pytest.mark.asyncio
async def test_non_retryable_exception_propagates_immediately():
    func = Flaky(failures=1, exc=KeyError("nope"))

    with pytest.raises(KeyError):
        await retry_with_exponential_backoff(
            func, "ok", retry_on_exceptions=(ConnectionError,), sleep=RecordingSleep()
        )

    assert func.calls == 1


@pytest.mark.asyncio
async def test_retry_after_overrides_delay():
    sleep = RecordingSleep()
    func = Flaky(failures=1, exc=RetryAfterError())

    await retry_with_exponential_backoff(func, "ok", initial_delay=1.0, sleep=sleep)

    assert sleep.calls == [12.0]
