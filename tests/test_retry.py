import asyncio

import pytest

from answerbot.retry import linear_backoff, retry_async


class _Flaky:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"fail {self.calls}")
        return "ok"


def test_linear_backoff():
    backoff = linear_backoff(0.5)
    assert [backoff(n) for n in (1, 2, 3)] == [0.5, 1.0, 1.5]


def test_retry_succeeds_after_failures():
    sleeps = []

    async def _sleep(delay):
        sleeps.append(delay)

    op = _Flaky(2)
    failures = []
    result = asyncio.run(
        retry_async(
            op,
            attempts=3,
            backoff=linear_backoff(0.5),
            sleep=_sleep,
            on_failure=lambda attempt, exc: failures.append(attempt),
        )
    )
    assert result == "ok"
    assert op.calls == 3
    assert sleeps == [0.5, 1.0]
    assert failures == [1, 2]


def test_retry_reraises_last_error():
    sleeps = []

    async def _sleep(delay):
        sleeps.append(delay)

    op = _Flaky(10)
    with pytest.raises(RuntimeError, match="fail 3"):
        asyncio.run(retry_async(op, attempts=3, backoff=linear_backoff(0.5), sleep=_sleep))
    assert op.calls == 3
    assert sleeps == [0.5, 1.0]


def test_retry_rejects_zero_attempts():
    with pytest.raises(ValueError):
        asyncio.run(retry_async(_Flaky(0), attempts=0, backoff=linear_backoff(0)))
