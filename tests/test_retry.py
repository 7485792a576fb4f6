from __future__ import annotations

import asyncio

import pytest

from mamflow.core.errors import RegistryRejected, RegistryUnavailable
from mamflow.core.retry import RetryPolicy


def _run(policy: RetryPolicy, failures: list[Exception]):
    sleeps: list[float] = []
    calls = {"count": 0}

    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    async def operation() -> str:
        calls["count"] += 1
        if failures:
            raise failures.pop(0)
        return "ok"

    async def scenario():
        retrying = policy.retrying(
            lambda exc: isinstance(exc, RegistryUnavailable), label="test.operation", sleep=record_sleep
        )
        async for attempt in retrying:
            with attempt:
                return await operation()

    return scenario, sleeps, calls


def test_backoff_grows_exponentially_until_success():
    policy = RetryPolicy(max_retries=3, initial_delay_s=0.5, backoff_base=3)
    scenario, sleeps, calls = _run(policy, [RegistryUnavailable("503")] * 3)

    assert asyncio.run(scenario()) == "ok"
    assert sleeps == [0.5, 1.5, 4.5]
    assert calls["count"] == 4


def test_last_error_is_reraised_once_retries_run_out():
    policy = RetryPolicy(max_retries=2, initial_delay_s=0.0)
    scenario, sleeps, calls = _run(policy, [RegistryUnavailable(f"503 #{n}") for n in range(5)])

    with pytest.raises(RegistryUnavailable, match="503 #2"):
        asyncio.run(scenario())
    assert calls["count"] == 3


def test_non_retryable_error_is_raised_immediately():
    policy = RetryPolicy(max_retries=3, initial_delay_s=1.0)
    scenario, sleeps, calls = _run(policy, [RegistryRejected("bad request", status_code=400)])

    with pytest.raises(RegistryRejected):
        asyncio.run(scenario())
    assert sleeps == []
    assert calls["count"] == 1
