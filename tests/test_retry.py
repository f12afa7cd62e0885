from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from deep_research.llm_client import ProviderError
from deep_research.services.retry import (
    InvocationContext,
    RetryPolicy,
    is_retryable,
    next_delay,
    with_retry,
)


class FlakyOperation:
    """Fails with the given errors in order, then returns `result`."""

    def __init__(self, errors: list[Exception], result: str = "ok"):
        self.errors = list(errors)
        self.result = result
        self.contexts: list[InvocationContext] = []

    async def __call__(self, context: InvocationContext) -> str:
        self.contexts.append(context)
        if self.errors:
            raise self.errors.pop(0)
        return self.result


@pytest.mark.asyncio
async def test_succeeds_on_third_call_with_fallback_model():
    operation = FlakyOperation(
        [ProviderError("rate limited", status_code=429), ProviderError("rate limited", status_code=429)]
    )
    policy = RetryPolicy(max_retries=3, fallback_model="small-model")

    with patch("deep_research.services.retry.asyncio.sleep", new_callable=AsyncMock):
        result = await with_retry(operation, policy, model="big-model")

    assert result == "ok"
    assert len(operation.contexts) == 3
    assert operation.contexts[0].model == "big-model"
    assert operation.contexts[1].model == "small-model"
    assert operation.contexts[1].downgraded is True
    assert [c.model for c in operation.contexts] == ["big-model", "small-model", "small-model"]
    assert [c.attempt for c in operation.contexts] == [0, 1, 2]


@pytest.mark.asyncio
async def test_model_unchanged_without_fallback():
    operation = FlakyOperation([ProviderError("busy", status_code=503)])

    with patch("deep_research.services.retry.asyncio.sleep", new_callable=AsyncMock):
        await with_retry(operation, RetryPolicy(), model="only-model")

    assert [c.model for c in operation.contexts] == ["only-model", "only-model"]
    assert not operation.contexts[1].downgraded


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_unchanged():
    error = ProviderError("bad request", status_code=400)
    operation = FlakyOperation([error])

    with patch("deep_research.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        with pytest.raises(ProviderError) as excinfo:
            await with_retry(operation, RetryPolicy(), model="m")

    assert excinfo.value is error
    assert len(operation.contexts) == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_error_without_status_is_not_retried():
    operation = FlakyOperation([ProviderError("connection reset")])

    with patch("deep_research.services.retry.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(ProviderError):
            await with_retry(operation, RetryPolicy(), model="m")

    assert len(operation.contexts) == 1


@pytest.mark.asyncio
async def test_last_error_propagates_after_max_retries():
    errors = [ProviderError(f"attempt {i}", status_code=500) for i in range(3)]
    last = errors[-1]
    operation = FlakyOperation(errors)

    with patch("deep_research.services.retry.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(ProviderError) as excinfo:
            await with_retry(operation, RetryPolicy(max_retries=2), model="m")

    assert excinfo.value is last
    assert len(operation.contexts) == 3


@pytest.mark.asyncio
async def test_backoff_doubles_and_respects_retry_after():
    operation = FlakyOperation(
        [
            ProviderError("a", status_code=429),
            ProviderError("b", status_code=429, retry_after=7),
            ProviderError("c", status_code=429),
        ]
    )
    policy = RetryPolicy(max_retries=3, initial_delay=1.0, max_delay=30.0, backoff_factor=2.0)

    with patch("deep_research.services.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await with_retry(operation, policy, model="m")

    assert [call.args[0] for call in sleep.await_args_list] == [1.0, 7.0, 4.0]


def test_next_delay_is_capped():
    policy = RetryPolicy(max_delay=5.0)
    assert next_delay(ProviderError("x", status_code=429, retry_after=120), 1.0, policy) == 5.0
    assert next_delay(ProviderError("x", status_code=429), 60.0, policy) == 5.0
    assert next_delay(ProviderError("x", status_code=429, retry_after=2.9), 1.0, policy) == 2.0


def test_is_retryable_reads_status_or_status_code():
    policy = RetryPolicy()
    assert is_retryable(ProviderError("x", status_code=429), policy)
    assert not is_retryable(ProviderError("x", status_code=404), policy)

    class StatusError(Exception):
        status = 503

    assert is_retryable(StatusError(), policy)
    assert not is_retryable(ValueError("plain"), policy)


@pytest.mark.asyncio
async def test_each_attempt_gets_its_own_context():
    operation = FlakyOperation([ProviderError("rate limited", status_code=429)])
    policy = RetryPolicy(fallback_model="small-model")

    with patch("deep_research.services.retry.asyncio.sleep", new_callable=AsyncMock):
        await with_retry(operation, policy, model="big-model")

    first, second = operation.contexts
    assert first is not second
    assert first == InvocationContext(model="big-model", attempt=0, downgraded=False)
    assert second == InvocationContext(model="small-model", attempt=1, downgraded=True)
