"""Retry with exponential backoff and a one-way model downgrade."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    retryable_status_codes: frozenset[int] = frozenset({429, 500, 503})
    fallback_model: str | None = None


@dataclass(frozen=True)
class InvocationContext:
    """What one attempt should run with. Each attempt gets its own instance."""

    model: str
    attempt: int = 0
    downgraded: bool = False


def is_retryable(error: BaseException, policy: RetryPolicy) -> bool:
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    return isinstance(status, int) and status in policy.retryable_status_codes


def next_delay(error: BaseException, current_delay: float, policy: RetryPolicy) -> float:
    """Vendor retry-after wins over the backoff delay; both are capped."""
    retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, (int, float)) and retry_after >= 0:
        return min(float(int(retry_after)), policy.max_delay)
    return min(current_delay, policy.max_delay)


async def with_retry(
    operation: Callable[[InvocationContext], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    model: str,
) -> T:
    """Run `operation`, retrying retryable failures.

    Attempt 0 uses `model`. Once a retry happens and `policy.fallback_model`
    is set, every later attempt uses the fallback model. Non-retryable
    errors and the error from the last attempt propagate unchanged.
    """
    policy = policy or RetryPolicy()
    context = InvocationContext(model=model)
    delay = policy.initial_delay

    for attempt in range(policy.max_retries + 1):
        if attempt > 0 and policy.fallback_model and not context.downgraded:
            logger.info(
                f"Attempt {attempt}: using fallback model {policy.fallback_model} instead of {context.model}"
            )
            context = replace(context, attempt=attempt, model=policy.fallback_model, downgraded=True)
        else:
            context = replace(context, attempt=attempt)

        try:
            return await operation(context)
        except Exception as e:
            if attempt >= policy.max_retries or not is_retryable(e, policy):
                raise

            wait = next_delay(e, delay, policy)
            logger.warning(
                f"Retryable error ({getattr(e, 'status_code', None)}): retrying in {wait:.1f}s "
                f"(attempt {attempt + 1}/{policy.max_retries})"
            )
            await asyncio.sleep(wait)
            delay = min(delay * policy.backoff_factor, policy.max_delay)

    raise RuntimeError("with_retry exhausted without a result")  # unreachable
