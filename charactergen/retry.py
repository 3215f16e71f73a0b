# charactergen/retry.py

"""
Exponential backoff with jitter, shared by the LLM and image clients.

Built on `tenacity`. A fresh `Retrying` object is created for every call
because the contract-failure counter below is per call.

Delay for retry number `n` (1-based):

    min(base_delay * 2 ** (n - 1) + uniform(0, base_delay), max_delay)

unless the failure carries a `retry_after` hint (HTTP `Retry-After`), which
is used instead.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, stop_any
from tenacity.stop import stop_base

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How many extra attempts to make and how long to wait between them."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (1 for the first retry)."""
    return min(base_delay * 2 ** (attempt - 1) + random.uniform(0, base_delay), max_delay)


class stop_after_contract_failures(stop_base):
    """
    Stop once `limit` attempts have failed with one of `errors`.

    Used to retry invalid-JSON and schema-mismatch responses exactly once
    while transport failures keep the full retry budget.
    """

    def __init__(self, errors: Tuple[Type[BaseException], ...], limit: int = 2):
        self.errors = errors
        self.limit = limit
        self.count = 0

    def __call__(self, retry_state: RetryCallState) -> bool:
        if not self.errors:
            return False
        exc = retry_state.outcome.exception()
        if isinstance(exc, self.errors):
            self.count += 1
        return self.count >= self.limit


def build_retrying(
    policy: RetryPolicy,
    retryable: Tuple[Type[BaseException], ...],
    contract_errors: Tuple[Type[BaseException], ...] = (),
    sleep: Callable[[float], None] = time.sleep,
    label: str = "provider",
) -> Retrying:
    """
    Build a tenacity `Retrying` for one logical call.

    Args:
        policy (RetryPolicy): Retry budget and delays.
        retryable (tuple): Exception types worth another attempt.
        contract_errors (tuple): Subset of `retryable` that is retried only once.
        sleep (Callable): Sleep function, injectable for tests.
        label (str): Prefix used in log lines.

    Returns:
        Retrying: Iterate it with `for attempt in retrying: with attempt: ...`.
        Exhaustion raises `tenacity.RetryError`; non-retryable errors propagate.
    """

    def wait(retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception()
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            return min(max(0.0, float(retry_after)), policy.max_delay)
        return backoff_delay(retry_state.attempt_number, policy.base_delay, policy.max_delay)

    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        logger.warning(
            f"[{label}] Request failed (attempt {retry_state.attempt_number}/{policy.max_retries + 1}): "
            f"{exc}. Retrying in {retry_state.next_action.sleep:.2f} seconds..."
        )

    return Retrying(
        stop=stop_any(
            stop_after_attempt(policy.max_retries + 1),
            stop_after_contract_failures(contract_errors),
        ),
        wait=wait,
        retry=retry_if_exception_type(retryable),
        before_sleep=before_sleep,
        sleep=sleep,
        reraise=False,
    )
