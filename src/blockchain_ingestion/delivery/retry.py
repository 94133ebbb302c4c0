"""
Module: delivery/retry.py
Description: Retry policies for document delivery.

Two independent layers:
- client-local retries: a tenacity Retrying loop around single HTTP
  attempts inside one send() call, absorbing short blips (1s, 2s, 4s...)
- queue-level retries: scheduled windows between processor runs,
  surviving longer outages (60s, 120s, 240s...)
"""

import time
from datetime import datetime, timedelta
from typing import Callable

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from ..models.delivery import DeliveryResult
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _is_retryable_failure(result: DeliveryResult) -> bool:
    return not result.success and result.retryable


def _log_backoff(retry_state: RetryCallState) -> None:
    result = retry_state.outcome.result()
    logger.warning(
        "Delivery attempt failed, backing off",
        attempt=retry_state.attempt_number,
        delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=result.error,
    )


def _return_last_result(retry_state: RetryCallState) -> DeliveryResult:
    return retry_state.outcome.result()


def client_retrying(
    max_attempts: int,
    backoff_unit: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Retrying:
    """
    Build the client-local retry loop.

    Waits backoff_unit * 2^(attempt-1) seconds between attempts and never
    after the last one. When attempts run out the last DeliveryResult is
    returned instead of raising RetryError.

    Args:
        max_attempts: Total HTTP attempts per send()
        backoff_unit: Base wait in seconds
        sleep: Blocking sleep function, injectable for tests
    """
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=backoff_unit, exp_base=2, min=0),
        retry=retry_if_result(_is_retryable_failure),
        before_sleep=_log_backoff,
        retry_error_callback=_return_last_result,
        sleep=sleep,
    )


def queue_retry_delay(attempts: int, base_delay: int = 60) -> int:
    """
    Seconds to wait before a queued entry is eligible again.

    Uses the post-increment attempt count, so the first failed attempt
    waits base_delay, the second 2 * base_delay, and so on.

    Args:
        attempts: Attempts made including the one that just failed
        base_delay: Delay after the first failure, in seconds
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    return base_delay * 2 ** (attempts - 1)


def next_retry_time(now: datetime, attempts: int, base_delay: int = 60) -> datetime:
    return now + timedelta(seconds=queue_retry_delay(attempts, base_delay))
