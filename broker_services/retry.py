"""
broker_services.retry -- Caller-side retry of transient edit failures.

Responsibility:
    Re-run an edit while it reports ``TRANSIENT_FAILURE``.  The executor
    re-reads the record under lock on every attempt, so the retried edit
    is evaluated against whatever state the competing writer left behind.
    It may then be applied, or rejected (for example ILLEGAL_TRANSITION
    after a concurrent move to a terminal state).

Invariants enforced:
    - Only TRANSIENT_FAILURE is retried.  APPLIED and REJECTED results are
      returned on the spot; rejections are deterministic.
    - ``max_attempts`` bounds the loop.  The last transient result is
      returned when attempts run out.
"""

from __future__ import annotations

import time
from typing import Callable

from broker_kernel.logging_config import get_logger
from broker_services.lifecycle_executor import EditResult, EditStatus

logger = get_logger("services.retry")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 0.05


def retry_transient(
    fn: Callable[[], EditResult],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> EditResult:
    """
    Call ``fn`` until it returns something other than TRANSIENT_FAILURE.

    Backoff grows linearly: attempt n waits ``backoff_seconds * n`` before
    the next call.

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    result = fn()
    attempt = 1
    while result.status == EditStatus.TRANSIENT_FAILURE and attempt < max_attempts:
        delay = backoff_seconds * attempt
        logger.warning(
            "retry_initiated",
            extra={
                "attempt": attempt,
                "max_attempts": max_attempts,
                "delay_seconds": delay,
                "reason": getattr(result.error, "reason", None),
            },
        )
        if delay > 0:
            sleep(delay)
        result = fn()
        attempt += 1

    if result.status == EditStatus.TRANSIENT_FAILURE:
        logger.error(
            "retry_exhausted",
            extra={"attempts": attempt, "max_attempts": max_attempts},
        )
    return result
