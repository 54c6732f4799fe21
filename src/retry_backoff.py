"""Retry with exponential backoff for operations that can partially succeed."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sized, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_exponential

from billing_errors import ImportCancelled

logger = logging.getLogger(__name__)

W = TypeVar("W", bound=Sized)


@dataclass(frozen=True)
class BackoffPolicy:
    attempts: int = 5
    base_delay: float = 0.05
    factor: float = 2.0
    max_delay: float = 5.0


def wait(delay: float, cancel_event: Optional[threading.Event] = None) -> None:
    """Sleep for ``delay`` seconds, waking early with ImportCancelled if cancelled."""
    if cancel_event is None:
        time.sleep(delay)
    elif cancel_event.wait(delay):
        raise ImportCancelled("Cancelled while backing off")


def _log_retry(retry_state: RetryCallState) -> None:
    pending = retry_state.outcome.result()
    logger.debug(
        f"Attempt {retry_state.attempt_number} left {len(pending)} pending, "
        f"retrying in {retry_state.next_action.sleep:.2f}s"
    )


def run_with_backoff(
    step: Callable[[W], W],
    work: W,
    policy: BackoffPolicy,
    cancel_event: Optional[threading.Event] = None,
) -> W:
    """
    Call ``step`` with the outstanding work until nothing is left or attempts run out.

    ``step`` receives what is still outstanding and returns what it could not
    finish. Exceptions raised by ``step`` are not retried. The delay before
    retry n is ``base_delay * factor ** (n - 1)`` capped at ``max_delay``.

    Returns:
        The work still outstanding after the last attempt (empty on success)
    """
    remaining = work

    def attempt() -> W:
        nonlocal remaining
        remaining = step(remaining)
        return remaining

    retrying = Retrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_exponential(multiplier=policy.base_delay, max=policy.max_delay, exp_base=policy.factor),
        retry=retry_if_result(bool),
        sleep=lambda delay: wait(delay, cancel_event),
        before_sleep=_log_retry,
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
    )
    return retrying(attempt)
