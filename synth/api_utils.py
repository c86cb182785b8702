"""Shared retry and cancellation helpers for every network-bound call.

Content-service calls and PDF renders both use call_with_retry: bounded
attempts, exponential backoff (1s, 2s by default), and backoff waits that
abort immediately when the job is cancelled.
"""

import logging
import threading

from synth.errors import JobCancelledError

logger = logging.getLogger(__name__)

# Backoff delays in seconds between attempts: 1s, 2s -> 3 attempts total
RETRY_DELAYS = (1.0, 2.0)


class CancelToken:
    """Cooperative cancellation flag shared by everything one job does."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise JobCancelledError("job cancelled")

    def sleep(self, seconds: float):
        """Wait for `seconds`, raising JobCancelledError as soon as the token trips."""
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        if self._event.wait(seconds):
            raise JobCancelledError("job cancelled during backoff")


def _always_retry(exc: Exception) -> bool:
    return True


def call_with_retry(fn, *, delays=RETRY_DELAYS, is_retryable=_always_retry, cancel=None, label="call"):
    """Call fn() until it succeeds or attempts run out.

    Attempts = len(delays) + 1. Non-retryable exceptions propagate at once.
    A cancelled token aborts with JobCancelledError, never with the last
    retry error. Re-raises the last exception if all attempts fail.
    """
    cancel = cancel or CancelToken()
    attempts = len(delays) + 1
    last_exc = None
    for attempt in range(attempts):
        cancel.raise_if_cancelled()
        try:
            return fn()
        except JobCancelledError:
            raise
        except Exception as e:
            last_exc = e
            if attempt < attempts - 1 and is_retryable(e):
                delay = delays[attempt]
                logger.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                    label,
                    attempt + 1,
                    attempts,
                    str(e)[:200],
                    delay,
                )
                cancel.sleep(delay)
            else:
                raise
    raise last_exc
