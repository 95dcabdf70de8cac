# bulkexport/infra/retry.py
import logging
import random
import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 0.2
BACKOFF_CAP_SECONDS = 2.0


def backoff_delay(attempt: int, *, base: float = BACKOFF_BASE_SECONDS, cap: float = BACKOFF_CAP_SECONDS) -> float:
    """Wachttijd na poging `attempt` (1-based): verdubbelend, afgekapt, plus max 25% jitter."""
    delay = min(base * 2 ** (attempt - 1), cap)
    return delay + random.uniform(0, delay * 0.25)


def _log_retry(attempt: int, exc: Exception, sleep_s: float) -> None:
    logger.warning("retry #%s in %.2fs due to %r", attempt, sleep_s, exc)


def retry_on(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    is_retryable: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> T:
    """
    Call `fn` up to `attempts` times and return its first result.

    The error of the last attempt propagates unchanged. A non-retryable error
    propagates at once, and so does any error once `should_stop()` is true
    (cancellation, or another worker already failed).
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    attempt = 1
    while True:
        try:
            return fn()
        except Exception as e:
            if is_retryable is not None and not is_retryable(e):
                raise
            if attempt >= attempts or (should_stop is not None and should_stop()):
                raise
            sleep_s = backoff_delay(attempt)
            (on_retry or _log_retry)(attempt, e, sleep_s)
            time.sleep(sleep_s)
            attempt += 1
