"""
Opt-in retry with exponential backoff.

Adapters never retry by themselves: a blind retry of a non-idempotent
write can double-apply it. Callers wrap idempotent work (snapshot reads,
health probes) explicitly:

    snapshot = retry_with_backoff(lambda: load_snapshot(org_id))

Only ``network`` and ``server`` class errors (see ``classify_error``) are
retried by default; everything else propagates on the first failure.
"""

import logging
import time
from collections.abc import Callable

from rpas_compliance.utils.errors import classify_error

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_DELAY_SECONDS = 1.0
DEFAULT_BACKOFF = 2.0


def is_retryable(exc: BaseException) -> bool:
    return classify_error(exc).retryable


def retry_with_backoff(
    fn: Callable,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    delay: float = DEFAULT_DELAY_SECONDS,
    backoff: float = DEFAULT_BACKOFF,
    should_retry: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Call ``fn()`` up to ``max_retries + 1`` times.

    Waits ``delay * backoff ** attempt`` seconds between attempts. The last
    error is re-raised once retries are exhausted or ``should_retry``
    declines it.
    """
    should_retry = should_retry or is_retryable
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as exc:
            if attempt >= max_retries or not should_retry(exc):
                raise
            wait = delay * (backoff ** attempt)
            logger.warning("Attempt %d/%d failed (%s); retrying in %.2fs",
                           attempt + 1, max_retries + 1, exc, wait)
            sleep(wait)
            attempt += 1
