import logging
import time

logger = logging.getLogger(__name__)


def linear_backoff(step):
    """Backoff that waits ``attempt * step`` seconds after a failed attempt."""
    def backoff(attempt):
        return attempt * step
    return backoff


def retry_with_backoff(operation, max_attempts=3, backoff=linear_backoff(2),
                       retry_on=(Exception,), sleep=time.sleep):
    """Call ``operation(attempt)`` until it succeeds or attempts run out.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates from the attempt that raised it. When the last attempt fails
    its exception is re-raised.
    """
    if max_attempts < 1:
        raise ValueError('max_attempts must be at least 1')

    attempt = 1
    while True:
        try:
            return operation(attempt)
        except retry_on as exc:
            if attempt >= max_attempts:
                logger.warning("Giving up after %s attempts: %s", attempt, exc)
                raise
            delay = backoff(attempt)
            logger.info("Attempt %s/%s failed (%s), retrying in %ss", attempt, max_attempts, exc, delay)
            sleep(delay)
            attempt += 1
