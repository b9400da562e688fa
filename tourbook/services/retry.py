# tourbook/services/retry.py
"""
Bounded retry for calendar writes.

ConcurrencyError and TransientStoreError mean nothing was committed, so the
whole operation (validation included) is simply run again.
"""
import logging
from typing import Optional

from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from tourbook.config.settings import get_settings
from tourbook.core.exceptions import RETRYABLE_ERRORS

logger = logging.getLogger(__name__)


def _short_exc(retry_state: RetryCallState) -> Optional[str]:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_sleep(retry_state: RetryCallState):
    sleep_seconds = getattr(retry_state.next_action, "sleep", 0.0)
    name = getattr(retry_state.fn, "__name__", "operation")
    logger.warning(
        f"{name} attempt {retry_state.attempt_number} failed ({_short_exc(retry_state)}), "
        f"retrying in {sleep_seconds:.2f}s"
    )


def run_with_retry(fn, *args, **kwargs):
    """
    Call fn, re-running it on retryable store errors.

    The number of attempts and the backoff cap come from settings; once they
    are exhausted the last error propagates.
    """
    settings = get_settings()
    decorated = retry(
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        stop=stop_after_attempt(settings.STORE_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.05, max=settings.STORE_RETRY_MAX_WAIT_SECONDS),
        before_sleep=_log_before_sleep,
        reraise=True,
    )(fn)

    return decorated(*args, **kwargs)
