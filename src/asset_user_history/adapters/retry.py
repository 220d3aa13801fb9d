"""Retry policy for transient Interval Store failures.

Store writes are idempotent (close matches only open rows, delete and
anonymize are scoped updates), so a failed attempt can simply be repeated.
When every attempt fails the error surfaces as StoreUnavailableError. So
does any other database error raised by a retry: once the first attempt has
failed transiently, whatever breaks next is treated as the store being down.
A non-transient error on the first attempt propagates unchanged.
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, PendingRollbackError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from asset_user_history.errors import StoreUnavailableError
from asset_user_history.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_STORE_ERRORS: tuple[type[BaseException], ...] = (OperationalError, InterfaceError)
FAILED_RETRY_ERRORS: tuple[type[BaseException], ...] = (DBAPIError, PendingRollbackError)


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Transient store failure, retrying",
            operation=operation,
            attempt=retry_state.attempt_number,
            error=str(exc),
        )

    return before_sleep


async def run_with_retry(
    operation: str,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = 3,
    wait_seconds: float = 0.1,
    **kwargs: Any,
) -> T:
    """Run an async store operation, retrying transient database failures.

    Args:
        operation: Operation name used in logs and in the raised error.
        func: The coroutine function to call.
        *args: Positional arguments for func.
        attempts: Maximum number of attempts.
        wait_seconds: Multiplier of the exponential wait between attempts.
        **kwargs: Keyword arguments for func.

    Returns:
        Whatever func returns.

    Raises:
        StoreUnavailableError: If every attempt failed with a transient error,
            or a retry failed with any database error.
    """
    attempts_made = 0

    async def _attempt() -> T:
        nonlocal attempts_made
        attempts_made += 1
        return await func(*args, **kwargs)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=wait_seconds, max=2),
        retry=retry_if_exception_type(TRANSIENT_STORE_ERRORS),
        before_sleep=_log_retry(operation),
    )
    try:
        return await retrying(_attempt)
    except RetryError as exc:
        logger.error("Interval store unavailable", operation=operation, attempts=attempts)
        raise StoreUnavailableError(operation, attempts) from exc.last_attempt.exception()
    except FAILED_RETRY_ERRORS as exc:
        if attempts_made <= 1:
            raise
        logger.error(
            "Interval store unavailable after retry",
            operation=operation,
            attempts=attempts_made,
            error=str(exc),
        )
        raise StoreUnavailableError(operation, attempts_made) from exc
