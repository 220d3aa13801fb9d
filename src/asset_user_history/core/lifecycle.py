"""Lifecycle Reconciler: keeps history consistent with permanent deletions.

- object purged: every interval of the object is deleted
- subject purged: every interval of the subject is anonymized to subject id 0,
  never deleted, so the object's history keeps the fact that someone held it

Each call is its own unit of work: a fresh session per attempt, committed on
success. Both writes are idempotent, so a transient failure simply reruns the
whole unit of work.
"""

from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from asset_user_history.adapters.repositories import HistoryIntervalRepository
from asset_user_history.adapters.retry import run_with_retry
from asset_user_history.core.events import ObjectPurged, SubjectPurged
from asset_user_history.observability import get_logger

logger = get_logger(__name__)


class LifecycleReconciler:
    """Applies object and subject purges to the Interval Store.

    Args:
        session_factory: Factory for the sessions of each unit of work.
        retry_attempts: Attempts per unit of work before StoreUnavailableError.
        retry_wait_seconds: Exponential wait multiplier between attempts.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_attempts: int = 3,
        retry_wait_seconds: float = 0.1,
    ) -> None:
        self._session_factory = session_factory
        self._retry_attempts = retry_attempts
        self._retry_wait_seconds = retry_wait_seconds

    async def _run(self, operation: str, work: Callable[[HistoryIntervalRepository], Awaitable[int]]) -> int:
        async def attempt() -> int:
            async with self._session_factory() as session:
                async with session.begin():
                    return await work(HistoryIntervalRepository(session, retry_attempts=None))

        return await run_with_retry(
            operation,
            attempt,
            attempts=self._retry_attempts,
            wait_seconds=self._retry_wait_seconds,
        )

    async def on_object_purged(self, event: ObjectPurged) -> int:
        """Delete every interval of a permanently deleted object.

        Args:
            event: The purge notification.

        Returns:
            Number of intervals deleted.
        """
        deleted = await self._run(
            "delete_for_object",
            lambda store: store.delete_for_object(event.object_type, event.object_id),
        )
        logger.info(
            "Object history purged",
            object_type=event.object_type,
            object_id=event.object_id,
            deleted=deleted,
        )
        return deleted

    async def on_subject_purged(self, event: SubjectPurged) -> int:
        """Anonymize every interval of a permanently deleted subject.

        Args:
            event: The purge notification.

        Returns:
            Number of intervals anonymized.
        """
        anonymized = await self._run(
            "anonymize_subject",
            lambda store: store.anonymize_subject(event.subject_id),
        )
        logger.info("Subject history anonymized", subject_id=event.subject_id, anonymized=anonymized)
        return anonymized
