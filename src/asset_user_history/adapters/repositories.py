"""SQLAlchemy Interval Store for asset-user-history.

HistoryIntervalRepository implements IIntervalStore from core/interfaces.py
on top of an AsyncSession owned by the caller. It never commits: capture
writes must become visible together with the object mutation that caused
them, so the caller's transaction is the unit of work.

Write operations are retried on transient database failures (see
adapters/retry.py). Each attempt runs in its own SAVEPOINT, so a failed
attempt rolls back only its own statement and leaves the caller's
transaction usable for the next one. Reads are not retried; the query layer
accepts failure.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from sqlalchemy import String, and_, column, delete, insert, literal, select, table, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import TableClause

from asset_user_history.adapters.retry import run_with_retry
from asset_user_history.core.interfaces import MonitoredType
from asset_user_history.core.models import ANONYMIZED_SUBJECT_ID, HistoryInterval
from asset_user_history.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def object_table(monitored_type: MonitoredType) -> TableClause:
    """Build a lightweight table construct for a monitored type's host table.

    Only the columns the importer reads are declared, so the host schema does
    not need to be reflected or mapped.

    Args:
        monitored_type: The monitored type definition.

    Returns:
        A TableClause naming the id, assignee, soft-delete and definition columns.
    """
    names = [monitored_type.id_column, monitored_type.assignee_column]
    if monitored_type.deleted_column:
        names.append(monitored_type.deleted_column)
    if monitored_type.definition_column:
        names.append(monitored_type.definition_column)
    return table(monitored_type.table_name, *(column(name) for name in names))


class HistoryIntervalRepository:
    """Repository for HistoryInterval persistence on the host database.

    Args:
        session: The caller's async session.
        retry_attempts: Attempts per write before StoreUnavailableError. None
            disables statement retries, for callers retrying a whole unit of work.
        retry_wait_seconds: Exponential wait multiplier between attempts.
    """

    def __init__(
        self,
        session: AsyncSession,
        retry_attempts: int | None = 3,
        retry_wait_seconds: float = 0.1,
    ) -> None:
        self._session = session
        self._retry_attempts = retry_attempts
        self._retry_wait_seconds = retry_wait_seconds

    async def _write(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        if self._retry_attempts is None:
            return await func()

        async def _attempt() -> T:
            async with self._session.begin_nested():
                return await func()

        return await run_with_retry(
            operation,
            _attempt,
            attempts=self._retry_attempts,
            wait_seconds=self._retry_wait_seconds,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def open_interval(
        self,
        object_type: str,
        object_id: int,
        subject_id: int,
        assigned_at: datetime | None,
    ) -> HistoryInterval:
        """Insert a new open interval and return it.

        Args:
            object_type: Concrete monitored type.
            object_id: Object identity.
            subject_id: Subject now holding the object.
            assigned_at: Start timestamp, None for an unknown start.

        Returns:
            The persisted HistoryInterval.
        """
        stmt = (
            insert(HistoryInterval)
            .values(
                object_type=object_type,
                object_id=object_id,
                subject_id=subject_id,
                assigned_at=assigned_at,
                revoked_at=None,
            )
            .returning(HistoryInterval)
        )

        async def _insert() -> HistoryInterval:
            result = await self._session.scalars(stmt)
            return result.one()

        interval = await self._write("open_interval", _insert)
        logger.info(
            "Interval opened",
            interval_id=interval.id,
            object_type=object_type,
            object_id=object_id,
            subject_id=subject_id,
        )
        return interval

    async def close_open_interval(
        self,
        object_type: str,
        object_id: int,
        subject_id: int,
        revoked_at: datetime,
    ) -> int:
        """Set revoked_at on the subject's open interval(s) for an object.

        Args:
            object_type: Concrete monitored type.
            object_id: Object identity.
            subject_id: Subject losing the object.
            revoked_at: End timestamp.

        Returns:
            Number of intervals closed.
        """
        stmt = (
            update(HistoryInterval)
            .where(
                HistoryInterval.object_type == object_type,
                HistoryInterval.object_id == object_id,
                HistoryInterval.subject_id == subject_id,
                HistoryInterval.revoked_at.is_(None),
            )
            .values(revoked_at=revoked_at)
        )

        async def _update() -> int:
            result = await self._session.execute(stmt)
            return int(result.rowcount or 0)

        closed = await self._write("close_open_interval", _update)
        if closed:
            logger.info(
                "Interval closed",
                object_type=object_type,
                object_id=object_id,
                subject_id=subject_id,
                closed=closed,
            )
        return closed

    async def import_missing(self, monitored_type: MonitoredType) -> int:
        """Insert open, unknown-start intervals for untracked assigned objects.

        Runs as a single INSERT ... SELECT with an anti-join against the
        interval table, so the "no interval exists yet" guard is evaluated at
        write time rather than from an earlier read.

        Args:
            monitored_type: The monitored type whose table is scanned.

        Returns:
            Number of intervals inserted.
        """
        objects = object_table(monitored_type)
        intervals = HistoryInterval.__table__
        object_pk = objects.c[monitored_type.id_column]
        assignee = objects.c[monitored_type.assignee_column]

        source = (
            select(
                assignee.label("subject_id"),
                object_pk.label("object_id"),
                literal(monitored_type.name, type_=String(255)).label("object_type"),
            )
            .select_from(
                objects.outerjoin(
                    intervals,
                    and_(
                        intervals.c.object_id == object_pk,
                        intervals.c.object_type == monitored_type.name,
                    ),
                )
            )
            .where(
                assignee.is_not(None),
                assignee != ANONYMIZED_SUBJECT_ID,
                intervals.c.id.is_(None),
            )
        )
        if monitored_type.deleted_column:
            source = source.where(objects.c[monitored_type.deleted_column] == 0)
        if monitored_type.is_definable:
            source = source.where(objects.c[monitored_type.definition_column] == monitored_type.definition_id)

        stmt = insert(intervals).from_select(["subject_id", "object_id", "object_type"], source)

        async def _import() -> int:
            result = await self._session.execute(stmt)
            return int(result.rowcount or 0)

        imported = await self._write("import_missing", _import)
        logger.info("Backfill import executed", object_type=monitored_type.name, imported=imported)
        return imported

    async def delete_for_object(self, object_type: str, object_id: int) -> int:
        """Delete every interval of an object.

        Args:
            object_type: Concrete monitored type.
            object_id: Object identity.

        Returns:
            Number of intervals deleted.
        """
        stmt = delete(HistoryInterval).where(
            HistoryInterval.object_type == object_type,
            HistoryInterval.object_id == object_id,
        )

        async def _delete() -> int:
            result = await self._session.execute(stmt)
            return int(result.rowcount or 0)

        return await self._write("delete_for_object", _delete)

    async def anonymize_subject(self, subject_id: int) -> int:
        """Rewrite all of a subject's intervals to the anonymized subject id.

        Args:
            subject_id: The purged subject.

        Returns:
            Number of intervals rewritten.
        """
        stmt = (
            update(HistoryInterval)
            .where(HistoryInterval.subject_id == subject_id)
            .values(subject_id=ANONYMIZED_SUBJECT_ID)
        )

        async def _anonymize() -> int:
            result = await self._session.execute(stmt)
            return int(result.rowcount or 0)

        return await self._write("anonymize_subject", _anonymize)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_for_subject(self, subject_id: int) -> list[HistoryInterval]:
        """Return every interval held by a subject, ordered by id.

        Args:
            subject_id: The subject.

        Returns:
            List of HistoryInterval records.
        """
        stmt = (
            select(HistoryInterval)
            .where(HistoryInterval.subject_id == subject_id)
            .order_by(HistoryInterval.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_object(self, object_type: str, object_id: int) -> list[HistoryInterval]:
        """Return every interval of an object, ordered by id.

        Args:
            object_type: Concrete monitored type.
            object_id: Object identity.

        Returns:
            List of HistoryInterval records.
        """
        stmt = (
            select(HistoryInterval)
            .where(
                HistoryInterval.object_type == object_type,
                HistoryInterval.object_id == object_id,
            )
            .order_by(HistoryInterval.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
