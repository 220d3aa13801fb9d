"""Change Capture Engine: turns assignee transitions into history intervals.

The host's persistence layer calls the engine as an entity mutation hook,
inside the same transaction as the object's own state change. The engine
writes through a store bound to that transaction and never commits, so the
close of the previous holder's interval and the open of the new holder's
interval become visible together with the mutation, or not at all.

Per event the engine performs between zero and two store writes:
- close: the open interval of the old subject, if there was one
- open: a new interval for the new subject, if there is one
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from asset_user_history.core.events import AssigneeChanged, ObjectCreated
from asset_user_history.core.interfaces import IIntervalStore, ITypeRegistry
from asset_user_history.core.models import ANONYMIZED_SUBJECT_ID, HistoryInterval
from asset_user_history.observability import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _is_assigned(subject_id: int | None) -> bool:
    return subject_id is not None and subject_id != ANONYMIZED_SUBJECT_ID


@dataclass
class CaptureResult:
    """Outcome of one capture event.

    Attributes:
        object_type: The resolved concrete type, None when nothing was monitored.
        closed: Number of intervals closed.
        opened: The interval opened for the new subject, if any.
    """

    object_type: str | None = None
    closed: int = 0
    opened: HistoryInterval | None = None

    @property
    def writes(self) -> int:
        return self.closed + (1 if self.opened is not None else 0)


class ChangeCaptureEngine:
    """Writes closed/open intervals for assignee changes on monitored objects.

    Args:
        store: Interval store bound to the mutation's transaction.
        registry: Registry resolving which concrete type an instance belongs to.
        clock: Timestamp source used when an event carries no occurred_at.
    """

    def __init__(
        self,
        store: IIntervalStore,
        registry: ITypeRegistry,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._clock = clock

    def _resolve(self, object_type: str, definition_id: int | None, object_id: int) -> str | None:
        monitored = self._registry.resolve_instance_type(object_type, definition_id)
        if monitored is None:
            logger.debug(
                "Event for unmonitored object ignored",
                object_type=object_type,
                object_id=object_id,
                definition_id=definition_id,
            )
            return None
        return monitored.name

    async def on_object_created(self, event: ObjectCreated) -> CaptureResult:
        """Open the first interval of a newly created object.

        Args:
            event: The creation notification.

        Returns:
            CaptureResult with at most one opened interval.
        """
        object_type = self._resolve(event.object_type, event.definition_id, event.object_id)
        result = CaptureResult(object_type=object_type)
        if object_type is None or not _is_assigned(event.subject_id):
            return result

        occurred_at = event.occurred_at or self._clock()
        result.opened = await self._store.open_interval(
            object_type=object_type,
            object_id=event.object_id,
            subject_id=event.subject_id,  # type: ignore[arg-type]
            assigned_at=occurred_at,
        )
        return result

    async def on_assignee_changed(self, event: AssigneeChanged) -> CaptureResult:
        """Close the old subject's interval and open the new subject's.

        An event whose old and new subject are equal is a no-op. A missing
        open interval for the old subject is a consistency warning, not an
        error: there is nothing to close and the new interval is still opened.

        Args:
            event: The assignee change notification.

        Returns:
            CaptureResult describing the writes performed.
        """
        old_subject = event.old_subject_id or ANONYMIZED_SUBJECT_ID
        new_subject = event.new_subject_id or ANONYMIZED_SUBJECT_ID
        if old_subject == new_subject:
            return CaptureResult()

        object_type = self._resolve(event.object_type, event.definition_id, event.object_id)
        result = CaptureResult(object_type=object_type)
        if object_type is None:
            return result

        occurred_at = event.occurred_at or self._clock()

        if _is_assigned(old_subject):
            result.closed = await self._store.close_open_interval(
                object_type=object_type,
                object_id=event.object_id,
                subject_id=old_subject,
                revoked_at=occurred_at,
            )
            if result.closed == 0:
                logger.warning(
                    "No open interval to close for previous assignee",
                    object_type=object_type,
                    object_id=event.object_id,
                    subject_id=old_subject,
                )

        if _is_assigned(new_subject):
            result.opened = await self._store.open_interval(
                object_type=object_type,
                object_id=event.object_id,
                subject_id=new_subject,
                assigned_at=occurred_at,
            )

        return result
