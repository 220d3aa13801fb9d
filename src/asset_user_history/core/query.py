"""Authorization-filtered Query Engine and Count Engine.

Both directions of the history share one algorithm:

1. root precondition: the caller holds the history right for the direction
   and may view the root entity
2. fetch every interval of the root from the store
3. group the foreign references by type
4. drop whole groups whose type the caller may not view
5. batch-resolve the foreign ids and drop rows whose existing instance the
   caller may not view; ids that do not resolve are kept as deleted
6. attach display data, or a placeholder for deleted foreign entities

Queries then filter, sort and slice; counts stop after step 6 and skip the
display data. Denials never raise: they only shrink the result.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from asset_user_history.api.schemas import (
    HistoryFilters,
    ObjectHistoryPage,
    ObjectHistoryRow,
    SubjectHistoryPage,
    SubjectHistoryRow,
)
from asset_user_history.core.interfaces import (
    SUBJECT_TYPE,
    VIEW_OBJECT_HISTORY,
    VIEW_SUBJECT_HISTORY,
    CallerContext,
    IAuthorization,
    IEntityRepository,
    IIntervalStore,
    ITypeRegistry,
    ResolvedEntity,
)
from asset_user_history.core.models import ANONYMIZED_SUBJECT_ID, HistoryInterval
from asset_user_history.core.ordering import SortColumn, SortOrder, paginate, sort_rows
from asset_user_history.observability import get_logger

logger = get_logger(__name__)

DELETED_OBJECT_LABEL = "Deleted object"
DELETED_SUBJECT_LABEL = "Deleted user"


@dataclass
class _Candidate:
    """An interval that survived authorization, with its foreign entity's display data."""

    interval: HistoryInterval
    foreign_type: str
    foreign_id: int
    exists: bool
    display_name: str = ""
    type_label: str = ""
    link: str | None = None

    @property
    def interval_id(self) -> int:
        return self.interval.id

    @property
    def assigned_at(self) -> datetime | None:
        return self.interval.assigned_at

    @property
    def revoked_at(self) -> datetime | None:
        return self.interval.revoked_at


def _latest_open_id(intervals: Iterable[HistoryInterval]) -> int | None:
    open_ids = [interval.id for interval in intervals if interval.revoked_at is None]
    return max(open_ids) if open_ids else None


class HistoryQueryService:
    """Permission-aware history queries and counts.

    Args:
        store: Interval store to read from.
        registry: Type registry used for type labels.
        authorization: The host's access-control decisions.
        entities: Batched lookup of objects and subjects.
        list_limit: Page size used when the caller gives none.
        max_page_size: Upper bound for a caller-supplied page size.
    """

    def __init__(
        self,
        store: IIntervalStore,
        registry: ITypeRegistry,
        authorization: IAuthorization,
        entities: IEntityRepository,
        list_limit: int = 15,
        max_page_size: int = 500,
    ) -> None:
        self._store = store
        self._registry = registry
        self._authorization = authorization
        self._entities = entities
        self._list_limit = list_limit
        self._max_page_size = max_page_size

    # -------------------------------------------------------------------------
    # Shared authorization algorithm
    # -------------------------------------------------------------------------

    async def _can_view_root(
        self,
        caller: CallerContext,
        right: str,
        root_type: str,
        root_id: int,
    ) -> bool:
        if not await self._authorization.has_history_right(caller, right):
            return False
        if not await self._authorization.can_view_type(caller, root_type):
            return False
        return await self._authorization.can_view_instance(caller, root_type, root_id)

    async def _authorize(
        self,
        caller: CallerContext,
        references: list[tuple[HistoryInterval, str, int]],
        need_display: bool,
    ) -> list[_Candidate]:
        """Filter foreign references down to what the caller may see.

        Args:
            caller: The caller.
            references: (interval, foreign type, foreign id) per raw interval.
            need_display: Whether to attach display names, labels and links.

        Returns:
            Surviving candidates, ordered by interval id.
        """
        groups: dict[str, dict[int, list[HistoryInterval]]] = defaultdict(lambda: defaultdict(list))
        for interval, foreign_type, foreign_id in references:
            groups[foreign_type][foreign_id].append(interval)

        candidates: list[_Candidate] = []
        for foreign_type, by_id in groups.items():
            if not await self._authorization.can_view_type(caller, foreign_type):
                logger.debug("Foreign type hidden from caller", foreign_type=foreign_type, user_id=caller.user_id)
                continue

            lookup_ids = [foreign_id for foreign_id in by_id if foreign_id != ANONYMIZED_SUBJECT_ID]
            resolved: dict[int, ResolvedEntity] = {}
            if lookup_ids:
                resolved = {
                    entity.id: entity
                    for entity in await self._entities.resolve_many(foreign_type, lookup_ids)
                    if entity.exists
                }

            type_label = ""
            if need_display:
                type_label = SUBJECT_TYPE if foreign_type == SUBJECT_TYPE else self._registry.label_for(foreign_type)

            for foreign_id, intervals in by_id.items():
                entity = resolved.get(foreign_id)
                if entity is not None and not await self._authorization.can_view_instance(
                    caller, foreign_type, foreign_id
                ):
                    continue
                for interval in intervals:
                    candidate = _Candidate(
                        interval=interval,
                        foreign_type=foreign_type,
                        foreign_id=foreign_id,
                        exists=entity is not None,
                    )
                    if need_display:
                        candidate.type_label = type_label
                        if entity is not None:
                            candidate.display_name = entity.display_name
                            candidate.link = entity.link
                        else:
                            candidate.display_name = (
                                DELETED_SUBJECT_LABEL if foreign_type == SUBJECT_TYPE else DELETED_OBJECT_LABEL
                            )
                    candidates.append(candidate)

        candidates.sort(key=lambda candidate: candidate.interval_id)
        return candidates

    def _page_size(self, page_size: int | None) -> int:
        if page_size is None or page_size <= 0:
            return self._list_limit
        return min(page_size, self._max_page_size)

    @staticmethod
    def _apply_name_filter(candidates: list[_Candidate], filters: HistoryFilters) -> list[_Candidate]:
        if not filters.name:
            return candidates
        needle = filters.name.casefold()
        return [candidate for candidate in candidates if needle in candidate.display_name.casefold()]

    # -------------------------------------------------------------------------
    # Subject history: objects a subject held
    # -------------------------------------------------------------------------

    async def _subject_candidates(
        self,
        caller: CallerContext,
        subject_id: int,
        need_display: bool,
    ) -> list[_Candidate] | None:
        if not await self._can_view_root(caller, VIEW_SUBJECT_HISTORY, SUBJECT_TYPE, subject_id):
            logger.debug("Subject history denied", subject_id=subject_id, user_id=caller.user_id)
            return None
        intervals = await self._store.list_for_subject(subject_id)
        references = [(interval, interval.object_type, interval.object_id) for interval in intervals]
        return await self._authorize(caller, references, need_display)

    async def _current_interval_ids(self, candidates: list[_Candidate]) -> set[int]:
        # current means newest open interval of the object, whoever holds it
        held = {(c.foreign_type, c.foreign_id) for c in candidates if c.revoked_at is None}
        current: set[int] = set()
        for object_type, object_id in held:
            latest = _latest_open_id(await self._store.list_for_object(object_type, object_id))
            if latest is not None:
                current.add(latest)
        return current

    async def query_for_subject(
        self,
        caller: CallerContext,
        subject_id: int,
        sort: SortColumn = SortColumn.ASSIGNED,
        order: SortOrder = SortOrder.DESC,
        filters: HistoryFilters | None = None,
        page_start: int = 0,
        page_size: int | None = None,
    ) -> SubjectHistoryPage:
        """List the objects a subject held, as the caller is allowed to see them.

        Args:
            caller: The caller.
            subject_id: Root subject.
            sort: Sort column.
            order: Sort direction.
            filters: Name substring and object type set.
            page_start: Offset of the first returned row.
            page_size: Maximum rows, defaults to the configured list limit.

        Returns:
            SubjectHistoryPage, empty when the root is not visible to the caller.
        """
        filters = filters or HistoryFilters()
        size = self._page_size(page_size)
        candidates = await self._subject_candidates(caller, subject_id, need_display=True)
        if candidates is None:
            return SubjectHistoryPage(
                total_count=0, filtered_count=0, page_start=page_start, page_size=size, sort=sort, order=order
            )

        total_count = len(candidates)
        matching = self._apply_name_filter(candidates, filters)
        if filters.object_types is not None:
            wanted = set(filters.object_types)
            matching = [candidate for candidate in matching if candidate.foreign_type in wanted]

        page = paginate(sort_rows(matching, sort, order), page_start, size)
        current_ids = await self._current_interval_ids(page)

        return SubjectHistoryPage(
            total_count=total_count,
            filtered_count=len(matching),
            page_start=page_start,
            page_size=size,
            sort=sort,
            order=order,
            rows=[
                SubjectHistoryRow(
                    interval_id=candidate.interval_id,
                    object_type=candidate.foreign_type,
                    object_type_label=candidate.type_label,
                    object_id=candidate.foreign_id,
                    object_display_name=candidate.display_name,
                    object_link=candidate.link,
                    object_exists=candidate.exists,
                    assigned_at=candidate.assigned_at,
                    revoked_at=candidate.revoked_at,
                    is_current=candidate.interval_id in current_ids,
                )
                for candidate in page
            ],
        )

    async def count_for_subject(self, caller: CallerContext, subject_id: int) -> int:
        """Count the subject history rows the caller may see, ignoring filters."""
        candidates = await self._subject_candidates(caller, subject_id, need_display=False)
        return len(candidates) if candidates is not None else 0

    # -------------------------------------------------------------------------
    # Object history: subjects that held an object
    # -------------------------------------------------------------------------

    async def _object_candidates(
        self,
        caller: CallerContext,
        object_type: str,
        object_id: int,
        need_display: bool,
    ) -> tuple[list[_Candidate], int | None] | None:
        if not await self._can_view_root(caller, VIEW_OBJECT_HISTORY, object_type, object_id):
            logger.debug(
                "Object history denied",
                object_type=object_type,
                object_id=object_id,
                user_id=caller.user_id,
            )
            return None
        intervals = await self._store.list_for_object(object_type, object_id)
        references = [(interval, SUBJECT_TYPE, interval.subject_id) for interval in intervals]
        candidates = await self._authorize(caller, references, need_display)
        return candidates, _latest_open_id(intervals)

    async def query_for_object(
        self,
        caller: CallerContext,
        object_type: str,
        object_id: int,
        sort: SortColumn = SortColumn.ASSIGNED,
        order: SortOrder = SortOrder.DESC,
        filters: HistoryFilters | None = None,
        page_start: int = 0,
        page_size: int | None = None,
    ) -> ObjectHistoryPage:
        """List the subjects that held an object, as the caller is allowed to see them.

        Args:
            caller: The caller.
            object_type: Root object's concrete type.
            object_id: Root object id.
            sort: Sort column.
            order: Sort direction.
            filters: Name substring and subject id set.
            page_start: Offset of the first returned row.
            page_size: Maximum rows, defaults to the configured list limit.

        Returns:
            ObjectHistoryPage, empty when the root is not visible to the caller.
        """
        filters = filters or HistoryFilters()
        size = self._page_size(page_size)
        result = await self._object_candidates(caller, object_type, object_id, need_display=True)
        if result is None:
            return ObjectHistoryPage(
                total_count=0, filtered_count=0, page_start=page_start, page_size=size, sort=sort, order=order
            )
        candidates, current_id = result

        total_count = len(candidates)
        matching = self._apply_name_filter(candidates, filters)
        if filters.subject_ids is not None:
            wanted = set(filters.subject_ids)
            matching = [candidate for candidate in matching if candidate.foreign_id in wanted]

        page = paginate(sort_rows(matching, sort, order), page_start, size)

        return ObjectHistoryPage(
            total_count=total_count,
            filtered_count=len(matching),
            page_start=page_start,
            page_size=size,
            sort=sort,
            order=order,
            rows=[
                ObjectHistoryRow(
                    interval_id=candidate.interval_id,
                    subject_id=candidate.foreign_id,
                    subject_display_name=candidate.display_name,
                    subject_link=candidate.link,
                    subject_exists=candidate.exists,
                    assigned_at=candidate.assigned_at,
                    revoked_at=candidate.revoked_at,
                    is_current=candidate.interval_id == current_id,
                )
                for candidate in page
            ],
        )

    async def count_for_object(self, caller: CallerContext, object_type: str, object_id: int) -> int:
        """Count the object history rows the caller may see, ignoring filters."""
        result = await self._object_candidates(caller, object_type, object_id, need_display=False)
        return len(result[0]) if result is not None else 0

    async def current_holder(self, object_type: str, object_id: int) -> int | None:
        """Return the subject of the object's authoritative open interval.

        When more than one interval is open, the most recently created one
        wins. An anonymized holder is reported as 0.

        Returns:
            Subject id, or None when the object is unassigned.
        """
        intervals = await self._store.list_for_object(object_type, object_id)
        latest = _latest_open_id(intervals)
        if latest is None:
            return None
        return next(interval.subject_id for interval in intervals if interval.id == latest)
