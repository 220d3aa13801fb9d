"""Tests for the Change Capture Engine.

Runs against the SQLAlchemy Interval Store on in-memory SQLite, so every
assertion reads back what was actually written.

Tests verify:
- Create and reassign produce the closed/open interval pair
- Events with an unchanged assignee write nothing
- At most one interval per object is open after any sequence of changes
- Unmonitored types and unresolvable custom assets are ignored
- A missing open interval on close is tolerated
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from asset_user_history.adapters.repositories import HistoryIntervalRepository
from asset_user_history.adapters.type_registry import TypeRegistry
from asset_user_history.core.capture import ChangeCaptureEngine
from asset_user_history.core.events import AssigneeChanged, ObjectCreated
from tests.conftest import SMARTPHONE_DEFINITION_ID, SMARTPHONE_TYPE

T1 = datetime(2024, 1, 10, 9, 0, 0)
T2 = datetime(2024, 2, 1, 14, 30, 0)
T3 = datetime(2024, 3, 5, 8, 15, 0)


@pytest.fixture()
def engine_under_test(store: HistoryIntervalRepository, registry: TypeRegistry) -> ChangeCaptureEngine:
    """Create a ChangeCaptureEngine on the SQLite store."""
    return ChangeCaptureEngine(store, registry)


class TestObjectCreated:
    """Tests for ChangeCaptureEngine.on_object_created."""

    @pytest.mark.asyncio()
    async def test_creation_with_assignee_opens_interval(
        self,
        engine_under_test: ChangeCaptureEngine,
        store: HistoryIntervalRepository,
    ) -> None:
        """An object created with an assignee gets one open interval starting at creation."""
        result = await engine_under_test.on_object_created(
            ObjectCreated(object_type="Computer", object_id=1, subject_id=5, occurred_at=T1)
        )

        assert result.writes == 1
        intervals = await store.list_for_object("Computer", 1)
        assert len(intervals) == 1
        assert intervals[0].subject_id == 5
        assert intervals[0].assigned_at == T1
        assert intervals[0].revoked_at is None

    @pytest.mark.asyncio()
    async def test_creation_without_assignee_writes_nothing(
        self,
        engine_under_test: ChangeCaptureEngine,
        store: HistoryIntervalRepository,
    ) -> None:
        """No interval is opened for an object created unassigned."""
        for subject_id in (None, 0):
            result = await engine_under_test.on_object_created(
                ObjectCreated(object_type="Computer", object_id=2, subject_id=subject_id, occurred_at=T1)
            )
            assert result.writes == 0

        assert await store.list_for_object("Computer", 2) == []

    @pytest.mark.asyncio()
    async def test_missing_timestamp_uses_clock(self, registry: TypeRegistry) -> None:
        """occurred_at falls back to the engine's clock."""
        store = AsyncMock()
        engine = ChangeCaptureEngine(store, registry, clock=lambda: T3)

        await engine.on_object_created(ObjectCreated(object_type="Computer", object_id=3, subject_id=9))

        store.open_interval.assert_awaited_once_with(
            object_type="Computer", object_id=3, subject_id=9, assigned_at=T3
        )


class TestAssigneeChanged:
    """Tests for ChangeCaptureEngine.on_assignee_changed."""

    @pytest.mark.asyncio()
    async def test_reassignment_round_trip(
        self,
        engine_under_test: ChangeCaptureEngine,
        store: HistoryIntervalRepository,
    ) -> None:
        """Assign A at t1 then B at t2 leaves (A, t1, t2) closed and (B, t2, None) open."""
        await engine_under_test.on_assignee_changed(
            AssigneeChanged(object_type="Computer", object_id=10, old_subject_id=0, new_subject_id=1, occurred_at=T1)
        )
        await engine_under_test.on_assignee_changed(
            AssigneeChanged(object_type="Computer", object_id=10, old_subject_id=1, new_subject_id=2, occurred_at=T2)
        )

        intervals = await store.list_for_object("Computer", 10)
        assert [(i.subject_id, i.assigned_at, i.revoked_at) for i in intervals] == [
            (1, T1, T2),
            (2, T2, None),
        ]

    @pytest.mark.asyncio()
    async def test_same_assignee_is_noop(self, registry: TypeRegistry) -> None:
        """An event whose old and new subject are equal never touches the store."""
        store = AsyncMock()
        engine = ChangeCaptureEngine(store, registry)

        for old, new in ((4, 4), (None, 0), (0, None)):
            result = await engine.on_assignee_changed(
                AssigneeChanged(
                    object_type="Computer", object_id=11, old_subject_id=old, new_subject_id=new, occurred_at=T1
                )
            )
            assert result.writes == 0

        store.open_interval.assert_not_awaited()
        store.close_open_interval.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_unassignment_only_closes(
        self,
        engine_under_test: ChangeCaptureEngine,
        store: HistoryIntervalRepository,
    ) -> None:
        """Removing the assignee closes the open interval and opens nothing."""
        await engine_under_test.on_object_created(
            ObjectCreated(object_type="Computer", object_id=12, subject_id=3, occurred_at=T1)
        )

        result = await engine_under_test.on_assignee_changed(
            AssigneeChanged(object_type="Computer", object_id=12, old_subject_id=3, new_subject_id=None, occurred_at=T2)
        )

        assert result.closed == 1
        assert result.opened is None
        intervals = await store.list_for_object("Computer", 12)
        assert [(i.subject_id, i.revoked_at) for i in intervals] == [(3, T2)]

    @pytest.mark.asyncio()
    async def test_at_most_one_open_interval(
        self,
        engine_under_test: ChangeCaptureEngine,
        store: HistoryIntervalRepository,
    ) -> None:
        """After every step of a change sequence the object has at most one open interval."""
        sequence = [(0, 1), (1, 2), (2, 0), (0, 3), (3, 3), (3, 1), (1, 0)]
        for step, (old, new) in enumerate(sequence):
            await engine_under_test.on_assignee_changed(
                AssigneeChanged(
                    object_type="Computer",
                    object_id=13,
                    old_subject_id=old,
                    new_subject_id=new,
                    occurred_at=datetime(2024, 1, step + 1),
                )
            )
            intervals = await store.list_for_object("Computer", 13)
            assert sum(1 for interval in intervals if interval.revoked_at is None) <= 1

        intervals = await store.list_for_object("Computer", 13)
        assert [interval.subject_id for interval in intervals] == [1, 2, 3, 1]
        assert all(interval.revoked_at is not None for interval in intervals)

    @pytest.mark.asyncio()
    async def test_missing_open_interval_still_opens_new(
        self,
        engine_under_test: ChangeCaptureEngine,
        store: HistoryIntervalRepository,
    ) -> None:
        """A close that matches nothing is a warning; the new interval is still written."""
        result = await engine_under_test.on_assignee_changed(
            AssigneeChanged(object_type="Computer", object_id=14, old_subject_id=8, new_subject_id=9, occurred_at=T1)
        )

        assert result.closed == 0
        assert result.opened is not None
        intervals = await store.list_for_object("Computer", 14)
        assert [(i.subject_id, i.revoked_at) for i in intervals] == [(9, None)]

    @pytest.mark.asyncio()
    async def test_close_only_matches_old_subject(
        self,
        engine_under_test: ChangeCaptureEngine,
        store: HistoryIntervalRepository,
    ) -> None:
        """Closing targets the old subject's interval, not another open one."""
        await store.open_interval("Computer", 15, subject_id=1, assigned_at=T1)

        await engine_under_test.on_assignee_changed(
            AssigneeChanged(object_type="Computer", object_id=15, old_subject_id=2, new_subject_id=3, occurred_at=T2)
        )

        intervals = await store.list_for_object("Computer", 15)
        assert [(i.subject_id, i.revoked_at) for i in intervals] == [(1, None), (3, None)]


class TestTypeResolution:
    """Tests for monitored type resolution during capture."""

    @pytest.mark.asyncio()
    async def test_unmonitored_type_is_ignored(self, registry: TypeRegistry) -> None:
        """Events for a registered but unmonitored type write nothing."""
        store = AsyncMock()
        engine = ChangeCaptureEngine(store, registry)

        result = await engine.on_assignee_changed(
            AssigneeChanged(object_type="Printer", object_id=1, old_subject_id=0, new_subject_id=2, occurred_at=T1)
        )

        assert result.object_type is None
        store.open_interval.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_custom_asset_resolves_concrete_type(
        self,
        engine_under_test: ChangeCaptureEngine,
        store: HistoryIntervalRepository,
    ) -> None:
        """A custom asset event naming the family is stored under the concrete type."""
        result = await engine_under_test.on_object_created(
            ObjectCreated(
                object_type="CustomAsset",
                object_id=20,
                subject_id=4,
                occurred_at=T1,
                definition_id=SMARTPHONE_DEFINITION_ID,
            )
        )

        assert result.object_type == SMARTPHONE_TYPE
        intervals = await store.list_for_object(SMARTPHONE_TYPE, 20)
        assert [interval.subject_id for interval in intervals] == [4]

    @pytest.mark.asyncio()
    async def test_custom_asset_with_unknown_definition_is_ignored(self) -> None:
        """A custom asset whose definition is not monitored writes nothing."""
        store = AsyncMock()
        registry = MagicMock()
        registry.resolve_instance_type.return_value = None
        engine = ChangeCaptureEngine(store, registry)

        result = await engine.on_object_created(
            ObjectCreated(object_type="CustomAsset", object_id=21, subject_id=4, occurred_at=T1, definition_id=99)
        )

        assert result.writes == 0
        registry.resolve_instance_type.assert_called_once_with("CustomAsset", 99)
        store.open_interval.assert_not_awaited()
