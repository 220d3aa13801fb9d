"""Test fixtures for asset-user-history.

Provides:
- caller: A CallerContext holding both history rights
- engine / session_factory / session: In-memory SQLite (aiosqlite) database with
  the interval table and the host asset tables
- store: A HistoryIntervalRepository bound to the session
- registry: A TypeRegistry monitoring Computer and a custom Smartphone asset type
- FakeAuthorization / FakeEntityRepository: host collaborators with configurable answers
- make_interval / insert_asset: builders for intervals and host asset rows
"""

from collections.abc import AsyncGenerator, Iterable, Sequence
from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from asset_user_history.adapters.repositories import HistoryIntervalRepository
from asset_user_history.adapters.type_registry import TypeRegistry, build_registry, custom_asset_type
from asset_user_history.core.interfaces import (
    VIEW_OBJECT_HISTORY,
    VIEW_SUBJECT_HISTORY,
    CallerContext,
    ResolvedEntity,
)
from asset_user_history.core.models import Base, HistoryInterval

SMARTPHONE_DEFINITION_ID = 7
SMARTPHONE_TYPE = "CustomAsset\\SmartphoneAsset"

_HOST_TABLES = [
    "CREATE TABLE glpi_computers (id INTEGER PRIMARY KEY, users_id INTEGER, is_deleted INTEGER DEFAULT 0)",
    "CREATE TABLE glpi_printers (id INTEGER PRIMARY KEY, users_id INTEGER, is_deleted INTEGER DEFAULT 0)",
    "CREATE TABLE glpi_assets_assets ("
    "id INTEGER PRIMARY KEY, users_id INTEGER, is_deleted INTEGER DEFAULT 0, assets_assetdefinitions_id INTEGER)",
]


def make_interval(
    interval_id: int,
    subject_id: int = 1,
    object_type: str = "Computer",
    object_id: int = 100,
    assigned_at: datetime | None = None,
    revoked_at: datetime | None = None,
) -> HistoryInterval:
    """Create a transient HistoryInterval for tests that mock the store.

    Args:
        interval_id: Interval id.
        subject_id: Holding subject.
        object_type: Concrete object type.
        object_id: Object id.
        assigned_at: Start, None for unknown.
        revoked_at: End, None while open.

    Returns:
        An unsaved HistoryInterval.
    """
    return HistoryInterval(
        id=interval_id,
        subject_id=subject_id,
        object_type=object_type,
        object_id=object_id,
        assigned_at=assigned_at,
        revoked_at=revoked_at,
    )


async def insert_asset(
    session: AsyncSession,
    table_name: str,
    asset_id: int,
    users_id: int | None,
    is_deleted: int = 0,
    definition_id: int | None = None,
) -> None:
    """Insert a row into one of the host asset tables."""
    if definition_id is None:
        await session.execute(
            text(f"INSERT INTO {table_name} (id, users_id, is_deleted) VALUES (:id, :users_id, :is_deleted)"),
            {"id": asset_id, "users_id": users_id, "is_deleted": is_deleted},
        )
    else:
        await session.execute(
            text(
                f"INSERT INTO {table_name} (id, users_id, is_deleted, assets_assetdefinitions_id) "
                "VALUES (:id, :users_id, :is_deleted, :definition_id)"
            ),
            {"id": asset_id, "users_id": users_id, "is_deleted": is_deleted, "definition_id": definition_id},
        )


class FakeAuthorization:
    """IAuthorization answering from configured deny lists.

    Args:
        hidden_types: Types the caller may not view.
        hidden_instances: (type, id) pairs the caller may not view.
    """

    def __init__(
        self,
        hidden_types: Iterable[str] = (),
        hidden_instances: Iterable[tuple[str, int]] = (),
    ) -> None:
        self.hidden_types = set(hidden_types)
        self.hidden_instances = set(hidden_instances)
        self.instance_checks: list[tuple[str, int]] = []

    async def has_history_right(self, caller: CallerContext, right: str) -> bool:
        return right in caller.rights

    async def can_view_type(self, caller: CallerContext, entity_type: str) -> bool:
        return entity_type not in self.hidden_types

    async def can_view_instance(self, caller: CallerContext, entity_type: str, entity_id: int) -> bool:
        self.instance_checks.append((entity_type, entity_id))
        return (entity_type, entity_id) not in self.hidden_instances


class FakeEntityRepository:
    """IEntityRepository backed by a dict of display names per type.

    Args:
        names: Mapping of entity type to {id: display name}.
    """

    def __init__(self, names: dict[str, dict[int, str]] | None = None) -> None:
        self.names = names or {}
        self.calls: list[tuple[str, list[int]]] = []

    async def resolve_many(self, entity_type: str, ids: Sequence[int]) -> list[ResolvedEntity]:
        self.calls.append((entity_type, list(ids)))
        known = self.names.get(entity_type, {})
        return [
            ResolvedEntity(id=entity_id, display_name=known[entity_id], link=f"/{entity_type}/{entity_id}")
            for entity_id in ids
            if entity_id in known
        ]


@pytest.fixture()
def caller() -> CallerContext:
    """Return a caller holding both history rights.

    Returns:
        CallerContext for user 1.
    """
    return CallerContext(user_id=1, rights=frozenset({VIEW_OBJECT_HISTORY, VIEW_SUBJECT_HISTORY}))


@pytest.fixture()
def registry() -> TypeRegistry:
    """Create a registry monitoring Computer and the Smartphone custom asset type.

    Returns:
        TypeRegistry with the built-in types registered.
    """
    return build_registry(
        ["Computer", SMARTPHONE_TYPE],
        [custom_asset_type("Smartphone", SMARTPHONE_DEFINITION_ID)],
    )


@pytest_asyncio.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine with the interval and host tables.

    Yields:
        AsyncEngine sharing one connection across sessions.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest in the outer transaction
    @event.listens_for(test_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _begin(connection) -> None:  # type: ignore[no-untyped-def]
        connection.exec_driver_sql("BEGIN")

    async with test_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
        for statement in _HOST_TABLES:
            await connection.execute(text(statement))
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the test engine."""
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture()
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that is rolled back after the test."""
    async with session_factory() as test_session:
        yield test_session
        await test_session.rollback()


@pytest.fixture()
def store(session: AsyncSession) -> HistoryIntervalRepository:
    """Create an Interval Store on the test session without retry waits."""
    return HistoryIntervalRepository(session, retry_attempts=3, retry_wait_seconds=0)
