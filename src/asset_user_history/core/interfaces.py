"""Abstract interfaces (Protocol classes) and shared value types.

Defines the contracts between the core services and the adapter layer using
Python's typing.Protocol. Services depend on these protocols, never on
concrete adapters, so every collaborator can be replaced with a mock in tests.

Value types:
- CallerContext   : identity and rights of the user issuing a request
- ResolvedEntity  : display data for one foreign entity
- MonitoredType   : table layout of a monitored object type

Protocols defined:
- IIntervalStore  : the persisted HistoryInterval table
- ITypeRegistry   : which object types are monitored and how to read them
- IAuthorization  : the host's access-control decisions (consumed, not implemented)
- IEntityRepository: batched lookup of objects and subjects for display
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from asset_user_history.core.models import HistoryInterval

SUBJECT_TYPE = "User"

# History rights granted through the host's profiles
VIEW_OBJECT_HISTORY = "view_object_history"  # subjects that held a given object
VIEW_SUBJECT_HISTORY = "view_subject_history"  # objects held by a given subject
MANAGE_MONITORING = "manage_monitoring"  # switch monitoring on per type and run its backfill


@dataclass(frozen=True)
class CallerContext:
    """The authenticated user issuing a query.

    Attributes:
        user_id: Host user id of the caller.
        rights: History rights granted to the caller's active profile.
        attributes: Opaque host data passed through to IAuthorization.
    """

    user_id: int
    rights: frozenset[str] = frozenset()
    attributes: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class ResolvedEntity:
    """Display data for an entity returned by IEntityRepository.resolve_many.

    Attributes:
        id: Entity id.
        display_name: Name shown to the caller.
        exists: False when the entity is gone; the query layer shows a placeholder.
        link: Deep link to the entity's page, if the host provides one.
    """

    id: int
    display_name: str = ""
    exists: bool = True
    link: str | None = None


@dataclass(frozen=True)
class MonitoredType:
    """Table layout of a monitored object type.

    Plain types own a table. Definable (custom) types share one table and are
    discriminated by `definition_column == definition_id`.

    Attributes:
        name: Concrete type name stored in HistoryInterval.object_type.
        table_name: Table holding the type's instances.
        label: Human-readable type label.
        id_column: Primary key column of the table.
        assignee_column: Column holding the current assignee (subject id).
        deleted_column: Soft-delete flag column, None when the table has none.
        definition_column: Column referencing the type definition (definable types only).
        definition_id: Definition row id this concrete type corresponds to.
        family: Name of the shared table family for definable types.
    """

    name: str
    table_name: str
    label: str = ""
    id_column: str = "id"
    assignee_column: str = "users_id"
    deleted_column: str | None = "is_deleted"
    definition_column: str | None = None
    definition_id: int | None = None
    family: str | None = None

    @property
    def is_definable(self) -> bool:
        """Whether instances share a table with other concrete types."""
        return self.definition_column is not None


class IIntervalStore(Protocol):
    """Repository contract for HistoryInterval persistence.

    Write methods are idempotent with respect to retries: closing matches only
    open rows, deletion and anonymization are scoped updates.
    """

    async def open_interval(
        self,
        object_type: str,
        object_id: int,
        subject_id: int,
        assigned_at: datetime | None,
    ) -> HistoryInterval:
        """Insert a new open interval.

        Args:
            object_type: Concrete monitored type.
            object_id: Object identity.
            subject_id: Subject now holding the object (non-zero).
            assigned_at: Start timestamp, None for an unknown start.

        Returns:
            The persisted HistoryInterval.
        """
        ...

    async def close_open_interval(
        self,
        object_type: str,
        object_id: int,
        subject_id: int,
        revoked_at: datetime,
    ) -> int:
        """Close the open interval(s) of a subject on an object.

        Returns:
            Number of intervals closed; 0 means nothing was open.
        """
        ...

    async def list_for_subject(self, subject_id: int) -> list[HistoryInterval]:
        """Return every interval held by a subject, ordered by id."""
        ...

    async def list_for_object(self, object_type: str, object_id: int) -> list[HistoryInterval]:
        """Return every interval of an object, ordered by id."""
        ...

    async def import_missing(self, monitored_type: MonitoredType) -> int:
        """Insert open, unknown-start intervals for untracked assigned objects.

        Returns:
            Number of intervals inserted.
        """
        ...

    async def delete_for_object(self, object_type: str, object_id: int) -> int:
        """Delete all intervals of an object. Returns the deleted row count."""
        ...

    async def anonymize_subject(self, subject_id: int) -> int:
        """Rewrite a subject's intervals to the anonymized subject id. Returns the row count."""
        ...


class ITypeRegistry(Protocol):
    """Registry of monitored object types."""

    def get(self, name: str) -> MonitoredType | None:
        """Return the registered definition for a concrete type name."""
        ...

    def is_monitored(self, name: str) -> bool:
        """Whether capture is currently enabled for a concrete type."""
        ...

    def resolve_instance_type(self, object_type: str, definition_id: int | None = None) -> MonitoredType | None:
        """Resolve the concrete monitored type of an instance at event time.

        Args:
            object_type: Type (or definable family) named by the event.
            definition_id: Definition row id for instances of definable types.

        Returns:
            The monitored definition, or None when the instance is not monitored.
        """
        ...

    def label_for(self, name: str) -> str:
        """Return the human-readable label of a type name."""
        ...

    def enable(self, name: str) -> MonitoredType:
        """Start monitoring a registered type."""
        ...

    def disable(self, name: str) -> None:
        """Stop monitoring a type."""
        ...

    def monitored_types(self) -> list[MonitoredType]:
        """Return all currently monitored types."""
        ...


class IAuthorization(Protocol):
    """The host's access-control decisions for one caller.

    Decisions are evaluated per request and must not be cached across requests.
    """

    async def has_history_right(self, caller: CallerContext, right: str) -> bool:
        """Whether the caller's profile grants a history right."""
        ...

    async def can_view_type(self, caller: CallerContext, entity_type: str) -> bool:
        """Whether the caller may view entities of a type at all."""
        ...

    async def can_view_instance(self, caller: CallerContext, entity_type: str, entity_id: int) -> bool:
        """Whether the caller may view one entity."""
        ...


class IEntityRepository(Protocol):
    """Batched lookup of host entities (objects and subjects)."""

    async def resolve_many(self, entity_type: str, ids: Sequence[int]) -> list[ResolvedEntity]:
        """Resolve entities by id.

        Ids that no longer exist may be omitted or returned with exists=False.

        Args:
            entity_type: Object type name, or SUBJECT_TYPE for users.
            ids: Entity ids to resolve.

        Returns:
            Resolved entities in any order.
        """
        ...
