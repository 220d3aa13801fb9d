"""Pydantic request and response schemas for the asset-user history API.

All API inputs and outputs use Pydantic models, never raw dicts.
Schemas are grouped by resource type.

Resources:
- History: filters, rows and pages for subject and object history
- Count: authorized row counts
- Monitoring: type enablement and backfill results
"""

from datetime import datetime

from pydantic import BaseModel, Field

from asset_user_history.core.ordering import SortColumn, SortOrder


# ---------------------------------------------------------------------------
# History schemas
# ---------------------------------------------------------------------------


class HistoryFilters(BaseModel):
    """Caller-supplied filters, applied after authorization filtering."""

    name: str | None = Field(
        default=None,
        description="Case-insensitive substring matched against the display name",
    )
    object_types: list[str] | None = Field(
        default=None,
        description="Exact set of object types to keep (subject history only)",
    )
    subject_ids: list[int] | None = Field(
        default=None,
        description="Exact set of subject ids to keep (object history only)",
    )


class SubjectHistoryRow(BaseModel):
    """One interval in a subject's history: an object the subject held."""

    interval_id: int = Field(description="Interval id")
    object_type: str = Field(description="Concrete object type")
    object_type_label: str = Field(description="Human-readable type label")
    object_id: int = Field(description="Object id")
    object_display_name: str = Field(description="Object name, or a placeholder once the object is gone")
    object_link: str | None = Field(default=None, description="Deep link to the object, if it still exists")
    object_exists: bool = Field(description="Whether the object still exists")
    assigned_at: datetime | None = Field(description="Start of the assignment, null when unknown")
    revoked_at: datetime | None = Field(description="End of the assignment, null while open")
    is_current: bool = Field(description="Whether this interval is the object's current assignment")


class ObjectHistoryRow(BaseModel):
    """One interval in an object's history: a subject that held the object."""

    interval_id: int = Field(description="Interval id")
    subject_id: int = Field(description="Subject id, 0 when anonymized")
    subject_display_name: str = Field(description="Subject name, or a placeholder once the subject is gone")
    subject_link: str | None = Field(default=None, description="Deep link to the subject, if it still exists")
    subject_exists: bool = Field(description="Whether the subject still exists")
    assigned_at: datetime | None = Field(description="Start of the assignment, null when unknown")
    revoked_at: datetime | None = Field(description="End of the assignment, null while open")
    is_current: bool = Field(description="Whether this interval is the object's current assignment")


class _HistoryPage(BaseModel):
    total_count: int = Field(description="Rows the caller may see, before filters")
    filtered_count: int = Field(description="Rows matching the filters, before slicing")
    page_start: int = Field(description="Offset of the first returned row")
    page_size: int = Field(description="Maximum rows per page")
    sort: SortColumn = Field(description="Sort column")
    order: SortOrder = Field(description="Sort direction")


class SubjectHistoryPage(_HistoryPage):
    """A page of a subject's history."""

    rows: list[SubjectHistoryRow] = Field(default_factory=list)


class ObjectHistoryPage(_HistoryPage):
    """A page of an object's history."""

    rows: list[ObjectHistoryRow] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Count schemas
# ---------------------------------------------------------------------------


class HistoryCountResponse(BaseModel):
    """Number of history rows the caller may see for a root entity."""

    count: int = Field(description="Authorized row count, independent of filters")


# ---------------------------------------------------------------------------
# Monitoring schemas
# ---------------------------------------------------------------------------


class MonitoringEnableResponse(BaseModel):
    """Result of enabling monitoring on an object type."""

    object_type: str = Field(description="The enabled object type")
    imported: int = Field(description="Open intervals created by the backfill")
