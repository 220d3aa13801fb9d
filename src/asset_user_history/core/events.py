"""Entity event payloads delivered by the host's persistence layer.

Create/update notifications must be delivered synchronously with the
underlying write, inside the same transaction. Purge notifications may be
delivered after the deletion is committed.

A subject id of None and 0 both mean "unassigned".
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ObjectCreated(BaseModel):
    """A monitored object was inserted with an initial assignee.

    Attributes:
        object_type: Type name of the created object (table family for definable types).
        object_id: Identity of the created object.
        subject_id: Initial assignee, None or 0 when unassigned.
        occurred_at: Mutation timestamp; defaults to now at capture time.
        definition_id: Definition row id for instances of definable (custom) types.
    """

    model_config = ConfigDict(frozen=True)

    object_type: str = Field(..., min_length=1)
    object_id: int
    subject_id: int | None = None
    occurred_at: datetime | None = None
    definition_id: int | None = None


class AssigneeChanged(BaseModel):
    """The assignee of a monitored object was updated.

    Attributes:
        object_type: Type name of the updated object (table family for definable types).
        object_id: Identity of the updated object.
        old_subject_id: Assignee before the update.
        new_subject_id: Assignee after the update.
        occurred_at: Mutation timestamp; defaults to now at capture time.
        definition_id: Definition row id for instances of definable (custom) types.
    """

    model_config = ConfigDict(frozen=True)

    object_type: str = Field(..., min_length=1)
    object_id: int
    old_subject_id: int | None = None
    new_subject_id: int | None = None
    occurred_at: datetime | None = None
    definition_id: int | None = None


class ObjectPurged(BaseModel):
    """A monitored object was permanently deleted."""

    model_config = ConfigDict(frozen=True)

    object_type: str = Field(..., min_length=1)
    object_id: int


class SubjectPurged(BaseModel):
    """A subject (user) was permanently deleted."""

    model_config = ConfigDict(frozen=True)

    subject_id: int = Field(..., gt=0)
