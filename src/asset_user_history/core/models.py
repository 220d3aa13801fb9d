"""SQLAlchemy ORM models for asset-user-history.

All tables use the `auh_` prefix.

Models:
- HistoryInterval: one assignment period of a subject (user) to an object

Subject id 0 is reserved: it marks an interval whose subject was permanently
deleted and anonymized. Capture never writes it.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ANONYMIZED_SUBJECT_ID = 0


class Base(DeclarativeBase):
    """Declarative base shared by all asset-user-history models."""


class HistoryInterval(Base):
    """One assignment period of a subject to a monitored object.

    An interval with `revoked_at` NULL is open: the subject currently holds
    the object. Capture sets `assigned_at` once and only ever transitions
    `revoked_at` from NULL to a timestamp. Backfill writes open intervals with
    an unknown start (`assigned_at` NULL).

    Attributes:
        id: Autoincrement identity; ascending id is creation order.
        subject_id: User holding the object, 0 once the user was purged.
        object_id: Identity of the object within its type's table.
        object_type: Discriminator naming the repository that owns object_id.
        assigned_at: Start of the interval, NULL when unknown.
        revoked_at: End of the interval, NULL while open.
    """

    __tablename__ = "auh_history_intervals"
    __table_args__ = (
        Index("ix_auh_history_item", "object_type", "object_id"),
        Index("ix_auh_history_subject", "subject_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="User holding the object; 0 = anonymized after user purge",
    )
    object_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Identity of the monitored object within its type",
    )
    object_type: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Concrete monitored type name, e.g. Computer",
    )
    assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Interval start (UTC); NULL = unknown, backfill only",
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Interval end (UTC); NULL = open, subject currently holds the object",
    )

    @property
    def is_open(self) -> bool:
        """Whether the subject still holds the object."""
        return self.revoked_at is None

    def __repr__(self) -> str:
        return (
            f"HistoryInterval(id={self.id!r}, object={self.object_type}:{self.object_id}, "
            f"subject_id={self.subject_id!r}, assigned_at={self.assigned_at!r}, revoked_at={self.revoked_at!r})"
        )
