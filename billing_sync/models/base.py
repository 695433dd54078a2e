"""Shared column shapes for the subscriber tables."""

import uuid
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def moment_field(**kwargs: Any) -> Any:
    """Optional timezone-aware timestamp, as every processor-reported date is stored."""
    return Field(default=None, sa_type=sa.DateTime(timezone=True), **kwargs)


class UUIDMixin(SQLModel):
    # Also the correlation key carried in processor metadata.
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)


class TimestampMixin(SQLModel):
    # Client-side defaults only; SQLite test stores have no now().
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": utcnow},
        sa_type=sa.DateTime(timezone=True),
    )
