"""
Module: claims_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the integer surrogate key convention, the type annotation map for consistent
    column types, the UTC datetime column type, and the TrackedBase mixin.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Surrogate integer primary keys on every table.
    - Decimal precision: type_annotation_map maps Decimal to Numeric(18, 4)
      unless a column declares a narrower type (see db/types.py).
      NEVER use float for hours, rates or amounts.
    - Timestamps are stored as UTC and always come back timezone-aware,
      on PostgreSQL and on SQLite alike (UTCDateTime).
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from claims_kernel.db.types import Hours, Money, PayloadHash, Rate


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored in UTC.

    Contract:
        SQLite has no timezone-aware timestamp type, so values round-trip
        naive there.  This decorator normalizes on the way in and re-attaches
        UTC on the way out, so callers only ever see aware datetimes.

    Guarantees:
        - process_bind_param: aware datetime -> UTC.  Naive datetimes are
          rejected (they would be silently misread as UTC).
        - process_result_value: always returns an aware UTC datetime.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# SQLite only auto-increments INTEGER PRIMARY KEY, not BIGINT
SurrogateKey = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is an auto-incrementing integer surrogate key.
        - Decimal maps to Numeric(18, 4); Money, Rate and Hours map to
          their narrower 2-place columns.
        - datetime maps to UTCDateTime -- always timezone-aware.
        - date maps to Date.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 4),
        Money: Numeric(18, 2),
        Rate: Numeric(12, 2),
        Hours: Numeric(7, 2),
        PayloadHash: String(64),
        datetime: UTCDateTime(),
        date: Date(),
    }

    id: Mapped[int] = mapped_column(
        SurrogateKey,
        primary_key=True,
        autoincrement=True,
    )


class TrackedBase(Base):
    """
    Abstract base with row creation and modification timestamps.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at is set on INSERT and refreshed on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
