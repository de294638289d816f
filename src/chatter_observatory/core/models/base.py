"""SQLAlchemy declarative base and shared column types for all ORM models.

Provides:
- Base: the DeclarativeBase subclass all models inherit from
- BigIntPK / JSONType / TZDateTime: column types that compile to the
  PostgreSQL-native type in production and to a SQLite equivalent in the
  test suite
- TimestampMixin: created_at / updated_at columns with server-side defaults
- utcnow(): timezone-aware "now" used for every application-side timestamp
"""

from __future__ import annotations

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# BIGSERIAL on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY.
BigIntPK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")

TZDateTime = sa.DateTime(timezone=True)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared declarative base for all Chatter Observatory models."""

    type_annotation_map = {
        datetime: TZDateTime,
    }


class TimestampMixin:
    """Adds created_at and updated_at columns with database-side defaults.

    The server default only fires on INSERT; the ``onupdate`` kwarg covers
    the ORM-level UPDATE path.
    """

    created_at: Mapped[datetime] = mapped_column(
        TZDateTime,
        nullable=False,
        server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime,
        nullable=False,
        server_default=sa.func.now(),
        onupdate=sa.func.now(),
    )
