"""
Module: claims_kernel.db.base
Responsibility: Declarative base for the claims ORM models.  Provides the
    UUID-as-string column type, a UTC-normalizing datetime type and the
    type annotation map shared by every model.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel persistence code.  MUST NOT import from models/ or outer layers.

Invariants enforced:
    - Decimal amounts map to Numeric(18, 2).  NEVER use float for money.
    - Datetimes are stored and returned timezone-aware in UTC, on every
      backend (SQLite drops tzinfo; UTCDateTime restores it).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID

from sqlalchemy import BigInteger, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Contract:
        Naive datetimes are rejected on bind; values read back without
        tzinfo (SQLite) are interpreted as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all claims models.

    Guarantees:
        - Decimal maps to Numeric(18, 2).
        - datetime maps to UTCDateTime.
        - UUID maps to UUIDString.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }
