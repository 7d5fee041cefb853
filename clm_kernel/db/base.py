"""
Declarative base shared by every kernel table.

Column conventions come from ``type_annotation_map`` so model files can
annotate plainly (``Mapped[Decimal]``, ``Mapped[date]``) and still get the
same column types everywhere:

    UUID      -> String(36), portable across PostgreSQL and SQLite
    Decimal   -> Numeric(38, 9); contract amounts are never floats
    datetime  -> DateTime(timezone=True)
    int       -> BigInteger, wide enough for version sequences
    dict      -> JSON (extension fields, event metadata)
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID, uuid4

from sqlalchemy import JSON, BigInteger, Date, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, 36-character text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date(),
        int: BigInteger,
        dict[str, Any]: JSON,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)
