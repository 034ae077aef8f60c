"""
Module: consolidation_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the UUID primary key convention, the type annotation map for
    consistent column types, and the TrackedBase mixin for timestamps.
Architecture position: Kernel > DB.  Lowest-level import target; ALL ORM
    modules import from here.  MUST NOT import from modules or engines.
Invariants enforced:
    - UUID primary keys (uuid4), stored as String(36) for portability.
    - Decimal maps to Numeric(38, 9).  NEVER use float for amounts.
    - TrackedBase provides created_at / updated_at on every tracked row.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36); converts transparently on bind and load."""

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


class Base(DeclarativeBase):
    """
    Declarative base for all consolidation ORM models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """Abstract base with creation / modification timestamps."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
