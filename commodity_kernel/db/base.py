"""
Module: commodity_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the UUID primary key convention, the type annotation map,
    and the TrackedBase audit mixin.
Architecture position: Kernel > DB.  Lowest-level import target for
    models/.  MUST NOT import from models/, services/, selectors/.

Invariants enforced:
    - UUID primary keys on every model.
    - Every mutable root model declares an integer `version` column wired
      as its mapper version_id_col.  SQLAlchemy adds "AND version = :old"
      to every UPDATE and raises StaleDataError when no row matches, so a
      lost update can never be written silently.
    - created_at / updated_at / created_by_id / updated_by_id on every
      tracked entity.

Failure modes:
    - sqlalchemy.orm.exc.StaleDataError on version mismatch (translated to
      ConcurrencyConflictError by db/repository.py and the ledger facade).
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36) for cross-database portability."""

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
    Declarative base for all commodity models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
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
    """
    Abstract base with audit timestamp and actor tracking.

    updated_at / updated_by_id are audit metadata and may change even on
    rows that are otherwise frozen (see db/immutability.py).
    """

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

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


# Columns that may change on a frozen row
AUDIT_FIELDS: frozenset[str] = frozenset(
    {"updated_at", "updated_by_id", "version"}
)

UUID = PyUUID
