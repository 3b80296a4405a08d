"""
Module: commodity_kernel.db.repository
Responsibility: Typed create / read / read-for-update / flush access to one
    ORM model.  Services never build ad hoc lock queries; they go through
    a Repository so every read-modify-write path locks the same way.
Architecture position: Kernel > DB.  Imports models lazily via the
    subclass attribute only; used by services/ and selectors/.

Invariants enforced:
    - get_for_update() issues SELECT ... FOR UPDATE (PostgreSQL) and
      refreshes the identity-map copy, so the caller sees the committed
      row it now holds the lock on.  On SQLite the transaction already
      holds the database write lock (BEGIN IMMEDIATE, see db/engine.py).
    - lock_many() locks rows in ascending id order so two transactions
      locking overlapping sets cannot deadlock.
    - flush() translates StaleDataError into ConcurrencyConflictError.

Failure modes:
    - NotFoundError subclass (per repository) when the row is absent.
    - ValidationError when an id is not a UUID.
    - ConcurrencyConflictError when a version check fails on flush.
"""

from typing import Generic, Iterable, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from commodity_kernel.db.base import Base
from commodity_kernel.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    ValidationError,
)
from commodity_kernel.logging_config import get_logger

logger = get_logger("db.repository")

ModelType = TypeVar("ModelType", bound=Base)


def coerce_id(entity_id, field: str = "id") -> UUID:
    if isinstance(entity_id, UUID):
        return entity_id
    try:
        return UUID(str(entity_id))
    except ValueError:
        raise ValidationError.for_field(field, f"not a valid identifier: {entity_id!r}") from None


class Repository(Generic[ModelType]):
    """Access to one model within the caller's session."""

    model: type[ModelType]
    not_found: type[NotFoundError] = NotFoundError

    def __init__(self, session: Session):
        self.session = session

    def find(self, entity_id) -> ModelType | None:
        return self.session.get(self.model, coerce_id(entity_id))

    def get(self, entity_id) -> ModelType:
        entity = self.find(entity_id)
        if entity is None:
            raise self.not_found(str(entity_id))
        return entity

    def get_for_update(self, entity_id) -> ModelType:
        entity = self.session.execute(
            select(self.model)
            .where(self.model.id == coerce_id(entity_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entity is None:
            raise self.not_found(str(entity_id))
        return entity

    def lock_many(self, entity_ids: Iterable) -> dict[UUID, ModelType]:
        """Lock every id in ascending order; raise on the first missing one."""
        ordered = sorted({coerce_id(i) for i in entity_ids}, key=str)
        return {entity_id: self.get_for_update(entity_id) for entity_id in ordered}

    def add(self, entity: ModelType) -> ModelType:
        self.session.add(entity)
        return entity

    def flush(self) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "concurrency_conflict_detected",
                extra={"entity_type": self.model.__name__},
            )
            raise ConcurrencyConflictError(self.model.__name__) from exc
