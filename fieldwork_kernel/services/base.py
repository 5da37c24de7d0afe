"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-path service.  All concrete services inherit from
    BaseService, receiving a SQLAlchemy ``Session`` that they use via
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (``session_scope()`` or a test harness) owns commit/rollback.
    - A flush that loses a version-counter race surfaces as
      ``OptimisticLockError``, never as a raw ``StaleDataError``.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fieldwork_kernel.db.base import Base
from fieldwork_kernel.domain.documents import ActorContext
from fieldwork_kernel.exceptions import DocumentNotFoundError, OptimisticLockError
from fieldwork_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``fieldwork_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _lock(
        self,
        model: type[ModelType],
        ctx: ActorContext,
        document_id: UUID,
        kind: str,
    ) -> ModelType:
        """
        Load one document row for writing, scoped to ``ctx.organization_id``.

        ``FOR UPDATE`` serializes writers on PostgreSQL; ``populate_existing``
        refreshes any stale copy already in the identity map.  A document
        owned by another organization is indistinguishable from a missing one.
        """
        row = self.session.execute(
            select(model)
            .where(model.id == document_id, model.organization_id == ctx.organization_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            logger.warning(
                "document_not_found",
                extra={"document_kind": kind, "document_id": str(document_id)},
            )
            raise DocumentNotFoundError(kind, str(document_id))
        return row

    def _flush(self, entity_type: str, entity_id: UUID) -> None:
        """Flush, translating a version-counter miss into OptimisticLockError."""
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "optimistic_lock_conflict",
                extra={"entity_type": entity_type, "entity_id": str(entity_id)},
            )
            raise OptimisticLockError(entity_type, str(entity_id)) from exc
