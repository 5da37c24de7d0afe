"""
Module: fieldwork_kernel.selectors.event_selector
Responsibility: Cursor reads over the document transition outbox.

Consumers (email dispatch, notifications) remember the last ``seq`` they
handled and ask for everything after it.  Rows only become visible when the
transaction that wrote them commits.  ``seq`` is allocated at INSERT, so two
transactions on different documents may commit out of seq order; a consumer
that must see every row re-reads a short window behind its cursor and skips
seq values it has already handled.  Events of one document always commit in
seq order.
"""

from uuid import UUID

from sqlalchemy import func, select

from fieldwork_kernel.domain.documents import DocumentEvent, DocumentKind
from fieldwork_kernel.models.document_event import DocumentEventModel
from fieldwork_kernel.selectors.base import BaseSelector


class DocumentEventSelector(BaseSelector[DocumentEventModel]):
    """Selector for the outbox."""

    def since(
        self,
        after_seq: int = 0,
        organization_id: UUID | None = None,
        limit: int = 100,
    ) -> list[DocumentEvent]:
        """Events with ``seq > after_seq`` in seq order, at most ``limit``."""
        stmt = select(DocumentEventModel).where(DocumentEventModel.seq > after_seq)
        if organization_id is not None:
            stmt = stmt.where(DocumentEventModel.organization_id == organization_id)
        stmt = stmt.order_by(DocumentEventModel.seq).limit(limit)
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def for_document(self, kind: DocumentKind, document_id: UUID) -> list[DocumentEvent]:
        """Full history of one document."""
        rows = self.session.execute(
            select(DocumentEventModel)
            .where(
                DocumentEventModel.document_kind == kind.value,
                DocumentEventModel.document_id == document_id,
            )
            .order_by(DocumentEventModel.seq)
        ).scalars()
        return [row.to_dto() for row in rows]

    def latest_seq(self) -> int:
        return self.session.execute(
            select(func.coalesce(func.max(DocumentEventModel.seq), 0))
        ).scalar_one()
