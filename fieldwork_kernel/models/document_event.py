"""
Module: fieldwork_kernel.models.document_event
Responsibility: ORM persistence for the document transition outbox.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener in db/immutability.py).
    - seq is a database identity (BIGSERIAL on PostgreSQL, AUTOINCREMENT
      rowid on SQLite) allocated at INSERT.  No shared counter row is
      locked, so writers on different documents never wait on each other.
    - seq is the cursor external collaborators (email/SMS dispatch,
      notifications) read from.  Within one document it follows commit
      order because writers on that document hold its row lock.
    - A row is written in the same transaction as the status change it
      describes, so it is visible exactly when that change commits.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, BigInteger, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fieldwork_kernel.db.base import Base, UUIDString
from fieldwork_kernel.domain.documents import DocumentEvent, DocumentKind


class DocumentEventModel(Base):
    """One committed document transition, keyed by its outbox position."""

    __tablename__ = "document_events"

    __table_args__ = (
        Index("idx_document_events_document", "document_kind", "document_id"),
        Index("idx_document_events_org_seq", "organization_id", "seq"),
        {"sqlite_autoincrement": True},
    )

    # SQLite only autoincrements an INTEGER PRIMARY KEY
    seq: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True, default=uuid4)

    # e.g. "quote.sent", "invoice.paid"
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    document_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    document_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    # Staff actor, or None for public-page actions
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    actor_label: Mapped[str | None] = mapped_column(String(200), nullable=True)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<DocumentEvent #{self.seq} {self.event_type} {self.document_number}>"

    def to_dto(self) -> DocumentEvent:
        return DocumentEvent(
            seq=self.seq,
            event_type=self.event_type,
            document_kind=DocumentKind(self.document_kind),
            document_id=self.document_id,
            organization_id=self.organization_id,
            document_number=self.document_number,
            from_status=self.from_status,
            to_status=self.to_status,
            occurred_at=self.occurred_at,
            actor_id=self.actor_id,
            actor_label=self.actor_label,
            payload=dict(self.payload or {}),
        )
