"""
TransitionEventRecorder -- appends to the document transition outbox.

Every status change (and the two non-status facts collaborators care
about: a deposit landing and a variation being applied) writes one
``DocumentEventModel`` row in the same transaction as the change itself.
Email/SMS dispatch and notification workers read the outbox through
``DocumentEventSelector.since(seq)``; they are never called from here.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from fieldwork_kernel.domain.clock import Clock
from fieldwork_kernel.domain.documents import DocumentEvent, DocumentKind
from fieldwork_kernel.logging_config import get_logger
from fieldwork_kernel.models.document_event import DocumentEventModel

logger = get_logger("services.event_recorder")


class TransitionEventRecorder:
    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock

    def record(
        self,
        kind: DocumentKind,
        document,
        event_name: str,
        from_status: str | None,
        to_status: str | None,
        actor_id: UUID | None = None,
        actor_label: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> DocumentEvent:
        """
        Append ``<kind>.<event_name>`` for ``document`` (a Quote/Invoice model).

        Payload values must already be JSON-safe; money goes in as strings.
        """
        kind = DocumentKind(kind)
        model = DocumentEventModel(
            event_type=f"{kind.value}.{event_name}",
            document_kind=kind.value,
            document_id=document.id,
            organization_id=document.organization_id,
            document_number=document.document_number,
            from_status=from_status,
            to_status=to_status,
            occurred_at=self._clock.now(),
            actor_id=actor_id,
            actor_label=actor_label,
            payload=payload or {},
        )
        self._session.add(model)
        # seq is assigned by the database on INSERT
        self._session.flush()
        logger.info(
            "document_event_recorded",
            extra={
                "seq": model.seq,
                "event_type": model.event_type,
                "document_id": str(document.id),
                "from_status": from_status,
                "to_status": to_status,
            },
        )
        return model.to_dto()
