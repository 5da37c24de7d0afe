"""Write-path services.  Each flushes within the caller's transaction."""

from fieldwork_kernel.services.document_service import DocumentService
from fieldwork_kernel.services.event_recorder import TransitionEventRecorder
from fieldwork_kernel.services.payment_recorder import PaymentRecorder
from fieldwork_kernel.services.public_gateway import PublicAcceptanceGateway
from fieldwork_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "DocumentService",
    "PaymentRecorder",
    "PublicAcceptanceGateway",
    "SequenceCounter",
    "SequenceService",
    "TransitionEventRecorder",
]
