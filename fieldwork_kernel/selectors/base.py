"""
Module: fieldwork_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    are the query side of the engine: staff document lists and details, and
    the outbox cursor.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, never raw
      ORM model instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from fieldwork_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Guarantees:
        - session is stored as a public attribute for subclass query use.
        - No commit, flush, add, or delete operations are performed.
    """

    def __init__(self, session: Session):
        self.session = session
