"""Database layer - engine, base classes, types, and immutability."""

from fieldwork_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from fieldwork_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from fieldwork_kernel.db.types import Money, Quantity, Sequence, format_money, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "Sequence",
    "format_money",
    "round_money",
]
