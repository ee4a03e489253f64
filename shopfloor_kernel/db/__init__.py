"""Database layer - engine, base classes, types, locks, and triggers."""

from shopfloor_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from shopfloor_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUID",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
]
