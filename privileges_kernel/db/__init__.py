"""Database layer - engine, base classes and types."""

from privileges_kernel.db.base import UUID, Base, UUIDString
from privileges_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "UUIDString",
    "UUID",
]
