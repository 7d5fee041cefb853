"""Database layer - engine, base classes, and immutability enforcement."""

from clm_kernel.db.base import Base, UUIDString
from clm_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from clm_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)

__all__ = [
    "Base",
    "UUIDString",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "is_postgres",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "register_immutability_listeners",
    "unregister_immutability_listeners",
]
