"""Database layer - engine, base classes, types, and unit of work."""

from ledger_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_config,
    init_engine_from_url,
    session_scope,
)
from ledger_kernel.db.types import MoneyAmount
from ledger_kernel.db.unit_of_work import translate_storage_errors, unit_of_work

__all__ = [
    "init_engine_from_url",
    "init_engine_from_config",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "unit_of_work",
    "translate_storage_errors",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MoneyAmount",
]
