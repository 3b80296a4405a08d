"""Database layer - engine, base classes, column types, repositories, immutability."""

from commodity_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from commodity_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from commodity_kernel.db.types import DecimalAmount, MoneyAmount, WeightAmount

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "DecimalAmount",
    "WeightAmount",
    "MoneyAmount",
]
