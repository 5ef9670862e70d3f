"""Database layer - engine, base classes, column types."""

from voucher_staging.db.base import Base, TrackedBase, UUIDString
from voucher_staging.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
    transactional_scope,
)
from voucher_staging.db.types import Currency, LongText, Money, Rate, ShortCode

__all__ = [
    "build_engine",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "transactional_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "Money",
    "Rate",
    "Currency",
    "ShortCode",
    "LongText",
]
