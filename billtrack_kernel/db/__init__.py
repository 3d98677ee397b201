"""Persistence plumbing: declarative base, engine, money helpers."""

from billtrack_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from billtrack_kernel.db.engine import create_tables, get_engine, get_session
from billtrack_kernel.db.types import ZERO, round2, round_money, to_decimal

__all__ = [
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "ZERO",
    "round2",
    "round_money",
    "to_decimal",
]
