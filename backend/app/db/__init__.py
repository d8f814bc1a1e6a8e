"""Backend store: declarative base, engine lifecycle and session factory."""

from app.db.base import (
    Base,
    close_db,
    create_tables,
    get_session_factory,
    init_db,
    ping_db,
    session_factory_for,
)

__all__ = [
    "Base",
    "close_db",
    "create_tables",
    "get_session_factory",
    "init_db",
    "ping_db",
    "session_factory_for",
]
