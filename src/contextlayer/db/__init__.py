"""Database module for ContextLayer.

Exports:
- Base: SQLAlchemy declarative base
- models: Workspace, Mapping, ThreadContextEntry
- session: engine/session factory construction
"""

from contextlayer.db.models import Base, Mapping, SyncStatus, ThreadContextEntry, Workspace
from contextlayer.db.session import (
    build_engine,
    build_sessionmaker,
    db_session,
    get_sessionmaker,
)

__all__ = [
    "Base",
    "Mapping",
    "SyncStatus",
    "ThreadContextEntry",
    "Workspace",
    "build_engine",
    "build_sessionmaker",
    "db_session",
    "get_sessionmaker",
]
