# leadsync/db/__init__.py
"""
Database package for SQLAlchemy setup, session management, and base models.
"""

from leadsync.db.base import Base
from leadsync.db.session import create_all, dispose_engine, get_sessionmaker

__all__ = [
    "Base",
    "create_all",
    "dispose_engine",
    "get_sessionmaker",
]
