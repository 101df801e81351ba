"""
Database module for SQLAlchemy models and session management.
"""

from marketplace.db.base import Base
from marketplace.db.session import get_db, get_db_context, get_engine, get_session_factory

__all__ = ["Base", "get_db", "get_db_context", "get_engine", "get_session_factory"]
