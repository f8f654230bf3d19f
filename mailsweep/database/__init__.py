"""
Database initialization and management utilities.
"""

from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from .models import (
    create_database_engine, create_tables, get_session_maker, Base,
    User, Account, Category, Message, UnsubscribeAttempt, utcnow
)
from .store import MessageStore


class DatabaseManager:
    """Manages database connections and operations."""

    def __init__(self, database_url: str = None):
        if database_url is None:
            from ..config import Config
            database_url = Config.get_database_path()

        self.database_url = database_url
        if database_url == 'sqlite:///:memory:':
            # One shared connection so every session sees the same in-memory db
            from sqlalchemy import create_engine
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_database_engine(database_url)
        self.SessionMaker = get_session_maker(self.engine)

    def initialize_database(self):
        """Create all tables if they don't exist."""
        create_tables(self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionMaker()

    def drop_all_tables(self):
        """Drop all tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)


# Global database manager instance
_db_manager = None


def get_db_manager(database_url: str = None) -> DatabaseManager:
    """Get the global database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)
    return _db_manager


def init_database(database_url: str = None):
    """Initialize the database with tables."""
    db_manager = get_db_manager(database_url)
    db_manager.initialize_database()
    return db_manager


__all__ = [
    'DatabaseManager', 'get_db_manager', 'init_database', 'MessageStore',
    'Base', 'User', 'Account', 'Category', 'Message', 'UnsubscribeAttempt', 'utcnow',
]
