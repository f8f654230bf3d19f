"""
CLI session management utilities for dependency injection.
"""

from contextlib import contextmanager
from typing import Generator
from sqlalchemy.orm import Session

from .database import DatabaseManager


class CLISessionManager:
    """Manages database sessions for CLI commands."""

    def __init__(self, database_url: str = None):
        self.db_manager = DatabaseManager(database_url)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session with automatic cleanup."""
        session = self.db_manager.get_session()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def session_factory(self) -> Session:
        """Plain session for callers that manage the lifetime themselves (worker threads)."""
        return self.db_manager.get_session()


# Global CLI session manager instance
_cli_session_manager = None


def get_cli_session_manager(database_url: str = None) -> CLISessionManager:
    """Get the global CLI session manager instance."""
    global _cli_session_manager
    if _cli_session_manager is None:
        _cli_session_manager = CLISessionManager(database_url)
    return _cli_session_manager
