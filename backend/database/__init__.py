"""
Database module initialization.
Exports database components for use throughout the application.
"""

from database.base import Base
from database.dependencies import get_db
from database.session import (
    check_db_connection,
    close_db,
    configure_engine,
    get_db_session,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    # Connection management
    "configure_engine",
    "init_db",
    "close_db",
    "check_db_connection",
    # Dependencies
    "get_db",
    "get_db_session",
]
