"""
Later Sync - Core Package
=========================

Configuration, persistence, error taxonomy and the sync engine.
"""

from later_sync.core.config import settings
from later_sync.core.database import Base, get_db_session
from later_sync.core.errors import AppError, ErrorCode, classify

__all__ = ["AppError", "Base", "ErrorCode", "classify", "get_db_session", "settings"]
