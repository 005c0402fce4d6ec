"""Database services."""

from .db_manage import DbManageService, register_tables
from .db_session import DbSessionService

__all__ = ["DbManageService", "DbSessionService", "register_tables"]
