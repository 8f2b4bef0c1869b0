"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_db_dependency, get_read_db
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_db_dependency",
    "get_read_db",
    "Base",
]
