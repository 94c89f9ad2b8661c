"""Database layer for kitafees application."""

from kitafees.database.base import Database
from kitafees.database.factories import create_sqlite_database, create_database

__all__ = ["Database", "create_sqlite_database", "create_database"]
