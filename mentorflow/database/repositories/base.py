"""Shared repository plumbing."""

from typing import Optional

from ..connection import Database, get_database


class BaseRepository:
    """Resolves the database lazily so singletons follow `set_database()`."""

    def __init__(self, db: Optional[Database] = None):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db or get_database()

    @db.setter
    def db(self, value: Database) -> None:
        self._db = value
