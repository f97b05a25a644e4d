from __future__ import annotations
from .base import BaseAdapter

class SQLiteAdapter(BaseAdapter):
    name = 'sqlite'

    def shares_single_connection(self, engine) -> bool:
        # In-memory databases live on exactly one connection
        if super().shares_single_connection(engine):
            return True
        database = getattr(getattr(engine, 'url', None), 'database', None)
        return database in (None, '', ':memory:')
