from __future__ import annotations
import uuid
from typing import Any, Dict, Mapping
from sqlalchemy.pool import SingletonThreadPool, StaticPool

class BaseAdapter:
    name = 'base'

    def normalize_value(self, value: Any) -> Any:
        # Ids are compared against generated string ids while grafting relations
        if isinstance(value, uuid.UUID):
            return str(value)
        return value

    def normalize_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        return {k: self.normalize_value(v) for k, v in row.items()}

    def shares_single_connection(self, engine) -> bool:
        """True when every checkout hands out the same DBAPI connection."""
        pool = getattr(getattr(engine, 'sync_engine', engine), 'pool', None)
        return isinstance(pool, (StaticPool, SingletonThreadPool))

    def column_type_name(self, col_type: Any) -> str:
        return type(col_type).__name__.lower()
