from __future__ import annotations
from typing import Any
from .base import BaseAdapter

class PostgresAdapter(BaseAdapter):
    name = 'postgres'

    def column_type_name(self, col_type: Any) -> str:
        name = super().column_type_name(col_type)
        if name == 'double_precision':
            return 'double precision'
        return name
