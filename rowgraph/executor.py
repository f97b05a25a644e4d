"""
Query executors.

The relation engine never builds SQL. It calls an executor through a handful
of verbs (select, insert, update, delete, column info), passing an optional
opaque ``transaction`` handle that must be used for the statement when given.

:class:`SQLAlchemyExecutor` implements the verbs with SQLAlchemy Core on an
``AsyncEngine``; transaction handles are ``AsyncConnection`` objects opened
with :meth:`SQLAlchemyExecutor.transaction`.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncContextManager, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import MetaData, Table, delete, insert, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .adapters import get_adapter
from .core.filters import OPERATOR_REGISTRY, normalize_predicate

__all__ = ['ColumnInfo', 'OrderBy', 'QueryExecutor', 'SQLAlchemyExecutor']

logger = logging.getLogger("rowgraph")

OrderBy = Sequence[Tuple[str, str]]


@dataclass(frozen=True)
class ColumnInfo:
    """Introspected description of one column."""

    name: str
    type: str
    nullable: bool
    max_length: Optional[int] = None
    default: Any = None


class QueryExecutor(ABC):
    """Abstract executor consumed by the relation engine.

    Rows are plain dicts. Predicates follow :mod:`rowgraph.core.filters`.
    """

    @abstractmethod
    async def select_where(self, table: str, predicate: Mapping[str, Any], *, transaction: Any = None,
                           order_by: Optional[OrderBy] = None, limit: Optional[int] = None,
                           offset: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return every row of ``table`` matching ``predicate``."""
        pass

    async def select_by_ids(self, table: str, column: str, ids: Iterable[Any], *,
                            transaction: Any = None) -> List[Dict[str, Any]]:
        """Return rows whose ``column`` is one of ``ids`` (one query, no per-id round trips)."""
        ids = list(ids)
        if not ids:
            return []
        return await self.select_where(table, {column: {'in': ids}}, transaction=transaction)

    @abstractmethod
    async def insert(self, table: str, fields: Mapping[str, Any], *, transaction: Any = None) -> Dict[str, Any]:
        """Insert one row and return it as persisted (including generated defaults)."""
        pass

    @abstractmethod
    async def update(self, table: str, id: Any, fields: Mapping[str, Any], *,
                     transaction: Any = None) -> Dict[str, Any]:
        """Update the row with primary key ``id`` and return it as persisted."""
        pass

    @abstractmethod
    async def update_where(self, table: str, predicate: Mapping[str, Any], fields: Mapping[str, Any], *,
                           transaction: Any = None) -> None:
        """Set ``fields`` on every row matching ``predicate``."""
        pass

    @abstractmethod
    async def delete_where(self, table: str, predicate: Mapping[str, Any], *, transaction: Any = None) -> None:
        """Delete every row matching ``predicate``."""
        pass

    @abstractmethod
    async def column_info(self, table: str, *, transaction: Any = None) -> Dict[str, ColumnInfo]:
        """Describe the columns of ``table``."""
        pass

    @abstractmethod
    def transaction(self) -> AsyncContextManager[Any]:
        """Open a transaction and yield its handle; commit on success, roll back on error."""
        pass

    async def dispose(self) -> None:
        return None


class SQLAlchemyExecutor(QueryExecutor):
    """Executor backed by SQLAlchemy Core on an async engine.

    Tables are reflected once per executor and cached. Writes use
    ``RETURNING`` so the persisted row (with server defaults) comes back in the
    same round trip.

    One DBAPI connection cannot run two statements at once, so statements that
    share a transaction handle are serialized with a per-handle lock; on
    single-connection pools (in-memory SQLite) every statement is serialized
    and an open transaction holds the connection until it ends.
    """

    def __init__(self, engine: Union[AsyncEngine, str], *, echo: bool = False):
        if isinstance(engine, str):
            engine = create_async_engine(engine, echo=echo, future=True)
        self.engine = engine
        self.adapter = get_adapter(engine.dialect.name)
        self._metadata = MetaData()
        self._tables: Dict[str, Table] = {}
        self._handle_locks: "weakref.WeakKeyDictionary[Any, asyncio.Lock]" = weakref.WeakKeyDictionary()
        self._engine_lock: Optional[asyncio.Lock] = (
            asyncio.Lock() if self.adapter.shares_single_connection(engine) else None
        )

    def __repr__(self) -> str:
        return f"SQLAlchemyExecutor({self.engine.url!r})"

    # ----- connection handling -----
    @asynccontextmanager
    async def _connection(self, transaction: Any = None) -> AsyncIterator[AsyncConnection]:
        if transaction is not None:
            lock = self._handle_locks.get(transaction)
            if lock is None:
                lock = self._handle_locks.setdefault(transaction, asyncio.Lock())
            async with lock:
                yield transaction
            return
        if self._engine_lock is not None:
            async with self._engine_lock:
                async with self.engine.begin() as conn:
                    yield conn
            return
        async with self.engine.begin() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        if self._engine_lock is None:
            async with self._begin() as conn:
                yield conn
            return
        # statements outside the handle wait until commit or rollback
        async with self._engine_lock:
            async with self._begin() as conn:
                yield conn

    @asynccontextmanager
    async def _begin(self) -> AsyncIterator[AsyncConnection]:
        async with self.engine.begin() as conn:
            logger.debug("rowgraph: transaction begin")
            yield conn
        logger.debug("rowgraph: transaction committed")

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def _table(self, conn: AsyncConnection, name: str) -> Table:
        table = self._tables.get(name)
        if table is None:
            metadata = self._metadata
            table = await conn.run_sync(lambda sync_conn: Table(name, metadata, autoload_with=sync_conn))
            self._tables[name] = table
        return table

    # ----- statement helpers -----
    @staticmethod
    def _where(table: Table, predicate: Mapping[str, Any]) -> List[Any]:
        clauses = []
        for column, op, value in normalize_predicate(predicate):
            clauses.append(OPERATOR_REGISTRY[op](table.c[column], value))
        return clauses

    @staticmethod
    def _values(table: Table, fields: Mapping[str, Any]) -> Dict[str, Any]:
        unknown = [k for k in fields if k not in table.c]
        if unknown:
            raise KeyError(f"Unknown column(s) for '{table.name}': {', '.join(sorted(unknown))}")
        return dict(fields)

    # ----- verbs -----
    async def select_where(self, table: str, predicate: Mapping[str, Any], *, transaction: Any = None,
                           order_by: Optional[OrderBy] = None, limit: Optional[int] = None,
                           offset: Optional[int] = None) -> List[Dict[str, Any]]:
        async with self._connection(transaction) as conn:
            tbl = await self._table(conn, table)
            stmt = select(tbl).where(*self._where(tbl, predicate))
            for column, direction in order_by or ():
                col = tbl.c[column]
                stmt = stmt.order_by(col.desc() if str(direction).lower() == 'desc' else col.asc())
            if limit is not None:
                stmt = stmt.limit(limit)
            if offset:
                stmt = stmt.offset(offset)
            logger.debug("rowgraph: select %s where %r", table, predicate)
            result = await conn.execute(stmt)
            return [self.adapter.normalize_row(row) for row in result.mappings().all()]

    async def insert(self, table: str, fields: Mapping[str, Any], *, transaction: Any = None) -> Dict[str, Any]:
        async with self._connection(transaction) as conn:
            tbl = await self._table(conn, table)
            stmt = insert(tbl).values(**self._values(tbl, fields)).returning(*tbl.c)
            logger.debug("rowgraph: insert into %s (%s)", table, ', '.join(fields))
            result = await conn.execute(stmt)
            return self.adapter.normalize_row(result.mappings().one())

    async def update(self, table: str, id: Any, fields: Mapping[str, Any], *,
                     transaction: Any = None) -> Dict[str, Any]:
        values = {k: v for k, v in fields.items() if k != 'id'}
        async with self._connection(transaction) as conn:
            tbl = await self._table(conn, table)
            logger.debug("rowgraph: update %s id=%r (%s)", table, id, ', '.join(values))
            if not values:
                result = await conn.execute(select(tbl).where(tbl.c.id == id))
            else:
                stmt = update(tbl).where(tbl.c.id == id).values(**self._values(tbl, values)).returning(*tbl.c)
                result = await conn.execute(stmt)
            return self.adapter.normalize_row(result.mappings().one())

    async def update_where(self, table: str, predicate: Mapping[str, Any], fields: Mapping[str, Any], *,
                           transaction: Any = None) -> None:
        async with self._connection(transaction) as conn:
            tbl = await self._table(conn, table)
            logger.debug("rowgraph: update %s where %r set %r", table, predicate, dict(fields))
            await conn.execute(update(tbl).where(*self._where(tbl, predicate)).values(**self._values(tbl, fields)))

    async def delete_where(self, table: str, predicate: Mapping[str, Any], *, transaction: Any = None) -> None:
        async with self._connection(transaction) as conn:
            tbl = await self._table(conn, table)
            logger.debug("rowgraph: delete from %s where %r", table, predicate)
            await conn.execute(delete(tbl).where(*self._where(tbl, predicate)))

    async def column_info(self, table: str, *, transaction: Any = None) -> Dict[str, ColumnInfo]:
        async with self._connection(transaction) as conn:
            columns = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_columns(table))
        out: Dict[str, ColumnInfo] = {}
        for col in columns:
            col_type = col['type']
            out[col['name']] = ColumnInfo(
                name=col['name'],
                type=self.adapter.column_type_name(col_type),
                nullable=bool(col.get('nullable', True)),
                max_length=getattr(col_type, 'length', None),
                default=col.get('default'),
            )
        logger.debug("rowgraph: column info for %s: %s", table, ', '.join(out))
        return out
