"""Chainable, immutable query scopes over a model.

A :class:`ScopedModel` only describes a query (predicate, includes, order,
limit/offset); nothing touches the executor until a terminal method
(``all``, ``first``, ``find``, ``reload``, ``delete``) is awaited. Every
builder method returns a new scope.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Dict, Iterable, Mapping, Optional, Tuple

from .core.options import PersistOptions

if TYPE_CHECKING:  # pragma: no cover
    from .model import Model

__all__ = ['ScopedModel', 'merge_predicates']

_logger = logging.getLogger("rowgraph")

# comparison spellings accepted by where(column, op, value)
_OPERATOR_ALIASES = {
    '=': 'eq', '==': 'eq', 'eq': 'eq',
    '!=': 'ne', '<>': 'ne', 'ne': 'ne',
    '<': 'lt', 'lt': 'lt',
    '<=': 'lte', 'lte': 'lte',
    '>': 'gt', 'gt': 'gt',
    '>=': 'gte', 'gte': 'gte',
    'like': 'like', 'not like': 'not_like', 'not_like': 'not_like',
    'in': 'in', 'not in': 'not_in', 'not_in': 'not_in',
}


def _as_operators(condition: Any) -> Dict[str, Any]:
    if isinstance(condition, Mapping):
        return dict(condition)
    if isinstance(condition, (list, tuple, set, frozenset)):
        return {'in': list(condition)}
    return {'eq': condition}


def merge_predicates(left: Mapping[str, Any], right: Mapping[str, Any]) -> Dict[str, Any]:
    """AND two predicates together; conditions on the same column are combined."""
    out = dict(left)
    for column, condition in right.items():
        if column not in out:
            out[column] = condition
            continue
        combined = _as_operators(out[column])
        combined.update(_as_operators(condition))
        out[column] = combined
    return out


@dataclass(frozen=True)
class ScopedModel:
    model: 'Model'
    predicate: Mapping[str, Any] = field(default_factory=dict)
    includes: Tuple[str, ...] = ()
    order_by: Tuple[Tuple[str, str], ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None

    def __repr__(self) -> str:
        return (f"ScopedModel({self.model.table_name!r}, where={dict(self.predicate)!r}, "
                f"include={list(self.includes)!r}, order={list(self.order_by)!r}, "
                f"limit={self.limit!r}, offset={self.offset!r})")

    # ----- builders -----
    def include(self, *names: str) -> 'ScopedModel':
        added = tuple(n for n in names if n not in self.includes)
        return replace(self, includes=self.includes + added)

    def where(self, *args: Any, **equals: Any) -> 'ScopedModel':
        """Narrow the scope.

        Accepts a predicate mapping, ``column=value`` keywords, or
        ``(column, op, value)`` / ``(column, value)`` positional forms:

            users.where(team_id=team['id'])
            users.where('age', '>=', 18)
            users.where({'email': {'like': '%@example.com'}})
        """
        condition: Dict[str, Any] = {}
        if len(args) == 1 and isinstance(args[0], Mapping):
            condition.update(args[0])
        elif len(args) == 2:
            condition[args[0]] = args[1]
        elif len(args) == 3:
            column, op, value = args
            key = _OPERATOR_ALIASES.get(str(op).strip().lower())
            if key is None:
                raise ValueError(f"Unknown comparison operator {op!r}")
            condition[column] = {key: value}
        elif args:
            raise TypeError("where() takes a mapping, (column, value) or (column, op, value)")
        condition.update(equals)
        return replace(self, predicate=merge_predicates(self.predicate, condition))

    def where_in(self, column: str, values: Iterable[Any]) -> 'ScopedModel':
        return self.where({column: {'in': list(values)}})

    def where_not_in(self, column: str, values: Iterable[Any]) -> 'ScopedModel':
        return self.where({column: {'not_in': list(values)}})

    def where_null(self, column: str) -> 'ScopedModel':
        return self.where({column: {'is_null': True}})

    def where_not_null(self, column: str) -> 'ScopedModel':
        return self.where({column: {'is_null': False}})

    def order(self, column: str, direction: str = 'asc') -> 'ScopedModel':
        """Append an ordering; ``order('createdAt desc')`` is accepted as well."""
        parts = column.split()
        if len(parts) == 2:
            column, direction = parts
        direction = direction.lower()
        if direction not in ('asc', 'desc'):
            raise ValueError(f"Order direction must be 'asc' or 'desc', got {direction!r}")
        return replace(self, order_by=self.order_by + ((column, direction),))

    def page(self, number: int, per_page: int = 20) -> 'ScopedModel':
        if number < 1:
            raise ValueError("Page numbers start at 1")
        return replace(self, limit=per_page, offset=(number - 1) * per_page)

    # ----- terminals -----
    def all(self, *, transaction: Any = None) -> Awaitable[Tuple[Any, ...]]:
        self.model.require_connection('querying a model')
        return self._all(transaction, self.limit)

    def first(self, *, transaction: Any = None) -> Awaitable[Any]:
        self.model.require_connection('querying a model')
        return self._first(transaction)

    def find(self, id: Any, *, transaction: Any = None) -> Awaitable[Any]:
        return self.where(id=id).first(transaction=transaction)

    def reload(self, record: Any, *, transaction: Any = None) -> Awaitable[Any]:
        self.model.require_connection('reloading a record')
        return self.find(self.model.adapter.to_plain(record).get('id'), transaction=transaction)

    def delete(self, *, transaction: Any = None) -> Awaitable[None]:
        """Delete every matching row. Hooks and dependent cascades do not run."""
        self.model.require_connection('deleting rows')
        return self.model.executor.delete_where(self.model.table_name, self.predicate, transaction=transaction)

    async def _all(self, transaction: Any, limit: Optional[int]) -> Tuple[Any, ...]:
        model = self.model
        rows = await model.executor.select_where(
            model.table_name,
            self.predicate,
            transaction=transaction,
            order_by=self.order_by or None,
            limit=limit,
            offset=self.offset,
        )
        _logger.debug("rowgraph: %s fetched %d row(s)", model.table_name, len(rows))
        rows = await model.graph.loader.load(rows, self.includes, model, PersistOptions(transaction=transaction))
        return tuple(model.adapter.from_plain(row) for row in rows)

    async def _first(self, transaction: Any) -> Any:
        records = await self._all(transaction, 1)
        return records[0] if records else None
