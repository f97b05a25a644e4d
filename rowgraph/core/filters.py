"""Predicate operators understood by query executors.

A predicate is a dict ``{column: condition}`` where the condition is:
- a scalar: equality
- ``None``: IS NULL
- a list/tuple/set: IN
- a dict of operators, e.g. ``{'not_in': [1, 2]}`` or ``{'gte': 3, 'lt': 9}``

``OPERATOR_REGISTRY`` builds SQLAlchemy clauses, ``PYTHON_OPERATORS`` evaluates
the same operators against plain rows (used by in-memory executors).
"""
from __future__ import annotations

import fnmatch
from typing import Any, Callable, Dict, List, Mapping, Tuple

__all__ = [
    'OPERATOR_REGISTRY',
    'PYTHON_OPERATORS',
    'register_operator',
    'normalize_predicate',
    'row_matches',
]


def _as_list(v: Any) -> List[Any]:
    return list(v) if isinstance(v, (list, tuple, set, frozenset)) else [v]


OPERATOR_REGISTRY: Dict[str, Callable[[Any, Any], Any]] = {
    'eq': lambda col, v: col.is_(None) if v is None else col == v,
    'ne': lambda col, v: col.is_not(None) if v is None else col != v,
    'lt': lambda col, v: col < v,
    'lte': lambda col, v: col <= v,
    'gt': lambda col, v: col > v,
    'gte': lambda col, v: col >= v,
    'like': lambda col, v: col.like(v),
    'not_like': lambda col, v: ~col.like(v),
    'in': lambda col, v: col.in_(_as_list(v)),
    'not_in': lambda col, v: col.not_in(_as_list(v)),
    'is_null': lambda col, v: col.is_(None) if v else col.is_not(None),
}


def _like(value: Any, pattern: Any) -> bool:
    if value is None:
        return False
    return fnmatch.fnmatchcase(str(value), str(pattern).replace('%', '*').replace('_', '?'))


PYTHON_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    'eq': lambda a, v: a == v,
    'ne': lambda a, v: a != v,
    'lt': lambda a, v: a is not None and a < v,
    'lte': lambda a, v: a is not None and a <= v,
    'gt': lambda a, v: a is not None and a > v,
    'gte': lambda a, v: a is not None and a >= v,
    'like': _like,
    'not_like': lambda a, v: a is not None and not _like(a, v),
    # SQL IN never matches NULL
    'in': lambda a, v: a is not None and a in _as_list(v),
    'not_in': lambda a, v: a is not None and a not in _as_list(v),
    'is_null': lambda a, v: (a is None) == bool(v),
}


def register_operator(name: str, sql_fn: Callable[[Any, Any], Any], py_fn: Callable[[Any, Any], bool]) -> None:
    """Add a predicate operator usable in SQL (``sql_fn(column, value)``) and on plain rows."""
    OPERATOR_REGISTRY[name] = sql_fn
    PYTHON_OPERATORS[name] = py_fn


def normalize_predicate(predicate: Mapping[str, Any] | None) -> List[Tuple[str, str, Any]]:
    """Flatten a predicate into ``(column, op, value)`` triples."""
    out: List[Tuple[str, str, Any]] = []
    for column, cond in (predicate or {}).items():
        if isinstance(cond, dict):
            for op, value in cond.items():
                if op not in OPERATOR_REGISTRY:
                    raise ValueError(f"Unknown predicate operator '{op}' for column '{column}'")
                out.append((column, op, value))
        elif isinstance(cond, (list, tuple, set, frozenset)):
            out.append((column, 'in', list(cond)))
        else:
            out.append((column, 'eq', cond))
    return out


def row_matches(row: Mapping[str, Any], predicate: Mapping[str, Any] | None) -> bool:
    return all(PYTHON_OPERATORS[op](row.get(column), value) for column, op, value in normalize_predicate(predicate))
