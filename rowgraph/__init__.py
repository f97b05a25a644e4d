"""rowgraph public API and lightweight lazy exports.

Leaf building blocks (records, relation declarations, errors) import eagerly;
everything that pulls in SQLAlchemy (RowGraph, executors) is resolved on first
attribute access.

Exposes:
- Record, RecordAdapter, CustomRecordAdapter
- belongs_to, has_one, has_many, has_and_belongs_to_many
- RowGraph, connect, Model, ScopedModel, PersistOptions
- QueryExecutor, SQLAlchemyExecutor, ColumnInfo
- the error classes
"""
from __future__ import annotations

from .core.records import CustomRecordAdapter, DefaultRecordAdapter, Record, RecordAdapter
from .core.relations import belongs_to, has_and_belongs_to_many, has_many, has_one
from .errors import (
    HookContractError, NotConnectedError, RowGraphError, SerializeContractError, UnknownRelationError,
)

_LAZY = {
    'RowGraph': 'registry',
    'connect': 'registry',
    'Model': 'model',
    'ScopedModel': 'scope',
    'PersistOptions': 'core.options',
    'QueryExecutor': 'executor',
    'SQLAlchemyExecutor': 'executor',
    'ColumnInfo': 'executor',
    'Settings': 'config',
    'load_settings': 'config',
}


def __getattr__(name: str):  # PEP 562 lazy exports
    import importlib as _importlib
    module = _LAZY.get(name)
    if module is None:
        raise AttributeError(name)
    return getattr(_importlib.import_module(f"{__name__}.{module}"), name)


__all__ = [
    'Record', 'RecordAdapter', 'DefaultRecordAdapter', 'CustomRecordAdapter',
    'belongs_to', 'has_one', 'has_many', 'has_and_belongs_to_many',
    'RowGraphError', 'NotConnectedError', 'UnknownRelationError', 'HookContractError', 'SerializeContractError',
    *_LAZY,
]
