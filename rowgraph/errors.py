"""Exceptions raised by the rowgraph relation engine.

Executor failures (SQLAlchemy errors, driver errors) are never wrapped; they
propagate to the caller unchanged.
"""
from __future__ import annotations

__all__ = [
    'RowGraphError',
    'NotConnectedError',
    'UnknownRelationError',
    'HookContractError',
    'SerializeContractError',
]


class RowGraphError(Exception):
    """Base class for all rowgraph errors."""


class NotConnectedError(RowGraphError):
    """No query executor is bound to the model's RowGraph."""

    def __init__(self, action: str = 'querying a model'):
        super().__init__(f"RowGraph must be connected (graph.connect()) before {action}")
        self.action = action


class UnknownRelationError(RowGraphError):
    """A relation name has no resolved descriptor on the model."""

    def __init__(self, table: str, name: str):
        super().__init__(f"'{name}' is not a relation of '{table}'")
        self.table = table
        self.name = name


class HookContractError(RowGraphError):
    """A before_create/before_save hook did not return a record."""

    def __init__(self, hook: str, table: str, returned: object):
        super().__init__(
            f"Hook '{hook}' on '{table}' must return a model instance, got {type(returned).__name__}"
        )
        self.hook = hook
        self.table = table
        self.returned = returned


class SerializeContractError(RowGraphError):
    """A custom record serializer did not return a plain field mapping."""

    def __init__(self, table: str, returned: object):
        super().__init__(
            f"Custom serializer for '{table}' must return a mapping of fields, got {type(returned).__name__}"
        )
        self.table = table
        self.returned = returned
