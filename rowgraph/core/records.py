"""Immutable records and the adapter boundary for custom record types.

Every engine component converts through :class:`RecordAdapter` only
(``to_plain``, ``from_plain``, ``is_instance``); none of them look at the
concrete record type.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

from ..errors import SerializeContractError

__all__ = [
    'Record',
    'to_plain_value',
    'RecordAdapter',
    'DefaultRecordAdapter',
    'CustomRecordAdapter',
    'make_record_adapter',
]

_MISSING = object()


def _freeze(value: Any) -> Any:
    if isinstance(value, Record):
        return value
    if isinstance(value, dict):
        return Record(value)
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def to_plain_value(value: Any) -> Any:
    """Deep-copy records/tuples into dicts/lists; other objects pass through."""
    if isinstance(value, Mapping):
        return {k: to_plain_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain_value(v) for v in value]
    return value


class Record(Mapping):
    """Read-only snapshot of a row.

    Nested dicts become records and lists become tuples when the record is
    built. Every "mutation" returns a new record:

        user = Record({'name': 'Nathan'})
        renamed = user.set('name', 'Lilly')
        assert user['name'] == 'Nathan'
    """

    __slots__ = ('_data',)

    def __init__(self, data: Optional[Mapping[str, Any]] = None, **fields: Any):
        merged = dict(data or {})
        merged.update(fields)
        object.__setattr__(self, '_data', {k: _freeze(v) for k, v in merged.items()})

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __setattr__(self, name, value):
        raise AttributeError("Record is immutable; use set()/merge() to derive a new one")

    def __repr__(self) -> str:
        return f"Record({self._data!r})"

    def set(self, key: str, value: Any) -> 'Record':
        data = dict(self._data)
        data[key] = value
        return Record(data)

    def set_in(self, path: Sequence[Any], value: Any) -> 'Record':
        """Set a nested value, creating intermediate records as needed."""
        head, *rest = path
        if not rest:
            return self.set(head, value)
        child = self._data.get(head)
        if not isinstance(child, Record):
            child = Record()
        return self.set(head, child.set_in(rest, value))

    def get_in(self, path: Sequence[Any], default: Any = None) -> Any:
        node: Any = self
        for step in path:
            try:
                node = node[step]
            except (KeyError, IndexError, TypeError):
                return default
        return node

    def remove(self, key: str) -> 'Record':
        data = dict(self._data)
        data.pop(key, None)
        return Record(data)

    def merge(self, other: Optional[Mapping[str, Any]] = None, **fields: Any) -> 'Record':
        data = dict(self._data)
        data.update(other or {})
        data.update(fields)
        return Record(data)

    def to_dict(self) -> Dict[str, Any]:
        return to_plain_value(self)


class RecordAdapter(ABC):
    """Conversion boundary between plain rows and caller-visible records."""

    @abstractmethod
    def to_plain(self, record: Any) -> Dict[str, Any]:
        """Return a plain, mutable field mapping for ``record``."""

    @abstractmethod
    def from_plain(self, fields: Mapping[str, Any]) -> Any:
        """Wrap plain fields as the caller-visible record type."""

    @abstractmethod
    def is_instance(self, value: Any) -> bool:
        """Whether ``value`` is already a caller-visible record."""


class DefaultRecordAdapter(RecordAdapter):
    """Records in, records out; plain mappings are accepted as payloads."""

    def __init__(self, table: str = ''):
        self.table = table

    def to_plain(self, record: Any) -> Dict[str, Any]:
        if not isinstance(record, Mapping):
            raise SerializeContractError(self.table, record)
        return to_plain_value(record)

    def from_plain(self, fields: Mapping[str, Any]) -> Record:
        return Record(fields)

    def is_instance(self, value: Any) -> bool:
        return isinstance(value, Record)


class CustomRecordAdapter(DefaultRecordAdapter):
    """Adapter built from user callables.

    Args:
        factory: ``factory(record) -> custom`` applied to the default Record.
        serialize: ``serialize(custom) -> mapping`` used for values that pass
            ``instance_of``.
        instance_of: ``instance_of(value) -> bool``; defaults to "is a Record".
    """

    def __init__(self, table: str = '', *, factory: Optional[Callable[[Record], Any]] = None,
                 serialize: Optional[Callable[[Any], Any]] = None,
                 instance_of: Optional[Callable[[Any], bool]] = None):
        super().__init__(table)
        self.factory = factory
        self.serialize = serialize
        self.instance_of = instance_of

    def to_plain(self, record: Any) -> Dict[str, Any]:
        if self.serialize is not None and self.is_instance(record):
            plain = self.serialize(record)
            if not isinstance(plain, Mapping):
                raise SerializeContractError(self.table, plain)
            return to_plain_value(plain)
        return super().to_plain(record)

    def from_plain(self, fields: Mapping[str, Any]) -> Any:
        record = super().from_plain(fields)
        if self.factory is None:
            return record
        return self.factory(record)

    def is_instance(self, value: Any) -> bool:
        if self.instance_of is not None:
            return bool(self.instance_of(value))
        return super().is_instance(value)


def make_record_adapter(table: str, record_type: Any = None) -> RecordAdapter:
    """Build the adapter for a model from its ``record_type`` option.

    ``record_type`` may be ``None`` (default Records), a :class:`RecordAdapter`
    instance, or a mapping with any of ``factory``/``serialize``/``instance_of``
    (``instanceOf`` is accepted as an alias).
    """
    if record_type is None:
        return DefaultRecordAdapter(table)
    if isinstance(record_type, RecordAdapter):
        return record_type
    if isinstance(record_type, Mapping):
        instance_of = record_type.get('instance_of', record_type.get('instanceOf'))
        return CustomRecordAdapter(
            table,
            factory=record_type.get('factory'),
            serialize=record_type.get('serialize'),
            instance_of=instance_of,
        )
    raise TypeError(f"Unsupported record_type for '{table}': {record_type!r}")
