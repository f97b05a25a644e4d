"""Per-table models: the public entry points of the relation engine."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from .config import normalize_timestamps
from .core.hooks import HookDispatcher, normalize_hooks
from .core.options import PersistOptions, Touch
from .core.records import make_record_adapter, to_plain_value
from .core.relations import RelationDescriptor, UnresolvedRelation, resolve_relation
from .core.utils import new_id
from .errors import NotConnectedError, UnknownRelationError
from .executor import ColumnInfo, QueryExecutor
from .scope import ScopedModel

if TYPE_CHECKING:  # pragma: no cover
    from .registry import RowGraph

__all__ = ['Model']

_logger = logging.getLogger("rowgraph")

Context = Union[str, Callable[[Any], Any]]


def _generate_id(fields: Mapping[str, Any]) -> str:
    return new_id()


class Model:
    """Registry entry for one table.

    Args:
        graph: Owning :class:`~rowgraph.registry.RowGraph`.
        table_name: Table the model reads and writes.
        relations: ``{name: declaration}``; see :mod:`rowgraph.core.relations`.
        hooks: ``{hook_name: callable}``; see :mod:`rowgraph.core.hooks`.
        timestamps: ``False`` to disable, or a mapping overriding the
            ``created_at``/``updated_at`` column names. Defaults to the graph settings.
        defaults: ``{field: value_or_callable}`` filled in when a saved record
            lacks the field; callables receive the plain fields. ``id``
            defaults to a random UUID string; set it to ``None`` to let the
            database assign ids.
        record_type: Custom record adapter or ``{'factory', 'serialize', 'instance_of'}``.
        contexts: Named :meth:`json` serialization contexts.
        key_style: ``camel`` or ``snake`` default foreign key naming.
        default_scope: Predicate mapping every query starts from, or a callable
            taking the bare :class:`~rowgraph.scope.ScopedModel` and returning
            the narrowed one.
    """

    def __init__(self, graph: 'RowGraph', table_name: str, *,
                 relations: Optional[Mapping[str, Any]] = None,
                 hooks: Optional[Mapping[str, Callable[..., Any]]] = None,
                 timestamps: Any = None,
                 defaults: Optional[Mapping[str, Any]] = None,
                 record_type: Any = None,
                 contexts: Optional[Mapping[str, Any]] = None,
                 key_style: Optional[str] = None,
                 default_scope: Any = None):
        self.graph = graph
        self.table_name = table_name
        self.key_style = key_style or graph.settings.key_style
        self.timestamp_fields = normalize_timestamps(
            graph.settings.timestamps if timestamps is None else timestamps, self.key_style
        )
        self.defaults: Dict[str, Any] = {'id': _generate_id}
        self.defaults.update(defaults or {})
        self.contexts: Dict[str, Any] = dict(contexts or {})
        self.default_scope = default_scope
        self.adapter = make_record_adapter(table_name, record_type)
        self.hooks = HookDispatcher(table_name, normalize_hooks(hooks), self.adapter)
        self.relations: Dict[str, RelationDescriptor] = {
            name: resolve_relation(table_name, name, decl, key_style=self.key_style)
            for name, decl in (relations or {}).items()
        }
        for rel in self.relations.values():
            if isinstance(rel, UnresolvedRelation):
                _logger.warning("rowgraph: relation %s.%s has no recognised kind", table_name, rel.name)
        self._schema: Optional[Dict[str, ColumnInfo]] = None

    def __repr__(self) -> str:
        return f"Model({self.table_name!r}, relations={list(self.relations)!r})"

    # ----- plumbing -----
    @property
    def executor(self) -> QueryExecutor:
        executor = self.graph.executor
        if executor is None:
            raise NotConnectedError()
        return executor

    def require_connection(self, action: str = 'querying a model') -> None:
        if self.graph.executor is None:
            raise NotConnectedError(action)

    def relation(self, name: str) -> RelationDescriptor:
        """Return the resolved descriptor for ``name`` or raise UnknownRelationError."""
        rel = self.relations.get(name)
        if rel is None or isinstance(rel, UnresolvedRelation):
            raise UnknownRelationError(self.table_name, name)
        return rel

    async def columns(self, *, transaction: Any = None) -> Dict[str, ColumnInfo]:
        """Column schema, fetched on first use and memoized."""
        if self._schema is None:
            self._schema = await self.executor.column_info(self.table_name, transaction=transaction)
        return self._schema

    def _scope(self, action: str = 'querying a model') -> ScopedModel:
        self.require_connection(action)
        if self.default_scope is None:
            return ScopedModel(self)
        if callable(self.default_scope):
            return self.default_scope(ScopedModel(self))
        return ScopedModel(self, predicate=dict(self.default_scope))

    # ----- persistence -----
    def save(self, record: Any, *, transaction: Any = None, exists: Optional[bool] = None,
             touch: Touch = None) -> Awaitable[Any]:
        """Insert or update ``record`` along with any nested relation payloads.

        Returns an awaitable resolving to the persisted record, relations
        included as saved.

        Raises:
            NotConnectedError: immediately, when the graph has no executor.
        """
        self.require_connection('saving a record')
        options = PersistOptions(transaction=transaction, exists=exists, touch=touch)
        return self.graph.persister.save(self, record, options)

    def create(self, record: Any, *, transaction: Any = None, touch: Touch = None) -> Awaitable[Any]:
        """Insert one record, or a list of records concurrently (returns a tuple)."""
        self.require_connection('creating a record')
        options = PersistOptions(transaction=transaction, exists=False, touch=touch)
        if isinstance(record, (list, tuple)):
            return self.graph.persister.create_many(self, record, options)
        return self.graph.persister.save(self, record, options)

    def destroy(self, record: Any, *, transaction: Any = None) -> Awaitable[Any]:
        self.require_connection('destroying a record')
        return self.graph.destroyer.destroy(self, record, PersistOptions(transaction=transaction))

    def schema(self, *, transaction: Any = None) -> Awaitable[Dict[str, ColumnInfo]]:
        self.require_connection('reading the schema')
        return self.columns(transaction=transaction)

    # ----- queries -----
    def find(self, id: Any, *, transaction: Any = None) -> Awaitable[Any]:
        return self._scope('finding a record').find(id, transaction=transaction)

    def reload(self, record: Any, *, transaction: Any = None) -> Awaitable[Any]:
        return self._scope('reloading a record').reload(record, transaction=transaction)

    def include(self, *names: str) -> ScopedModel:
        return self._scope().include(*names)

    def where(self, *args: Any, **equals: Any) -> ScopedModel:
        return self._scope().where(*args, **equals)

    def where_in(self, column: str, values: Iterable[Any]) -> ScopedModel:
        return self._scope().where_in(column, values)

    def where_not_in(self, column: str, values: Iterable[Any]) -> ScopedModel:
        return self._scope().where_not_in(column, values)

    def where_null(self, column: str) -> ScopedModel:
        return self._scope().where_null(column)

    def where_not_null(self, column: str) -> ScopedModel:
        return self._scope().where_not_null(column)

    def order(self, column: str, direction: str = 'asc') -> ScopedModel:
        return self._scope().order(column, direction)

    def page(self, number: int, per_page: int = 20) -> ScopedModel:
        return self._scope().page(number, per_page)

    def all(self, *, transaction: Any = None) -> Awaitable[Tuple[Any, ...]]:
        return self._scope().all(transaction=transaction)

    def first(self, *, transaction: Any = None) -> Awaitable[Any]:
        return self._scope().first(transaction=transaction)

    def delete(self, *, transaction: Any = None) -> Awaitable[None]:
        return self._scope('deleting rows').delete(transaction=transaction)

    # ----- serialization -----
    def json(self, value: Any, context: Context = 'default') -> Any:
        """Serialize a record (or a list of them) to plain Python data.

        ``context`` names an entry of ``contexts`` or is a callable. A context
        entry may be a callable, a field name, a list of field names, or
        ``'*'`` / ``['*']`` for every field. Listed relation fields are
        serialized with the related model under the same context name.
        """
        if isinstance(value, (list, tuple)):
            return [self.json(item, context) for item in value]
        if value is None:
            return None
        if callable(context):
            return to_plain_value(context(value))

        shape = self.contexts.get(context, '*')
        if callable(shape):
            return to_plain_value(shape(value))
        fields = self.adapter.to_plain(value)
        if isinstance(shape, str):
            shape = [shape]
        if not shape or list(shape)[0] == '*':
            return fields

        out: Dict[str, Any] = {}
        for key in shape:
            if key not in fields:
                continue
            rel = self.relations.get(key)
            if rel is not None and rel.kind is not None:
                out[key] = self.graph.model(rel.target_table).json(fields[key], context)
            else:
                out[key] = fields[key]
        return out
