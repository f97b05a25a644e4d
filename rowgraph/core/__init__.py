# Core subpackage: leaf building blocks shared by the loader, persister and destroyer.
from .relations import (
    BelongsTo, HasOne, HasMany, HasAndBelongsToMany, UnresolvedRelation, RelationDescriptor,
    belongs_to, has_one, has_many, has_and_belongs_to_many, resolve_relation,
)
from .records import Record, RecordAdapter, DefaultRecordAdapter, CustomRecordAdapter, make_record_adapter
from .hooks import HOOK_NAMES, HookDispatcher, normalize_hooks
from .filters import OPERATOR_REGISTRY, PYTHON_OPERATORS, register_operator, normalize_predicate, row_matches

__all__ = [
    'BelongsTo', 'HasOne', 'HasMany', 'HasAndBelongsToMany', 'UnresolvedRelation', 'RelationDescriptor',
    'belongs_to', 'has_one', 'has_many', 'has_and_belongs_to_many', 'resolve_relation',
    'Record', 'RecordAdapter', 'DefaultRecordAdapter', 'CustomRecordAdapter', 'make_record_adapter',
    'HOOK_NAMES', 'HookDispatcher', 'normalize_hooks',
    'OPERATOR_REGISTRY', 'PYTHON_OPERATORS', 'register_operator', 'normalize_predicate', 'row_matches',
]
