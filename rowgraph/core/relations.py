"""Relation declarations and their resolved descriptors.

Declarations are written either as dicts (``{'has_many': 'projects',
'dependent': True}``; camelCase keys such as ``hasMany``/``foreignKey`` are
accepted too) or with the factories :func:`belongs_to`, :func:`has_one`,
:func:`has_many` and :func:`has_and_belongs_to_many`. A model resolves every
declaration once, at registration, into one of the frozen descriptor
variants below. Consumers dispatch on the variant type.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from .naming import from_camel, join_table_name, key_for, pluralize, singularize

__all__ = [
    'RelationDeclaration',
    'BelongsTo',
    'HasOne',
    'HasMany',
    'HasAndBelongsToMany',
    'UnresolvedRelation',
    'RelationDescriptor',
    'belongs_to',
    'has_one',
    'has_many',
    'has_and_belongs_to_many',
    'resolve_relation',
]

KIND_KEYS = ('belongs_to', 'has_one', 'has_many', 'has_and_belongs_to_many')


@dataclass(frozen=True)
class BelongsTo:
    """The owner row stores ``foreign_key`` pointing at the target's id."""

    name: str
    target_table: str
    foreign_key: str
    dependent: bool = False
    touch: bool = False

    kind = 'belongs_to'
    many = False

    @property
    def cleans_up_on_destroy(self) -> bool:
        return self.dependent


@dataclass(frozen=True)
class HasOne:
    """The target row stores ``foreign_key`` pointing back at the owner's id."""

    name: str
    target_table: str
    foreign_key: str
    dependent: bool = False

    kind = 'has_one'
    many = False

    @property
    def cleans_up_on_destroy(self) -> bool:
        return self.dependent


@dataclass(frozen=True)
class HasMany:
    """Like :class:`HasOne` but collection-valued."""

    name: str
    target_table: str
    foreign_key: str
    dependent: bool = False

    kind = 'has_many'
    many = True

    @property
    def cleans_up_on_destroy(self) -> bool:
        return self.dependent


@dataclass(frozen=True)
class HasAndBelongsToMany:
    """Many-to-many through ``join_table``.

    ``source_key`` is the join column referencing the owner, ``foreign_key``
    the join column referencing the target. Join rows are always removed when
    the owner is destroyed; the target rows never are.
    """

    name: str
    target_table: str
    foreign_key: str
    source_key: str
    join_table: str
    dependent: bool = False

    kind = 'has_and_belongs_to_many'
    many = True

    @property
    def cleans_up_on_destroy(self) -> bool:
        return True


@dataclass(frozen=True)
class UnresolvedRelation:
    """Declaration without a recognised kind; rejected when it is used."""

    name: str
    raw: Mapping[str, Any]

    kind = None
    many = False
    dependent = False

    @property
    def cleans_up_on_destroy(self) -> bool:
        return False


RelationDescriptor = Union[BelongsTo, HasOne, HasMany, HasAndBelongsToMany, UnresolvedRelation]


class RelationDeclaration(dict):
    """Raw, unresolved relation options as written by the user."""


def _declare(kind: str, target: Optional[str], meta: Dict[str, Any]) -> RelationDeclaration:
    decl = RelationDeclaration({k: v for k, v in meta.items() if v is not None})
    decl[kind] = target if target is not None else True
    return decl


def belongs_to(target: Optional[str] = None, *, foreign_key: Optional[str] = None, table: Optional[str] = None,
               dependent: bool = False, touch: bool = False) -> RelationDeclaration:
    """Declare that the owner row references one target row.

    Args:
        target: Target name (singular or plural); pluralized for the table.
            Defaults to the relation name.
        foreign_key: Column on the owner's table; defaults to
            ``<singular relation name>Id`` (or ``_id`` under the snake key style).
        table: Explicit target table, skipping pluralization.
        dependent: Delete the target row when the owner is destroyed.
        touch: Re-stamp the owner's update timestamp when the target is saved
            through this relation.

    Example:
        users = graph.model('users', relations={'team': belongs_to('team')})
    """
    return _declare('belongs_to', target, {'foreign_key': foreign_key, 'table': table,
                                           'dependent': dependent or None, 'touch': touch or None})


def has_one(target: Optional[str] = None, *, foreign_key: Optional[str] = None, table: Optional[str] = None,
            dependent: bool = False) -> RelationDeclaration:
    """Declare a single child row whose ``foreign_key`` points at the owner."""
    return _declare('has_one', target, {'foreign_key': foreign_key, 'table': table, 'dependent': dependent or None})


def has_many(target: Optional[str] = None, *, foreign_key: Optional[str] = None, table: Optional[str] = None,
             dependent: bool = False) -> RelationDeclaration:
    """Declare child rows whose ``foreign_key`` points at the owner.

    Example:
        teams = graph.model('teams', relations={'users': has_many('users', dependent=True)})
    """
    return _declare('has_many', target, {'foreign_key': foreign_key, 'table': table, 'dependent': dependent or None})


def has_and_belongs_to_many(target: Optional[str] = None, *, through: Optional[str] = None,
                            primary_key: Optional[str] = None, foreign_key: Optional[str] = None,
                            table: Optional[str] = None) -> RelationDeclaration:
    """Declare a many-to-many relation through a join table.

    Args:
        target: Target name; the relation name is used for the table default.
        through: Join table; defaults to both table names sorted and joined by ``_``.
        primary_key: Join column referencing the owner (source key).
        foreign_key: Join column referencing the target.
        table: Explicit target table.
    """
    return _declare('has_and_belongs_to_many', target, {'through': through, 'primary_key': primary_key,
                                                        'foreign_key': foreign_key, 'table': table})


def _normalize_keys(raw: Mapping[str, Any]) -> Dict[str, Any]:
    return {from_camel(k): v for k, v in raw.items()}


def _target_name(value: Any, fallback: str) -> str:
    return value if isinstance(value, str) and value else fallback


def resolve_relation(owner_table: str, name: str, raw: Mapping[str, Any], *,
                     key_style: str = 'camel') -> RelationDescriptor:
    """Fill in every default of a relation declaration.

    Resolution is total: a declaration without a known kind becomes an
    :class:`UnresolvedRelation` instead of failing at registration.
    """
    if isinstance(raw, (BelongsTo, HasOne, HasMany, HasAndBelongsToMany, UnresolvedRelation)):
        return raw
    decl = _normalize_keys(raw or {})
    dependent = decl.get('dependent') is True
    table = decl.get('table')
    foreign_key = decl.get('foreign_key') or decl.get('key')

    if decl.get('has_and_belongs_to_many'):
        plural_name = pluralize(name)
        return HasAndBelongsToMany(
            name=name,
            target_table=table or pluralize(_target_name(decl['has_and_belongs_to_many'], name)),
            foreign_key=foreign_key or key_for(singularize(name), key_style),
            source_key=decl.get('primary_key') or decl.get('source_key') or key_for(singularize(owner_table), key_style),
            join_table=decl.get('through') or decl.get('through_table') or join_table_name([owner_table, plural_name]),
            dependent=dependent,
        )
    if decl.get('belongs_to'):
        return BelongsTo(
            name=name,
            target_table=table or pluralize(_target_name(decl['belongs_to'], name)),
            foreign_key=foreign_key or key_for(singularize(name), key_style),
            dependent=dependent,
            touch=decl.get('touch') is True,
        )
    if decl.get('has_many'):
        return HasMany(
            name=name,
            target_table=table or pluralize(_target_name(decl['has_many'], name)),
            foreign_key=foreign_key or key_for(singularize(owner_table), key_style),
            dependent=dependent,
        )
    if decl.get('has_one'):
        return HasOne(
            name=name,
            target_table=table or pluralize(_target_name(decl['has_one'], name)),
            foreign_key=foreign_key or key_for(singularize(owner_table), key_style),
            dependent=dependent,
        )
    return UnresolvedRelation(name=name, raw=dict(raw or {}))
