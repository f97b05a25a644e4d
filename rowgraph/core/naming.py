"""Naming helpers shared by relation resolution and declarations.

Pluralization rules come from ``inflection``; key names follow the configured
key style (``camel`` -> ``teamId``, ``snake`` -> ``team_id``).
"""
from __future__ import annotations

import re
from typing import Iterable

import inflection

__all__ = [
    'from_camel',
    'to_camel',
    'pluralize',
    'singularize',
    'key_for',
    'join_table_name',
]

_camel_to_snake_pattern = re.compile(r'(?<!^)(?=[A-Z])')


def from_camel(name: str) -> str:
    """Convert lower/upper camelCase to snake_case."""
    if not name:
        return name
    return _camel_to_snake_pattern.sub('_', str(name)).lower()


def to_camel(name: str) -> str:
    """Convert snake_case to lowerCamelCase."""
    if not name:
        return name
    parts = str(name).split('_')
    if not parts:
        return name
    return parts[0] + ''.join(p.capitalize() for p in parts[1:])


def pluralize(name: str) -> str:
    return inflection.pluralize(name)


def singularize(name: str) -> str:
    return inflection.singularize(name)


def key_for(name: str, key_style: str = 'camel') -> str:
    """Foreign key column for ``name`` (already singular), e.g. ``team`` -> ``teamId``."""
    if key_style == 'snake':
        return f"{inflection.underscore(name)}_id"
    return f"{to_camel(name)}Id"


def join_table_name(tables: Iterable[str]) -> str:
    """Join table for a many-to-many pair: names sorted and joined by ``_``."""
    return '_'.join(sorted(tables))
