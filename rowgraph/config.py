"""Environment-driven settings for rowgraph.

Values are read from the process environment after loading an optional
``.env`` file. Explicit arguments passed to :class:`rowgraph.RowGraph` or
:meth:`rowgraph.RowGraph.model` always win over these defaults.

Recognised keys:
- ROWGRAPH_DATABASE_URL (falls back to DATABASE_URL)
- ROWGRAPH_TEST_DATABASE_URL
- ROWGRAPH_KEY_STYLE: ``camel`` (``teamId``) or ``snake`` (``team_id``)
- ROWGRAPH_TIMESTAMPS: ``false`` to disable, or ``created,updated`` column names
- ROWGRAPH_ECHO: echo SQL emitted by the SQLAlchemy executor
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from dotenv import load_dotenv

__all__ = ['Settings', 'load_settings', 'normalize_timestamps']

KEY_STYLES = ('camel', 'snake')

TimestampFields = Dict[str, Union[str, bool]]


def _default_timestamps(key_style: str) -> TimestampFields:
    if key_style == 'snake':
        return {'created_at': 'created_at', 'updated_at': 'updated_at'}
    return {'created_at': 'createdAt', 'updated_at': 'updatedAt'}


def normalize_timestamps(value, key_style: str = 'camel') -> TimestampFields:
    """Normalize a timestamps declaration to ``{'created_at': ..., 'updated_at': ...}``.

    Accepts ``False`` (both disabled), ``None``/``True`` (defaults for the key
    style) or a mapping using either snake or camel keys. A mapping value of
    ``True`` means "use the default column name", ``False`` disables that one
    column.
    """
    defaults = _default_timestamps(key_style)
    if value is False:
        return {'created_at': False, 'updated_at': False}
    if value is None or value is True:
        return dict(defaults)
    out = dict(defaults)
    for key, alias in (('created_at', 'createdAt'), ('updated_at', 'updatedAt')):
        if key in value:
            raw = value[key]
        elif alias in value:
            raw = value[alias]
        else:
            continue
        out[key] = defaults[key] if raw is True else raw
    return out


@dataclass
class Settings:
    database_url: Optional[str] = None
    test_database_url: Optional[str] = None
    key_style: str = 'camel'
    timestamps: TimestampFields = field(default_factory=lambda: _default_timestamps('camel'))
    echo: bool = False


def _parse_timestamps(raw: Optional[str], key_style: str) -> TimestampFields:
    if raw is None or not raw.strip():
        return normalize_timestamps(None, key_style)
    if raw.strip().lower() in ('false', '0', 'no', 'off'):
        return normalize_timestamps(False, key_style)
    parts = [p.strip() for p in raw.split(',')]
    created = parts[0] or False
    updated = (parts[1] if len(parts) > 1 else '') or False
    return {'created_at': created, 'updated_at': updated}


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build :class:`Settings` from the environment (and ``.env`` when present)."""
    load_dotenv(env_file)
    key_style = (os.getenv('ROWGRAPH_KEY_STYLE') or 'camel').strip().lower()
    if key_style not in KEY_STYLES:
        raise ValueError(f"ROWGRAPH_KEY_STYLE must be one of {KEY_STYLES}, got {key_style!r}")
    return Settings(
        database_url=os.getenv('ROWGRAPH_DATABASE_URL') or os.getenv('DATABASE_URL'),
        test_database_url=os.getenv('ROWGRAPH_TEST_DATABASE_URL'),
        key_style=key_style,
        timestamps=_parse_timestamps(os.getenv('ROWGRAPH_TIMESTAMPS'), key_style),
        echo=(os.getenv('ROWGRAPH_ECHO') or '').strip().lower() in ('1', 'true', 'yes', 'on'),
    )
