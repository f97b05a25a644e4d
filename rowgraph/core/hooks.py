"""Lifecycle hooks run around save and destroy.

Hooks are declared per model as ``hooks={'before_save': fn, ...}`` (camelCase
names such as ``beforeSave`` work too). A hook may be a plain function or a
coroutine function; it always receives the public record form.

- ``before_create`` / ``before_save`` must return a record, which replaces the
  one being saved.
- ``before_destroy`` returning ``False`` cancels the destroy.
- ``after_*`` return values are ignored.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from ..errors import HookContractError
from .naming import from_camel
from .records import RecordAdapter
from .utils import maybe_await

__all__ = ['HOOK_NAMES', 'HookDispatcher', 'normalize_hooks']

_logger = logging.getLogger("rowgraph")

HOOK_NAMES = (
    'before_create',
    'before_save',
    'after_save',
    'after_create',
    'before_destroy',
    'after_destroy',
)

MUTATING_HOOKS = ('before_create', 'before_save')


def normalize_hooks(hooks: Optional[Mapping[str, Callable[..., Any]]]) -> Dict[str, Callable[..., Any]]:
    out: Dict[str, Callable[..., Any]] = {}
    for name, fn in (hooks or {}).items():
        key = from_camel(name)
        if key not in HOOK_NAMES:
            raise ValueError(f"Unknown hook '{name}'; expected one of {', '.join(HOOK_NAMES)}")
        if not callable(fn):
            raise TypeError(f"Hook '{name}' must be callable")
        out[key] = fn
    return out


class HookDispatcher:
    """Runs a model's hooks and does the only two record conversions needed."""

    def __init__(self, table: str, hooks: Mapping[str, Callable[..., Any]], adapter: RecordAdapter):
        self.table = table
        self.hooks = dict(hooks)
        self.adapter = adapter

    def has(self, name: str) -> bool:
        return name in self.hooks

    async def run_before(self, name: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Run a mutating hook on plain fields and return the (possibly new) plain fields."""
        fn = self.hooks.get(name)
        if fn is None:
            return fields
        _logger.debug("rowgraph: hook %s on %s", name, self.table)
        result = await maybe_await(fn(self.adapter.from_plain(fields)))
        if not self.adapter.is_instance(result):
            raise HookContractError(name, self.table, result)
        return self.adapter.to_plain(result)

    async def run_after(self, name: str, record: Any) -> None:
        fn = self.hooks.get(name)
        if fn is None:
            return
        _logger.debug("rowgraph: hook %s on %s", name, self.table)
        await maybe_await(fn(record))

    async def run_before_destroy(self, record: Any) -> bool:
        """Return False when the hook vetoes the destroy."""
        fn = self.hooks.get('before_destroy')
        if fn is None:
            return True
        _logger.debug("rowgraph: hook before_destroy on %s", self.table)
        result = await maybe_await(fn(record))
        return result is not False
