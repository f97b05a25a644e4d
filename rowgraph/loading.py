"""Eager loading of relations for a batch of already fetched rows.

Each requested relation costs one query (two for many-to-many) regardless of
how many owner rows there are; relations are fetched concurrently and the
results grafted onto the owner rows by key, wrapped by the target model's
record adapter. Only one level is loaded.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Sequence

from .core.options import PersistOptions
from .core.relations import BelongsTo, HasAndBelongsToMany, HasMany, HasOne, RelationDescriptor
from .core.utils import gather_all

if TYPE_CHECKING:  # pragma: no cover
    from .model import Model
    from .registry import RowGraph

_logger = logging.getLogger("rowgraph")

Row = Dict[str, Any]
Grafter = Callable[[Row], Any]


def _distinct(values) -> List[Any]:
    seen = set()
    out = []
    for v in values:
        if v is None or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


class EagerLoadBatcher:
    def __init__(self, graph: 'RowGraph'):
        self.graph = graph

    async def load(self, rows: List[Row], relation_names: Sequence[str], model: 'Model',
                   options: PersistOptions) -> List[Row]:
        """Graft every relation in ``relation_names`` onto ``rows`` (in place) and return them.

        Raises:
            UnknownRelationError: a name has no usable descriptor on ``model``.
        """
        if not rows or not relation_names:
            return rows
        descriptors = [model.relation(name) for name in relation_names]
        executor = model.executor
        grafters = await gather_all(self._fetch(executor, rows, d, options) for d in descriptors)
        for descriptor, graft in zip(descriptors, grafters):
            for row in rows:
                row[descriptor.name] = graft(row)
        return rows

    async def _fetch(self, executor, rows: List[Row], rel: RelationDescriptor, options: PersistOptions) -> Grafter:
        tx = options.transaction
        wrap = self.graph.model(rel.target_table).adapter.from_plain
        if isinstance(rel, BelongsTo):
            keys = _distinct(row.get(rel.foreign_key) for row in rows)
            _logger.debug("rowgraph: include %s (belongs_to %s) for %d keys", rel.name, rel.target_table, len(keys))
            targets = {t['id']: t for t in await executor.select_by_ids(rel.target_table, 'id', keys, transaction=tx)}

            def graft_belongs_to(row: Row) -> Any:
                target = targets.get(row.get(rel.foreign_key))
                return wrap(target) if target is not None else None
            return graft_belongs_to

        if isinstance(rel, (HasMany, HasOne)):
            ids = _distinct(row.get('id') for row in rows)
            _logger.debug("rowgraph: include %s (%s %s) for %d owners", rel.name, rel.kind, rel.target_table, len(ids))
            grouped: Dict[Any, List[Row]] = defaultdict(list)
            for target in await executor.select_by_ids(rel.target_table, rel.foreign_key, ids, transaction=tx):
                grouped[target.get(rel.foreign_key)].append(target)

            if isinstance(rel, HasOne):
                # First row in result order wins; which duplicate that is is unspecified
                def graft_has_one(row: Row) -> Any:
                    matches = grouped.get(row.get('id'))
                    return wrap(matches[0]) if matches else None
                return graft_has_one

            def graft_has_many(row: Row) -> Any:
                return tuple(wrap(t) for t in grouped.get(row.get('id'), ()))
            return graft_has_many

        if isinstance(rel, HasAndBelongsToMany):
            ids = _distinct(row.get('id') for row in rows)
            _logger.debug("rowgraph: include %s (through %s) for %d owners", rel.name, rel.join_table, len(ids))
            joins = await executor.select_by_ids(rel.join_table, rel.source_key, ids, transaction=tx)
            links: Dict[Any, List[Any]] = defaultdict(list)
            for join in joins:
                links[join.get(rel.source_key)].append(join.get(rel.foreign_key))
            target_ids = _distinct(join.get(rel.foreign_key) for join in joins)
            targets = {t['id']: t for t in await executor.select_by_ids(rel.target_table, 'id', target_ids, transaction=tx)}

            def graft_habtm(row: Row) -> Any:
                return tuple(wrap(targets[tid]) for tid in links.get(row.get('id'), ()) if tid in targets)
            return graft_habtm

        # model.relation() rejects anything else before we get here
        raise TypeError(f"Unsupported relation descriptor: {rel!r}")
