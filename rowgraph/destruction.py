from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .core.options import PersistOptions
from .core.relations import BelongsTo, HasAndBelongsToMany, RelationDescriptor
from .core.utils import gather_all

if TYPE_CHECKING:  # pragma: no cover
    from .model import Model
    from .registry import RowGraph

__all__ = ['DependentDestroyer']

_logger = logging.getLogger("rowgraph")


class DependentDestroyer:
    """Deletes a record and the rows that depend on it (one level deep)."""

    def __init__(self, graph: 'RowGraph'):
        self.graph = graph

    async def destroy(self, model: 'Model', record: Any, options: PersistOptions) -> Any:
        executor = model.executor
        if not await model.hooks.run_before_destroy(record):
            _logger.debug("rowgraph: destroy of %s cancelled by before_destroy", model.table_name)
            return record

        owner = model.adapter.to_plain(record)
        owner_id = owner.get('id')
        await executor.delete_where(model.table_name, {'id': owner_id}, transaction=options.transaction)
        _logger.debug("rowgraph: deleted %s id=%r", model.table_name, owner_id)

        dependents = [rel for rel in model.relations.values() if rel.cleans_up_on_destroy]
        await gather_all(self._delete_dependent(model, rel, owner, options) for rel in dependents)

        await model.hooks.run_after('after_destroy', record)
        return record

    async def _delete_dependent(self, model: 'Model', rel: RelationDescriptor, owner: dict,
                                options: PersistOptions) -> None:
        executor = model.executor
        tx = options.transaction
        if isinstance(rel, HasAndBelongsToMany):
            _logger.debug("rowgraph: unlinking %s from %s", rel.join_table, model.table_name)
            await executor.delete_where(rel.join_table, {rel.source_key: owner.get('id')}, transaction=tx)
        elif isinstance(rel, BelongsTo):
            # the key lives on the owner row, so the target is found by its id
            target_id = owner.get(rel.foreign_key)
            if target_id is None:
                return
            _logger.debug("rowgraph: deleting dependent %s id=%r", rel.target_table, target_id)
            await executor.delete_where(rel.target_table, {'id': target_id}, transaction=tx)
        else:
            _logger.debug("rowgraph: deleting dependent %s where %s=%r", rel.target_table, rel.foreign_key,
                          owner.get('id'))
            await executor.delete_where(rel.target_table, {rel.foreign_key: owner.get('id')}, transaction=tx)
