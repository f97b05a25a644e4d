"""Cascading save of a record together with its nested relation payloads."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Tuple

from .core.options import PersistOptions
from .core.relations import (
    BelongsTo, HasAndBelongsToMany, HasMany, HasOne, RelationDescriptor, UnresolvedRelation,
)
from .core.utils import ensure_list, gather_all, utcnow
from .errors import UnknownRelationError

if TYPE_CHECKING:  # pragma: no cover
    from .model import Model
    from .registry import RowGraph

__all__ = ['CascadingPersister', 'PersistOptions']

_logger = logging.getLogger("rowgraph")

Row = Dict[str, Any]


class CascadingPersister:
    """Writes an owner row, then reconciles each nested relation payload.

    Relation payloads of one owner are reconciled concurrently; the steps of
    one relation run in order. Every statement of the cascade uses
    ``options.transaction`` when it is set.
    """

    def __init__(self, graph: 'RowGraph'):
        self.graph = graph

    async def save(self, model: 'Model', record: Any, options: PersistOptions) -> Any:
        _, public = await self.persist(model, record, options)
        return public

    async def persist(self, model: 'Model', record: Any, options: PersistOptions) -> Tuple[Row, Any]:
        """Save ``record`` and return ``(persisted plain row, public record)``."""
        executor = model.executor
        fields, payloads = self._split(model, model.adapter.to_plain(record))
        generated = self._apply_defaults(model, fields)

        updated_col = model.timestamp_fields.get('updated_at')
        stamp = options.stamp()
        if updated_col and stamp is not None:
            fields[updated_col] = stamp

        exists = await self._exists(model, fields, options, generated)
        if not exists:
            created_col = model.timestamp_fields.get('created_at')
            now = stamp or utcnow()
            if created_col and fields.get(created_col) is None:
                fields[created_col] = now
            if updated_col and fields.get(updated_col) is None:
                fields[updated_col] = now
            fields = await self._run_before(model, 'before_create', fields, payloads)
        fields = await self._run_before(model, 'before_save', fields, payloads)

        columns = await model.columns(transaction=options.transaction)
        dropped = [k for k in fields if k not in columns]
        if dropped:
            _logger.debug("rowgraph: %s ignoring non-column fields %s", model.table_name, ', '.join(dropped))
        values = {k: v for k, v in fields.items() if k in columns}

        if exists:
            row = await executor.update(model.table_name, values.get('id'), values, transaction=options.transaction)
        else:
            row = await executor.insert(model.table_name, values, transaction=options.transaction)
        _logger.debug("rowgraph: %s %s id=%r", 'updated' if exists else 'inserted', model.table_name, row.get('id'))

        result = dict(row)
        if payloads:
            outcomes = await gather_all(
                self._save_relation(model, result, model.relation(name), payload, options)
                for name, payload in payloads.items()
            )
            for outcome in outcomes:
                result.update(outcome)

        public = model.adapter.from_plain(result)
        await model.hooks.run_after('after_save', public)
        if not exists:
            await model.hooks.run_after('after_create', public)
        return result, public

    async def create_many(self, model: 'Model', records: Iterable[Any], options: PersistOptions) -> Tuple[Any, ...]:
        saved = await gather_all(self.save(model, record, options) for record in records)
        return tuple(saved)

    # ----- owner row helpers -----
    @staticmethod
    def _split(model: 'Model', plain: Mapping[str, Any]) -> Tuple[Row, Row]:
        """Separate scalar fields from relation payloads; reject unresolved relations up front."""
        fields: Row = {}
        payloads: Row = {}
        for key, value in plain.items():
            rel = model.relations.get(key)
            if rel is None:
                fields[key] = value
            elif isinstance(rel, UnresolvedRelation):
                raise UnknownRelationError(model.table_name, key)
            else:
                payloads[key] = value
        return fields, payloads

    @staticmethod
    def _apply_defaults(model: 'Model', fields: Row) -> bool:
        """Fill declared defaults in place; return True when a fresh id was generated."""
        generated = False
        for key, default in model.defaults.items():
            if fields.get(key) is not None:
                continue
            value = default(fields) if callable(default) else default
            if value is None:
                continue
            fields[key] = value
            if key == 'id':
                generated = True
        return generated

    async def _exists(self, model: 'Model', fields: Row, options: PersistOptions, generated: bool) -> bool:
        if options.exists is not None:
            return bool(options.exists)
        if generated or fields.get('id') is None:
            return False
        rows = await model.executor.select_where(model.table_name, {'id': fields['id']},
                                                 transaction=options.transaction, limit=1)
        return bool(rows)

    async def _run_before(self, model: 'Model', hook: str, fields: Row, payloads: Row) -> Row:
        if not model.hooks.has(hook):
            return fields
        out = await model.hooks.run_before(hook, fields)
        # a hook may attach relation payloads to the record it returns
        fields, extra = self._split(model, out)
        payloads.update(extra)
        return fields

    # ----- relation reconciliation -----
    async def _save_relation(self, model: 'Model', owner: Row, rel: RelationDescriptor, payload: Any,
                             options: PersistOptions) -> Row:
        _logger.debug("rowgraph: cascade %s.%s (%s)", model.table_name, rel.name, rel.kind)
        if isinstance(rel, BelongsTo):
            return await self._save_belongs_to(model, owner, rel, payload, options)
        if isinstance(rel, HasMany):
            return await self._save_has_many(model, owner, rel, payload, options)
        if isinstance(rel, HasOne):
            return await self._save_has_one(model, owner, rel, payload, options)
        if isinstance(rel, HasAndBelongsToMany):
            return await self._save_habtm(model, owner, rel, payload, options)
        raise UnknownRelationError(model.table_name, rel.name)

    async def _save_belongs_to(self, model: 'Model', owner: Row, rel: BelongsTo, payload: Any,
                               options: PersistOptions) -> Row:
        executor = model.executor
        tx = options.transaction
        if payload is None:
            await executor.update(model.table_name, owner['id'], {rel.foreign_key: None}, transaction=tx)
            return {rel.name: None, rel.foreign_key: None}

        target = self.graph.model(rel.target_table)
        target_row, public = await self.persist(target, payload, options.for_child())
        changes: Row = {rel.foreign_key: target_row['id']}
        updated_col = model.timestamp_fields.get('updated_at')
        stamp = options.stamp()
        if rel.touch and updated_col and stamp is not None:
            changes[updated_col] = stamp
        row = await executor.update(model.table_name, owner['id'], changes, transaction=tx)
        out = {key: row.get(key) for key in changes}
        out[rel.name] = public
        return out

    async def _save_has_many(self, model: 'Model', owner: Row, rel: HasMany, payload: Any,
                             options: PersistOptions) -> Row:
        executor = model.executor
        tx = options.transaction
        target = self.graph.model(rel.target_table)
        children = [target.adapter.to_plain(child) for child in ensure_list(payload) or ()]
        ids = [child['id'] for child in children if child.get('id') is not None]

        await executor.update_where(
            target.table_name,
            {rel.foreign_key: owner['id'], 'id': {'not_in': ids}},
            {rel.foreign_key: None},
            transaction=tx,
        )
        existing = {row['id'] for row in await executor.select_by_ids(target.table_name, 'id', ids, transaction=tx)}

        for child in children:
            child[rel.foreign_key] = owner['id']
        saved = await gather_all(
            self.save(target, child, options.for_child(exists=child.get('id') in existing))
            for child in children
        )
        return {rel.name: tuple(saved)}

    async def _save_has_one(self, model: 'Model', owner: Row, rel: HasOne, payload: Any,
                            options: PersistOptions) -> Row:
        executor = model.executor
        tx = options.transaction
        target = self.graph.model(rel.target_table)
        if payload is None:
            await executor.update_where(target.table_name, {rel.foreign_key: owner['id']},
                                        {rel.foreign_key: None}, transaction=tx)
            return {rel.name: None}

        child = target.adapter.to_plain(payload)
        others: Row = {rel.foreign_key: owner['id']}
        if child.get('id') is not None:
            others['id'] = {'ne': child['id']}
        await executor.update_where(target.table_name, others, {rel.foreign_key: None}, transaction=tx)

        child[rel.foreign_key] = owner['id']
        saved = await self.save(target, child, options.for_child())
        return {rel.name: saved}

    async def _save_habtm(self, model: 'Model', owner: Row, rel: HasAndBelongsToMany, payload: Any,
                          options: PersistOptions) -> Row:
        executor = model.executor
        tx = options.transaction
        target = self.graph.model(rel.target_table)
        join = self.graph.model(rel.join_table)
        children = [target.adapter.to_plain(child) for child in ensure_list(payload) or ()]
        ids = [child['id'] for child in children if child.get('id') is not None]

        links = await executor.select_where(rel.join_table, {rel.source_key: owner['id']}, transaction=tx)
        linked = {link.get(rel.foreign_key) for link in links}
        await executor.delete_where(
            rel.join_table,
            {rel.source_key: owner['id'], rel.foreign_key: {'not_in': ids}},
            transaction=tx,
        )
        existing = {row['id'] for row in await executor.select_by_ids(target.table_name, 'id', ids, transaction=tx)}

        async def save_and_link(child: Row) -> Any:
            row, public = await self.persist(target, child, options.for_child(exists=child.get('id') in existing))
            if row['id'] not in linked:
                linked.add(row['id'])
                await self._link(join, rel, owner['id'], row['id'], options)
            return public

        saved = await gather_all(save_and_link(child) for child in children)
        return {rel.name: tuple(saved)}

    async def _link(self, join: 'Model', rel: HasAndBelongsToMany, owner_id: Any, target_id: Any,
                    options: PersistOptions) -> None:
        fields: Row = {rel.source_key: owner_id, rel.foreign_key: target_id}
        self._apply_defaults(join, fields)
        stamp = options.stamp()
        if stamp is not None:
            for key in ('created_at', 'updated_at'):
                column = join.timestamp_fields.get(key)
                if column:
                    fields[column] = stamp
        columns = await join.columns(transaction=options.transaction)
        values = {k: v for k, v in fields.items() if k in columns}
        await join.executor.insert(rel.join_table, values, transaction=options.transaction)
