from __future__ import annotations

import logging
from typing import Any, AsyncContextManager, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncEngine

from .config import Settings, load_settings
from .core.utils import new_id
from .destruction import DependentDestroyer
from .errors import NotConnectedError
from .executor import QueryExecutor, SQLAlchemyExecutor
from .loading import EagerLoadBatcher
from .model import Model
from .persistence import CascadingPersister

__all__ = ['RowGraph', 'connect']

_logger = logging.getLogger("rowgraph")

Connectable = Union[QueryExecutor, AsyncEngine, str]


class RowGraph:
    """Holds the executor binding and the models registered against it.

    There is no process-wide instance; create one per database and keep a
    reference to it:

        graph = RowGraph().connect('sqlite+aiosqlite:///app.db')
        users = graph.model('users', relations={'team': belongs_to('team')})
    """

    def __init__(self, executor: Optional[Connectable] = None, *, settings: Optional[Settings] = None):
        self.settings = settings or load_settings()
        self.executor: Optional[QueryExecutor] = None
        self.models: Dict[str, Model] = {}
        self.loader = EagerLoadBatcher(self)
        self.persister = CascadingPersister(self)
        self.destroyer = DependentDestroyer(self)
        if executor is not None:
            self.connect(executor)

    def __repr__(self) -> str:
        return f"RowGraph(executor={self.executor!r}, models={list(self.models)!r})"

    @property
    def connected(self) -> bool:
        return self.executor is not None

    def connect(self, target: Optional[Connectable] = None, *, echo: Optional[bool] = None) -> 'RowGraph':
        """Bind an executor: a :class:`QueryExecutor`, an ``AsyncEngine`` or a database URL.

        Without an argument the URL comes from the settings
        (``ROWGRAPH_DATABASE_URL`` / ``DATABASE_URL``).
        """
        if target is None:
            target = self.settings.database_url
            if not target:
                raise ValueError("No database URL given and ROWGRAPH_DATABASE_URL/DATABASE_URL is not set")
        if isinstance(target, QueryExecutor):
            executor = target
        else:
            executor = SQLAlchemyExecutor(target, echo=self.settings.echo if echo is None else echo)
        self.executor = executor
        _logger.debug("rowgraph: connected %r", executor)
        return self

    async def disconnect(self) -> None:
        executor, self.executor = self.executor, None
        if executor is not None:
            await executor.dispose()
            _logger.debug("rowgraph: disconnected %r", executor)

    def model(self, table_name: str, **options: Any) -> Model:
        """Register (or, without options, look up) the model for ``table_name``.

        Registering again replaces the previous model for that table.
        """
        if not options:
            existing = self.models.get(table_name)
            if existing is not None:
                return existing
        model = Model(self, table_name, **options)
        self.models[table_name] = model
        return model

    def transaction(self) -> AsyncContextManager[Any]:
        """Open a transaction on the executor; pass the yielded handle as ``transaction=``.

            async with graph.transaction() as tx:
                await users.save(user, transaction=tx)
        """
        if self.executor is None:
            raise NotConnectedError('creating a transaction')
        return self.executor.transaction()

    @staticmethod
    def uuid() -> str:
        return new_id()


def connect(target: Optional[Connectable] = None, *, settings: Optional[Settings] = None,
            echo: Optional[bool] = None) -> RowGraph:
    """Create a :class:`RowGraph` and connect it in one step."""
    return RowGraph(settings=settings).connect(target, echo=echo)
