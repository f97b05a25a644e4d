"""Test configuration and fixtures for rowgraph."""

import asyncio
import os
import sys

import pytest
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from rowgraph import RowGraph, has_and_belongs_to_many, has_many, has_one, belongs_to
from rowgraph.config import Settings
from rowgraph.executor import SQLAlchemyExecutor
from tests.memory_executor import MemoryExecutor
from tests.tables import column_names, metadata

# Try to load environment variables from .env file
load_dotenv()


@pytest.fixture(scope="session", autouse=True)
def event_loop_policy():
    """Set event loop policy for Windows compatibility."""
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    yield


@pytest.fixture
def settings():
    """Defaults independent of the developer's environment."""
    return Settings()


@pytest.fixture
def memory():
    return MemoryExecutor(column_names())


def register_models(graph):
    """Teams/Users/Profiles/Projects wiring used across the suite."""
    graph.model('teams', relations={'users': has_many('users', dependent=True)})
    graph.model('users', relations={
        'team': belongs_to('team'),
        'profile': has_one('profile', dependent=True),
        'projects': has_and_belongs_to_many('projects'),
    })
    graph.model('profiles', relations={'user': belongs_to('user')})
    graph.model('projects', relations={
        'users': has_and_belongs_to_many('users'),
        'lists': has_many('lists', dependent=True),
    })
    graph.model('lists', timestamps={'created_at': 'created', 'updated_at': 'modified'},
                relations={'project': belongs_to('project', touch=True)})
    graph.model('projects_users')
    return graph


@pytest.fixture
def graph(memory, settings):
    """RowGraph bound to the in-memory executor with the standard models."""
    return register_models(RowGraph(memory, settings=settings))


@pytest.fixture(scope="function")
async def engine():
    """Create a test database engine for each test function."""
    test_db_url = os.getenv('ROWGRAPH_TEST_DATABASE_URL')
    if test_db_url:
        engine = create_async_engine(test_db_url, echo=False, future=True, pool_size=5, max_overflow=10)
        async with engine.begin() as conn:
            await conn.run_sync(metadata.drop_all)
            await conn.run_sync(metadata.create_all)
        is_external_db = True
    else:
        # In-memory SQLite only exists on one connection
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            echo=False,
            future=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        is_external_db = False

    yield engine

    if is_external_db:
        async with engine.begin() as conn:
            await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def sql_graph(engine, settings):
    """RowGraph bound to the SQLAlchemy executor with the standard models."""
    return register_models(RowGraph(SQLAlchemyExecutor(engine), settings=settings))
