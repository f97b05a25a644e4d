"""End-to-end tests through the SQLAlchemy executor (in-memory SQLite by default)."""
import asyncio
from datetime import datetime

import pytest

from rowgraph.executor import ColumnInfo


@pytest.mark.asyncio
async def test_teams_and_users_scenario(sql_graph):
    teams = sql_graph.model('teams')
    users = sql_graph.model('users')

    team = await teams.create({'name': 'Ops', 'users': [{'name': 'Ana'}, {'name': 'Ben'}]})
    ana, ben = team['users']
    assert isinstance(team['createdAt'], datetime)

    loaded = await teams.include('users').find(team['id'])
    assert sorted(u['name'] for u in loaded['users']) == ['Ana', 'Ben']
    assert all(u['teamId'] == team['id'] for u in loaded['users'])

    await teams.save(loaded.set('users', [ana]))
    assert (await users.find(ben['id']))['teamId'] is None
    reloaded = await teams.include('users').reload(team)
    assert [u['name'] for u in reloaded['users']] == ['Ana']

    await teams.destroy(reloaded)
    assert await teams.find(team['id']) is None
    assert await users.find(ana['id']) is None
    # detached before the destroy, so it survives
    assert (await users.find(ben['id']))['name'] == 'Ben'


@pytest.mark.asyncio
async def test_user_graph_round_trip(sql_graph):
    users = sql_graph.model('users')
    user = await users.create({
        'name': 'Nathan',
        'age': 30,
        'team': {'name': 'Ops'},
        'profile': {'bio': 'hello'},
        'projects': [{'name': 'Alpha'}, {'name': 'Beta'}],
    })
    loaded = await users.include('team', 'profile', 'projects').find(user['id'])
    assert loaded['age'] == 30
    assert loaded['team']['name'] == 'Ops'
    assert loaded['profile']['bio'] == 'hello'
    assert sorted(p['name'] for p in loaded['projects']) == ['Alpha', 'Beta']

    # saving what was loaded changes nothing about the links
    await users.save(loaded)
    again = await users.include('projects').find(user['id'])
    assert len(again['projects']) == 2
    links = await sql_graph.model('projects_users').where(userId=user['id']).all()
    assert len(links) == 2


@pytest.mark.asyncio
async def test_transaction_commit_and_rollback(sql_graph):
    users = sql_graph.model('users')
    async with sql_graph.transaction() as tx:
        kept = await users.create({'name': 'Kept', 'projects': [{'name': 'Alpha'}]}, transaction=tx)
    assert (await users.find(kept['id']))['name'] == 'Kept'

    with pytest.raises(RuntimeError):
        async with sql_graph.transaction() as tx:
            lost = await users.create({'name': 'Lost', 'team': {'name': 'Ghosts'}}, transaction=tx)
            raise RuntimeError("abort")
    assert await users.find(lost['id']) is None
    assert await sql_graph.model('teams').where(name='Ghosts').first() is None


@pytest.mark.asyncio
async def test_schema_introspection(sql_graph):
    schema = await sql_graph.model('users').schema()
    assert set(schema) == {'id', 'name', 'email', 'age', 'teamId', 'createdAt', 'updatedAt'}
    assert isinstance(schema['age'], ColumnInfo)
    assert schema['age'].type == 'integer'
    assert schema['name'].max_length == 100
    teams_schema = await sql_graph.model('teams').schema()
    assert teams_schema['name'].nullable is False


@pytest.mark.asyncio
async def test_unknown_fields_are_not_sent_to_the_database(sql_graph):
    user = await sql_graph.model('users').create({'name': 'Nathan', 'nickname': 'Nate'})
    assert 'nickname' not in user
    assert (await sql_graph.model('users').find(user['id']))['name'] == 'Nathan'


@pytest.mark.asyncio
async def test_query_helpers_against_sql(sql_graph):
    users = sql_graph.model('users')
    await users.create([
        {'name': 'Ana', 'age': 31, 'email': 'ana@example.com'},
        {'name': 'Ben', 'age': 17, 'email': None},
        {'name': 'Cat', 'age': 45, 'email': 'cat@example.org'},
    ])
    adults = await users.where('age', '>=', 18).order('age', 'desc').all()
    assert [u['name'] for u in adults] == ['Cat', 'Ana']
    assert [u['name'] for u in await users.where_null('email').all()] == ['Ben']
    assert [u['name'] for u in await users.where(email={'like': '%.com'}).all()] == ['Ana']
    assert [u['name'] for u in await users.order('name').page(2, per_page=2).all()] == ['Cat']

    await users.where_in('name', ['Ana', 'Ben']).delete()
    assert [u['name'] for u in await users.all()] == ['Cat']


@pytest.mark.asyncio
async def test_include_users_for_two_teams(sql_graph):
    teams = sql_graph.model('teams')
    first, second = await teams.create([{'name': 'A-team'}, {'name': 'B-team'}])
    await sql_graph.model('users').create([
        {'name': 'Ana', 'teamId': first['id']},
        {'name': 'Ben', 'teamId': first['id']},
        {'name': 'Cat', 'teamId': second['id']},
    ])
    loaded = await teams.include('users').order('name').all()
    assert len(loaded) == 2
    assert len(loaded[0]['users']) == 2
    assert len(loaded[1]['users']) == 1


@pytest.mark.asyncio
async def test_save_of_created_record_round_trips(sql_graph):
    users = sql_graph.model('users')
    created = await users.create({'name': 'Nathan', 'age': 30, 'email': 'n@example.com'})
    saved = await users.save(created)
    found = await users.find(created['id'])
    assert found.remove('updatedAt') == saved.remove('updatedAt') == created.remove('updatedAt')


@pytest.mark.asyncio
async def test_open_transaction_holds_a_single_connection_pool(sql_graph):
    executor = sql_graph.executor
    if not executor.adapter.shares_single_connection(executor.engine):
        pytest.skip("only single-connection pools serialize around transactions")
    users = sql_graph.model('users')
    async with sql_graph.transaction() as tx:
        user = await users.create({'name': 'Pending'}, transaction=tx)
        outside = asyncio.create_task(users.find(user['id']))
        for _ in range(5):
            await asyncio.sleep(0)
        assert not outside.done()
    assert (await outside)['name'] == 'Pending'
