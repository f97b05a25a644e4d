import pytest

import rowgraph
from rowgraph import NotConnectedError, RowGraph, has_many
from rowgraph.config import Settings
from rowgraph.executor import ColumnInfo
from rowgraph.scope import ScopedModel, merge_predicates


@pytest.fixture
def people(memory):
    memory.seed(
        'users',
        {'id': 'u1', 'name': 'Ana', 'age': 31, 'email': 'ana@example.com', 'teamId': 't1'},
        {'id': 'u2', 'name': 'Ben', 'age': 17, 'email': 'ben@example.org', 'teamId': None},
        {'id': 'u3', 'name': 'Cat', 'age': 45, 'email': 'cat@example.com', 'teamId': 't2'},
        {'id': 'u4', 'name': 'Dan', 'age': 22, 'email': None, 'teamId': 't1'},
    )
    return memory


def test_every_entry_point_requires_a_connection():
    graph = RowGraph(settings=Settings())
    users = graph.model('users')
    calls = [
        lambda: users.save({'name': 'x'}),
        lambda: users.create({'name': 'x'}),
        lambda: users.destroy({'id': 'x'}),
        lambda: users.find('x'),
        lambda: users.reload({'id': 'x'}),
        lambda: users.include('team'),
        lambda: users.schema(),
        lambda: users.where(name='x'),
        lambda: users.all(),
        lambda: users.first(),
        lambda: users.delete(),
        lambda: graph.transaction(),
    ]
    for call in calls:
        with pytest.raises(NotConnectedError) as exc:
            call()
        assert 'RowGraph must be connected' in str(exc.value)


def test_scope_built_while_connected_fails_after_disconnect(memory):
    graph = RowGraph(memory, settings=Settings())
    scope = graph.model('users').where(name='x')
    graph.executor = None
    with pytest.raises(NotConnectedError):
        scope.all()


def test_scopes_never_mutate(graph):
    users = graph.model('users')
    base = users.where(name='Ana')
    included = base.include('team')
    ordered = included.order('age', 'desc').page(2, per_page=10)

    assert isinstance(base, ScopedModel)
    assert base.includes == ()
    assert included.includes == ('team',)
    assert included.order_by == ()
    assert ordered.order_by == (('age', 'desc'),)
    assert (ordered.limit, ordered.offset) == (10, 10)
    assert (users.page(1).limit, users.page(1).offset) == (20, 0)


def test_where_forms_merge_per_column(graph):
    users = graph.model('users')
    scope = users.where('age', '>=', 18).where(age={'lt': 65}).where({'name': 'Ana'}).where('teamId', 't1')
    assert dict(scope.predicate) == {'age': {'gte': 18, 'lt': 65}, 'name': 'Ana', 'teamId': 't1'}
    assert merge_predicates({'id': ['a', 'b']}, {'id': {'not_in': ['b']}}) == {'id': {'in': ['a', 'b'], 'not_in': ['b']}}
    with pytest.raises(ValueError):
        users.where('age', 'between', 3)
    with pytest.raises(ValueError):
        users.order('age', 'sideways')
    with pytest.raises(ValueError):
        users.page(0)


@pytest.mark.asyncio
async def test_query_helpers(graph, people):
    users = graph.model('users')
    adults = await users.where('age', '>=', 18).order('age desc').all()
    assert [u['name'] for u in adults] == ['Cat', 'Ana', 'Dan']

    page = await users.order('name').page(2, per_page=2).all()
    assert [u['name'] for u in page] == ['Cat', 'Dan']

    assert [u['id'] for u in await users.where_in('id', ['u1', 'u3']).order('id').all()] == ['u1', 'u3']
    assert [u['id'] for u in await users.where_not_in('id', ['u1', 'u3']).order('id').all()] == ['u2', 'u4']
    assert [u['id'] for u in await users.where_null('teamId').all()] == ['u2']
    assert [u['id'] for u in await users.where_not_null('email').where(email={'like': '%.com'}).order('id').all()] == ['u1', 'u3']

    first = await users.order('age').first()
    assert first['name'] == 'Ben'
    assert await users.where(name='Nobody').first() is None


@pytest.mark.asyncio
async def test_find_and_reload(graph, people):
    users = graph.model('users')
    ana = await users.find('u1')
    assert ana['email'] == 'ana@example.com'
    people.tables['users'][0]['name'] = 'Anna'
    assert (await users.reload(ana))['name'] == 'Anna'
    assert ana['name'] == 'Ana'
    reloaded = await users.include('team').reload(ana)
    assert reloaded['team'] is None


@pytest.mark.asyncio
async def test_schema_is_column_info_and_memoized(graph, memory):
    users = graph.model('users')
    schema = await users.schema()
    assert isinstance(schema['teamId'], ColumnInfo)
    assert {'id', 'name', 'email', 'teamId', 'createdAt', 'updatedAt'} <= set(schema)
    assert await users.schema() is schema
    assert memory.count('column_info', 'users') == 1


def test_model_registry_and_uuid(memory):
    graph = RowGraph(memory, settings=Settings())
    users = graph.model('users', relations={'team': {'belongs_to': True}})
    assert graph.model('users') is users
    assert 'team' in users.relations
    replaced = graph.model('users', relations={})
    assert graph.model('users') is replaced and replaced is not users
    assert graph.uuid() != graph.uuid()
    assert len(RowGraph.uuid()) == 36


@pytest.mark.asyncio
async def test_connect_and_disconnect(memory):
    graph = rowgraph.connect(memory, settings=Settings())
    assert graph.connected
    await graph.disconnect()
    assert memory.disposed
    assert not graph.connected
    with pytest.raises(NotConnectedError):
        graph.model('users').all()
    with pytest.raises(ValueError):
        RowGraph(settings=Settings()).connect()


def test_json_contexts(memory):
    graph = RowGraph(memory, settings=Settings())
    teams = graph.model('teams', relations={'users': has_many()}, contexts={
        'default': ['name', 'users'],
        'summary': lambda team: {'label': team['name'].upper()},
        'everything': '*',
    })
    graph.model('users', contexts={'default': ['name'], 'summary': ['email']})
    team = rowgraph.Record({'id': 't1', 'name': 'Ops', 'users': [{'id': 'u1', 'name': 'Ana', 'email': 'a@x'}]})

    assert teams.json(team) == {'name': 'Ops', 'users': [{'name': 'Ana'}]}
    assert teams.json(team, 'summary') == {'label': 'OPS'}
    assert teams.json(team, 'everything')['users'][0]['email'] == 'a@x'
    assert teams.json([team, team], lambda t: t['id']) == ['t1', 't1']
    # unknown contexts fall back to every field
    assert teams.json(team, 'missing') == team.to_dict()


@pytest.mark.asyncio
async def test_default_scope_seeds_every_query(graph, people):
    members = graph.model('users', default_scope={'teamId': 't1'})
    assert [u['name'] for u in await members.order('name').all()] == ['Ana', 'Dan']
    assert await members.find('u2') is None
    assert (await members.where('age', '>', 25).first())['name'] == 'Ana'
    assert members.where(name='Ana').predicate == {'teamId': 't1', 'name': 'Ana'}

    await members.delete()
    assert sorted(row['id'] for row in people.rows('users')) == ['u2', 'u3']


@pytest.mark.asyncio
async def test_callable_default_scope(graph, people):
    reachable = graph.model('users', default_scope=lambda scope: scope.where_not_null('email').order('name', 'desc'))
    assert [u['name'] for u in await reachable.all()] == ['Cat', 'Ben', 'Ana']
    assert await reachable.find('u4') is None
    assert (await reachable.first())['name'] == 'Cat'


def test_single_field_json_context(memory):
    graph = RowGraph(memory, settings=Settings())
    teams = graph.model('teams', contexts={'label': 'name'})
    assert teams.json(rowgraph.Record({'id': 't1', 'name': 'Ops'}), 'label') == {'name': 'Ops'}
