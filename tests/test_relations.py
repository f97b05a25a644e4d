import pytest

from rowgraph import RowGraph, UnknownRelationError
from rowgraph.config import Settings
from rowgraph.core.naming import join_table_name, key_for, pluralize, singularize
from rowgraph.core.relations import (
    BelongsTo, HasAndBelongsToMany, HasMany, HasOne, UnresolvedRelation,
    belongs_to, has_and_belongs_to_many, has_many, has_one, resolve_relation,
)


def test_naming_helpers():
    assert pluralize('team') == 'teams'
    assert singularize('projects') == 'project'
    assert key_for('team') == 'teamId'
    assert key_for('team_member') == 'teamMemberId'
    assert key_for('teamMember', 'snake') == 'team_member_id'
    assert join_table_name(['users', 'projects']) == 'projects_users'


def test_belongs_to_defaults():
    rel = resolve_relation('users', 'team', {'belongs_to': True})
    assert rel == BelongsTo(name='team', target_table='teams', foreign_key='teamId')
    assert rel.kind == 'belongs_to'
    assert rel.many is False
    assert rel.cleans_up_on_destroy is False


def test_has_many_defaults_use_owner_key():
    rel = resolve_relation('teams', 'users', {'has_many': 'users', 'dependent': True})
    assert isinstance(rel, HasMany)
    assert rel.target_table == 'users'
    assert rel.foreign_key == 'teamId'
    assert rel.many is True
    assert rel.cleans_up_on_destroy is True


def test_has_one_declared_target_is_pluralized():
    rel = resolve_relation('users', 'bio', {'has_one': 'profile'})
    assert isinstance(rel, HasOne)
    assert rel.target_table == 'profiles'
    assert rel.foreign_key == 'userId'


def test_habtm_defaults():
    rel = resolve_relation('users', 'projects', {'has_and_belongs_to_many': True})
    assert isinstance(rel, HasAndBelongsToMany)
    assert rel.target_table == 'projects'
    assert rel.foreign_key == 'projectId'
    assert rel.source_key == 'userId'
    assert rel.join_table == 'projects_users'
    # join rows always go with the owner, even without dependent
    assert rel.dependent is False
    assert rel.cleans_up_on_destroy is True


def test_habtm_join_table_is_symmetric():
    a = resolve_relation('users', 'projects', has_and_belongs_to_many())
    b = resolve_relation('projects', 'users', has_and_belongs_to_many())
    assert a.join_table == b.join_table == 'projects_users'
    assert (a.source_key, a.foreign_key) == (b.foreign_key, b.source_key)


def test_overrides_and_camel_case_keys():
    rel = resolve_relation('users', 'owner', {
        'belongsTo': 'person', 'foreignKey': 'ownerRef', 'table': 'people', 'touch': True,
    })
    assert rel == BelongsTo(name='owner', target_table='people', foreign_key='ownerRef', touch=True)

    habtm = resolve_relation('users', 'groups', {
        'hasAndBelongsToMany': True, 'through': 'memberships', 'primaryKey': 'memberId', 'foreignKey': 'groupRef',
    })
    assert habtm.join_table == 'memberships'
    assert habtm.source_key == 'memberId'
    assert habtm.foreign_key == 'groupRef'


def test_snake_key_style():
    rel = resolve_relation('teams', 'users', has_many(), key_style='snake')
    assert rel.foreign_key == 'team_id'
    habtm = resolve_relation('users', 'projects', has_and_belongs_to_many(), key_style='snake')
    assert (habtm.source_key, habtm.foreign_key) == ('user_id', 'project_id')


def test_factories_match_dict_declarations():
    assert resolve_relation('users', 'team', belongs_to('team')) == resolve_relation('users', 'team', {'belongs_to': 'team'})
    assert resolve_relation('teams', 'users', has_many(dependent=True)).dependent is True
    assert isinstance(resolve_relation('users', 'profile', has_one()), HasOne)


def test_dependent_requires_literal_true():
    rel = resolve_relation('teams', 'users', {'has_many': True, 'dependent': 'yes'})
    assert rel.dependent is False


def test_malformed_declaration_is_unresolved_until_used(memory):
    rel = resolve_relation('users', 'mystery', {'foreign_key': 'x'})
    assert isinstance(rel, UnresolvedRelation)
    assert rel.kind is None
    assert rel.cleans_up_on_destroy is False

    graph = RowGraph(memory, settings=Settings())
    users = graph.model('users', relations={'mystery': {'foreign_key': 'x'}})
    with pytest.raises(UnknownRelationError) as exc:
        users.relation('mystery')
    assert "'mystery' is not a relation of 'users'" in str(exc.value)


@pytest.mark.asyncio
async def test_saving_unresolved_relation_payload_raises(memory):
    graph = RowGraph(memory, settings=Settings())
    users = graph.model('users', relations={'mystery': {'foreign_key': 'x'}})
    with pytest.raises(UnknownRelationError):
        await users.create({'name': 'Nathan', 'mystery': {'id': 1}})
    assert memory.rows('users') == []
