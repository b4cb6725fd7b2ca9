"""
Fixtures for SQLite integration tests.

Master and both slaves point at the same database file, so anything written
through the master is visible to slave reads once committed.
"""
import pytest
from replicadb.model import ModelMeta

ACCOUNTS = [
    {'name': 'alice', 'visits': 10, 'grp': 'admin'},
    {'name': 'bob', 'visits': 20, 'grp': 'staff'},
    {'name': 'carol', 'visits': 30, 'grp': 'staff'},
]


@pytest.fixture
def account_meta():
    return ModelMeta(table='account', primary_key='id', database='default')


@pytest.fixture
def membership_meta():
    return ModelMeta(table='membership', primary_key='user_id,group_id', database='default')


@pytest.fixture
def seeded_db(db):
    """Database with three accounts (ids 1, 2, 3)."""
    for row in ACCOUNTS:
        assert db.write('INSERT INTO account (name, visits, grp) VALUES (:name, :_visits, :grp)',
                        {'name': row['name'], '_visits': row['visits'], 'grp': row['grp']}) == 1
    return db
