import threading
from unittest.mock import MagicMock

import pytest
from replicadb.connection import dispose_all_engines
from replicadb.options import DatabaseOptions, EndpointOptions
from replicadb.registry import DatabaseRegistry

SCHEMA = [
    """
    CREATE TABLE account (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        visits INTEGER NOT NULL DEFAULT 0,
        grp TEXT
    )
    """,
    """
    CREATE TABLE membership (
        user_id INTEGER NOT NULL,
        group_id INTEGER NOT NULL,
        role TEXT,
        PRIMARY KEY (user_id, group_id)
    )
    """,
]


def _create_mock_connection(endpoint=None):
    """Stand-in for a ConnectionWrapper that never touches a database."""
    cn = MagicMock(name=f'cn<{endpoint}>')
    cn.endpoint = endpoint
    cn.closed = False
    cn.lock = threading.RLock()
    cn.sa_connection.in_transaction.return_value = False
    return cn


@pytest.fixture
def create_mock_connection():
    """Factory for mock connections, usable as a router connector.

    Example usage:
        def test_routing(create_mock_connection):
            router = ConnectionRouter(options, connector=create_mock_connection)
    """
    return _create_mock_connection


@pytest.fixture
def mysql_options():
    """Logical database with one master and three slaves (never connected)."""
    return DatabaseOptions(
        name='users_db',
        master=EndpointOptions(hostname='master', database='users', username='app'),
        slaves=[
            EndpointOptions(hostname=f'slave{i}', database='users', username='app')
            for i in range(3)
        ],
    )


@pytest.fixture
def sqlite_config(tmp_path):
    """Configuration whose master and slaves all share one SQLite file."""
    path = str(tmp_path / 'replicadb.db')
    endpoint = {'DRIVER': 'sqlite', 'DB': path}
    return {'default': {'MASTER': endpoint, 'SLAVES': [dict(endpoint), dict(endpoint)]}}


@pytest.fixture
def registry(sqlite_config):
    """Registry over a fresh SQLite file with the test schema created."""
    reg = DatabaseRegistry(sqlite_config)
    db = reg.get('default')
    for sql in SCHEMA:
        assert db.write(sql) is not None, db.last_error

    yield reg

    reg.close_all()
    dispose_all_engines()


@pytest.fixture
def db(registry):
    """The 'default' logical database of the SQLite registry."""
    return registry.get('default')
