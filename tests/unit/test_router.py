"""
Unit tests for master/slave routing.
"""
from unittest.mock import MagicMock

import pytest
from replicadb.exceptions import ConfigurationMissing, ConnectionFailure
from replicadb.options import DatabaseOptions
from replicadb.router import ConnectionRouter, Route


def test_master_is_created_once(mysql_options, create_mock_connection):
    """Repeated MASTER resolves return the same connection to the master endpoint"""
    connector = MagicMock(side_effect=create_mock_connection)
    router = ConnectionRouter(mysql_options, connector=connector)

    first = router.resolve(Route.MASTER)
    second = router.resolve(Route.MASTER)

    assert first is second
    assert first.endpoint is mysql_options.master
    assert connector.call_count == 1


def test_sticky_slave(mysql_options, create_mock_connection):
    """The first SLAVE resolve picks one slave, later resolves reuse it"""
    connector = MagicMock(side_effect=create_mock_connection)
    router = ConnectionRouter(mysql_options, connector=connector)

    first = router.resolve(Route.SLAVE)
    assert first.endpoint in mysql_options.slaves

    for _ in range(20):
        assert router.resolve(Route.SLAVE) is first
    assert connector.call_count == 1


def test_sticky_slave_choice_is_random(mysql_options, create_mock_connection):
    """The slave is chosen with the injected chooser among configured slaves"""
    chooser = MagicMock(side_effect=lambda seq: seq[2])
    router = ConnectionRouter(mysql_options, connector=create_mock_connection, chooser=chooser)

    cn = router.resolve(Route.SLAVE)

    assert cn.endpoint is mysql_options.slaves[2]
    chooser.assert_called_once_with(mysql_options.slaves)


def test_master_and_slave_are_separate(mysql_options, create_mock_connection):
    router = ConnectionRouter(mysql_options, connector=create_mock_connection)

    assert router.resolve(Route.MASTER) is not router.resolve(Route.SLAVE)
    assert len(router.connections()) == 2


def test_per_call_slave_selection(mysql_options, create_mock_connection):
    """Without sticky slaves each resolve picks again, one connection per slave"""
    mysql_options.sticky_slave = False
    picks = iter([0, 1, 0, 2])
    connector = MagicMock(side_effect=create_mock_connection)
    router = ConnectionRouter(mysql_options, connector=connector,
                              chooser=lambda seq: next(picks))

    cns = [router.resolve(Route.SLAVE) for _ in range(4)]

    assert [cn.endpoint for cn in cns] == [mysql_options.slaves[i] for i in (0, 1, 0, 2)]
    assert cns[0] is cns[2]
    assert connector.call_count == 3


def test_slave_without_slaves_configured(mysql_options, create_mock_connection):
    options = DatabaseOptions(name='solo', master=mysql_options.master)
    router = ConnectionRouter(options, connector=create_mock_connection)

    with pytest.raises(ConfigurationMissing):
        router.resolve(Route.SLAVE)


def test_failure_is_not_cached(mysql_options, create_mock_connection):
    """A failed connect is reported, and the next resolve tries again"""
    good = create_mock_connection(mysql_options.master)
    connector = MagicMock(side_effect=[ConnectionFailure('refused'), good])
    router = ConnectionRouter(mysql_options, connector=connector)

    with pytest.raises(ConnectionFailure):
        router.resolve(Route.MASTER)

    assert router.resolve(Route.MASTER) is good
    assert connector.call_count == 2


def test_closed_connection_is_reopened(mysql_options, create_mock_connection):
    connector = MagicMock(side_effect=create_mock_connection)
    router = ConnectionRouter(mysql_options, connector=connector)

    first = router.resolve(Route.MASTER)
    first.closed = True
    second = router.resolve(Route.MASTER)

    assert second is not first
    assert connector.call_count == 2


def test_connect_retries(mysql_options, create_mock_connection):
    """connect_retries attempts are made, sleeping between them"""
    mysql_options.connect_retries = 3
    mysql_options.retry_delay = 0.5
    good = create_mock_connection(mysql_options.master)
    connector = MagicMock(side_effect=[ConnectionFailure('a'), ConnectionFailure('b'), good])
    sleeps = []
    router = ConnectionRouter(mysql_options, connector=connector, sleep_func=sleeps.append)

    assert router.resolve(Route.MASTER) is good
    assert sleeps == [0.5, 0.75]


def test_close_closes_everything(mysql_options, create_mock_connection):
    router = ConnectionRouter(mysql_options, connector=create_mock_connection)
    master = router.resolve(Route.MASTER)
    slave = router.resolve(Route.SLAVE)

    router.close()

    master.close.assert_called_once()
    slave.close.assert_called_once()
    assert router.connections() == []
