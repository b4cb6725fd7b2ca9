"""
Unit tests for engines, connections and the retry decorator.
"""
import pytest
import sqlalchemy as sa
from replicadb.connection import ConnectionWrapper, check_connection, connect
from replicadb.connection import dispose_all_engines, get_engine_for_options
from replicadb.exceptions import ConnectionFailure
from replicadb.options import EndpointOptions


@pytest.fixture(autouse=True)
def clean_engines():
    dispose_all_engines()
    yield
    dispose_all_engines()


@pytest.fixture
def endpoint():
    return EndpointOptions(hostname='db1', database='users', username='app', read_timeout=30)


def test_engine_is_cached_per_endpoint(mocker, endpoint):
    factory = mocker.MagicMock()

    first = get_engine_for_options(endpoint, engine_factory=factory)
    second = get_engine_for_options(endpoint, engine_factory=factory)

    assert first is second
    factory.assert_called_once()
    url = factory.call_args.args[0]
    assert url.drivername == 'mysql+pymysql'
    kwargs = factory.call_args.kwargs
    assert kwargs['connect_args'] == {'connect_timeout': 10, 'read_timeout': 30}


def test_dispose_all_engines(mocker, endpoint):
    factory = mocker.MagicMock()
    engine = get_engine_for_options(endpoint, engine_factory=factory)

    dispose_all_engines()

    engine.dispose.assert_called_once()
    assert get_engine_for_options(endpoint, engine_factory=factory) is factory.return_value
    assert factory.call_count == 2


def test_connect_failure_is_wrapped(mocker, endpoint):
    """Driver errors while connecting surface as ConnectionFailure"""
    factory = mocker.MagicMock()
    factory.return_value.connect.side_effect = sa.exc.OperationalError(
        'connect', {}, Exception("Can't connect to MySQL server on 'db1'"))

    with pytest.raises(ConnectionFailure):
        connect(endpoint, engine_factory=factory)


def test_session_setup_failure_closes(mocker, endpoint):
    factory = mocker.MagicMock()
    sa_connection = factory.return_value.connect.return_value
    sa_connection.exec_driver_sql.side_effect = sa.exc.OperationalError(
        'SET NAMES', {}, Exception('Unknown character set'))

    with pytest.raises(ConnectionFailure):
        connect(endpoint, engine_factory=factory)
    sa_connection.close.assert_called_once()


def test_connect_runs_session_setup(mocker, endpoint):
    factory = mocker.MagicMock()
    sa_connection = factory.return_value.connect.return_value

    cn = connect(endpoint, engine_factory=factory)

    assert isinstance(cn, ConnectionWrapper)
    assert cn.endpoint is endpoint
    assert cn.dialect == 'mysql'
    sa_connection.exec_driver_sql.assert_called_once_with('SET NAMES utf8mb4')


def test_sqlite_connect(tmp_path):
    endpoint = EndpointOptions(drivername='sqlite', database=str(tmp_path / 'x.db'))

    with connect(endpoint) as cn:
        assert not cn.closed
        assert cn.execute(sa.text('SELECT 1 AS one')).scalar() == 1

    assert cn.closed


def test_sqlite_unreachable(tmp_path):
    endpoint = EndpointOptions(drivername='sqlite', database=str(tmp_path / 'missing' / 'x.db'))

    with pytest.raises(ConnectionFailure):
        connect(endpoint)


class TestWrapper:

    def test_statistics(self, mocker, endpoint):
        cn = ConnectionWrapper(mocker.MagicMock(), endpoint)

        cn.addcall(0.5)
        cn.addcall(0.25)

        assert cn.calls == 2
        assert cn.time == 0.75

    def test_closed(self, mocker, endpoint):
        sa_connection = mocker.MagicMock(closed=False, invalidated=False)
        cn = ConnectionWrapper(sa_connection, endpoint)
        assert not cn.closed

        sa_connection.invalidated = True
        assert cn.closed

    def test_close(self, mocker, endpoint):
        sa_connection = mocker.MagicMock(closed=False, invalidated=False)
        cn = ConnectionWrapper(sa_connection, endpoint)

        cn.close()

        sa_connection.close.assert_called_once()


class TestCheckConnection:

    def test_retries_then_succeeds(self, mocker):
        sleeps = []
        func = mocker.MagicMock(side_effect=[ConnectionFailure('a'), 'ok'])
        wrapped = check_connection(func, max_retries=3, retry_delay=1, sleep_func=sleeps.append)

        assert wrapped() == 'ok'
        assert sleeps == [1]

    def test_gives_up(self, mocker):
        func = mocker.MagicMock(side_effect=ConnectionFailure('down'))
        wrapped = check_connection(max_retries=2, retry_delay=0,
                                   sleep_func=lambda _: None)(func)

        with pytest.raises(ConnectionFailure):
            wrapped()
        assert func.call_count == 2

    def test_other_errors_are_not_retried(self, mocker):
        func = mocker.MagicMock(side_effect=KeyError('x'))
        wrapped = check_connection(func, max_retries=5, sleep_func=lambda _: None)

        with pytest.raises(KeyError):
            wrapped()
        assert func.call_count == 1
