"""
Read/write routing between the master and the slaves of one logical database.

Writes, transactions and explicitly flagged reads go to the master; every
other read goes to a slave. Connections are opened lazily and kept open.

Slave selection has two modes:

- sticky (default): the first slave read picks one slave uniformly at random
  and every later slave read reuses that connection, so a process keeps
  reading from the same replica for its whole lifetime.
- per call: each slave read picks a slave uniformly at random; one
  connection is kept per slave endpoint.
"""
import enum
import logging
import random
import threading
from collections.abc import Callable
from typing import Any

from replicadb.connection import ConnectionWrapper, check_connection, connect
from replicadb.exceptions import ConfigurationMissing, ConnectionFailure
from replicadb.options import DatabaseOptions, EndpointOptions

logger = logging.getLogger(__name__)


class Route(enum.Enum):
    """Kind of connection a statement needs."""
    MASTER = 'master'
    SLAVE = 'slave'


class ConnectionRouter:
    """Owns the master and slave connections of one logical database.

    A slot whose connection failed to open, or has since been closed or
    invalidated, is reopened on the next `resolve`; failures are not cached.
    """

    def __init__(self, options: DatabaseOptions,
                 connector: Callable[[EndpointOptions], ConnectionWrapper] = connect,
                 chooser: Callable[[list], Any] = random.choice,
                 sleep_func: Callable[[float], None] | None = None) -> None:
        self.options = options
        self._connector = connector
        self._chooser = chooser
        self._lock = threading.RLock()
        self._master: ConnectionWrapper | None = None
        self._slave: ConnectionWrapper | None = None
        self._slave_pool: dict[int, ConnectionWrapper] = {}

        retry_kwargs: dict[str, Any] = {
            'max_retries': options.connect_retries,
            'retry_delay': options.retry_delay,
        }
        if sleep_func is not None:
            retry_kwargs['sleep_func'] = sleep_func
        self._open = check_connection(**retry_kwargs)(self._connect)

    @property
    def name(self) -> str:
        return self.options.name

    def resolve(self, route: Route) -> ConnectionWrapper:
        """Return the live connection for a route, opening it if needed.

        Raises ConnectionFailure when the endpoint cannot be reached and
        ConfigurationMissing when a slave is requested but none is configured.
        """
        with self._lock:
            if route is Route.MASTER:
                if _usable(self._master):
                    return self._master
                self._master = self._open(self.options.master, 'master')
                return self._master

            if not self.options.slaves:
                raise ConfigurationMissing(f'No SLAVES configured for database {self.name!r}')

            if self.options.sticky_slave:
                if _usable(self._slave):
                    return self._slave
                self._slave = self._open(self._chooser(self.options.slaves), 'slave')
                return self._slave

            index = self._chooser(range(len(self.options.slaves)))
            cn = self._slave_pool.get(index)
            if not _usable(cn):
                cn = self._open(self.options.slaves[index], f'slave #{index}')
                self._slave_pool[index] = cn
            return cn

    def _connect(self, endpoint: EndpointOptions, role: str) -> ConnectionWrapper:
        try:
            cn = self._connector(endpoint)
        except ConnectionFailure as err:
            logger.error(f'{self.name}: {role} connection to {endpoint} failed: {err}')
            raise
        logger.info(f'{self.name}: opened {role} connection to {endpoint}')
        return cn

    def connections(self) -> list[ConnectionWrapper]:
        """All currently open connections."""
        with self._lock:
            cns = [self._master, self._slave, *self._slave_pool.values()]
        return [cn for cn in cns if cn is not None]

    def close(self) -> None:
        """Close every open connection and forget them."""
        with self._lock:
            for cn in self.connections():
                cn.close()
            self._master = None
            self._slave = None
            self._slave_pool.clear()


def _usable(cn: ConnectionWrapper | None) -> bool:
    return cn is not None and not cn.closed
