"""
Endpoint connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function opening one live connection to an endpoint
2. The `ConnectionWrapper` class holding that connection for a routing slot
3. Engine creation and management through a thread-safe registry
4. The `check_connection` retry decorator

SQLAlchemy is used for URL handling, engines, DBAPI error wrapping and
typed parameter binding. Pooling across processes is not attempted: a
routing slot owns exactly one connection for its lifetime.
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, Self, TypeVar

import sqlalchemy as sa
from replicadb.exceptions import ConnectionFailure, DbConnectionError
from replicadb.options import EndpointOptions
from replicadb.strategy import get_strategy
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

__all__ = [
    'ConnectionWrapper',
    'connect',
    'check_connection',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')
_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def check_connection(func: Callable[..., T] | None = None, *, max_retries: int = 3,
                     retry_delay: float = 1, retry_backoff: float = 1.5,
                     sleep_func: Callable[[float], None] = time.sleep) -> Callable[..., T]:
    """Retry a connect call on connection-level errors.

    `max_retries` counts attempts, so 1 means a single try. The delay
    between attempts starts at `retry_delay` and is multiplied by
    `retry_backoff` after every failure. Other errors propagate at once.

    Usable bare (@check_connection) or with arguments.
    """
    def decorator(f: Callable[..., T]) -> Callable[..., T]:
        @wraps(f)
        def attempt(*args: Any, **kwargs: Any) -> T:
            delay = retry_delay
            for n in range(1, max_retries + 1):
                try:
                    return f(*args, **kwargs)
                except DbConnectionError as err:
                    if n == max_retries:
                        logger.error(f'Giving up after {n} connection attempt(s): {err}')
                        raise
                    logger.warning(f'Connection attempt {n}/{max_retries} failed, '
                                   f'retrying in {delay:.2f}s: {err}')
                    sleep_func(delay)
                    delay *= retry_backoff

        return attempt

    return decorator if func is None else decorator(func)


def get_engine_for_options(options: EndpointOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Return the engine for an endpoint, creating it on first use.

    Engines are shared by every router pointing at the same endpoint. They
    do not pool: each routing slot holds its connection for its lifetime.
    """
    key = str(options)

    with _engine_registry_lock:
        engine = _engine_registry.get(key)
        if engine is None:
            strategy = get_strategy(options.drivername)
            engine = engine_factory(
                strategy.build_connection_url(options),
                **{'poolclass': NullPool, **strategy.get_engine_kwargs(options), **kwargs})
            _engine_registry[key] = engine
            logger.debug(f'Engine created for {key}')
        return engine


def dispose_all_engines() -> None:
    """Dispose and forget every endpoint engine."""
    with _engine_registry_lock:
        engines = list(_engine_registry.values())
        _engine_registry.clear()
    for engine in engines:
        engine.dispose()
    logger.debug(f'{len(engines)} endpoint engine(s) disposed')


atexit.register(dispose_all_engines)


class ConnectionWrapper:
    """The live connection held by one routing slot (master or a slave).

    Statements on one handle are serialized through `lock`, which lets
    threads share it for synchronous calls. `calls` and `time` accumulate
    per-statement statistics. Unknown attributes resolve on the underlying
    SQLAlchemy connection.
    """

    def __init__(self, sa_connection: sa.engine.Connection,
                 endpoint: EndpointOptions) -> None:
        self.sa_connection = sa_connection
        self.endpoint = endpoint
        self.lock = threading.RLock()
        self.calls = 0
        self.time = 0.0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self.sa_connection, name)

    def __repr__(self) -> str:
        return f'<ConnectionWrapper {self.endpoint}>'

    @property
    def dialect(self) -> str:
        return self.endpoint.drivername

    @property
    def closed(self) -> bool:
        return self.sa_connection is None or self.sa_connection.closed \
            or self.sa_connection.invalidated

    def addcall(self, elapsed: float) -> None:
        self.time += elapsed
        self.calls += 1

    def close(self) -> None:
        """Close the handle; an open transaction is discarded by the server."""
        if self.sa_connection is None or self.sa_connection.closed:
            return
        with self.lock:
            self.sa_connection.close()
        logger.debug(f'Closed {self.endpoint} after {self.calls} statement(s), {self.time:.2f}s total')


def connect(endpoint: EndpointOptions, **kw: Any) -> ConnectionWrapper:
    """Open a connection to an endpoint and run the dialect's session setup.

    Raises ConnectionFailure when the driver cannot connect.
    """
    engine = get_engine_for_options(endpoint, **kw)
    try:
        sa_connection = engine.connect()
    except sa.exc.DBAPIError as err:
        logger.error(f'Could not connect to {endpoint}: {err.orig}')
        raise ConnectionFailure(f'Could not connect to {endpoint}: {err.orig}') from err

    try:
        get_strategy(endpoint.drivername).configure_connection(sa_connection, endpoint)
    except sa.exc.DBAPIError as err:
        sa_connection.close()
        logger.error(f'Session setup failed on {endpoint}: {err.orig}')
        raise ConnectionFailure(f'Session setup failed on {endpoint}: {err.orig}') from err

    logger.debug(f'Connected to {endpoint}')
    return ConnectionWrapper(sa_connection, endpoint)
