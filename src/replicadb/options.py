"""
Connection options for logical databases and their endpoints.

The configuration source is opaque to this package: any mapping from logical
database name to an entry shaped like

    {'MASTER': {'HOST': ..., 'DB': ..., 'USER': ..., 'PASS': ..., 'PORT': ...},
     'SLAVES': [{'HOST': ..., ...}, ...]}

is turned into a `DatabaseOptions` by `load_options`.
"""
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pandas as pd
from replicadb.exceptions import ConfigurationMissing
from replicadb.strategy import get_available_dialects, get_strategy_class
from replicadb.strategy import is_supported_dialect

__all__ = [
    'EndpointOptions',
    'DatabaseOptions',
    'load_options',
    'pandas_data_loader',
]

_ENDPOINT_KEYS = {
    'DRIVER': 'drivername',
    'HOST': 'hostname',
    'DB': 'database',
    'USER': 'username',
    'PASS': 'password',
    'PORT': 'port',
    'TIMEOUT': 'timeout',
    'READ_TIMEOUT': 'read_timeout',
    'WRITE_TIMEOUT': 'write_timeout',
    'CHARSET': 'charset',
}

_DATABASE_KEYS = {
    'STICKY_SLAVE': 'sticky_slave',
    'STRICT_TRANSACTIONS': 'strict_transactions',
    'CONNECT_RETRIES': 'connect_retries',
    'RETRY_DELAY': 'retry_delay',
}


def pandas_data_loader(rows: list[dict], columns: list[str] | None = None,
                       **kwargs) -> pd.DataFrame:
    """Standard pandas DataFrame loader.

    Always returns a DataFrame, never None, with columns preserved for empty
    results when they are known.
    """
    if not rows:
        return pd.DataFrame(columns=columns or [])
    return pd.DataFrame.from_records(rows, columns=columns)


@dataclass
class EndpointOptions:
    """One server a logical database can route to.

    supported driver names: `mysql`, `sqlite`

    Timeouts are in seconds; 0 leaves the driver default in place.
    """
    drivername: str = 'mysql'
    hostname: str = None
    database: str = None
    username: str = None
    password: str = None
    port: int = 3306
    timeout: int = 10
    read_timeout: int = 0
    write_timeout: int = 0
    charset: str = 'utf8mb4'

    def __post_init__(self):
        self.drivername = self.drivername.lower()
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        self.port = int(self.port or 0)
        get_strategy_class(self.drivername).validate_options(self)

    def __str__(self) -> str:
        if self.drivername == 'sqlite':
            return f'sqlite:{self.database}'
        return f'{self.drivername}://{self.username}@{self.hostname}:{self.port}/{self.database}'

    @classmethod
    def from_config(cls, entry: Mapping[str, Any]) -> 'EndpointOptions':
        """Build from a `{HOST, DB, USER, PASS, PORT}` entry (keys case-insensitive).
        """
        kwargs = {}
        for key, value in entry.items():
            name = _ENDPOINT_KEYS.get(str(key).upper())
            if name is not None and value is not None:
                kwargs[name] = value
        return cls(**kwargs)


@dataclass
class DatabaseOptions:
    """Options for one logical database: a master and its slaves.

    - sticky_slave: pick one slave at random on first use and keep it for the
      lifetime of the router (default); otherwise pick per statement
    - strict_transactions: begin() while a transaction is active raises
      TransactionAlreadyActive instead of being ignored
    - connect_retries: attempts per connection before giving up
    - retry_delay: seconds between attempts, grows with each retry
    """
    name: str
    master: EndpointOptions
    slaves: list[EndpointOptions] = field(default_factory=list)
    sticky_slave: bool = True
    strict_transactions: bool = True
    connect_retries: int = 1
    retry_delay: float = 0.5

    def __post_init__(self):
        if not self.name:
            raise ValueError('logical database name is required')
        self.connect_retries = max(1, int(self.connect_retries))


def _lookup(mapping: Mapping[str, Any], key: str, default: Any = None) -> Any:
    for k, v in mapping.items():
        if str(k).upper() == key:
            return v
    return default


def load_options(name: str, config: Mapping[str, Mapping[str, Any]]) -> DatabaseOptions:
    """Resolve a logical database name against a configuration source.

    Raises ConfigurationMissing if the name has no entry or no master.
    """
    entry = config.get(name) if config is not None else None
    if not entry:
        raise ConfigurationMissing(f'No configuration for database {name!r}')

    master = _lookup(entry, 'MASTER')
    if not master:
        raise ConfigurationMissing(f'No MASTER configured for database {name!r}')

    kwargs = {}
    for key, attr in _DATABASE_KEYS.items():
        value = _lookup(entry, key)
        if value is not None:
            kwargs[attr] = value

    return DatabaseOptions(
        name=name,
        master=EndpointOptions.from_config(master),
        slaves=[EndpointOptions.from_config(s) for s in _lookup(entry, 'SLAVES', None) or []],
        **kwargs)
