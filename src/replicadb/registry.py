"""
Registry of logical databases.

The application creates one registry at startup from its configuration and
hands it to every data-access call site. The registry guarantees one
`Database` instance per logical database name.
"""
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any, Self

from replicadb.database import Database
from replicadb.options import DatabaseOptions, load_options

__all__ = ['DatabaseRegistry']

logger = logging.getLogger(__name__)


class DatabaseRegistry:
    """Creates and caches one `Database` per logical database name.

    Examples
        registry = DatabaseRegistry({'users_db': {'MASTER': {...}, 'SLAVES': [...]}})
        users = registry.get('users_db')
        rows = users.read('select * from user where id = :_id', {'_id': 1})
    """

    def __init__(self, config: Mapping[str, Mapping[str, Any]],
                 factory: Callable[[DatabaseOptions], Database] = Database) -> None:
        self.config = config
        self._factory = factory
        self._databases: dict[str, Database] = {}
        self._lock = threading.RLock()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_all()

    def __contains__(self, name: str) -> bool:
        return name in self.config

    def __getitem__(self, name: str) -> Database:
        return self.get(name)

    def names(self) -> list[str]:
        """Configured logical database names."""
        return list(self.config)

    def get(self, name: str) -> Database:
        """Return the `Database` for a name, creating it on first use.

        Raises ConfigurationMissing if the name is not configured.
        """
        with self._lock:
            db = self._databases.get(name)
            if db is None:
                db = self._factory(load_options(name, self.config))
                self._databases[name] = db
                logger.debug(f'Registered database {name}')
            return db

    def close_all(self) -> None:
        """Close every database created by this registry."""
        with self._lock:
            for db in self._databases.values():
                db.close()
            self._databases.clear()
