"""
SQLite-specific strategy implementation.

Used for local development and tests: master and slaves may all point at the
same database file. SQLite has no SET form of INSERT, so statements use the
column list form, and INSERT IGNORE becomes INSERT OR IGNORE.
"""
import logging
from typing import TYPE_CHECKING, Any

from replicadb.strategy.base import INSERT, INSERT_IGNORE, REPLACE
from replicadb.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from replicadb.options import EndpointOptions

logger = logging.getLogger(__name__)


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'EndpointOptions') -> str:
        """Build the SQLAlchemy connection URL for SQLite."""
        return f'sqlite:///{options.database}'

    def get_engine_kwargs(self, options: 'EndpointOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite.

        Handles are shared between threads behind a lock, so the driver's
        same-thread check is turned off.
        """
        connect_args: dict[str, Any] = {'check_same_thread': False}
        if options.timeout:
            connect_args['timeout'] = options.timeout
        return {'connect_args': connect_args}

    def configure_connection(self, sa_connection: Any,
                             options: 'EndpointOptions') -> None:
        # text is always stored as UTF-8 by the driver
        sa_connection.exec_driver_sql('PRAGMA foreign_keys = ON')
        sa_connection.commit()

    def last_insert_id_sql(self) -> str:
        return 'SELECT last_insert_rowid() AS id'

    def insert_verb(self, mode: str) -> str:
        return {
            INSERT: 'INSERT INTO',
            INSERT_IGNORE: 'INSERT OR IGNORE INTO',
            REPLACE: 'REPLACE INTO',
        }[mode]

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']
