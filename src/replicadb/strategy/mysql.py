"""
MySQL-specific strategy implementation.

MySQL accepts the SET form of INSERT, so every INSERT-family statement is
rendered as `INSERT [IGNORE] INTO t SET a = :a, ...`. Sessions are switched
to UTF-8 immediately after connecting.
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from replicadb.strategy.base import INSERT, INSERT_IGNORE, REPLACE
from replicadb.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from replicadb.options import EndpointOptions

logger = logging.getLogger(__name__)


@register_strategy('mysql')
class MySQLStrategy(DatabaseStrategy):
    """MySQL-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for MySQL."""
        return 'mysql'

    def build_connection_url(self, options: 'EndpointOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PyMySQL."""
        return sa.URL.create(
            drivername='mysql+pymysql',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query={'charset': options.charset},
        )

    def get_engine_kwargs(self, options: 'EndpointOptions') -> dict[str, Any]:
        """Pass connect/read/write timeouts through to PyMySQL."""
        connect_args = {}
        if options.timeout:
            connect_args['connect_timeout'] = options.timeout
        if options.read_timeout:
            connect_args['read_timeout'] = options.read_timeout
        if options.write_timeout:
            connect_args['write_timeout'] = options.write_timeout
        return {'connect_args': connect_args} if connect_args else {}

    def configure_connection(self, sa_connection: Any,
                             options: 'EndpointOptions') -> None:
        charset = options.charset
        sa_connection.exec_driver_sql(f'SET NAMES {charset}')
        sa_connection.commit()
        logger.debug(f'Session character set switched to {charset}')

    def last_insert_id_sql(self) -> str:
        return 'SELECT LAST_INSERT_ID() AS id'

    def insert_verb(self, mode: str) -> str:
        return {
            INSERT: 'INSERT INTO',
            INSERT_IGNORE: 'INSERT IGNORE INTO',
            REPLACE: 'REPLACE INTO',
        }[mode]

    def build_insert_sql(self, table: str, binds: list[tuple[str, str]],
                         mode: str = INSERT) -> str:
        verb = self.insert_verb(mode)
        if not binds:
            return f'{verb} {table} () VALUES ()'
        fields = ', '.join(f'{column} = :{name}' for column, name in binds)
        return f'{verb} {table} SET {fields}'

    @classmethod
    def get_required_options(cls) -> list[str]:
        return ['hostname', 'database', 'username']
