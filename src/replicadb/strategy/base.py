"""
Base strategy interface for dialect-specific SQL.

Where MySQL and SQLite disagree (connection URLs, session setup, INSERT
IGNORE and REPLACE syntax, last insert id) the strategy for the endpoint
dialect decides.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from replicadb.options import EndpointOptions

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}

INSERT = 'insert'
INSERT_IGNORE = 'ignore'
REPLACE = 'replace'


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('mysql')
        class MySQLStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for dialect-specific operations.
    """

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier."""

    @abstractmethod
    def build_connection_url(self, options: 'EndpointOptions') -> Any:
        """Build the SQLAlchemy connection URL for an endpoint."""

    def get_engine_kwargs(self, options: 'EndpointOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for an endpoint."""
        return {}

    @abstractmethod
    def configure_connection(self, sa_connection: Any,
                             options: 'EndpointOptions') -> None:
        """Run session setup right after connecting.

        Args:
            sa_connection: freshly opened SQLAlchemy connection
            options: endpoint the connection was opened against
        """

    @abstractmethod
    def last_insert_id_sql(self) -> str:
        """SQL returning the id generated by the last INSERT as column `id`."""

    @abstractmethod
    def insert_verb(self, mode: str) -> str:
        """Leading keywords for plain, ignoring and replacing inserts."""

    def build_insert_sql(self, table: str, binds: list[tuple[str, str]],
                         mode: str = INSERT) -> str:
        """Build an INSERT-family statement.

        Args:
            table: pre-rendered table name
            binds: (column, bind name) pairs in column order
            mode: one of INSERT, INSERT_IGNORE, REPLACE

        Returns
            SQL text with `:name` placeholders
        """
        verb = self.insert_verb(mode)
        if not binds:
            return f'{verb} {table} DEFAULT VALUES'
        columns = ', '.join(column for column, _ in binds)
        values = ', '.join(f':{name}' for _, name in binds)
        return f'{verb} {table} ({columns}) VALUES ({values})'

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return endpoint options that must be set for this dialect."""
        return []

    @classmethod
    def validate_options(cls, options: 'EndpointOptions') -> None:
        """Raise ValueError when a required endpoint option is missing."""
        for option in cls.get_required_options():
            if not getattr(options, option, None):
                raise ValueError(f'{option} is required for {options.drivername}')
