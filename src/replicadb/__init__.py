"""
Master/slave data access for MySQL-compatible databases.

- `DatabaseRegistry` hands out one `Database` per logical database name
- `Database.read/one/write` route statements to a slave or the master
- `query_*` functions assemble SQL from query objects
- `object_*` functions load, save, replace and delete single records
"""
__version__ = '0.1.0'

from replicadb.cursor import bind_statement, index_rows
from replicadb.database import Database
from replicadb.exceptions import ConfigurationMissing, ConnectionFailure
from replicadb.exceptions import DatabaseError, DbConnectionError
from replicadb.exceptions import StatementError, TransactionAlreadyActive
from replicadb.exceptions import ValidationError
from replicadb.model import Delta, ModelMeta, Scalar
from replicadb.options import DatabaseOptions, EndpointOptions, load_options
from replicadb.persistence import object_delete, object_load, object_replace
from replicadb.persistence import object_save
from replicadb.query import QuerySource, RenderedQuery, query_decr
from replicadb.query import query_delete, query_get_col, query_get_cols
from replicadb.query import query_get_items, query_get_keys, query_get_length
from replicadb.query import query_incr, query_update, render_assignments
from replicadb.registry import DatabaseRegistry
from replicadb.router import ConnectionRouter, Route
from replicadb.transaction import Transaction as transaction

__all__ = [
    'DatabaseRegistry',
    'Database',
    'DatabaseOptions',
    'EndpointOptions',
    'load_options',
    'ConnectionRouter',
    'Route',
    'transaction',
    'bind_statement',
    'index_rows',
    'ModelMeta',
    'Scalar',
    'Delta',
    'QuerySource',
    'RenderedQuery',
    'render_assignments',
    'query_get_keys',
    'query_get_col',
    'query_get_cols',
    'query_get_items',
    'query_get_length',
    'query_update',
    'query_incr',
    'query_decr',
    'query_delete',
    'object_load',
    'object_save',
    'object_replace',
    'object_delete',
    'DatabaseError',
    'ConfigurationMissing',
    'ConnectionFailure',
    'StatementError',
    'TransactionAlreadyActive',
    'ValidationError',
    'DbConnectionError',
]
