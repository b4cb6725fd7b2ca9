"""
ActiveRecord-style persistence: load, save, replace and delete one record.

A record is described by its `ModelMeta` (table, primary key, logical
database) and a field -> value mapping. Its identity is a scalar for a
single-column primary key and a {column: value} mapping for a composite key.
"""
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from replicadb.cursor import INT_BIND_PREFIX
from replicadb.exceptions import ValidationError
from replicadb.model import ModelMeta, Scalar, as_field_value, check_identifier
from replicadb.query import render_assignments
from replicadb.strategy import INSERT, INSERT_IGNORE, REPLACE, get_strategy

if TYPE_CHECKING:
    from replicadb.database import Database
    from replicadb.registry import DatabaseRegistry

__all__ = [
    'object_load',
    'object_save',
    'object_replace',
    'object_delete',
]

logger = logging.getLogger(__name__)

# scalar for a single-column key, {column: value} for a composite key
Identity = Any


def _key_condition(model: ModelMeta, identity: Identity) -> tuple[str, dict[str, Any]]:
    """WHERE clause matching one record, with its parameters."""
    if model.is_composite:
        if not isinstance(identity, Mapping):
            raise ValidationError(f'{model.table} has a composite key {model.primary_key!r}, '
                                  f'identity must be a mapping')
        parts, params = [], {}
        for column in model.primary_keys:
            check_identifier(column)
            name = _key_bind(f'key_{column}', identity[column])
            parts.append(f'{column} = :{name}')
            params[name] = identity[column]
        return 'WHERE ' + ' AND '.join(parts), params

    name = _key_bind('pk', identity)
    return f'WHERE {check_identifier(model.primary_key)} = :{name}', {name: identity}


def _key_bind(name: str, value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return f'{INT_BIND_PREFIX}{name}'
    return name


def _insert_binds(fields: Mapping[str, Any]) -> tuple[list[tuple[str, str]], dict[str, Any]]:
    binds, params = [], {}
    for column, raw in fields.items():
        check_identifier(column)
        value = as_field_value(raw)
        if not isinstance(value, Scalar):
            raise ValidationError(f'Cannot insert an operator pair into {column!r}')
        binds.append((column, f'set_{column}'))
        params[f'set_{column}'] = value.value
    return binds, params


def _insert_sql(db: 'Database', table: str, fields: Mapping[str, Any],
                mode: str) -> tuple[str, dict[str, Any]]:
    strategy = get_strategy(db.options.master.drivername)
    binds, params = _insert_binds(fields)
    return strategy.build_insert_sql(table, binds, mode), params


def object_load(registry: 'DatabaseRegistry', model: ModelMeta, identity: Identity,
                from_master: bool = False) -> dict | None:
    """Load one record by identity; None if there is no such record.
    """
    db = registry.get(model.database)
    where, params = _key_condition(model, identity)
    return db.one(f'SELECT * FROM {model.table} {where}', params, from_master)


def object_save(registry: 'DatabaseRegistry', model: ModelMeta, fields: Mapping[str, Any],
                identity: Identity = None, force_insert: bool = False) -> Identity:
    """Insert or update one record and return its identity.

    Single-column primary key:

    - with an identity and no `force_insert`: UPDATE that row and return the
      identity unchanged
    - otherwise: INSERT IGNORE and return the id the database assigned.
      A row that collides with an existing unique key is silently skipped by
      the database; that case returns None rather than an ambiguous id.

    Composite primary key: always a plain INSERT, leaving duplicate detection
    to the database's constraints. The identity is built from `fields`
    restricted to the key columns; it is not read back from the database.

    Returns None when the statement failed (see `Database.last_error`).
    """
    db = registry.get(model.database)

    if model.is_composite:
        sql, params = _insert_sql(db, model.table, fields, INSERT)
        if db.write(sql, params) is None:
            return None
        return {column: fields.get(column) for column in model.primary_keys}

    if identity and not force_insert:
        if not fields:
            return identity
        updates, params = render_assignments(fields)
        where, key_params = _key_condition(model, identity)
        rc = db.write(f'UPDATE {model.table} SET {updates} {where}', {**params, **key_params})
        if rc is None:
            return None
        return identity

    sql, params = _insert_sql(db, model.table, fields, INSERT_IGNORE)
    rc, insert_id = db.insert(sql, params)
    if rc is None:
        return None
    if rc == 0:
        logger.warning(f'Insert into {model.table} ignored, the row already exists')
        return None
    return insert_id


def object_replace(registry: 'DatabaseRegistry', model: ModelMeta,
                   fields: Mapping[str, Any]) -> int | None:
    """REPLACE a record unconditionally; returns the write result."""
    db = registry.get(model.database)
    sql, params = _insert_sql(db, model.table, fields, REPLACE)
    return db.write(sql, params)


def object_delete(registry: 'DatabaseRegistry', model: ModelMeta,
                  identity: Identity) -> int | None:
    """Delete one record by identity; returns the affected row count."""
    db = registry.get(model.database)
    where, params = _key_condition(model, identity)
    return db.write(f'DELETE FROM {model.table} {where}', params)
