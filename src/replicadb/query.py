"""
SQL assembly for query objects.

A query object exposes `get_model()` and `create_statement()`; the latter
returns the table name and the WHERE, ORDER and LIMIT fragments, already
rendered to SQL text. Fragments are used as given. Field values on the
other hand are never put into the SQL text: every value is a bound
parameter.

Reads go to a slave unless `from_master` is set; updates and deletes go to
the master. Writes return the affected row count, or None on failure.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from replicadb.cursor import INT_BIND_PREFIX
from replicadb.exceptions import ValidationError
from replicadb.model import Delta, ModelMeta, as_field_value
from replicadb.model import check_identifier

if TYPE_CHECKING:
    from replicadb.database import Database
    from replicadb.registry import DatabaseRegistry

__all__ = [
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
]

logger = logging.getLogger(__name__)


class QuerySource(Protocol):

    def get_model(self) -> ModelMeta: ...

    def create_statement(self) -> tuple[str, str, str, str]: ...


@dataclass
class RenderedQuery:
    """Query over fixed, pre-rendered fragments.

    Examples
        RenderedQuery(user_meta, where='WHERE age > :_age', order='ORDER BY id',
                      limit='LIMIT 10', params={'_age': 18})
    """
    model: ModelMeta
    where: str = ''
    order: str = ''
    limit: str = ''
    params: Mapping[str, Any] | None = None

    def get_model(self) -> ModelMeta:
        return self.model

    def create_statement(self) -> tuple[str, str, str, str]:
        return self.model.table, self.where, self.order, self.limit


def join_clauses(*parts: str) -> str:
    """Join SQL fragments with single spaces, skipping empty ones."""
    return ' '.join(part.strip() for part in parts if part and part.strip())


def _bind_name(column: str, value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return f'{INT_BIND_PREFIX}set_{column}'
    return f'set_{column}'


def render_assignments(fields: Mapping[str, Any],
                       force_operator: str | None = None) -> tuple[str, dict[str, Any]]:
    """Render a SET list and its parameters.

    Scalar values render as `field = :set_field` and bind as strings; deltas
    render as `field = field <op> :_set_field` with integer operands bound as
    integers. With `force_operator` every field renders as a delta using that
    operator, whatever shape its value has.

    >>> render_assignments({'count': ('+', 5), 'name': 'x'})
    ('count = count + :_set_count, name = :set_name', {'_set_count': 5, 'set_name': 'x'})
    """
    if not fields:
        raise ValidationError('No fields to assign')

    parts = []
    params: dict[str, Any] = {}
    for column, raw in fields.items():
        check_identifier(column)
        value = as_field_value(raw)
        if force_operator is not None:
            operand = value.operand if isinstance(value, Delta) else value.value
            value = Delta(force_operator, operand)

        if isinstance(value, Delta):
            name = _bind_name(column, value.operand)
            parts.append(f'{column} = {column} {value.operator} :{name}')
            params[name] = value.operand
        else:
            name = f'set_{column}'
            parts.append(f'{column} = :{name}')
            params[name] = value.value

    return ', '.join(parts), params


def _prepare(registry: 'DatabaseRegistry', query: QuerySource) -> tuple[
        'Database', ModelMeta, tuple[str, str, str, str], dict[str, Any]]:
    model = query.get_model()
    statement = query.create_statement()
    params = dict(getattr(query, 'params', None) or {})
    logger.debug(f'Assembling statement for {model.table} on {model.database}')
    return registry.get(model.database), model, statement, params


def query_get_cols(registry: 'DatabaseRegistry', query: QuerySource,
                   fields: list[str], from_master: bool = False) -> list[dict]:
    """Select table-qualified columns; returns the rows."""
    db, _, (table, where, order, limit), params = _prepare(registry, query)
    selects = ', '.join(f'{table}.{check_identifier(field)}' for field in fields)
    sql = join_clauses('SELECT', selects, 'FROM', table, where, order, limit)
    return db.read(sql, params, from_master)


def query_get_col(registry: 'DatabaseRegistry', query: QuerySource,
                  field: str, from_master: bool = False) -> list[Any]:
    """Select one column; returns its values in row order."""
    rows = query_get_cols(registry, query, [field], from_master)
    return [row[field] for row in rows]


def query_get_keys(registry: 'DatabaseRegistry', query: QuerySource,
                   from_master: bool = False) -> list[Any]:
    """Select primary keys.

    Returns key values for a single-column key and {column: value} maps for
    a composite key.
    """
    model = query.get_model()
    if model.is_composite:
        return query_get_cols(registry, query, list(model.primary_keys), from_master)
    return query_get_col(registry, query, model.primary_key, from_master)


def query_get_items(registry: 'DatabaseRegistry', query: QuerySource,
                    from_master: bool = False) -> list[dict]:
    """Select all columns of the matching rows."""
    db, _, (table, where, order, limit), params = _prepare(registry, query)
    sql = join_clauses('SELECT', f'{table}.*', 'FROM', table, where, order, limit)
    return db.read(sql, params, from_master)


def query_get_length(registry: 'DatabaseRegistry', query: QuerySource,
                     from_master: bool = False) -> int:
    """Count the matching rows; ORDER and LIMIT are ignored. 0 on failure."""
    db, _, (table, where, _, _), params = _prepare(registry, query)
    sql = join_clauses('SELECT COUNT(1) AS num FROM', table, where)
    row = db.one(sql, params, from_master)
    if row is None:
        return 0
    return int(row['num'])


def _update(registry: 'DatabaseRegistry', query: QuerySource, fields: Mapping[str, Any],
            force_operator: str | None = None) -> int | None:
    db, _, (table, where, _, _), params = _prepare(registry, query)
    updates, update_params = render_assignments(fields, force_operator)
    clashes = params.keys() & update_params.keys()
    if clashes:
        raise ValidationError(f'Query parameters {sorted(clashes)} clash with the SET binds')
    sql = join_clauses('UPDATE', table, 'SET', updates, where)
    return db.write(sql, {**params, **update_params})


def query_update(registry: 'DatabaseRegistry', query: QuerySource,
                 fields: Mapping[str, Any]) -> int | None:
    """Update the matching rows.

    Values are scalars or (operator, operand) pairs:

        query_update(registry, query, {'name': 'x', 'visits': ('+', 1)})
    """
    return _update(registry, query, fields)


def query_incr(registry: 'DatabaseRegistry', query: QuerySource,
               fields: Mapping[str, Any]) -> int | None:
    """Add each value to its column on the matching rows."""
    return _update(registry, query, fields, force_operator='+')


def query_decr(registry: 'DatabaseRegistry', query: QuerySource,
               fields: Mapping[str, Any]) -> int | None:
    """Subtract each value from its column on the matching rows."""
    return _update(registry, query, fields, force_operator='-')


def query_delete(registry: 'DatabaseRegistry', query: QuerySource) -> int | None:
    """Delete the matching rows."""
    db, _, (table, where, _, _), params = _prepare(registry, query)
    sql = join_clauses('DELETE FROM', table, where)
    return db.write(sql, params)
