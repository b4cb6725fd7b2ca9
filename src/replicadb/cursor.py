"""
Statement execution: binding, running and collecting results.

Parameters are always named (`:name` in the SQL text). The first character
of a parameter name decides how it is bound, independent of the value:

- a name starting with `_` is bound as an integer (`:_id`, `:_limit`)
- every other name is bound as a string

Callers rely on this to force integer binding for ids.
"""
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import wraps
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from replicadb.exceptions import StatementError

if TYPE_CHECKING:
    from replicadb.connection import ConnectionWrapper
    from replicadb.transaction import TransactionController

logger = logging.getLogger(__name__)

INT_BIND_PREFIX = '_'


def dumpsql(func):
    """Decorator for logging SQL statements, parameters and timing."""
    @wraps(func)
    def wrapper(self, cn: 'ConnectionWrapper', sql: str, params: Mapping | None = None):
        start = time.time()
        logger.debug(f'SQL ({cn.endpoint}):\n{sql}\nparams: {params}')
        try:
            return func(self, cn, sql, params)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nparams: {params}')
            raise
        finally:
            elapsed = time.time() - start
            cn.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


def bind_statement(sql: str, params: Mapping[str, Any] | None = None) -> sa.TextClause:
    """Turn SQL text and a name -> value mapping into a typed statement.

    >>> stmt = bind_statement('SELECT * FROM t WHERE id = :_id AND name = :name',
    ...                       {'_id': '7', 'name': 'x'})
    >>> stmt.compile().params
    {'_id': 7, 'name': 'x'}
    """
    statement = sa.text(sql)
    if not params:
        return statement

    binds = []
    for name, value in params.items():
        if name.startswith(INT_BIND_PREFIX):
            value = None if value is None else int(value)
            binds.append(sa.bindparam(name, value, type_=sa.Integer))
        else:
            binds.append(sa.bindparam(name, value, type_=sa.String))
    return statement.bindparams(*binds)


def index_rows(rows: list[dict], hash_key: str) -> dict[Any, dict]:
    """Key rows by the value of one column.

    Rows sharing a key value overwrite each other: the result holds the last
    row seen for each key, so it can be shorter than `rows`.
    """
    return {row[hash_key]: row for row in rows}


@dataclass
class StatementResult:
    """Eagerly materialized outcome of one statement."""
    rows: list[dict] = field(default_factory=list)
    rowcount: int = 0


class StatementExecutor:
    """Runs statements against routed connections.

    Driver errors are not raised to the caller: they are logged, kept as
    `last_error`, and reported by returning None. When the failing statement
    runs inside a transaction, the transaction is rolled back exactly once.
    Outside a transaction every statement is committed as soon as it has
    run, so a long-lived slave connection never reads from a stale snapshot.
    """

    def __init__(self, transactions: 'TransactionController') -> None:
        self.transactions = transactions
        self.last_error: StatementError | None = None

    def execute(self, cn: 'ConnectionWrapper', sql: str,
                params: Mapping[str, Any] | None = None) -> StatementResult | None:
        """Execute one statement; return its result, or None on failure.
        """
        try:
            statement = bind_statement(sql, params)
        except (sa.exc.ArgumentError, ValueError, TypeError) as err:
            return self._fail(cn, err, sql, params)

        with cn.lock:
            try:
                result = self._run(cn, statement, params)
                if not self.transactions.owns(cn):
                    cn.sa_connection.commit()
            except sa.exc.SQLAlchemyError as err:
                return self._fail(cn, err, sql, params)

        self.last_error = None
        return result

    @dumpsql
    def _run(self, cn: 'ConnectionWrapper', statement: sa.TextClause,
             params: Mapping | None = None) -> StatementResult:
        result = cn.sa_connection.execute(statement)
        try:
            rows = [dict(row) for row in result.mappings()] if result.returns_rows else []
            rowcount = result.rowcount
        finally:
            result.close()
        logger.debug(f'Statement affected {rowcount} rows, returned {len(rows)} rows')
        return StatementResult(rows=rows, rowcount=rowcount)

    def _fail(self, cn: 'ConnectionWrapper', err: BaseException, sql: Any,
              params: Mapping | None) -> None:
        error = StatementError.from_exception(err, str(sql), dict(params or {}))
        self.last_error = error
        logger.error(f'Statement failed on {cn.endpoint}: {error}')

        if self.transactions.in_transaction:
            self.transactions.rollback()
            return None

        # end the driver's implicit transaction; not a transaction rollback
        try:
            cn.sa_connection.rollback()
        except sa.exc.SQLAlchemyError as exc:
            logger.debug(f'Could not reset connection after failure: {exc}')
        return None
