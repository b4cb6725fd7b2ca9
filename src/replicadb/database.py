"""
Per logical database facade: routed reads and writes plus transactions.

All query/data operations report failures through their return value rather
than by raising:

- write() returns the affected row count, or None on failure
- read() returns the rows, or an empty result on failure
- one() returns the first row, or None when there is none

The failure itself is kept on `last_error`.
"""
import logging
import threading
from collections.abc import Mapping
from typing import Any, Self

import pandas as pd
from replicadb.cursor import StatementExecutor, StatementResult, index_rows
from replicadb.exceptions import ConfigurationMissing, ConnectionFailure
from replicadb.exceptions import StatementError
from replicadb.options import DatabaseOptions, pandas_data_loader
from replicadb.router import ConnectionRouter, Route
from replicadb.strategy import get_strategy
from replicadb.transaction import Transaction, TransactionController

__all__ = ['Database']

logger = logging.getLogger(__name__)


class Database:
    """One logical database: a master, its slaves, and one transaction slot.

    Statements issued through one instance are serialized, so an instance
    can be shared by threads; the transaction state is shared with them.
    """

    def __init__(self, options: DatabaseOptions, router: ConnectionRouter | None = None) -> None:
        self.options = options
        self.router = router or ConnectionRouter(options)
        self.transactions = TransactionController(self.router, strict=options.strict_transactions)
        self.executor = StatementExecutor(self.transactions)
        self._lock = threading.RLock()
        self._last_result: StatementResult | None = None
        self._connection_error: ConnectionFailure | None = None

    def __repr__(self) -> str:
        return f'<Database {self.name}>'

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def name(self) -> str:
        return self.options.name

    @property
    def last_error(self) -> StatementError | ConnectionFailure | None:
        """Why the most recent read or write failed, if it did."""
        return self._connection_error or self.executor.last_error

    @property
    def in_transaction(self) -> bool:
        return self.transactions.in_transaction

    def _execute(self, sql: str, params: Mapping[str, Any] | None,
                 route: Route) -> StatementResult | None:
        self._connection_error = None
        try:
            cn = self.router.resolve(route)
        except (ConnectionFailure, ConfigurationMissing) as err:
            logger.error(f'{self.name}: no {route.value} connection: {err}')
            self._connection_error = err if isinstance(err, ConnectionFailure) \
                else ConnectionFailure(str(err))
            return None
        return self.executor.execute(cn, sql, params)

    def write(self, sql: str, params: Mapping[str, Any] | None = None) -> int | None:
        """Run a statement on the master.

        Returns the number of affected rows, or None if the statement failed.
        """
        with self._lock:
            result = self._execute(sql, params, Route.MASTER)
            self._last_result = result
            if result is None:
                return None
            return result.rowcount

    def read(self, sql: str, params: Mapping[str, Any] | None = None,
             from_master: bool = False, hash_key: str | None = None) -> list[dict] | dict[Any, dict]:
        """Run a query, on a slave unless `from_master` is set.

        With `hash_key` the rows are returned keyed by that column's value.
        Rows that share a key value overwrite each other: only the last one
        is kept, so the mapping can hold fewer rows than the query returned.

        Returns an empty list (or dict) if the query failed.
        """
        route = Route.MASTER if from_master else Route.SLAVE
        with self._lock:
            result = self._execute(sql, params, route)
        rows = result.rows if result is not None else []
        if hash_key:
            return index_rows(rows, hash_key)
        return rows

    def one(self, sql: str, params: Mapping[str, Any] | None = None,
            from_master: bool = False) -> dict | None:
        """Return the first row of a query, or None if it has no rows.
        """
        rows = self.read(sql, params, from_master)
        if not rows:
            return None
        return rows[0]

    def read_frame(self, sql: str, params: Mapping[str, Any] | None = None,
                   from_master: bool = False) -> pd.DataFrame:
        """Run a query and load the rows into a pandas DataFrame.
        """
        return pandas_data_loader(self.read(sql, params, from_master))

    @property
    def affected_rows(self) -> int:
        """Rows affected by the last write on this database (0 if it failed)."""
        if self._last_result is None:
            return 0
        return self._last_result.rowcount

    def get_affected_rows(self) -> int:
        return self.affected_rows

    def get_insert_id(self) -> int | None:
        """Id generated by the last INSERT on the master connection.

        Another thread inserting through this database in between moves the
        id on; use `insert()` to read the id of your own statement.
        """
        strategy = get_strategy(self.options.master.drivername)
        row = self.one(strategy.last_insert_id_sql(), from_master=True)
        if row is None:
            return None
        return row['id']

    def insert(self, sql: str, params: Mapping[str, Any] | None = None) -> tuple[int | None, int | None]:
        """Run an INSERT on the master and read back the id it generated.

        Both statements run under the database lock, so no other insert on
        this database can land between them.

        Returns (rowcount, id): (None, None) if the INSERT failed and
        (0, None) if the database ignored the row.
        """
        with self._lock:
            rowcount = self.write(sql, params)
            if not rowcount:
                return rowcount, None
            return rowcount, self.get_insert_id()

    def begin(self) -> bool:
        """Start a transaction on the master; False if it could not start.

        Raises TransactionAlreadyActive when one is already running and the
        database is configured with strict transactions.
        """
        with self._lock:
            self._connection_error = None
            try:
                return self.transactions.begin()
            except ConnectionFailure as err:
                self._connection_error = err
                return False

    def commit(self) -> bool:
        with self._lock:
            return self.transactions.commit()

    def rollback(self) -> bool:
        with self._lock:
            return self.transactions.rollback()

    def transaction(self) -> Transaction:
        """Context manager committing on success and rolling back on error.

        Examples
            with db.transaction():
                db.write('update account set balance = balance - :_amount ...', params)
                db.write('update account set balance = balance + :_amount ...', params)
        """
        return Transaction(self)

    def close(self) -> None:
        """Roll back any open transaction and close all connections."""
        with self._lock:
            self.transactions.rollback()
            self.router.close()
