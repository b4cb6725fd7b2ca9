"""
Transaction handling for a logical database.

Transactions always run on the master connection and are single level:
there are no savepoints and no nesting.
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from replicadb.exceptions import ConnectionFailure, TransactionAlreadyActive
from replicadb.router import Route

if TYPE_CHECKING:
    from replicadb.connection import ConnectionWrapper
    from replicadb.router import ConnectionRouter

logger = logging.getLogger(__name__)


class TransactionController:
    """Tracks the one in-flight transaction of a logical database.

    State is IDLE or ACTIVE. begin() moves to ACTIVE; commit() and rollback()
    move back to IDLE. rollback() while IDLE is a no-op.

    With strict=False a begin() while ACTIVE is logged and ignored, keeping
    the running transaction; with strict=True it raises
    TransactionAlreadyActive.
    """

    def __init__(self, router: 'ConnectionRouter', strict: bool = True) -> None:
        self.router = router
        self.strict = strict
        self._connection: 'ConnectionWrapper | None' = None

    @property
    def in_transaction(self) -> bool:
        return self._connection is not None

    def owns(self, cn: 'ConnectionWrapper') -> bool:
        """Is `cn` the connection the active transaction runs on."""
        return self._connection is not None and cn is self._connection

    def begin(self) -> bool:
        """Start a transaction on the master connection.

        Raises ConnectionFailure if the master cannot be reached.
        """
        if self.in_transaction:
            if self.strict:
                raise TransactionAlreadyActive(
                    f'{self.router.name}: a transaction is already active')
            logger.warning(f'{self.router.name}: begin() ignored, a transaction is already active')
            return False

        cn = self.router.resolve(Route.MASTER)
        with cn.lock:
            try:
                if cn.sa_connection.in_transaction():
                    cn.sa_connection.commit()
                cn.sa_connection.begin()
            except sa.exc.SQLAlchemyError as err:
                logger.error(f'{self.router.name}: could not begin transaction: {err}')
                return False
            self._connection = cn
        logger.debug(f'{self.router.name}: started transaction on {cn.endpoint}')
        return True

    def commit(self) -> bool:
        """Commit the active transaction.

        A failed commit rolls the transaction back and returns False.
        """
        if not self.in_transaction:
            logger.warning(f'{self.router.name}: commit() without an active transaction')
            return False

        cn = self._connection
        with cn.lock:
            try:
                cn.sa_connection.commit()
            except sa.exc.SQLAlchemyError as err:
                logger.error(f'{self.router.name}: commit failed: {err}')
                self.rollback()
                return False
            self._connection = None
        logger.debug(f'{self.router.name}: committed transaction on {cn.endpoint}')
        return True

    def rollback(self) -> bool:
        """Roll back the active transaction; no-op returning False when IDLE.
        """
        if not self.in_transaction:
            return False

        cn = self._connection
        self._connection = None
        with cn.lock:
            try:
                cn.sa_connection.rollback()
            except sa.exc.SQLAlchemyError as err:
                logger.error(f'{self.router.name}: rollback failed: {err}')
        logger.warning(f'{self.router.name}: rolled back transaction on {cn.endpoint}')
        return True


class Transaction:
    """Context manager for running multiple statements in one transaction.

    Commits on a clean exit and rolls back when the block raises. A
    statement failing inside the block has already rolled the transaction
    back, so the exit then has nothing left to commit.

    Only the context that started the transaction ends it: with lenient
    transactions a nested block joins the running transaction and leaves
    the commit or rollback to the outer block.

    Raises ConnectionFailure on enter when the transaction cannot start;
    the failure is also kept on `db.last_error`.

    Examples
        with Transaction(db):
            db.write('delete from ...', params)
            db.write('update ...', params)
    """

    def __init__(self, db: Any) -> None:
        self.db = db
        self.controller: TransactionController = db.transactions
        self.started = False

    def __enter__(self):
        self.started = self.db.begin()
        if not self.started and not self.controller.in_transaction:
            raise ConnectionFailure(f'{self.db.name}: could not begin transaction') \
                from self.db.last_error
        return self.db

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        if not self.started:
            return
        self.started = False
        if exc_type is not None:
            if self.db.rollback():
                logger.warning('Rolling back the current transaction')
            return
        if self.controller.in_transaction:
            self.db.commit()
        else:
            logger.warning('Transaction was rolled back before the end of the block')
