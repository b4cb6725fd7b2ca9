"""
Database-specific exception classes.
"""
import sqlite3

import pymysql
import sqlalchemy as sa


class DatabaseError(Exception):
    """Base class for all replicadb errors.
    """


class ConfigurationMissing(DatabaseError):
    """No configuration entry for the requested logical database.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining database connection.
    """


class TransactionAlreadyActive(DatabaseError):
    """begin() called while a transaction is already in flight.
    """


class ValidationError(DatabaseError):
    """Error in input validation.
    """


class StatementError(DatabaseError):
    """A statement that the database refused.

    Never raised by read/write; it is logged and kept on
    `Database.last_error` so callers can inspect the failure after getting
    a failure result back.
    """

    def __init__(self, sql: str, params: dict | None = None,
                 code: int | str | None = None, message: str = '') -> None:
        self.sql = sql
        self.params = params or {}
        self.code = code
        self.message = message
        super().__init__(f'[{code}] {message}' if code is not None else message)

    @classmethod
    def from_exception(cls, exc: BaseException, sql: str,
                       params: dict | None = None) -> 'StatementError':
        """Build from a SQLAlchemy or driver exception.
        """
        orig = getattr(exc, 'orig', None) or exc
        args = getattr(orig, 'args', ())
        if len(args) >= 2 and isinstance(args[0], int):
            return cls(sql, params, code=args[0], message=str(args[1]))
        return cls(sql, params, message=str(orig))


DbConnectionError = (
    sa.exc.OperationalError,
    sa.exc.InterfaceError,
    pymysql.err.OperationalError,
    pymysql.err.InterfaceError,
    sqlite3.OperationalError,
    ConnectionFailure,
    )
