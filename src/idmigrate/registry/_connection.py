"""
Connection handling helper for database operations.

The `execute_with_connection` context manager lets repositories accept
either an Engine or an already-open Connection:
- Engine inputs get a fresh connection or transaction
- Connection inputs are passed through and the caller owns the transaction
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Connection, Engine


@contextmanager
def execute_with_connection(
    conn: Connection | Engine,
    transactional: bool = True,
) -> Iterator[Connection]:
    """
    Context manager for executing database operations.

    Args:
        conn: Database connection or engine
        transactional: If True, wrap in transaction (begin).
                       If False, use bare connection (connect).
                       Only applies when conn is an Engine.

    Yields:
        Connection ready for execute() calls

    Example:
        >>> with execute_with_connection(self.conn) as conn:
        ...     conn.execute(query, params)

        >>> with execute_with_connection(self.conn, transactional=False) as conn:
        ...     return conn.execute(select_query, params).fetchall()
    """
    if isinstance(conn, Engine):
        if transactional:
            with conn.begin() as connection:
                yield connection
        else:
            with conn.connect() as connection:
                yield connection
    else:
        # Caller is responsible for transaction management
        yield conn
