import logging
from contextlib import contextmanager
from typing import Callable, Generator, Optional

import psycopg

log = logging.getLogger(__name__)

ConnectionFactory = Callable[[], psycopg.Connection]


class BaseDBManager:
    """
    Base class for database managers, providing common functionality.
    """

    def __init__(self, dbname: str, connect_timeout: int = 10,
                 connection_factory: Optional[ConnectionFactory] = None):
        """
        Initializes the base database manager.

        Host, port and credentials are taken from the standard libpq
        environment (PGHOST, PGPORT, PGUSER, PGPASSWORD).

        :param dbname: The name of the PostgreSQL database to connect to.
        :param connect_timeout: Seconds to wait for a connection before failing.
        :param connection_factory: An optional callable returning a new connection, used instead of `psycopg.connect`.
        """
        self.dbname = dbname
        self.connect_timeout = connect_timeout
        self.connection_factory = connection_factory

    def _connect(self) -> psycopg.Connection:
        if self.connection_factory is not None:
            return self.connection_factory()
        log.debug(f"Connecting to database '{self.dbname}'.")
        return psycopg.connect(dbname=self.dbname, connect_timeout=self.connect_timeout)

    @contextmanager
    def _get_connection(self) -> Generator[psycopg.Connection, None, None]:
        """
        Context manager that creates and returns a new database connection,
        closing it when the block exits.

        :return Generator[psycopg.Connection, None, None]: A generator yielding a database connection.
        """
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[psycopg.Connection, None, None]:
        """
        Opens a connection and runs the block as a single unit of work.

        The transaction is committed when the block exits normally and rolled
        back if it raises.

        :return Generator[psycopg.Connection, None, None]: A generator yielding the connection inside the transaction.
        """
        with self._get_connection() as conn:
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
