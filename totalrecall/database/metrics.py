import logging
from dataclasses import dataclass
from typing import Optional

import psycopg
from psycopg import sql

from totalrecall.errors import FatalWorkerError
from totalrecall.database.base import BaseDBManager, ConnectionFactory

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricRecord:
    """One line of the backup utility's metrics file."""
    op: str
    subject: str
    start_time: str
    finish_time: str
    size: int


SCHEMA_EXISTS_QUERY = "SELECT COUNT(*) FROM pg_namespace WHERE nspname = %s"


class MetricsDBManager(BaseDBManager):
    """
    Manages the destination schema and inserts of backup metrics.
    """

    def __init__(self, dbname: str, schema_name: str, table_name: str,
                 connect_timeout: int = 10, connection_factory: Optional[ConnectionFactory] = None):
        """
        Initializes the MetricsDBManager.

        :param dbname: The name of the PostgreSQL database holding the metrics.
        :param schema_name: The schema the metrics table lives in.
        :param table_name: The name of the metrics table.
        :param connect_timeout: Seconds to wait for a connection before failing.
        :param connection_factory: An optional callable returning a new connection.
        """
        super().__init__(dbname, connect_timeout, connection_factory)
        self.schema_name = schema_name
        self.table_name = table_name

        self.create_schema_sql = sql.SQL(
            "CREATE SCHEMA {schema} CREATE TABLE {table} ("
            " id serial primary key,"
            " op text,"
            " subject text,"
            " start_time timestamp,"
            " finish_time timestamp,"
            " size int)"
        ).format(schema=sql.Identifier(schema_name), table=sql.Identifier(table_name))

        self.insert_sql = sql.SQL(
            "INSERT INTO {}.{} (op, subject, start_time, finish_time, size)"
            " VALUES (%s, %s, %s, %s, %s)"
        ).format(sql.Identifier(schema_name), sql.Identifier(table_name))

    def ensure_schema(self) -> None:
        """
        Ensures the metrics schema and table exist, creating both if the schema is missing.

        The existence check and the creation run in one transaction. Table
        presence is assumed once the schema exists.

        :raises FatalWorkerError: If the existence query has an unexpected shape or any statement fails.
        """
        try:
            with self.transaction() as conn:
                rows = conn.execute(SCHEMA_EXISTS_QUERY, (self.schema_name,)).fetchall()
                if len(rows) != 1:
                    raise FatalWorkerError(
                        f"Schema existence check returned {len(rows)} rows, expected exactly one."
                    )
                count = rows[0][0]
                if count is None:
                    raise FatalWorkerError("Schema existence check returned a null count.")

                if count == 0:
                    log.info(f"Creating schema '{self.schema_name}' with table '{self.table_name}'.")
                    conn.execute(self.create_schema_sql)
                else:
                    log.debug(f"Schema '{self.schema_name}' already exists.")
        except psycopg.Error as e:
            log.critical(f"Could not initialize the metrics schema: {e}", exc_info=True)
            raise FatalWorkerError(f"Failed to create schema '{self.schema_name}'.") from e

    def insert_metric(self, conn: psycopg.Connection, record: MetricRecord) -> None:
        """
        Inserts a single metric record within the caller's open transaction.

        :param conn: The connection holding the current unit of work.
        :param record: The parsed metric to insert.
        """
        try:
            conn.execute(
                self.insert_sql,
                (record.op, record.subject, record.start_time, record.finish_time, record.size)
            )
        except psycopg.Error as e:
            log.error(f"Failed to insert metric record {record}: {e}")
            raise
