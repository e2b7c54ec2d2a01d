"""
Destination schema provisioning.

Runs once, synchronously, while the sink is constructed. Provisioning is
create-if-absent: an existing table is success. Any other failure is
reported to the self-diagnostic channel and the sink is built anyway;
writes will fail until the schema is fixed externally.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import psycopg2
from psycopg2 import errors, sql
from psycopg2.extensions import connection as PgConnection

from pglog_sink import selflog
from pglog_sink.postgres import ConnectionFactory, open_connection

logger = logging.getLogger(__name__)


class SchemaProvisioner(ABC):
    """Ensures the destination storage exists. Must never raise."""

    @abstractmethod
    def provision(self) -> bool:
        """
        Create the destination if it does not exist.

        Returns:
            True if the destination exists afterwards
        """
        pass


class PostgresSchemaProvisioner(SchemaProvisioner):
    """
    Creates the log table and its id sequence.

    Objects, for table_name="Logs":
        "Logs_seq"  sequence backing the id column
        "Logs"      the log table, primary key "pk_Logs"
    """

    def __init__(
        self,
        dsn: str,
        table_name: str = "Logs",
        connection_factory: Optional[ConnectionFactory] = None,
        **connect_kwargs: Any,
    ):
        self.table_name = table_name
        self._connection_factory = connection_factory or (
            lambda: open_connection(dsn, **connect_kwargs)
        )

    @property
    def sequence_name(self) -> str:
        return f"{self.table_name}_seq"

    def statements(self) -> List[sql.Composable]:
        """DDL executed by provision(), in order."""
        table = sql.Identifier(self.table_name)
        sequence = sql.Identifier(self.sequence_name)
        # nextval() takes a regclass literal, quoted like the identifier
        sequence_regclass = sql.Literal('"{}"'.format(self.sequence_name.replace('"', '""')))

        return [
            sql.SQL("CREATE SEQUENCE {} START WITH 1 INCREMENT BY 1").format(sequence),
            sql.SQL(
                "CREATE TABLE {table} ("
                " id BIGINT NOT NULL DEFAULT nextval({seq}),"
                " \"timestamp\" TIMESTAMPTZ NOT NULL,"
                " loglevel VARCHAR(128) NULL,"
                " messagetemplate TEXT NULL,"
                " message TEXT NULL,"
                " exception TEXT NULL,"
                " properties TEXT NULL,"
                " CONSTRAINT {pk} PRIMARY KEY (id)"
                ")"
            ).format(
                table=table,
                seq=sequence_regclass,
                pk=sql.Identifier(f"pk_{self.table_name}"),
            ),
            sql.SQL("ALTER SEQUENCE {} OWNED BY {}.id").format(sequence, table),
        ]

    def provision(self) -> bool:
        conn: Optional[PgConnection] = None
        try:
            conn = self._connection_factory()
            with conn.cursor() as cur:
                for statement in self.statements():
                    cur.execute(statement)
            conn.commit()
            logger.info(f"Created log table {self.table_name}")
            return True
        except (errors.DuplicateTable, errors.DuplicateObject):
            self._rollback(conn)
            logger.debug(f"Log table {self.table_name} already exists")
            return True
        except Exception as e:
            self._rollback(conn)
            selflog.write_line("Unable to provision log table %s: %s", self.table_name, e)
            return False
        finally:
            if conn is not None:
                try:
                    conn.close()
                except psycopg2.Error as e:
                    logger.debug(f"Closing connection failed: {e}")

    def _rollback(self, conn: Optional[PgConnection]) -> None:
        if conn is None:
            return
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.debug(f"Rollback failed: {e}")
