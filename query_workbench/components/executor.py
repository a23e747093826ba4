"""Query execution and schema inspection over SQLAlchemy engines"""
import asyncio
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.exc import SQLAlchemyError

from query_workbench.components.collaborators import CollaboratorError
from query_workbench.components.models import (
    ColumnEntry,
    DatabaseEntry,
    PlanRow,
    QueryResult,
    ResultColumn,
    TableEntry,
)

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Manages one database engine and the statements run against it"""

    def __init__(self, database_url: str, read_only: bool = False):
        self.database_url = database_url
        self._read_only = read_only
        self.engine = create_engine(database_url)

        if read_only and database_url.startswith("sqlite"):

            @event.listens_for(self.engine, "connect")
            def _set_sqlite_read_only(dbapi_conn, connection_record):
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA query_only = ON")
                cursor.close()

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @property
    def default_database(self) -> Optional[str]:
        """Database (schema) statements run against when none is named"""
        if self.dialect == "sqlite":
            return "main"
        return self.engine.url.database

    @contextmanager
    def get_connection(self, database: Optional[str] = None):
        """Context manager for database connections, switched to ``database`` on MySQL.

        Statements are sent without a parameter tuple, so ``format``-style
        drivers leave ``%`` in literals such as ``LIKE 'a%'`` untouched.
        """
        connection = self.engine.connect().execution_options(no_parameters=True)
        try:
            if database and self.dialect == "mysql":
                connection.exec_driver_sql(f"USE `{database}`")
            yield connection
        finally:
            connection.close()

    def execute_query(
        self, query: str, database: Optional[str] = None, max_rows: int = 1000
    ) -> QueryResult:
        """Execute one statement, enforcing the row limit on result sets"""
        start = time.perf_counter()
        with self.get_connection(database) as conn:
            result = conn.exec_driver_sql(query)
            if result.returns_rows:
                columns = list(result.keys())
                rows = result.fetchmany(max_rows + 1)
                # Enforce max_rows limit
                truncated = len(rows) > max_rows
                if truncated:
                    rows = rows[:max_rows]
                return QueryResult(
                    columns=tuple(ResultColumn(name=c) for c in columns),
                    rows=tuple(dict(zip(columns, row)) for row in rows),
                    row_count=len(rows),
                    execution_time_ms=_elapsed_ms(start),
                    sql=query,
                    is_select=True,
                    truncated=truncated,
                )
            conn.commit()
            return QueryResult(
                affected_rows=max(result.rowcount, 0),
                execution_time_ms=_elapsed_ms(start),
                sql=query,
                is_select=False,
            )

    def explain(self, query: str, database: Optional[str] = None) -> List[PlanRow]:
        """Run MySQL's tabular EXPLAIN for ``query``"""
        if self.dialect != "mysql":
            raise CollaboratorError(f"EXPLAIN analysis is not supported for dialect '{self.dialect}'")
        with self.get_connection(database) as conn:
            result = conn.exec_driver_sql(f"EXPLAIN {query}")
            return [_plan_row(dict(row._mapping)) for row in result]

    def list_databases(self) -> List[DatabaseEntry]:
        inspector = inspect(self.engine)
        return [DatabaseEntry(name=name) for name in inspector.get_schema_names()]

    def list_tables(self, database: str) -> List[TableEntry]:
        inspector = inspect(self.engine)
        tables = [TableEntry(name=n, kind="TABLE") for n in inspector.get_table_names(schema=database)]
        tables.extend(TableEntry(name=n, kind="VIEW") for n in inspector.get_view_names(schema=database))
        return tables

    def list_columns(self, database: str, table: str) -> List[ColumnEntry]:
        inspector = inspect(self.engine)
        return [
            ColumnEntry(name=column["name"], declared_type=str(column["type"]))
            for column in inspector.get_columns(table, schema=database)
        ]


class SQLAlchemyCollaborator:
    """Execution and schema collaborator over a set of named connections.

    Blocking driver calls run in a worker thread so the event loop that owns
    the workbench state keeps processing user actions meanwhile.
    """

    def __init__(self, connections: Dict[str, DatabaseConnection], max_rows: int = 1000):
        self.connections = dict(connections)
        self.max_rows = max_rows

    @classmethod
    def from_urls(
        cls, urls: Dict[str, str], read_only: bool = False, max_rows: int = 1000
    ) -> "SQLAlchemyCollaborator":
        connections = {ref: DatabaseConnection(url, read_only=read_only) for ref, url in urls.items()}
        return cls(connections, max_rows=max_rows)

    async def execute(
        self, connection_ref: str, sql: str, database: Optional[str] = None
    ) -> QueryResult:
        conn = self._connection(connection_ref)
        return await self._call(conn.execute_query, sql, database, self.max_rows)

    async def explain(
        self, connection_ref: str, sql: str, database: Optional[str] = None
    ) -> List[PlanRow]:
        conn = self._connection(connection_ref)
        return await self._call(conn.explain, sql, database)

    async def list_databases(self, connection_ref: str) -> List[DatabaseEntry]:
        return await self._call(self._connection(connection_ref).list_databases)

    async def list_tables(self, connection_ref: str, database: str) -> List[TableEntry]:
        return await self._call(self._connection(connection_ref).list_tables, database)

    async def list_columns(
        self, connection_ref: str, database: str, table: str
    ) -> List[ColumnEntry]:
        return await self._call(self._connection(connection_ref).list_columns, database, table)

    def dispose(self) -> None:
        for conn in self.connections.values():
            conn.engine.dispose()

    def _connection(self, connection_ref: str) -> DatabaseConnection:
        conn = self.connections.get(connection_ref)
        if conn is None:
            raise CollaboratorError(f"Unknown connection '{connection_ref}'")
        return conn

    @staticmethod
    async def _call(fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.debug("Driver error", exc_info=True)
            raise CollaboratorError(f"Query execution failed: {e}") from e
        except CollaboratorError:
            raise
        except Exception as e:
            logger.exception("Unexpected driver error")
            raise CollaboratorError(f"Unexpected error: {e}") from e


def _plan_row(raw: Dict[str, Any]) -> PlanRow:
    rows = raw.get("rows")
    filtered = raw.get("filtered")
    return PlanRow(
        id=raw.get("id"),
        select_type=raw.get("select_type"),
        table=raw.get("table"),
        partitions=raw.get("partitions"),
        access_type=raw.get("type"),
        possible_keys=raw.get("possible_keys"),
        used_key=raw.get("key"),
        key_length=raw.get("key_len"),
        ref=raw.get("ref"),
        rows_estimate=int(rows) if rows is not None else None,
        filtered_percent=float(filtered) if filtered is not None else None,
        extra=raw.get("Extra"),
    )


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
