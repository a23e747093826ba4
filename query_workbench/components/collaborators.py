"""Boundary contracts for the execution, schema and formatting collaborators.

The workbench never talks to a database directly; it goes through objects
implementing these protocols.  Every failure crossing the boundary is a
``CollaboratorError`` carrying a human-readable message (syntax errors,
connectivity loss and permission denials are not told apart here).
"""
from typing import Optional, Protocol, Sequence

from query_workbench.components.models import (
    ColumnEntry,
    DatabaseEntry,
    PlanRow,
    QueryResult,
    TableEntry,
)


class CollaboratorError(Exception):
    """A collaborator call was rejected"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ExecutionCollaborator(Protocol):
    async def execute(
        self, connection_ref: str, sql: str, database: Optional[str] = None
    ) -> QueryResult:
        ...

    async def explain(
        self, connection_ref: str, sql: str, database: Optional[str] = None
    ) -> Sequence[PlanRow]:
        ...


class SchemaCollaborator(Protocol):
    async def list_databases(self, connection_ref: str) -> Sequence[DatabaseEntry]:
        ...

    async def list_tables(self, connection_ref: str, database: str) -> Sequence[TableEntry]:
        ...

    async def list_columns(
        self, connection_ref: str, database: str, table: str
    ) -> Sequence[ColumnEntry]:
        ...


class SqlFormatter(Protocol):
    def format(self, sql: str) -> str:
        ...
