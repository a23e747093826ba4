"""Read-through cache of schema metadata scoped by connection and database.

Reads are synchronous and never touch the network: an unfetched scope is
simply empty.  Refreshes go to the schema collaborator and replace the whole
scope when they succeed, so a table's column list is never a mix of an old
and a new snapshot.  A failed refresh keeps the previous snapshot and is
reported back through a ``RefreshOutcome``.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from query_workbench.components.collaborators import CollaboratorError, SchemaCollaborator
from query_workbench.components.models import (
    CandidateKind,
    ColumnEntry,
    DatabaseEntry,
    RefreshOutcome,
    SearchHit,
    TableEntry,
)

logger = logging.getLogger(__name__)

Scope = Tuple[str, ...]


class MetadataCache:
    """Memoized databases, tables and columns per connection."""

    def __init__(
        self,
        schema: SchemaCollaborator,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._schema = schema
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._databases: Dict[str, Tuple[DatabaseEntry, ...]] = {}
        self._tables: Dict[Tuple[str, str], Tuple[TableEntry, ...]] = {}
        self._columns: Dict[Tuple[str, str, str], Tuple[ColumnEntry, ...]] = {}
        self._fetched_at: Dict[Scope, float] = {}

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_databases(self, connection_ref: str) -> Tuple[DatabaseEntry, ...]:
        return self._databases.get(connection_ref, ())

    def get_tables(self, connection_ref: str, database_ref: str) -> Tuple[TableEntry, ...]:
        return self._tables.get((connection_ref, database_ref), ())

    def get_columns(
        self, connection_ref: str, database_ref: str, table: str
    ) -> Tuple[ColumnEntry, ...]:
        return self._columns.get((connection_ref, database_ref, table), ())

    def is_fresh(self, scope: Scope) -> bool:
        fetched_at = self._fetched_at.get(scope)
        return fetched_at is not None and self._clock() - fetched_at < self._ttl_seconds

    # ------------------------------------------------------------------
    # Refresh (always hits the collaborator)
    # ------------------------------------------------------------------

    async def refresh_databases(self, connection_ref: str) -> RefreshOutcome:
        scope = ("databases", connection_ref)
        try:
            entries = tuple(await self._schema.list_databases(connection_ref))
        except CollaboratorError as e:
            return self._failed(scope, e)
        self._databases[connection_ref] = entries
        return self._stored(scope, entries)

    async def refresh_tables(self, connection_ref: str, database_ref: str) -> RefreshOutcome:
        scope = ("tables", connection_ref, database_ref)
        try:
            entries = tuple(await self._schema.list_tables(connection_ref, database_ref))
        except CollaboratorError as e:
            return self._failed(scope, e)
        self._tables[(connection_ref, database_ref)] = entries
        return self._stored(scope, entries)

    async def refresh_columns(
        self, connection_ref: str, database_ref: str, table: str
    ) -> RefreshOutcome:
        scope = ("columns", connection_ref, database_ref, table)
        try:
            entries = tuple(await self._schema.list_columns(connection_ref, database_ref, table))
        except CollaboratorError as e:
            return self._failed(scope, e)
        self._columns[(connection_ref, database_ref, table)] = entries
        return self._stored(scope, entries)

    # ------------------------------------------------------------------
    # Ensure (refresh only when stale)
    # ------------------------------------------------------------------

    async def ensure_databases(self, connection_ref: str, force: bool = False) -> RefreshOutcome:
        scope = ("databases", connection_ref)
        if not force and self.is_fresh(scope):
            return RefreshOutcome(scope=scope, success=True, count=len(self.get_databases(connection_ref)))
        return await self.refresh_databases(connection_ref)

    async def ensure_tables(
        self, connection_ref: str, database_ref: str, force: bool = False
    ) -> RefreshOutcome:
        scope = ("tables", connection_ref, database_ref)
        if not force and self.is_fresh(scope):
            return RefreshOutcome(
                scope=scope, success=True, count=len(self.get_tables(connection_ref, database_ref))
            )
        return await self.refresh_tables(connection_ref, database_ref)

    async def ensure_columns(
        self, connection_ref: str, database_ref: str, table: str, force: bool = False
    ) -> RefreshOutcome:
        scope = ("columns", connection_ref, database_ref, table)
        if not force and self.is_fresh(scope):
            return RefreshOutcome(
                scope=scope,
                success=True,
                count=len(self.get_columns(connection_ref, database_ref, table)),
            )
        return await self.refresh_columns(connection_ref, database_ref, table)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear(self, connection_ref: Optional[str] = None) -> None:
        """Forget one connection's metadata, or everything."""
        if connection_ref is None:
            self._databases.clear()
            self._tables.clear()
            self._columns.clear()
            self._fetched_at.clear()
            return
        self._databases.pop(connection_ref, None)
        for key in [k for k in self._tables if k[0] == connection_ref]:
            del self._tables[key]
        for key in [k for k in self._columns if k[0] == connection_ref]:
            del self._columns[key]
        for scope in [s for s in self._fetched_at if s[1] == connection_ref]:
            del self._fetched_at[scope]

    def search(self, connection_ref: str, term: str) -> List[SearchHit]:
        """Case-insensitive substring search over cached table and column names."""
        needle = term.strip().lower()
        if not needle:
            return []
        hits: List[SearchHit] = []
        for (conn, database), tables in self._tables.items():
            if conn != connection_ref:
                continue
            for table in tables:
                if needle in table.name.lower():
                    hits.append(SearchHit(kind=CandidateKind.TABLE, name=table.name, database=database))
                for column in self.get_columns(conn, database, table.name):
                    if needle in column.name.lower():
                        hits.append(
                            SearchHit(
                                kind=CandidateKind.COLUMN,
                                name=column.name,
                                database=database,
                                table=table.name,
                            )
                        )
        return hits

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _stored(self, scope: Scope, entries: Sequence) -> RefreshOutcome:
        self._fetched_at[scope] = self._clock()
        logger.debug("Metadata refreshed %s: %d entries", scope, len(entries))
        return RefreshOutcome(scope=scope, success=True, count=len(entries))

    @staticmethod
    def _failed(scope: Scope, error: CollaboratorError) -> RefreshOutcome:
        logger.warning("Metadata refresh failed for %s: %s", scope, error.message)
        return RefreshOutcome(scope=scope, success=False, error=error.message)
