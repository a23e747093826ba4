"""Shared fixtures: in-memory stand-ins for the execution and schema collaborators"""
import asyncio

import pytest

from query_workbench.components.collaborators import CollaboratorError
from query_workbench.components.models import ColumnEntry, DatabaseEntry, QueryResult, TableEntry
from query_workbench.config import Settings


class FakeExecution:
    """Execution collaborator returning canned results.

    Set ``error`` to make every call fail, or ``gate`` (an asyncio.Event)
    to hold calls in flight until the test releases them.
    """

    def __init__(self):
        self.result = QueryResult(rows=({"n": 1},), row_count=1, sql="SELECT 1", is_select=True)
        self.plan = []
        self.error = None
        self.gate = None
        self.executed = []
        self.explained = []

    async def execute(self, connection_ref, sql, database=None):
        self.executed.append((connection_ref, sql, database))
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise CollaboratorError(self.error)
        return self.result

    async def explain(self, connection_ref, sql, database=None):
        self.explained.append((connection_ref, sql, database))
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise CollaboratorError(self.error)
        return list(self.plan)


class FakeSchema:
    """Schema collaborator backed by plain dictionaries"""

    def __init__(self):
        self.databases = {"c1": ["shop"]}
        self.tables = {("c1", "shop"): [("users", "TABLE")]}
        self.columns = {("c1", "shop", "users"): [("id", "int"), ("name", "varchar(64)")]}
        self.error = None
        self.delay = 0.0
        self.calls = 0

    async def _maybe_fail(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise CollaboratorError(self.error)

    async def list_databases(self, connection_ref):
        await self._maybe_fail()
        return [DatabaseEntry(name=n) for n in self.databases.get(connection_ref, [])]

    async def list_tables(self, connection_ref, database):
        await self._maybe_fail()
        return [TableEntry(name=n, kind=k) for n, k in self.tables.get((connection_ref, database), [])]

    async def list_columns(self, connection_ref, database, table):
        await self._maybe_fail()
        return [
            ColumnEntry(name=n, declared_type=t)
            for n, t in self.columns.get((connection_ref, database, table), [])
        ]


class FailingFormatter:
    def format(self, sql):
        raise ValueError("cannot format")


@pytest.fixture
def execution():
    return FakeExecution()


@pytest.fixture
def schema():
    return FakeSchema()


@pytest.fixture
def test_settings():
    return Settings(
        search_debounce_ms=10,
        metadata_cache_ttl_seconds=30,
        completion_preload_timeout_seconds=0.05,
    )


@pytest.fixture
def failing_formatter():
    return FailingFormatter()
