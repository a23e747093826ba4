"""Unit tests for the Workbench facade using in-memory collaborators"""
import asyncio

import pytest

from query_workbench.components.formatter import SqlparseFormatter
from query_workbench.components.models import ExecutionState, IndexSuggestion, PlanRow, QueryResult
from query_workbench.components.plan_analyzer import build_index_ddl
from query_workbench.components.workbench import Workbench


@pytest.fixture
def workbench(execution, schema, test_settings):
    return Workbench(execution, schema, formatter=SqlparseFormatter(), config=test_settings)


class TestExecution:
    """Test executing tab buffers"""

    def test_success_records_result(self, workbench, execution):
        tab_id = workbench.create_tab("c1", "shop", "SELECT 1")
        outcome = asyncio.run(workbench.execute(tab_id))

        assert outcome.success and outcome.applied
        tab = workbench.registry.get(tab_id)
        assert tab.execution_state == ExecutionState.IDLE
        assert tab.result is execution.result
        assert execution.executed == [("c1", "SELECT 1", "shop")]

    def test_failure_marks_tab_failed(self, workbench, execution):
        execution.error = "(1064, 'You have an error in your SQL syntax')"
        tab_id = workbench.create_tab("c1", "shop", "SELEC 1")
        outcome = asyncio.run(workbench.execute(tab_id))

        assert outcome.success is False
        assert outcome.error_category == "syntax_error"
        tab = workbench.registry.get(tab_id)
        assert tab.execution_state == ExecutionState.FAILED
        assert tab.last_error == execution.error

    def test_empty_buffer_is_noop(self, workbench, execution):
        tab_id = workbench.create_tab("c1", "shop", "   ")
        outcome = asyncio.run(workbench.execute(tab_id))
        assert outcome.success is False and outcome.applied is False
        assert execution.executed == []
        assert workbench.registry.get(tab_id).execution_state == ExecutionState.IDLE

    def test_unknown_tab_is_noop(self, workbench, execution):
        outcome = asyncio.run(workbench.execute("missing"))
        assert outcome.applied is False
        assert execution.executed == []

    def test_unbound_tab_fails_without_calling_collaborator(self, workbench, execution):
        tab_id = workbench.create_tab(content="SELECT 1")
        outcome = asyncio.run(workbench.execute(tab_id))
        assert outcome.error_category == "unbound"
        assert execution.executed == []
        assert workbench.registry.get(tab_id).execution_state == ExecutionState.FAILED

    def test_close_while_executing_drops_result(self, workbench, execution):
        async def scenario():
            execution.gate = asyncio.Event()
            tab_id = workbench.create_tab("c1", "shop", "SELECT 1")
            other = workbench.create_tab("c1", "shop")
            task = asyncio.ensure_future(workbench.execute(tab_id))
            await asyncio.sleep(0)
            workbench.close_tab(tab_id)
            execution.gate.set()
            return other, await task

        other, outcome = asyncio.run(scenario())
        assert outcome.success is True
        assert outcome.applied is False
        assert len(workbench.registry) == 1
        assert workbench.registry.get(other).result is None

    def test_second_execute_while_in_flight_is_noop(self, workbench, execution):
        async def scenario():
            execution.gate = asyncio.Event()
            tab_id = workbench.create_tab("c1", "shop", "SELECT 1")
            first = asyncio.ensure_future(workbench.execute(tab_id))
            await asyncio.sleep(0)
            second = await workbench.execute(tab_id)
            execution.gate.set()
            return second, await first

        second, first = asyncio.run(scenario())
        assert second.applied is False
        assert first.applied is True
        assert len(execution.executed) == 1

    def test_edit_during_execution_keeps_new_text(self, workbench, execution):
        async def scenario():
            execution.gate = asyncio.Event()
            tab_id = workbench.create_tab("c1", "shop", "SELECT 1")
            task = asyncio.ensure_future(workbench.execute(tab_id))
            await asyncio.sleep(0)
            workbench.update_content(tab_id, "SELECT 2")
            execution.gate.set()
            await task
            return tab_id

        tab_id = asyncio.run(scenario())
        tab = workbench.registry.get(tab_id)
        assert tab.content == "SELECT 2"
        assert tab.result is execution.result
        assert execution.executed[0][1] == "SELECT 1"

    def test_driver_exception_fails_tab_and_allows_retry(self, workbench, execution, monkeypatch):
        async def format_error(connection_ref, sql, database=None):
            raise TypeError("not enough arguments for format string")

        tab_id = workbench.create_tab("c1", "shop", "SELECT * FROM t WHERE name LIKE 'a%'")
        monkeypatch.setattr(execution, "execute", format_error)
        outcome = asyncio.run(workbench.execute(tab_id))

        assert outcome.success is False and outcome.applied is True
        assert outcome.error == "Unexpected error: not enough arguments for format string"
        tab = workbench.registry.get(tab_id)
        assert tab.execution_state == ExecutionState.FAILED

        monkeypatch.undo()
        retry = asyncio.run(workbench.execute(tab_id))
        assert retry.success and retry.applied
        assert tab.execution_state == ExecutionState.IDLE

    def test_driver_exception_during_explain_fails_tab(self, workbench, execution, monkeypatch):
        async def value_error(connection_ref, sql, database=None):
            raise ValueError("unsupported format character")

        monkeypatch.setattr(execution, "explain", value_error)
        tab_id = workbench.create_tab("c1", "shop", "SELECT DATE_FORMAT(d, '%Y') FROM t")
        outcome = asyncio.run(workbench.explain_tab(tab_id))

        assert outcome.success is False
        assert outcome.error.startswith("Unexpected error: ")
        assert workbench.registry.get(tab_id).execution_state == ExecutionState.FAILED

    def test_failure_keeps_previous_result(self, workbench, execution):
        tab_id = workbench.create_tab("c1", "shop", "SELECT 1")
        asyncio.run(workbench.execute(tab_id))
        execution.error = "no such table: nope"
        asyncio.run(workbench.execute(tab_id))
        tab = workbench.registry.get(tab_id)
        assert tab.execution_state == ExecutionState.FAILED
        assert tab.result is execution.result


class TestExplainTab:
    def test_plan_becomes_result(self, workbench, execution):
        execution.plan = [PlanRow(id=1, table="users", access_type="ALL", rows_estimate=10)]
        tab_id = workbench.create_tab("c1", "shop", "SELECT * FROM users WHERE users.email = 'x'")
        outcome = asyncio.run(workbench.explain_tab(tab_id))

        assert outcome.success
        assert outcome.analysis.optimization_level == "needs_optimization"
        tab = workbench.registry.get(tab_id)
        assert tab.result.row_count == 1
        assert tab.result.rows[0]["type"] == "ALL"
        assert tab.result.sql.startswith("EXPLAIN ")


class TestFormatTab:
    def test_formats_buffer(self, workbench):
        tab_id = workbench.create_tab("c1", "shop", "select a from t")
        assert workbench.format_tab(tab_id) is True
        assert workbench.registry.get(tab_id).content == "SELECT a\nFROM t"

    def test_formatter_failure_leaves_buffer(self, execution, schema, test_settings, failing_formatter):
        workbench = Workbench(execution, schema, formatter=failing_formatter, config=test_settings)
        tab_id = workbench.create_tab("c1", "shop", "select a from t")
        assert workbench.format_tab(tab_id) is False
        assert workbench.registry.get(tab_id).content == "select a from t"


class TestCompletion:
    def test_warm_then_complete(self, workbench):
        tab_id = workbench.create_tab("c1", "shop", "SELECT na")
        outcomes = asyncio.run(workbench.warm_completion("c1", "shop"))
        assert all(o.success for o in outcomes)
        assert len(outcomes) == 3

        result = workbench.complete(tab_id, 0, 9)
        assert result.word == "na"
        assert [c.label for c in result.candidates] == ["shop", "users", "id", "name"]

    def test_complete_unknown_tab(self, workbench):
        assert workbench.complete("missing", 0, 0).candidates == ()

    def test_slow_column_load_times_out(self, workbench, schema):
        schema.delay = 0.2
        outcomes = asyncio.run(workbench.warm_completion("c1", "shop"))
        columns = outcomes[-1]
        assert columns.success is False
        assert columns.error == "load columns timeout"
        assert [t.name for t in workbench.cache.get_tables("c1", "shop")] == ["users"]

    def test_warm_uses_cache_when_fresh(self, workbench, schema):
        asyncio.run(workbench.warm_completion("c1", "shop"))
        calls = schema.calls
        asyncio.run(workbench.warm_completion("c1", "shop"))
        assert schema.calls == calls


class TestIndexAdvice:
    """Test analyze and apply through the facade"""

    def _plan(self):
        return [PlanRow(id=1, table="orders", access_type="ALL", ref="const", rows_estimate=900)]

    def test_analyze_loads_suggestions(self, workbench, execution):
        execution.plan = self._plan()
        outcome = asyncio.run(workbench.analyze("c1", "SELECT * FROM orders WHERE orders.status = 1", "shop"))
        assert outcome.success
        assert [s.columns for s in workbench.advisor.suggestions] == [("status",)]
        assert workbench.advisor.connection_ref == "c1"

    def test_analyze_failure_clears_previous(self, workbench, execution):
        execution.plan = self._plan()
        asyncio.run(workbench.analyze("c1", "SELECT * FROM orders WHERE orders.status = 1", "shop"))
        execution.error = "(1064, 'You have an error in your SQL syntax')"
        outcome = asyncio.run(workbench.analyze("c1", "SELEC", "shop"))

        assert outcome.success is False
        assert outcome.error_category == "syntax_error"
        assert workbench.advisor.analysis is None
        assert workbench.advisor.suggestions == []
        assert workbench.advisor.last_error == execution.error

    def test_analyze_empty_sql(self, workbench, execution):
        outcome = asyncio.run(workbench.analyze("c1", "  "))
        assert outcome.success is False
        assert execution.explained == []

    def test_apply_removes_suggestion(self, workbench, execution):
        execution.plan = self._plan()
        asyncio.run(workbench.analyze("c1", "SELECT * FROM orders WHERE orders.status = 1", "shop"))
        suggestion = workbench.advisor.suggestions[0]
        outcome = asyncio.run(workbench.apply_suggestion(suggestion))

        assert outcome.success
        assert workbench.advisor.suggestions == []
        assert execution.executed[-1] == ("c1", suggestion.ddl, "shop")

    def test_apply_failure_keeps_suggestion(self, workbench, execution):
        execution.plan = self._plan()
        asyncio.run(workbench.analyze("c1", "SELECT * FROM orders WHERE orders.status = 1", "shop"))
        suggestion = workbench.advisor.suggestions[0]
        execution.error = "(1142, 'INDEX command denied to user')"
        outcome = asyncio.run(workbench.apply_suggestion(suggestion))

        assert outcome.success is False
        assert outcome.error_category == "permission_denied"
        assert workbench.advisor.suggestions == [suggestion]
        assert workbench.advisor.last_error == execution.error

    def test_analyze_driver_exception_reported(self, workbench, execution, monkeypatch):
        async def type_error(connection_ref, sql, database=None):
            raise TypeError("not enough arguments for format string")

        monkeypatch.setattr(execution, "explain", type_error)
        outcome = asyncio.run(workbench.analyze("c1", "SELECT * FROM t WHERE a LIKE 'x%'", "shop"))
        assert outcome.success is False
        assert outcome.error == "Unexpected error: not enough arguments for format string"
        assert workbench.advisor.last_error == outcome.error

    def test_apply_without_analysis(self, workbench, execution):
        suggestion = IndexSuggestion(table="t", columns=("a",), reason="r", ddl=build_index_ddl("t", ["a"]))
        outcome = asyncio.run(workbench.apply_suggestion(suggestion))
        assert outcome.success is False
        assert execution.executed == []


class TestSearch:
    def _warm(self, workbench):
        asyncio.run(workbench.warm_completion("c1", "shop"))

    def test_search_objects(self, workbench):
        self._warm(workbench)
        results = workbench.search_objects("c1", "ID")
        assert [(h.name, h.table) for h in results.hits] == [("id", "users")]

    def test_schedule_search_delivers_last_term(self, execution, schema, test_settings):
        delivered = []
        workbench = Workbench(execution, schema, config=test_settings, on_search_results=delivered.append)
        self._warm(workbench)

        async def scenario():
            workbench.schedule_search("c1", "u")
            workbench.schedule_search("c1", "us")
            workbench.schedule_search("c1", "name")
            await asyncio.sleep(0.1)

        asyncio.run(scenario())
        assert [r.term for r in delivered] == ["name"]
        assert workbench.search_results is delivered[0]

    def test_close_cancels_pending_search(self, workbench):
        self._warm(workbench)

        async def scenario():
            workbench.schedule_search("c1", "users")
            workbench.close()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert workbench.search_results is None
        assert workbench.cache.get_tables("c1", "shop") == ()


def test_result_identity_preserved_across_tabs(workbench, execution):
    first = workbench.create_tab("c1", "shop", "SELECT 1")
    second = workbench.create_tab("c1", "shop", "SELECT 2")
    asyncio.run(workbench.execute(first))
    execution.result = QueryResult(sql="SELECT 2")
    asyncio.run(workbench.execute(second))
    assert workbench.registry.get(first).result.sql == "SELECT 1"
    assert workbench.registry.get(second).result.sql == "SELECT 2"
