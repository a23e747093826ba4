"""Workbench facade: the operations a UI or CLI invokes.

The facade is the only place that awaits the execution collaborator.  Every
response is applied back to the registry by tab id *after* the await, so
edits and closes that happened in the meantime are already reflected; a
response for a tab that no longer exists is dropped without error.
Collaborator failures never escape as exceptions, they come back as outcome
objects carrying the message.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from query_workbench.components.collaborators import (
    CollaboratorError,
    ExecutionCollaborator,
    SchemaCollaborator,
    SqlFormatter,
)
from query_workbench.components.completion import CompletionResolver
from query_workbench.components.debounce import Debouncer
from query_workbench.components.error_classifier import classify_collaborator_error
from query_workbench.components.metadata_cache import MetadataCache
from query_workbench.components.models import (
    AnalysisOutcome,
    ApplyOutcome,
    CompletionResult,
    ExecutionOutcome,
    IndexSuggestion,
    PlanRow,
    QueryResult,
    RefreshOutcome,
    ResultColumn,
    SearchResults,
)
from query_workbench.components.plan_analyzer import IndexAdvisor, PlanAnalyzer
from query_workbench.components.session_registry import SessionRegistry
from query_workbench.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

EXPLAIN_COLUMNS = (
    "id", "select_type", "table", "partitions", "type", "possible_keys",
    "key", "key_len", "ref", "rows", "filtered", "Extra",
)


class Workbench:
    """Orchestrates tabs, metadata, completion and plan analysis"""

    def __init__(
        self,
        execution: ExecutionCollaborator,
        schema: SchemaCollaborator,
        formatter: Optional[SqlFormatter] = None,
        registry: Optional[SessionRegistry] = None,
        cache: Optional[MetadataCache] = None,
        config: Optional[Settings] = None,
        on_search_results: Optional[Callable[[SearchResults], None]] = None,
    ):
        self.config = config or default_settings
        self.execution = execution
        self.formatter = formatter
        self.registry = registry if registry is not None else SessionRegistry()
        self.cache = cache if cache is not None else MetadataCache(
            schema, ttl_seconds=self.config.metadata_cache_ttl_seconds
        )
        self.resolver = CompletionResolver(include_keywords=self.config.completion_include_keywords)
        self.analyzer = PlanAnalyzer()
        self.advisor = IndexAdvisor()

        self.search_results: Optional[SearchResults] = None
        self._on_search_results = on_search_results
        self._search_debouncer = Debouncer(
            self.config.search_debounce_ms / 1000.0,
            action=self._run_search,
            on_result=self._deliver_search,
        )

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    def create_tab(
        self,
        connection_ref: Optional[str] = None,
        database_ref: Optional[str] = None,
        content: str = "",
    ) -> str:
        return self.registry.create_tab(connection_ref, database_ref, content)

    def close_tab(self, tab_id: str) -> bool:
        return self.registry.close_tab(tab_id)

    def set_active(self, tab_id: str) -> bool:
        return self.registry.set_active(tab_id)

    def update_content(self, tab_id: str, text: str) -> bool:
        return self.registry.update_content(tab_id, text)

    def rename_tab(self, tab_id: str, title: str) -> bool:
        return self.registry.rename_tab(tab_id, title)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, tab_id: str) -> ExecutionOutcome:
        """Run the tab's buffer and record the result or error on the tab"""
        request = self._begin(tab_id)
        if isinstance(request, ExecutionOutcome):
            return request
        connection_ref, sql, database_ref = request

        try:
            result = await self.execution.execute(connection_ref, sql, database_ref)
        except Exception as exc:
            return self._fail(tab_id, _as_collaborator_error(exc))

        applied = self.registry.complete_execution(tab_id, result)
        if not applied:
            logger.debug("Discarded execution result for closed tab %s", tab_id)
        return ExecutionOutcome(tab_id=tab_id, success=True, applied=applied, result=result)

    async def explain_tab(self, tab_id: str) -> ExecutionOutcome:
        """EXPLAIN the tab's buffer; the plan becomes the tab's result"""
        request = self._begin(tab_id)
        if isinstance(request, ExecutionOutcome):
            return request
        connection_ref, sql, database_ref = request

        try:
            rows = await self.execution.explain(connection_ref, sql, database_ref)
        except Exception as exc:
            return self._fail(tab_id, _as_collaborator_error(exc))

        analysis = self.analyzer.analyze(rows, sql)
        result = _plan_as_result(analysis.rows, sql)
        applied = self.registry.complete_execution(tab_id, result)
        if not applied:
            logger.debug("Discarded plan for closed tab %s", tab_id)
        return ExecutionOutcome(
            tab_id=tab_id, success=True, applied=applied, result=result, analysis=analysis
        )

    def _begin(self, tab_id: str):
        """Move the tab to EXECUTING and snapshot what to run.

        Returns an ``ExecutionOutcome`` instead when there is nothing to run.
        """
        tab = self.registry.get(tab_id)
        if tab is None or not tab.content.strip():
            return ExecutionOutcome(tab_id=tab_id, success=False, applied=False)
        if not self.registry.begin_execution(tab_id):
            # Already executing: a second concurrent run is not started.
            return ExecutionOutcome(tab_id=tab_id, success=False, applied=False)
        if not tab.connection_ref:
            message = "No connection selected for this tab"
            self.registry.fail_execution(tab_id, message)
            return ExecutionOutcome(
                tab_id=tab_id, success=False, applied=True, error=message, error_category="unbound"
            )
        return tab.connection_ref, tab.content, tab.database_ref

    def _fail(self, tab_id: str, error: CollaboratorError) -> ExecutionOutcome:
        category = classify_collaborator_error(error)
        logger.warning("Execution failed for tab %s (%s): %s", tab_id, category, error.message)
        applied = self.registry.fail_execution(tab_id, error.message)
        return ExecutionOutcome(
            tab_id=tab_id,
            success=False,
            applied=applied,
            error=error.message,
            error_category=category,
        )

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def format_tab(self, tab_id: str) -> bool:
        """Pretty-print the tab's buffer; on any formatter failure the buffer is left as is"""
        tab = self.registry.get(tab_id)
        if tab is None or self.formatter is None or not tab.content.strip():
            return False
        try:
            formatted = self.formatter.format(tab.content)
        except Exception:
            logger.debug("Formatter failed for tab %s", tab_id, exc_info=True)
            return False
        return self.registry.update_content(tab_id, formatted)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def complete(self, tab_id: str, line: int, column: int) -> CompletionResult:
        tab = self.registry.get(tab_id)
        if tab is None:
            return CompletionResult(word="", line=0, start_column=0, end_column=0)
        return self.resolver.resolve(
            tab.content, line, column, self.cache, tab.connection_ref, tab.database_ref
        )

    async def warm_completion(self, connection_ref: str, database_ref: str) -> List[RefreshOutcome]:
        """Fill the cache for a tab's connection and database.

        Columns are fetched for the first ``completion_preload_limit`` tables,
        a bounded number at a time; one table timing out or failing does not
        stop the rest.
        """
        outcomes = [
            await self.cache.ensure_databases(connection_ref),
            await self.cache.ensure_tables(connection_ref, database_ref),
        ]
        targets = self.cache.get_tables(connection_ref, database_ref)[: self.config.completion_preload_limit]
        semaphore = asyncio.Semaphore(max(1, self.config.completion_preload_concurrency))
        timeout = self.config.completion_preload_timeout_seconds

        async def load(table_name: str) -> RefreshOutcome:
            async with semaphore:
                try:
                    return await asyncio.wait_for(
                        self.cache.ensure_columns(connection_ref, database_ref, table_name),
                        timeout,
                    )
                except asyncio.TimeoutError:
                    logger.warning("Column preload timed out for %s.%s", database_ref, table_name)
                    return RefreshOutcome(
                        scope=("columns", connection_ref, database_ref, table_name),
                        success=False,
                        error="load columns timeout",
                    )

        outcomes.extend(await asyncio.gather(*(load(t.name) for t in targets)))
        return outcomes

    async def refresh_databases(self, connection_ref: str) -> RefreshOutcome:
        return await self.cache.refresh_databases(connection_ref)

    async def refresh_tables(self, connection_ref: str, database_ref: str) -> RefreshOutcome:
        return await self.cache.refresh_tables(connection_ref, database_ref)

    async def refresh_columns(
        self, connection_ref: str, database_ref: str, table: str
    ) -> RefreshOutcome:
        return await self.cache.refresh_columns(connection_ref, database_ref, table)

    # ------------------------------------------------------------------
    # Index advisor
    # ------------------------------------------------------------------

    async def analyze(
        self, connection_ref: str, sql: str, database_ref: Optional[str] = None
    ) -> AnalysisOutcome:
        """EXPLAIN ``sql`` and replace the advisor's working set with the result"""
        if not connection_ref or not sql.strip():
            return AnalysisOutcome(success=False)
        try:
            rows = await self.execution.explain(connection_ref, sql, database_ref)
        except Exception as exc:
            e = _as_collaborator_error(exc)
            category = classify_collaborator_error(e)
            logger.warning("EXPLAIN failed (%s): %s", category, e.message)
            self.advisor.fail(e.message)
            return AnalysisOutcome(success=False, error=e.message, error_category=category)

        analysis = self.analyzer.analyze(rows, sql)
        self.advisor.load(analysis, connection_ref, database_ref)
        return AnalysisOutcome(success=True, analysis=analysis)

    async def apply_suggestion(self, suggestion: IndexSuggestion) -> ApplyOutcome:
        """Create the suggested index on the connection the analysis ran against"""
        if not self.advisor.connection_ref:
            return ApplyOutcome(suggestion=suggestion, success=False, error="No analysis to apply against")
        try:
            await self.execution.execute(
                self.advisor.connection_ref, suggestion.ddl, self.advisor.database_ref
            )
        except Exception as exc:
            e = _as_collaborator_error(exc)
            category = classify_collaborator_error(e)
            logger.warning("Applying index failed (%s): %s", category, e.message)
            self.advisor.last_error = e.message
            return ApplyOutcome(
                suggestion=suggestion, success=False, error=e.message, error_category=category
            )

        self.advisor.discard(suggestion.ddl)
        logger.info("Applied index suggestion: %s", suggestion.ddl)
        return ApplyOutcome(suggestion=suggestion, success=True)

    # ------------------------------------------------------------------
    # Metadata search
    # ------------------------------------------------------------------

    def search_objects(self, connection_ref: str, term: str) -> SearchResults:
        return SearchResults(term=term, hits=self.cache.search(connection_ref, term))

    def schedule_search(self, connection_ref: str, term: str) -> None:
        """Debounced ``search_objects``; only the last term typed is searched"""
        self._search_debouncer.trigger((connection_ref, term))

    def _run_search(self, request) -> SearchResults:
        connection_ref, term = request
        return self.search_objects(connection_ref, term)

    def _deliver_search(self, results: SearchResults) -> None:
        self.search_results = results
        if self._on_search_results is not None:
            self._on_search_results(results)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._search_debouncer.cancel()
        self.cache.clear()
        self.advisor.reset()


def _plan_as_result(rows: Sequence[PlanRow], sql: str) -> QueryResult:
    return QueryResult(
        columns=tuple(ResultColumn(name=c) for c in EXPLAIN_COLUMNS),
        rows=tuple(
            {
                "id": r.id,
                "select_type": r.select_type,
                "table": r.table,
                "partitions": r.partitions,
                "type": r.access_type,
                "possible_keys": r.possible_keys,
                "key": r.used_key,
                "key_len": r.key_length,
                "ref": r.ref,
                "rows": r.rows_estimate,
                "filtered": r.filtered_percent,
                "Extra": r.extra,
            }
            for r in rows
        ),
        row_count=len(rows),
        sql=f"EXPLAIN {sql}",
        is_select=True,
    )


def _as_collaborator_error(exc: Exception) -> CollaboratorError:
    """Collaborator calls must fail with ``CollaboratorError``; anything else is wrapped"""
    if isinstance(exc, CollaboratorError):
        return exc
    logger.error("Collaborator raised %s instead of CollaboratorError", type(exc).__name__, exc_info=exc)
    return CollaboratorError(f"Unexpected error: {exc}")
