"""EXPLAIN plan analysis and index suggestions.

The advisor is a lexical pass over the statement text, not a SQL parser:
column candidates come from ``<table>.<column>`` occurrences and from the
identifiers following ORDER BY / GROUP BY.  It will miss unqualified
columns and occasionally pick up an alias or keyword; both are accepted in
exchange for staying small and predictable.
"""
import logging
import re
from typing import List, Optional, Sequence

from query_workbench.components.models import (
    IndexSuggestion,
    PlanAnalysis,
    PlanRow,
    PlanWarning,
)

logger = logging.getLogger(__name__)

MAX_INDEX_COLUMNS = 3
_SORT_KEYWORDS = ("order by", "group by")
_STOP_WORDS = {"asc", "desc", "and", "or", "by"}


class PlanAnalyzer:
    """Classifies EXPLAIN rows and proposes CREATE INDEX statements"""

    def __init__(self):
        self.warning_rules = [
            self._check_full_scan,
            self._check_filesort,
            self._check_temporary,
        ]

    def analyze(self, rows: Sequence[PlanRow], sql: str) -> PlanAnalysis:
        """Analyze the plan of ``sql`` and collect warnings and index suggestions"""
        rows = tuple(rows)
        warnings = []
        for row in rows:
            for rule in self.warning_rules:
                warning = rule(row)
                if warning:
                    warnings.append(warning)

        suggestions = self.suggest_indexes(rows, sql)
        return PlanAnalysis(
            rows=rows,
            warnings=tuple(warnings),
            suggestions=tuple(suggestions),
            optimization_level=self._calculate_optimization_level(warnings),
        )

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    @staticmethod
    def _check_full_scan(row: PlanRow) -> Optional[PlanWarning]:
        if row.access_type == "ALL":
            return PlanWarning(
                kind="full_scan",
                table=row.table,
                message=f"Full table scan on {row.table} ({row.rows_estimate} rows)",
                severity="high",
            )
        return None

    @staticmethod
    def _check_filesort(row: PlanRow) -> Optional[PlanWarning]:
        if row.extra and "Using filesort" in row.extra:
            return PlanWarning(
                kind="filesort",
                table=row.table,
                message=f"Using filesort on {row.table}",
            )
        return None

    @staticmethod
    def _check_temporary(row: PlanRow) -> Optional[PlanWarning]:
        if row.extra and "Using temporary" in row.extra:
            return PlanWarning(
                kind="temporary",
                table=row.table,
                message=f"Using temporary table on {row.table}",
            )
        return None

    @staticmethod
    def _calculate_optimization_level(warnings: List[PlanWarning]) -> str:
        """Calculate overall optimization level"""
        if not warnings:
            return "excellent"

        if any(w.severity == "high" for w in warnings):
            return "needs_optimization"

        return "good"

    # ------------------------------------------------------------------
    # Index suggestions
    # ------------------------------------------------------------------

    def suggest_indexes(self, rows: Sequence[PlanRow], sql: str) -> List[IndexSuggestion]:
        sql_lower = sql.lower()
        suggestions = []

        for row in rows:
            if not row.table or row.access_type != "ALL":
                continue
            if not row.used_key:
                cols = self._extract_qualified_columns(sql_lower, row.table)
                if cols:
                    suggestions.append(
                        _suggestion(row.table, cols, "WHERE-clause columns lack an index")
                    )
            if row.ref is None:
                cols = self._extract_qualified_columns(sql_lower, row.table)
                if cols:
                    suggestions.append(_suggestion(row.table, cols, "JOIN columns lack an index"))

        # Sort/group suggestions are attributed to the first row's table even
        # when a later row carries the filesort.
        needs_sort_index = any(
            row.extra and ("Using filesort" in row.extra or "Using temporary" in row.extra)
            for row in rows
        )
        first_table = rows[0].table if rows else None
        for keyword in _SORT_KEYWORDS:
            cols = self._extract_columns_after_keyword(sql_lower, keyword)
            if cols and first_table and needs_sort_index:
                suggestions.append(
                    _suggestion(first_table, cols, f"{keyword.upper()} columns may need an index")
                )

        logger.debug("Plan produced %d index suggestion(s)", len(suggestions))
        return suggestions

    @staticmethod
    def _extract_qualified_columns(sql_lower: str, table: str) -> List[str]:
        """Collect identifiers written as ``<table>.<identifier>``."""
        pattern = re.compile(r"\b" + re.escape(table.lower()) + r"\.\s*(\w+)")
        cols = pattern.findall(sql_lower)
        return list(dict.fromkeys(cols))[:MAX_INDEX_COLUMNS]

    @staticmethod
    def _extract_columns_after_keyword(sql_lower: str, keyword: str) -> List[str]:
        """Collect bare identifiers between ``keyword`` and the next LIMIT."""
        idx = sql_lower.find(keyword)
        if idx == -1:
            return []
        limit_idx = sql_lower.find(" limit", idx)
        after = sql_lower[idx + len(keyword): limit_idx if limit_idx > 0 else None]
        tokens = re.findall(r"\b(\w+)\b", after)
        cols = [t for t in tokens if t not in _STOP_WORDS and not t.isdigit()]
        return list(dict.fromkeys(cols))[:MAX_INDEX_COLUMNS]


def build_index_ddl(table: str, columns: Sequence[str]) -> str:
    column_list = ", ".join(f"`{c}`" for c in columns)
    return f"CREATE INDEX idx_{table}_{'_'.join(columns)} ON `{table}` ({column_list});"


def _suggestion(table: str, columns: List[str], reason: str) -> IndexSuggestion:
    return IndexSuggestion(
        table=table,
        columns=tuple(columns),
        reason=reason,
        ddl=build_index_ddl(table, columns),
    )


class IndexAdvisor:
    """Working set of the most recent analysis and its pending suggestions"""

    def __init__(self):
        self.reset()

    def reset(self):
        """Clear all state."""
        self.analysis: Optional[PlanAnalysis] = None
        self.suggestions: List[IndexSuggestion] = []
        self.last_error: Optional[str] = None
        self.connection_ref: Optional[str] = None
        self.database_ref: Optional[str] = None

    def load(
        self,
        analysis: PlanAnalysis,
        connection_ref: Optional[str] = None,
        database_ref: Optional[str] = None,
    ) -> None:
        self.analysis = analysis
        self.suggestions = list(analysis.suggestions)
        self.last_error = None
        self.connection_ref = connection_ref
        self.database_ref = database_ref

    def fail(self, message: str) -> None:
        """A failed EXPLAIN leaves no analysis behind."""
        self.reset()
        self.last_error = message

    def discard(self, ddl: str) -> int:
        """Drop every suggestion whose DDL has been applied."""
        before = len(self.suggestions)
        self.suggestions = [s for s in self.suggestions if s.ddl != ddl]
        return before - len(self.suggestions)
