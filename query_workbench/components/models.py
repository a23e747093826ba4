"""Shared data model for tabs, schema metadata, completion and plan analysis"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ExecutionState(str, Enum):
    """Execution lifecycle of a tab"""

    IDLE = "idle"
    EXECUTING = "executing"
    FAILED = "failed"


@dataclass(frozen=True)
class ResultColumn:
    """A column of a query result set"""

    name: str


@dataclass(frozen=True)
class QueryResult:
    """Outcome of one successful statement execution"""

    columns: Tuple[ResultColumn, ...] = ()
    rows: Tuple[Dict[str, Any], ...] = ()
    row_count: int = 0
    affected_rows: int = 0
    execution_time_ms: float = 0.0
    sql: str = ""
    is_select: bool = False
    truncated: bool = False


@dataclass
class Tab:
    """One SQL editing session"""

    id: str
    title: str
    content: str = ""
    connection_ref: Optional[str] = None
    database_ref: Optional[str] = None
    result: Optional[QueryResult] = None
    execution_state: ExecutionState = ExecutionState.IDLE
    last_error: Optional[str] = None

    @property
    def is_dirty(self) -> bool:
        """A query buffer with any text counts as unsaved work."""
        return len(self.content) > 0


# ----------------------------------------------------------------------
# Schema metadata
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseEntry:
    name: str


@dataclass(frozen=True)
class TableEntry:
    name: str
    kind: str = "TABLE"


@dataclass(frozen=True)
class ColumnEntry:
    name: str
    declared_type: str = ""


# ----------------------------------------------------------------------
# Completion
# ----------------------------------------------------------------------


class CandidateKind(str, Enum):
    DATABASE = "database"
    TABLE = "table"
    COLUMN = "column"
    KEYWORD = "keyword"
    FUNCTION = "function"


@dataclass(frozen=True)
class CompletionCandidate:
    label: str
    kind: CandidateKind
    insert_text: str
    detail: Optional[str] = None


@dataclass(frozen=True)
class CompletionResult:
    """Candidates plus the span on ``line`` that a chosen candidate replaces"""

    word: str
    line: int
    start_column: int
    end_column: int
    candidates: Tuple[CompletionCandidate, ...] = ()


# ----------------------------------------------------------------------
# EXPLAIN analysis
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class PlanRow:
    """One row of EXPLAIN output"""

    id: Optional[int] = None
    select_type: Optional[str] = None
    table: Optional[str] = None
    partitions: Optional[str] = None
    access_type: Optional[str] = None
    possible_keys: Optional[str] = None
    used_key: Optional[str] = None
    key_length: Optional[str] = None
    ref: Optional[str] = None
    rows_estimate: Optional[int] = None
    filtered_percent: Optional[float] = None
    extra: Optional[str] = None


@dataclass(frozen=True)
class PlanWarning:
    kind: str
    table: Optional[str]
    message: str
    severity: str = "medium"


@dataclass(frozen=True)
class IndexSuggestion:
    table: str
    columns: Tuple[str, ...]
    reason: str
    ddl: str


@dataclass(frozen=True)
class PlanAnalysis:
    rows: Tuple[PlanRow, ...] = ()
    warnings: Tuple[PlanWarning, ...] = ()
    suggestions: Tuple[IndexSuggestion, ...] = ()
    optimization_level: str = "excellent"


# ----------------------------------------------------------------------
# Outcomes reported to the calling layer
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of an execute/explain request against a tab.

    ``applied`` is False when the tab was closed (or was already executing)
    and nothing was written back to the registry.
    """

    tab_id: str
    success: bool
    applied: bool
    result: Optional[QueryResult] = None
    analysis: Optional[PlanAnalysis] = None
    error: Optional[str] = None
    error_category: Optional[str] = None


@dataclass(frozen=True)
class RefreshOutcome:
    scope: Tuple[str, ...]
    success: bool
    count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class AnalysisOutcome:
    success: bool
    analysis: Optional[PlanAnalysis] = None
    error: Optional[str] = None
    error_category: Optional[str] = None


@dataclass(frozen=True)
class ApplyOutcome:
    suggestion: IndexSuggestion
    success: bool
    error: Optional[str] = None
    error_category: Optional[str] = None


@dataclass(frozen=True)
class SearchHit:
    """A cached schema object whose name matched a search term"""

    kind: CandidateKind
    name: str
    database: str
    table: Optional[str] = None


@dataclass
class SearchResults:
    term: str
    hits: List[SearchHit] = field(default_factory=list)
