"""Schema-aware SQL completion.

Turns a cursor position in an editor buffer into completion candidates drawn
from the metadata cache.  Resolution is a pure read of cached snapshots: a
scope that has not been fetched yet contributes nothing rather than blocking
on the network.

Candidates are not filtered or scored against the word under the cursor;
the host editor narrows the list by prefix.  Columns are offered for every
cached table of the bound database, whether or not the statement mentions
that table.
"""

import re
from typing import List, Optional, Set, Tuple

from query_workbench.components.metadata_cache import MetadataCache
from query_workbench.components.models import (
    CandidateKind,
    CompletionCandidate,
    CompletionResult,
)

_WORD_CHAR = re.compile(r"[A-Za-z0-9_]")

MYSQL_KEYWORDS = [
    "SELECT", "FROM", "WHERE", "INSERT", "INTO", "VALUES", "UPDATE", "SET", "DELETE",
    "CREATE", "ALTER", "DROP", "TABLE", "INDEX", "VIEW", "DATABASE", "SCHEMA",
    "JOIN", "INNER", "LEFT", "RIGHT", "OUTER", "CROSS", "ON", "AS", "AND", "OR",
    "NOT", "IN", "EXISTS", "BETWEEN", "LIKE", "IS", "NULL", "TRUE", "FALSE",
    "ORDER", "BY", "GROUP", "HAVING", "LIMIT", "OFFSET", "UNION", "ALL", "DISTINCT",
    "CASE", "WHEN", "THEN", "ELSE", "END", "IF", "BEGIN", "COMMIT", "ROLLBACK",
    "PRIMARY", "KEY", "FOREIGN", "REFERENCES", "CONSTRAINT", "UNIQUE", "DEFAULT",
    "AUTO_INCREMENT", "CASCADE", "TRUNCATE", "EXPLAIN", "DESCRIBE", "SHOW", "USE",
]

MYSQL_FUNCTIONS = [
    "COUNT", "SUM", "AVG", "MAX", "MIN", "ABS", "CEIL", "FLOOR", "ROUND", "MOD",
    "NOW", "CURDATE", "CURTIME", "DATE", "YEAR", "MONTH", "DAY", "DATE_FORMAT",
    "DATE_ADD", "DATE_SUB", "DATEDIFF", "TIMESTAMPDIFF", "CONCAT", "CONCAT_WS",
    "SUBSTRING", "LENGTH", "CHAR_LENGTH", "UPPER", "LOWER", "TRIM", "REPLACE",
    "CAST", "CONVERT", "COALESCE", "NULLIF", "IFNULL", "GREATEST", "LEAST",
    "GROUP_CONCAT", "JSON_EXTRACT", "JSON_OBJECT", "JSON_ARRAY",
    "ROW_NUMBER", "RANK", "DENSE_RANK", "LAG", "LEAD",
]


def current_word_span(text: str, line: int, column: int) -> Tuple[str, int, int, int]:
    """Return ``(word, line, start, end)`` for the identifier touching the cursor.

    ``line`` and ``column`` are zero-based; the cursor sits before the
    character at ``column``.  Positions outside the buffer are clamped.
    """
    lines = (text or "").split("\n")
    line = max(0, min(line, len(lines) - 1))
    line_text = lines[line]
    column = max(0, min(column, len(line_text)))

    start = column
    while start > 0 and _WORD_CHAR.match(line_text[start - 1]):
        start -= 1
    end = column
    while end < len(line_text) and _WORD_CHAR.match(line_text[end]):
        end += 1
    return line_text[start:end], line, start, end


class CompletionResolver:
    """Builds completion candidates from cached schema metadata"""

    def __init__(self, include_keywords: bool = False):
        self.include_keywords = include_keywords

    def resolve(
        self,
        text: str,
        line: int,
        column: int,
        cache: MetadataCache,
        connection_ref: Optional[str] = None,
        database_ref: Optional[str] = None,
    ) -> CompletionResult:
        word, line, start, end = current_word_span(text, line, column)

        candidates: List[CompletionCandidate] = []
        if connection_ref:
            candidates.extend(self._database_candidates(cache, connection_ref))
            if database_ref:
                candidates.extend(self._table_candidates(cache, connection_ref, database_ref))
                candidates.extend(self._column_candidates(cache, connection_ref, database_ref))
        if self.include_keywords:
            candidates.extend(self._keyword_candidates())

        return CompletionResult(
            word=word,
            line=line,
            start_column=start,
            end_column=end,
            candidates=tuple(_dedupe(candidates)),
        )

    @staticmethod
    def _database_candidates(cache: MetadataCache, connection_ref: str) -> List[CompletionCandidate]:
        return [
            CompletionCandidate(label=db.name, kind=CandidateKind.DATABASE, insert_text=db.name)
            for db in cache.get_databases(connection_ref)
        ]

    @staticmethod
    def _table_candidates(
        cache: MetadataCache, connection_ref: str, database_ref: str
    ) -> List[CompletionCandidate]:
        return [
            CompletionCandidate(
                label=table.name,
                kind=CandidateKind.TABLE,
                insert_text=table.name,
                detail=table.kind,
            )
            for table in cache.get_tables(connection_ref, database_ref)
        ]

    @staticmethod
    def _column_candidates(
        cache: MetadataCache, connection_ref: str, database_ref: str
    ) -> List[CompletionCandidate]:
        candidates = []
        for table in cache.get_tables(connection_ref, database_ref):
            for column in cache.get_columns(connection_ref, database_ref, table.name):
                candidates.append(
                    CompletionCandidate(
                        label=column.name,
                        kind=CandidateKind.COLUMN,
                        insert_text=column.name,
                        detail=f"{table.name}.{column.declared_type}",
                    )
                )
        return candidates

    @staticmethod
    def _keyword_candidates() -> List[CompletionCandidate]:
        candidates = [
            CompletionCandidate(label=kw, kind=CandidateKind.KEYWORD, insert_text=kw)
            for kw in MYSQL_KEYWORDS
        ]
        candidates.extend(
            CompletionCandidate(label=fn, kind=CandidateKind.FUNCTION, insert_text=f"{fn}()")
            for fn in MYSQL_FUNCTIONS
        )
        return candidates


def _dedupe(candidates: List[CompletionCandidate]) -> List[CompletionCandidate]:
    seen: Set[Tuple[CandidateKind, str, Optional[str]]] = set()
    unique = []
    for candidate in candidates:
        key = (candidate.kind, candidate.label, candidate.detail)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique
