"""Categorized error classification for collaborator failures.

Provides a single function, ``classify_collaborator_error``, that inspects an
exception and returns a short machine-readable category string.  The
execution boundary hands every failure over as a plain message; the category
only decides how the calling layer presents it (a syntax error points at the
buffer, a connection error at the connection).
"""

import re

_MYSQL_CODE = re.compile(r"\((\d{4})\b")

_SYNTAX_CODES = {"1064", "1149"}
_PERMISSION_CODES = {"1044", "1045", "1142", "1143", "1227"}
_UNKNOWN_OBJECT_CODES = {"1049", "1051", "1054", "1146"}
_CONNECTION_CODES = {"2002", "2003", "2005", "2006", "2013"}


def classify_collaborator_error(exc: BaseException) -> str:
    """Classify a collaborator exception.

    Returns one of:
        "syntax_error", "permission_denied", "unknown_object",
        "connection_error", "timeout", "unknown"
    """
    error_str = str(exc).lower()
    error_type = type(exc).__name__.lower()

    # --------------------------------------------------
    # MySQL server error codes, e.g. "(1064, 'You have an error ...')"
    # --------------------------------------------------
    code_match = _MYSQL_CODE.search(str(exc))
    if code_match:
        code = code_match.group(1)
        if code in _SYNTAX_CODES:
            return "syntax_error"
        if code in _PERMISSION_CODES:
            return "permission_denied"
        if code in _UNKNOWN_OBJECT_CODES:
            return "unknown_object"
        if code in _CONNECTION_CODES:
            return "connection_error"

    # --------------------------------------------------
    # Timeout
    # --------------------------------------------------
    if "timeout" in error_type or "timeout" in error_str or "timed out" in error_str:
        return "timeout"

    # --------------------------------------------------
    # Message based fallbacks (SQLite, PostgreSQL, drivers)
    # --------------------------------------------------
    if "syntax error" in error_str or "error in your sql syntax" in error_str:
        return "syntax_error"
    if any(kw in error_str for kw in ("permission denied", "access denied", "readonly database", "read-only")):
        return "permission_denied"
    if any(kw in error_str for kw in ("no such table", "no such column", "doesn't exist", "does not exist", "unknown column")):
        return "unknown_object"
    if any(kw in error_type for kw in ("connection", "network")):
        return "connection_error"
    if any(kw in error_str for kw in ("connection", "network", "unreachable", "gone away", "unable to open")):
        return "connection_error"

    # --------------------------------------------------
    # Fallback
    # --------------------------------------------------
    return "unknown"
