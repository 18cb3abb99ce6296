"""Reserved-word quoting for Firebird SQL.

Legacy Delphi/InterBase schemas routinely use names such as ORDER, DATE or
VALUE for columns and tables. Firebird rejects those unless they are double
quoted. ``quote_reserved_words`` rewrites a statement so that reserved
words used as identifiers are quoted; everything else is left byte-for-byte
as it was.

String literals and already quoted identifiers are masked before any rule
runs, so their content is never touched and a second pass changes nothing.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Set

from delphiscan.extraction.lexer import split_top_level

FIREBIRD_RESERVED_WORDS: frozenset[str] = frozenset(
    {
        # SQL standard words that fail as bare identifiers
        "ADD", "ALL", "ALTER", "AND", "ANY", "AS", "ASC", "AT",
        "BEGIN", "BETWEEN", "BLOB", "BY",
        "CASE", "CAST", "CHAR", "CHARACTER", "CHECK", "CLOSE", "COLLATE", "COLUMN",
        "COMMIT", "CONNECT", "CONSTRAINT", "COUNT", "CREATE", "CROSS", "CURRENT",
        "CURRENT_DATE", "CURRENT_TIME", "CURRENT_TIMESTAMP", "CURRENT_USER", "CURSOR",
        "DATE", "DAY", "DEC", "DECIMAL", "DECLARE", "DEFAULT", "DELETE", "DESC",
        "DISTINCT", "DOUBLE", "DROP",
        "ELSE", "END", "ESCAPE", "EXECUTE", "EXISTS", "EXTERNAL", "EXTRACT",
        "FALSE", "FETCH", "FLOAT", "FOR", "FOREIGN", "FROM", "FULL", "FUNCTION",
        "GRANT", "GROUP",
        "HAVING", "HOUR",
        "IN", "INDEX", "INNER", "INSERT", "INT", "INTEGER", "INTO", "IS",
        "JOIN",
        "KEY",
        "LEFT", "LIKE",
        "MAX", "MIN", "MINUTE", "MONTH",
        "NATURAL", "NO", "NOT", "NULL", "NUMERIC",
        "OF", "ON", "ONLY", "OPEN", "OR", "ORDER", "OUTER",
        "POSITION", "PRECISION", "PRIMARY", "PROCEDURE", "PUBLIC",
        "REAL", "REFERENCES", "RELEASE", "RETURN", "RETURNS", "REVOKE", "RIGHT",
        "ROLLBACK", "ROW", "ROWS",
        "SECOND", "SELECT", "SET", "SMALLINT", "SOME", "SUM",
        "TABLE", "THEN", "TIME", "TIMESTAMP", "TO", "TRIGGER", "TRIM", "TRUE",
        "UNION", "UNIQUE", "UPDATE", "UPPER", "USER", "USING",
        "VALUE", "VALUES", "VARCHAR", "VARYING", "VIEW",
        "WHEN", "WHERE", "WITH",
        "YEAR",
        # Firebird / InterBase
        "ACTION", "ACTIVE", "AFTER", "ASCENDING", "AVG",
        "BEFORE", "BREAK",
        "CASCADE", "COALESCE", "COMPUTED", "CONTAINING",
        "DATABASE", "DESCENDING", "DO", "DOMAIN",
        "ENTRY_POINT", "EXCEPTION", "EXIT",
        "FILE", "FILTER", "FIRST", "FREE",
        "GEN_ID", "GENERATOR", "GLOBAL",
        "IF", "IIF", "INACTIVE", "INPUT",
        "LAST", "LENGTH", "LEVEL", "LOCK", "LONG",
        "MANUAL", "MERGE", "MODULE_NAME",
        "NAMES", "NEXT", "NULLIF", "NULLS",
        "OPTION", "OUTPUT", "OVER", "OVERFLOW",
        "PAGE", "PAGES", "PARAMETER", "PASSWORD", "PLAN", "POST_EVENT", "PRIVILEGES",
        "RECREATE", "RESERVING", "RESTRICT", "RETAIN", "RETURNING", "RETURNING_VALUES",
        "ROLE",
        "SCHEMA", "SEGMENT", "SEQUENCE", "SHADOW", "SHARED", "SINGULAR", "SKIP",
        "SNAPSHOT", "SORT", "SQLCODE", "STABILITY", "STARTING", "STATISTICS",
        "SUB_TYPE", "SUSPEND",
        "TRANSACTION", "TYPE",
        "UNCOMMITTED",
        "WAIT", "WEEKDAY", "WORK",
        "YEARDAY",
    }
)  # fmt: skip

# Operators, clause keywords and niladic builtins: reserved, but never column names
_NEVER_QUOTED = frozenset(
    {
        "ALL", "AND", "ANY", "AS", "ASC", "BETWEEN", "BY", "CASE", "CONTAINING",
        "CURRENT_DATE", "CURRENT_TIME", "CURRENT_TIMESTAMP", "CURRENT_USER", "DESC",
        "DISTINCT", "ELSE", "END", "EXISTS", "FALSE", "FIRST", "FROM", "HAVING", "IN",
        "INTO", "IS", "JOIN", "LIKE", "NOT", "NULL", "NULLS", "ON", "OR", "SELECT",
        "SET", "SKIP", "SOME", "STARTING", "THEN", "TRUE", "UNION", "USER", "USING",
        "VALUES", "WHEN", "WHERE", "WITH",
    }
)  # fmt: skip

_IDENT = r"[A-Za-z_][\w$]*"
_MASK = "\x00{}\x00"

_MASKABLE_RE = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")
_MASKED_RE = re.compile(r"\x00(\d+)\x00")

_SELECT_RE = re.compile(r"\bSELECT\b", re.IGNORECASE)
_LIST_TOKEN_RE = re.compile(r"\(|\)|\bFROM\b", re.IGNORECASE)
_LIST_PREFIX_RE = re.compile(
    r"^\s*(?:(?:DISTINCT|ALL|FIRST\s+\S+|SKIP\s+\S+)\s+)*", re.IGNORECASE
)
_ALIAS_RE = re.compile(
    rf"^(?P<col>.+?)(?P<sep>\s+(?:AS\s+)?)(?P<alias>{_IDENT})$",
    re.IGNORECASE | re.DOTALL,
)
_IDENT_RE = re.compile(_IDENT)
_DOTTED_RE = re.compile(rf"{_IDENT}(?:\.(?:{_IDENT}|\*))+")

_TABLE_RES = tuple(
    re.compile(rf"(\b{prefix}\s+)({_IDENT})(?=\s|$|\)|,|\()", re.IGNORECASE)
    for prefix in (
        r"FROM",
        r"JOIN",
        r"INTO",
        r"UPDATE(?:\s+OR\s+INSERT\s+INTO)?",
        r"DELETE\s+FROM",
    )
)

_COMPARED_RE = re.compile(
    rf"(?<=[\s(,.])({_IDENT})"
    r"(?=\s*(?:<>|!=|\^=|<=|>=|=|<|>)"
    r"|\s+(?:ASC|DESC|NULLS|IS|NOT|IN|LIKE|BETWEEN|CONTAINING|STARTING)\b)",
    re.IGNORECASE,
)


def quote_if_reserved(identifier: str, reserved: Set[str] = FIREBIRD_RESERVED_WORDS) -> str:
    """Double-quote ``identifier`` when it is a reserved word.

    >>> quote_if_reserved("ORDER")
    '"ORDER"'
    >>> quote_if_reserved("CustomerId")
    'CustomerId'
    """
    if not identifier:
        return identifier
    if len(identifier) >= 2 and identifier.startswith('"') and identifier.endswith('"'):
        return identifier
    if identifier.upper() in reserved:
        return f'"{identifier}"'
    return identifier


def _mask(sql: str) -> tuple[str, list[str]]:
    saved: list[str] = []

    def stash(m: re.Match[str]) -> str:
        saved.append(m.group(0))
        return _MASK.format(len(saved) - 1)

    return _MASKABLE_RE.sub(stash, sql), saved


def _unmask(sql: str, saved: list[str]) -> str:
    return _MASKED_RE.sub(lambda m: saved[int(m.group(1))], sql)


def _select_list_span(sql: str, start: int) -> tuple[int, int] | None:
    """Span of the column list following a SELECT, up to its own FROM."""
    depth = 0
    for tok in _LIST_TOKEN_RE.finditer(sql, start):
        text = tok.group(0)
        if text == "(":
            depth += 1
        elif text == ")":
            if depth == 0:
                return None
            depth -= 1
        elif depth == 0:
            return start, tok.start()
    return None


def _quote_path(expr: str, quote: Callable[[str], str]) -> str | None:
    """Quote an identifier or dotted name; None when ``expr`` is anything else."""
    if _IDENT_RE.fullmatch(expr):
        return expr if expr.upper() in _NEVER_QUOTED else quote(expr)
    if _DOTTED_RE.fullmatch(expr):
        return ".".join(part if part == "*" else quote(part) for part in expr.split("."))
    return None


def _quote_column(column: str, quote: Callable[[str], str]) -> str:
    core = column.strip()
    if not core or core == "*":
        return column
    lead = column[: len(column) - len(column.lstrip())]
    trail = column[len(column.rstrip()) :]

    if (path := _quote_path(core, quote)) is not None:
        return lead + path + trail

    alias = _ALIAS_RE.match(core)
    if alias is not None:
        col, sep = alias.group("col"), alias.group("sep")
        col_path = _quote_path(col, quote)
        has_as = "AS" in sep.upper()
        # Without AS only "name alias" and "call(...) alias" are aliased columns
        if has_as or col_path is not None or col.endswith(")"):
            new_col = col_path if col_path is not None else col
            return lead + new_col + sep + quote(alias.group("alias")) + trail
    return column


def _quote_column_list(columns: str, quote: Callable[[str], str]) -> str:
    prefix = _LIST_PREFIX_RE.match(columns)
    head = prefix.group(0) if prefix else ""
    body = columns[len(head) :]
    pieces = [piece for _, piece in split_top_level(body, ",")]
    return head + ",".join(_quote_column(piece, quote) for piece in pieces)


def _quote_select_lists(sql: str, quote: Callable[[str], str]) -> str:
    pos = 0
    while (m := _SELECT_RE.search(sql, pos)) is not None:
        span = _select_list_span(sql, m.end())
        if span is not None:
            start, end = span
            sql = sql[:start] + _quote_column_list(sql[start:end], quote) + sql[end:]
        pos = m.end()
    return sql


def _quote_table_names(sql: str, quote: Callable[[str], str]) -> str:
    def replace(m: re.Match[str]) -> str:
        name = m.group(2)
        if name.upper() in _NEVER_QUOTED or name.upper() == "OF":
            return m.group(0)
        return m.group(1) + quote(name)

    for pattern in _TABLE_RES:
        sql = pattern.sub(replace, sql)
    return sql


def _quote_compared_columns(sql: str, quote: Callable[[str], str]) -> str:
    def replace(m: re.Match[str]) -> str:
        name = m.group(1)
        if name.upper() in _NEVER_QUOTED:
            return name
        return quote(name)

    return _COMPARED_RE.sub(replace, sql)


def quote_reserved_words(sql: str, reserved: Set[str] = FIREBIRD_RESERVED_WORDS) -> str:
    """Quote reserved words used as identifiers in ``sql``.

    Covers SELECT column lists (including aliases and ``table.column``),
    table names after FROM/JOIN/INTO/UPDATE/DELETE FROM, and bare words on
    the left of comparison and ordering operators in WHERE/SET/ORDER BY.
    Applying it twice gives the same result as applying it once.
    """
    if not sql:
        return sql

    def quote(identifier: str) -> str:
        return quote_if_reserved(identifier, reserved)

    masked, saved = _mask(sql)
    masked = _quote_select_lists(masked, quote)
    masked = _quote_table_names(masked, quote)
    masked = _quote_compared_columns(masked, quote)
    return _unmask(masked, saved)
