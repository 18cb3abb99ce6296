"""SQL reconstruction from Delphi query-building code.

Two source shapes are recognized inside a method body::

    Q.SQL.Clear;                         Q.SQL.Text := 'SELECT * FROM T ' +
    Q.SQL.Add('SELECT *');                 'WHERE ID = ' + IntToStr(Id);
    Q.SQL.Add('FROM ' + TableName);

Each right-hand side is split on top-level ``+`` and every term is classified:
literals contribute their text, simple variables and wrapped calls become
``:name`` placeholders, anything else becomes an opaque ``{expression}``.
A statement that does not start with a SQL verb after reconstruction is
dropped silently; many ``.SQL``/``.Text`` matches are not queries at all.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from delphiscan.config.constants import DYNAMIC_SQL_MARKER, MIN_SQL_LENGTH
from delphiscan.extraction.lexer import blank_non_code, line_of, skip_string, split_top_level
from delphiscan.models import ExtractedMethod, QueryBlockKind, QueryDescriptor, SqlOperation

log = structlog.get_logger(__name__)

SQL_VERBS: tuple[str, ...] = (
    "SELECT",
    "INSERT",
    "UPDATE OR INSERT",
    "UPDATE",
    "DELETE",
    "EXECUTE",
    "EXEC",
    "CALL",
    "CREATE",
    "ALTER",
    "DROP",
    "SET GENERATOR",
)

_VERB_RE = re.compile(
    r"^\s*(?:" + "|".join(v.replace(" ", r"\s+") for v in SQL_VERBS) + r")\b",
    re.IGNORECASE,
)

# Statement prefixes that may precede the query call in the same statement
_LEAD = r"^\s*(?:(?:begin|try|finally|except|else|repeat|with\s+[\w.]+\s+do)\s+)*"
_TARGET = r"(?:(?P<var>[A-Za-z_][\w.]*?)\s*\.\s*)?(?P<prop>SQL|SelectSQL)\s*\.\s*"
_TAIL = r"(?:\s+end)*\s*$"

_CLEAR_RE = re.compile(_LEAD + _TARGET + r"Clear\s*(?:\(\s*\))?" + _TAIL, re.IGNORECASE)
_ADD_RE = re.compile(
    _LEAD + _TARGET + r"Add\s*\((?P<expr>.*)\)" + _TAIL, re.IGNORECASE | re.DOTALL
)
_TEXT_RE = re.compile(
    _LEAD + _TARGET + r"Text\s*:=\s*(?P<expr>.*?)" + _TAIL, re.IGNORECASE | re.DOTALL
)

_LITERAL_RE = re.compile(r"(?:'(?:[^'\n]|'')*'|#\$[0-9A-Fa-f]+|#\d+)+")
_LITERAL_PART_RE = re.compile(r"'((?:[^'\n]|'')*)'|#\$([0-9A-Fa-f]+)|#(\d+)")
_IDENT_RE = re.compile(r"[A-Za-z_]\w*")
_DOTTED_RE = re.compile(r"[A-Za-z_]\w*(?:\s*\.\s*[A-Za-z_]\w*)+")
_WRAPPER_RE = re.compile(r"[A-Za-z_]\w*\s*\(\s*(?P<arg>[A-Za-z_]\w*(?:\s*\.\s*[A-Za-z_]\w*)*)\s*\)")
_FORMAT_RE = re.compile(r"Format\s*\(", re.IGNORECASE)

_SQL_STRING_RE = re.compile(r"'(?:[^']|'')*'")
_PARAM_RE = re.compile(r"(?<![\w:]):([A-Za-z_]\w*)")

_TABLE_PATTERNS = (
    re.compile(r"^\s*UPDATE\s+OR\s+INSERT\s+INTO\s+\"?(\w+)\"?", re.IGNORECASE),
    re.compile(r"^\s*UPDATE\s+\"?(\w+)\"?", re.IGNORECASE),
    re.compile(r"^\s*INSERT\s+INTO\s+\"?(\w+)\"?", re.IGNORECASE),
    re.compile(r"^\s*DELETE\s+FROM\s+\"?(\w+)\"?", re.IGNORECASE),
    re.compile(r"\bSET\s+GENERATOR\s+\"?(\w+)\"?", re.IGNORECASE),
    re.compile(r"\bFROM\s+(?:\"?\w+\"?\.)?\"?(\w+)\"?", re.IGNORECASE),
    re.compile(r"\bTABLE\s+\"?(\w+)\"?", re.IGNORECASE),
    re.compile(r"\bINDEX\s+\w+\s+ON\s+\"?(\w+)\"?", re.IGNORECASE),
)

_OPERATIONS = (
    ("SELECT", SqlOperation.SELECT),
    ("INSERT", SqlOperation.INSERT),
    ("UPDATE", SqlOperation.UPDATE),
    ("DELETE", SqlOperation.DELETE),
    ("CREATE", SqlOperation.DDL),
    ("ALTER", SqlOperation.DDL),
    ("DROP", SqlOperation.DDL),
    ("SET", SqlOperation.DDL),
    ("EXEC", SqlOperation.STORED_PROCEDURE),
    ("CALL", SqlOperation.STORED_PROCEDURE),
)


@dataclass(frozen=True, slots=True)
class ResolvedExpression:
    """A Pascal string expression turned into SQL text.

    ``template`` is only set for fully dynamic ``Format`` calls whose format
    string is a literal; it is what acceptance is judged on.
    """

    text: str
    is_dynamic: bool
    placeholders: tuple[str, ...] = ()
    is_fully_dynamic: bool = False
    template: str | None = None

    @property
    def judged_text(self) -> str:
        if self.is_fully_dynamic:
            return self.template or ""
        return self.text


def _matching_paren(text: str, open_pos: int) -> int:
    """Index of the ``)`` closing the ``(`` at ``open_pos``, or -1."""
    depth = 0
    pos = open_pos
    n = len(text)
    while pos < n:
        ch = text[pos]
        if ch == "'":
            pos = skip_string(text, pos)
            continue
        if ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
            if depth == 0:
                return pos
        pos += 1
    return -1


def _decode_literal(term: str) -> str:
    parts = []
    for m in _LITERAL_PART_RE.finditer(term):
        if m.group(1) is not None:
            parts.append(m.group(1).replace("''", "'"))
        elif m.group(2) is not None:
            parts.append(chr(int(m.group(2), 16)))
        else:
            parts.append(chr(int(m.group(3))))
    return "".join(parts)


def _last_segment(dotted: str) -> str:
    return dotted.rsplit(".", 1)[-1].strip()


def _resolve_format(expr: str, open_pos: int) -> ResolvedExpression:
    close = _matching_paren(expr, open_pos)
    inner = expr[open_pos + 1 : close] if close != -1 else expr[open_pos + 1 :]
    first_arg = split_top_level(inner, ",")[0][1]
    resolved = resolve_expression(first_arg)
    template = resolved.text if not resolved.is_dynamic else None
    return ResolvedExpression(DYNAMIC_SQL_MARKER, True, (), True, template)


def resolve_expression(expr: str) -> ResolvedExpression:
    """Reconstruct the SQL text of a ``+``-concatenated Pascal expression.

    Examples:
        ``'SELECT * FROM ' + TableName`` -> ``SELECT * FROM :TableName``
        ``'WHERE ID = ' + IntToStr(Id)`` -> ``WHERE ID = :Id``
        ``'X' + Copy(S, 1, 2)`` -> ``X{Copy(S, 1, 2)}``
    """
    expr = expr.strip()
    if m := _FORMAT_RE.match(expr):
        return _resolve_format(expr, m.end() - 1)

    pieces: list[str] = []
    placeholders: list[str] = []
    dynamic = False
    for _, raw in split_top_level(expr, "+"):
        term = raw.strip()
        if not term:
            continue
        if _LITERAL_RE.fullmatch(term):
            pieces.append(_decode_literal(term))
            continue
        if term.startswith("(") and _matching_paren(term, 0) == len(term) - 1:
            inner = resolve_expression(term[1:-1])
            if inner.is_fully_dynamic:
                pieces.append("{" + term + "}")
                dynamic = True
                continue
            pieces.append(inner.text)
            placeholders.extend(inner.placeholders)
            dynamic = dynamic or inner.is_dynamic
            continue

        dynamic = True
        name: str | None = None
        if wrapper := _WRAPPER_RE.fullmatch(term):
            name = _last_segment(wrapper.group("arg"))
        elif _DOTTED_RE.fullmatch(term):
            name = _last_segment(term)
        elif _IDENT_RE.fullmatch(term):
            name = term
        if name is not None:
            pieces.append(f":{name}")
            placeholders.append(name)
        else:
            pieces.append("{" + " ".join(term.split()) + "}")
    return ResolvedExpression("".join(pieces), dynamic, tuple(placeholders))


def is_sql(text: str) -> bool:
    """True when ``text`` starts with a recognized SQL verb."""
    return len(text.strip()) >= MIN_SQL_LENGTH and _VERB_RE.match(text) is not None


def detect_operation(sql: str) -> SqlOperation:
    head = sql.lstrip().upper()
    for prefix, operation in _OPERATIONS:
        if head.startswith(prefix):
            return operation
    return SqlOperation.UNKNOWN


def detect_table(sql: str) -> str | None:
    """Primary table of a statement, upper-cased."""
    for pattern in _TABLE_PATTERNS:
        if m := pattern.search(sql):
            return m.group(1).upper()
    return None


def sql_parameters(sql: str, placeholders: tuple[str, ...] = ()) -> tuple[str, ...]:
    """``:name`` parameters of a statement, order-preserving and case-insensitively unique."""
    masked = _SQL_STRING_RE.sub(lambda m: " " * len(m.group(0)), sql)
    seen: set[str] = set()
    names: list[str] = []
    for name in [*placeholders, *_PARAM_RE.findall(masked)]:
        if name.lower() not in seen:
            seen.add(name.lower())
            names.append(name)
    return tuple(names)


def _canonical_property(prop: str) -> str:
    return "SelectSQL" if prop.lower() == "selectsql" else "SQL"


def _same_target(a: re.Match[str], b: re.Match[str]) -> bool:
    var_a, var_b = a.group("var"), b.group("var")
    if (var_a is None) != (var_b is None):
        return False
    if var_a is not None and var_a.lower() != var_b.lower():
        return False
    return a.group("prop").lower() == b.group("prop").lower()


def _describe(
    parts: list[ResolvedExpression],
    expressions: list[str],
    *,
    block_kind: QueryBlockKind,
    target: re.Match[str],
    line: int,
    method: ExtractedMethod | None,
) -> QueryDescriptor | None:
    fully_dynamic = any(p.is_fully_dynamic for p in parts)
    judged = " ".join(p.judged_text for p in parts).strip()
    if not is_sql(judged):
        return None
    placeholders = tuple(name for p in parts for name in p.placeholders)
    return QueryDescriptor(
        sql_text=DYNAMIC_SQL_MARKER if fully_dynamic else judged,
        is_dynamic=any(p.is_dynamic for p in parts),
        line=line,
        block_kind=block_kind,
        method_name=method.name if method else None,
        class_name=method.containing_class if method else None,
        parameters=sql_parameters(judged, placeholders),
        query_variable=target.group("var"),
        sql_property=_canonical_property(target.group("prop")),
        operation=detect_operation(judged),
        table_name=detect_table(judged),
        expressions=tuple(" ".join(e.split()) for e in expressions),
    )


def extract_queries(
    body: str,
    *,
    line_offset: int = 0,
    method: ExtractedMethod | None = None,
) -> list[QueryDescriptor]:
    """Find and reconstruct every query built in ``body``.

    Args:
        body: Method source text (or any Pascal statement text).
        line_offset: Added to body-relative line numbers; pass
            ``method.start_line - 1`` for file line numbers.
        method: Method the body belongs to, recorded on each descriptor.
    """
    clean = blank_non_code(body)
    statements = split_top_level(clean, ";", nested=False)
    queries: list[QueryDescriptor] = []

    def line_at(offset: int, target: re.Match[str]) -> int:
        # Line of the query component, not of a leading begin/try
        start = target.start("var") if target.group("var") is not None else target.start("prop")
        return line_offset + line_of(clean, offset + start)

    index = 0
    while index < len(statements):
        offset, stmt = statements[index]
        if clear := _CLEAR_RE.match(stmt):
            exprs: list[str] = []
            index += 1
            while index < len(statements):
                add = _ADD_RE.match(statements[index][1])
                if add is None or not _same_target(add, clear):
                    break
                exprs.append(add.group("expr"))
                index += 1
            if exprs:
                descriptor = _describe(
                    [resolve_expression(e) for e in exprs],
                    exprs,
                    block_kind=QueryBlockKind.ADD_SEQUENCE,
                    target=clear,
                    line=line_at(offset, clear),
                    method=method,
                )
                if descriptor is not None:
                    queries.append(descriptor)
            continue
        if text := _TEXT_RE.match(stmt):
            expr = text.group("expr")
            descriptor = _describe(
                [resolve_expression(expr)],
                [expr],
                block_kind=QueryBlockKind.TEXT_ASSIGNMENT,
                target=text,
                line=line_at(offset, text),
                method=method,
            )
            if descriptor is not None:
                queries.append(descriptor)
        index += 1

    if queries:
        log.debug(
            "queries_extracted",
            method=method.qualified_name if method else None,
            count=len(queries),
        )
    return queries
