"""Method-boundary tokenizer.

Finds method headers in a unit's implementation section and cuts out each
body by walking the text once, counting block keywords against ``end``.
Comments and string literals are skipped whole, so the ``begin`` in
``'begin transaction'`` never counts.

The walk is a pure function over an explicit ``_BodyScan`` state. Nothing
here raises on bad input: a body that does not balance is returned
truncated and reported as a warning.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from delphiscan.core.results import Outcome, ScanWarning, WarningKind
from delphiscan.extraction.lexer import (
    blank_non_code,
    find_code_char,
    iter_words,
    line_of,
    split_top_level,
)
from delphiscan.models import ExtractedMethod, MethodKind, Parameter, ParameterModifier

log = structlog.get_logger(__name__)

BLOCK_OPENERS = frozenset({"begin", "try", "case", "asm"})
# Local type declarations ahead of the body closed by their own `end`
DECLARATION_OPENERS = frozenset({"record"})
ROUTINE_KEYWORDS = frozenset({"procedure", "function", "constructor", "destructor"})

_HEADER_RE = re.compile(
    r"^[ \t]*(?:class[ \t]+)?"
    r"(?P<kind>procedure|function|constructor|destructor)\s+"
    r"(?:(?P<cls>[A-Za-z_]\w*(?:<[^>]*>)?)\s*\.\s*)?"
    r"(?P<name>[A-Za-z_]\w*)\s*"
    r"(?:\((?P<params>[^)]*)\))?\s*"
    r"(?::\s*(?P<ret>[^;]+?))?\s*;",
    re.IGNORECASE | re.MULTILINE,
)

# Declarations that have no body in this section
_BODILESS_RE = re.compile(
    r"(?:\s*(?:overload|stdcall|cdecl|register|pascal|safecall|winapi|inline|varargs"
    r"|static|platform|deprecated)\s*;)*\s*(?:forward|external)\b",
    re.IGNORECASE,
)

_FINAL_DOT_RE = re.compile(r"\s*\.")

_ATTRIBUTE_RE = re.compile(r"\[[^\]]*\]")

_MODIFIERS = {
    "var": ParameterModifier.VAR,
    "const": ParameterModifier.CONST,
    "constref": ParameterModifier.CONST,
    "out": ParameterModifier.OUT,
}


@dataclass(slots=True)
class _BodyScan:
    """State of one body walk."""

    pos: int
    depth: int = 0
    body_started: bool = False
    declaration_depth: int = 0


def implementation_section(source: str) -> tuple[int, str] | None:
    """Locate the implementation section of a unit.

    Returns ``(offset, text)`` for the text after the first code-level
    ``implementation`` keyword up to the final ``end.``, or None when the
    unit has no implementation section.
    """
    start: int | None = None
    final_end: int | None = None
    for w_start, w_end, word in iter_words(source):
        if start is None:
            if word == "implementation":
                start = w_end
            continue
        if word == "end" and _FINAL_DOT_RE.match(source, w_end):
            final_end = w_start
    if start is None:
        return None
    stop = len(source) if final_end is None else final_end
    return start, source[start:stop]


def _is_line_leading(section: str, pos: int) -> bool:
    line_start = section.rfind("\n", 0, pos) + 1
    return section[line_start:pos].strip().lower() in ("", "class")


def find_method_end(section: str, start: int, limit: int | None = None) -> tuple[int, bool]:
    """Walk from just after a method header to the end of its body.

    ``begin``/``try``/``case``/``asm`` open a block and mark the body as
    started; ``end`` closes one only once the body has started. When depth
    returns to zero the walk consumes through the next ``;``. A ``record``
    declared before the body is skipped up to its own ``end``, variant
    ``case`` parts included. Routines that start on their own line before
    the body (nested procedures) are walked recursively and skipped.

    Returns:
        ``(end_position, terminated)``. When ``limit`` is reached first the
        result is ``(limit, False)``.
    """
    limit = len(section) if limit is None else limit
    scan = _BodyScan(pos=start)
    restart = True
    while restart:
        restart = False
        for w_start, w_end, word in iter_words(section, scan.pos, limit):
            scan.pos = w_end
            if word in DECLARATION_OPENERS and not scan.body_started:
                scan.declaration_depth += 1
            elif scan.declaration_depth:
                if word == "end":
                    scan.declaration_depth -= 1
            elif word in BLOCK_OPENERS:
                scan.depth += 1
                scan.body_started = True
            elif word == "end":
                if not scan.body_started:
                    continue
                scan.depth -= 1
                if scan.depth == 0:
                    semi = find_code_char(section, ";", w_end, limit)
                    return (w_end if semi == -1 else semi + 1), True
            elif (
                word in ROUTINE_KEYWORDS
                and not scan.body_started
                and _is_line_leading(section, w_start)
            ):
                nested_end, terminated = find_method_end(section, w_end, limit)
                if not terminated:
                    return limit, False
                scan.pos = nested_end
                restart = True
                break
    return limit, False


def _header_matches(section: str) -> list[re.Match[str]]:
    """Method headers outside comments and strings, minus forward/external ones."""
    masked = blank_non_code(section, strings=True)
    headers = []
    for match in _HEADER_RE.finditer(masked):
        if _BODILESS_RE.match(masked, match.end()):
            continue
        headers.append(match)
    return headers


def extract_method(
    section: str,
    header: re.Match[str],
    *,
    limit: int,
    line_base: int = 1,
) -> tuple[int, ExtractedMethod]:
    """Cut one method out of ``section``.

    ``header`` is a header match from ``section`` (or an offset-preserving
    masked copy of it). A body that does not balance before ``limit`` is
    truncated there and marked ``is_terminated=False``.

    Returns:
        ``(next_position, method)``.
    """
    end, terminated = find_method_end(section, header.end(), limit)
    # Groups are read from a comment-free copy so defaults keep their literals
    clean = blank_non_code(section[header.start() : header.end()])
    offset = header.start()

    def group(name: str) -> str | None:
        if header.start(name) == -1:
            return None
        return clean[header.start(name) - offset : header.end(name) - offset]

    params_text = group("params")
    ret = group("ret")
    cls = group("cls")
    method = ExtractedMethod(
        name=header.group("name"),
        kind=MethodKind(header.group("kind").lower()),
        source_code=section[header.start() : end].strip(),
        start_line=line_base + line_of(section, header.start("kind")) - 1,
        containing_class=cls.strip() if cls else None,
        return_type=" ".join(ret.split()) if ret else None,
        parameters=tuple(parse_parameters(params_text)) if params_text else (),
        is_terminated=terminated,
    )
    return end, method


def extract_methods(source: str) -> Outcome[list[ExtractedMethod]]:
    """Extract every method from a unit's implementation section.

    Units without an implementation section (programs, include files) are
    scanned whole. Unterminated bodies are cut at the next header and
    reported as UNTERMINATED_METHOD warnings.
    """
    located = implementation_section(source)
    offset, section = located if located is not None else (0, source)
    line_base = line_of(source, offset)

    headers = _header_matches(section)
    methods: list[ExtractedMethod] = []
    warnings: list[ScanWarning] = []
    cursor = 0
    for index, header in enumerate(headers):
        if header.start() < cursor:
            # Nested routine, already part of the enclosing method
            continue
        end, method = extract_method(section, header, limit=len(section), line_base=line_base)
        if not method.is_terminated:
            next_start = next(
                (h.start() for h in headers[index + 1 :] if h.start() >= header.end()),
                len(section),
            )
            end, method = extract_method(
                section, header, limit=next_start, line_base=line_base
            )
            warnings.append(
                ScanWarning(
                    WarningKind.UNTERMINATED_METHOD,
                    f"Method body not terminated: {method.qualified_name} "
                    f"(line {method.start_line})",
                )
            )
            log.debug("method_unterminated", method=method.qualified_name, line=method.start_line)
        methods.append(method)
        cursor = end
    return Outcome(methods, warnings)


def parse_parameters(text: str) -> list[Parameter]:
    """Parse a formal parameter list (the text between the parentheses).

    Groups are separated by ``;``; each group is
    ``[modifier] name[, name...] [: type] [= default]``.
    """
    params: list[Parameter] = []
    for _, group in split_top_level(text, ";"):
        group = _ATTRIBUTE_RE.sub(" ", group).strip()
        if not group:
            continue
        modifier = ParameterModifier.NONE
        first, *rest = group.split(None, 1)
        if first.lower() in _MODIFIERS and rest:
            modifier = _MODIFIERS[first.lower()]
            group = rest[0].strip()

        names_part, type_part = _split_once(group, ":")
        type_text, default = "", None
        if type_part is not None:
            type_text, default_part = _split_once(type_part, "=")
            type_text = " ".join(type_text.split())
            default = default_part.strip() if default_part is not None else None
        for _, name in split_top_level(names_part, ","):
            name = name.strip()
            if name:
                params.append(Parameter(name, type_text, modifier, default))
    return params


def _split_once(text: str, sep: str) -> tuple[str, str | None]:
    pieces = split_top_level(text, sep)
    if len(pieces) == 1:
        return text, None
    head_end = pieces[1][0] - 1
    return text[:head_end], text[head_end + 1 :]
