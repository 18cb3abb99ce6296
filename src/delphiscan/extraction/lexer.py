"""Character-level helpers for Object Pascal text.

Pascal has three comment forms (``// ...``, ``{ ... }`` and ``(* ... *)``)
and single-quoted strings where ``''`` is an escaped quote. Everything that
looks for keywords or separators goes through ``skip_non_code`` so a
``begin`` or ``;`` inside a comment or literal is never seen.

Compiler directives (``{$IFDEF X}``) are brace comments and are skipped the
same way.
"""

from __future__ import annotations

from collections.abc import Iterator

_OPENERS = {"(": ")", "[": "]"}


def is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def word_end(text: str, pos: int) -> int:
    """Index just past the identifier starting at ``pos``."""
    n = len(text)
    while pos < n and is_ident_char(text[pos]):
        pos += 1
    return pos


def skip_string(text: str, pos: int) -> int:
    """Index just past the string literal opening at ``pos``.

    A literal never spans lines; an unterminated one stops at the newline.
    """
    n = len(text)
    i = pos + 1
    while i < n:
        ch = text[i]
        if ch == "'":
            if i + 1 < n and text[i + 1] == "'":
                i += 2
                continue
            return i + 1
        if ch == "\n":
            return i
        i += 1
    return n


def skip_comment(text: str, pos: int) -> int:
    """Index just past the comment opening at ``pos``, or ``pos`` if none opens there.

    Unterminated block comments run to the end of the text.
    """
    ch = text[pos]
    if ch == "/" and text.startswith("//", pos):
        end = text.find("\n", pos)
        return len(text) if end == -1 else end
    if ch == "{":
        end = text.find("}", pos + 1)
        return len(text) if end == -1 else end + 1
    if ch == "(" and text.startswith("(*", pos):
        end = text.find("*)", pos + 2)
        return len(text) if end == -1 else end + 2
    return pos


def skip_non_code(text: str, pos: int) -> int:
    """Skip a comment or string literal starting at ``pos``.

    Returns ``pos`` unchanged when the character there is ordinary code.
    """
    if text[pos] == "'":
        return skip_string(text, pos)
    return skip_comment(text, pos)


def blank_non_code(text: str, *, strings: bool = False) -> str:
    """Replace comments (and optionally string literals) with spaces.

    Newlines are kept, so offsets and line numbers in the result match the
    input exactly.
    """
    out: list[str] = []
    pos = 0
    n = len(text)
    while pos < n:
        ch = text[pos]
        if ch == "'":
            end = skip_string(text, pos)
            if strings:
                out.append(_blank(text[pos:end]))
            else:
                out.append(text[pos:end])
            pos = end
            continue
        end = skip_comment(text, pos)
        if end != pos:
            out.append(_blank(text[pos:end]))
            pos = end
            continue
        out.append(ch)
        pos += 1
    return "".join(out)


def _blank(chunk: str) -> str:
    return "".join("\n" if c == "\n" else " " for c in chunk)


def iter_words(text: str, start: int = 0, end: int | None = None) -> Iterator[tuple[int, int, str]]:
    """Yield ``(start, end, lowercase word)`` for every code-level identifier.

    ``&begin`` style escaped identifiers are never reported, since they can
    not be keywords.
    """
    limit = len(text) if end is None else end
    pos = start
    while pos < limit:
        skipped = skip_non_code(text, pos)
        if skipped != pos:
            pos = skipped
            continue
        ch = text[pos]
        if ch == "&":
            pos = word_end(text, pos + 1)
            continue
        if is_ident_start(ch):
            stop = word_end(text, pos)
            yield pos, stop, text[pos:stop].lower()
            pos = stop
            continue
        if ch.isdigit() or ch in "#$":
            # Numbers, char codes and hex literals: 1E5, #13, $FF
            pos = word_end(text, pos + 1)
            continue
        pos += 1


def find_code_char(text: str, char: str, start: int, end: int | None = None) -> int:
    """Position of the next code-level ``char``, or -1."""
    limit = len(text) if end is None else end
    pos = start
    while pos < limit:
        skipped = skip_non_code(text, pos)
        if skipped != pos:
            pos = skipped
            continue
        if text[pos] == char:
            return pos
        pos += 1
    return -1


def split_top_level(text: str, sep: str, *, nested: bool = True) -> list[tuple[int, str]]:
    """Split on ``sep`` outside string literals.

    With ``nested`` the separator is also ignored inside ``( )`` and ``[ ]``.
    Comments must already be blanked. Returns ``(offset, piece)`` pairs so
    callers can map pieces back to source lines.
    """
    pieces: list[tuple[int, str]] = []
    stack: list[str] = []
    piece_start = 0
    pos = 0
    n = len(text)
    while pos < n:
        ch = text[pos]
        if ch == "'":
            pos = skip_string(text, pos)
            continue
        if nested:
            if ch in _OPENERS:
                stack.append(_OPENERS[ch])
            elif stack and ch == stack[-1]:
                stack.pop()
        if ch == sep and not stack:
            pieces.append((piece_start, text[piece_start:pos]))
            piece_start = pos + 1
        pos += 1
    pieces.append((piece_start, text[piece_start:]))
    return pieces


def line_of(text: str, offset: int) -> int:
    """1-based line number of ``offset`` within ``text``."""
    return text.count("\n", 0, offset) + 1
