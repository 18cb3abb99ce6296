"""Unit, form and uses-clause parsing.

Works on raw source text: comments are blanked first so a ``uses`` or
``class`` inside a comment is never picked up. Nothing here touches the file
system; the resolver reads files and passes the text in.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from delphiscan.config.constants import SYSTEM_UNIT_PREFIXES
from delphiscan.extraction.lexer import blank_non_code, split_top_level
from delphiscan.extraction.methods import implementation_section
from delphiscan.models import DelphiClass, DelphiRecord, Form, FormComponent, Unit

_UNIT_RE = re.compile(r"^\s*unit\s+([\w.]+)\s*;", re.IGNORECASE | re.MULTILINE)
_PROGRAM_RE = re.compile(
    r"^\s*(?:program|library|package)\s+([\w.]+)\s*;", re.IGNORECASE | re.MULTILINE
)
_USES_RE = re.compile(r"\buses\b([^;]*);", re.IGNORECASE)
_USES_ENTRY_RE = re.compile(r"""^\s*([\w.]+)(?:\s+in\s+['"]([^'"]+)['"])?""", re.IGNORECASE)

_CONDITIONAL_RE = re.compile(
    r"\{\$(?:IFDEF|IFNDEF|ELSE|ENDIF|DEFINE|UNDEF|IF\s|IFEND|ELSEIF)[^}]*\}",
    re.IGNORECASE,
)

_CLASS_RE = re.compile(
    r"\b(?P<name>[A-Za-z_]\w*)(?:<[^>]*>)?\s*=\s*class\b(?!\s*(?:of|helper)\b)"
    r"(?:\s+(?:abstract|sealed))?(?:\s*\(\s*(?P<parent>[A-Za-z_][\w.]*))?",
    re.IGNORECASE,
)
_RECORD_RE = re.compile(r"\b([A-Za-z_]\w*)\s*=\s*(?:packed\s+)?record\b", re.IGNORECASE)

_FORM_RESOURCE_RE = re.compile(r"""\{\$R\s+['"]?\*\.(?:dfm|fmx)['"]?\s*\}""", re.IGNORECASE)
_FORM_CLASS_RE = re.compile(
    r"\b(T\w+)\s*=\s*class\s*\(\s*(TForm|TDataModule|TFrame)\s*\)", re.IGNORECASE
)

_DFM_HEADER_RE = re.compile(
    r"^\s*(?:object|inherited|inline)\s+(\w+)\s*:\s*([\w.]+)", re.IGNORECASE
)
_DFM_COMPONENT_RE = re.compile(
    r"^[ \t]+(?:object|inherited|inline)\s+(\w+)\s*:\s*([\w.]+)", re.IGNORECASE | re.MULTILINE
)


@dataclass(frozen=True, slots=True)
class UsesEntry:
    """One name of a uses clause, with its ``in 'path'`` part if any."""

    name: str
    in_path: str | None = None


def relative_to_root(path: Path, root: Path) -> str:
    """Forward-slash path of ``path`` relative to ``root``."""
    return os.path.relpath(path, root).replace("\\", "/")


def strip_conditional_directives(text: str) -> str:
    """Delete conditional-compilation markers without evaluating them.

    Both branches of an ``{$IFDEF}`` survive, so units referenced under any
    condition are seen.
    """
    return _CONDITIONAL_RE.sub("", text)


def is_system_unit(name: str, extra_prefixes: Iterable[str] = ()) -> bool:
    """True for runtime/VCL/FMX units that never live in the project tree."""
    lowered = name.lower()
    return any(lowered.startswith(p.lower()) for p in (*SYSTEM_UNIT_PREFIXES, *extra_prefixes))


def uses_entries(text: str) -> list[UsesEntry]:
    """Every entry of every uses clause in ``text``, in source order."""
    clean = blank_non_code(strip_conditional_directives(text))
    # Find clauses with literals blanked too, then read the entries (which
    # may carry 'path' literals) from the same span of the comment-free text.
    code_only = blank_non_code(clean, strings=True)
    entries: list[UsesEntry] = []
    for m in _USES_RE.finditer(code_only):
        clause = clean[m.start(1) : m.end(1)]
        for _, piece in split_top_level(clause, ","):
            entry = _USES_ENTRY_RE.match(piece)
            if entry is not None:
                path = entry.group(2)
                entries.append(UsesEntry(entry.group(1), path.strip() if path else None))
    return entries


def parse_uses_clause(text: str) -> list[str]:
    """Unit names referenced by the uses clauses in ``text``."""
    return [entry.name for entry in uses_entries(text)]


def entry_point_name(text: str, file_path: Path) -> str:
    """Name from ``program X;`` / ``library X;``, falling back to the file stem."""
    m = _PROGRAM_RE.search(blank_non_code(text))
    return m.group(1) if m else file_path.stem


def _classes(clean: str) -> list[DelphiClass]:
    found: dict[str, DelphiClass] = {}
    for m in _CLASS_RE.finditer(clean):
        name, parent = m.group("name"), m.group("parent")
        key = name.lower()
        # A forward declaration ("TFoo = class;") is replaced by the full one
        if key not in found or (found[key].parent is None and parent is not None):
            found[key] = DelphiClass(name, parent)
    return list(found.values())


def _records(clean: str) -> list[DelphiRecord]:
    seen: set[str] = set()
    records: list[DelphiRecord] = []
    for m in _RECORD_RE.finditer(clean):
        if m.group(1).lower() not in seen:
            seen.add(m.group(1).lower())
            records.append(DelphiRecord(m.group(1)))
    return records


def _detect_form(unit: Unit, text: str) -> None:
    if not _FORM_RESOURCE_RE.search(text):
        return
    unit.is_form = True
    unit.has_form = True
    m = _FORM_CLASS_RE.search(text)
    if m is not None:
        unit.form_name = m.group(1)
        unit.form_type = m.group(2)
    elif "tdatamodule" in text.lower():
        unit.form_type = "TDataModule"
    elif "(tframe)" in text.lower():
        unit.form_type = "TFrame"
    else:
        unit.form_type = "TForm"
    kind = unit.form_type.lower()
    unit.is_data_module = kind == "tdatamodule"
    unit.is_frame = kind == "tframe"


def parse_unit(text: str, file_path: Path, root: Path, *, size_bytes: int | None = None) -> Unit:
    """Build a Unit from the text of a ``.pas`` file.

    Methods are not extracted here; the scan pipeline does that per unit.
    """
    clean = blank_non_code(strip_conditional_directives(text))
    m = _UNIT_RE.search(clean)
    unit = Unit(
        name=m.group(1) if m else file_path.stem,
        file_path=file_path,
        relative_path=relative_to_root(file_path, root),
        size_bytes=len(text.encode("utf-8")) if size_bytes is None else size_bytes,
        line_count=text.count("\n") + 1,
    )
    _detect_form(unit, text)

    located = implementation_section(clean)
    split_at = located[0] if located is not None else len(clean)
    unit.uses_interface = parse_uses_clause(clean[:split_at])
    unit.uses_implementation = parse_uses_clause(clean[split_at:])
    unit.classes = _classes(clean)
    unit.records = _records(clean)
    return unit


def parse_form(text: str, file_path: Path, root: Path, *, size_bytes: int | None = None) -> Form:
    """Build a Form from a text ``.dfm``.

    Binary forms yield a form named after the file with no components.
    """
    first_line = text.split("\n", 1)[0]
    header = _DFM_HEADER_RE.match(first_line)
    return Form(
        name=header.group(1) if header else file_path.stem,
        file_path=file_path,
        relative_path=relative_to_root(file_path, root),
        class_name=header.group(2) if header else None,
        components=[
            FormComponent(m.group(1), m.group(2)) for m in _DFM_COMPONENT_RE.finditer(text)
        ],
        size_bytes=len(text.encode("utf-8")) if size_bytes is None else size_bytes,
    )
