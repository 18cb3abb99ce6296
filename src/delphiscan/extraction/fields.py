"""Dataset field reads inside method bodies.

Recognizes ``FieldByName('X').AsType``, ``FieldValues['X']`` and the
``DataSet['X']`` indexer shorthand, and infers the Delphi type from the
accessor used. A field tested with ``.IsNull`` anywhere in the body is
marked as null-checked.
"""

from __future__ import annotations

import re

from delphiscan.extraction.lexer import blank_non_code, line_of
from delphiscan.models import ExtractedMethod, FieldAccess

ACCESSOR_TYPES: dict[str, str] = {
    # Strings
    "asstring": "String",
    "aswidestring": "WideString",
    "asansistring": "AnsiString",
    # Integers
    "asinteger": "Integer",
    "assmallint": "SmallInt",
    "aslargeint": "Int64",
    "aslongint": "LongInt",
    "asword": "Word",
    "asbyte": "Byte",
    "asshortint": "ShortInt",
    # Floating point
    "asfloat": "Double",
    "asextended": "Extended",
    "assingle": "Single",
    "ascurrency": "Currency",
    "asbcd": "TBCD",
    "asfmtbcd": "TBCD",
    # Date and time
    "asdatetime": "TDateTime",
    "asdate": "TDate",
    "astime": "TTime",
    "assqltimestamp": "TSQLTimeStamp",
    # Other
    "asboolean": "Boolean",
    "asbytes": "TBytes",
    "asblob": "TBlob",
    "asblobref": "TBlobRef",
    "asguid": "TGUID",
    "asvariant": "Variant",
    "value": "Variant",
}

_QUOTED_NAME = r"""['"](?P<field>\w+)['"]"""

_FIELD_BY_NAME_RE = re.compile(
    r"(?:(?P<dataset>[A-Za-z_][\w.]*?)\s*\.\s*)?FieldByName\s*\(\s*"
    + _QUOTED_NAME
    + r"\s*\)\s*\.\s*(?P<accessor>As\w+|Value)\b",
    re.IGNORECASE,
)
_FIELD_VALUES_RE = re.compile(
    r"(?:(?P<dataset>[A-Za-z_][\w.]*?)\s*\.\s*)?FieldValues\s*\[\s*" + _QUOTED_NAME + r"\s*\]",
    re.IGNORECASE,
)
_INDEXER_RE = re.compile(
    r"\b(?P<dataset>qr\w*|Query\w*|DataSet\w*|ds\w*|Q)\s*\[\s*" + _QUOTED_NAME + r"\s*\]",
    re.IGNORECASE,
)
_NULL_CHECK_RE = re.compile(
    r"FieldByName\s*\(\s*" + _QUOTED_NAME + r"\s*\)\s*\.\s*IsNull\b",
    re.IGNORECASE,
)


def accessor_type(accessor: str) -> str:
    """Delphi type read by a TField accessor, ``Variant`` when unknown."""
    return ACCESSOR_TYPES.get(accessor.lower(), "Variant")


def extract_field_accesses(
    body: str,
    *,
    line_offset: int = 0,
    method: ExtractedMethod | None = None,
) -> list[FieldAccess]:
    """Distinct field reads in ``body``, in order of first appearance.

    A field read with a typed accessor wins over an untyped
    ``FieldValues``/indexer read of the same field.
    """
    clean = blank_non_code(body)
    null_checked = {m.group("field").lower() for m in _NULL_CHECK_RE.finditer(clean)}

    found: dict[str, FieldAccess] = {}
    candidates: list[tuple[int, re.Match[str], str]] = []
    for m in _FIELD_BY_NAME_RE.finditer(clean):
        candidates.append((m.start("field"), m, m.group("accessor")))
    for pattern in (_FIELD_VALUES_RE, _INDEXER_RE):
        for m in pattern.finditer(clean):
            candidates.append((m.start("field"), m, "Value"))

    typed_first = sorted(candidates, key=lambda c: (c[2].lower() == "value", c[0]))
    for pos, m, accessor in typed_first:
        key = m.group("field").lower()
        if key in found:
            continue
        found[key] = FieldAccess(
            field_name=m.group("field"),
            delphi_type=accessor_type(accessor),
            accessor=accessor,
            line=line_offset + line_of(clean, pos),
            dataset=m.group("dataset"),
            checks_null=key in null_checked,
            method_name=method.qualified_name if method is not None else None,
        )
    return sorted(found.values(), key=lambda f: f.line)
