"""Fact extraction from Object Pascal source text."""

from delphiscan.extraction.fields import extract_field_accesses
from delphiscan.extraction.methods import (
    extract_method,
    extract_methods,
    find_method_end,
    implementation_section,
    parse_parameters,
)
from delphiscan.extraction.quoting import (
    FIREBIRD_RESERVED_WORDS,
    quote_if_reserved,
    quote_reserved_words,
)
from delphiscan.extraction.sql import ResolvedExpression, extract_queries, resolve_expression

__all__ = [
    "FIREBIRD_RESERVED_WORDS",
    "ResolvedExpression",
    "extract_field_accesses",
    "extract_method",
    "extract_methods",
    "extract_queries",
    "find_method_end",
    "implementation_section",
    "parse_parameters",
    "quote_if_reserved",
    "quote_reserved_words",
    "resolve_expression",
]
