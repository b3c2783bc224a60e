"""Parsing utilities for spanguard-core."""

from parse.calls import CallSite, extract_calls
from parse.imports import (
    ExportRecord,
    ImportRecord,
    ModuleTable,
    extract_module_table,
    resolve_import_path,
)
from parse.spans import Span, normalize_span
from parse.treesitter_js import ParsedSource, dialect_for_path, parse_source

__all__ = [
    "CallSite",
    "ExportRecord",
    "ImportRecord",
    "ModuleTable",
    "ParsedSource",
    "Span",
    "dialect_for_path",
    "extract_calls",
    "extract_module_table",
    "normalize_span",
    "parse_source",
    "resolve_import_path",
]
