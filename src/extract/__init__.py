"""Entity extraction for spanguard-core."""

from extract.hashing import compact_digest, create_digest, full_digest, hashes_match
from extract.listing import extract_by_hashes, list_functions, list_variables
from extract.records import (
    EnclosingContext,
    ExtractionResult,
    FunctionRecord,
    Record,
    VariableRecord,
)
from extract.walker import extract_entities, extract_file, extract_source

__all__ = [
    "EnclosingContext",
    "ExtractionResult",
    "FunctionRecord",
    "Record",
    "VariableRecord",
    "compact_digest",
    "create_digest",
    "extract_by_hashes",
    "extract_entities",
    "extract_file",
    "extract_source",
    "full_digest",
    "hashes_match",
    "list_functions",
    "list_variables",
]
