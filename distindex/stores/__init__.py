"""Document storage and the query algebra used to search it."""

from .document_store import DOCUMENT_TYPES, BulkWriter, DocumentExistsError, DocumentStore
from .query import (
    And,
    Exists,
    MatchAll,
    Nested,
    Not,
    Or,
    Prefix,
    Query,
    SortField,
    Term,
    Terms,
    field_values,
    sort_documents,
)

__all__ = [
    "And",
    "BulkWriter",
    "DOCUMENT_TYPES",
    "DocumentExistsError",
    "DocumentStore",
    "Exists",
    "MatchAll",
    "Nested",
    "Not",
    "Or",
    "Prefix",
    "Query",
    "SortField",
    "Term",
    "Terms",
    "field_values",
    "sort_documents",
]
