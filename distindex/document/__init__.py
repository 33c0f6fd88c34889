"""Documents written to the store."""

from .file import NOT_PERL_FILES, BytesContent, ContentProvider, File, PathContent, document_id

__all__ = [
    "BytesContent",
    "ContentProvider",
    "File",
    "NOT_PERL_FILES",
    "PathContent",
    "document_id",
]
