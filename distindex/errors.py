"""Exception hierarchy shared across the indexing pipeline."""

from __future__ import annotations

from typing import List, Sequence


class IndexerError(RuntimeError):
    """Base class for errors that abort the processing of one archive."""


class ConfigError(IndexerError):
    """Raised when the configuration file cannot be parsed."""


class VersionError(IndexerError, ValueError):
    """Raised when a version string cannot be normalized."""

    def __init__(self, raw: object) -> None:
        super().__init__(f"version ({raw!r}) unhandled")
        self.raw = raw


class MetadataError(IndexerError):
    """Raised when release metadata cannot be loaded from any candidate."""

    def __init__(self, message: str, errors: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.errors: List[str] = list(errors)


class ArchiveError(IndexerError):
    """Raised when an archive is unreadable or of an unsupported format."""


class NaughtyArchiveError(ArchiveError):
    """Raised when an archive is classified as unsafe to extract."""


class ScanTimeout(IndexerError, TimeoutError):
    """Raised when a module scan exceeds its deadline."""


class RenderError(IndexerError):
    """Raised when documentation cannot be rendered to text."""


class PermissionsError(IndexerError):
    """Raised when the permissions table cannot be read."""


__all__ = [
    "ArchiveError",
    "ConfigError",
    "IndexerError",
    "MetadataError",
    "NaughtyArchiveError",
    "PermissionsError",
    "RenderError",
    "ScanTimeout",
    "VersionError",
]
