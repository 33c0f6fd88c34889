"""PAUSE upload permissions (``06perms.txt``)."""

from __future__ import annotations

import csv
import gzip
import io
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import PermissionsError
from .logging import get_logger

_OWNER_FLAGS = ("m", "f")


class Permissions(Mapping):
    """Immutable mapping of package name to the ids allowed to upload it.

    Owners (first-come or module-list) come first, co-maintainers after.
    """

    def __init__(self, entries: Optional[Mapping[str, Iterable[str]]] = None) -> None:
        self._entries = MappingProxyType(
            {
                name: tuple(author.upper() for author in authors)
                for name, authors in (entries or {}).items()
            }
        )

    def __getitem__(self, package: str) -> Tuple[str, ...]:
        return self._entries[package]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Permissions({len(self)} packages)"

    def owners(self, package: str) -> Tuple[str, ...]:
        return self._entries.get(package, ())

    def is_authorized(self, package: str, author: str) -> bool:
        """Unlisted packages are open to anyone."""
        owners = self.owners(package)
        return not owners or author.upper() in owners

    @classmethod
    def load(cls, path: Path) -> "Permissions":
        try:
            raw = path.read_bytes()
            if path.suffix == ".gz":
                raw = gzip.decompress(raw)
        except (OSError, EOFError, gzip.BadGzipFile) as exc:
            raise PermissionsError(f"Unable to read {path}: {exc}") from exc
        permissions = cls.parse(raw.decode("utf-8", errors="replace"))
        get_logger("permissions").info("Loaded permissions for %d packages", len(permissions))
        return permissions

    @classmethod
    def parse(cls, text: str) -> "Permissions":
        """Parse ``06perms.txt``: a header block, a blank line, then CSV rows."""
        _, separator, body = text.partition("\n\n")
        if not separator:
            body = text
        owners: Dict[str, List[str]] = {}
        comaint: Dict[str, List[str]] = {}
        for row in csv.reader(io.StringIO(body)):
            if len(row) < 3 or not row[0].strip():
                continue
            package, author, flag = (column.strip() for column in row[:3])
            target = owners if flag in _OWNER_FLAGS else comaint
            authors = target.setdefault(package, [])
            if author.upper() not in authors:
                authors.append(author.upper())
        merged: Dict[str, List[str]] = {}
        for package in sorted(set(owners) | set(comaint)):
            ids = list(owners.get(package, []))
            ids.extend(author for author in comaint.get(package, []) if author not in ids)
            merged[package] = ids
        return cls(merged)


__all__ = ["Permissions"]
