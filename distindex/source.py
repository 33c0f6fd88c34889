"""Locate the source of a released file, extracting its archive on demand."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Optional

from .archive import ArchiveGateway, Classification, TarZipArchive
from .distinfo import author_dir
from .errors import ArchiveError
from .logging import get_logger

_ARCHIVE_SUFFIX = r"\.(tgz|tbz|tar[._-]gz|tar\.bz2|tar\.Z|zip|7z)$"


class SourceLocator:
    """Finds ``author/release/path`` below ``base_dir``.

    Releases are extracted into ``base_dir/<author>/<release>`` the first
    time one of their files is requested. A release directory that exists
    but lacks the file means the file is not part of the release.
    """

    def __init__(
        self,
        base_dir: Path,
        cpan: Path,
        *,
        perl6: bool = False,
        gateway: Optional[ArchiveGateway] = None,
        extra_dirs: Iterable[Path] = (),
    ) -> None:
        self.base_dir = base_dir
        self.cpan = cpan
        self.perl6 = perl6
        self.gateway = gateway or TarZipArchive()
        self.extra_dirs = tuple(extra_dirs)
        self.logger = get_logger("source")

    def path(self, author: str, release: str, file: str = "") -> Optional[Path]:
        source_dir = self.base_dir / author / release
        found = self.find_file(source_dir, file)
        if found is not None:
            return found
        if source_dir.exists():
            return None

        archive = self.find_archive(author, release)
        if archive is None:
            return None
        try:
            if self.gateway.classify(archive) is Classification.NAUGHTY:
                self.logger.error("Refusing to extract naughty archive %s", archive)
                return None
            source_dir.mkdir(parents=True, exist_ok=True)
            self.gateway.extract(archive, source_dir)
        except ArchiveError as exc:
            self.logger.warning("Unable to extract %s: %s", archive, exc)
            return None
        return self.find_file(source_dir, file)

    def find_archive(self, author: str, release: str) -> Optional[Path]:
        relative = author_dir(author) + ("/Perl6" if self.perl6 else "")
        pattern = re.compile(rf"^{re.escape(release)}{_ARCHIVE_SUFFIX}")
        for root in (self.cpan / "authors" / "id", *self.extra_dirs):
            directory = root / relative
            if not directory.is_dir():
                continue
            for candidate in sorted(directory.rglob("*")):
                if candidate.is_file() and pattern.match(candidate.name):
                    return candidate
        return None

    @staticmethod
    def find_file(directory: Path, file: str) -> Optional[Path]:
        if not directory.is_dir():
            return None
        if not file:
            subdirs = sorted(child for child in directory.iterdir() if child.is_dir())
            return subdirs[0] if subdirs else directory
        for pattern in (f"*/{file}", file):
            matches = sorted(directory.glob(pattern))
            if matches:
                return matches[0]
        return None


__all__ = ["SourceLocator"]
