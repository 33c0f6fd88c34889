"""Archive gateway: classify and extract release archives.

The pipeline treats the gateway as a trusted collaborator. ``classify``
decides whether an archive is safe, merely impolite (no single top-level
directory) or naughty (path traversal, links escaping the tree, special
files, or an oversized payload). Naughty archives are never extracted.
"""

from __future__ import annotations

import enum
import os
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import List, Protocol, Sequence, Tuple

from .errors import ArchiveError, NaughtyArchiveError
from .logging import get_logger

DEFAULT_MAX_ARCHIVE_SIZE = 1024 * 1024 * 1024

_TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar.bz2", ".tbz", ".tar", ".tar.z", ".tar.xz")


class Classification(str, enum.Enum):
    SAFE = "safe"
    IMPOLITE = "impolite"
    NAUGHTY = "naughty"


@dataclass(frozen=True)
class _Member:
    name: str
    size: int
    kind: str
    link_target: str | None = None


@dataclass
class ExtractedArchive:
    """Directory an archive was extracted into plus its member names."""

    directory: Path
    files: List[str] = field(default_factory=list)


class ArchiveGateway(Protocol):
    """Contract the release builder relies on."""

    def classify(self, archive: Path) -> Classification:
        ...

    def extract(self, archive: Path, directory: Path) -> ExtractedArchive:
        ...


class TarZipArchive:
    """Archive gateway for tarballs and zip files."""

    def __init__(self, *, max_size: int = DEFAULT_MAX_ARCHIVE_SIZE) -> None:
        self.max_size = max_size
        self.logger = get_logger("archive")

    def classify(self, archive: Path) -> Classification:
        members = self._members(archive)
        if self._is_naughty(members):
            return Classification.NAUGHTY
        if self._is_impolite(members):
            return Classification.IMPOLITE
        return Classification.SAFE

    def extract(self, archive: Path, directory: Path) -> ExtractedArchive:
        """Extract ``archive`` into ``directory``; refuses naughty archives."""
        if self.classify(archive) is Classification.NAUGHTY:
            raise NaughtyArchiveError(f"{archive} is being naughty")
        directory.mkdir(parents=True, exist_ok=True)
        if _is_zip(archive):
            with zipfile.ZipFile(archive) as handle:
                handle.extractall(directory)
                names = handle.namelist()
        else:
            with _open_tar(archive) as handle:
                handle.extractall(directory, filter="tar")
                names = handle.getnames()
        self.logger.debug("Extracted %d members from %s", len(names), archive.name)
        return ExtractedArchive(directory=directory, files=sorted(names))

    # ------------------------------------------------------------------
    # Internal helpers

    def _members(self, archive: Path) -> List[_Member]:
        if not archive.is_file():
            raise ArchiveError(f"Archive not found: {archive}")
        try:
            if _is_zip(archive):
                with zipfile.ZipFile(archive) as handle:
                    return [
                        _Member(
                            name=info.filename,
                            size=info.file_size,
                            kind="dir" if info.is_dir() else "file",
                        )
                        for info in handle.infolist()
                    ]
            with _open_tar(archive) as handle:
                return [_tar_member(info) for info in handle.getmembers()]
        except (tarfile.TarError, zipfile.BadZipFile, OSError, EOFError) as exc:
            raise ArchiveError(f"Unable to read {archive}: {exc}") from exc

    def _is_naughty(self, members: Sequence[_Member]) -> bool:
        total = 0
        for member in members:
            if member.kind == "special":
                return True
            if _escapes(member.name):
                return True
            if member.kind == "symlink" and member.link_target is not None:
                base = PurePosixPath(member.name).parent
                if _escapes(str(base / member.link_target)):
                    return True
            if member.kind == "hardlink" and member.link_target is not None:
                if _escapes(member.link_target):
                    return True
            total += member.size
        return total > self.max_size

    @staticmethod
    def _is_impolite(members: Sequence[_Member]) -> bool:
        tops = set()
        for member in members:
            parts = _parts(member.name)
            if not parts:
                continue
            if len(parts) == 1 and member.kind != "dir":
                return True
            tops.add(parts[0])
        return len(tops) != 1


def _tar_member(info: tarfile.TarInfo) -> _Member:
    if info.isdir():
        kind = "dir"
    elif info.issym():
        kind = "symlink"
    elif info.islnk():
        kind = "hardlink"
    elif info.isreg():
        kind = "file"
    else:
        kind = "special"
    target = info.linkname if info.issym() or info.islnk() else None
    return _Member(name=info.name, size=info.size, kind=kind, link_target=target)


def _parts(name: str) -> Tuple[str, ...]:
    return tuple(part for part in name.replace("\\", "/").split("/") if part not in ("", "."))


def _escapes(name: str) -> bool:
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or (len(normalized) > 1 and normalized[1] == ":"):
        return True
    depth = 0
    for part in _parts(normalized):
        depth += -1 if part == ".." else 1
        if depth < 0:
            return True
    return False


def _is_zip(archive: Path) -> bool:
    return archive.name.lower().endswith(".zip")


def _open_tar(archive: Path) -> tarfile.TarFile:
    lower = archive.name.lower()
    if not lower.endswith(_TAR_SUFFIXES):
        raise ArchiveError(f"Unsupported archive format: {archive.name}")
    return tarfile.open(os.fspath(archive), mode="r:*")


__all__ = [
    "ArchiveGateway",
    "Classification",
    "DEFAULT_MAX_ARCHIVE_SIZE",
    "ExtractedArchive",
    "TarZipArchive",
]
