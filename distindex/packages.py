"""Package index for Perl 6 dists (``p6dists.json.gz`` / ``p6provides.json.gz``)."""

from __future__ import annotations

import gzip
import json
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Set

from .errors import IndexerError

DISTS_INDEX = "p6dists.json.gz"
PROVIDES_INDEX = "p6provides.json.gz"


@dataclass(frozen=True)
class Packages:
    """Maps packages to the dist path that currently provides them.

    Dist paths are relative to ``authors/id``, e.g.
    ``J/JD/JDV/Perl6/Foo-Bar-1.0.tar.gz``.
    """

    pkg_ver: Dict[str, str] = field(default_factory=dict)
    pkg_to_dist: Dict[str, str] = field(default_factory=dict)
    dist_to_pkgs: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def load(cls, directory: Path) -> "Packages":
        dists = _read_index(directory / DISTS_INDEX)
        provides = _read_index(directory / PROVIDES_INDEX)
        pkg_ver: Dict[str, str] = {}
        pkg_to_dist: Dict[str, str] = {}
        dist_to_pkgs: Dict[str, List[str]] = {}
        for package in sorted(provides):
            for dist_path in provides[package] or []:
                info = dists.get(dist_path) or {}
                pkg_ver[package] = str(info.get("ver") or "").removeprefix("v")
                pkg_to_dist[package] = dist_path
                dist_to_pkgs.setdefault(dist_path, []).append(package)
        return cls(pkg_ver=pkg_ver, pkg_to_dist=pkg_to_dist, dist_to_pkgs=dist_to_pkgs)

    def archives(self) -> Set[str]:
        """Archive file names of every dist the index points at."""
        return {PurePosixPath(path).name for path in self.dist_to_pkgs}

    def package_version(self, package: str) -> str | None:
        return self.pkg_ver.get(package)


def _read_index(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(gzip.decompress(path.read_bytes()).decode("utf-8"))
    except (OSError, EOFError, gzip.BadGzipFile, json.JSONDecodeError) as exc:
        raise IndexerError(f"Unable to read package index {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise IndexerError(f"Package index {path} is not a mapping")
    return data


__all__ = ["DISTS_INDEX", "PROVIDES_INDEX", "Packages"]
