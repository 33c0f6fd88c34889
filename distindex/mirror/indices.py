"""Rebuild the Perl 6 package indices from an authors tree."""

from __future__ import annotations

import fnmatch
import gzip
import json
import re
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..logging import get_logger
from ..packages import DISTS_INDEX, PROVIDES_INDEX

logger = get_logger("mirror")


@dataclass
class IndexBuild:
    """Outcome of :func:`build_indices`."""

    dists: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    provides: Dict[str, List[str]] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


def build_indices(authors_dir: Path, *, skip: Sequence[str] = ()) -> IndexBuild:
    """Scan ``authors/id/*/*/*/Perl6/*gz`` and write both indices.

    The indices land next to the ``id`` directory. Archives whose
    ``META6.json`` is missing or broken are logged and left out; ``skip``
    holds regular expressions for dist paths to ignore outright.
    """
    build = IndexBuild()
    patterns = [re.compile(pattern) for pattern in skip]
    for archive in sorted(authors_dir.glob("*/*/*/Perl6/*gz")):
        dist_path = archive.relative_to(authors_dir).as_posix()
        if any(pattern.search(dist_path) for pattern in patterns):
            continue
        meta = _read_meta(archive)
        if meta is None:
            build.skipped.append(dist_path)
            continue
        build.dists[dist_path] = {
            "name": meta.get("name"),
            "auth": dist_path.split("/")[2],
            "ver": meta.get("version"),
        }
        provides = meta.get("provides") or {}
        for package in provides if isinstance(provides, dict) else ():
            build.provides.setdefault(package, []).append(dist_path)

    indices_dir = authors_dir.parent
    _write_index(indices_dir / DISTS_INDEX, build.dists)
    _write_index(indices_dir / PROVIDES_INDEX, build.provides)
    logger.info(
        "Indexed %d dists providing %d packages (%d skipped)",
        len(build.dists),
        len(build.provides),
        len(build.skipped),
    )
    return build


def _read_meta(archive: Path) -> Optional[Dict[str, Any]]:
    try:
        with tarfile.open(archive, mode="r:gz") as handle:
            for member in handle.getmembers():
                if member.isfile() and fnmatch.fnmatch(member.name, "*/META6.json"):
                    extracted = handle.extractfile(member)
                    if extracted is None:
                        break
                    data = json.loads(extracted.read().decode("utf-8"))
                    if isinstance(data, dict):
                        return data
                    break
    except (tarfile.TarError, OSError, EOFError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("meta decode failure (%s): %s", archive, exc)
        return None
    logger.warning("meta decode failure (%s): no META6.json", archive)
    return None


def _write_index(path: Path, data: Dict[str, Any]) -> None:
    text = json.dumps(data, indent=3, sort_keys=True, ensure_ascii=False) + "\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as raw, gzip.GzipFile(fileobj=raw, mode="wb", mtime=0) as handle:
        handle.write(text.encode("utf-8"))


__all__ = ["IndexBuild", "build_indices"]
