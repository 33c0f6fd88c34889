"""Parse distribution name, version and author out of CPAN archive paths."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional, Tuple

_AUTHOR_PATH = re.compile(
    r"^(((.*?/)?authors/)?id/)?([A-Z])/(\4[A-Z])/(\5[-A-Z0-9]*)/"
)
_ARCHIVE_NAME = re.compile(
    r"([^/]+)\.(tar\.(?:g?z|bz2|Z)|tar|zip|tgz|tbz|7z)$", re.IGNORECASE
)
_DISTNAME = re.compile(
    r"""^
    ((?:[-+.]*(?:[A-Za-z0-9]+|(?<=\D)_|_(?=\D))*
     (?:
        [A-Za-z](?=[^A-Za-z]|$)
        |
        \d(?=-)
     )(?<![._-][vV])
    )+)(.*)
    $""",
    re.VERBOSE | re.DOTALL,
)
_PERL_RELEASE = re.compile(r"^perl-?\d+\.(\d+)(?:\D(\d+))?(-(?:TRIAL|RC)\d+)?$")


def split_distname(distvname: str) -> Tuple[str, Optional[str], bool]:
    """Split ``Foo-Bar-1.23`` into ``("Foo-Bar", "1.23", is_developer)``."""
    match = _DISTNAME.match(distvname)
    if match is None:
        return distvname, None, False
    dist, version = match.group(1), match.group(2)

    if dist.endswith("-undef") and not version:
        dist = dist[: -len("-undef")]
    version = re.sub(r"-withoutworldwriteables$", "", version)

    # Unicode-Collate-Standard-V3_1_1-0.1: the V3_1_1 belongs to the name.
    special = re.match(r"^(-[Vv].*)-(\d.*)", version)
    if special:
        dist += special.group(1)
        version = special.group(2)
    # Task-Deprecations5_14-1.00: the 5_14 belongs to the name.
    special = re.match(r"(.+_.*)-(\d.*)", version)
    if special:
        dist += special.group(1)
        version = special.group(2)

    dist = re.sub(r"\.pm$", "", dist)
    if not version:
        trailing = re.search(r"-(\d+\w)$", dist)
        if trailing:
            version = trailing.group(1)
            dist = dist[: trailing.start()]
    if re.fullmatch(r"\d+", version or ""):
        trailing = re.search(r"-(\w+)$", dist)
        if trailing:
            version = trailing.group(1) + version
            dist = dist[: trailing.start()]

    if re.search(r"\d\.\d", version):
        version = re.sub(r"^[-_.]+", "", version)
    else:
        version = re.sub(r"^[-_]+", "", version)

    developer = False
    if version:
        perl = _PERL_RELEASE.match(distvname)
        if perl:
            minor = int(perl.group(1))
            patch = int(perl.group(2)) if perl.group(2) else 0
            developer = bool((minor > 6 and minor & 1) or patch >= 50 or perl.group(3))
        elif re.search(r"\d\D\d+_\d", version) or "-TRIAL" in version:
            developer = True
        return dist, version, developer
    return dist, None, False


@dataclass(frozen=True)
class DistInfo:
    """Facts derived from an archive's location under ``authors/id``."""

    pathname: str
    filename: str
    cpanid: str
    distvname: str
    dist: str
    version: Optional[str]
    maturity: str
    extension: Optional[str]

    @classmethod
    def from_path(cls, path: str | PurePosixPath) -> "DistInfo":
        pathname = re.sub(r"//+", "/", str(path).replace("\\", "/"))
        cpanid = ""
        filename = pathname
        author_match = _AUTHOR_PATH.search(pathname)
        if author_match:
            cpanid = author_match.group(6)
            filename = pathname[author_match.end():]
        else:
            filename = PurePosixPath(pathname).name

        archive = _ARCHIVE_NAME.search(filename)
        if archive:
            distvname, extension = archive.group(1), archive.group(2)
        else:
            distvname, extension = PurePosixPath(filename).name, None

        dist, version, developer = split_distname(distvname)
        return cls(
            pathname=pathname,
            filename=filename,
            cpanid=cpanid,
            distvname=distvname,
            dist=dist,
            version=version,
            maturity="developer" if developer else "released",
            extension=extension,
        )


def author_dir(cpanid: str) -> str:
    """Return the ``id/`` sub-path for an author, e.g. ``D/DO/DOY``."""
    return f"{cpanid[:1]}/{cpanid[:2]}/{cpanid}"


__all__ = ["DistInfo", "author_dir", "split_distname"]
