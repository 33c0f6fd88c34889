"""Version normalization helpers.

Two flavours live here. :func:`normalize_version` is the strict normalizer
used for Perl 6 releases and the ecosystem mirror: it produces a ``v``-prefixed
dotted display string and a numeric value whose ordering follows component
ordering (``1.2 < 1.10 < 2.0``). :func:`fix_version` and :func:`numify_version`
are the lenient CPAN helpers used for Perl 5 releases and for the versions
declared by individual modules, where decimal versions (``1.23``) are common.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from .errors import VersionError

SENTINEL_VERSION = "v0"

_LEADING_NUMERIC = re.compile(r"^[vV]?(\d+(?:\.\d+)*)")
_DOTTED = re.compile(r"^v?\d+(?:\.\d+){2,}$|^v\d+(?:\.\d+)*$")
_DECIMAL = re.compile(r"^\d*(?:\.\d+)?$")


@dataclass(frozen=True)
class NormalizedVersion:
    """Canonical display form of a version plus its numeric sort key."""

    display: str
    numified: float

    @property
    def is_sentinel(self) -> bool:
        return self.display == SENTINEL_VERSION


def normalize_version(raw: object) -> NormalizedVersion:
    """Normalize an author-supplied version.

    ``None``, an empty string and ``"*"`` yield the sentinel ``v0``. A leading
    numeric run (optionally ``v``-prefixed) is kept and the rest discarded.
    Anything else raises :class:`VersionError`.
    """
    if raw is None:
        return NormalizedVersion(SENTINEL_VERSION, 0.0)
    text = str(raw).strip()
    if not text or text == "*":
        return NormalizedVersion(SENTINEL_VERSION, 0.0)
    match = _LEADING_NUMERIC.match(text)
    if match is None:
        raise VersionError(raw)
    run = match.group(1)
    return NormalizedVersion(f"v{run}", _numify_components(run.split(".")))


def _numify_components(parts: List[str]) -> float:
    head = int(parts[0])
    fraction = "".join(f"{int(part):03d}" for part in parts[1:])
    return float(f"{head}.{fraction or '0'}")


def fix_version(version: object) -> str:
    """Clean up a CPAN version string without ever failing.

    Mirrors the usual CPAN tolerance: trailing junk is dropped, repeated
    separators collapse, multi-dot versions keep a ``v`` prefix and an empty
    result becomes ``"0"``.
    """
    if version is None:
        return "0"
    text = str(version)
    had_v = bool(re.match(r"^v", text, flags=re.IGNORECASE))
    text = re.sub(r"^v", "", text, count=1, flags=re.IGNORECASE)
    text = re.sub(r"[^\d._].*", "", text, flags=re.DOTALL)
    text = re.sub(r"\.[._]+", ".", text, count=1)
    text = re.sub(r"[._]*_[._]*", "_", text)
    text = re.sub(r"\.{2,}", ".", text)
    had_v = had_v or text.count(".") > 1
    text = text or "0"
    return ("v" if had_v else "") + text


def numify_version(version: object) -> float:
    """Return the numeric form of a CPAN version, ``0`` when unparsable."""
    if version is None:
        return 0.0
    parsed = _parse_numeric(str(version).strip())
    if parsed is None:
        parsed = _parse_numeric(fix_version(version))
    return parsed if parsed is not None else 0.0


def _parse_numeric(text: str) -> Optional[float]:
    if not text:
        return None
    cleaned = text.replace("_", "")
    if _DOTTED.match(cleaned):
        return _numify_components(cleaned.lstrip("v").split("."))
    if _DECIMAL.match(cleaned) and cleaned not in {"", "."}:
        return float(cleaned)
    return None


__all__ = [
    "NormalizedVersion",
    "SENTINEL_VERSION",
    "fix_version",
    "normalize_version",
    "numify_version",
]
