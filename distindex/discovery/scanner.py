"""Static package scanners for Perl sources.

Nothing here executes the code being scanned. :func:`scan_packages` reads
``package`` statements and ``$VERSION`` assignments line by line, skipping
POD and anything after ``__END__``/``__DATA__``. :func:`parse_pmfile` is the
permissive variant applied to ``*.pm.PL`` generators: it also honours the
release's ``no_index`` package and namespace rules. :func:`scan_perl6_packages`
reads ``unit module Foo:ver<1.0>`` style declarations.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

UNCLAIMABLE_PACKAGES = ("main", "DB")

_PACKAGE_NAME = r"(?:[A-Za-z_][\w']*::)*[A-Za-z_][\w']*"
_VERSION_LITERAL = r"v?\d[\d._]*"
_PACKAGE_DECL = re.compile(
    rf"^[\s{{;]*package\s+({_PACKAGE_NAME})\s*({_VERSION_LITERAL})?\s*[;{{]"
)
_VERSION_ASSIGN = re.compile(
    rf"""(?:^|[\s;{{(])(?:our\s+)?[$*]((?:{_PACKAGE_NAME}::)?)VERSION\b\s*=(?![=~>])\s*(.*)$"""
)
_QUOTED = re.compile(r"""^(?:q\w?\s*[({\[/|]\s*|['"])\s*(v?[\d._]+)""")
_CALL = re.compile(
    r"""^(?:version(?:::|->)(?:declare|new|parse|qv)|qv)\s*\(\s*['"]?\s*(v?[\d._]+)"""
)
_NUMBER = re.compile(r"^(v?[\d._]+)")
_PERL6_DECL = re.compile(
    r"^\s*(?:unit\s+)?(?:module|class|role|grammar|package)\s+"
    r"([A-Za-z_][\w'-]*(?:::[A-Za-z_][\w'-]*)*)"
    r"(?::ver<([^>]*)>)?"
)
_END_MARKER = re.compile(r"^__(?:END|DATA)__\b")

Packages = List[Tuple[str, Optional[str]]]


def scan_packages(source: str) -> Packages:
    """Return ``[(package, version), ...]`` in declaration order.

    The first version seen for a package wins. ``main`` and ``DB`` are
    dropped since nobody can claim them.
    """
    order: List[str] = []
    versions: Dict[str, Optional[str]] = {}
    current = "main"
    for line in _code_lines(source):
        declared = _PACKAGE_DECL.match(line)
        if declared:
            current = declared.group(1)
            if current not in versions:
                order.append(current)
                versions[current] = None
            if declared.group(2) and versions[current] is None:
                versions[current] = declared.group(2)
            continue
        assignment = _VERSION_ASSIGN.search(line)
        if assignment:
            package = assignment.group(1)[:-2] if assignment.group(1) else current
            value = _version_value(assignment.group(2))
            if package not in versions:
                order.append(package)
                versions[package] = None
            if versions[package] is None:
                versions[package] = value
    return [(name, versions[name]) for name in order if name not in UNCLAIMABLE_PACKAGES]


def parse_pmfile(source: str, meta: Optional[Mapping[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
    """Scan a ``*.pm.PL`` generator the way the PAUSE indexer would.

    ``meta`` is the release metadata structure; packages excluded by its
    ``no_index`` rules are left out.
    """
    no_index = (meta or {}).get("no_index") or {}
    packages: Sequence[str] = no_index.get("package") or []
    namespaces: Sequence[str] = no_index.get("namespace") or []
    found: Dict[str, Dict[str, Any]] = {}
    for name, version in scan_packages(source):
        if name in packages:
            continue
        if any(name.startswith(f"{namespace}::") for namespace in namespaces):
            continue
        if not re.match(r"^\w[\w:']*\w?$", name):
            continue
        found[name] = {"version": version} if version is not None else {}
    return found


def scan_perl6_packages(source: str) -> Packages:
    """Return the compunits a Perl 6 source file declares."""
    found: Dict[str, Optional[str]] = {}
    in_pod = False
    for line in source.splitlines():
        if re.match(r"^=begin\s+pod", line):
            in_pod = True
            continue
        if in_pod:
            if re.match(r"^=end\s+pod", line):
                in_pod = False
            continue
        if re.match(r"^=finish\b", line):
            break
        declared = _PERL6_DECL.match(line)
        if declared and declared.group(1) not in found:
            found[declared.group(1)] = declared.group(2) or None
    return [(name, version) for name, version in found.items() if name not in UNCLAIMABLE_PACKAGES]


# ----------------------------------------------------------------------
# Internal helpers


def _code_lines(source: str) -> List[str]:
    lines: List[str] = []
    in_pod = False
    for line in source.splitlines():
        if in_pod:
            if line.startswith("=cut"):
                in_pod = False
            continue
        if re.match(r"^=[a-zA-Z]", line):
            in_pod = not line.startswith("=cut")
            continue
        if _END_MARKER.match(line):
            break
        stripped = line.lstrip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(line)
    return lines


def _version_value(expression: str) -> Optional[str]:
    expression = expression.strip()
    quoted = _QUOTED.match(expression)
    if quoted:
        return quoted.group(1)
    called = _CALL.match(expression)
    if called:
        value = called.group(1)
        return value if value.startswith("v") else f"v{value}"
    number = _NUMBER.match(expression)
    if number:
        return _stringify_number(number.group(1))
    return None


def _stringify_number(literal: str) -> str:
    """Stringify a bare numeric literal the way perl would (``1.10`` is ``1.1``)."""
    if literal.startswith("v") or literal.count(".") > 1:
        return literal
    cleaned = literal.replace("_", "")
    try:
        return format(float(cleaned), ".15g")
    except ValueError:
        return literal


__all__ = [
    "UNCLAIMABLE_PACKAGES",
    "parse_pmfile",
    "scan_packages",
    "scan_perl6_packages",
]
