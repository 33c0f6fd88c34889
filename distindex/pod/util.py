"""Helpers for pulling sections, abstracts and line counts out of POD."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

_NAME_PATTERN = re.compile(r"^[\w.:\-_']+$")
_ABSTRACT_PATTERN = re.compile(
    r"^\s*(\S+)(([ \t]+-+[ \t]+(.+))|(\r?\n[ \t]*\r?\n[ \t]*(.+)))?",
    re.MULTILINE | re.DOTALL,
)
_POD_START = re.compile(r"=[a-zA-Z]")
_END_MARKER = re.compile(r"^\s*__(DATA|END)__", re.DOTALL)

# Lines that look like a POD command but are not one a person would write,
# e.g. binary content such as "=F\0{". Pod parsers start a document on
# anything matching /^=[a-zA-Z]/, so those lines are prefixed with a NUL.
_PSEUDO_DIRECTIVE = re.compile(
    r"(?:\A|(?<=\r)|(?<=\n))(=[a-zA-Z][a-zA-Z0-9]*)(?![a-zA-Z0-9]|\s|\Z)"
)


@dataclass(frozen=True)
class NameSection:
    """Documentation name and abstract parsed from a ``NAME`` section."""

    documentation: Optional[str]
    abstract: Optional[str]


def extract_section(content: str, section: str) -> Optional[str]:
    """Return the body of ``=head1 <section>`` up to the next head1 or cut."""
    name = re.escape(section)
    match = re.search(
        rf"^=head1\s+{name}\b(.*?)(^((=head1)|(=cut)))",
        content,
        re.MULTILINE | re.DOTALL | re.IGNORECASE,
    ) or re.search(
        rf"^=head1\s+{name}\b(.*)",
        content,
        re.MULTILINE | re.DOTALL | re.IGNORECASE,
    )
    if match is None:
        return None
    return match.group(1).strip()


def strip_pod(text: str) -> str:
    """Remove formatting codes and line breaks from a POD fragment."""
    text = re.sub(r"L<([^/]*?)/([^/]*?)>", r"\2 in \1", text)
    text = re.sub(r"\w<(.*?)(\|.*?)?>", r"\1", text)
    return re.sub(r"[\r\n]+", " ", text)


def parse_name_section(section: str) -> NameSection:
    """Split ``Foo::Bar - does things`` into a name and an abstract."""
    section = re.sub(r"^=\w+.*$", "", section, flags=re.MULTILINE)
    section = re.sub(r"X<.*?>", "", section)

    documentation = None
    abstract = None
    match = _ABSTRACT_PATTERN.match(section)
    if match:
        raw_abstract = match.group(4) or match.group(6)
        if raw_abstract:
            abstract = raw_abstract[:-1] if raw_abstract.endswith("\n") else raw_abstract
        name = strip_pod(match.group(1))
        if _NAME_PATTERN.match(name):
            documentation = name

    if abstract:
        abstract = re.sub(r"^=\w+.*$", "", abstract, count=1, flags=re.MULTILINE | re.DOTALL)
        abstract = re.sub(r"\r?\n[ \t]*\r?\n[ \t]*.*$", "", abstract, count=1, flags=re.DOTALL)
        abstract = abstract.replace("\n", " ")
        abstract = re.sub(r"\s+$", "", abstract)
        abstract = re.sub(r"(\s)+", r"\1", abstract)
        abstract = strip_pod(abstract)
    if documentation:
        documentation = strip_pod(documentation)
    return NameSection(documentation=documentation, abstract=abstract or None)


def escape_pseudo_directives(content: str) -> str:
    return _PSEUDO_DIRECTIVE.sub(lambda match: "\0" + match.group(1), content)


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _split_lines(content: str) -> List[str]:
    lines = content.split("\n")
    while lines and lines[-1] == "":
        lines.pop()
    return lines


def pod_lines(content: str) -> Tuple[List[List[int]], int]:
    """Return ``[[offset, length], ...]`` for each POD block and their total.

    Offsets are zero-based line numbers. A block runs from its opening
    command to the matching ``=cut`` inclusive, or to the end of the file.
    """
    if not content:
        return [], 0
    blocks: List[List[int]] = []
    length = 0
    start = 0
    for index, line in enumerate(_split_lines(content)):
        if line.startswith("=cut"):
            length += 1
            if start and length:
                blocks.append([start - 1, length])
            start = length = 0
        elif _POD_START.match(line) and not length:
            start = index + 1
        if start:
            length += 1
    if start and length:
        blocks.append([start - 1, length])
    return blocks, sum(block[1] for block in blocks)


def count_sloc(content: str, blocks: List[List[int]]) -> int:
    """Count non-blank, non-comment source lines outside POD blocks."""
    lines = _split_lines(content)
    for offset, length in blocks:
        lines[offset : offset + length] = [""] * length
    sloc = 0
    for line in lines:
        if _END_MARKER.match(line):
            break
        if not re.match(r"^\s*#", line) and re.search(r"\S", line):
            sloc += 1
    return sloc


__all__ = [
    "NameSection",
    "collapse_whitespace",
    "count_sloc",
    "escape_pseudo_directives",
    "extract_section",
    "parse_name_section",
    "pod_lines",
    "strip_pod",
]
