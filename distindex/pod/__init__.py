"""POD parsing and rendering."""

from .renderer import ExternalPodRenderer, PodRenderer, PodTextRenderer, iter_pod_paragraphs
from .util import (
    NameSection,
    collapse_whitespace,
    count_sloc,
    escape_pseudo_directives,
    extract_section,
    parse_name_section,
    pod_lines,
    strip_pod,
)

__all__ = [
    "ExternalPodRenderer",
    "NameSection",
    "PodRenderer",
    "PodTextRenderer",
    "collapse_whitespace",
    "count_sloc",
    "escape_pseudo_directives",
    "extract_section",
    "iter_pod_paragraphs",
    "parse_name_section",
    "pod_lines",
    "strip_pod",
]
