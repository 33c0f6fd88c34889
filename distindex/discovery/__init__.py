"""Module discovery: declared ``provides`` or static scanning."""

from .discoverer import ModuleDiscoverer
from .scanner import UNCLAIMABLE_PACKAGES, parse_pmfile, scan_packages, scan_perl6_packages
from .timeout import DeadlineRunner

__all__ = [
    "DeadlineRunner",
    "ModuleDiscoverer",
    "UNCLAIMABLE_PACKAGES",
    "parse_pmfile",
    "scan_packages",
    "scan_perl6_packages",
]
