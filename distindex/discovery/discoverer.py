"""Bind declared modules to the files that implement them."""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..document import File
from ..errors import IndexerError, ScanTimeout
from ..logging import get_logger
from ..metadata import DistMeta
from ..models import Module
from .scanner import parse_pmfile, scan_packages, scan_perl6_packages
from .timeout import DeadlineRunner

_PERL5_MODULE_FILES = re.compile(r"\.pm(?:\.PL)?$")
_PERL6_MODULE_FILES = re.compile(r"\.(?:pm(?:\.PL)?|pm6|rakumod)$")

Runner = Callable[..., Any]


class ModuleDiscoverer:
    """Attaches :class:`Module` records to a release's files.

    When the metadata declares ``provides`` those declarations are trusted.
    Otherwise candidate files are scanned, each under ``scan_timeout``.
    """

    def __init__(
        self,
        *,
        perl6: bool = False,
        scan_timeout: Optional[float] = 5.0,
        runner: Optional[Runner] = None,
    ) -> None:
        self.perl6 = perl6
        self.runner: Runner = runner or DeadlineRunner(scan_timeout)
        self.logger = get_logger("discovery")

    def discover(self, files: Sequence[File], meta: DistMeta) -> List[File]:
        if meta.provides:
            return self.from_declared(files, meta)
        return self.from_scan(files, meta)

    def from_declared(self, files: Sequence[File], meta: DistMeta) -> List[File]:
        """Attach every module listed in ``provides`` to its file.

        Among indexed files whose path ends with the declared path the
        shortest wins, then the lexicographically smallest.
        """
        bound: List[File] = []
        for name in sorted(meta.provides):
            data = meta.provides[name]
            declared = str(data.get("file") or "")
            if not declared:
                continue
            candidates = [file for file in files if file.indexed and file.path.endswith(declared)]
            if not candidates:
                self.logger.debug("No file found for declared module %s (%s)", name, declared)
                continue
            file = min(candidates, key=lambda item: (len(item.path), item.path))
            version = data.get("version")
            file.add_module(
                Module(
                    name=name,
                    version=None if version is None else str(version),
                    indexed=True,
                )
            )
            if self.perl6:
                file.clear_documentation()
            if file not in bound:
                bound.append(file)
        return bound

    def from_scan(self, files: Sequence[File], meta: DistMeta) -> List[File]:
        pattern = _PERL6_MODULE_FILES if self.perl6 else _PERL5_MODULE_FILES
        bound: List[File] = []
        for file in files:
            if file.directory or not file.indexed or not pattern.search(file.name):
                continue
            packages = self._scan(file, meta)
            if packages is None:
                continue
            if file.name.endswith(".PL"):
                modules = [
                    Module(name=name, version=_version_string(info.get("version")))
                    for name, info in packages.items()
                ]
            else:
                modules = [
                    Module(name=name, version=_version_string(version))
                    for name, version in packages.items()
                ]
            if not modules:
                continue
            file.add_module(*modules)
            bound.append(file)
        return bound

    # ------------------------------------------------------------------
    # Internal helpers

    def _scan(self, file: File, meta: DistMeta) -> Optional[Dict[str, Any]]:
        try:
            if file.name.endswith(".PL"):
                return self.runner(parse_pmfile, file.text, meta.as_struct())
            scanner = scan_perl6_packages if self.perl6 else scan_packages
            return dict(self.runner(scanner, file.text))
        except ScanTimeout:
            self.logger.error("Call to module scanner timed out for %s", file.full_path)
        except IndexerError as exc:
            self.logger.warning("Unable to scan %s: %s", file.full_path, exc)
        return None


def _version_string(version: Any) -> Optional[str]:
    if version is None:
        return None
    return str(version)


__all__ = ["ModuleDiscoverer"]
