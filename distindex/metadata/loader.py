"""Locate and parse a release's metadata file."""

from __future__ import annotations

import datetime
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from ..errors import MetadataError
from ..logging import get_logger
from .meta import ALWAYS_NO_INDEX_DIRS, DistMeta

PERL5_META_FILES = (
    "*/META.json",
    "*/META.yml",
    "*/META.yaml",
    "META.json",
    "META.yml",
    "META.yaml",
)
PERL6_META_FILES = ("*/META6.json", "*/META.info", "META6.json", "META.info")


class MetaBackend:
    """Parser for one metadata serialisation."""

    name = "base"
    suffixes: tuple[str, ...] = ()

    def accepts(self, path: Path) -> bool:
        return path.suffix.lower() in self.suffixes

    def parse(self, text: str) -> Any:  # pragma: no cover - interface
        raise NotImplementedError


class JsonBackend(MetaBackend):
    name = "json"
    suffixes = (".json", ".info")

    def parse(self, text: str) -> Any:
        return json.loads(text, parse_float=str)


class YamlBackend(MetaBackend):
    """Strict YAML parsing with type resolution."""

    name = "yaml"
    suffixes = (".yml", ".yaml")

    def parse(self, text: str) -> Any:
        return _plain(yaml.safe_load(text))


class LenientYamlBackend(MetaBackend):
    """YAML parsing that keeps every scalar as a string."""

    name = "yaml-base"
    suffixes = (".yml", ".yaml")

    def parse(self, text: str) -> Any:
        return yaml.load(text, Loader=yaml.BaseLoader)


class FlatBackend(MetaBackend):
    """Legacy ``key = value`` / ``key: value`` files without nesting."""

    name = "flat"
    suffixes = (".yml", ".yaml", ".info")
    _LINE = re.compile(r"^\s*([A-Za-z_][\w\-]*)\s*[:=]\s*(.*?)\s*$")

    def parse(self, text: str) -> Any:
        data: Dict[str, str] = {}
        for line in text.splitlines():
            if not line.strip() or line.lstrip().startswith(("#", "---")):
                continue
            match = self._LINE.match(line)
            if match is None:
                raise ValueError(f"unparsable line: {line.strip()[:40]}")
            value = match.group(2)
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
                value = value[1:-1]
            data.setdefault(match.group(1), value)
        return data


DEFAULT_BACKENDS: tuple[MetaBackend, ...] = (
    JsonBackend(),
    YamlBackend(),
    LenientYamlBackend(),
    FlatBackend(),
)


class MetadataLoader:
    """Finds the first metadata file and backend that parse successfully."""

    def __init__(
        self,
        *,
        perl6: bool = False,
        no_index_dirs: Sequence[str] = ALWAYS_NO_INDEX_DIRS,
        backends: Sequence[MetaBackend] = DEFAULT_BACKENDS,
    ) -> None:
        self.perl6 = perl6
        self.no_index_dirs = tuple(no_index_dirs)
        self.backends = tuple(backends)
        self.logger = get_logger("metadata")

    def candidates(self, directory: Path) -> List[Path]:
        patterns = PERL6_META_FILES if self.perl6 else PERL5_META_FILES
        found: List[Path] = []
        for pattern in patterns:
            for path in sorted(directory.glob(pattern)):
                if path.is_file():
                    found.append(path)
                    break
        return found

    def load_file(self, directory: Path) -> Optional[DistMeta]:
        """Return metadata from the first parsable candidate.

        Returns ``None`` when no candidate exists and raises
        :class:`MetadataError` with every accumulated error when candidates
        exist but none parses.
        """
        candidates = self.candidates(directory)
        if not candidates:
            return None

        errors: List[str] = []
        for path in candidates:
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                errors.append(f"{path.name}: {exc}")
                continue
            for backend in self.backends:
                if not backend.accepts(path):
                    continue
                try:
                    data = backend.parse(text)
                    if not isinstance(data, Mapping):
                        raise ValueError("metadata root is not a mapping")
                    meta = DistMeta.from_struct(data, perl6=self.perl6)
                except Exception as exc:
                    errors.append(f"{path.name} ({backend.name}): {exc}")
                    continue
                self.logger.debug("Loaded %s with the %s backend", path.name, backend.name)
                meta.add_no_index_dirs(self.no_index_dirs)
                return meta

        raise MetadataError("META file could not be loaded", errors)

    def load(self, directory: Path, *, distribution: str, version: object) -> DistMeta:
        """Load metadata or synthesize the fallback document."""
        try:
            meta = self.load_file(directory)
        except MetadataError as exc:
            self.logger.warning("%s: %s", exc, "; ".join(exc.errors))
            meta = None
        if meta is not None:
            return meta
        if not distribution:
            raise MetadataError("no metadata and no distribution name to fall back on")
        return self.fallback(distribution, version)

    def fallback(self, distribution: str, version: object) -> DistMeta:
        meta = DistMeta(
            name=distribution,
            version=str(version) if version else "0",
            licenses=["unknown"],
        )
        meta.add_no_index_dirs(self.no_index_dirs)
        return meta


# ----------------------------------------------------------------------
# Internal helpers


def _plain(value: Any) -> Any:
    # Release documents are stored as JSON; timestamps become strings.
    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value


__all__ = [
    "DEFAULT_BACKENDS",
    "FlatBackend",
    "JsonBackend",
    "LenientYamlBackend",
    "MetaBackend",
    "MetadataLoader",
    "PERL5_META_FILES",
    "PERL6_META_FILES",
    "YamlBackend",
]
