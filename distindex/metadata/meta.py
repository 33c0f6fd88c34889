"""Release metadata model with no-index rules."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

# Directories PAUSE never indexes, plus a few more that routinely hold
# examples or build output.
ALWAYS_NO_INDEX_DIRS: tuple[str, ...] = (
    "t",
    "xt",
    "inc",
    "local",
    "perl5",
    "fatlib",
    "example",
    "blib",
    "examples",
    "eg",
)

_NO_INDEX_KEYS = ("file", "directory", "package", "namespace")

_LEGACY_PREREQS = {
    "requires": ("runtime", "requires"),
    "recommends": ("runtime", "recommends"),
    "build_requires": ("build", "requires"),
    "configure_requires": ("configure", "requires"),
    "test_requires": ("test", "requires"),
}

_PERL6_PREREQS = {
    "depends": ("runtime", "requires"),
    "build-depends": ("build", "requires"),
    "test-depends": ("test", "requires"),
}


@dataclass
class DistMeta:
    """Normalized view of a release's self-declared metadata."""

    name: str
    version: Optional[str] = None
    abstract: Optional[str] = None
    licenses: List[str] = field(default_factory=lambda: ["unknown"])
    resources: Dict[str, Any] = field(default_factory=dict)
    provides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    prereqs: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    no_index: Dict[str, List[str]] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_struct(cls, data: Mapping[str, Any], *, perl6: bool = False) -> "DistMeta":
        """Build metadata from a decoded META document.

        Accepts version 2 CPAN metadata, legacy 1.x keys, and Perl 6
        ``META6.json`` documents (when ``perl6`` is set).
        """
        raw = dict(data)
        name = raw.pop("name", None)
        if not isinstance(name, str) or not name.strip():
            raise ValueError("metadata has no name")
        version = raw.pop("version", None)
        abstract = raw.pop("abstract", None)
        if abstract is None and perl6:
            abstract = raw.pop("description", None)
        licenses = _as_license_list(raw.pop("license", None))

        resources: Dict[str, Any] = {}
        raw_resources = raw.pop("resources", None)
        if not perl6 and isinstance(raw_resources, Mapping):
            resources = dict(raw_resources)

        provides = _normalize_provides(raw.pop("provides", None))
        prereqs = _normalize_prereqs(raw, perl6=perl6)
        no_index = _normalize_no_index(raw.pop("no_index", None), raw.pop("private", None))

        return cls(
            name=name.strip(),
            version=None if version is None else str(version),
            abstract=None if abstract is None else str(abstract),
            licenses=licenses,
            resources=resources,
            provides=provides,
            prereqs=prereqs,
            no_index=no_index,
            extra=raw,
        )

    def add_no_index_dirs(self, directories: Iterable[str]) -> None:
        """Union ``directories`` into ``no_index.directory`` keeping order."""
        current = self.no_index.setdefault("directory", [])
        for directory in directories:
            if directory not in current:
                current.append(directory)

    def should_index_file(self, path: str) -> bool:
        for no_index_file in self.no_index.get("file", []):
            if path == no_index_file:
                return False
        for directory in self.no_index.get("directory", []):
            prefix = directory if directory.endswith("/") else f"{directory}/"
            if path.startswith(prefix):
                return False
        return True

    def should_index_package(self, package: str) -> bool:
        for no_index_package in self.no_index.get("package", []):
            if package == no_index_package:
                return False
        for namespace in self.no_index.get("namespace", []):
            if package.startswith(f"{namespace}::"):
                return False
        return True

    def as_struct(self) -> Dict[str, Any]:
        """Return a JSON-serialisable copy in CPAN Meta 2 layout."""
        struct: Dict[str, Any] = copy.deepcopy(self.extra)
        struct.update(
            {
                "name": self.name,
                "version": self.version,
                "license": list(self.licenses),
                "resources": copy.deepcopy(self.resources),
                "provides": copy.deepcopy(self.provides),
                "prereqs": copy.deepcopy(self.prereqs),
                "no_index": copy.deepcopy(self.no_index),
            }
        )
        if self.abstract is not None:
            struct["abstract"] = self.abstract
        return struct


def _as_license_list(value: Any) -> List[str]:
    if value is None:
        return ["unknown"]
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        licenses = [str(item) for item in value if item is not None]
        return licenses or ["unknown"]
    return [str(value)]


def _normalize_provides(value: Any) -> Dict[str, Dict[str, Any]]:
    if not isinstance(value, Mapping):
        return {}
    provides: Dict[str, Dict[str, Any]] = {}
    for module, data in value.items():
        if isinstance(data, str):
            provides[str(module)] = {"file": data}
        elif isinstance(data, Mapping) and isinstance(data.get("file"), str):
            entry = {"file": data["file"]}
            if data.get("version") is not None:
                entry["version"] = str(data["version"])
            provides[str(module)] = entry
    return provides


def _normalize_prereqs(raw: Dict[str, Any], *, perl6: bool) -> Dict[str, Dict[str, Dict[str, Any]]]:
    prereqs: Dict[str, Dict[str, Dict[str, Any]]] = {}
    declared = raw.pop("prereqs", None)
    if isinstance(declared, Mapping):
        for phase, relationships in declared.items():
            if not isinstance(relationships, Mapping):
                continue
            for relationship, modules in relationships.items():
                if isinstance(modules, Mapping):
                    target = prereqs.setdefault(str(phase), {}).setdefault(str(relationship), {})
                    target.update({str(k): v for k, v in modules.items()})

    legacy = _PERL6_PREREQS if perl6 else _LEGACY_PREREQS
    for key, (phase, relationship) in legacy.items():
        value = raw.pop(key, None)
        if value is None:
            continue
        target = prereqs.setdefault(phase, {}).setdefault(relationship, {})
        if isinstance(value, Mapping):
            target.update({str(k): v for k, v in value.items()})
        elif isinstance(value, (list, tuple)):
            for module in value:
                if isinstance(module, str):
                    target.setdefault(module, 0)
    return prereqs


def _normalize_no_index(value: Any, private: Any) -> Dict[str, List[str]]:
    no_index: Dict[str, List[str]] = {key: [] for key in _NO_INDEX_KEYS}
    sources: List[Mapping[str, Any]] = []
    if isinstance(value, Mapping):
        sources.append(value)
    if isinstance(private, Mapping):
        sources.append(private)
    for source in sources:
        for key, entries in source.items():
            target_key = "directory" if key == "dir" else key
            if target_key not in no_index:
                continue
            if isinstance(entries, str):
                entries = [entries]
            if isinstance(entries, (list, tuple)):
                for entry in entries:
                    if isinstance(entry, str) and entry not in no_index[target_key]:
                        no_index[target_key].append(entry)
    return no_index


__all__ = ["ALWAYS_NO_INDEX_DIRS", "DistMeta"]
