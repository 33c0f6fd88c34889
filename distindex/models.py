"""Core data models shared across distindex components."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class Stat:
    """Filesystem stat snapshot taken when an entry is walked."""

    mode: int
    uid: int
    gid: int
    size: int
    mtime: int

    @classmethod
    def from_os(cls, result: os.stat_result) -> "Stat":
        return cls(
            mode=result.st_mode,
            uid=result.st_uid,
            gid=result.st_gid,
            size=result.st_size,
            mtime=int(result.st_mtime),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Stat":
        return cls(**{key: int(data.get(key, 0)) for key in ("mode", "uid", "gid", "size", "mtime")})

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class Module:
    """A package declared inside a file.

    ``indexed`` and ``authorized`` start unset (``None``). The ``commit_*``
    methods only write an unset flag, so the first decision sticks.
    """

    name: str
    version: Optional[str] = None
    indexed: Optional[bool] = None
    authorized: Optional[bool] = None
    associated_pod: Optional[str] = None

    def commit_indexed(self, value: bool) -> bool:
        if self.indexed is None:
            self.indexed = bool(value)
        return self.indexed

    def commit_authorized(self, value: bool) -> bool:
        if self.authorized is None:
            self.authorized = bool(value)
        return self.authorized

    @property
    def is_indexed(self) -> bool:
        return bool(self.indexed)

    @property
    def is_authorized(self) -> bool:
        return self.authorized is not False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "indexed": self.is_indexed,
            "authorized": self.is_authorized,
        }
        if self.version is not None:
            data["version"] = self.version
        if self.associated_pod is not None:
            data["associated_pod"] = self.associated_pod
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Module":
        return cls(
            name=str(data["name"]),
            version=data.get("version"),
            indexed=data.get("indexed"),
            authorized=data.get("authorized"),
            associated_pod=data.get("associated_pod"),
        )


@dataclass(frozen=True)
class Dependency:
    """One prerequisite declared by a release."""

    phase: str
    relationship: str
    module: str
    version: Any

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Release:
    """Document describing one uploaded archive."""

    name: str
    archive: str
    author: str
    distribution: str
    version: str
    version_numified: float
    maturity: str
    date: str
    stat: Stat
    metadata: Dict[str, Any] = field(default_factory=dict)
    dependency: List[Dependency] = field(default_factory=list)
    license: List[str] = field(default_factory=list)
    resources: Dict[str, Any] = field(default_factory=dict)
    abstract: Optional[str] = None
    status: str = "cpan"
    authorized: bool = True
    provides: List[str] = field(default_factory=list)
    main_module: Optional[str] = None
    changes_file: Optional[str] = None

    @property
    def id(self) -> str:
        return f"{self.author}/{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "archive": self.archive,
            "author": self.author,
            "distribution": self.distribution,
            "version": self.version,
            "version_numified": self.version_numified,
            "maturity": self.maturity,
            "date": self.date,
            "stat": self.stat.to_dict(),
            "metadata": self.metadata,
            "dependency": [dependency.to_dict() for dependency in self.dependency],
            "license": list(self.license),
            "resources": self.resources,
            "status": self.status,
            "authorized": self.authorized,
            "provides": list(self.provides),
        }
        for key in ("abstract", "main_module", "changes_file"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Release":
        return cls(
            name=data["name"],
            archive=data["archive"],
            author=data["author"],
            distribution=data["distribution"],
            version=data["version"],
            version_numified=float(data.get("version_numified", 0)),
            maturity=data.get("maturity", "released"),
            date=data["date"],
            stat=Stat.from_dict(data.get("stat", {})),
            metadata=dict(data.get("metadata", {})),
            dependency=[Dependency(**item) for item in data.get("dependency", [])],
            license=list(data.get("license", [])),
            resources=dict(data.get("resources", {})),
            abstract=data.get("abstract"),
            status=data.get("status", "cpan"),
            authorized=bool(data.get("authorized", True)),
            provides=list(data.get("provides", [])),
            main_module=data.get("main_module"),
            changes_file=data.get("changes_file"),
        )


__all__ = ["Dependency", "Module", "Release", "Stat"]
