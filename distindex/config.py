"""Configuration loading for distindex (.distindex.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .archive import DEFAULT_MAX_ARCHIVE_SIZE
from .errors import ConfigError
from .metadata import ALWAYS_NO_INDEX_DIRS

CONFIG_FILENAME = ".distindex.yml"
DEFAULT_SCAN_TIMEOUT = 5.0
DEFAULT_ECOSYSTEM_URL = "http://ecosystem-api.p6c.org/projects.json"


@dataclass(frozen=True)
class IndexerConfig:
    """Represents the settings defined in .distindex.yml.

    The object is immutable and handed explicitly to every component, so
    parallel runs never share mutable settings.
    """

    root: Path
    perl6: bool = False
    cpan: Optional[Path] = None
    index_path: Optional[Path] = None
    source_base: Optional[Path] = None
    work_dir: Optional[Path] = None
    permissions: Optional[Path] = None
    packages_dir: Optional[Path] = None
    scan_timeout: Optional[float] = DEFAULT_SCAN_TIMEOUT
    max_archive_size: int = DEFAULT_MAX_ARCHIVE_SIZE
    no_index_dirs: tuple[str, ...] = ALWAYS_NO_INDEX_DIRS
    renderer: str = "raku"
    ecosystem_url: str = DEFAULT_ECOSYSTEM_URL
    workers: int = 1
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def store_path(self) -> Path:
        return self.index_path or self.root / ".distindex" / "index.json"

    @property
    def source_path(self) -> Path:
        return self.source_base or self.root / ".distindex" / "source"

    def with_overrides(self, **changes: Any) -> "IndexerConfig":
        """Return a copy with ``changes`` applied, ignoring ``None`` values."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


def load_config(config_path: Path) -> IndexerConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return IndexerConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    no_index_dirs = list(ALWAYS_NO_INDEX_DIRS)
    for directory in _as_str_list(data.get("no_index_dirs")):
        if directory not in no_index_dirs:
            no_index_dirs.append(directory)

    scan_timeout = _as_float(data.get("scan_timeout"))
    known = {
        "perl6",
        "cpan",
        "index_path",
        "source_base",
        "work_dir",
        "permissions",
        "packages_dir",
        "scan_timeout",
        "max_archive_size",
        "no_index_dirs",
        "renderer",
        "ecosystem_url",
        "workers",
    }

    return IndexerConfig(
        root=root,
        perl6=_as_bool(data.get("perl6")) or False,
        cpan=_as_path(root, data.get("cpan")),
        index_path=_as_path(root, data.get("index_path")),
        source_base=_as_path(root, data.get("source_base")),
        work_dir=_as_path(root, data.get("work_dir")),
        permissions=_as_path(root, data.get("permissions")),
        packages_dir=_as_path(root, data.get("packages_dir")),
        scan_timeout=DEFAULT_SCAN_TIMEOUT if scan_timeout is None else scan_timeout,
        max_archive_size=_as_int(data.get("max_archive_size")) or DEFAULT_MAX_ARCHIVE_SIZE,
        no_index_dirs=tuple(no_index_dirs),
        renderer=_as_str(data.get("renderer")) or "raku",
        ecosystem_url=_as_str(data.get("ecosystem_url")) or DEFAULT_ECOSYSTEM_URL,
        workers=max(_as_int(data.get("workers")) or 1, 1),
        extra={key: value for key, value in data.items() if key not in known},
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _as_path(root: Path, value: Any) -> Optional[Path]:
    text = _as_str(value)
    if not text:
        return None
    path = Path(text).expanduser()
    return path if path.is_absolute() else root / path


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0", ""}:
            return False
    if isinstance(value, int):
        return bool(value)
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = ["CONFIG_FILENAME", "IndexerConfig", "load_config"]
