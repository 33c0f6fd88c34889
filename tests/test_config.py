"""Tests for distindex.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from distindex.archive import DEFAULT_MAX_ARCHIVE_SIZE
from distindex.config import (
    DEFAULT_ECOSYSTEM_URL,
    DEFAULT_SCAN_TIMEOUT,
    IndexerConfig,
    load_config,
)
from distindex.errors import ConfigError
from distindex.metadata import ALWAYS_NO_INDEX_DIRS


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, IndexerConfig)
    assert config.root == tmp_path.resolve()
    assert config.perl6 is False
    assert config.cpan is None
    assert config.scan_timeout == DEFAULT_SCAN_TIMEOUT
    assert config.max_archive_size == DEFAULT_MAX_ARCHIVE_SIZE
    assert config.no_index_dirs == ALWAYS_NO_INDEX_DIRS
    assert config.ecosystem_url == DEFAULT_ECOSYSTEM_URL
    assert config.workers == 1
    assert config.store_path == tmp_path.resolve() / ".distindex" / "index.json"
    assert config.source_path == tmp_path.resolve() / ".distindex" / "source"


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".distindex.yml"
    config_file.write_text(
        """
perl6: yes
cpan: mirror
index_path: /var/lib/distindex/index.json
permissions: mirror/modules/06perms.txt.gz
scan_timeout: "2.5"
max_archive_size: 1024
no_index_dirs:
  - examples
  - t
renderer: /usr/local/bin/raku
workers: 4
flavour: chocolate
""",
        encoding="utf-8",
    )

    config = load_config(config_file)
    root = tmp_path.resolve()

    assert config.perl6 is True
    assert config.cpan == root / "mirror"
    assert config.index_path == Path("/var/lib/distindex/index.json")
    assert config.store_path == Path("/var/lib/distindex/index.json")
    assert config.permissions == root / "mirror" / "modules" / "06perms.txt.gz"
    assert config.scan_timeout == 2.5
    assert config.max_archive_size == 1024
    assert config.no_index_dirs == ALWAYS_NO_INDEX_DIRS + ("examples",)
    assert config.renderer == "/usr/local/bin/raku"
    assert config.workers == 4
    assert config.extra == {"flavour": "chocolate"}


def test_load_config_clamps_workers(tmp_path: Path) -> None:
    (tmp_path / ".distindex.yml").write_text("workers: 0\n", encoding="utf-8")

    assert load_config(tmp_path).workers == 1


def test_load_config_empty_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / ".distindex.yml").write_text("\n", encoding="utf-8")

    assert load_config(tmp_path) == IndexerConfig(root=tmp_path.resolve())


def test_load_config_rejects_invalid_yaml(tmp_path: Path) -> None:
    (tmp_path / ".distindex.yml").write_text("perl6: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_load_config_rejects_non_mapping_root(tmp_path: Path) -> None:
    (tmp_path / ".distindex.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_with_overrides_ignores_none(tmp_path: Path) -> None:
    config = IndexerConfig(root=tmp_path, workers=3)

    updated = config.with_overrides(perl6=True, workers=None)

    assert updated.perl6 is True
    assert updated.workers == 3
    assert config.perl6 is False
