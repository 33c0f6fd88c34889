from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.archive_builder import ArchiveBuilder


@pytest.fixture
def archive_builder(tmp_path: Path) -> ArchiveBuilder:
    """Provide an archive builder rooted at the pytest tmp_path."""
    return ArchiveBuilder(tmp_path)
