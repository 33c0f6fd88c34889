"""Tests for distindex.orchestrator."""

from __future__ import annotations

import json
import tarfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence

from distindex.config import IndexerConfig
from distindex.discovery import ModuleDiscoverer
from distindex.document import File
from distindex.metadata import DistMeta
from distindex.orchestrator import IndexRun
from distindex.pod import PodTextRenderer
from distindex.search import FileSearch
from distindex.stores import DocumentStore, Term
from tests._fixtures.archive_builder import DEFAULT_MTIME, ArchiveBuilder

FOO_BAR = """
    package Foo::Bar;
    1;
    __END__

    =head1 NAME

    Foo::Bar - does bar things

    =cut
"""

DAY = 24 * 60 * 60


def inline(func: Callable[..., Any], *args: Any) -> Any:
    return func(*args)


def make_config(tmp_path: Path, archive_builder: ArchiveBuilder, **changes: Any) -> IndexerConfig:
    settings: Dict[str, Any] = {
        "root": tmp_path,
        "cpan": archive_builder.cpan,
        "index_path": tmp_path / "index.json",
        "work_dir": tmp_path / "work",
    }
    settings.update(changes)
    return IndexerConfig(**settings)


def make_run(config: IndexerConfig, store: DocumentStore | None = None) -> IndexRun:
    return IndexRun(
        config,
        store or DocumentStore(config.store_path),
        discoverer=ModuleDiscoverer(runner=inline),
    )


def release_status(store: DocumentStore, name: str) -> str:
    return store.get("release", f"ALICE/{name}")["status"]


def test_index_stores_release_files_and_distribution(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    archive = archive_builder.release("ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR})
    run = make_run(make_config(tmp_path, archive_builder))

    summary = run.index([archive])

    assert summary.ok
    assert summary.indexed == [str(archive)]
    release = run.store.get("release", "ALICE/Foo-Bar-1.0")
    assert release["status"] == "latest"
    assert release["main_module"] == "Foo::Bar"
    assert run.store.get("distribution", "Foo-Bar") == {"id": "Foo-Bar", "name": "Foo-Bar"}
    files = run.store.search("file", Term("release", "Foo-Bar-1.0"))
    assert {doc["status"] for doc in files} == {"latest"}
    module_file = [doc for doc in files if doc["path"] == "lib/Foo/Bar.pm"][0]
    assert module_file["documentation"] == "Foo::Bar"
    assert module_file["module"] == [{"name": "Foo::Bar", "indexed": True, "authorized": True}]
    assert (tmp_path / "index.json").exists()
    assert list((tmp_path / "work").iterdir()) == []


def test_naughty_and_broken_archives_do_not_stop_the_batch(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    naughty = archive_builder.naughty("ALICE", "Evil-1.0")
    broken = archive_builder.authors / "A" / "AL" / "ALICE" / "Broken-1.0.tar.gz"
    broken.write_bytes(b"not a tarball")
    good = archive_builder.release("ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR})
    run = make_run(make_config(tmp_path, archive_builder))

    summary = run.index([naughty, broken, good])

    assert summary.skipped == [str(naughty)]
    assert list(summary.failed) == [str(broken)]
    assert summary.indexed == [str(good)]
    assert not summary.ok
    assert run.store.get("release", "ALICE/Evil-1.0") is None


def test_newest_release_becomes_latest_and_removed_archives_backpan(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    old = archive_builder.release("ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR})
    new = archive_builder.release(
        "ALICE", "Foo-Bar-1.1", {"lib/Foo/Bar.pm": FOO_BAR}, mtime=DEFAULT_MTIME + DAY
    )
    run = make_run(make_config(tmp_path, archive_builder))

    run.index([old, new])

    assert release_status(run.store, "Foo-Bar-1.1") == "latest"
    assert release_status(run.store, "Foo-Bar-1.0") == "cpan"

    old.unlink()
    run.update_statuses("Foo-Bar")

    assert release_status(run.store, "Foo-Bar-1.0") == "backpan"
    old_files = run.store.search("file", Term("release", "Foo-Bar-1.0"))
    assert {doc["status"] for doc in old_files} == {"backpan"}


def test_concurrent_workers_index_every_archive(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    archives = [
        archive_builder.release("ALICE", f"Foo-Bar-1.{minor}", {"lib/Foo/Bar.pm": FOO_BAR})
        for minor in range(3)
    ]
    run = make_run(make_config(tmp_path, archive_builder, workers=3))

    summary = run.index(archives)

    assert sorted(summary.indexed) == sorted(str(archive) for archive in archives)
    assert run.store.count("release", Term("status", "latest")) == 1


def test_existing_distribution_document_is_kept(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    archive = archive_builder.release("ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR})
    store = DocumentStore()
    store.put("distribution", {"id": "Foo-Bar", "name": "Foo-Bar", "river": 3})

    make_run(make_config(tmp_path, archive_builder), store).index([archive])

    assert store.get("distribution", "Foo-Bar")["river"] == 3


def test_reindexing_produces_an_identical_store(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    archive = archive_builder.release(
        "ALICE", "Foo-Bar-1.0", {"Bar.pm": FOO_BAR, "Changes": "1.0 first\n"}
    )
    config = make_config(tmp_path, archive_builder)

    make_run(config).index([archive])
    first = config.store_path.read_bytes()
    make_run(config).index([archive])

    assert config.store_path.read_bytes() == first


def test_perl6_release_indexes_its_declared_modules(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    meta = {
        "name": "Foo::Bar",
        "version": "1.0",
        "provides": {"Foo::Bar": "lib/Foo/Bar.rakumod"},
    }
    archive = archive_builder.release(
        "ALICE",
        "Foo-Bar-1.0",
        {"META6.json": json.dumps(meta), "lib/Foo/Bar.rakumod": "unit module Foo::Bar;\n"},
        perl6=True,
    )
    config = make_config(tmp_path, archive_builder, perl6=True)
    run = IndexRun(
        config,
        DocumentStore(config.store_path),
        discoverer=ModuleDiscoverer(perl6=True, runner=inline),
        renderer=PodTextRenderer(),
    )

    summary = run.index([archive])

    assert summary.indexed == [str(archive)]
    release = run.store.get("release", "ALICE/Foo-Bar-1.0")
    assert release["status"] == "latest"
    assert release["provides"] == ["Foo::Bar"]
    assert release["main_module"] == "Foo::Bar"
    found = FileSearch(run.store).find("Foo::Bar")
    assert found is not None
    assert found["path"] == "lib/Foo/Bar.rakumod"
    assert found["module"][0]["indexed"] is True


def test_undecodable_member_name_does_not_stop_the_batch(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    odd = archive_builder.release(
        "ALICE",
        "Odd-1.0",
        {"caf\udce9.txt": "latin-1 name\n", "lib/Odd.pm": "package Odd;\n1;\n"},
        tar_format=tarfile.GNU_FORMAT,
    )
    good = archive_builder.release("ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR})
    run = make_run(make_config(tmp_path, archive_builder))

    summary = run.index([odd, good])

    assert summary.ok
    assert summary.indexed == [str(odd), str(good)]
    paths = {doc["path"] for doc in run.store.search("file", Term("release", "Odd-1.0"))}
    assert "caf\udce9.txt" in paths
    assert json.loads(run.config.store_path.read_text(encoding="utf-8"))


class ExplodingDiscoverer(ModuleDiscoverer):
    def discover(self, files: Sequence[File], meta: DistMeta) -> List[File]:
        if files and files[0].release == "Bad-1.0":
            raise RuntimeError("scanner crashed")
        return super().discover(files, meta)


def test_unexpected_failure_discards_partial_files_and_continues(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    bad = archive_builder.release(
        "ALICE", "Bad-1.0", {"lib/Bad.pm": "package Bad;\n1;\n", "README": "bad\n"}
    )
    good = archive_builder.release("ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR})
    config = make_config(tmp_path, archive_builder)
    run = IndexRun(
        config,
        DocumentStore(config.store_path),
        discoverer=ExplodingDiscoverer(runner=inline),
        bulk_size=1,
    )

    summary = run.index([bad, good])

    assert summary.failed == {str(bad): "RuntimeError: scanner crashed"}
    assert summary.indexed == [str(good)]
    assert run.store.count("file", Term("release", "Bad-1.0")) == 0
    assert run.store.get("release", "ALICE/Bad-1.0") is None
    assert release_status(run.store, "Foo-Bar-1.0") == "latest"


def test_threaded_run_scans_modules_in_worker_processes(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    archives = [
        archive_builder.release("ALICE", f"Foo-Bar-1.{minor}", {"lib/Foo/Bar.pm": FOO_BAR})
        for minor in range(2)
    ]
    config = make_config(tmp_path, archive_builder, workers=2, scan_timeout=30.0)
    run = IndexRun(config, DocumentStore(config.store_path))

    summary = run.index(archives)

    assert summary.ok
    assert sorted(summary.indexed) == sorted(str(archive) for archive in archives)
    for minor in range(2):
        release = run.store.get("release", f"ALICE/Foo-Bar-1.{minor}")
        assert release["provides"] == ["Foo::Bar"]


def test_statuses_settle_without_a_configured_mirror(
    tmp_path: Path, archive_builder: ArchiveBuilder
) -> None:
    old = archive_builder.release("ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR})
    new = archive_builder.release(
        "ALICE", "Foo-Bar-1.1", {"lib/Foo/Bar.pm": FOO_BAR}, mtime=DEFAULT_MTIME + DAY
    )
    run = make_run(make_config(tmp_path, archive_builder, cpan=None))

    run.index([old, new])
    old.unlink()
    run.update_statuses("Foo-Bar")

    assert release_status(run.store, "Foo-Bar-1.0") == "cpan"
    assert release_status(run.store, "Foo-Bar-1.1") == "latest"
