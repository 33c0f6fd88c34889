"""Tests for distindex.release."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, List

from distindex.archive import Classification, TarZipArchive
from distindex.config import IndexerConfig
from distindex.discovery import ModuleDiscoverer
from distindex.document import BytesContent, File
from distindex.models import Module
from distindex.permissions import Permissions
from distindex.release import ReleaseBuilder, find_changes_file, select_main_module
from distindex.stores import DocumentStore, Term
from tests._fixtures.archive_builder import ArchiveBuilder

FOO_BAR = """
    package Foo::Bar;
    our $VERSION = '1.0';
    1;
    __END__

    =head1 NAME

    Foo::Bar - does bar things

    =cut
"""

FOO_BAR_UTIL = """
    package Foo::Bar::Util;
    1;
"""


def inline(func: Callable[..., Any], *args: Any) -> Any:
    return func(*args)


def make_builder(
    archive: Path, tmp_path: Path, *, permissions: Permissions | None = None
) -> ReleaseBuilder:
    return ReleaseBuilder(
        archive,
        config=IndexerConfig(root=tmp_path),
        gateway=TarZipArchive(),
        permissions=permissions,
        discoverer=ModuleDiscoverer(runner=inline),
    )


def make_file(path: str, *modules: str) -> File:
    return File(
        path=path,
        name=path.rsplit("/", 1)[-1],
        author="ALICE",
        release="Dist-1.0",
        distribution="Dist",
        content=BytesContent(""),
        modules=[Module(name=name) for name in modules],
    )


def test_builder_derives_release_facts_from_archive_path(
    archive_builder: ArchiveBuilder, tmp_path: Path
) -> None:
    archive = archive_builder.release("ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR})

    builder = make_builder(archive, tmp_path)

    assert builder.author == "ALICE"
    assert builder.name == "Foo-Bar-1.0"
    assert builder.distribution == "Foo-Bar"
    assert builder.version == "1.0"
    assert builder.date == "2020-01-02T03:04:05Z"
    assert builder.classification is Classification.SAFE


def test_build_produces_release_and_files(archive_builder: ArchiveBuilder, tmp_path: Path) -> None:
    archive = archive_builder.release(
        "ALICE",
        "Foo-Bar-1.0",
        {
            "Changes": "1.0 first release\n",
            "lib/Foo/Bar.pm": FOO_BAR,
            "lib/Foo/Bar/Util.pm": FOO_BAR_UTIL,
            "t/basic.t": "use Test::More;\nok 1;\ndone_testing;\n",
        },
    )
    workdir = tmp_path / "work"
    workdir.mkdir()
    store = DocumentStore()

    with store.bulk("file") as bulk:
        built = make_builder(archive, tmp_path).build(workdir, bulk)

    release = built.release
    assert release.id == "ALICE/Foo-Bar-1.0"
    assert release.archive == "Foo-Bar-1.0.tar.gz"
    assert release.provides == ["Foo::Bar", "Foo::Bar::Util"]
    assert release.main_module == "Foo::Bar"
    assert release.changes_file == "Changes"
    assert release.authorized is True

    by_path = {file.path: file for file in built.files}
    assert by_path["lib/Foo/Bar.pm"].documentation == "Foo::Bar"
    assert by_path["lib/Foo/Bar.pm"].abstract == "does bar things"
    assert by_path["t/basic.t"].indexed is False
    assert store.count("file", Term("release", "Foo-Bar-1.0")) == len(built.files)


def test_build_flags_unauthorized_modules(archive_builder: ArchiveBuilder, tmp_path: Path) -> None:
    archive = archive_builder.release("ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR})
    workdir = tmp_path / "work"
    workdir.mkdir()

    built = make_builder(
        archive, tmp_path, permissions=Permissions({"Foo::Bar": ["BOB"]})
    ).build(workdir)

    assert built.release.authorized is False
    assert [module.name for module in built.unauthorized] == ["Foo::Bar"]


def test_impolite_archive_keeps_full_relative_paths(
    archive_builder: ArchiveBuilder, tmp_path: Path
) -> None:
    archive = archive_builder.release(
        "ALICE", "Foo-Bar-1.0", {"lib/Foo/Bar.pm": FOO_BAR, "README": "hi\n"}, top_level=None
    )
    workdir = tmp_path / "work"
    workdir.mkdir()

    builder = make_builder(archive, tmp_path)
    built = builder.build(workdir)

    assert builder.classification is Classification.IMPOLITE
    paths = {file.path for file in built.files}
    assert {"lib/Foo/Bar.pm", "README"} <= paths


def test_select_main_module_single_candidate() -> None:
    files = [make_file("lib/Anything.pm", "Something::Else"), make_file("README")]

    assert select_main_module(files, "Dist") == "Something::Else"


def test_select_main_module_prefers_distribution_name() -> None:
    files = [make_file("lib/A.pm", "A"), make_file("lib/Foo/Bar.pm", "Foo::Bar")]

    assert select_main_module(files, "Foo-Bar") == "Foo::Bar"


def test_select_main_module_prefers_distribution_name_at_any_depth() -> None:
    files = [
        make_file("lib/Foo/Bar/Util.pm", "Foo::Bar::Util"),
        make_file("lib/x/Foo/Bar.pm", "Foo::Bar"),
    ]

    assert select_main_module(files, "Foo-Bar") == "Foo::Bar"
    assert select_main_module(files, "Dist") == "Foo::Bar::Util"


def test_select_main_module_ranks_by_depth_then_name_length() -> None:
    shallow: List[File] = [make_file("lib/A/Long.pm", "A::Long"), make_file("lib/Short.pm", "Short")]
    same_level = [make_file("lib/Abcdef.pm", "Abcdef"), make_file("lib/X.pm", "X")]

    assert select_main_module(shallow, "Dist") == "Short"
    assert select_main_module(same_level, "Dist") == "X"
    assert select_main_module([make_file("README")], "Dist") is None


def test_find_changes_file() -> None:
    files = [make_file("lib/Foo.pm"), make_file("doc/Changes"), make_file("Changes")]

    assert find_changes_file(files, "Foo") == "Changes"
    assert find_changes_file([make_file("pod/perldelta.pod")], "perl") == "pod/perldelta.pod"
    assert find_changes_file([make_file("lib/Foo.pm")], "Foo") is None
