"""Tests for module discovery."""

from __future__ import annotations

from typing import Any, Callable, Dict, List

from distindex.discovery import ModuleDiscoverer
from distindex.document import BytesContent, File
from distindex.errors import ScanTimeout
from distindex.metadata import ALWAYS_NO_INDEX_DIRS, DistMeta


def inline(func: Callable[..., Any], *args: Any) -> Any:
    return func(*args)


def make_meta(provides: Dict[str, Dict[str, Any]] | None = None) -> DistMeta:
    meta = DistMeta(name="Foo", provides=provides or {})
    meta.add_no_index_dirs(ALWAYS_NO_INDEX_DIRS)
    return meta


def make_files(meta: DistMeta, sources: Dict[str, str]) -> List[File]:
    return [
        File(
            path=path,
            name=path.rsplit("/", 1)[-1],
            author="ALICE",
            release="Foo-1.0",
            distribution="Foo",
            content=BytesContent(source),
            metadata=meta,
        )
        for path, source in sources.items()
    ]


def test_declared_strategy_prefers_shortest_then_lexicographic_path() -> None:
    meta = make_meta({"Foo": {"file": "Foo.pm", "version": "1.0"}})
    files = make_files(
        meta,
        {
            "src/Foo.pm": "package Foo;\n",
            "lib/Foo.pm": "package Foo;\n",
            "blib/lib/Foo.pm": "package Foo;\n",
        },
    )

    bound = ModuleDiscoverer(runner=inline).discover(files, meta)

    assert [file.path for file in bound] == ["lib/Foo.pm"]
    module = bound[0].modules[0]
    assert module.name == "Foo"
    assert module.version == "1.0"
    assert module.indexed is True


def test_declared_strategy_skips_non_indexable_files() -> None:
    meta = make_meta({"Foo::Test": {"file": "t/lib/Foo/Test.pm"}})
    files = make_files(meta, {"t/lib/Foo/Test.pm": "package Foo::Test;\n"})

    assert ModuleDiscoverer(runner=inline).discover(files, meta) == []
    assert files[0].modules == []


def test_scan_strategy_attaches_packages() -> None:
    meta = make_meta()
    files = make_files(
        meta,
        {
            "lib/Foo.pm": "package Foo;\nour $VERSION = '1.0';\npackage Foo::Util;\n",
            "lib/Foo.pod": "=head1 NAME\n\nFoo - docs\n",
            "t/lib/Helper.pm": "package Helper;\n",
        },
    )

    bound = ModuleDiscoverer(runner=inline).discover(files, meta)

    assert [file.path for file in bound] == ["lib/Foo.pm"]
    assert [(module.name, module.version) for module in bound[0].modules] == [
        ("Foo", "1.0"),
        ("Foo::Util", None),
    ]


def test_scan_strategy_uses_installer_parser_for_pl_generators() -> None:
    meta = make_meta()
    meta.no_index["package"] = ["Gen::Skip"]
    files = make_files(
        meta,
        {"lib/Gen.pm.PL": "package Gen;\nour $VERSION = '0.3';\npackage Gen::Skip;\n"},
    )

    bound = ModuleDiscoverer(runner=inline).discover(files, meta)

    assert [(module.name, module.version) for module in bound[0].modules] == [("Gen", "0.3")]


def test_scan_timeout_skips_only_that_file() -> None:
    meta = make_meta()
    files = make_files(
        meta,
        {
            "lib/Slow.pm": "package Slow;\n",
            "lib/Fast.pm": "package Fast;\n",
        },
    )

    def runner(func: Callable[..., Any], source: str, *rest: Any) -> Any:
        if "Slow" in source:
            raise ScanTimeout("too slow")
        return func(source, *rest)

    bound = ModuleDiscoverer(runner=runner).discover(files, meta)

    assert [file.path for file in bound] == ["lib/Fast.pm"]
    assert files[0].modules == []


def test_perl6_scan_accepts_rakumod_files() -> None:
    meta = make_meta()
    files = make_files(meta, {"lib/Foo.rakumod": "unit class Foo:ver<1.0>;\n"})

    bound = ModuleDiscoverer(perl6=True, runner=inline).discover(files, meta)

    assert [(module.name, module.version) for module in bound[0].modules] == [("Foo", "1.0")]
