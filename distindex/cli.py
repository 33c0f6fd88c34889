"""CLI entrypoints for distindex commands."""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from .config import CONFIG_FILENAME, IndexerConfig, load_config
from .errors import IndexerError
from .logging import configure_logging
from .mirror import EcosystemMirror, build_indices
from .orchestrator import IndexRun
from .packages import Packages
from .permissions import Permissions
from .search import FileSearch
from .source import SourceLocator
from .stores import DocumentStore

PERL6_ENV = "DISTINDEX_IS_PERL6"


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="distindex",
        description="Index CPAN-style distribution archives into a searchable store.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        default=CONFIG_FILENAME,
        help=f"Path to the configuration file or its directory (defaults to ./{CONFIG_FILENAME}).",
    )
    parser.add_argument(
        "--perl6",
        action="store_true",
        default=False,
        help=f"Index Perl 6 distributions (also enabled by {PERL6_ENV}=1).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", help="Index one or more release archives.")
    _add_verbose_option(index_parser, suppress_default=True)
    index_parser.add_argument("archives", nargs="+", help="Archive paths below authors/id.")
    index_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of archives to index concurrently.",
    )

    find_parser = subparsers.add_parser("find", help="Show the file that best provides a module.")
    _add_verbose_option(find_parser, suppress_default=True)
    find_parser.add_argument("module", help="Module name, e.g. Foo::Bar.")
    find_parser.add_argument(
        "--pod",
        action="store_true",
        help="Follow the module's associated documentation file.",
    )

    source_parser = subparsers.add_parser("source", help="Print the local path of a released file.")
    _add_verbose_option(source_parser, suppress_default=True)
    source_parser.add_argument("author")
    source_parser.add_argument("release")
    source_parser.add_argument("path", nargs="?", default="")

    indices_parser = subparsers.add_parser(
        "build-indices",
        help="Rebuild the Perl 6 package indices from an authors/id tree.",
    )
    _add_verbose_option(indices_parser, suppress_default=True)
    indices_parser.add_argument("authors_dir", help="Path to the authors/id directory.")

    mirror_parser = subparsers.add_parser(
        "mirror",
        help="Mirror the Perl 6 ecosystem into release archives.",
    )
    _add_verbose_option(mirror_parser, suppress_default=True)
    mirror_parser.add_argument("repo_dir", help="Directory holding the git checkouts.")
    mirror_parser.add_argument("dist_dir", help="The authors/id directory to write archives to.")
    mirror_parser.add_argument("--author", default="JDV", help="PAUSE id owning the archives.")
    mirror_parser.add_argument(
        "--skip",
        action="append",
        default=[],
        help="Repository name to update but not package (repeatable).",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for distindex commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose))

    try:
        config = _load_settings(args)
    except IndexerError as exc:
        parser.exit(1, f"{exc}\n")

    try:
        if args.command == "index":
            _run_index(parser, config, args)
        elif args.command == "find":
            _run_find(parser, config, args)
        elif args.command == "source":
            _run_source(parser, config, args)
        elif args.command == "build-indices":
            result = build_indices(Path(args.authors_dir))
            print(f"Indexed {len(result.dists)} dists providing {len(result.provides)} packages")
        elif args.command == "mirror":
            mirror = EcosystemMirror(
                Path(args.repo_dir),
                Path(args.dist_dir),
                author=args.author,
                url=config.ecosystem_url,
                skip_repos=args.skip,
            )
            outcome = mirror.run()
            print(f"Archived {len(outcome.archived)} repositories ({len(outcome.failed)} failed)")
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except IndexerError as exc:
        parser.exit(
            1,
            f"distindex {args.command} failed: {exc}\nRun with --verbose for more details.\n",
        )


def _load_settings(args: argparse.Namespace) -> IndexerConfig:
    config = load_config(Path(args.config))
    perl6 = bool(args.perl6) or _env_flag(os.environ.get(PERL6_ENV))
    return config.with_overrides(
        perl6=True if perl6 else None,
        workers=getattr(args, "workers", None),
    )


def _run_index(
    parser: argparse.ArgumentParser, config: IndexerConfig, args: argparse.Namespace
) -> None:
    store = DocumentStore(config.store_path)
    permissions = Permissions.load(config.permissions) if config.permissions else None
    packages = Packages.load(config.packages_dir) if config.packages_dir else None
    run = IndexRun(config, store, permissions=permissions, packages=packages)
    summary = run.index(Path(archive) for archive in args.archives)
    print(
        f"Indexed {len(summary.indexed)} archives "
        f"({len(summary.skipped)} skipped, {len(summary.failed)} failed)"
    )
    if summary.failed:
        parser.exit(1)


def _run_find(
    parser: argparse.ArgumentParser, config: IndexerConfig, args: argparse.Namespace
) -> None:
    search = FileSearch(DocumentStore(config.store_path))
    found = search.find_pod(args.module) if args.pod else search.find(args.module)
    if found is None:
        parser.exit(1, f"No file provides {args.module}\n")
    keys = ("author", "release", "path", "documentation", "status", "date")
    print(json.dumps({key: found.get(key) for key in keys}, indent=2, sort_keys=True))


def _run_source(
    parser: argparse.ArgumentParser, config: IndexerConfig, args: argparse.Namespace
) -> None:
    if config.cpan is None:
        parser.exit(1, "The 'cpan' setting is required to locate sources\n")
    locator = SourceLocator(config.source_path, config.cpan, perl6=config.perl6)
    found = locator.path(args.author, args.release, args.path)
    if found is None:
        parser.exit(1, f"Not found: {args.author}/{args.release}/{args.path}\n")
    print(found)


def _env_flag(value: str | None) -> bool:
    return (value or "").strip().lower() not in {"", "0", "false", "no"}


if __name__ == "__main__":
    main(sys.argv[1:])
