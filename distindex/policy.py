"""Indexing, authorization and release status rules.

These functions mirror what the PAUSE indexer decides about a file: which
declared packages end up in the index, which ones the uploader is allowed
to claim, and which release of a distribution is the current one. Outcomes
are flags and returned lists, never exceptions.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Collection, List, Optional, Sequence

from .logging import get_logger
from .metadata import DistMeta
from .models import Module, Release

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .document import File
    from .permissions import Permissions

# Files shipped with most releases that never hold indexable modules.
OTHER_FILES: frozenset[str] = frozenset(
    (
        "AUTHORS",
        "Build.PL",
        "Changelog",
        "ChangeLog",
        "CHANGELOG",
        "Changes",
        "CHANGES",
        "CONTRIBUTING",
        "CONTRIBUTING.md",
        "CONTRIBUTING.pod",
        "Copying",
        "COPYRIGHT",
        "cpanfile",
        "CREDITS",
        "dist.ini",
        "FAQ",
        "INSTALL",
        "INSTALL.md",
        "INSTALL.pod",
        "LICENSE",
        "Makefile.PL",
        "MANIFEST",
        "META.json",
        "META.yml",
        "META6.json",
        "NEWS",
        "README",
        "README.md",
        "README.pod",
        "THANKS",
        "Todo",
        "ToDo",
        "TODO",
    )
)

CORE_DISTRIBUTION = "perl"

logger = get_logger("policy")


def is_ancillary_file(path: str) -> bool:
    return path in OTHER_FILES


def hide_from_pause(
    content: str, package: str, file_name: Optional[str] = None, *, perl6: bool = False
) -> bool:
    """True when ``package`` is not declared on a single line.

    PAUSE only sees ``package Foo::Bar;`` written on one line, so authors
    split the statement (``package # hide\\n Foo::Bar;``) to keep a package
    out of the index. Generated ``*.pm.PL`` files are never hidden. With
    ``perl6`` the ``unit module``, ``class``, ``role`` and ``grammar``
    declarators count as well.
    """
    if file_name is not None and file_name.endswith(".pm.PL"):
        return False
    name = re.escape(package)
    if perl6:
        pattern = re.compile(
            rf"^[ \t]*(?:unit[ \t]+)?(?:module|class|role|grammar|package)[ \t]+{name}(?![\w:'-])",
            re.MULTILINE,
        )
    else:
        pattern = re.compile(
            rf"^[ \t{{;]*package[ \t]+({name})[ \t]*(.+)?[ \t]*[;{{]",
            re.MULTILINE,
        )
    return pattern.search(content) is None


def set_indexed(file: "File", meta: DistMeta) -> None:
    """Decide the ``indexed`` flag of ``file`` and of each of its modules."""
    if is_ancillary_file(file.path):
        for module in file.modules:
            module.indexed = False
        file.indexed = False
        return

    for module in file.modules:
        # Overrides a decision made during discovery.
        if not re.match(r"^[A-Za-z]", module.name):
            module.indexed = False
            continue
        module.commit_indexed(
            meta.should_index_package(module.name)
            and not hide_from_pause(file.text, module.name, file.name, perl6=file.perl6)
        )

    file.clear_documentation()
    documentation = file.documentation
    if documentation is None:
        return
    file.indexed = not file.modules or any(module.name == documentation for module in file.modules)


def set_authorized(file: "File", permissions: "Permissions", author: str) -> List[Module]:
    """Flag modules (and the file) the uploader has no permission for.

    Returns the modules that are indexed but unauthorized.
    """
    if file.distribution == CORE_DISTRIBUTION:
        return []

    for module in file.modules:
        module.commit_authorized(permissions.is_authorized(module.name, author))

    documentation = file.documentation
    if documentation and not permissions.is_authorized(documentation, author):
        file.authorized = False

    return [module for module in file.modules if module.is_indexed and not module.is_authorized]


def resolve_statuses(
    releases: Sequence[Release],
    *,
    on_mirror: Optional[Collection[str]] = None,
    current: Optional[Collection[str]] = None,
) -> List[Release]:
    """Assign ``latest`` / ``cpan`` / ``backpan`` to one distribution's releases.

    ``on_mirror`` holds the archive names still present on the mirror; when
    omitted every release counts as present. ``current`` holds the archive
    names a package index points at; when given, ``latest`` is picked among
    those if any of them is present.
    """
    present: List[Release] = []
    for release in releases:
        if on_mirror is not None and release.archive not in on_mirror:
            release.status = "backpan"
        else:
            release.status = "cpan"
            present.append(release)

    if not present:
        return list(releases)

    pool = present
    if current is not None:
        pool = [release for release in present if release.archive in current] or present
    pool = [release for release in pool if release.authorized] or pool
    stable = [release for release in pool if release.maturity == "released"]
    latest = max(stable or pool, key=lambda item: (item.date, item.version_numified, item.name))
    latest.status = "latest"
    logger.debug("Latest release of %s is %s", latest.distribution, latest.id)
    return list(releases)


__all__ = [
    "CORE_DISTRIBUTION",
    "OTHER_FILES",
    "hide_from_pause",
    "is_ancillary_file",
    "resolve_statuses",
    "set_authorized",
    "set_indexed",
]
