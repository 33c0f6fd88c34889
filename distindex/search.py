"""Lookups against indexed file documents."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .document import document_id
from .logging import get_logger
from .stores import (
    And,
    DocumentStore,
    Exists,
    Nested,
    Not,
    Or,
    SortField,
    Term,
    Terms,
)

# Distributions that squat on many well-known module names.
ROGUE_DISTRIBUTIONS = (
    "kurila",
    "perl_debug",
    "perl-5.005_02+apache1.3.3+modperl",
    "pod2texi",
    "perlbench",
    "spodcxx",
    "Bundle-Everything",
)

BEST_MATCH_SORT = (
    SortField("date", "desc"),
    SortField("mime"),
    SortField("stat.mtime", "desc"),
)
CANDIDATE_LIMIT = 100

_WORD_SPLIT = re.compile(r"::|[^\w]+|_|(?<=[a-z0-9])(?=[A-Z])")

Document = Dict[str, Any]


class FileSearch:
    """Answers "which file implements module X" and related queries."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self.logger = get_logger("search")

    def find(self, module: str) -> Optional[Document]:
        """Return the canonical file for ``module`` or ``None``.

        Candidates are indexed files of latest releases that are not
        unauthorized, newest first. The first one whose documentation is
        empty or equal to ``module`` and that carries an indexed and
        authorized module of that name wins; otherwise the first candidate.
        """
        query = And(
            Or(Term("module.name", module), Term("documentation", module)),
            Term("indexed", True),
            Term("status", "latest"),
            Not(Term("authorized", False)),
        )
        candidates = self.store.search("file", query, sort=BEST_MATCH_SORT, size=CANDIDATE_LIMIT)
        for candidate in candidates:
            documentation = candidate.get("documentation")
            if documentation and documentation != module:
                continue
            if _claimed_module(candidate, module) is not None:
                return candidate
        return candidates[0] if candidates else None

    def find_pod(self, name: str) -> Optional[Document]:
        """Like :meth:`find`, but follows a module's ``associated_pod``."""
        found = self.find(name)
        if found is None:
            return None
        module = _claimed_module(found, name)
        if module is None or not module.get("associated_pod"):
            return found
        author, release, *path = str(module["associated_pod"]).split("/")
        return self.store.get("file", document_id(author, release, "/".join(path)))

    def find_provided_by(self, release: Mapping[str, Any]) -> List[Document]:
        query = And(
            Term("release", release["name"]),
            Term("author", release["author"]),
            Term("module.authorized", True),
            Term("module.indexed", True),
        )
        return self.store.search("file", query, size=999)

    def find_module_names_provided_by(self, release: Mapping[str, Any]) -> List[str]:
        return [
            module["name"]
            for file in self.find_provided_by(release)
            for module in file.get("module") or []
            if module.get("indexed") and module.get("authorized")
        ]

    def history(self, kind: str, name: str, path: Optional[str] = None) -> List[Document]:
        """Every file that ever answered for a module, path or documentation name."""
        if kind == "module":
            query = Nested(
                "module",
                And(
                    Term("authorized", True),
                    Term("indexed", True),
                    Term("name", name),
                ),
            )
        elif kind == "file":
            query = And(Term("path", path or ""), Term("distribution", name))
        elif kind == "documentation":
            query = And(
                Term("documentation", name),
                Term("indexed", True),
                Term("authorized", True),
            )
        else:
            raise ValueError(f"Unknown history type: {kind}")
        return self.store.search("file", query, sort=(SortField("date", "desc"),))

    def autocomplete(self, *terms: str, size: int = 20) -> List[Document]:
        """Documentation names starting with the given words, shortest first."""
        words = [word.lower() for word in " ".join(terms).replace("::", " ").split() if word]
        if not words:
            return []
        query = And(
            Not(Terms("distribution", ROGUE_DISTRIBUTIONS)),
            Exists("documentation"),
            Term("indexed", True),
            Term("authorized", True),
            Term("status", "latest"),
        )
        scored = []
        for candidate in self.store.search("file", query):
            documentation = candidate["documentation"]
            hits = _prefix_hits(documentation, words)
            if hits:
                scored.append((hits - len(documentation) / 100, documentation, candidate))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [candidate for _, _, candidate in scored[:size]]


def _claimed_module(document: Mapping[str, Any], name: str) -> Optional[Mapping[str, Any]]:
    for module in document.get("module") or []:
        if module.get("indexed") and module.get("authorized") and module.get("name") == name:
            return module
    return None


def _prefix_hits(documentation: str, words: Sequence[str]) -> int:
    tokens = [token.lower() for token in _WORD_SPLIT.split(documentation) if token]
    tokens.append(documentation.lower().replace("::", " "))
    return sum(1 for word in words if any(token.startswith(word) for token in tokens))


__all__ = ["BEST_MATCH_SORT", "FileSearch", "ROGUE_DISTRIBUTIONS"]
