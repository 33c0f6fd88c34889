"""A small boolean query algebra evaluated against JSON-like documents.

Field names are dotted paths (``stat.mtime``). Lists met along a path are
flattened, so ``Term("module.name", "Foo")`` matches when any module is
named ``Foo``. Use :class:`Nested` when several conditions must hold for
the same list element.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Sequence, Tuple


def field_values(document: Any, field: str) -> List[Any]:
    """Return every value found at ``field`` inside ``document``."""
    values: List[Any] = [document]
    for part in field.split("."):
        found: List[Any] = []
        for value in values:
            if isinstance(value, Mapping) and part in value:
                found.append(value[part])
        values = []
        for value in found:
            if isinstance(value, list):
                values.extend(value)
            else:
                values.append(value)
    return [value for value in values if value is not None]


class Query:
    def matches(self, document: Mapping[str, Any]) -> bool:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass(frozen=True)
class MatchAll(Query):
    def matches(self, document: Mapping[str, Any]) -> bool:
        return True


@dataclass(frozen=True)
class Term(Query):
    field: str
    value: Any

    def matches(self, document: Mapping[str, Any]) -> bool:
        return any(value == self.value for value in field_values(document, self.field))


@dataclass(frozen=True)
class Terms(Query):
    field: str
    values: Tuple[Any, ...]

    def __init__(self, field: str, values: Iterable[Any]) -> None:
        object.__setattr__(self, "field", field)
        object.__setattr__(self, "values", tuple(values))

    def matches(self, document: Mapping[str, Any]) -> bool:
        return any(value in self.values for value in field_values(document, self.field))


@dataclass(frozen=True)
class Prefix(Query):
    field: str
    prefix: str

    def matches(self, document: Mapping[str, Any]) -> bool:
        return any(
            isinstance(value, str) and value.startswith(self.prefix)
            for value in field_values(document, self.field)
        )


@dataclass(frozen=True)
class Exists(Query):
    field: str

    def matches(self, document: Mapping[str, Any]) -> bool:
        return any(value != "" for value in field_values(document, self.field))


@dataclass(frozen=True)
class Nested(Query):
    """Match when one element under ``path`` satisfies ``query`` on its own."""

    path: str
    query: Query

    def matches(self, document: Mapping[str, Any]) -> bool:
        return any(
            isinstance(item, Mapping) and self.query.matches(item)
            for item in field_values(document, self.path)
        )


@dataclass(frozen=True)
class And(Query):
    queries: Tuple[Query, ...]

    def __init__(self, *queries: Query) -> None:
        object.__setattr__(self, "queries", tuple(queries))

    def matches(self, document: Mapping[str, Any]) -> bool:
        return all(query.matches(document) for query in self.queries)


@dataclass(frozen=True)
class Or(Query):
    queries: Tuple[Query, ...]

    def __init__(self, *queries: Query) -> None:
        object.__setattr__(self, "queries", tuple(queries))

    def matches(self, document: Mapping[str, Any]) -> bool:
        return any(query.matches(document) for query in self.queries)


@dataclass(frozen=True)
class Not(Query):
    query: Query

    def matches(self, document: Mapping[str, Any]) -> bool:
        return not self.query.matches(document)


@dataclass(frozen=True)
class SortField:
    """Sort key; documents missing the field sort last in either order."""

    field: str
    order: str = "asc"

    def __post_init__(self) -> None:
        if self.order not in ("asc", "desc"):
            raise ValueError(f"Unknown sort order: {self.order}")


def sort_documents(
    documents: Sequence[Mapping[str, Any]], sort: Sequence[SortField]
) -> List[Mapping[str, Any]]:
    ordered = list(documents)
    for key in reversed(sort):
        present = [doc for doc in ordered if field_values(doc, key.field)]
        missing = [doc for doc in ordered if not field_values(doc, key.field)]
        present.sort(
            key=lambda doc: _sort_value(doc, key),
            reverse=key.order == "desc",
        )
        ordered = present + missing
    return ordered


def _sort_value(document: Mapping[str, Any], key: SortField) -> Any:
    values = field_values(document, key.field)
    return max(values) if key.order == "desc" else min(values)


__all__ = [
    "And",
    "Exists",
    "MatchAll",
    "Nested",
    "Not",
    "Or",
    "Prefix",
    "Query",
    "SortField",
    "Term",
    "Terms",
    "field_values",
    "sort_documents",
]
