"""Tests for the JSON document store and its query algebra."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from distindex.stores import (
    And,
    DocumentExistsError,
    DocumentStore,
    Exists,
    Nested,
    Not,
    Or,
    Prefix,
    SortField,
    Term,
    Terms,
    field_values,
)

DOCS = [
    {
        "id": "a",
        "name": "Foo.pm",
        "date": "2020-01-01",
        "stat": {"mtime": 3},
        "module": [{"name": "Foo", "indexed": True, "authorized": False}],
    },
    {
        "id": "b",
        "name": "Bar.pm",
        "date": "2021-01-01",
        "stat": {"mtime": 1},
        "module": [
            {"name": "Foo", "indexed": False, "authorized": True},
            {"name": "Bar", "indexed": True, "authorized": True},
        ],
    },
    {"id": "c", "name": "README", "date": "2021-01-01", "stat": {"mtime": 2}},
]


@pytest.fixture
def store() -> DocumentStore:
    store = DocumentStore()
    store.put_many("file", DOCS)
    return store


def ids(documents: list) -> list:
    return [document["id"] for document in documents]


def test_field_values_flattens_lists() -> None:
    assert field_values(DOCS[1], "module.name") == ["Foo", "Bar"]
    assert field_values(DOCS[2], "module.name") == []


def test_term_and_boolean_queries(store: DocumentStore) -> None:
    assert ids(store.search("file", Term("module.name", "Foo"))) == ["a", "b"]
    assert ids(store.search("file", Not(Exists("module")))) == ["c"]
    assert ids(store.search("file", Or(Term("name", "README"), Prefix("name", "Fo")))) == ["a", "c"]
    assert ids(store.search("file", Terms("name", ["Bar.pm", "README"]))) == ["b", "c"]
    assert store.count("file", And(Term("date", "2021-01-01"), Exists("module"))) == 1


def test_nested_query_matches_within_one_element(store: DocumentStore) -> None:
    flat = And(Term("module.name", "Foo"), Term("module.indexed", True))
    nested = Nested("module", And(Term("name", "Foo"), Term("indexed", True)))

    assert ids(store.search("file", flat)) == ["a", "b"]
    assert ids(store.search("file", nested)) == ["a"]


def test_sorting_with_missing_fields_last(store: DocumentStore) -> None:
    sort = (SortField("date", "desc"), SortField("stat.mtime", "desc"))

    assert ids(store.search("file", sort=sort)) == ["c", "b", "a"]
    assert ids(store.search("file", sort=(SortField("module.name"),))) == ["b", "a", "c"]
    assert ids(store.search("file", sort=sort, size=1)) == ["c"]


def test_invalid_sort_order() -> None:
    with pytest.raises(ValueError):
        SortField("date", "sideways")


def test_create_only_put(store: DocumentStore) -> None:
    store.put("distribution", {"id": "Foo", "name": "Foo"}, create=True)

    with pytest.raises(DocumentExistsError):
        store.put("distribution", {"id": "Foo", "name": "Other"}, create=True)
    assert store.get("distribution", "Foo") == {"id": "Foo", "name": "Foo"}


def test_unknown_document_type() -> None:
    with pytest.raises(ValueError):
        DocumentStore().get("author", "x")


def test_documents_are_copied(store: DocumentStore) -> None:
    document = store.get("file", "a")
    document["name"] = "changed"

    assert store.get("file", "a")["name"] == "Foo.pm"


def test_bulk_writer_flushes_in_batches() -> None:
    store = DocumentStore()
    bulk = store.bulk("file", size=2)

    bulk.put({"id": "1"})
    assert store.count("file") == 0
    bulk.put({"id": "2"})
    assert store.count("file") == 2
    bulk.put({"id": "3"})
    assert bulk.pending == 1
    assert bulk.commit() == 3
    assert store.count("file") == 3


def test_bulk_writer_context_discards_on_error() -> None:
    store = DocumentStore()

    with pytest.raises(RuntimeError):
        with store.bulk("file") as bulk:
            bulk.put({"id": "1"})
            raise RuntimeError("boom")

    assert store.count("file") == 0


def test_persist_and_reload(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    store = DocumentStore(path)
    store.put("release", {"id": "ALICE/Foo-1.0", "name": "Foo-1.0"}, refresh=True)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert DocumentStore(path).get("release", "ALICE/Foo-1.0") == {"id": "ALICE/Foo-1.0", "name": "Foo-1.0"}


def test_unreadable_store_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    path.write_text("{broken", encoding="utf-8")

    assert DocumentStore(path).count("file") == 0
