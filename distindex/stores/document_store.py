"""JSON-backed document store for releases, files and distributions."""

from __future__ import annotations

import copy
import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..errors import IndexerError
from ..logging import get_logger
from .query import MatchAll, Query, SortField, sort_documents

_STORE_VERSION = 1
DOCUMENT_TYPES = ("release", "file", "distribution")


class DocumentExistsError(IndexerError):
    """Raised by a create-only put when the document is already stored."""


class DocumentStore:
    """Stores typed documents keyed by their ``id`` field.

    Writes through :meth:`put` are searchable immediately; writes through a
    :class:`BulkWriter` become visible when the writer flushes. ``refresh``
    additionally persists the store to disk.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._documents: Dict[str, Dict[str, Dict[str, Any]]] = {
            kind: {} for kind in DOCUMENT_TYPES
        }
        self._lock = threading.RLock()
        self._dirty = False
        self.logger = get_logger("store")
        if self._path is not None:
            self._load(self._path)

    def put(
        self,
        kind: str,
        document: Mapping[str, Any],
        *,
        refresh: bool = False,
        create: bool = False,
    ) -> Dict[str, Any]:
        documents = self._bucket(kind)
        doc_id = _document_id(document)
        stored = copy.deepcopy(dict(document))
        with self._lock:
            if create and doc_id in documents:
                raise DocumentExistsError(f"{kind} {doc_id} already exists")
            documents[doc_id] = stored
            self._dirty = True
        if refresh:
            self.persist()
        return copy.deepcopy(stored)

    def put_many(self, kind: str, documents: Sequence[Mapping[str, Any]]) -> int:
        bucket = self._bucket(kind)
        prepared = {_document_id(doc): copy.deepcopy(dict(doc)) for doc in documents}
        with self._lock:
            bucket.update(prepared)
            if prepared:
                self._dirty = True
        return len(prepared)

    def get(self, kind: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._bucket(kind).get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def delete(self, kind: str, doc_id: str) -> bool:
        with self._lock:
            removed = self._bucket(kind).pop(doc_id, None) is not None
            self._dirty = self._dirty or removed
        return removed

    def search(
        self,
        kind: str,
        query: Optional[Query] = None,
        *,
        sort: Sequence[SortField] = (),
        size: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return matching documents ordered by ``sort``, then by id."""
        query = query or MatchAll()
        with self._lock:
            matched = [
                doc
                for _, doc in sorted(self._bucket(kind).items())
                if query.matches(doc)
            ]
            ordered = sort_documents(matched, sort)
            if size is not None:
                ordered = ordered[:size]
            return [copy.deepcopy(dict(doc)) for doc in ordered]

    def count(self, kind: str, query: Optional[Query] = None) -> int:
        query = query or MatchAll()
        with self._lock:
            return sum(1 for doc in self._bucket(kind).values() if query.matches(doc))

    def bulk(self, kind: str, *, size: int = 500) -> "BulkWriter":
        self._bucket(kind)
        return BulkWriter(self, kind, size=size)

    def persist(self) -> None:
        if self._path is None:
            return
        with self._lock:
            if not self._dirty:
                return
            payload = {"version": _STORE_VERSION, "documents": self._documents}
            text = json.dumps(payload, indent=2, sort_keys=True)
            self._dirty = False
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(text, encoding="utf-8")
        self.logger.debug("Persisted document store to %s", self._path)

    # ------------------------------------------------------------------
    # Internal helpers

    def _bucket(self, kind: str) -> Dict[str, Dict[str, Any]]:
        try:
            return self._documents[kind]
        except KeyError:
            raise ValueError(f"Unknown document type: {kind}") from None

    def _load(self, path: Path) -> None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as exc:
            self.logger.warning("Ignoring unreadable document store %s: %s", path, exc)
            return
        if not isinstance(data, dict) or data.get("version") != _STORE_VERSION:
            return
        documents = data.get("documents")
        if not isinstance(documents, dict):
            return
        for kind in DOCUMENT_TYPES:
            entries = documents.get(kind)
            if isinstance(entries, dict):
                self._documents[kind] = {
                    key: value for key, value in entries.items() if isinstance(value, dict)
                }
        self._dirty = False


class BulkWriter:
    """Buffers documents and hands them to the store in batches.

    ``commit`` flushes what is left and returns the number of documents
    written since the writer was created. Leaving a ``with`` block commits
    unless an exception escaped it.
    """

    def __init__(self, store: DocumentStore, kind: str, *, size: int = 500) -> None:
        self.store = store
        self.kind = kind
        self.size = max(size, 1)
        self.written = 0
        self._buffer: List[Mapping[str, Any]] = []

    def __enter__(self) -> "BulkWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self._buffer.clear()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def put(self, document: Mapping[str, Any]) -> None:
        self._buffer.append(document)
        if len(self._buffer) >= self.size:
            self.flush()

    def flush(self) -> None:
        if not self._buffer:
            return
        self.written += self.store.put_many(self.kind, self._buffer)
        self._buffer = []

    def commit(self) -> int:
        self.flush()
        return self.written


def _document_id(document: Mapping[str, Any]) -> str:
    doc_id = document.get("id")
    if not isinstance(doc_id, str) or not doc_id:
        raise ValueError("document has no id")
    return doc_id


__all__ = ["BulkWriter", "DOCUMENT_TYPES", "DocumentExistsError", "DocumentStore"]
