"""Document-collection persistence for the finance tracker services.

Mirrors the hosted document database the application delegates to: named
collections of JSON documents keyed by id, queried with simple
``(field, op, value)`` filters on fields such as the owning user id.
"""

from __future__ import annotations

import json
import logging
import operator
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from .exceptions import PersistenceError, RecordNotFoundError, ValidationError

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Condition = Tuple[str, str, Any]


def _array_contains(candidate: Any, value: Any) -> bool:
    return isinstance(candidate, list) and value in candidate


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "array-contains": _array_contains,
}


class JSONDocumentStore:
    """File-based document collections with crash-safe writes.

    Each collection lives in ``<base_path>/<collection>.json`` as a list of
    documents carrying their own ``id``.
    """

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    # Public API -----------------------------------------------------------
    def add(self, collection: str, data: Document) -> str:
        """Insert a new document and return its generated id."""
        doc_id = str(uuid4())
        with self._lock:
            documents = self._read(collection)
            documents.append({**data, "id": doc_id})
            self._write(collection, documents)
        logger.debug("Added %s/%s", collection, doc_id)
        return doc_id

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        """Create or overwrite the document stored under ``doc_id``."""
        with self._lock:
            documents = [doc for doc in self._read(collection) if doc.get("id") != doc_id]
            documents.append({**data, "id": doc_id})
            self._write(collection, documents)

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            for doc in self._read(collection):
                if doc.get("id") == doc_id:
                    return dict(doc)
        return None

    def update(self, collection: str, doc_id: str, changes: Document) -> Document:
        with self._lock:
            documents = self._read(collection)
            for index, doc in enumerate(documents):
                if doc.get("id") == doc_id:
                    updated = {**doc, **changes, "id": doc_id}
                    documents[index] = updated
                    self._write(collection, documents)
                    return dict(updated)
        raise RecordNotFoundError(f"{collection}/{doc_id} not found")

    def modify(
        self, collection: str, doc_id: str, mutate: Callable[[Document], Document]
    ) -> Document:
        """Replace a document with ``mutate(document)`` in one locked read-write."""
        with self._lock:
            documents = self._read(collection)
            for index, doc in enumerate(documents):
                if doc.get("id") == doc_id:
                    updated = {**mutate(dict(doc)), "id": doc_id}
                    documents[index] = updated
                    self._write(collection, documents)
                    return dict(updated)
        raise RecordNotFoundError(f"{collection}/{doc_id} not found")

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            documents = self._read(collection)
            remaining = [doc for doc in documents if doc.get("id") != doc_id]
            if len(remaining) == len(documents):
                raise RecordNotFoundError(f"{collection}/{doc_id} not found")
            self._write(collection, remaining)
        logger.debug("Deleted %s/%s", collection, doc_id)

    def query(
        self, collection: str, where: Optional[Sequence[Condition]] = None
    ) -> List[Document]:
        """Return documents matching every ``(field, op, value)`` condition."""
        conditions = [self._compile(condition) for condition in (where or ())]
        with self._lock:
            documents = self._read(collection)
        return [
            dict(doc)
            for doc in documents
            if all(check(doc) for check in conditions)
        ]

    @property
    def base_path(self) -> Path:
        return self._base_path

    # Internal helpers -----------------------------------------------------
    def _compile(self, condition: Condition) -> Callable[[Document], bool]:
        field, op, value = condition
        try:
            compare = OPERATORS[op]
        except KeyError as exc:
            raise ValidationError(f"Unsupported query operator: {op}") from exc

        def check(doc: Document) -> bool:
            if field not in doc:
                return False
            candidate = doc[field]
            try:
                return bool(compare(candidate, value))
            except TypeError:
                # Mismatched types never match, as in the hosted database.
                return False

        return check

    def _path(self, collection: str) -> Path:
        return self._base_path / f"{collection}.json"

    def _read(self, collection: str) -> List[Document]:
        path = self._path(collection)
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Corrupted JSON data in {path}") from exc
        except OSError as exc:
            raise PersistenceError(f"Unable to read from {path}") from exc

        if not isinstance(payload, list):
            raise PersistenceError(f"Expected list payload in {path}")
        return payload

    def _write(self, collection: str, documents: Iterable[Document]) -> None:
        path = self._path(collection)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as handle:
                json.dump(list(documents), handle, indent=2)
                handle.flush()
            # Use replace for atomic move on POSIX; ensures crash-safe persistence.
            temp_path.replace(path)
        except OSError as exc:
            raise PersistenceError(f"Unable to write to {path}") from exc
