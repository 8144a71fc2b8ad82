"""Document store adapters.

The change-request engine only needs a handful of CRUD operations over named
collections of JSON documents. ``SqlDocumentStore`` keeps them in a single
SQL table; ``InMemoryDocumentStore`` is the process-local equivalent used by
tests and demos.

Both serialize ``transaction()`` blocks behind a process lock, so reading the
current maximum identifier and writing the record that uses the next one
cannot interleave with another allocation in the same process. The unique
index on the identifier covers everything else.
"""

from __future__ import annotations

import copy
import fnmatch
import json
import re
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Protocol

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from bizdir.core.errors import ConflictError, NotFoundError, StoreUnavailableError

_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DocumentStore(Protocol):
    def create(self, collection: str, doc: dict[str, Any], *, doc_id: str | None = None) -> str:
        """Insert a document and return its id"""
        ...

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Fetch one document, with its id under ``id``"""
        ...

    def query(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        """Documents whose top-level ``field`` equals ``value``"""
        ...

    def update(self, collection: str, doc_id: str, partial: dict[str, Any]) -> None:
        """Merge ``partial`` into the top level of an existing document"""
        ...

    def delete(self, collection: str, doc_id: str) -> bool:
        """Remove a document. False when it did not exist"""
        ...

    def list(self, collection: str) -> list[dict[str, Any]]:
        """Every document of a collection, oldest first"""
        ...

    def max_value(self, collection: str, field: str, pattern: str | None = None) -> Any:
        """Largest value of ``field``, optionally restricted to values matching a glob"""
        ...

    def ensure_unique(self, collection: str, field: str) -> None:
        """Reject any later write that would duplicate ``field`` within the collection"""
        ...

    def transaction(self) -> Any:
        """Context manager: everything inside commits together or not at all"""
        ...


def _check_name(name: str) -> str:
    if not _NAME.match(name):
        raise ValueError(f"Invalid collection or field name: {name!r}")
    return name


_SQL_LOCK = threading.RLock()


class SqlDocumentStore(DocumentStore):
    """JSON documents in the ``documents`` table, queried with ``json_extract``."""

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator["SqlDocumentStore"]:
        with _SQL_LOCK:
            self._depth += 1
            try:
                yield self
            except Exception:
                self._depth -= 1
                if self._depth == 0:
                    self.db.rollback()
                raise
            self._depth -= 1
            if self._depth == 0:
                self._commit()

    def create(self, collection: str, doc: dict[str, Any], *, doc_id: str | None = None) -> str:
        doc_id = doc_id or uuid.uuid4().hex
        query = text("""
                INSERT INTO documents (
                    id,
                    collection,
                    body,
                    created_at
                ) VALUES (
                    :id,
                    :collection,
                    :body,
                    :created_at
                )
                """)
        params = {
            "id": doc_id,
            "collection": collection,
            "body": self._dump(doc),
            "created_at": datetime.now(),
        }
        self._execute(query, params)
        self._autocommit()
        return doc_id

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        query = text("""
                SELECT id, body FROM documents
                WHERE collection = :collection AND id = :id
                """)
        row = self._execute(query, {"collection": collection, "id": doc_id}).mappings().first()
        return self._load(row) if row else None

    def query(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        query = text("""
                SELECT id, body FROM documents
                WHERE collection = :collection
                  AND json_extract(body, :path) = :value
                ORDER BY created_at, id
                """)
        if isinstance(value, bool):
            value = int(value)
        params = {"collection": collection, "path": f"$.{_check_name(field)}", "value": value}
        return [self._load(row) for row in self._execute(query, params).mappings()]

    def update(self, collection: str, doc_id: str, partial: dict[str, Any]) -> None:
        current = self.get(collection, doc_id)
        if current is None:
            raise NotFoundError(f"{collection}/{doc_id} does not exist")
        current.pop("id", None)
        current.update(partial)

        query = text("""
                UPDATE documents
                SET
                    body = :body,
                    updated_at = :updated_at
                WHERE collection = :collection AND id = :id
                """)
        params = {
            "collection": collection,
            "id": doc_id,
            "body": self._dump(current),
            "updated_at": datetime.now(),
        }
        self._execute(query, params)
        self._autocommit()

    def delete(self, collection: str, doc_id: str) -> bool:
        query = text("""
                DELETE FROM documents
                WHERE collection = :collection AND id = :id
                """)
        result = self._execute(query, {"collection": collection, "id": doc_id})
        self._autocommit()
        return result.rowcount > 0

    def list(self, collection: str) -> list[dict[str, Any]]:
        query = text("""
                SELECT id, body FROM documents
                WHERE collection = :collection
                ORDER BY created_at, id
                """)
        return [self._load(row) for row in self._execute(query, {"collection": collection}).mappings()]

    def max_value(self, collection: str, field: str, pattern: str | None = None) -> Any:
        conditions = ["collection = :collection"]
        params: dict[str, Any] = {"collection": collection, "path": f"$.{_check_name(field)}"}
        if pattern is not None:
            conditions.append("json_extract(body, :path) GLOB :pattern")
            params["pattern"] = pattern

        query = text(f"""
            SELECT MAX(json_extract(body, :path)) AS max_value
            FROM documents
            WHERE {" AND ".join(conditions)}
        """)
        return self._execute(query, params).scalar_one()

    def ensure_unique(self, collection: str, field: str) -> None:
        # DDL cannot take bound parameters; both names are checked first
        collection, field = _check_name(collection), _check_name(field)
        query = text(f"""
            CREATE UNIQUE INDEX IF NOT EXISTS ux_{collection}_{field}
            ON documents (json_extract(body, '$.{field}'))
            WHERE collection = '{collection}'
        """)
        self._execute(query, {})
        self._autocommit()

    def _execute(self, query, params: dict[str, Any]):
        try:
            return self.db.execute(query, params)
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"Unique constraint violated: {exc.orig}") from exc
        except OperationalError as exc:
            self.db.rollback()
            raise StoreUnavailableError(f"Record store unavailable: {exc.orig}") from exc

    def _autocommit(self) -> None:
        if self._depth == 0:
            self._commit()

    def _commit(self) -> None:
        try:
            self.db.commit()
        except OperationalError as exc:
            self.db.rollback()
            raise StoreUnavailableError(f"Record store unavailable: {exc.orig}") from exc

    @staticmethod
    def _dump(doc: dict[str, Any]) -> str:
        body = {k: v for k, v in doc.items() if k != "id"}
        return json.dumps(body, ensure_ascii=False, default=str)

    @staticmethod
    def _load(row) -> dict[str, Any]:
        body = row["body"]
        if isinstance(body, str):
            body = json.loads(body)
        return {**body, "id": row["id"]}


class InMemoryDocumentStore(DocumentStore):
    """Process-local store with the same contract, including rollback."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._unique: set[tuple[str, str]] = set()
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator["InMemoryDocumentStore"]:
        with self._lock:
            snapshot = copy.deepcopy(self._collections) if self._depth == 0 else None
            self._depth += 1
            try:
                yield self
            except Exception:
                if snapshot is not None:
                    self._collections = snapshot
                raise
            finally:
                self._depth -= 1

    def create(self, collection: str, doc: dict[str, Any], *, doc_id: str | None = None) -> str:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            doc_id = doc_id or uuid.uuid4().hex
            if doc_id in docs:
                raise ConflictError(f"{collection}/{doc_id} already exists")
            body = self._body(doc)
            self._check_unique(collection, body, skip_id=None)
            docs[doc_id] = body
            return doc_id

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            body = self._collections.get(collection, {}).get(doc_id)
            return {**copy.deepcopy(body), "id": doc_id} if body is not None else None

    def query(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        return [doc for doc in self.list(collection) if doc.get(field) == value]

    def update(self, collection: str, doc_id: str, partial: dict[str, Any]) -> None:
        with self._lock:
            docs = self._collections.get(collection, {})
            if doc_id not in docs:
                raise NotFoundError(f"{collection}/{doc_id} does not exist")
            merged = {**docs[doc_id], **self._body(partial)}
            self._check_unique(collection, merged, skip_id=doc_id)
            docs[doc_id] = merged

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._collections.get(collection, {}).pop(doc_id, None) is not None

    def list(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            return [
                {**copy.deepcopy(body), "id": doc_id}
                for doc_id, body in self._collections.get(collection, {}).items()
            ]

    def max_value(self, collection: str, field: str, pattern: str | None = None) -> Any:
        values = [
            doc.get(field)
            for doc in self.list(collection)
            if isinstance(doc.get(field), str)
        ]
        if pattern is not None:
            values = [v for v in values if fnmatch.fnmatchcase(v, pattern)]
        return max(values, default=None)

    def ensure_unique(self, collection: str, field: str) -> None:
        self._unique.add((collection, field))

    def _check_unique(self, collection: str, body: dict[str, Any], *, skip_id: str | None) -> None:
        for unique_collection, field in self._unique:
            if unique_collection != collection or body.get(field) is None:
                continue
            for other_id, other in self._collections.get(collection, {}).items():
                if other_id != skip_id and other.get(field) == body[field]:
                    raise ConflictError(f"{collection}.{field}={body[field]!r} already exists")

    @staticmethod
    def _body(doc: dict[str, Any]) -> dict[str, Any]:
        # JSON-normalized copy
        return json.loads(json.dumps({k: v for k, v in doc.items() if k != "id"}, default=str))
