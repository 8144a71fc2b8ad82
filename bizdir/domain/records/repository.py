# ============================================================
# Business record access layer
# ============================================================
from __future__ import annotations

from typing import Any, Protocol

from bizdir.core.errors import NotFoundError
from bizdir.domain.identifiers import DEFAULT_PREFIX, identifier_glob
from bizdir.infrastructure.document_store import DocumentStore

from .entities import BusinessRecord


class BusinessRecordRepositoryProtocol(Protocol):
    def get_by_identifier(self, identifier: str) -> BusinessRecord | None:
        """Get a record by its business identifier"""
        ...

    def max_identifier(self) -> str | None:
        """Largest conforming identifier currently stored"""
        ...

    def create(self, record: BusinessRecord) -> BusinessRecord:
        """Insert a new record"""
        ...

    def update(self, record_id: str, partial: dict[str, Any]) -> None:
        """Write changed top-level keys of a record"""
        ...

    def delete(self, record_id: str) -> bool:
        """Hard-delete a record"""
        ...


class BusinessRecordRepository(BusinessRecordRepositoryProtocol):
    COLLECTION = "businesses"

    def __init__(self, store: DocumentStore, *, prefix: str = DEFAULT_PREFIX):
        self.store = store
        self.prefix = prefix
        self.store.ensure_unique(self.COLLECTION, "identifier")

    def get_by_identifier(self, identifier: str) -> BusinessRecord | None:
        docs = self.store.query(self.COLLECTION, "identifier", identifier)
        return BusinessRecord.from_document(docs[0]) if docs else None

    def require(self, identifier: str, *, request_id: str | None = None) -> BusinessRecord:
        record = self.get_by_identifier(identifier)
        if record is None:
            raise NotFoundError(f"Business {identifier} not found", request_id=request_id)
        return record

    def find_by_source_request(self, request_id: str) -> BusinessRecord | None:
        docs = self.store.query(self.COLLECTION, "source_request_id", request_id)
        return BusinessRecord.from_document(docs[0]) if docs else None

    def max_identifier(self) -> str | None:
        return self.store.max_value(self.COLLECTION, "identifier", identifier_glob(self.prefix))

    def list(self) -> list[BusinessRecord]:
        return [BusinessRecord.from_document(doc) for doc in self.store.list(self.COLLECTION)]

    def create(self, record: BusinessRecord) -> BusinessRecord:
        record_id = self.store.create(self.COLLECTION, record.to_document())
        return record.model_copy(update={"id": record_id})

    def update(self, record_id: str, partial: dict[str, Any]) -> None:
        self.store.update(self.COLLECTION, record_id, partial)

    def delete(self, record_id: str) -> bool:
        return self.store.delete(self.COLLECTION, record_id)
