# ============================================================
# Change request access layer
# ============================================================
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from bizdir.core.errors import NotFoundError
from bizdir.infrastructure.document_store import DocumentStore

from .entities import ChangeRequest, RequestKind, RequestStatus
from .state_machine import ensure_transition


class ChangeRequestRepositoryProtocol(Protocol):
    def create_pending(self, request: ChangeRequest) -> ChangeRequest:
        """Store a new request in the pending set"""
        ...

    def get(self, request_id: str) -> ChangeRequest | None:
        """Get a request by id, pending or archived"""
        ...

    def list_pending(self, kind: RequestKind | None = None) -> list[ChangeRequest]:
        """Requests still awaiting review, oldest first"""
        ...

    def finalize(
            self,
            request: ChangeRequest,
            status: RequestStatus,
            *,
            reviewed_by: str,
            note: str | None = None,
    ) -> ChangeRequest:
        """Move a request to its terminal status and out of the pending set"""
        ...


class ChangeRequestRepository(ChangeRequestRepositoryProtocol):
    PENDING = "change_requests"
    ARCHIVE = "request_history"

    def __init__(self, store: DocumentStore):
        self.store = store

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def create_pending(self, request: ChangeRequest) -> ChangeRequest:
        request = request.model_copy(update={
            "id": request.id or self.new_id(),
            "status": RequestStatus.PENDING_REVIEW,
            "submitted_at": request.submitted_at or datetime.now(timezone.utc),
        })
        self.store.create(self.PENDING, request.to_document(), doc_id=request.id)
        return request

    def get(self, request_id: str) -> ChangeRequest | None:
        doc = self.store.get(self.PENDING, request_id) or self.store.get(self.ARCHIVE, request_id)
        return ChangeRequest.from_document(doc) if doc else None

    def require(self, request_id: str) -> ChangeRequest:
        request = self.get(request_id)
        if request is None:
            raise NotFoundError(f"Request {request_id} not found", request_id=request_id)
        return request

    def list_pending(self, kind: RequestKind | None = None) -> list[ChangeRequest]:
        if kind is None:
            docs = self.store.list(self.PENDING)
        else:
            docs = self.store.query(self.PENDING, "kind", kind.value)
        return [ChangeRequest.from_document(doc) for doc in docs]

    def list_history(self) -> list[ChangeRequest]:
        return [ChangeRequest.from_document(doc) for doc in self.store.list(self.ARCHIVE)]

    def update_pending(self, request_id: str, partial: dict[str, Any]) -> None:
        self.store.update(self.PENDING, request_id, partial)

    def finalize(
            self,
            request: ChangeRequest,
            status: RequestStatus,
            *,
            reviewed_by: str,
            note: str | None = None,
    ) -> ChangeRequest:
        ensure_transition(request.status, status, request_id=request.id)
        final = request.model_copy(update={
            "status": status,
            "reviewed_at": datetime.now(timezone.utc),
            "reviewed_by": reviewed_by,
            "reviewer_note": note,
        })
        with self.store.transaction():
            self.store.create(self.ARCHIVE, final.to_document(), doc_id=final.id)
            self.store.delete(self.PENDING, final.id)
        return final
