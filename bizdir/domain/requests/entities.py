# ============================================================
# Change request entities
# ============================================================
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from bizdir.domain.assets.entities import ImageAsset
from bizdir.domain.records.entities import AuditEntry


class RequestKind(str, Enum):
    ADD = "add"
    UPDATE_FIELD = "update_field"
    REMOVE = "remove"


class RequestStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class ChangeRequest(BaseModel):
    """A submitted add, single-field update or removal awaiting review."""
    id: str | None = None
    kind: RequestKind
    target_identifier: str | None = None
    field_name: str | None = None
    submitted_value: Any = None
    payload: dict[str, Any] = Field(default_factory=dict)
    reason: str | None = None
    staged_assets: list[ImageAsset] = Field(default_factory=list)
    status: RequestStatus = RequestStatus.PENDING_REVIEW
    submitted_at: datetime | None = None
    submitted_by: str | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    reviewer_note: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != RequestStatus.PENDING_REVIEW

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"id"})

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "ChangeRequest":
        return cls.model_validate(doc)


class ApprovalOutcome(BaseModel):
    """What an approve or reject call did."""
    request_id: str
    kind: RequestKind
    status: RequestStatus
    identifier: str | None = None
    applied: bool = False
    reason: str | None = None
    created_taxonomy: list[dict[str, str]] = Field(default_factory=list)
    audit: list[AuditEntry] = Field(default_factory=list)
    # staged handles the object store would not delete on a forced rejection
    orphaned_handles: list[str] = Field(default_factory=list)
