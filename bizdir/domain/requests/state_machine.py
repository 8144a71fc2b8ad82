"""Request lifecycle: pending_review -> approved | rejected, nothing else."""

from __future__ import annotations

from bizdir.core.errors import InvalidTransitionError

from .entities import RequestStatus

TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING_REVIEW: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(
    current: RequestStatus,
    target: RequestStatus,
    *,
    request_id: str | None = None,
) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move a request from {current.value} to {target.value}",
            request_id=request_id,
        )
