"""This module handles change request submission, approval and rejection."""
from .entities import ApprovalOutcome, ChangeRequest, RequestKind, RequestStatus
from .state_machine import can_transition, ensure_transition
