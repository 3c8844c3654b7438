"""
Pure domain layer.

This module contains value objects and domain rules with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from claims_kernel.domain.actor import Actor, Role
from claims_kernel.domain.claim_lifecycle import (
    APPROVED_STATUSES,
    CLAIM_WORKFLOW,
    EDITABLE_STATUSES,
    TERMINAL_STATUSES,
    ClaimAction,
    ClaimStatus,
    VerificationStatus,
    allowed_actions,
    is_editable,
    is_terminal,
    resolve_transition,
)
from claims_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from claims_kernel.domain.dtos import (
    AuditEntryInfo,
    BulkTransitionResult,
    ClaimInfo,
    DocumentInfo,
    LecturerInfo,
    PaymentBatchInfo,
    TimelineItem,
    TransitionOutcome,
    UserAccountInfo,
)
from claims_kernel.domain.policy import DocumentPolicy, WorkflowPolicy
from claims_kernel.domain.workflow import Transition, Workflow

__all__ = [
    "APPROVED_STATUSES",
    "CLAIM_WORKFLOW",
    "EDITABLE_STATUSES",
    "TERMINAL_STATUSES",
    "Actor",
    "AuditEntryInfo",
    "BulkTransitionResult",
    "ClaimAction",
    "ClaimInfo",
    "ClaimStatus",
    "Clock",
    "DeterministicClock",
    "DocumentInfo",
    "DocumentPolicy",
    "LecturerInfo",
    "PaymentBatchInfo",
    "Role",
    "SystemClock",
    "TimelineItem",
    "Transition",
    "TransitionOutcome",
    "UserAccountInfo",
    "VerificationStatus",
    "Workflow",
    "WorkflowPolicy",
    "allowed_actions",
    "is_editable",
    "is_terminal",
    "resolve_transition",
]
