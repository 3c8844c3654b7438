"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable records that services and selectors hand to
    callers: lecturer and account profiles, claims, documents, audit
    entries and timeline items, payment batches, and bulk review outcomes.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers (never from domain logic).

Invariants enforced:
    - Callers never receive ORM instances; every field here is a plain
      value, so a DTO stays valid after its session closes.
    - Status-like fields are normalized to their enumerations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from claims_kernel.domain.actor import Role
from claims_kernel.domain.claim_lifecycle import (
    ClaimStatus,
    VerificationStatus,
    is_editable,
    is_terminal,
)

if TYPE_CHECKING:
    from claims_kernel.models.audit_entry import AuditEntry as AuditEntryModel
    from claims_kernel.models.audit_entry import EventKind
    from claims_kernel.models.claim import Claim as ClaimModel
    from claims_kernel.models.claim import SupportingDocument as DocumentModel
    from claims_kernel.models.payment_batch import PaymentBatch as PaymentBatchModel
    from claims_kernel.models.people import Lecturer as LecturerModel
    from claims_kernel.models.people import UserAccount as UserAccountModel


@dataclass(frozen=True)
class UserAccountInfo:
    id: int
    user_id: str
    full_name: str
    role: Role
    department: str | None
    is_active: bool

    @classmethod
    def from_model(cls, model: UserAccountModel) -> UserAccountInfo:
        return cls(
            id=model.id,
            user_id=model.user_id,
            full_name=model.full_name,
            role=Role(model.role),
            department=model.department,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class LecturerInfo:
    id: int
    user_id: str
    name: str
    department: str
    hourly_rate: Decimal

    @classmethod
    def from_model(cls, model: LecturerModel) -> LecturerInfo:
        return cls(
            id=model.id,
            user_id=model.user_id,
            name=model.name,
            department=model.department,
            hourly_rate=model.hourly_rate,
        )


@dataclass(frozen=True)
class DocumentInfo:
    """Supporting document metadata (never the file bytes)."""

    id: int
    claim_id: int
    filename: str
    storage_handle: str
    content_type: str | None
    size_bytes: int
    uploaded_at: datetime
    verification_status: VerificationStatus
    verification_notes: str | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None

    @classmethod
    def from_model(cls, model: DocumentModel) -> DocumentInfo:
        return cls(
            id=model.id,
            claim_id=model.claim_id,
            filename=model.filename,
            storage_handle=model.storage_handle,
            content_type=model.content_type,
            size_bytes=model.size_bytes,
            uploaded_at=model.uploaded_at,
            verification_status=VerificationStatus(model.verification_status),
            verification_notes=model.verification_notes,
            verified_by=model.verified_by,
            verified_at=model.verified_at,
        )


@dataclass(frozen=True)
class ClaimInfo:
    """
    A claim as seen by callers.

    Documents are included so a caller can render a claim with one read.
    """

    id: int
    lecturer_id: int
    hours_worked: Decimal
    amount: Decimal
    status: ClaimStatus
    submitted_at: datetime
    updated_at: datetime
    version: int
    approved_at: datetime | None = None
    notes: str | None = None
    period_start: date | None = None
    period_end: date | None = None
    is_paid: bool = False
    payment_date: datetime | None = None
    payment_batch_id: int | None = None
    resubmitted_from_id: int | None = None
    documents: tuple[DocumentInfo, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def is_editable(self) -> bool:
        return is_editable(self.status)

    @classmethod
    def from_model(cls, model: ClaimModel) -> ClaimInfo:
        return cls(
            id=model.id,
            lecturer_id=model.lecturer_id,
            hours_worked=model.hours_worked,
            amount=model.amount,
            status=ClaimStatus(model.status),
            submitted_at=model.submitted_at,
            updated_at=model.updated_at,
            version=model.version,
            approved_at=model.approved_at,
            notes=model.notes,
            period_start=model.period_start,
            period_end=model.period_end,
            is_paid=model.is_paid,
            payment_date=model.payment_date,
            payment_batch_id=model.payment_batch_id,
            resubmitted_from_id=model.resubmitted_from_id,
            documents=tuple(DocumentInfo.from_model(d) for d in model.documents),
        )


@dataclass(frozen=True)
class AuditEntryInfo:
    id: int
    claim_id: int
    seq: int
    actor_id: str | None
    kind: EventKind
    message: str
    occurred_at: datetime
    from_status: ClaimStatus | None = None
    to_status: ClaimStatus | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    hash: str = ""

    @classmethod
    def from_model(cls, model: AuditEntryModel) -> AuditEntryInfo:
        from claims_kernel.models.audit_entry import EventKind

        return cls(
            id=model.id,
            claim_id=model.claim_id,
            seq=model.seq,
            actor_id=model.actor_id,
            kind=EventKind(model.kind),
            message=model.message,
            occurred_at=model.occurred_at,
            from_status=ClaimStatus(model.from_status) if model.from_status else None,
            to_status=ClaimStatus(model.to_status) if model.to_status else None,
            payload=dict(model.payload) if model.payload else {},
            hash=model.hash,
        )


@dataclass(frozen=True)
class TimelineItem:
    """One row of a claim's human-readable history."""

    timestamp: datetime
    actor_name: str
    action_text: str
    kind: EventKind


@dataclass(frozen=True)
class PaymentBatchInfo:
    id: int
    batch_number: str
    generated_at: datetime
    total_amount: Decimal
    total_claims: int
    generated_by: str
    claim_ids: tuple[int, ...] = ()

    @classmethod
    def from_model(cls, model: PaymentBatchModel) -> PaymentBatchInfo:
        return cls(
            id=model.id,
            batch_number=model.batch_number,
            generated_at=model.generated_at,
            total_amount=model.total_amount,
            total_claims=model.total_claims,
            generated_by=model.generated_by,
            claim_ids=tuple(c.id for c in model.claims),
        )


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of one claim inside a bulk review call."""

    claim_id: int
    succeeded: bool
    status: ClaimStatus | None = None
    error_code: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class BulkTransitionResult:
    """Per-id outcomes of a bulk approve/reject, in request order."""

    action: str
    outcomes: tuple[TransitionOutcome, ...]

    @property
    def succeeded_ids(self) -> tuple[int, ...]:
        return tuple(o.claim_id for o in self.outcomes if o.succeeded)

    @property
    def failed_ids(self) -> tuple[int, ...]:
        return tuple(o.claim_id for o in self.outcomes if not o.succeeded)

    @property
    def all_succeeded(self) -> bool:
        return all(o.succeeded for o in self.outcomes)
