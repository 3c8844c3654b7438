"""
Module: claims_kernel.models.claim
Responsibility: ORM persistence for claims and their supporting documents.
Architecture position: Kernel > Models.  May import from db/ and from the
    pure domain enumerations.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - status is stored as one of ClaimStatus's values; services only ever
      assign values produced by resolve_transition().
    - amount == hours_worked * hourly rate at submission; lecturer_id,
      hours_worked, amount and submitted_at are frozen after INSERT
      (ORM listener, db/immutability.py).
    - version is a SQLAlchemy version counter: every UPDATE carries
      ``WHERE version = <loaded>``, so of two writers that loaded the same
      version exactly one succeeds.
    - audit_seq / audit_head_hash track the tail of this claim's audit
      chain.  Every audit append updates them, so every audited write
      goes through the version check.

Failure modes:
    - StaleDataError on flush when another transaction updated the row
      first (translated to ConcurrentModificationError by the audit log).
    - ImmutabilityViolationError when a frozen column changes.

Audit relevance:
    Claims are never deleted.  Rejected claims are resubmitted as new rows
    that point back via resubmitted_from_id; each claim is resubmitted at
    most once (uq_claim_resubmitted_from).
"""

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claims_kernel.db.base import Base
from claims_kernel.db.types import Hours, Money, PayloadHash
from claims_kernel.domain.claim_lifecycle import ClaimStatus, VerificationStatus

if TYPE_CHECKING:
    from claims_kernel.models.payment_batch import PaymentBatch
    from claims_kernel.models.people import Lecturer


class Claim(Base):
    """
    One hours-worked submission by one lecturer.

    Contract:
        Created by ClaimService.submit() or ClaimService.resubmit(); mutated
        only by status transitions, the payment stamp, and audit
        bookkeeping.

    Guarantees:
        - hours_worked > 0 and amount >= 0 (check constraints).
        - payment_batch_id is set at most once.
    """

    __tablename__ = "claims"

    __table_args__ = (
        CheckConstraint("hours_worked > 0", name="ck_claim_hours_positive"),
        CheckConstraint("amount >= 0", name="ck_claim_amount_non_negative"),
        Index("idx_claim_lecturer", "lecturer_id"),
        Index("idx_claim_status", "status"),
        Index("idx_claim_submitted", "submitted_at"),
        Index("idx_claim_batch", "payment_batch_id"),
        UniqueConstraint("resubmitted_from_id", name="uq_claim_resubmitted_from"),
    )

    lecturer_id: Mapped[int] = mapped_column(
        ForeignKey("lecturers.id"),
        nullable=False,
    )

    hours_worked: Mapped[Hours] = mapped_column(nullable=False)

    # hours_worked * hourly rate, fixed at submission
    amount: Mapped[Money] = mapped_column(nullable=False)

    status: Mapped[ClaimStatus] = mapped_column(
        String(30),
        nullable=False,
        default=ClaimStatus.PENDING,
    )

    submitted_at: Mapped[datetime] = mapped_column(nullable=False)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Append-only administrative comments
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    period_start: Mapped[date | None] = mapped_column(nullable=True)

    period_end: Mapped[date | None] = mapped_column(nullable=True)

    # Payment stamp
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    payment_date: Mapped[datetime | None] = mapped_column(nullable=True)

    payment_batch_id: Mapped[int | None] = mapped_column(
        ForeignKey("payment_batches.id"),
        nullable=True,
    )

    resubmitted_from_id: Mapped[int | None] = mapped_column(
        ForeignKey("claims.id"),
        nullable=True,
    )

    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    # Audit chain tail
    audit_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    audit_head_hash: Mapped[PayloadHash | None] = mapped_column(nullable=True)

    # Optimistic lock counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    lecturer: Mapped["Lecturer"] = relationship()

    documents: Mapped[list["SupportingDocument"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="SupportingDocument.id",
    )

    payment_batch: Mapped["PaymentBatch | None"] = relationship(viewonly=True)

    @property
    def status_enum(self) -> ClaimStatus:
        """Status as a ClaimStatus member (the column loads as plain str)."""
        return ClaimStatus(self.status)

    def __repr__(self) -> str:
        return f"<Claim {self.id}: lecturer={self.lecturer_id} {self.status} {self.amount}>"


class SupportingDocument(Base):
    """
    A file attached to a claim.

    Contract:
        filename is the original name, kept for display only.  The file
        itself lives in the document store under storage_handle, which is
        generated and never derived from the filename.
    """

    __tablename__ = "supporting_documents"

    __table_args__ = (
        UniqueConstraint("storage_handle", name="uq_document_storage_handle"),
        Index("idx_document_claim", "claim_id"),
    )

    claim_id: Mapped[int] = mapped_column(
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
    )

    filename: Mapped[str] = mapped_column(String(255), nullable=False)

    storage_handle: Mapped[str] = mapped_column(String(100), nullable=False)

    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)

    uploaded_at: Mapped[datetime] = mapped_column(nullable=False)

    verification_status: Mapped[VerificationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=VerificationStatus.UNVERIFIED,
    )

    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    verified_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    claim: Mapped[Claim] = relationship(back_populates="documents")

    def __repr__(self) -> str:
        return f"<SupportingDocument {self.id}: {self.filename} on claim {self.claim_id}>"
