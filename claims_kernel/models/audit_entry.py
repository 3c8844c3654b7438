"""
Module: claims_kernel.models.audit_entry
Responsibility: ORM persistence for the per-claim, tamper-evident audit log.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Audit entries are append-only; no UPDATE or DELETE (ORM listener).
    - (claim_id, seq) is unique and seq runs 1, 2, 3, ... per claim.
    - Hash chain: hash = H("Claim" | claim_id | kind | payload_hash |
      prev_hash or GENESIS).  Validated by AuditSelector.verify_chain().

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on a duplicate (claim_id, seq); in practice the claim
      version check fails first.

Audit relevance:
    AuditEntry IS the audit trail.  Aggregations (processing time) match on
    ``kind`` and ``to_status``, never on ``message`` text.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claims_kernel.db.base import Base
from claims_kernel.db.types import PayloadHash

if TYPE_CHECKING:
    from claims_kernel.models.claim import Claim


class EventKind(str, Enum):
    """Types of auditable claim events.

    Contract: every write operation on a claim records exactly one of these
    (payment batching records one per claim in the batch).
    """

    SUBMITTED = "submitted"
    STATUS_CHANGED = "status_changed"
    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_DELETED = "document_deleted"
    DOCUMENT_VERIFIED = "document_verified"
    DOCUMENT_REJECTED = "document_rejected"
    RESUBMITTED = "resubmitted"
    PAYMENT_BATCHED = "payment_batched"


class AuditEntry(Base):
    """
    One immutable audit record attached to a claim.

    Guarantees:
        - from_status / to_status are set only for STATUS_CHANGED.
        - actor_id is None for system actions.
        - prev_hash is None only for a claim's first entry.
    """

    __tablename__ = "audit_entries"

    __table_args__ = (
        UniqueConstraint("claim_id", "seq", name="uq_audit_claim_seq"),
        Index("idx_audit_kind", "kind"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    claim_id: Mapped[int] = mapped_column(
        ForeignKey("claims.id"),
        nullable=False,
    )

    # Position in this claim's chain, from 1
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    # Who performed the action (None = system)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    kind: Mapped[EventKind] = mapped_column(String(30), nullable=False)

    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    to_status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Human-readable description
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Structured context (document id, reason, batch number, ...)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    payload_hash: Mapped[PayloadHash] = mapped_column(nullable=False)

    prev_hash: Mapped[PayloadHash | None] = mapped_column(nullable=True)

    hash: Mapped[PayloadHash] = mapped_column(nullable=False)

    # Flush writes the claim row, and its version check, before the entry
    claim: Mapped["Claim"] = relationship()

    def __repr__(self) -> str:
        return f"<AuditEntry {self.claim_id}#{self.seq} {self.kind}>"

    @property
    def is_genesis(self) -> bool:
        """True for the first entry in a claim's chain."""
        return self.prev_hash is None
