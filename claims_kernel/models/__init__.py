"""ORM models for the claims kernel."""

from claims_kernel.models.audit_entry import AuditEntry, EventKind
from claims_kernel.models.claim import Claim, SupportingDocument
from claims_kernel.models.payment_batch import PaymentBatch
from claims_kernel.models.people import Lecturer, UserAccount

__all__ = [
    "AuditEntry",
    "Claim",
    "EventKind",
    "Lecturer",
    "PaymentBatch",
    "SupportingDocument",
    "UserAccount",
]
