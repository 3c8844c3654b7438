"""Write-side services for the claims kernel."""

from claims_kernel.services.audit_log import AuditLogService
from claims_kernel.services.bulk_review import BulkReviewService
from claims_kernel.services.claim_service import ClaimService
from claims_kernel.services.document_store import (
    DocumentStore,
    LocalDocumentStore,
    StoredFile,
)
from claims_kernel.services.lecturer_service import LecturerService, RateUpdateMode
from claims_kernel.services.payment_service import PaymentService

__all__ = [
    "AuditLogService",
    "BulkReviewService",
    "ClaimService",
    "DocumentStore",
    "LecturerService",
    "LocalDocumentStore",
    "PaymentService",
    "RateUpdateMode",
    "StoredFile",
]
