"""
Typed Exception Hierarchy for the Claims Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (web controllers, CLIs, batch jobs) must be able to tell a missing
claim from a forbidden action from a lost race without parsing message text.
Every error in this package therefore:

  1. Has its own exception class (catch by type, not message)
  2. Carries a ``code`` class attribute (machine-readable, API-safe)
  3. Stores its context as attributes (not only in the message string)

Example:
    try:
        service.approve(claim_id, actor)
    except InvalidTransitionError as e:
        flash(f"Claim is {e.current_status}; allowed from {e.allowed_from}")
    except ConflictError:
        flash("Someone else changed this claim, reload and retry")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ClaimsKernelError (base)
    |
    +-- NotFoundError
    |   +-- ClaimNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- LecturerNotFoundError
    |   +-- PaymentBatchNotFoundError
    |
    +-- ForbiddenError
    |   +-- NotClaimOwnerError
    |   +-- RoleNotPermittedError
    |
    +-- ValidationError
    |   +-- InvalidTransitionError
    |   +-- MissingReasonError
    |   +-- InvalidHoursError
    |   +-- InvalidHourlyRateError
    |   +-- DocumentTypeNotAllowedError
    |   +-- DocumentTooLargeError
    |   +-- EmptyDocumentError
    |   +-- ClaimNotEditableError
    |   +-- ClaimAlreadyResubmittedError
    |   +-- InvalidDateRangeError
    |   +-- PaymentBatchValidationError
    |
    +-- ConflictError
    |   +-- ConcurrentModificationError
    |
    +-- StorageError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | CLAIM_NOT_FOUND             | Claim id doesn't resolve
                | DOCUMENT_NOT_FOUND          | Document id or storage handle unknown
                | LECTURER_NOT_FOUND          | Lecturer id / user has no profile
                | PAYMENT_BATCH_NOT_FOUND     | Batch id doesn't resolve
----------------|-----------------------------|-----------------------------------------
Forbidden       | NOT_CLAIM_OWNER             | Lecturer acting on someone else's claim
                | ROLE_NOT_PERMITTED          | Role may not perform the action at all
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_TRANSITION          | Action not allowed from current status
                | MISSING_REASON              | Reject / revision without a reason
                | INVALID_HOURS               | Hours <= 0 or above the per-claim cap
                | INVALID_HOURLY_RATE         | Negative hourly rate
                | DOCUMENT_TYPE_NOT_ALLOWED   | Extension outside the allow-list
                | DOCUMENT_TOO_LARGE          | Upload above the size cap
                | EMPTY_DOCUMENT              | Zero-byte upload
                | CLAIM_NOT_EDITABLE          | Document change outside editable status
                | CLAIM_ALREADY_RESUBMITTED   | Second resubmission of one Rejected claim
                | INVALID_DATE_RANGE          | start > end on a report/audit query
                | PAYMENT_BATCH_INVALID       | Bad claim selection for a batch
----------------|-----------------------------|-----------------------------------------
Conflict        | CONCURRENT_MODIFICATION     | Optimistic version check failed
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_ERROR               | File store read/write/delete failed
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Per-claim hash chain mismatch
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only record

===============================================================================
"""


class ClaimsKernelError(Exception):
    """
    Base exception for all claims kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CLAIMS_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(ClaimsKernelError):
    """Base exception for identifiers that do not resolve."""

    code: str = "NOT_FOUND"


class ClaimNotFoundError(NotFoundError):
    """Claim with given ID was not found."""

    code: str = "CLAIM_NOT_FOUND"

    def __init__(self, claim_id: int):
        self.claim_id = claim_id
        super().__init__(f"Claim not found: {claim_id}")


class DocumentNotFoundError(NotFoundError):
    """Supporting document (or its stored file) was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_ref: int | str):
        self.document_ref = document_ref
        super().__init__(f"Document not found: {document_ref}")


class LecturerNotFoundError(NotFoundError):
    """Lecturer profile was not found."""

    code: str = "LECTURER_NOT_FOUND"

    def __init__(self, lecturer_ref: int | str):
        self.lecturer_ref = lecturer_ref
        super().__init__(f"Lecturer not found: {lecturer_ref}")


class PaymentBatchNotFoundError(NotFoundError):
    """Payment batch with given ID was not found."""

    code: str = "PAYMENT_BATCH_NOT_FOUND"

    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__(f"Payment batch not found: {batch_id}")


# Forbidden exceptions


class ForbiddenError(ClaimsKernelError):
    """Base exception for actors who may not act on a resource."""

    code: str = "FORBIDDEN"


class NotClaimOwnerError(ForbiddenError):
    """A lecturer tried to act on a claim they do not own."""

    code: str = "NOT_CLAIM_OWNER"

    def __init__(self, claim_id: int, user_id: str):
        self.claim_id = claim_id
        self.user_id = user_id
        super().__init__(f"User {user_id} does not own claim {claim_id}")


class RoleNotPermittedError(ForbiddenError):
    """The actor's role may not perform this action at all."""

    code: str = "ROLE_NOT_PERMITTED"

    def __init__(self, role: str, action: str):
        self.role = role
        self.action = action
        super().__init__(f"Role {role} may not perform '{action}'")


# Validation exceptions


class ValidationError(ClaimsKernelError):
    """Base exception for rejected input or rule violations."""

    code: str = "VALIDATION_ERROR"


class InvalidTransitionError(ValidationError):
    """The requested action is not allowed from the claim's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        claim_id: int,
        action: str,
        current_status: str,
        allowed_from: tuple[str, ...],
    ):
        self.claim_id = claim_id
        self.action = action
        self.current_status = current_status
        self.allowed_from = allowed_from
        allowed = " or ".join(allowed_from) if allowed_from else "no state"
        super().__init__(
            f"Cannot {action} claim {claim_id}: status is {current_status}, "
            f"must be {allowed}"
        )


class MissingReasonError(ValidationError):
    """A reject or revision request was made without a reason."""

    code: str = "MISSING_REASON"

    def __init__(self, claim_id: int, action: str):
        self.claim_id = claim_id
        self.action = action
        super().__init__(f"A non-empty reason is required to {action} claim {claim_id}")


class InvalidHoursError(ValidationError):
    """Hours worked is out of range."""

    code: str = "INVALID_HOURS"

    def __init__(self, hours_worked: str, max_hours: str):
        self.hours_worked = hours_worked
        self.max_hours = max_hours
        super().__init__(
            f"Hours worked must be greater than 0 and at most {max_hours}, got {hours_worked}"
        )


class InvalidHourlyRateError(ValidationError):
    """Hourly rate is negative or not a number."""

    code: str = "INVALID_HOURLY_RATE"

    def __init__(self, hourly_rate: str):
        self.hourly_rate = hourly_rate
        super().__init__(f"Hourly rate must be zero or positive, got {hourly_rate}")


class DocumentTypeNotAllowedError(ValidationError):
    """Uploaded file extension is not on the allow-list."""

    code: str = "DOCUMENT_TYPE_NOT_ALLOWED"

    def __init__(self, filename: str, allowed_extensions: tuple[str, ...]):
        self.filename = filename
        self.allowed_extensions = allowed_extensions
        super().__init__(
            f"File type of '{filename}' is not allowed; "
            f"allowed: {', '.join(allowed_extensions)}"
        )


class DocumentTooLargeError(ValidationError):
    """Uploaded file exceeds the size cap."""

    code: str = "DOCUMENT_TOO_LARGE"

    def __init__(self, filename: str, size_bytes: int, max_size_bytes: int):
        self.filename = filename
        self.size_bytes = size_bytes
        self.max_size_bytes = max_size_bytes
        super().__init__(
            f"File '{filename}' is {size_bytes} bytes; limit is {max_size_bytes} bytes"
        )


class EmptyDocumentError(ValidationError):
    """Uploaded file has no content."""

    code: str = "EMPTY_DOCUMENT"

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"File '{filename}' is empty")


class ClaimNotEditableError(ValidationError):
    """Documents can only change while the claim is in an editable status."""

    code: str = "CLAIM_NOT_EDITABLE"

    def __init__(self, claim_id: int, status: str):
        self.claim_id = claim_id
        self.status = status
        super().__init__(
            f"Claim {claim_id} is {status}; documents can only change while "
            "Pending, Under Review or Revision Requested"
        )


class ClaimAlreadyResubmittedError(ValidationError):
    """A Rejected claim may be resubmitted once."""

    code: str = "CLAIM_ALREADY_RESUBMITTED"

    def __init__(self, claim_id: int, resubmission_id: int):
        self.claim_id = claim_id
        self.resubmission_id = resubmission_id
        super().__init__(
            f"Claim {claim_id} was already resubmitted as claim {resubmission_id}"
        )


class InvalidDateRangeError(ValidationError):
    """A query window has its start after its end."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start: str, end: str):
        self.start = start
        self.end = end
        super().__init__(f"Invalid date range: {start} is after {end}")


class PaymentBatchValidationError(ValidationError):
    """The claim selection for a payment batch is not acceptable."""

    code: str = "PAYMENT_BATCH_INVALID"

    def __init__(self, reason: str, claim_ids: tuple[int, ...] = ()):
        self.reason = reason
        self.claim_ids = claim_ids
        detail = f" (claims: {', '.join(str(c) for c in claim_ids)})" if claim_ids else ""
        super().__init__(f"Cannot generate payment batch: {reason}{detail}")


# Conflict exceptions


class ConflictError(ClaimsKernelError):
    """Base exception for lost concurrent-update races."""

    code: str = "CONFLICT"


class ConcurrentModificationError(ConflictError):
    """Optimistic version check failed: another transaction changed the row."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            "it was changed by another transaction"
        )


# Storage exceptions


class StorageError(ClaimsKernelError):
    """The document store failed to read, write or delete a file."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, handle: str, reason: str):
        self.operation = operation
        self.handle = handle
        self.reason = reason
        super().__init__(f"Storage {operation} failed for {handle}: {reason}")


# Audit exceptions


class AuditError(ClaimsKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Per-claim audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, claim_id: int, seq: int, expected_hash: str, actual_hash: str):
        self.claim_id = claim_id
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken for claim {claim_id} at seq {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability exceptions


class ImmutabilityViolationError(ClaimsKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
