"""
ClaimService -- claim submission, review transitions, documents, resubmission.

Responsibility:
    Orchestrates every write on a claim: computes the amount at submission,
    applies review transitions through the single lifecycle table, manages
    supporting documents through the document store, and appends exactly
    one audit entry per operation in the same flush as the mutation.

Architecture position:
    Kernel > Services -- imperative shell.  Pure rules come from
    ``domain.claim_lifecycle``; persistence of the audit trail goes through
    ``AuditLogService``; file bytes go through a ``DocumentStore``.

Invariants enforced:
    - amount == hours_worked * hourly rate at submission, never recomputed.
    - Status only ever takes values returned by ``resolve_transition()``;
      Approved and Rejected are terminal.
    - Mutation and audit entry commit together or not at all: both are
      flushed in one unit and the claim's version check rejects a stale
      writer before anything reaches the database.
    - Documents change only while the claim is Pending, Under Review or
      Revision Requested, and only by the owning lecturer.

Failure modes:
    - ClaimNotFoundError / DocumentNotFoundError / LecturerNotFoundError.
    - NotClaimOwnerError / RoleNotPermittedError.
    - InvalidTransitionError / MissingReasonError / InvalidHoursError /
      ClaimNotEditableError / document validation errors.
    - ConcurrentModificationError when another transaction won the race.
    - StorageError from the document store.

Audit relevance:
    Every public write method produces exactly one AuditEntry.  Refused
    operations produce none.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import PurePath

from sqlalchemy import event, select
from sqlalchemy.orm import Session

from claims_kernel.db.types import round_money, to_decimal
from claims_kernel.domain.actor import Actor, Role
from claims_kernel.domain.claim_lifecycle import (
    ClaimAction,
    ClaimStatus,
    VerificationStatus,
    is_editable,
    resolve_transition,
)
from claims_kernel.domain.clock import Clock
from claims_kernel.domain.dtos import ClaimInfo, DocumentInfo
from claims_kernel.domain.policy import DocumentPolicy, WorkflowPolicy
from claims_kernel.exceptions import (
    ClaimAlreadyResubmittedError,
    ClaimNotEditableError,
    ClaimNotFoundError,
    ClaimsKernelError,
    DocumentNotFoundError,
    InvalidDateRangeError,
    InvalidHoursError,
    InvalidTransitionError,
    NotClaimOwnerError,
    StorageError,
)
from claims_kernel.logging_config import LogContext, get_logger
from claims_kernel.models.audit_entry import EventKind
from claims_kernel.models.claim import Claim, SupportingDocument
from claims_kernel.services.audit_log import AuditLogService
from claims_kernel.services.base import BaseService
from claims_kernel.services.document_store import DocumentStore
from claims_kernel.services.lecturer_service import LecturerService

logger = get_logger("services.claim")

SUBMITTED_MESSAGE = "Claim Submitted"

_STATUS_MESSAGES: dict[ClaimAction, str] = {
    ClaimAction.MARK_UNDER_REVIEW: "Claim marked Under Review",
    ClaimAction.FORWARD: "Claim forwarded to Manager (Coordinator Approved)",
    ClaimAction.REQUEST_REVISION: "Revision Requested",
    ClaimAction.APPROVE: "Claim Approved",
    ClaimAction.REJECT: "Claim Rejected",
}


_PENDING_FILE_DELETES = "claims_pending_file_deletes"


def _delete_file_after_commit(session: Session, store: DocumentStore, handle: str) -> None:
    """Queue a stored file for removal once ``session`` commits."""
    session.info.setdefault(_PENDING_FILE_DELETES, []).append((store, handle))


@event.listens_for(Session, "after_commit")
def _remove_committed_deletes(session: Session) -> None:
    for store, handle in session.info.pop(_PENDING_FILE_DELETES, ()):
        try:
            store.delete(handle)
        except StorageError:
            # The row is already gone; an orphaned file is left for cleanup
            logger.error(
                "document_file_delete_failed", extra={"handle": handle}, exc_info=True
            )


@event.listens_for(Session, "after_transaction_end")
def _drop_uncommitted_deletes(session: Session, transaction) -> None:
    # after_commit has already consumed the queue when the transaction committed
    if transaction.parent is None:
        session.info.pop(_PENDING_FILE_DELETES, None)


def _append_note(existing: str | None, annotation: str) -> str:
    if not existing:
        return annotation
    return f"{existing}\n{annotation}"


def _annotation(
    action: ClaimAction,
    role: Role,
    reason: str | None,
    notes: str | None,
) -> str | None:
    """Text appended to a claim's notes by a transition, if any."""
    if action == ClaimAction.FORWARD and notes and notes.strip():
        return f"[Coordinator Notes]: {notes.strip()}"
    if not (reason and reason.strip()):
        return None
    reason = reason.strip()
    if action == ClaimAction.REQUEST_REVISION:
        return f"[Revision Required]: {reason}"
    if action == ClaimAction.REJECT:
        if role == Role.MANAGER:
            return f"[Manager Rejection]: {reason}"
        return f"[Rejection Reason]: {reason}"
    return None


class ClaimService(BaseService):
    """
    Write operations on claims.

    Contract:
        Every method takes the acting user explicitly and reads time only
        from the injected clock.  Methods flush; the caller commits.

    Non-goals:
        - Does NOT commit or roll back.
        - Does NOT read configuration; policies are injected (see
          ``claims_config.bridges``).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        document_store: DocumentStore | None = None,
        document_policy: DocumentPolicy | None = None,
        workflow_policy: WorkflowPolicy | None = None,
    ):
        super().__init__(session, clock)
        self.document_store = document_store
        self.document_policy = document_policy or DocumentPolicy()
        self.workflow_policy = workflow_policy or WorkflowPolicy()
        self._audit = AuditLogService(session, self.clock)
        self._lecturers = LecturerService(session, self.clock)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _store(self) -> DocumentStore:
        if self.document_store is None:
            raise RuntimeError("ClaimService was built without a document store")
        return self.document_store

    def _get_claim(self, claim_id: int) -> Claim:
        claim = self.session.get(Claim, claim_id)
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        return claim

    def _get_document(self, document_id: int) -> SupportingDocument:
        document = self.session.get(SupportingDocument, document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def _require_owner(self, claim: Claim, actor: Actor) -> None:
        if claim.lecturer.user_id != actor.user_id:
            logger.warning(
                "claim_ownership_refused",
                extra={"claim_id": claim.id, "actor_id": actor.user_id},
            )
            raise NotClaimOwnerError(claim.id, actor.user_id)

    def _require_editable(self, claim: Claim) -> None:
        if not is_editable(claim.status):
            raise ClaimNotEditableError(claim.id, ClaimStatus(claim.status).value)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        actor: Actor,
        hours_worked: Decimal | int | str,
        notes: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> ClaimInfo:
        """
        Create a Pending claim for the acting lecturer.

        The lecturer's current hourly rate is read once and multiplied by
        ``hours_worked``; the amount is fixed from then on.

        Raises:
            RoleNotPermittedError: Actor is not a lecturer.
            InvalidHoursError: Hours not in (0, max_hours_per_claim].
            InvalidDateRangeError: period_start after period_end.
            LecturerNotFoundError: Actor has no lecturer profile.
        """
        actor.require("submit", Role.LECTURER)
        max_hours = self.workflow_policy.max_hours_per_claim
        try:
            hours = round_money(to_decimal(hours_worked))
        except ValueError as exc:
            raise InvalidHoursError(str(hours_worked), str(max_hours)) from exc
        if hours <= 0 or hours > max_hours:
            raise InvalidHoursError(str(hours), str(max_hours))
        if period_start and period_end and period_start > period_end:
            raise InvalidDateRangeError(period_start.isoformat(), period_end.isoformat())

        lecturer = self._lecturers.get_lecturer_for_user(actor.user_id)
        rate = self._lecturers.get_hourly_rate(lecturer.id)
        amount = round_money(hours * rate)
        now = self.clock.now()

        claim = Claim(
            lecturer_id=lecturer.id,
            hours_worked=hours,
            amount=amount,
            status=ClaimStatus.PENDING,
            submitted_at=now,
            notes=notes.strip() if notes and notes.strip() else None,
            period_start=period_start,
            period_end=period_end,
            is_paid=False,
            updated_at=now,
            audit_seq=0,
        )
        self.session.add(claim)
        self.session.flush()

        self._audit.record(
            claim,
            actor.user_id,
            EventKind.SUBMITTED,
            SUBMITTED_MESSAGE,
            payload={
                "hours_worked": str(hours),
                "hourly_rate": str(rate),
                "amount": str(amount),
            },
        )

        logger.info(
            "claim_submitted",
            extra={
                "claim_id": claim.id,
                "lecturer_id": lecturer.id,
                "hours_worked": hours,
                "amount": amount,
            },
        )
        return ClaimInfo.from_model(claim)

    # ------------------------------------------------------------------
    # Review transitions
    # ------------------------------------------------------------------

    def apply_transition(
        self,
        claim_id: int,
        actor: Actor,
        action: ClaimAction,
        reason: str | None = None,
        notes: str | None = None,
    ) -> ClaimInfo:
        """
        Apply one review action to a claim.

        This is the single entry point for every role's review actions; the
        named wrappers below only fix ``action``.

        Postconditions:
            - On success: status is the table's target, any reason or notes
              are appended to the claim notes, approved_at is set when the
              target is Approved, and exactly one STATUS_CHANGED entry is
              appended.
            - On failure: nothing is changed and nothing is recorded.

        Raises:
            ClaimNotFoundError, RoleNotPermittedError, InvalidTransitionError,
            MissingReasonError, ConcurrentModificationError.
        """
        action = ClaimAction(action)
        with LogContext.bind(claim_id=claim_id, actor_id=actor.user_id):
            claim = self._get_claim(claim_id)
            current = ClaimStatus(claim.status)
            try:
                target = resolve_transition(
                    claim.id,
                    current,
                    action,
                    actor.role,
                    reason=reason,
                    require_reason=self.workflow_policy.require_reason,
                )
            except ClaimsKernelError as exc:
                logger.warning(
                    "claim_transition_refused",
                    extra={
                        "action": action.value,
                        "role": actor.role.value,
                        "current_status": current.value,
                        "error_code": exc.code,
                    },
                )
                raise

            annotation = _annotation(action, actor.role, reason, notes)
            if annotation:
                claim.notes = _append_note(claim.notes, annotation)
            claim.status = target
            if target == ClaimStatus.APPROVED:
                claim.approved_at = self.clock.now()

            message = _STATUS_MESSAGES[action]
            if reason and reason.strip() and action in (
                ClaimAction.REJECT,
                ClaimAction.REQUEST_REVISION,
            ):
                message = f"{message}: {reason.strip()}"

            self._audit.record(
                claim,
                actor.user_id,
                EventKind.STATUS_CHANGED,
                message,
                from_status=current,
                to_status=target,
                payload={
                    "action": action.value,
                    "role": actor.role.value,
                    "reason": reason.strip() if reason else None,
                    "notes": notes.strip() if notes else None,
                },
            )

            logger.info(
                "claim_transitioned",
                extra={
                    "action": action.value,
                    "from_status": current.value,
                    "to_status": target.value,
                },
            )
            return ClaimInfo.from_model(claim)

    def mark_under_review(self, claim_id: int, actor: Actor) -> ClaimInfo:
        return self.apply_transition(claim_id, actor, ClaimAction.MARK_UNDER_REVIEW)

    def forward_to_manager(
        self, claim_id: int, actor: Actor, notes: str | None = None
    ) -> ClaimInfo:
        """Coordinator approval: the claim moves to Coordinator Approved."""
        return self.apply_transition(claim_id, actor, ClaimAction.FORWARD, notes=notes)

    def request_revision(self, claim_id: int, actor: Actor, reason: str) -> ClaimInfo:
        return self.apply_transition(
            claim_id, actor, ClaimAction.REQUEST_REVISION, reason=reason
        )

    def approve(self, claim_id: int, actor: Actor) -> ClaimInfo:
        """Manager final approval."""
        return self.apply_transition(claim_id, actor, ClaimAction.APPROVE)

    def reject(self, claim_id: int, actor: Actor, reason: str) -> ClaimInfo:
        return self.apply_transition(claim_id, actor, ClaimAction.REJECT, reason=reason)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def upload_document(
        self,
        claim_id: int,
        actor: Actor,
        filename: str,
        content: bytes,
        content_type: str | None = None,
    ) -> DocumentInfo:
        """
        Attach a supporting document to an editable claim.

        The bytes are validated and written by the document store under a
        generated handle; the original filename is kept for display.  If
        the database write fails the stored file is removed again.

        Raises:
            RoleNotPermittedError, ClaimNotFoundError, NotClaimOwnerError,
            ClaimNotEditableError, DocumentTypeNotAllowedError,
            DocumentTooLargeError, EmptyDocumentError, StorageError.
        """
        actor.require("upload_document", Role.LECTURER)
        claim = self._get_claim(claim_id)
        self._require_owner(claim, actor)
        self._require_editable(claim)

        display_name = PurePath(filename).name
        store = self._store()
        stored = store.store(
            content,
            display_name,
            self.document_policy.allowed_extensions,
            self.document_policy.max_size_bytes,
        )

        try:
            document = SupportingDocument(
                filename=display_name,
                storage_handle=stored.handle,
                content_type=content_type,
                size_bytes=stored.size_bytes,
                uploaded_at=self.clock.now(),
                verification_status=VerificationStatus.UNVERIFIED,
            )
            claim.documents.append(document)
            self.session.flush()

            self._audit.record(
                claim,
                actor.user_id,
                EventKind.DOCUMENT_UPLOADED,
                f"Document Uploaded: {display_name}",
                payload={
                    "document_id": document.id,
                    "filename": display_name,
                    "size_bytes": stored.size_bytes,
                },
            )
        except Exception:
            store.delete(stored.handle)
            raise

        logger.info(
            "document_uploaded",
            extra={
                "claim_id": claim.id,
                "document_id": document.id,
                "size_bytes": stored.size_bytes,
            },
        )
        return DocumentInfo.from_model(document)

    def delete_document(self, document_id: int, actor: Actor) -> None:
        """
        Remove a document from an editable claim (owning lecturer only).

        The database row and audit entry are flushed here; the stored file
        is removed only when the caller commits, so a refused, conflicting
        or rolled-back delete leaves the file intact.
        """
        actor.require("delete_document", Role.LECTURER)
        document = self._get_document(document_id)
        claim = document.claim
        self._require_owner(claim, actor)
        self._require_editable(claim)

        handle = document.storage_handle
        filename = document.filename
        claim.documents.remove(document)

        self._audit.record(
            claim,
            actor.user_id,
            EventKind.DOCUMENT_DELETED,
            f"Document Deleted: {filename}",
            payload={"document_id": document_id, "filename": filename},
        )
        _delete_file_after_commit(self.session, self._store(), handle)

        logger.info(
            "document_deleted",
            extra={"claim_id": claim.id, "document_id": document_id},
        )

    def verify_document(
        self,
        document_id: int,
        actor: Actor,
        is_valid: bool,
        notes: str | None = None,
    ) -> DocumentInfo:
        """
        Record a coordinator's verdict on a document.

        The claim's status does not change.
        """
        actor.require("verify_document", Role.COORDINATOR)
        document = self._get_document(document_id)
        claim = document.claim

        verdict = VerificationStatus.VERIFIED if is_valid else VerificationStatus.REJECTED
        document.verification_status = verdict
        document.verification_notes = notes
        document.verified_by = actor.user_id
        document.verified_at = self.clock.now()

        kind = EventKind.DOCUMENT_VERIFIED if is_valid else EventKind.DOCUMENT_REJECTED
        self._audit.record(
            claim,
            actor.user_id,
            kind,
            f"Document {verdict.value}: {document.filename}",
            payload={"document_id": document.id, "notes": notes},
        )

        logger.info(
            "document_verified",
            extra={
                "claim_id": claim.id,
                "document_id": document.id,
                "verification_status": verdict.value,
            },
        )
        return DocumentInfo.from_model(document)

    # ------------------------------------------------------------------
    # Resubmission
    # ------------------------------------------------------------------

    def resubmit(self, claim_id: int, actor: Actor) -> ClaimInfo:
        """
        Create a new Pending claim from a Rejected one.

        Hours, amount, notes, period and documents are copied; document
        bytes are copied to fresh handles so the two claims never share a
        file.  The original claim is not modified.

        Raises:
            RoleNotPermittedError, ClaimNotFoundError, NotClaimOwnerError,
            InvalidTransitionError (original is not Rejected),
            ClaimAlreadyResubmittedError, StorageError.
        """
        actor.require("resubmit", Role.LECTURER)
        original = self._get_claim(claim_id)
        self._require_owner(original, actor)
        if ClaimStatus(original.status) != ClaimStatus.REJECTED:
            raise InvalidTransitionError(
                claim_id=original.id,
                action="resubmit",
                current_status=ClaimStatus(original.status).value,
                allowed_from=(ClaimStatus.REJECTED.value,),
            )
        previous = self.session.execute(
            select(Claim.id).where(Claim.resubmitted_from_id == original.id)
        ).scalar_one_or_none()
        if previous is not None:
            raise ClaimAlreadyResubmittedError(original.id, previous)

        now = self.clock.now()
        claim = Claim(
            lecturer_id=original.lecturer_id,
            hours_worked=original.hours_worked,
            amount=original.amount,
            status=ClaimStatus.PENDING,
            submitted_at=now,
            notes=original.notes,
            period_start=original.period_start,
            period_end=original.period_end,
            is_paid=False,
            resubmitted_from_id=original.id,
            updated_at=now,
            audit_seq=0,
        )
        self.session.add(claim)
        self.session.flush()

        store = self._store() if original.documents else None
        new_handles: list[str] = []
        try:
            for source in original.documents:
                stored = store.store(
                    store.read(source.storage_handle),
                    source.filename,
                    self.document_policy.allowed_extensions,
                    self.document_policy.max_size_bytes,
                )
                new_handles.append(stored.handle)
                claim.documents.append(
                    SupportingDocument(
                        filename=source.filename,
                        storage_handle=stored.handle,
                        content_type=source.content_type,
                        size_bytes=stored.size_bytes,
                        uploaded_at=now,
                        verification_status=VerificationStatus.UNVERIFIED,
                    )
                )
            self.session.flush()

            self._audit.record(
                claim,
                actor.user_id,
                EventKind.RESUBMITTED,
                f"Claim resubmitted from claim #{original.id}",
                payload={
                    "original_claim_id": original.id,
                    "documents_copied": len(new_handles),
                },
            )
        except Exception:
            for handle in new_handles:
                store.delete(handle)
            raise

        logger.info(
            "claim_resubmitted",
            extra={
                "claim_id": claim.id,
                "original_claim_id": original.id,
                "documents_copied": len(new_handles),
            },
        )
        return ClaimInfo.from_model(claim)
