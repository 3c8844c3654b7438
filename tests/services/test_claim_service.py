"""
Tests for ClaimService.

Covers:
- Submission: amount computation, validation, audit entry
- Review transitions through the shared apply_transition
- Document upload, delete, verification
- Resubmission of rejected claims
"""

from datetime import date
from decimal import Decimal

import pytest

from claims_kernel.domain.actor import Actor, Role
from claims_kernel.domain.claim_lifecycle import ClaimAction, ClaimStatus, VerificationStatus
from claims_kernel.exceptions import (
    ClaimAlreadyResubmittedError,
    ClaimNotEditableError,
    ClaimNotFoundError,
    DocumentNotFoundError,
    DocumentTooLargeError,
    DocumentTypeNotAllowedError,
    EmptyDocumentError,
    InvalidDateRangeError,
    InvalidHoursError,
    InvalidTransitionError,
    LecturerNotFoundError,
    MissingReasonError,
    NotClaimOwnerError,
    RoleNotPermittedError,
    ValidationError,
)
from claims_kernel.models.audit_entry import EventKind
from claims_kernel.selectors.audit_selector import AuditSelector
from claims_kernel.selectors.claim_selector import ClaimSelector
from claims_kernel.services.lecturer_service import LecturerService

PDF_BYTES = b"%PDF-1.4 timesheet"


def _kinds(session, claim_id):
    return [e.kind for e in AuditSelector(session).entries_for(claim_id)]


def _stored_files(document_store):
    if not document_store.root.exists():
        return []
    return sorted(p.name for p in document_store.root.iterdir())


class TestSubmit:
    """Tests for ClaimService.submit."""

    def test_scenario_a_amount_status_and_audit(self, session, submit_claim, deterministic_clock):
        """Rate 50.00 x 10 hours gives a Pending claim of 500.00 with one entry."""
        claim = submit_claim("10")

        assert claim.amount == Decimal("500.00")
        assert claim.hours_worked == Decimal("10.00")
        assert claim.status is ClaimStatus.PENDING
        assert claim.submitted_at == deterministic_clock.now()

        entries = AuditSelector(session).entries_for(claim.id)
        assert len(entries) == 1
        assert entries[0].kind is EventKind.SUBMITTED
        assert entries[0].message == "Claim Submitted"
        assert entries[0].payload["amount"] == "500.00"

    def test_amount_rounds_half_up(self, session, claim_service, create_lecturer):
        """Amounts are rounded to cents, half up."""
        create_lecturer(user_id="lecturer-9", hourly_rate="333.33")
        claim = claim_service.submit(Actor("lecturer-9", Role.LECTURER), "7.5")
        assert claim.amount == Decimal("2499.98")

    def test_hours_rounded_to_two_places(self, submit_claim):
        """Hours are stored with two decimal places."""
        assert submit_claim("10.005").hours_worked == Decimal("10.01")

    @pytest.mark.parametrize("hours", ["0", "-1", "200.01", "abc", 1.5, "1e30"])
    def test_invalid_hours_refused(self, session, submit_claim, hours):
        """Hours outside (0, 200] or not a number are refused with no claim created."""
        with pytest.raises(InvalidHoursError):
            submit_claim(hours)
        assert ClaimSelector(session).for_lecturer(1) == []

    def test_max_hours_accepted(self, submit_claim):
        """The cap itself is allowed."""
        assert submit_claim("200").amount == Decimal("10000.00")

    def test_period_range_validated(self, submit_claim):
        """period_start after period_end is refused."""
        with pytest.raises(InvalidDateRangeError):
            submit_claim(period_start=date(2024, 2, 1), period_end=date(2024, 1, 1))

    def test_non_lecturer_refused(self, claim_service, lecturer, coordinator_actor):
        """Only lecturers submit claims."""
        with pytest.raises(RoleNotPermittedError):
            claim_service.submit(coordinator_actor, "5")

    def test_unknown_lecturer_refused(self, claim_service):
        """A lecturer account with no profile cannot submit."""
        with pytest.raises(LecturerNotFoundError):
            claim_service.submit(Actor("ghost", Role.LECTURER), "5")

    def test_rate_change_does_not_touch_existing_claims(
        self, session, submit_claim, lecturer, hr_actor, deterministic_clock
    ):
        """A later rate change leaves the submitted amount alone."""
        claim = submit_claim("10")
        LecturerService(session, deterministic_clock).update_hourly_rate(
            lecturer.id, "80.00", hr_actor
        )
        session.expire_all()
        assert ClaimSelector(session).get(claim.id).amount == Decimal("500.00")

    def test_logs_claim_submitted(self, submit_claim, captured_logs):
        """A claim_submitted record is emitted."""
        claim = submit_claim()
        records = [r for r in captured_logs() if r["message"] == "claim_submitted"]
        assert len(records) == 1
        assert records[0]["claim_id"] == claim.id
        assert records[0]["amount"] == "500.00"


class TestTransitions:
    """Tests for apply_transition and its named wrappers."""

    def test_scenario_b_forward_with_notes(
        self, session, submit_claim, claim_service, coordinator_actor
    ):
        """Forwarding moves the claim to Coordinator Approved and keeps the notes."""
        claim = submit_claim()
        result = claim_service.forward_to_manager(claim.id, coordinator_actor, notes="ok")

        assert result.status is ClaimStatus.COORDINATOR_APPROVED
        assert "[Coordinator Notes]: ok" in result.notes
        entries = AuditSelector(session).entries_for(claim.id)
        assert len(entries) == 2
        assert entries[1].from_status is ClaimStatus.PENDING
        assert entries[1].to_status is ClaimStatus.COORDINATOR_APPROVED
        assert entries[1].message == "Claim forwarded to Manager (Coordinator Approved)"

    def test_scenario_c_manager_approval(
        self, session, submit_claim, claim_service, coordinator_actor, manager_actor,
        deterministic_clock,
    ):
        """Approval sets approved_at to the clock and appends a third entry."""
        claim = submit_claim()
        claim_service.forward_to_manager(claim.id, coordinator_actor)
        deterministic_clock.advance_days(2)
        result = claim_service.approve(claim.id, manager_actor)

        assert result.status is ClaimStatus.APPROVED
        assert result.approved_at == deterministic_clock.now()
        assert len(AuditSelector(session).entries_for(claim.id)) == 3

    def test_manager_approves_pending_refused(
        self, session, submit_claim, claim_service, manager_actor
    ):
        """A refused transition changes nothing and records nothing."""
        claim = submit_claim()
        with pytest.raises(InvalidTransitionError) as exc_info:
            claim_service.approve(claim.id, manager_actor)

        assert isinstance(exc_info.value, ValidationError)
        assert ClaimSelector(session).get(claim.id).status is ClaimStatus.PENDING
        assert _kinds(session, claim.id) == [EventKind.SUBMITTED]

    def test_reject_requires_reason(self, session, submit_claim, claim_service, coordinator_actor):
        """Rejecting without a reason is refused."""
        claim = submit_claim()
        with pytest.raises(MissingReasonError):
            claim_service.reject(claim.id, coordinator_actor, "  ")
        assert _kinds(session, claim.id) == [EventKind.SUBMITTED]

    def test_coordinator_reject_annotates_notes(
        self, submit_claim, claim_service, coordinator_actor
    ):
        """A coordinator rejection appends a Rejection Reason line."""
        claim = submit_claim(notes="Week 3 tutorials")
        result = claim_service.reject(claim.id, coordinator_actor, "No timesheet")

        assert result.status is ClaimStatus.REJECTED
        assert result.notes == "Week 3 tutorials\n[Rejection Reason]: No timesheet"

    def test_manager_reject_annotates_notes(
        self, session, submit_claim, claim_service, coordinator_actor, manager_actor
    ):
        """A manager rejection uses its own annotation and message."""
        claim = submit_claim()
        claim_service.forward_to_manager(claim.id, coordinator_actor)
        result = claim_service.reject(claim.id, manager_actor, "Over budget")

        assert result.notes.endswith("[Manager Rejection]: Over budget")
        last = AuditSelector(session).entries_for(claim.id)[-1]
        assert last.message == "Claim Rejected: Over budget"
        assert last.payload["reason"] == "Over budget"

    def test_request_revision(self, session, submit_claim, claim_service, coordinator_actor):
        """Revision requests record the reason in notes and the message."""
        claim = submit_claim()
        result = claim_service.request_revision(claim.id, coordinator_actor, "Add dates")

        assert result.status is ClaimStatus.REVISION_REQUESTED
        assert "[Revision Required]: Add dates" in result.notes
        last = AuditSelector(session).entries_for(claim.id)[-1]
        assert last.message == "Revision Requested: Add dates"

    def test_mark_under_review_then_manager_approves(
        self, submit_claim, claim_service, coordinator_actor, manager_actor
    ):
        """Managers may approve straight from Under Review."""
        claim = submit_claim()
        claim_service.mark_under_review(claim.id, coordinator_actor)
        assert claim_service.approve(claim.id, manager_actor).status is ClaimStatus.APPROVED

    def test_terminal_claim_cannot_move(
        self, session, approved_claim, claim_service, manager_actor
    ):
        """An Approved claim cannot be rejected afterwards."""
        claim = approved_claim()
        with pytest.raises(InvalidTransitionError):
            claim_service.reject(claim.id, manager_actor, "changed my mind")
        assert len(_kinds(session, claim.id)) == 3

    def test_unknown_claim(self, claim_service, coordinator_actor):
        """An unknown id is reported as not found."""
        with pytest.raises(ClaimNotFoundError):
            claim_service.apply_transition(999, coordinator_actor, ClaimAction.FORWARD)

    def test_logs_transition_with_context(
        self, submit_claim, claim_service, coordinator_actor, captured_logs
    ):
        """claim_transitioned carries the claim and actor context."""
        claim = submit_claim()
        claim_service.mark_under_review(claim.id, coordinator_actor)

        record = next(r for r in captured_logs() if r["message"] == "claim_transitioned")
        assert record["claim_id"] == str(claim.id)
        assert record["actor_id"] == coordinator_actor.user_id
        assert record["to_status"] == "Under Review"


class TestUploadDocument:
    """Tests for ClaimService.upload_document."""

    def test_upload_keeps_original_name(
        self, session, submit_claim, claim_service, lecturer_actor, document_store
    ):
        """The stored handle is generated; the display name is the original."""
        claim = submit_claim()
        doc = claim_service.upload_document(
            claim.id, lecturer_actor, "../../Timesheet March.PDF", PDF_BYTES, "application/pdf"
        )

        assert doc.filename == "Timesheet March.PDF"
        assert doc.storage_handle.endswith(".pdf")
        assert "Timesheet" not in doc.storage_handle
        assert doc.verification_status is VerificationStatus.UNVERIFIED
        assert document_store.read(doc.storage_handle) == PDF_BYTES
        last = AuditSelector(session).entries_for(claim.id)[-1]
        assert last.kind is EventKind.DOCUMENT_UPLOADED
        assert last.message == "Document Uploaded: Timesheet March.PDF"

    def test_scenario_f_oversized_upload(
        self, session, submit_claim, claim_service, lecturer_actor, document_store
    ):
        """A 6 MiB file is refused with no record, no entry and no stored file."""
        claim = submit_claim()
        with pytest.raises(DocumentTooLargeError) as exc_info:
            claim_service.upload_document(
                claim.id, lecturer_actor, "big.pdf", b"x" * (6 * 1024 * 1024)
            )

        assert isinstance(exc_info.value, ValidationError)
        assert ClaimSelector(session).documents_for(claim.id) == []
        assert _kinds(session, claim.id) == [EventKind.SUBMITTED]
        assert _stored_files(document_store) == []

    def test_disallowed_extension(self, submit_claim, claim_service, lecturer_actor):
        """Executables are not on the allow-list."""
        claim = submit_claim()
        with pytest.raises(DocumentTypeNotAllowedError):
            claim_service.upload_document(claim.id, lecturer_actor, "run.exe", b"MZ")

    def test_empty_file(self, submit_claim, claim_service, lecturer_actor):
        """Empty uploads are refused."""
        claim = submit_claim()
        with pytest.raises(EmptyDocumentError):
            claim_service.upload_document(claim.id, lecturer_actor, "empty.pdf", b"")

    def test_other_lecturer_refused(
        self, submit_claim, claim_service, create_lecturer, other_lecturer_actor
    ):
        """Only the owning lecturer may attach documents."""
        create_lecturer(user_id=other_lecturer_actor.user_id, name="Other Lecturer")
        claim = submit_claim()
        with pytest.raises(NotClaimOwnerError):
            claim_service.upload_document(claim.id, other_lecturer_actor, "a.pdf", PDF_BYTES)

    def test_not_editable_after_forward(
        self, submit_claim, claim_service, lecturer_actor, coordinator_actor
    ):
        """Documents are frozen once the coordinator has approved."""
        claim = submit_claim()
        claim_service.forward_to_manager(claim.id, coordinator_actor)
        with pytest.raises(ClaimNotEditableError):
            claim_service.upload_document(claim.id, lecturer_actor, "late.pdf", PDF_BYTES)

    def test_stored_file_removed_when_database_step_fails(
        self, submit_claim, claim_service, lecturer_actor, document_store, monkeypatch
    ):
        """A failure after the file is stored deletes the file again."""
        claim = submit_claim()

        def _fail(*args, **kwargs):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(claim_service._audit, "record", _fail)
        with pytest.raises(RuntimeError):
            claim_service.upload_document(claim.id, lecturer_actor, "a.pdf", PDF_BYTES)
        assert _stored_files(document_store) == []


class TestDeleteDocument:
    """Tests for ClaimService.delete_document."""

    def test_upload_then_delete_round_trip(
        self, session, submit_claim, claim_service, lecturer_actor, document_store
    ):
        """Upload followed by delete leaves only the two audit entries behind."""
        claim = submit_claim()
        before = ClaimSelector(session).documents_for(claim.id)
        doc = claim_service.upload_document(claim.id, lecturer_actor, "a.pdf", PDF_BYTES)
        claim_service.delete_document(doc.id, lecturer_actor)
        session.commit()

        assert ClaimSelector(session).documents_for(claim.id) == before
        assert _stored_files(document_store) == []
        assert _kinds(session, claim.id) == [
            EventKind.SUBMITTED,
            EventKind.DOCUMENT_UPLOADED,
            EventKind.DOCUMENT_DELETED,
        ]
        with pytest.raises(DocumentNotFoundError):
            document_store.read(doc.storage_handle)

    def test_file_kept_until_commit(
        self, session, submit_claim, claim_service, lecturer_actor, document_store
    ):
        """The stored file outlives a delete that is rolled back."""
        claim = submit_claim()
        doc = claim_service.upload_document(claim.id, lecturer_actor, "a.pdf", PDF_BYTES)
        session.commit()

        claim_service.delete_document(doc.id, lecturer_actor)
        assert document_store.read(doc.storage_handle) == PDF_BYTES
        session.rollback()

        assert [d.id for d in ClaimSelector(session).documents_for(claim.id)] == [doc.id]
        assert document_store.read(doc.storage_handle) == PDF_BYTES

        session.commit()
        assert document_store.read(doc.storage_handle) == PDF_BYTES

    def test_other_lecturer_cannot_delete(
        self, submit_claim, claim_service, lecturer_actor, create_lecturer,
        other_lecturer_actor, document_store,
    ):
        """Forbidden for anyone but the owner; the file stays."""
        create_lecturer(user_id=other_lecturer_actor.user_id, name="Other Lecturer")
        claim = submit_claim()
        doc = claim_service.upload_document(claim.id, lecturer_actor, "a.pdf", PDF_BYTES)

        with pytest.raises(NotClaimOwnerError):
            claim_service.delete_document(doc.id, other_lecturer_actor)
        assert document_store.read(doc.storage_handle) == PDF_BYTES

    def test_unknown_document(self, claim_service, lecturer, lecturer_actor):
        """Deleting an unknown document id is not found."""
        with pytest.raises(DocumentNotFoundError):
            claim_service.delete_document(404, lecturer_actor)


class TestVerifyDocument:
    """Tests for ClaimService.verify_document."""

    def test_verify_and_reject(
        self, session, submit_claim, claim_service, lecturer_actor, coordinator_actor
    ):
        """Verdicts are recorded without changing the claim status."""
        claim = submit_claim()
        good = claim_service.upload_document(claim.id, lecturer_actor, "a.pdf", PDF_BYTES)
        bad = claim_service.upload_document(claim.id, lecturer_actor, "b.png", b"\x89PNG")

        verified = claim_service.verify_document(good.id, coordinator_actor, True)
        rejected = claim_service.verify_document(bad.id, coordinator_actor, False, "Blurry")

        assert verified.verification_status is VerificationStatus.VERIFIED
        assert verified.verified_by == coordinator_actor.user_id
        assert rejected.verification_status is VerificationStatus.REJECTED
        assert rejected.verification_notes == "Blurry"
        assert ClaimSelector(session).get(claim.id).status is ClaimStatus.PENDING
        assert _kinds(session, claim.id)[-2:] == [
            EventKind.DOCUMENT_VERIFIED,
            EventKind.DOCUMENT_REJECTED,
        ]

    def test_lecturer_cannot_verify(self, submit_claim, claim_service, lecturer_actor):
        """Verification is a coordinator action."""
        claim = submit_claim()
        doc = claim_service.upload_document(claim.id, lecturer_actor, "a.pdf", PDF_BYTES)
        with pytest.raises(RoleNotPermittedError):
            claim_service.verify_document(doc.id, lecturer_actor, True)


class TestResubmit:
    """Tests for ClaimService.resubmit."""

    def test_resubmit_copies_claim_and_documents(
        self, session, submit_claim, claim_service, lecturer_actor, coordinator_actor,
        document_store,
    ):
        """A new Pending claim is created; the rejected original is untouched."""
        original = submit_claim("12", notes="Marking")
        doc = claim_service.upload_document(original.id, lecturer_actor, "a.pdf", PDF_BYTES)
        rejected = claim_service.reject(original.id, coordinator_actor, "Wrong month")

        new = claim_service.resubmit(original.id, lecturer_actor)

        assert new.id != original.id
        assert new.status is ClaimStatus.PENDING
        assert new.resubmitted_from_id == original.id
        assert new.hours_worked == original.hours_worked
        assert new.amount == original.amount
        assert len(new.documents) == 1
        copy = new.documents[0]
        assert copy.filename == "a.pdf"
        assert copy.storage_handle != doc.storage_handle
        assert document_store.read(copy.storage_handle) == PDF_BYTES

        after = ClaimSelector(session).get(original.id)
        assert after.status is ClaimStatus.REJECTED
        assert after.version == rejected.version

        entries = AuditSelector(session).entries_for(new.id)
        assert [e.kind for e in entries] == [EventKind.RESUBMITTED]
        assert entries[0].payload["original_claim_id"] == original.id
        assert entries[0].message == f"Claim resubmitted from claim #{original.id}"

    def test_only_rejected_claims(self, submit_claim, claim_service, lecturer_actor):
        """A Pending claim cannot be resubmitted."""
        claim = submit_claim()
        with pytest.raises(InvalidTransitionError):
            claim_service.resubmit(claim.id, lecturer_actor)

    def test_only_owner(
        self, submit_claim, claim_service, coordinator_actor, create_lecturer,
        other_lecturer_actor,
    ):
        """Another lecturer cannot resubmit someone else's claim."""
        create_lecturer(user_id=other_lecturer_actor.user_id, name="Other Lecturer")
        claim = submit_claim()
        claim_service.reject(claim.id, coordinator_actor, "No")
        with pytest.raises(NotClaimOwnerError):
            claim_service.resubmit(claim.id, other_lecturer_actor)

    def test_resubmitted_once(self, session, submit_claim, claim_service, lecturer_actor, coordinator_actor):
        """A second resubmission of the same Rejected claim is refused."""
        claim = submit_claim()
        claim_service.reject(claim.id, coordinator_actor, "Wrong month")
        first = claim_service.resubmit(claim.id, lecturer_actor)

        with pytest.raises(ClaimAlreadyResubmittedError) as exc_info:
            claim_service.resubmit(claim.id, lecturer_actor)
        assert exc_info.value.resubmission_id == first.id
        assert isinstance(exc_info.value, ValidationError)
        assert {c.id for c in ClaimSelector(session).for_lecturer(first.lecturer_id)} == {claim.id, first.id}

    def test_resubmission_can_be_resubmitted(
        self, submit_claim, claim_service, lecturer_actor, coordinator_actor
    ):
        """Each rejection in a resubmission chain allows one new claim."""
        claim = submit_claim()
        claim_service.reject(claim.id, coordinator_actor, "Wrong month")
        second = claim_service.resubmit(claim.id, lecturer_actor)
        claim_service.reject(second.id, coordinator_actor, "Still wrong")

        third = claim_service.resubmit(second.id, lecturer_actor)
        assert third.resubmitted_from_id == second.id
