"""
Tests for ReportSelector.

One fixed data set is used throughout:

    claim  lecturer            department   submitted         amount  outcome
    A      Lerato Lecturer     Computing    2024-01-10 09:00  500.00  Approved 2.5 days later
    B      Thabo Tutor         Mathematics  2024-01-10 09:00  320.00  Rejected 1 day later
    C      Lerato Lecturer     Computing    2024-02-05 09:00  200.00  Pending, document rejected
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from claims_kernel.domain.actor import Actor, Role
from claims_kernel.domain.claim_lifecycle import ClaimStatus
from claims_kernel.exceptions import InvalidDateRangeError
from claims_kernel.selectors.report_selector import (
    CSV_HEADER,
    ReportGranularity,
    ReportSelector,
)
from claims_kernel.services.payment_service import PaymentService

JAN_10 = datetime(2024, 1, 10, 9, 0, tzinfo=UTC)
FEB_05 = datetime(2024, 2, 5, 9, 0, tzinfo=UTC)


@dataclass
class ReportData:
    approved_id: int
    rejected_id: int
    pending_id: int


@pytest.fixture
def reports(session):
    return ReportSelector(session)


@pytest.fixture
def report_data(
    lecturer, create_lecturer, claim_service, deterministic_clock,
    lecturer_actor, coordinator_actor, manager_actor,
) -> ReportData:
    create_lecturer(
        user_id="lecturer-2", name="Thabo Tutor", department="Mathematics", hourly_rate="40.00"
    )
    second = Actor("lecturer-2", Role.LECTURER)

    deterministic_clock.set_time(JAN_10)
    a = claim_service.submit(lecturer_actor, "10")
    b = claim_service.submit(second, "8")

    deterministic_clock.set_time(JAN_10 + timedelta(days=1))
    claim_service.forward_to_manager(a.id, coordinator_actor)
    claim_service.reject(b.id, coordinator_actor, "Hours not on the timetable")

    deterministic_clock.set_time(JAN_10 + timedelta(days=2, hours=12))
    claim_service.approve(a.id, manager_actor)

    deterministic_clock.set_time(FEB_05)
    c = claim_service.submit(lecturer_actor, "4")
    doc = claim_service.upload_document(c.id, lecturer_actor, "timesheet.pdf", b"%PDF-1.4")
    deterministic_clock.advance(3600)
    claim_service.verify_document(doc.id, coordinator_actor, is_valid=False, notes="Unsigned")

    return ReportData(approved_id=a.id, rejected_id=b.id, pending_id=c.id)


class TestSummary:
    """Tests for the headline figures."""

    def test_all_claims(self, reports, report_data):
        summary = reports.summary()

        assert summary.total_claims == 3
        assert summary.total_amount == Decimal("1020.00")
        assert summary.approved_claims == 1
        assert summary.approved_amount == Decimal("500.00")
        assert summary.average_approved_amount == Decimal("500.00")
        assert summary.approval_rate == Decimal("33.33")
        assert summary.pending_claims == 1
        assert summary.under_review_claims == 0
        assert summary.rejected_claims == 1
        assert summary.average_processing_days == 1.8

    def test_department_filter(self, reports, report_data):
        summary = reports.summary(department="Mathematics")

        assert summary.total_claims == 1
        assert summary.rejected_claims == 1
        assert summary.approval_rate == Decimal("0.00")
        assert summary.average_processing_days == 1.0

    def test_date_bounds_cover_whole_days(self, reports, report_data):
        """A date end bound includes claims submitted later that day."""
        assert reports.summary(end=date(2024, 1, 10)).total_claims == 2
        assert reports.summary(start=date(2024, 2, 1), end=date(2024, 2, 29)).total_claims == 1

    def test_empty_window(self, reports, report_data):
        """No claims gives zeros, not errors."""
        summary = reports.summary(start=date(2023, 1, 1), end=date(2023, 1, 31))

        assert summary.total_claims == 0
        assert summary.total_amount == Decimal("0.00")
        assert summary.approval_rate == Decimal("0.00")
        assert summary.average_approved_amount == Decimal("0.00")
        assert summary.average_processing_days is None

    def test_start_after_end(self, reports, engine):
        with pytest.raises(InvalidDateRangeError):
            reports.summary(start=date(2024, 2, 1), end=date(2024, 1, 1))


class TestStatusDistribution:

    def test_every_status_present(self, reports, report_data):
        counts = reports.status_distribution()

        assert set(counts) == set(ClaimStatus)
        assert counts[ClaimStatus.APPROVED] == 1
        assert counts[ClaimStatus.REJECTED] == 1
        assert counts[ClaimStatus.PENDING] == 1
        assert counts[ClaimStatus.REVISION_REQUESTED] == 0
        assert sum(counts.values()) == 3


class TestProcessingTime:
    """Processing time counts decisions only."""

    def test_average_of_decided_claims(self, reports, report_data):
        """(2.5 + 1.0) / 2 rounds half up to 1.8; the Pending claim is excluded."""
        assert reports.average_processing_days() == 1.8

    def test_document_rejection_is_not_a_decision(self, reports, report_data):
        """February holds only a claim with a rejected document."""
        assert reports.average_processing_days(start=date(2024, 2, 1)) is None


class TestBreakdowns:
    """Tests for period, department and lecturer breakdowns."""

    def test_monthly(self, reports, report_data):
        buckets = reports.period_breakdown()

        assert [b.period for b in buckets] == ["2024-01", "2024-02"]
        january, february = buckets
        assert (january.submitted, january.approved) == (2, 1)
        assert january.approved_amount == Decimal("500.00")
        assert january.approval_rate == Decimal("50.00")
        assert (february.submitted, february.approved) == (1, 0)
        assert february.approved_amount == Decimal("0.00")

    def test_weekly_and_quarterly(self, reports, report_data):
        weekly = reports.period_breakdown(granularity=ReportGranularity.WEEK)
        assert [b.period for b in weekly] == ["2024-W02", "2024-W06"]

        quarterly = reports.period_breakdown(granularity="quarter")
        assert [(b.period, b.submitted) for b in quarterly] == [("2024-Q1", 3)]

    def test_departments_by_claim_count(self, reports, report_data):
        stats = reports.department_breakdown()

        assert [s.department for s in stats] == ["Computing", "Mathematics"]
        computing = stats[0]
        assert computing.total_claims == 2
        assert computing.approved_claims == 1
        assert computing.approved_amount == Decimal("500.00")
        assert computing.average_amount == Decimal("500.00")
        assert computing.approval_rate == Decimal("50.00")
        assert stats[1].average_amount == Decimal("0.00")

    def test_top_lecturers(self, reports, report_data):
        ranked = reports.top_lecturers()

        assert [s.lecturer_name for s in ranked] == ["Lerato Lecturer", "Thabo Tutor"]
        assert ranked[0].approved_amount == Decimal("500.00")
        assert ranked[0].total_claims == 2
        assert len(reports.top_lecturers(limit=1)) == 1


class TestHrDashboard:

    def test_before_and_after_payment(
        self, session, reports, report_data, hr_actor, deterministic_clock
    ):
        before = reports.hr_dashboard()
        assert before.pending_payment_count == 1
        assert before.pending_payment_amount == Decimal("500.00")
        assert before.batches_generated == 0
        assert before.paid_claim_count == 0

        PaymentService(session, deterministic_clock).generate_payment_batch(
            [report_data.approved_id], hr_actor
        )

        after = reports.hr_dashboard()
        assert after.pending_payment_count == 0
        assert after.pending_payment_amount == Decimal("0.00")
        assert after.batches_generated == 1
        assert after.paid_claim_count == 1
        assert after.paid_amount == Decimal("500.00")


class TestInvoiceReport:

    @pytest.fixture
    def february_approvals(
        self, report_data, create_lecturer, claim_service, deterministic_clock,
        coordinator_actor, manager_actor,
    ):
        """Two more Approved claims and one still waiting on a manager."""
        create_lecturer(
            user_id="lecturer-3", name="Anele Nkosi", department="Computing", hourly_rate="30.00"
        )
        anele = Actor("lecturer-3", Role.LECTURER)
        thabo = Actor("lecturer-2", Role.LECTURER)

        deterministic_clock.set_time(FEB_05 + timedelta(days=1))
        d = claim_service.submit(anele, "5")
        e = claim_service.submit(thabo, "2")
        f = claim_service.submit(anele, "1")
        for claim in (d, e, f):
            claim_service.forward_to_manager(claim.id, coordinator_actor)
        for claim in (d, e):
            claim_service.approve(claim.id, manager_actor)
        return d.id, e.id, f.id

    def test_grouped_by_department_then_lecturer(self, reports, report_data, february_approvals):
        """Only Approved claims, ordered by department and lecturer name."""
        anele_id, thabo_id, forwarded_id = february_approvals
        report = reports.invoice_report()

        assert [line.claim_id for line in report.lines] == [
            anele_id, report_data.approved_id, thabo_id,
        ]
        assert forwarded_id not in {line.claim_id for line in report.lines}
        assert [line.department for line in report.lines] == ["Computing", "Computing", "Mathematics"]
        assert report.total_amount == Decimal("730.00")
        assert report.total_claims == 3

    def test_window_and_department(self, reports, february_approvals):
        """The window and department narrow the invoiced claims."""
        anele_id, _, _ = february_approvals
        report = reports.invoice_report(
            start=date(2024, 2, 1), end=date(2024, 2, 29), department="Computing"
        )

        assert [line.claim_id for line in report.lines] == [anele_id]
        assert report.lines[0].hours_worked == Decimal("5.00")
        assert report.total_amount == Decimal("150.00")
        assert report.department == "Computing"

    def test_paid_claims_still_invoiced(
        self, session, reports, report_data, hr_actor, deterministic_clock
    ):
        """Payment does not remove a claim from the invoice report."""
        PaymentService(session, deterministic_clock).generate_payment_batch(
            [report_data.approved_id], hr_actor
        )
        report = reports.invoice_report()

        assert [(line.claim_id, line.is_paid) for line in report.lines] == [
            (report_data.approved_id, True),
        ]

    def test_empty(self, reports, engine):
        report = reports.invoice_report()
        assert report.lines == ()
        assert report.total_amount == Decimal("0.00")


class TestCsvExport:

    def test_rows_and_total(self, reports, report_data):
        lines = reports.export_claims_csv().splitlines()

        assert lines[0] == ",".join(CSV_HEADER)
        assert lines[1] == f"{report_data.approved_id},Lerato Lecturer,Computing,10.00,500.00,Approved,2024-01-10"
        assert lines[2] == f"{report_data.rejected_id},Thabo Tutor,Mathematics,8.00,320.00,Rejected,2024-01-10"
        assert lines[3] == f"{report_data.pending_id},Lerato Lecturer,Computing,4.00,200.00,Pending,2024-02-05"
        assert lines[4] == ",,,Total,1020.00,,"
        assert len(lines) == 5

    def test_empty_export_has_header_and_total(self, reports, engine):
        lines = reports.export_claims_csv().splitlines()
        assert lines == [",".join(CSV_HEADER), ",,,Total,0.00,,"]
