"""
Module: claims_kernel.selectors.report_selector
Responsibility: Report aggregation over a time window of claims --
    status distribution, approval summary, period and department
    breakdowns, processing time, top lecturers, the HR dashboard, the HR
    invoice report, and the CSV claims export.
Architecture position: Kernel > Selectors.  Pure read side; every figure
    is derived from Claim, Lecturer, AuditEntry and PaymentBatch rows at
    query time.  Nothing is cached or stored.

Invariants enforced:
    - The window is inclusive on both ends and applies to the claim's
      submission timestamp.  A date bound covers the whole day (UTC).
    - "Approved" for reporting means Approved or Coordinator Approved.
    - Approval rate is 0 when the window holds no claims.
    - Processing time is measured from submission to the first
      STATUS_CHANGED entry into Approved or Rejected.  Claims without
      such an entry are excluded, not counted as zero.  Matching is on
      the coded event, never on message text.
    - All money figures are Decimal rounded to 2 places.

Failure modes:
    - InvalidDateRangeError when start is after end.
"""

from __future__ import annotations

import csv
import io
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.orm import contains_eager

from claims_kernel.db.types import round_money
from claims_kernel.domain.claim_lifecycle import (
    APPROVED_STATUSES,
    DECISION_STATUSES,
    ClaimStatus,
)
from claims_kernel.exceptions import InvalidDateRangeError
from claims_kernel.models.audit_entry import AuditEntry, EventKind
from claims_kernel.models.claim import Claim
from claims_kernel.models.payment_batch import PaymentBatch
from claims_kernel.models.people import Lecturer
from claims_kernel.selectors.base import BaseSelector, as_utc

CSV_HEADER = (
    "ClaimID",
    "LecturerName",
    "Department",
    "HoursWorked",
    "Amount",
    "Status",
    "SubmissionDate",
)

_SECONDS_PER_DAY = Decimal(86400)


class ReportGranularity(str, Enum):
    MONTH = "month"
    WEEK = "week"
    QUARTER = "quarter"


def _percentage(part: int, whole: int) -> Decimal:
    if whole == 0:
        return Decimal("0.00")
    return (Decimal(part) * 100 / Decimal(whole)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


def _average(total: Decimal, count: int) -> Decimal:
    if count == 0:
        return Decimal("0.00")
    return round_money(total / count)


def _period_key(moment: datetime, granularity: ReportGranularity) -> tuple[int, int, str]:
    """Sortable (year, n) pair plus the display label of a bucket."""
    if granularity == ReportGranularity.MONTH:
        return moment.year, moment.month, f"{moment.year:04d}-{moment.month:02d}"
    if granularity == ReportGranularity.QUARTER:
        quarter = (moment.month - 1) // 3 + 1
        return moment.year, quarter, f"{moment.year:04d}-Q{quarter}"
    iso_year, iso_week, _ = moment.isocalendar()
    return iso_year, iso_week, f"{iso_year:04d}-W{iso_week:02d}"


@dataclass(frozen=True)
class ReportSummary:
    total_claims: int
    total_amount: Decimal
    approved_claims: int
    approved_amount: Decimal
    average_approved_amount: Decimal
    approval_rate: Decimal
    pending_claims: int
    under_review_claims: int
    rejected_claims: int
    average_processing_days: float | None


@dataclass(frozen=True)
class PeriodBucket:
    """Claims submitted in one month, ISO week or quarter."""

    period: str
    submitted: int
    approved: int
    approved_amount: Decimal

    @property
    def approval_rate(self) -> Decimal:
        return _percentage(self.approved, self.submitted)


@dataclass(frozen=True)
class DepartmentStat:
    department: str
    total_claims: int
    approved_claims: int
    approved_amount: Decimal
    average_amount: Decimal

    @property
    def approval_rate(self) -> Decimal:
        return _percentage(self.approved_claims, self.total_claims)


@dataclass(frozen=True)
class LecturerStat:
    lecturer_id: int
    lecturer_name: str
    department: str
    total_claims: int
    approved_claims: int
    approved_amount: Decimal

    @property
    def approval_rate(self) -> Decimal:
        return _percentage(self.approved_claims, self.total_claims)


@dataclass(frozen=True)
class InvoiceLine:
    claim_id: int
    lecturer_name: str
    department: str
    hours_worked: Decimal
    amount: Decimal
    submitted_at: datetime
    is_paid: bool


@dataclass(frozen=True)
class InvoiceReport:
    """Approved claims in a window, grouped for HR invoicing."""

    start: date | datetime | None
    end: date | datetime | None
    department: str | None
    lines: tuple[InvoiceLine, ...]
    total_amount: Decimal

    @property
    def total_claims(self) -> int:
        return len(self.lines)


@dataclass(frozen=True)
class HrDashboard:
    pending_payment_count: int
    pending_payment_amount: Decimal
    batches_generated: int
    paid_claim_count: int
    paid_amount: Decimal


class ReportSelector(BaseSelector):
    """
    Aggregations for the manager and HR reports.

    Every windowed method takes ``start``, ``end`` (dates or aware
    datetimes, either may be None for an open bound) and an optional
    ``department``.
    """

    def _claims(
        self,
        start: date | datetime | None,
        end: date | datetime | None,
        department: str | None,
    ) -> list[Claim]:
        lower = as_utc(start) if start is not None else None
        upper = as_utc(end, end_of_day=True) if end is not None else None
        if lower is not None and upper is not None and lower > upper:
            raise InvalidDateRangeError(str(start), str(end))

        stmt = (
            select(Claim)
            .join(Claim.lecturer)
            .options(contains_eager(Claim.lecturer))
            .order_by(Claim.submitted_at, Claim.id)
        )
        if lower is not None:
            stmt = stmt.where(Claim.submitted_at >= lower)
        if upper is not None:
            stmt = stmt.where(Claim.submitted_at <= upper)
        if department is not None:
            stmt = stmt.where(Lecturer.department == department)
        return list(self.session.execute(stmt).unique().scalars().all())

    @staticmethod
    def _approved(claim: Claim) -> bool:
        return ClaimStatus(claim.status) in APPROVED_STATUSES

    def status_distribution(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        department: str | None = None,
    ) -> dict[ClaimStatus, int]:
        counts = {status: 0 for status in ClaimStatus}
        for claim in self._claims(start, end, department):
            counts[ClaimStatus(claim.status)] += 1
        return counts

    def summary(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        department: str | None = None,
    ) -> ReportSummary:
        claims = self._claims(start, end, department)
        approved = [c for c in claims if self._approved(c)]
        approved_amount = round_money(sum((c.amount for c in approved), Decimal(0)))
        statuses = [ClaimStatus(c.status) for c in claims]

        return ReportSummary(
            total_claims=len(claims),
            total_amount=round_money(sum((c.amount for c in claims), Decimal(0))),
            approved_claims=len(approved),
            approved_amount=approved_amount,
            average_approved_amount=_average(approved_amount, len(approved)),
            approval_rate=_percentage(len(approved), len(claims)),
            pending_claims=statuses.count(ClaimStatus.PENDING),
            under_review_claims=statuses.count(ClaimStatus.UNDER_REVIEW),
            rejected_claims=statuses.count(ClaimStatus.REJECTED),
            average_processing_days=self._processing_days(claims),
        )

    def period_breakdown(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        department: str | None = None,
        granularity: ReportGranularity = ReportGranularity.MONTH,
    ) -> list[PeriodBucket]:
        """Buckets in chronological order; empty periods are omitted."""
        granularity = ReportGranularity(granularity)
        buckets: dict[tuple[int, int], dict] = {}
        for claim in self._claims(start, end, department):
            year, n, label = _period_key(claim.submitted_at.astimezone(UTC), granularity)
            bucket = buckets.setdefault(
                (year, n),
                {"label": label, "submitted": 0, "approved": 0, "amount": Decimal(0)},
            )
            bucket["submitted"] += 1
            if self._approved(claim):
                bucket["approved"] += 1
                bucket["amount"] += claim.amount

        return [
            PeriodBucket(
                period=b["label"],
                submitted=b["submitted"],
                approved=b["approved"],
                approved_amount=round_money(b["amount"]),
            )
            for _, b in sorted(buckets.items())
        ]

    def department_breakdown(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        department: str | None = None,
    ) -> list[DepartmentStat]:
        """Ordered by claim count descending, then department name."""
        grouped: dict[str, list[Claim]] = defaultdict(list)
        for claim in self._claims(start, end, department):
            grouped[claim.lecturer.department].append(claim)

        stats = []
        for name, claims in grouped.items():
            approved = [c for c in claims if self._approved(c)]
            amount = round_money(sum((c.amount for c in approved), Decimal(0)))
            stats.append(
                DepartmentStat(
                    department=name,
                    total_claims=len(claims),
                    approved_claims=len(approved),
                    approved_amount=amount,
                    average_amount=_average(amount, len(approved)),
                )
            )
        stats.sort(key=lambda s: (-s.total_claims, s.department))
        return stats

    def average_processing_days(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        department: str | None = None,
    ) -> float | None:
        """Mean days from submission to decision, 1 decimal place."""
        return self._processing_days(self._claims(start, end, department))

    def _processing_days(self, claims: list[Claim]) -> float | None:
        if not claims:
            return None
        submitted = {c.id: c.submitted_at for c in claims}
        stmt = (
            select(AuditEntry.claim_id, AuditEntry.occurred_at)
            .where(
                AuditEntry.claim_id.in_(submitted),
                AuditEntry.kind == EventKind.STATUS_CHANGED.value,
                AuditEntry.to_status.in_([s.value for s in DECISION_STATUSES]),
            )
            .order_by(AuditEntry.claim_id, AuditEntry.seq)
        )
        decided: dict[int, datetime] = {}
        for claim_id, occurred_at in self.session.execute(stmt).all():
            decided.setdefault(claim_id, occurred_at)
        if not decided:
            return None

        total_seconds = sum(
            (Decimal(str((at - submitted[cid]).total_seconds())) for cid, at in decided.items()),
            Decimal(0),
        )
        days = total_seconds / _SECONDS_PER_DAY / len(decided)
        return float(days.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))

    def top_lecturers(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        department: str | None = None,
        limit: int = 10,
    ) -> list[LecturerStat]:
        """Lecturers ranked by approved amount, highest first."""
        grouped: dict[int, list[Claim]] = defaultdict(list)
        for claim in self._claims(start, end, department):
            grouped[claim.lecturer_id].append(claim)

        stats = []
        for lecturer_id, claims in grouped.items():
            lecturer = claims[0].lecturer
            approved = [c for c in claims if self._approved(c)]
            stats.append(
                LecturerStat(
                    lecturer_id=lecturer_id,
                    lecturer_name=lecturer.name,
                    department=lecturer.department,
                    total_claims=len(claims),
                    approved_claims=len(approved),
                    approved_amount=round_money(sum((c.amount for c in approved), Decimal(0))),
                )
            )
        stats.sort(key=lambda s: (-s.approved_amount, -s.total_claims, s.lecturer_name))
        return stats[:limit]

    def hr_dashboard(self) -> HrDashboard:
        """Payment figures across all claims (not windowed)."""
        unpaid = self.session.execute(
            select(Claim.amount).where(
                Claim.status == ClaimStatus.APPROVED.value,
                Claim.is_paid.is_(False),
            )
        ).scalars().all()
        paid = self.session.execute(
            select(Claim.amount).where(Claim.is_paid.is_(True))
        ).scalars().all()
        batches = self.session.execute(
            select(func.count(PaymentBatch.id))
        ).scalar_one()

        return HrDashboard(
            pending_payment_count=len(unpaid),
            pending_payment_amount=round_money(sum(unpaid, Decimal(0))),
            batches_generated=batches,
            paid_claim_count=len(paid),
            paid_amount=round_money(sum(paid, Decimal(0))),
        )

    def invoice_report(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        department: str | None = None,
    ) -> InvoiceReport:
        """
        Approved claims submitted in the window, paid or not, ordered by
        department and then lecturer name.

        Only final Approved claims are invoiced; Coordinator Approved
        claims still wait on a manager.
        """
        claims = [
            c for c in self._claims(start, end, department)
            if ClaimStatus(c.status) == ClaimStatus.APPROVED
        ]
        claims.sort(key=lambda c: (c.lecturer.department, c.lecturer.name, c.submitted_at, c.id))
        lines = tuple(
            InvoiceLine(
                claim_id=c.id,
                lecturer_name=c.lecturer.name,
                department=c.lecturer.department,
                hours_worked=c.hours_worked,
                amount=c.amount,
                submitted_at=c.submitted_at,
                is_paid=c.is_paid,
            )
            for c in claims
        )
        return InvoiceReport(
            start=start,
            end=end,
            department=department,
            lines=lines,
            total_amount=round_money(sum((c.amount for c in claims), Decimal(0))),
        )

    def export_claims_csv(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        department: str | None = None,
    ) -> str:
        """
        Claims in the window as CSV text, one row per claim plus a total row.

        The total row has "Total" in the HoursWorked column and the sum of
        amounts in the Amount column; every other cell is empty.
        """
        claims = self._claims(start, end, department)
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for claim in claims:
            writer.writerow([
                claim.id,
                claim.lecturer.name,
                claim.lecturer.department,
                claim.hours_worked,
                claim.amount,
                ClaimStatus(claim.status).value,
                claim.submitted_at.astimezone(UTC).date().isoformat(),
            ])
        total = round_money(sum((c.amount for c in claims), Decimal(0)))
        writer.writerow(["", "", "", "Total", total, "", ""])
        return buffer.getvalue()
