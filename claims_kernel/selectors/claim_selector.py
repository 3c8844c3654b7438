"""
ClaimSelector -- read queries over claims and their documents.

Backs the per-role dashboards: a lecturer's own claims, the review queues
of coordinators and managers, and HR's pending payments.  All results are
ClaimInfo / DocumentInfo DTOs ordered oldest first.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from claims_kernel.domain.actor import Role
from claims_kernel.domain.claim_lifecycle import ClaimStatus
from claims_kernel.domain.dtos import ClaimInfo, DocumentInfo
from claims_kernel.exceptions import ClaimNotFoundError
from claims_kernel.models.claim import Claim, SupportingDocument
from claims_kernel.selectors.base import BaseSelector

# Statuses each reviewing role works from
REVIEW_QUEUES: dict[Role, tuple[ClaimStatus, ...]] = {
    Role.COORDINATOR: (ClaimStatus.PENDING, ClaimStatus.UNDER_REVIEW),
    Role.MANAGER: (ClaimStatus.COORDINATOR_APPROVED, ClaimStatus.UNDER_REVIEW),
    Role.HR: (ClaimStatus.APPROVED,),
}


class ClaimSelector(BaseSelector):
    """Read-only access to claims."""

    def _list(self, *criteria) -> list[ClaimInfo]:
        stmt = (
            select(Claim)
            .where(*criteria)
            .options(selectinload(Claim.documents))
            .order_by(Claim.submitted_at, Claim.id)
        )
        claims = self.session.execute(stmt).scalars().all()
        return [ClaimInfo.from_model(c) for c in claims]

    def get(self, claim_id: int) -> ClaimInfo:
        """
        Raises:
            ClaimNotFoundError: No claim with this id.
        """
        claim = self.session.get(Claim, claim_id)
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        return ClaimInfo.from_model(claim)

    def documents_for(self, claim_id: int) -> list[DocumentInfo]:
        if self.session.get(Claim, claim_id) is None:
            raise ClaimNotFoundError(claim_id)
        stmt = (
            select(SupportingDocument)
            .where(SupportingDocument.claim_id == claim_id)
            .order_by(SupportingDocument.id)
        )
        return [
            DocumentInfo.from_model(d)
            for d in self.session.execute(stmt).scalars().all()
        ]

    def for_lecturer(self, lecturer_id: int) -> list[ClaimInfo]:
        return self._list(Claim.lecturer_id == lecturer_id)

    def by_status(self, status: ClaimStatus | Sequence[ClaimStatus]) -> list[ClaimInfo]:
        if isinstance(status, (str, ClaimStatus)):
            statuses = [ClaimStatus(status).value]
        else:
            statuses = [ClaimStatus(s).value for s in status]
        return self._list(Claim.status.in_(statuses))

    def awaiting(self, role: Role) -> list[ClaimInfo]:
        """
        Claims waiting on ``role``.

        HR sees Approved claims that have not been paid yet.  Lecturers
        have no queue and get an empty list.
        """
        statuses = REVIEW_QUEUES.get(Role(role))
        if not statuses:
            return []
        criteria = [Claim.status.in_([s.value for s in statuses])]
        if Role(role) == Role.HR:
            criteria.append(Claim.is_paid.is_(False))
        return self._list(*criteria)

    def status_counts(self) -> dict[ClaimStatus, int]:
        """Number of claims per status; every status is present."""
        counts = {status: 0 for status in ClaimStatus}
        stmt = select(Claim.status, func.count(Claim.id)).group_by(Claim.status)
        for status, count in self.session.execute(stmt).all():
            counts[ClaimStatus(status)] = count
        return counts
