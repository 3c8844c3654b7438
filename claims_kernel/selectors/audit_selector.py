"""
Module: claims_kernel.selectors.audit_selector
Responsibility: Read side of the claim audit log -- ordered entries, the
    human-readable timeline, the cross-claim audit trail, and hash chain
    verification.
Architecture position: Kernel > Selectors.  Reads AuditEntry, Claim and
    UserAccount rows; returns AuditEntryInfo / TimelineItem DTOs.

Invariants enforced:
    - entries_for() returns entries in seq order, which is also insertion
      and timestamp order.
    - timeline_for() always starts with a "Claim Submitted" item built
      from the claim row itself; the SUBMITTED audit row is not repeated.
    - verify_chain() recomputes every content hash and chain link from the
      stored columns, so any edit made behind the ORM is detected.

Failure modes:
    - ClaimNotFoundError for an unknown claim id.
    - InvalidDateRangeError when a search window has start > end.
    - AuditChainBrokenError naming the first entry that does not verify.

Audit relevance:
    verify_chain() is the tamper check an auditor runs before trusting a
    claim's history.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select

from claims_kernel.domain.dtos import AuditEntryInfo, TimelineItem
from claims_kernel.exceptions import (
    AuditChainBrokenError,
    ClaimNotFoundError,
    InvalidDateRangeError,
)
from claims_kernel.logging_config import get_logger
from claims_kernel.models.audit_entry import AuditEntry, EventKind
from claims_kernel.models.claim import Claim
from claims_kernel.models.people import UserAccount
from claims_kernel.selectors.base import BaseSelector, as_utc
from claims_kernel.utils.hashing import hash_audit_content, hash_audit_entry

logger = get_logger("selectors.audit")

AUDIT_ENTITY_TYPE = "Claim"
SYSTEM_ACTOR_NAME = "System"
SUBMITTED_TEXT = "Claim Submitted"


class AuditSelector(BaseSelector):
    """Read-only access to claim audit entries."""

    def _claim(self, claim_id: int) -> Claim:
        claim = self.session.get(Claim, claim_id)
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        return claim

    def _rows(self, claim_id: int) -> list[AuditEntry]:
        stmt = (
            select(AuditEntry)
            .where(AuditEntry.claim_id == claim_id)
            .order_by(AuditEntry.seq)
        )
        return list(self.session.execute(stmt).scalars().all())

    def _actor_names(self, actor_ids: set[str]) -> dict[str, str]:
        if not actor_ids:
            return {}
        stmt = select(UserAccount.user_id, UserAccount.full_name).where(
            UserAccount.user_id.in_(actor_ids)
        )
        return dict(self.session.execute(stmt).all())

    def entries_for(self, claim_id: int) -> list[AuditEntryInfo]:
        self._claim(claim_id)
        return [AuditEntryInfo.from_model(e) for e in self._rows(claim_id)]

    def timeline_for(self, claim_id: int) -> list[TimelineItem]:
        """
        Human-readable history of a claim.

        Actor names resolve through the account directory; an entry with
        no actor shows as "System" and an unknown actor id is shown as is.
        """
        claim = self._claim(claim_id)
        rows = [
            e for e in self._rows(claim_id)
            if EventKind(e.kind) != EventKind.SUBMITTED
        ]
        names = self._actor_names({e.actor_id for e in rows if e.actor_id})

        timeline = [
            TimelineItem(
                timestamp=claim.submitted_at,
                actor_name=claim.lecturer.name,
                action_text=SUBMITTED_TEXT,
                kind=EventKind.SUBMITTED,
            )
        ]
        for entry in rows:
            if entry.actor_id is None:
                actor_name = SYSTEM_ACTOR_NAME
            else:
                actor_name = names.get(entry.actor_id, entry.actor_id)
            timeline.append(
                TimelineItem(
                    timestamp=entry.occurred_at,
                    actor_name=actor_name,
                    action_text=entry.message,
                    kind=EventKind(entry.kind),
                )
            )
        return timeline

    def search(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        kind: EventKind | None = None,
        limit: int | None = None,
    ) -> list[AuditEntryInfo]:
        """
        Audit entries across all claims, newest first.  Naive bounds are
        read as UTC.

        Raises:
            InvalidDateRangeError: ``start`` is after ``end``.
        """
        lower = as_utc(start) if start is not None else None
        upper = as_utc(end) if end is not None else None
        if lower is not None and upper is not None and lower > upper:
            raise InvalidDateRangeError(start.isoformat(), end.isoformat())

        stmt = select(AuditEntry)
        if lower is not None:
            stmt = stmt.where(AuditEntry.occurred_at >= lower)
        if upper is not None:
            stmt = stmt.where(AuditEntry.occurred_at <= upper)
        if kind is not None:
            stmt = stmt.where(AuditEntry.kind == EventKind(kind).value)
        stmt = stmt.order_by(AuditEntry.occurred_at.desc(), AuditEntry.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return [
            AuditEntryInfo.from_model(e)
            for e in self.session.execute(stmt).scalars().all()
        ]

    def verify_chain(self, claim_id: int) -> bool:
        """
        Recompute and check the claim's audit hash chain.

        Returns:
            True when every entry verifies and the claim's head pointer
            matches the last entry.

        Raises:
            ClaimNotFoundError: No claim with this id.
            AuditChainBrokenError: First entry that fails verification.
        """
        claim = self._claim(claim_id)
        prev_hash: str | None = None
        last_seq = 0

        for expected_seq, entry in enumerate(self._rows(claim_id), start=1):
            if entry.seq != expected_seq:
                self._broken(claim_id, entry.seq, f"seq {expected_seq}", f"seq {entry.seq}")
            if entry.prev_hash != prev_hash:
                self._broken(claim_id, entry.seq, str(prev_hash), str(entry.prev_hash))

            kind = EventKind(entry.kind).value
            content_hash = hash_audit_content(
                seq=entry.seq,
                actor_id=entry.actor_id,
                kind=kind,
                message=entry.message,
                from_status=entry.from_status,
                to_status=entry.to_status,
                payload=entry.payload or {},
                occurred_at=entry.occurred_at.astimezone(UTC),
            )
            if content_hash != entry.payload_hash:
                self._broken(claim_id, entry.seq, content_hash, entry.payload_hash)

            entry_hash = hash_audit_entry(
                entity_type=AUDIT_ENTITY_TYPE,
                entity_id=claim_id,
                kind=kind,
                payload_hash=content_hash,
                prev_hash=prev_hash,
            )
            if entry_hash != entry.hash:
                self._broken(claim_id, entry.seq, entry_hash, entry.hash)

            prev_hash = entry.hash
            last_seq = entry.seq

        if claim.audit_head_hash != prev_hash or claim.audit_seq != last_seq:
            self._broken(claim_id, last_seq, str(prev_hash), str(claim.audit_head_hash))
        return True

    def _broken(self, claim_id: int, seq: int, expected: str, actual: str) -> None:
        logger.error(
            "audit_chain_broken",
            extra={"claim_id": claim_id, "seq": seq},
        )
        raise AuditChainBrokenError(claim_id, seq, expected, actual)
