"""
AuditLogService -- append-only, hash-chained claim audit log.

Responsibility:
    Appends one ``AuditEntry`` per recorded action on a claim, linked into
    that claim's SHA-256 hash chain, in the same flush as the claim
    mutation it records.

Architecture position:
    Kernel > Services -- called by ClaimService and PaymentService.  Read
    access (timelines, search, chain verification) lives in
    ``selectors.audit_selector``.

Invariants enforced:
    - Append-only: entries are never modified or deleted (ORM listener).
    - Per-claim seq runs 1, 2, 3, ... and is taken from ``Claim.audit_seq``.
    - Chain: ``hash = H("Claim" | claim_id | kind | payload_hash |
      prev_hash or GENESIS)`` where prev_hash is ``Claim.audit_head_hash``.
    - Atomic with the mutation: bumping ``audit_seq`` and
      ``audit_head_hash`` updates the claim row, so the claim's version
      check covers the mutation and its audit entry together.  If another
      transaction got there first, nothing is written.

Failure modes:
    - ConcurrentModificationError when the claim row was changed by another
      transaction since it was loaded (StaleDataError on flush).

Audit relevance:
    This IS the audit writer.  Aggregations match on ``kind`` and
    ``to_status``; ``message`` is only for humans.
"""

from datetime import UTC
from typing import Any

from sqlalchemy.orm.exc import StaleDataError

from claims_kernel.domain.claim_lifecycle import ClaimStatus
from claims_kernel.exceptions import ConcurrentModificationError
from claims_kernel.logging_config import get_logger
from claims_kernel.models.audit_entry import AuditEntry, EventKind
from claims_kernel.models.claim import Claim
from claims_kernel.services.base import BaseService
from claims_kernel.utils.hashing import hash_audit_content, hash_audit_entry

logger = get_logger("services.audit_log")

AUDIT_ENTITY_TYPE = "Claim"


class AuditLogService(BaseService):
    """
    Writes audit entries for claims.

    Contract:
        ``record()`` always succeeds unless the store is unavailable or the
        claim lost a concurrent update.  It never fails because of the
        claim's status.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def record(
        self,
        claim: Claim,
        actor_id: str | None,
        kind: EventKind,
        message: str,
        from_status: ClaimStatus | None = None,
        to_status: ClaimStatus | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """
        Append an entry to ``claim``'s audit chain and flush.

        Preconditions:
            - ``claim`` is persistent (has an id).
            - ``payload`` holds JSON primitives only.

        Postconditions:
            - ``entry.seq == claim.audit_seq`` and
              ``entry.hash == claim.audit_head_hash``.
            - Pending changes on ``claim`` are flushed together with the entry.

        Raises:
            ConcurrentModificationError: The claim's version moved on.
        """
        occurred_at = self.clock.now().astimezone(UTC)
        seq = claim.audit_seq + 1
        from_value = ClaimStatus(from_status).value if from_status else None
        to_value = ClaimStatus(to_status).value if to_status else None
        payload_data = dict(payload or {})

        content_hash = hash_audit_content(
            seq=seq,
            actor_id=actor_id,
            kind=kind.value,
            message=message,
            from_status=from_value,
            to_status=to_value,
            payload=payload_data,
            occurred_at=occurred_at,
        )
        prev_hash = claim.audit_head_hash
        entry_hash = hash_audit_entry(
            entity_type=AUDIT_ENTITY_TYPE,
            entity_id=claim.id,
            kind=kind.value,
            payload_hash=content_hash,
            prev_hash=prev_hash,
        )

        entry = AuditEntry(
            claim=claim,
            claim_id=claim.id,
            seq=seq,
            actor_id=actor_id,
            kind=kind,
            from_status=from_value,
            to_status=to_value,
            message=message,
            payload=payload_data,
            occurred_at=occurred_at,
            payload_hash=content_hash,
            prev_hash=prev_hash,
            hash=entry_hash,
        )

        claim.audit_seq = seq
        claim.audit_head_hash = entry_hash
        claim.updated_at = occurred_at

        claim_id = claim.id
        self.session.add(entry)
        try:
            self.session.flush()
        except StaleDataError as exc:
            # the failed flush expired ``claim``; touching it would reload
            logger.warning(
                "concurrent_modification_detected",
                extra={"claim_id": claim_id, "kind": kind.value},
            )
            raise ConcurrentModificationError("Claim", claim_id) from exc

        logger.info(
            "audit_entry_recorded",
            extra={
                "claim_id": claim.id,
                "seq": seq,
                "kind": kind.value,
                "actor_id": actor_id,
            },
        )
        return entry
