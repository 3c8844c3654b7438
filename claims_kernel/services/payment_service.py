"""
PaymentService -- HR payment batches.

Responsibility:
    Groups Approved, unpaid claims into an immutable PaymentBatch and
    stamps each claim paid, in one unit of work.

Architecture position:
    Kernel > Services -- imperative shell.  Audit entries go through
    AuditLogService.

Invariants enforced:
    - The whole selection is validated before anything is written: no
      empty selection, no unknown id, no duplicate id, every claim Approved
      and unpaid.
    - total_amount == sum of member amounts; total_claims == member count.
    - Each member claim gets exactly one PAYMENT_BATCHED audit entry.
    - A member claim changed concurrently fails the whole batch
      (ConcurrentModificationError); the caller's rollback leaves no batch.
"""

from __future__ import annotations

import uuid
from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select

from claims_kernel.db.types import round_money
from claims_kernel.domain.actor import Actor, Role
from claims_kernel.domain.claim_lifecycle import ClaimStatus
from claims_kernel.domain.dtos import PaymentBatchInfo
from claims_kernel.exceptions import PaymentBatchNotFoundError, PaymentBatchValidationError
from claims_kernel.logging_config import LogContext, get_logger
from claims_kernel.models.audit_entry import EventKind
from claims_kernel.models.claim import Claim
from claims_kernel.models.payment_batch import PaymentBatch
from claims_kernel.services.audit_log import AuditLogService
from claims_kernel.services.base import BaseService

logger = get_logger("services.payment")


def make_batch_number(generated_at: datetime) -> str:
    """``BATCH-<yyyymmdd>-<8 upper-case hex>``."""
    return f"BATCH-{generated_at:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class PaymentService(BaseService):
    """Creates and reads payment batches."""

    def _audit(self) -> AuditLogService:
        return AuditLogService(self.session, self.clock)

    def generate_payment_batch(
        self,
        claim_ids: Iterable[int],
        actor: Actor,
    ) -> PaymentBatchInfo:
        """
        Pay a selection of Approved claims as one batch (HR only).

        Raises:
            RoleNotPermittedError: Actor is not HR.
            PaymentBatchValidationError: Empty, duplicate, unknown or
                ineligible selection.
            ConcurrentModificationError: A member claim changed meanwhile.
        """
        actor.require("generate_payment_batch", Role.HR)
        ids = list(claim_ids)
        if not ids:
            raise PaymentBatchValidationError("no claims selected")

        duplicates = sorted(i for i, n in Counter(ids).items() if n > 1)
        if duplicates:
            raise PaymentBatchValidationError("duplicate claim ids", tuple(duplicates))

        claims = self.session.execute(
            select(Claim).where(Claim.id.in_(ids)).order_by(Claim.id)
        ).scalars().all()
        found = {c.id for c in claims}
        missing = sorted(i for i in ids if i not in found)
        if missing:
            raise PaymentBatchValidationError("claims not found", tuple(missing))

        ineligible = [
            c.id for c in claims
            if ClaimStatus(c.status) != ClaimStatus.APPROVED or c.is_paid
        ]
        if ineligible:
            raise PaymentBatchValidationError(
                "only Approved, unpaid claims can be paid", tuple(ineligible)
            )

        now = self.clock.now()
        batch = PaymentBatch(
            batch_number=make_batch_number(now),
            generated_at=now,
            total_amount=round_money(sum((c.amount for c in claims), Decimal(0))),
            total_claims=len(claims),
            generated_by=actor.user_id,
        )
        self.session.add(batch)
        self.session.flush()

        audit = self._audit()
        with LogContext.bind(batch_id=batch.id, actor_id=actor.user_id):
            for claim in claims:
                claim.is_paid = True
                claim.payment_date = now
                claim.payment_batch_id = batch.id
                audit.record(
                    claim,
                    actor.user_id,
                    EventKind.PAYMENT_BATCHED,
                    f"Included in payment batch {batch.batch_number}",
                    payload={
                        "batch_id": batch.id,
                        "batch_number": batch.batch_number,
                        "amount": str(claim.amount),
                    },
                )

            logger.info(
                "payment_batch_generated",
                extra={
                    "batch_number": batch.batch_number,
                    "total_claims": batch.total_claims,
                    "total_amount": batch.total_amount,
                },
            )

        return PaymentBatchInfo(
            id=batch.id,
            batch_number=batch.batch_number,
            generated_at=batch.generated_at,
            total_amount=batch.total_amount,
            total_claims=batch.total_claims,
            generated_by=batch.generated_by,
            claim_ids=tuple(c.id for c in claims),
        )

    def get_batch(self, batch_id: int) -> PaymentBatchInfo:
        """
        Raises:
            PaymentBatchNotFoundError: No batch with this id.
        """
        batch = self.session.get(PaymentBatch, batch_id)
        if batch is None:
            raise PaymentBatchNotFoundError(batch_id)
        return PaymentBatchInfo.from_model(batch)
