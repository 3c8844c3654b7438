"""
BulkReviewService -- approve or reject many claims, one transaction each.

Responsibility:
    Runs the shared ``ClaimService.apply_transition`` over a list of claim
    ids.  Each id gets its own session and transaction from the session
    factory, so one failing id never rolls back the others.

Architecture position:
    Kernel > Services.  Unlike the other services this one owns
    transactions: it is the outer boundary for each per-claim unit of work.

Invariants enforced:
    - Exactly one outcome per requested id, in request order.
    - A failed id leaves no trace: its transaction is rolled back, so there
      is no status change and no audit entry.
    - Only ClaimsKernelError is turned into an outcome.  Anything else
      (database down, programming errors) propagates.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.orm import Session, sessionmaker

from claims_kernel.domain.actor import Actor, Role
from claims_kernel.domain.claim_lifecycle import ClaimAction
from claims_kernel.domain.clock import Clock, SystemClock
from claims_kernel.domain.dtos import BulkTransitionResult, TransitionOutcome
from claims_kernel.domain.policy import DocumentPolicy, WorkflowPolicy
from claims_kernel.exceptions import ClaimsKernelError
from claims_kernel.logging_config import LogContext, get_logger
from claims_kernel.services.claim_service import ClaimService
from claims_kernel.services.document_store import DocumentStore

logger = get_logger("services.bulk_review")

# "Approve" from a coordinator's queue means forwarding to the manager
_APPROVE_ACTION_BY_ROLE: dict[Role, ClaimAction] = {
    Role.COORDINATOR: ClaimAction.FORWARD,
}


class BulkReviewService:
    """
    Per-claim-atomic bulk transitions.

    Contract:
        ``bulk_approve`` / ``bulk_reject`` never raise for a per-claim rule
        violation; they report it in the returned BulkTransitionResult.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        document_store: DocumentStore | None = None,
        document_policy: DocumentPolicy | None = None,
        workflow_policy: WorkflowPolicy | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._document_store = document_store
        self._document_policy = document_policy
        self._workflow_policy = workflow_policy

    def bulk_approve(self, claim_ids: Iterable[int], actor: Actor) -> BulkTransitionResult:
        """Approve each claim (coordinators forward, managers approve)."""
        action = _APPROVE_ACTION_BY_ROLE.get(actor.role, ClaimAction.APPROVE)
        return self.bulk_apply(claim_ids, actor, action)

    def bulk_reject(
        self,
        claim_ids: Iterable[int],
        actor: Actor,
        reason: str,
    ) -> BulkTransitionResult:
        return self.bulk_apply(claim_ids, actor, ClaimAction.REJECT, reason=reason)

    def bulk_apply(
        self,
        claim_ids: Iterable[int],
        actor: Actor,
        action: ClaimAction,
        reason: str | None = None,
        notes: str | None = None,
    ) -> BulkTransitionResult:
        """
        Apply ``action`` to every id, each in its own transaction.

        Returns:
            BulkTransitionResult with one TransitionOutcome per id.
        """
        action = ClaimAction(action)
        outcomes: list[TransitionOutcome] = []

        with LogContext.bind(actor_id=actor.user_id):
            for claim_id in claim_ids:
                outcomes.append(self._apply_one(claim_id, actor, action, reason, notes))

            result = BulkTransitionResult(action=action.value, outcomes=tuple(outcomes))
            logger.info(
                "bulk_review_completed",
                extra={
                    "action": action.value,
                    "requested": len(outcomes),
                    "succeeded": len(result.succeeded_ids),
                    "failed": len(result.failed_ids),
                },
            )
        return result

    def _apply_one(
        self,
        claim_id: int,
        actor: Actor,
        action: ClaimAction,
        reason: str | None,
        notes: str | None,
    ) -> TransitionOutcome:
        try:
            with self._session_factory() as session, session.begin():
                service = ClaimService(
                    session,
                    self._clock,
                    document_store=self._document_store,
                    document_policy=self._document_policy,
                    workflow_policy=self._workflow_policy,
                )
                info = service.apply_transition(
                    claim_id, actor, action, reason=reason, notes=notes
                )
        except ClaimsKernelError as exc:
            logger.info(
                "bulk_review_item_failed",
                extra={"claim_id": claim_id, "error_code": exc.code},
            )
            return TransitionOutcome(
                claim_id=claim_id,
                succeeded=False,
                error_code=exc.code,
                message=str(exc),
            )
        return TransitionOutcome(claim_id=claim_id, succeeded=True, status=info.status)
