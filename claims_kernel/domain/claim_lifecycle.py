"""
Claim lifecycle (``claims_kernel.domain.claim_lifecycle``).

Responsibility
--------------
Defines the closed set of claim statuses, the review actions, and the
transition table that decides, for every (role, action, current status),
either the next status or an error.

Architecture position
---------------------
**Kernel domain layer** -- pure.  Imports only ``domain.workflow``,
``domain.actor`` and ``exceptions``.

Invariants enforced
-------------------
* Status is always a member of ``ClaimStatus``; ``resolve_transition``
  never returns anything else.
* ``Approved`` and ``Rejected`` are terminal: no transition leaves them.
  A rejected claim can only be resubmitted, which creates a new claim.
* A role with no entry for an action is refused with
  ``RoleNotPermittedError``; a permitted action attempted from the wrong
  status is refused with ``InvalidTransitionError``.

Transition table
----------------
=================  ===========  ===================================  =====================
Action             Role         From                                 To
=================  ===========  ===================================  =====================
mark_under_review  Coordinator  Pending, Under Review                Under Review
forward            Coordinator  Pending, Under Review                Coordinator Approved
request_revision   Coordinator  Pending, Under Review                Revision Requested
reject             Coordinator  Pending, Under Review                Rejected
approve            Manager      Coordinator Approved, Under Review   Approved
reject             Manager      Coordinator Approved, Under Review   Rejected
=================  ===========  ===================================  =====================
"""

from __future__ import annotations

from enum import Enum

from claims_kernel.domain.actor import Role
from claims_kernel.domain.workflow import Transition, Workflow
from claims_kernel.exceptions import (
    InvalidTransitionError,
    MissingReasonError,
    RoleNotPermittedError,
)


class ClaimStatus(str, Enum):
    """Claim lifecycle states."""

    PENDING = "Pending"
    UNDER_REVIEW = "Under Review"
    REVISION_REQUESTED = "Revision Requested"
    COORDINATOR_APPROVED = "Coordinator Approved"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ClaimAction(str, Enum):
    """Review actions that move a claim between statuses."""

    MARK_UNDER_REVIEW = "mark_under_review"
    FORWARD = "forward"
    REQUEST_REVISION = "request_revision"
    APPROVE = "approve"
    REJECT = "reject"


class VerificationStatus(str, Enum):
    """Coordinator verdict on a supporting document."""

    UNVERIFIED = "Unverified"
    VERIFIED = "Verified"
    REJECTED = "Rejected"


TERMINAL_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.APPROVED,
    ClaimStatus.REJECTED,
})

# Lecturers may add or remove documents only while a claim is in one of these
EDITABLE_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.PENDING,
    ClaimStatus.UNDER_REVIEW,
    ClaimStatus.REVISION_REQUESTED,
})

# Counted as "approved" by report aggregation
APPROVED_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.APPROVED,
    ClaimStatus.COORDINATOR_APPROVED,
})

# Statuses whose first entry marks the end of processing
DECISION_STATUSES: frozenset[ClaimStatus] = TERMINAL_STATUSES

_COORDINATOR_SOURCES = (ClaimStatus.PENDING.value, ClaimStatus.UNDER_REVIEW.value)
_MANAGER_SOURCES = (
    ClaimStatus.COORDINATOR_APPROVED.value,
    ClaimStatus.UNDER_REVIEW.value,
)

CLAIM_WORKFLOW = Workflow(
    name="lecturer_claim",
    description="Lecturer hour claim: coordinator review, manager approval",
    initial_state=ClaimStatus.PENDING.value,
    states=tuple(s.value for s in ClaimStatus),
    transitions=(
        Transition(
            action=ClaimAction.MARK_UNDER_REVIEW.value,
            role=Role.COORDINATOR.value,
            from_states=_COORDINATOR_SOURCES,
            to_state=ClaimStatus.UNDER_REVIEW.value,
        ),
        Transition(
            action=ClaimAction.FORWARD.value,
            role=Role.COORDINATOR.value,
            from_states=_COORDINATOR_SOURCES,
            to_state=ClaimStatus.COORDINATOR_APPROVED.value,
        ),
        Transition(
            action=ClaimAction.REQUEST_REVISION.value,
            role=Role.COORDINATOR.value,
            from_states=_COORDINATOR_SOURCES,
            to_state=ClaimStatus.REVISION_REQUESTED.value,
            requires_reason=True,
        ),
        Transition(
            action=ClaimAction.REJECT.value,
            role=Role.COORDINATOR.value,
            from_states=_COORDINATOR_SOURCES,
            to_state=ClaimStatus.REJECTED.value,
            requires_reason=True,
        ),
        Transition(
            action=ClaimAction.APPROVE.value,
            role=Role.MANAGER.value,
            from_states=_MANAGER_SOURCES,
            to_state=ClaimStatus.APPROVED.value,
        ),
        Transition(
            action=ClaimAction.REJECT.value,
            role=Role.MANAGER.value,
            from_states=_MANAGER_SOURCES,
            to_state=ClaimStatus.REJECTED.value,
            requires_reason=True,
        ),
    ),
    terminal_states=tuple(s.value for s in TERMINAL_STATUSES),
)


def resolve_transition(
    claim_id: int,
    current: ClaimStatus | str,
    action: ClaimAction,
    role: Role,
    reason: str | None = None,
    require_reason: bool = True,
) -> ClaimStatus:
    """Return the status ``action`` by ``role`` moves the claim to.

    Total over its inputs: every combination either yields a member of
    ``ClaimStatus`` or raises.

    Raises:
        RoleNotPermittedError: ``role`` has no transition for ``action``.
        InvalidTransitionError: ``current`` is not an allowed source.
        MissingReasonError: the transition needs a reason and none was given.
    """
    current = ClaimStatus(current)
    transition = CLAIM_WORKFLOW.find(action.value, role.value)
    if transition is None:
        raise RoleNotPermittedError(role=role.value, action=action.value)

    if current.value not in transition.from_states:
        raise InvalidTransitionError(
            claim_id=claim_id,
            action=action.value,
            current_status=current.value,
            allowed_from=transition.from_states,
        )

    if transition.requires_reason and require_reason and not (reason and reason.strip()):
        raise MissingReasonError(claim_id=claim_id, action=action.value)

    return ClaimStatus(transition.to_state)


def allowed_actions(current: ClaimStatus | str, role: Role) -> tuple[ClaimAction, ...]:
    """Actions ``role`` may take on a claim in ``current`` status."""
    current = ClaimStatus(current)
    return tuple(
        ClaimAction(t.action)
        for t in CLAIM_WORKFLOW.transitions
        if t.role == role.value and current.value in t.from_states
    )


def is_editable(status: ClaimStatus | str) -> bool:
    return ClaimStatus(status) in EDITABLE_STATUSES


def is_terminal(status: ClaimStatus | str) -> bool:
    return ClaimStatus(status) in TERMINAL_STATUSES
