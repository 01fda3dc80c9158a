"""
Claim workflow definition (``claims_kernel.domain.workflow``).

Responsibility
--------------
The finite-state machine for a claim's lifecycle as data: the decisions a
reviewer can take, and the single table of legal transitions.  The
workflow executor consults this table before every write.

Invariants enforced
-------------------
* ``CLAIM_TRANSITIONS`` defines the only valid status transitions.
* Terminal states (approved, rejected) have no outgoing edges.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from claims_kernel.domain.claim import ClaimStatus


class Decision(str, Enum):
    """Decisions a reviewer can submit on a claim."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_INFO = "request_info"


class WorkflowAction(str, Enum):
    """Every action that moves a claim between statuses."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_INFO = "request_info"
    AUTO_APPROVE = "auto_approve"
    AUTO_REJECT = "auto_reject"
    RESUBMIT = "resubmit"


@dataclass(frozen=True)
class ClaimTransition:
    from_status: ClaimStatus
    to_status: ClaimStatus
    action: WorkflowAction


CLAIM_TRANSITIONS: tuple[ClaimTransition, ...] = (
    ClaimTransition(ClaimStatus.PENDING, ClaimStatus.APPROVED, WorkflowAction.APPROVE),
    ClaimTransition(ClaimStatus.PENDING, ClaimStatus.APPROVED, WorkflowAction.AUTO_APPROVE),
    ClaimTransition(ClaimStatus.PENDING, ClaimStatus.REJECTED, WorkflowAction.REJECT),
    ClaimTransition(ClaimStatus.PENDING, ClaimStatus.REJECTED, WorkflowAction.AUTO_REJECT),
    ClaimTransition(ClaimStatus.PENDING, ClaimStatus.INFO_REQUESTED, WorkflowAction.REQUEST_INFO),
    ClaimTransition(ClaimStatus.INFO_REQUESTED, ClaimStatus.PENDING, WorkflowAction.RESUBMIT),
)

DECISION_ACTIONS: dict[Decision, WorkflowAction] = {
    Decision.APPROVE: WorkflowAction.APPROVE,
    Decision.REJECT: WorkflowAction.REJECT,
    Decision.REQUEST_INFO: WorkflowAction.REQUEST_INFO,
}


def find_transition(
    from_status: ClaimStatus,
    action: WorkflowAction,
) -> ClaimTransition | None:
    """Return the transition for ``action`` out of ``from_status``, if legal."""
    for transition in CLAIM_TRANSITIONS:
        if transition.from_status == from_status and transition.action == action:
            return transition
    return None
