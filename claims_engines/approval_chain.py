"""
claims_engines.approval_chain -- Role-tiered approval steps.

Responsibility:
    Derive the approver roles a claim needs from the configured
    ``ApprovalTier`` chain, and work out which of those steps are still
    open given the roles of the reviewers who already approved.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The workflow executor
    looks up reviewer roles and feeds them in.

Invariants enforced:
    - Steps come out in tier declaration order.
    - One approver fills at most one step.  A senior role may fill a
      junior step (admin > hr > manager), never the other way round.
    - Each approver takes the most senior open step they qualify for, so
      junior steps stay open for junior reviewers.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from claims_config.schema import ApprovalTier
from claims_kernel.domain.claim import Claim
from claims_kernel.domain.ports import ReviewerRole

ROLE_RANK: dict[ReviewerRole, int] = {
    ReviewerRole.EMPLOYEE: 0,
    ReviewerRole.MANAGER: 1,
    ReviewerRole.HR: 2,
    ReviewerRole.ADMIN: 3,
}


def required_steps(claim: Claim, tiers: Iterable[ApprovalTier]) -> tuple[ReviewerRole, ...]:
    """Roles that must approve ``claim``, in chain order."""
    return tuple(t.role for t in tiers if t.applies_to(claim.amount, claim.category))


def _rank(role: ReviewerRole | None) -> int:
    return ROLE_RANK.get(role, 0) if role is not None else 0


def fill_step(
    open_steps: Sequence[ReviewerRole],
    role: ReviewerRole | None,
) -> int | None:
    """Index of the step ``role`` would fill, or None if it qualifies for none."""
    rank = _rank(role)
    best: int | None = None
    for i, step in enumerate(open_steps):
        step_rank = _rank(step)
        if step_rank <= rank and (best is None or step_rank > _rank(open_steps[best])):
            best = i
    return best


def open_steps(
    steps: Sequence[ReviewerRole],
    approver_roles: Iterable[ReviewerRole | None],
) -> tuple[ReviewerRole, ...]:
    """Steps still unfilled after ``approver_roles`` approved, in order."""
    remaining = list(steps)
    for role in approver_roles:
        index = fill_step(remaining, role)
        if index is not None:
            del remaining[index]
    return tuple(remaining)
