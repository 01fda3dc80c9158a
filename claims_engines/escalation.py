"""
claims_engines.escalation -- Pure escalation rule evaluation.

Responsibility:
    Decide which escalation rules fire for a claim at a given instant and
    plan the resulting escalation: target approver, new level, whether the
    previous approver must be told.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``now`` is always
    passed in; the escalation service owns the clock and the writes.

Invariants enforced:
    - A rule fires at most once per status stint: rule ids already in
      ``claim.fired_escalation_rules`` are skipped.
    - One plan raises the level by exactly one, however many rules fire.
    - The target approver comes from the first firing rule in list order.
    - Terminal claims never escalate.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from claims_kernel.domain.claim import Claim
from claims_kernel.domain.rules import (
    AmountTrigger,
    CategoryTrigger,
    EscalationRule,
    FrequencyTrigger,
    TimeoutTrigger,
)


@dataclass(frozen=True)
class EscalationPlan:
    """What one sweep should do to one claim."""

    rules: tuple[EscalationRule, ...]
    new_approver_id: str
    new_level: int
    notify_original_approver: bool

    @property
    def rule_ids(self) -> tuple[str, ...]:
        return tuple(r.rule_id for r in self.rules)


def _claims_in_window(
    claim: Claim,
    history: Sequence[Claim],
    now: datetime,
    window_days: int,
) -> int:
    start = now - timedelta(days=window_days)
    others = sum(
        1 for h in history
        if h.claim_id != claim.claim_id and start <= h.submitted_at <= now
    )
    return others + 1


def rule_fires(
    rule: EscalationRule,
    claim: Claim,
    now: datetime,
    history: Sequence[Claim] | None = None,
) -> bool:
    """Evaluate one rule's trigger against the claim at ``now``.

    Frequency triggers need ``history``; without it they do not fire.
    """
    trigger = rule.trigger
    if isinstance(trigger, TimeoutTrigger):
        return now - claim.state_entered_at > trigger.threshold
    if isinstance(trigger, AmountTrigger):
        return claim.amount > trigger.threshold
    if isinstance(trigger, CategoryTrigger):
        wanted = claim.category.strip().casefold()
        return any(c.strip().casefold() == wanted for c in trigger.categories)
    if isinstance(trigger, FrequencyTrigger):
        if history is None:
            return False
        return _claims_in_window(claim, history, now, trigger.window_days) > trigger.threshold
    return False


def needs_history(rules: Sequence[EscalationRule]) -> bool:
    return any(r.active and isinstance(r.trigger, FrequencyTrigger) for r in rules)


def plan_escalation(
    claim: Claim,
    rules: Sequence[EscalationRule],
    now: datetime,
    history: Sequence[Claim] | None = None,
) -> EscalationPlan | None:
    """Return the escalation to apply, or None when nothing new fires."""
    if claim.is_terminal:
        return None

    firing = tuple(
        rule for rule in rules
        if rule.active
        and rule.rule_id not in claim.fired_escalation_rules
        and rule_fires(rule, claim, now, history)
    )
    if not firing:
        return None

    return EscalationPlan(
        rules=firing,
        new_approver_id=firing[0].escalate_to,
        new_level=claim.escalation_level + 1,
        notify_original_approver=any(r.notify_original_approver for r in firing),
    )
