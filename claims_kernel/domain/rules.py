"""
Approval and escalation rule types (``claims_kernel.domain.rules``).

Responsibility
--------------
Closed, validated representations of the configurable rules: auto-approval
rules (conditions + actions) and escalation rules (one trigger variant
each).  Invalid rule shapes are rejected when the rule is constructed,
never silently at evaluation time.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``ApprovalConditions.max_amount`` is non-negative when set.
* ``ApprovalActions`` sets at least one action; ``auto_approve`` and
  ``require_additional_approval`` are mutually exclusive.
* Escalation triggers form a closed set: ``TimeoutTrigger``,
  ``AmountTrigger``, ``CategoryTrigger``, ``FrequencyTrigger``.  Each trigger
  is validated by the owning ``EscalationRule``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Union
from uuid import UUID

from claims_kernel.exceptions import InvalidRuleError


# =========================================================================
# Auto-approval rules
# =========================================================================


@dataclass(frozen=True)
class ApprovalConditions:
    """When an approval rule applies.

    Empty ``categories``/``employees`` mean "any".  ``max_amount=None``
    means no amount cap.
    """

    max_amount: Decimal | None = None
    categories: tuple[str, ...] = ()
    employees: tuple[str, ...] = ()


@dataclass(frozen=True)
class ApprovalActions:
    """What happens when an approval rule matches."""

    auto_approve: bool = False
    require_additional_approval: bool = False
    flag_for_review: bool = False


@dataclass(frozen=True)
class ApprovalRule:
    """A configured auto-approval rule.

    Rules are evaluated as an explicit ordered list (most specific first);
    the first matching active rule wins.
    """

    rule_id: str
    name: str
    conditions: ApprovalConditions
    actions: ApprovalActions
    active: bool = True

    def __post_init__(self) -> None:
        if not self.rule_id or not str(self.rule_id).strip():
            raise InvalidRuleError(repr(self.rule_id), "rule_id cannot be empty")
        cond = self.conditions
        if cond.max_amount is not None and cond.max_amount < 0:
            raise InvalidRuleError(self.rule_id, "max_amount cannot be negative")
        acts = self.actions
        if not (acts.auto_approve or acts.require_additional_approval or acts.flag_for_review):
            raise InvalidRuleError(self.rule_id, "rule must set at least one action")
        if acts.auto_approve and acts.require_additional_approval:
            raise InvalidRuleError(
                self.rule_id,
                "auto_approve and require_additional_approval are mutually exclusive",
            )

    @property
    def is_employee_scoped(self) -> bool:
        return bool(self.conditions.employees)

    @property
    def is_category_scoped(self) -> bool:
        return bool(self.conditions.categories)


class AutoApprovalOutcome(str, Enum):
    """Result of evaluating the auto-approval rules against a claim."""

    AUTO_APPROVE = "auto_approve"
    MANUAL_REVIEW = "manual_review"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class AutoApprovalDecision:
    """Which rule matched (if any) and what the workflow should do."""

    outcome: AutoApprovalOutcome
    rule: ApprovalRule | None = None
    reason: str = ""

    @property
    def require_additional_approval(self) -> bool:
        return self.rule is not None and self.rule.actions.require_additional_approval

    @property
    def flag_for_review(self) -> bool:
        return self.rule is not None and self.rule.actions.flag_for_review


# =========================================================================
# Escalation rules
# =========================================================================


class TriggerKind(str, Enum):
    TIMEOUT = "timeout"
    AMOUNT = "amount"
    CATEGORY = "category"
    FREQUENCY = "frequency"


@dataclass(frozen=True)
class TimeoutTrigger:
    """Fires when a claim has sat in its current status longer than threshold."""

    threshold: timedelta
    kind: TriggerKind = TriggerKind.TIMEOUT


@dataclass(frozen=True)
class AmountTrigger:
    """Fires when the claim amount exceeds threshold."""

    threshold: Decimal
    kind: TriggerKind = TriggerKind.AMOUNT


@dataclass(frozen=True)
class CategoryTrigger:
    """Fires when the claim category is one of ``categories`` (case-insensitive)."""

    categories: tuple[str, ...]
    kind: TriggerKind = TriggerKind.CATEGORY


@dataclass(frozen=True)
class FrequencyTrigger:
    """Fires when the employee filed more than threshold claims in the window."""

    threshold: int
    window_days: int = 30
    kind: TriggerKind = TriggerKind.FREQUENCY


EscalationTrigger = Union[TimeoutTrigger, AmountTrigger, CategoryTrigger, FrequencyTrigger]


def _trigger_problem(trigger: object) -> str | None:
    """Return why a trigger is malformed, or None."""
    if isinstance(trigger, TimeoutTrigger):
        if not isinstance(trigger.threshold, timedelta) or trigger.threshold <= timedelta(0):
            return "timeout threshold must be a positive duration"
    elif isinstance(trigger, AmountTrigger):
        if trigger.threshold is None or trigger.threshold <= 0:
            return "amount threshold must be positive"
    elif isinstance(trigger, CategoryTrigger):
        if not trigger.categories:
            return "category trigger needs at least one category"
    elif isinstance(trigger, FrequencyTrigger):
        if trigger.threshold <= 0:
            return "frequency threshold must be positive"
        if trigger.window_days <= 0:
            return "window_days must be positive"
    else:
        return f"unsupported trigger {type(trigger).__name__}"
    return None


@dataclass(frozen=True)
class EscalationRule:
    """A configured escalation rule.

    ``escalate_to`` is a role name or a specific approver id.
    """

    rule_id: str
    name: str
    trigger: EscalationTrigger
    escalate_to: str
    notify_original_approver: bool = False
    active: bool = True

    def __post_init__(self) -> None:
        if not self.rule_id or not str(self.rule_id).strip():
            raise InvalidRuleError(repr(self.rule_id), "rule_id cannot be empty")
        problem = _trigger_problem(self.trigger)
        if problem:
            raise InvalidRuleError(self.rule_id, problem)
        if not self.escalate_to or not self.escalate_to.strip():
            raise InvalidRuleError(self.rule_id, "escalate_to cannot be empty")


@dataclass(frozen=True)
class EscalationEvent:
    """Outcome of escalating one claim during a sweep."""

    claim_id: UUID
    rule_ids: tuple[str, ...]
    previous_level: int
    new_level: int
    previous_approver_id: str | None
    new_approver_id: str
    escalated_at: datetime
    notified: bool = False
