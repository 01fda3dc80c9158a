"""
Module: claims_kernel.models.rule
Responsibility: ORM persistence for auto-approval and escalation rules.

Architecture position: Kernel > Models.

Invariants enforced:
    - Rows convert back into validated domain rules; a malformed stored
      rule raises InvalidRuleError on load rather than being skipped.
    - ``position`` preserves declaration order, the final tie-breaker of
      approval rule ordering and the list order of escalation rules.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from claims_kernel.db.base import Base
from claims_kernel.domain.rules import (
    AmountTrigger,
    ApprovalActions,
    ApprovalConditions,
    ApprovalRule,
    CategoryTrigger,
    EscalationRule,
    EscalationTrigger,
    FrequencyTrigger,
    TimeoutTrigger,
    TriggerKind,
)
from claims_kernel.exceptions import InvalidRuleError


class ApprovalRuleModel(Base):
    """Persistent auto-approval rule."""

    __tablename__ = "approval_rules"

    rule_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    categories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    employees: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    auto_approve: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    require_additional_approval: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    flag_for_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self) -> ApprovalRule:
        return ApprovalRule(
            rule_id=self.rule_id,
            name=self.name,
            conditions=ApprovalConditions(
                max_amount=self.max_amount,
                categories=tuple(self.categories or ()),
                employees=tuple(self.employees or ()),
            ),
            actions=ApprovalActions(
                auto_approve=self.auto_approve,
                require_additional_approval=self.require_additional_approval,
                flag_for_review=self.flag_for_review,
            ),
            active=self.active,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRule, position: int = 0) -> ApprovalRuleModel:
        return cls(
            rule_id=dto.rule_id,
            name=dto.name,
            position=position,
            max_amount=dto.conditions.max_amount,
            categories=list(dto.conditions.categories),
            employees=list(dto.conditions.employees),
            auto_approve=dto.actions.auto_approve,
            require_additional_approval=dto.actions.require_additional_approval,
            flag_for_review=dto.actions.flag_for_review,
            active=dto.active,
        )


def trigger_to_params(trigger: EscalationTrigger) -> dict[str, Any]:
    """JSON-safe parameters of a trigger (the kind is stored separately)."""
    if isinstance(trigger, TimeoutTrigger):
        return {"seconds": trigger.threshold.total_seconds()}
    if isinstance(trigger, AmountTrigger):
        return {"threshold": str(trigger.threshold)}
    if isinstance(trigger, CategoryTrigger):
        return {"categories": list(trigger.categories)}
    if isinstance(trigger, FrequencyTrigger):
        return {"threshold": trigger.threshold, "window_days": trigger.window_days}
    raise InvalidRuleError("<unknown>", f"unsupported trigger {type(trigger).__name__}")


def trigger_from_params(rule_id: str, kind: str, params: dict[str, Any]) -> EscalationTrigger:
    try:
        trigger_kind = TriggerKind(kind)
        if trigger_kind is TriggerKind.TIMEOUT:
            return TimeoutTrigger(threshold=timedelta(seconds=float(params["seconds"])))
        if trigger_kind is TriggerKind.AMOUNT:
            return AmountTrigger(threshold=Decimal(str(params["threshold"])))
        if trigger_kind is TriggerKind.CATEGORY:
            return CategoryTrigger(categories=tuple(params["categories"]))
        return FrequencyTrigger(
            threshold=int(params["threshold"]),
            window_days=int(params.get("window_days", 30)),
        )
    except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
        raise InvalidRuleError(rule_id, f"bad {kind} trigger parameters: {exc}") from exc


class EscalationRuleModel(Base):
    """Persistent escalation rule."""

    __tablename__ = "escalation_rules"

    rule_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trigger_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    trigger_params: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    escalate_to: Mapped[str] = mapped_column(String(100), nullable=False)
    notify_original_approver: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self) -> EscalationRule:
        return EscalationRule(
            rule_id=self.rule_id,
            name=self.name,
            trigger=trigger_from_params(self.rule_id, self.trigger_kind, self.trigger_params or {}),
            escalate_to=self.escalate_to,
            notify_original_approver=self.notify_original_approver,
            active=self.active,
        )

    @classmethod
    def from_dto(cls, dto: EscalationRule, position: int = 0) -> EscalationRuleModel:
        return cls(
            rule_id=dto.rule_id,
            name=dto.name,
            position=position,
            trigger_kind=dto.trigger.kind.value,
            trigger_params=trigger_to_params(dto.trigger),
            escalate_to=dto.escalate_to,
            notify_original_approver=dto.notify_original_approver,
            active=dto.active,
        )
