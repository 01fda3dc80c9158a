"""
Tests for approval and escalation rule construction.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from claims_kernel.domain.rules import (
    AmountTrigger,
    ApprovalActions,
    ApprovalConditions,
    ApprovalRule,
    AutoApprovalDecision,
    AutoApprovalOutcome,
    CategoryTrigger,
    EscalationRule,
    FrequencyTrigger,
    TimeoutTrigger,
    TriggerKind,
)
from claims_kernel.exceptions import InvalidRuleError
from tests.factories import approval_rule


class TestApprovalRule:

    def test_valid_rule(self):
        rule = approval_rule(max_amount=500, categories=["Fuel"])
        assert rule.is_category_scoped
        assert not rule.is_employee_scoped

    def test_empty_id_rejected(self):
        with pytest.raises(InvalidRuleError):
            approval_rule("")

    def test_negative_cap_rejected(self):
        with pytest.raises(InvalidRuleError) as exc_info:
            approval_rule(max_amount=-1)
        assert exc_info.value.rule_id == "small-claims"

    def test_rule_without_action_rejected(self):
        with pytest.raises(InvalidRuleError):
            ApprovalRule(
                rule_id="noop",
                name="No-op",
                conditions=ApprovalConditions(),
                actions=ApprovalActions(),
            )

    def test_auto_approve_with_additional_approval_rejected(self):
        with pytest.raises(InvalidRuleError):
            approval_rule(auto_approve=True, require_additional_approval=True)

    def test_decision_exposes_rule_actions(self):
        rule = approval_rule(auto_approve=False, require_additional_approval=True)
        decision = AutoApprovalDecision(AutoApprovalOutcome.MANUAL_REVIEW, rule=rule)
        assert decision.require_additional_approval
        assert not decision.flag_for_review

    def test_decision_without_rule(self):
        decision = AutoApprovalDecision(AutoApprovalOutcome.MANUAL_REVIEW)
        assert not decision.require_additional_approval
        assert not decision.flag_for_review


class TestEscalationRule:

    @pytest.mark.parametrize(
        "trigger, kind",
        [
            (TimeoutTrigger(threshold=timedelta(days=5)), TriggerKind.TIMEOUT),
            (AmountTrigger(threshold=Decimal("20000")), TriggerKind.AMOUNT),
            (CategoryTrigger(categories=("Entertainment",)), TriggerKind.CATEGORY),
            (FrequencyTrigger(threshold=10), TriggerKind.FREQUENCY),
        ],
    )
    def test_each_trigger_kind_accepted(self, trigger, kind):
        rule = EscalationRule("r1", "Rule", trigger, escalate_to="finance_manager")
        assert rule.trigger.kind is kind

    @pytest.mark.parametrize(
        "trigger",
        [
            TimeoutTrigger(threshold=timedelta(0)),
            AmountTrigger(threshold=Decimal("0")),
            CategoryTrigger(categories=()),
            FrequencyTrigger(threshold=0),
            FrequencyTrigger(threshold=5, window_days=0),
            "timeout",
        ],
    )
    def test_malformed_trigger_rejected(self, trigger):
        with pytest.raises(InvalidRuleError):
            EscalationRule("r1", "Rule", trigger, escalate_to="finance_manager")

    def test_missing_target_rejected(self):
        with pytest.raises(InvalidRuleError):
            EscalationRule(
                "r1", "Rule", TimeoutTrigger(threshold=timedelta(days=1)), escalate_to=" ",
            )
