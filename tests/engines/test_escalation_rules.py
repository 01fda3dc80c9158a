"""
Tests for pure escalation rule evaluation and planning.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from claims_engines.escalation import needs_history, plan_escalation, rule_fires
from claims_kernel.domain.claim import ClaimStatus
from claims_kernel.domain.rules import (
    AmountTrigger,
    CategoryTrigger,
    EscalationRule,
    FrequencyTrigger,
)
from tests.factories import BASE_TIME, make_claim, make_history, timeout_rule


def amount_rule(rule_id="big", threshold="20000", escalate_to="cfo", **kwargs):
    return EscalationRule(rule_id, "Large claims", AmountTrigger(Decimal(threshold)), escalate_to, **kwargs)


def category_rule(rule_id="ent", categories=("Entertainment",), escalate_to="hr"):
    return EscalationRule(rule_id, "Risky categories", CategoryTrigger(tuple(categories)), escalate_to)


def frequency_rule(rule_id="busy", threshold=5, window_days=30, escalate_to="audit"):
    return EscalationRule(rule_id, "Busy claimant", FrequencyTrigger(threshold, window_days), escalate_to)


class TestRuleFires:

    def test_timeout_fires_after_threshold(self):
        claim = make_claim()
        rule = timeout_rule(days=5)
        assert not rule_fires(rule, claim, BASE_TIME + timedelta(days=5))
        assert rule_fires(rule, claim, BASE_TIME + timedelta(days=5, seconds=1))

    def test_timeout_measures_time_in_current_status(self):
        claim = make_claim(
            status=ClaimStatus.INFO_REQUESTED,
            status_changed_at=BASE_TIME + timedelta(days=8),
        )
        rule = timeout_rule(days=5)
        assert not rule_fires(rule, claim, BASE_TIME + timedelta(days=10))

    def test_amount_strictly_above(self):
        rule = amount_rule(threshold="20000")
        assert not rule_fires(rule, make_claim(amount="20000"), BASE_TIME)
        assert rule_fires(rule, make_claim(amount="20000.01"), BASE_TIME)

    def test_category_case_insensitive(self):
        assert rule_fires(category_rule(), make_claim(category="entertainment"), BASE_TIME)
        assert not rule_fires(category_rule(), make_claim(category="Fuel"), BASE_TIME)

    def test_frequency_counts_current_claim(self):
        rule = frequency_rule(threshold=5)
        claim = make_claim()
        assert not rule_fires(rule, claim, BASE_TIME, make_history(4))
        assert rule_fires(rule, claim, BASE_TIME, make_history(5))

    def test_frequency_without_history_does_not_fire(self):
        assert not rule_fires(frequency_rule(threshold=1), make_claim(), BASE_TIME, None)

    def test_frequency_ignores_claims_outside_window(self):
        rule = frequency_rule(threshold=2, window_days=7)
        history = make_history(6, days_apart=10)
        assert not rule_fires(rule, make_claim(), BASE_TIME, history)


class TestNeedsHistory:

    def test_only_frequency_rules_need_history(self):
        assert not needs_history([timeout_rule(), amount_rule()])
        assert needs_history([timeout_rule(), frequency_rule()])

    def test_inactive_frequency_rule_ignored(self):
        rule = EscalationRule("f", "F", FrequencyTrigger(5), "audit", active=False)
        assert not needs_history([rule])


class TestPlanEscalation:

    def test_pending_ten_days_against_five_day_timeout(self):
        claim = make_claim(current_approver_id=None)
        plan = plan_escalation(claim, [timeout_rule(days=5)], BASE_TIME + timedelta(days=10))
        assert plan.new_level == 1
        assert plan.new_approver_id == "finance_manager"
        assert plan.rule_ids == ("stale-5d",)

    def test_nothing_fires(self):
        assert plan_escalation(make_claim(), [timeout_rule(days=5)], BASE_TIME) is None

    def test_multiple_rules_raise_level_once(self):
        claim = make_claim(amount="25000", category="Entertainment", escalation_level=1)
        rules = [amount_rule(), category_rule(), timeout_rule(days=5)]
        plan = plan_escalation(claim, rules, BASE_TIME + timedelta(days=10))
        assert plan.new_level == 2
        assert plan.rule_ids == ("big", "ent", "stale-5d")

    def test_first_firing_rule_chooses_target(self):
        claim = make_claim(category="Entertainment")
        rules = [amount_rule(), category_rule(escalate_to="hr"), timeout_rule(escalate_to="ops")]
        plan = plan_escalation(claim, rules, BASE_TIME + timedelta(days=10))
        assert plan.new_approver_id == "hr"

    def test_already_fired_rules_skipped(self):
        claim = make_claim(fired_escalation_rules=("stale-5d",), escalation_level=1)
        assert plan_escalation(claim, [timeout_rule()], BASE_TIME + timedelta(days=30)) is None

    def test_new_rule_fires_after_earlier_one(self):
        claim = make_claim(
            amount="25000",
            fired_escalation_rules=("stale-5d",),
            escalation_level=1,
        )
        plan = plan_escalation(claim, [timeout_rule(), amount_rule()], BASE_TIME + timedelta(days=30))
        assert plan.rule_ids == ("big",)
        assert plan.new_level == 2

    @pytest.mark.parametrize("status", [ClaimStatus.APPROVED, ClaimStatus.REJECTED])
    def test_terminal_claims_never_escalate(self, status):
        claim = make_claim(status=status, amount="25000")
        assert plan_escalation(claim, [amount_rule()], BASE_TIME) is None

    def test_inactive_rules_skipped(self):
        rule = amount_rule(active=False)
        assert plan_escalation(make_claim(amount="25000"), [rule], BASE_TIME) is None

    def test_notify_if_any_firing_rule_asks(self):
        claim = make_claim(amount="25000", category="Entertainment")
        rules = [category_rule(), amount_rule(notify_original_approver=True)]
        plan = plan_escalation(claim, rules, BASE_TIME)
        assert plan.notify_original_approver
