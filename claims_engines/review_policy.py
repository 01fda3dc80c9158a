"""
claims_engines.review_policy -- Risk level, suggested action, auto-approval.

Responsibility:
    Map an aggregated score and its alerts to ``ReviewCriteria`` (risk
    level, whether a human must look, suggested action), and evaluate the
    configured auto-approval rules against a scored claim.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import claims_kernel domain types and claims_config schema.

Invariants enforced:
    - A ``missing_receipt`` alert forces the suggested action to reject
      and the risk level to at least high.
    - Any critical-severity alert forces the risk level to critical.
    - Auto-approval is never granted when the suggested action is reject
      or investigate, or when the matched rule flags the claim for review.
    - Deterministic rule ordering: ``order_approval_rules`` returns an
      explicit ordered tuple (most specific first, then lowest cap, then
      declaration order); the first matching rule wins.

Failure modes:
    - No matching rule  -> ``AutoApprovalDecision(MANUAL_REVIEW)``; a
      claim is never approved by default.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from claims_config.schema import RiskThresholds
from claims_kernel.domain.claim import Claim
from claims_kernel.domain.review import (
    Alert,
    AlertCode,
    AlertSeverity,
    ReviewCriteria,
    RiskLevel,
    SuggestedAction,
)
from claims_kernel.domain.rules import (
    ApprovalRule,
    AutoApprovalDecision,
    AutoApprovalOutcome,
)

# ---------------------------------------------------------------------------
# Review criteria
# ---------------------------------------------------------------------------


def classify_score(score: int, thresholds: RiskThresholds) -> RiskLevel:
    """Bucket a score: below low, below medium, below critical, else critical."""
    if score < thresholds.low:
        return RiskLevel.LOW
    if score < thresholds.medium:
        return RiskLevel.MEDIUM
    if score < thresholds.critical:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def determine_risk_level(
    score: int,
    alerts: Sequence[Alert],
    thresholds: RiskThresholds,
) -> RiskLevel:
    """Score bucket raised by the alert floors."""
    level = classify_score(score, thresholds)
    if any(a.code == AlertCode.MISSING_RECEIPT for a in alerts) and level.rank < RiskLevel.HIGH.rank:
        level = RiskLevel.HIGH
    if any(a.severity is AlertSeverity.CRITICAL for a in alerts):
        level = RiskLevel.CRITICAL
    return level


def suggest_action(
    score: int,
    level: RiskLevel,
    alerts: Sequence[Alert],
    thresholds: RiskThresholds,
) -> SuggestedAction:
    if any(a.code == AlertCode.MISSING_RECEIPT for a in alerts):
        return SuggestedAction.REJECT
    if score > thresholds.high or level is RiskLevel.CRITICAL:
        return SuggestedAction.INVESTIGATE
    return SuggestedAction.APPROVE


def build_review_criteria(
    score: int,
    alerts: Sequence[Alert],
    thresholds: RiskThresholds,
) -> ReviewCriteria:
    """Derive the review criteria for one scoring run.

    Args:
        score: Aggregated score in [0, 100].
        alerts: De-duplicated alerts in detector order.
        thresholds: Risk level boundaries.

    Returns:
        ReviewCriteria with ``requires_review`` set whenever any alert fired
        or the level is above low.
    """
    level = determine_risk_level(score, alerts, thresholds)
    return ReviewCriteria(
        requires_review=bool(alerts) or level is not RiskLevel.LOW,
        risk_level=level,
        suggested_action=suggest_action(score, level, alerts, thresholds),
        reasons=tuple(a.reason for a in alerts),
    )


# ---------------------------------------------------------------------------
# Auto-approval rules
# ---------------------------------------------------------------------------


def _specificity_key(indexed: tuple[int, ApprovalRule]) -> tuple:
    index, rule = indexed
    cond = rule.conditions
    if rule.is_employee_scoped:
        tier = 0
    elif rule.is_category_scoped:
        tier = 1
    else:
        tier = 2
    return (
        tier,
        len(cond.employees),
        0 if rule.is_category_scoped else 1,
        len(cond.categories),
        (0, cond.max_amount) if cond.max_amount is not None else (1, Decimal(0)),
        index,
    )


def order_approval_rules(rules: Iterable[ApprovalRule]) -> tuple[ApprovalRule, ...]:
    """Active rules, most specific first.

    Order: employee-scoped, then category-scoped, then amount-only; inside
    a tier fewer employees, category-scoped before not, fewer categories,
    lower ``max_amount`` (uncapped last), then declaration order.
    """
    active = [(i, r) for i, r in enumerate(rules) if r.active]
    return tuple(r for _, r in sorted(active, key=_specificity_key))


def rule_matches(rule: ApprovalRule, claim: Claim) -> bool:
    cond = rule.conditions
    if cond.max_amount is not None and claim.amount > cond.max_amount:
        return False
    if cond.categories:
        wanted = claim.category.strip().casefold()
        if not any(c.strip().casefold() == wanted for c in cond.categories):
            return False
    if cond.employees and claim.employee_id not in cond.employees:
        return False
    return True


def select_approval_rule(claim: Claim, rules: Iterable[ApprovalRule]) -> ApprovalRule | None:
    """First matching rule in ``order_approval_rules`` order, or None."""
    for rule in order_approval_rules(rules):
        if rule_matches(rule, claim):
            return rule
    return None


def evaluate_auto_approval(
    claim: Claim,
    criteria: ReviewCriteria,
    rules: Iterable[ApprovalRule],
) -> AutoApprovalDecision:
    """Decide whether a freshly scored claim may be approved without a human.

    Returns:
        AUTO_APPROVE when the matched rule auto-approves and nothing
        suppresses it; SUPPRESSED when a rule matched but the suggested
        action or the rule's review flag blocks it; MANUAL_REVIEW when no
        rule matched or the rule only asks for extra approval.
    """
    rule = select_approval_rule(claim, rules)
    if rule is None:
        return AutoApprovalDecision(
            outcome=AutoApprovalOutcome.MANUAL_REVIEW,
            reason="No matching approval rule",
        )

    if criteria.suggested_action is not SuggestedAction.APPROVE:
        return AutoApprovalDecision(
            outcome=AutoApprovalOutcome.SUPPRESSED,
            rule=rule,
            reason=f"Suggested action is {criteria.suggested_action.value}",
        )

    if rule.actions.flag_for_review:
        return AutoApprovalDecision(
            outcome=AutoApprovalOutcome.SUPPRESSED,
            rule=rule,
            reason=f"Rule '{rule.rule_id}' flags the claim for review",
        )

    if rule.actions.auto_approve:
        return AutoApprovalDecision(
            outcome=AutoApprovalOutcome.AUTO_APPROVE,
            rule=rule,
            reason=f"Auto-approved by rule '{rule.rule_id}'",
        )

    return AutoApprovalDecision(
        outcome=AutoApprovalOutcome.MANUAL_REVIEW,
        rule=rule,
        reason=f"Rule '{rule.rule_id}' requires additional approval",
    )
