"""
Claims Engines - pure calculation layer.

Detectors, risk aggregation, review policy, approval chain, escalation rule evaluation
and employee risk assessment.  No I/O, no clock reads.
"""

from claims_engines.aggregator import aggregate, clamp_score, merge_alerts
from claims_engines.approval_chain import open_steps, required_steps
from claims_engines.detectors import DETECTORS, DetectorSpec, run_detector
from claims_engines.escalation import EscalationPlan, plan_escalation, rule_fires
from claims_engines.review_policy import (
    build_review_criteria,
    classify_score,
    evaluate_auto_approval,
    order_approval_rules,
    select_approval_rule,
)
from claims_engines.risk_assessment import EmployeeRiskAssessment, assess_employee_risk
from claims_engines.scoring import score_claim

__all__ = [
    "DETECTORS",
    "DetectorSpec",
    "EmployeeRiskAssessment",
    "EscalationPlan",
    "aggregate",
    "assess_employee_risk",
    "build_review_criteria",
    "clamp_score",
    "classify_score",
    "evaluate_auto_approval",
    "merge_alerts",
    "open_steps",
    "order_approval_rules",
    "plan_escalation",
    "required_steps",
    "rule_fires",
    "run_detector",
    "score_claim",
    "select_approval_rule",
]
