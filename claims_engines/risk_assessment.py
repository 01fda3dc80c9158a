"""
claims_engines.risk_assessment -- Per-employee risk profile.

Responsibility:
    Summarize an employee's claim record and open alerts into a 0-100
    risk score, a risk level, the contributing factors and reviewer
    recommendations.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller supplies the
    employee's claims and currently open alerts.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from claims_config.schema import RiskThresholds
from claims_kernel.domain.claim import Claim, ClaimStatus
from claims_kernel.domain.review import Alert, AlertSeverity, RiskLevel

HIGH_VOLUME_CLAIMS = 50
HIGH_VOLUME_WEIGHT = 10
HIGH_AVERAGE_AMOUNT = Decimal("2000")
HIGH_AVERAGE_WEIGHT = 15
HIGH_REJECTION_RATE = Decimal("0.15")
HIGH_REJECTION_WEIGHT = 20
CRITICAL_ALERT_WEIGHT = 30
HIGH_ALERT_WEIGHT = 20


@dataclass(frozen=True)
class EmployeeRiskAssessment:
    employee_id: str
    risk_score: int
    risk_level: RiskLevel
    risk_factors: tuple[str, ...]
    recommendations: tuple[str, ...]
    total_claims: int
    average_amount: Decimal
    rejection_rate: Decimal


def _level_for(score: int, thresholds: RiskThresholds) -> RiskLevel:
    if score >= thresholds.critical:
        return RiskLevel.CRITICAL
    if score >= thresholds.high:
        return RiskLevel.HIGH
    if score >= thresholds.medium:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def assess_employee_risk(
    employee_id: str,
    claims: Sequence[Claim],
    open_alerts: Iterable[Alert] = (),
    thresholds: RiskThresholds | None = None,
) -> EmployeeRiskAssessment:
    """Build the risk profile for one employee.

    Scoring: +10 for more than 50 claims, +15 for an average amount above
    2000, +20 for a rejection rate above 15%, +30 per open critical alert
    and +20 per open high alert, capped at 100.
    """
    thresholds = thresholds or RiskThresholds()
    score = 0
    factors: list[str] = []

    total = len(claims)
    average = Decimal(0)
    rejection_rate = Decimal(0)
    if total:
        if total > HIGH_VOLUME_CLAIMS:
            score += HIGH_VOLUME_WEIGHT
            factors.append("High volume of expense claims")

        average = sum((c.amount for c in claims), Decimal(0)) / total
        if average > HIGH_AVERAGE_AMOUNT:
            score += HIGH_AVERAGE_WEIGHT
            factors.append("Above-average claim amounts")

        rejected = sum(1 for c in claims if c.status is ClaimStatus.REJECTED)
        rejection_rate = Decimal(rejected) / total
        if rejection_rate > HIGH_REJECTION_RATE:
            score += HIGH_REJECTION_WEIGHT
            factors.append("High claim rejection rate")

    alerts = list(open_alerts)
    critical = sum(1 for a in alerts if a.severity is AlertSeverity.CRITICAL)
    high = sum(1 for a in alerts if a.severity is AlertSeverity.HIGH)
    score += critical * CRITICAL_ALERT_WEIGHT + high * HIGH_ALERT_WEIGHT
    if critical:
        factors.append(f"{critical} critical fraud alerts")
    if high:
        factors.append(f"{high} high-risk fraud alerts")

    recommendations: list[str] = []
    if score > 50:
        recommendations.append("Require additional approval for claims over R1,000")
        recommendations.append("Request additional documentation for all claims")
    if score > 75:
        recommendations.append("Conduct expense audit")
        recommendations.append("Require manager pre-approval for all expenses")

    score = min(100, score)
    return EmployeeRiskAssessment(
        employee_id=employee_id,
        risk_score=score,
        risk_level=_level_for(score, thresholds),
        risk_factors=tuple(factors),
        recommendations=tuple(recommendations),
        total_claims=total,
        average_amount=average,
        rejection_rate=rejection_rate,
    )
