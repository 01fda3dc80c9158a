"""
Scoring and review domain types (``claims_kernel.domain.review``).

Responsibility
--------------
Value objects produced by the detector set, the risk aggregator and the
review policy engine: alerts, per-detector results, review criteria and
the combined scoring result.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Alerts are immutable facts produced at scoring time.
* ``ScoringResult.score`` is always within [0, 100].
* ``ReviewCriteria`` is derived on every scoring run and never used as
  the source of truth for workflow state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AlertSeverity(str, Enum):
    """Severity attached to an alert by the detector that raised it."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AlertSeverity.LOW: 0,
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.HIGH: 2,
    AlertSeverity.CRITICAL: 3,
}


class RiskLevel(str, Enum):
    """Coarse risk bucket derived from the aggregated score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class SuggestedAction(str, Enum):
    """Review policy recommendation; distinct from the workflow decision."""

    APPROVE = "approve"
    REJECT = "reject"
    INVESTIGATE = "investigate"


class AlertCode:
    """Alert codes assigned by the detectors."""

    ROUND_AMOUNT = "round_amount"
    HIGH_AMOUNT = "high_amount"
    REPEATED_AMOUNT = "repeated_amount"
    WEEKEND_SUBMISSION = "weekend_submission"
    OFF_HOURS_SUBMISSION = "off_hours_submission"
    STALE_EXPENSE = "stale_expense"
    HIGH_FREQUENCY = "high_frequency"
    THRESHOLD_GAMING = "threshold_gaming"
    HIGH_RISK_CATEGORY = "high_risk_category"
    CATEGORY_SWITCHING = "category_switching"
    VAGUE_DESCRIPTION = "vague_description"
    DUPLICATE_DESCRIPTION = "duplicate_description"
    MISSING_RECEIPT = "missing_receipt"


@dataclass(frozen=True)
class Alert:
    """A severity-tagged finding raised by one detector."""

    code: str
    severity: AlertSeverity
    reason: str
    detector: str


@dataclass(frozen=True)
class DetectorResult:
    """Partial score and alerts from a single detector run."""

    score: int = 0
    alerts: tuple[Alert, ...] = ()


EMPTY_DETECTOR_RESULT = DetectorResult()


@dataclass(frozen=True)
class ReviewCriteria:
    """Review policy output for one scoring run."""

    requires_review: bool
    risk_level: RiskLevel
    suggested_action: SuggestedAction
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoringResult:
    """Result of the scoring API: score, merged alerts and review criteria.

    ``detector_scores`` lists ``(detector_name, contribution)`` in detector
    order.
    """

    score: int
    alerts: tuple[Alert, ...]
    criteria: ReviewCriteria
    detector_scores: tuple[tuple[str, int], ...] = ()

    @property
    def alert_codes(self) -> tuple[str, ...]:
        return tuple(a.code for a in self.alerts)
