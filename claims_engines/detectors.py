"""
claims_engines.detectors -- Independent fraud/anomaly detectors.

Responsibility:
    Six deterministic heuristics, each a pure function
    ``(claim, historical_claims, settings) -> DetectorResult``: amount,
    timing, frequency, category, description and receipt.  ``DETECTORS``
    fixes their evaluation order; ``run_detector`` applies the per-detector
    cap and turns any failure into a zero contribution.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import claims_kernel domain types and claims_config schema.

Invariants enforced:
    - Each detector's contribution is within [0, detector_score_cap].
    - The claim itself never counts as its own history: historical claims
      sharing its ``claim_id`` are dropped before evaluation.
    - Purity: no clock access (time comes from the claim), no database.

Failure modes:
    - A detector that cannot evaluate (malformed claim, history required
      but not supplied) contributes ``DetectorResult(0, ())``.  The failure
      is logged as ``detector_failed`` and never propagates.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta, timezone
from decimal import Decimal

from claims_config.schema import DetectorSettings
from claims_kernel.domain.claim import Claim
from claims_kernel.domain.review import (
    EMPTY_DETECTOR_RESULT,
    Alert,
    AlertCode,
    AlertSeverity,
    DetectorResult,
)
from claims_kernel.exceptions import DetectorInputError
from claims_kernel.logging_config import get_logger

logger = get_logger("engines.detectors")

DetectorFn = Callable[[Claim, Sequence[Claim], DetectorSettings], DetectorResult]


@dataclass(frozen=True)
class DetectorSpec:
    """A named detector and whether it needs the historical window."""

    name: str
    evaluate: DetectorFn
    needs_history: bool


class _Findings:
    """Accumulates alerts and weight for one detector run."""

    def __init__(self, detector: str) -> None:
        self.detector = detector
        self.score = 0
        self.alerts: list[Alert] = []

    def add(self, code: str, severity: AlertSeverity, weight: int, reason: str) -> None:
        self.score += weight
        self.alerts.append(Alert(code=code, severity=severity, reason=reason, detector=self.detector))

    def result(self) -> DetectorResult:
        return DetectorResult(score=self.score, alerts=tuple(self.alerts))


def _amount(value: object) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _normalize_description(text: str | None) -> str:
    return " ".join((text or "").split()).casefold()


def prior_claims(claim: Claim, history: Sequence[Claim]) -> list[Claim]:
    """History without the claim itself and without claims filed after it."""
    return [
        h for h in history
        if h.claim_id != claim.claim_id and h.submitted_at <= claim.submitted_at
    ]


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------


def detect_amount(claim: Claim, history: Sequence[Claim], settings: DetectorSettings) -> DetectorResult:
    """Round amounts, high-value amounts and repeated identical amounts."""
    found = _Findings("amount")
    amount = _amount(claim.amount)

    if amount >= settings.round_amount_min and amount % settings.round_amount_unit == 0:
        found.add(
            AlertCode.ROUND_AMOUNT, AlertSeverity.MEDIUM, settings.round_amount_weight,
            f"Round amount {amount} at or above {settings.round_amount_min}",
        )

    if amount > settings.high_amount_threshold:
        found.add(
            AlertCode.HIGH_AMOUNT, AlertSeverity.HIGH, settings.high_amount_weight,
            f"Amount {amount} exceeds {settings.high_amount_threshold}",
        )

    same = sum(1 for h in prior_claims(claim, history) if _amount(h.amount) == amount)
    if same >= settings.repeated_amount_count:
        found.add(
            AlertCode.REPEATED_AMOUNT, AlertSeverity.HIGH, settings.repeated_amount_weight,
            f"{same} earlier claims with the identical amount {amount}",
        )

    return found.result()


def detect_timing(claim: Claim, history: Sequence[Claim], settings: DetectorSettings) -> DetectorResult:
    """Weekend/holiday and off-hours submission, stale expense dates."""
    found = _Findings("timing")
    if claim.submitted_at.tzinfo is None:
        raise DetectorInputError("timing", "submitted_at is naive")
    local = claim.submitted_at.astimezone(timezone(settings.utc_offset))

    if local.weekday() >= 5 or local.date() in settings.holidays:
        found.add(
            AlertCode.WEEKEND_SUBMISSION, AlertSeverity.LOW, settings.weekend_weight,
            f"Submitted on a weekend or holiday ({local.date().isoformat()})",
        )

    if local.hour < settings.off_hours_start or local.hour > settings.off_hours_end:
        found.add(
            AlertCode.OFF_HOURS_SUBMISSION, AlertSeverity.LOW, settings.off_hours_weight,
            f"Submitted outside business hours ({local.strftime('%H:%M')})",
        )

    age_days = (local.date() - claim.expense_date).days
    if age_days > settings.stale_expense_days:
        found.add(
            AlertCode.STALE_EXPENSE, AlertSeverity.MEDIUM, settings.stale_expense_weight,
            f"Expense is {age_days} days older than its submission",
        )

    return found.result()


def detect_frequency(claim: Claim, history: Sequence[Claim], settings: DetectorSettings) -> DetectorResult:
    """Claim volume in the trailing window and clustering below the ceiling."""
    found = _Findings("frequency")
    window_start = claim.submitted_at - timedelta(days=settings.frequency_window_days)
    recent = [h for h in prior_claims(claim, history) if h.submitted_at >= window_start]
    recent.append(claim)

    if len(recent) > settings.high_frequency_count:
        found.add(
            AlertCode.HIGH_FREQUENCY, AlertSeverity.HIGH, settings.high_frequency_weight,
            f"{len(recent)} claims in the last {settings.frequency_window_days} days",
        )

    floor = settings.gaming_ceiling - settings.gaming_band
    clustered = [c for c in recent if floor <= _amount(c.amount) <= settings.gaming_ceiling]
    if len(clustered) >= settings.gaming_min_count:
        found.add(
            AlertCode.THRESHOLD_GAMING, AlertSeverity.CRITICAL, settings.gaming_weight,
            f"{len(clustered)} claims between {floor} and {settings.gaming_ceiling} "
            f"in the last {settings.frequency_window_days} days",
        )

    return found.result()


def detect_category(claim: Claim, history: Sequence[Claim], settings: DetectorSettings) -> DetectorResult:
    """High-risk categories and rapid switching between categories."""
    found = _Findings("category")

    if settings.is_high_risk_category(claim.category):
        found.add(
            AlertCode.HIGH_RISK_CATEGORY, AlertSeverity.MEDIUM, settings.high_risk_category_weight,
            f"Category '{claim.category}' is high-risk",
        )

    earlier = sorted(prior_claims(claim, history), key=lambda c: c.submitted_at, reverse=True)
    latest = [claim, *earlier[: settings.category_switch_window - 1]]
    distinct = {c.category.strip().casefold() for c in latest}
    if len(distinct) >= settings.category_switch_distinct:
        found.add(
            AlertCode.CATEGORY_SWITCHING, AlertSeverity.MEDIUM, settings.category_switch_weight,
            f"{len(distinct)} distinct categories in the last {len(latest)} claims",
        )

    return found.result()


def detect_description(claim: Claim, history: Sequence[Claim], settings: DetectorSettings) -> DetectorResult:
    """Vague descriptions and descriptions reused across claims."""
    found = _Findings("description")
    text = (claim.description or "").strip()

    if len(text) < settings.vague_description_min_length:
        found.add(
            AlertCode.VAGUE_DESCRIPTION, AlertSeverity.MEDIUM, settings.vague_description_weight,
            f"Description too short ({len(text)} characters)",
        )

    normalized = _normalize_description(text)
    if normalized:
        repeats = sum(
            1 for h in prior_claims(claim, history)
            if _normalize_description(h.description) == normalized
        )
        if repeats >= settings.duplicate_description_count:
            found.add(
                AlertCode.DUPLICATE_DESCRIPTION, AlertSeverity.HIGH,
                settings.duplicate_description_weight,
                f"Same description used on {repeats} earlier claims",
            )

    return found.result()


def detect_receipt(claim: Claim, history: Sequence[Claim], settings: DetectorSettings) -> DetectorResult:
    found = _Findings("receipt")
    if not claim.receipt_count:
        found.add(
            AlertCode.MISSING_RECEIPT, AlertSeverity.HIGH, settings.missing_receipt_weight,
            "No receipt attached",
        )
    return found.result()


DETECTORS: tuple[DetectorSpec, ...] = (
    DetectorSpec("amount", detect_amount, needs_history=True),
    DetectorSpec("timing", detect_timing, needs_history=False),
    DetectorSpec("frequency", detect_frequency, needs_history=True),
    DetectorSpec("category", detect_category, needs_history=True),
    DetectorSpec("description", detect_description, needs_history=True),
    DetectorSpec("receipt", detect_receipt, needs_history=False),
)


def run_detector(
    spec: DetectorSpec,
    claim: Claim,
    history: Sequence[Claim] | None,
    settings: DetectorSettings,
) -> DetectorResult:
    """Run one detector, capping its score and absorbing any failure.

    Returns:
        The detector's result with ``score`` clamped to
        ``[0, settings.detector_score_cap]``, or an empty result when the
        detector could not evaluate.
    """
    try:
        if history is None and spec.needs_history:
            raise DetectorInputError(spec.name, "historical claims not supplied")
        result = spec.evaluate(claim, history or (), settings)
    except Exception as exc:
        logger.warning(
            "detector_failed",
            extra={
                "detector": spec.name,
                "claim_id": str(getattr(claim, "claim_id", None)),
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        return EMPTY_DETECTOR_RESULT

    capped = max(0, min(result.score, settings.detector_score_cap))
    if capped != result.score:
        return DetectorResult(score=capped, alerts=result.alerts)
    return result
