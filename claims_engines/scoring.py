"""
claims_engines.scoring -- The scoring API.

Responsibility:
    ``score_claim`` runs every detector in order, aggregates their output
    and derives the review criteria.  It is a pure function of the claim,
    its historical window and the configuration: scoring the same inputs
    twice gives the same result.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Safe to call in parallel
    across claims; there is no shared mutable state.
"""

from __future__ import annotations

from collections.abc import Sequence

from claims_config.schema import EngineConfig
from claims_engines.aggregator import aggregate
from claims_engines.detectors import DETECTORS, run_detector
from claims_engines.review_policy import build_review_criteria
from claims_kernel.domain.claim import Claim
from claims_kernel.domain.review import ScoringResult

_DEFAULT_CONFIG = EngineConfig()


def score_claim(
    claim: Claim,
    historical_claims: Sequence[Claim] | None,
    config: EngineConfig | None = None,
) -> ScoringResult:
    """Score a claim against its employee's historical claims.

    Args:
        claim: The claim to score.
        historical_claims: The employee's bounded historical window, or
            None when it could not be loaded (history-based detectors then
            contribute nothing).
        config: Engine configuration; built-in defaults when omitted.

    Returns:
        ScoringResult with the clamped score, merged alerts, review
        criteria and each detector's contribution.
    """
    config = config or _DEFAULT_CONFIG
    named = [
        (spec.name, run_detector(spec, claim, historical_claims, config.detectors))
        for spec in DETECTORS
    ]
    score, alerts = aggregate(result for _, result in named)
    return ScoringResult(
        score=score,
        alerts=alerts,
        criteria=build_review_criteria(score, alerts, config.thresholds),
        detector_scores=tuple((name, result.score) for name, result in named),
    )
