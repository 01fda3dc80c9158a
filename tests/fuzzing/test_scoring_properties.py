"""
Hypothesis-based properties of the scoring API.

Boundaries fuzzed here:
- Amounts: 0.01 to 50,000 with cent precision
- Submission times: any UTC instant in 2023-2025, expense dates up to 400 days back
- Categories and descriptions: known categories plus arbitrary unicode text
- History windows of 0-40 earlier claims
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from claims_config.schema import EngineConfig
from claims_engines.review_policy import classify_score
from claims_engines.scoring import score_claim
from claims_kernel.domain.claim import Claim, ExpenseCategory
from claims_kernel.domain.review import AlertCode, RiskLevel, SuggestedAction

PER_DETECTOR_CAP = EngineConfig().detectors.detector_score_cap

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("50000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
categories = st.one_of(
    st.sampled_from([c.value for c in ExpenseCategory]),
    st.text(min_size=1, max_size=20),
)
descriptions = st.one_of(
    st.sampled_from(["", "misc", "Fuel", "Client dinner with supplier team"]),
    st.text(max_size=60),
)
instants = st.datetimes(
    min_value=datetime(2023, 1, 1),
    max_value=datetime(2025, 12, 31),
    timezones=st.just(timezone.utc),
)


@composite
def claims(draw, employee_id="emp-fuzz", submitted_at=None):
    submitted = submitted_at or draw(instants)
    return Claim(
        claim_id=uuid4(),
        employee_id=employee_id,
        amount=draw(amounts),
        category=draw(categories),
        description=draw(descriptions),
        expense_date=(submitted - timedelta(days=draw(st.integers(0, 400)))).date(),
        submitted_at=submitted,
        receipt_count=draw(st.integers(0, 3)),
    )


@composite
def claim_with_history(draw):
    claim = draw(claims())
    offsets = draw(st.lists(st.integers(0, 200 * 24), max_size=40))
    history = [
        draw(claims(submitted_at=claim.submitted_at - timedelta(hours=hours)))
        for hours in offsets
    ]
    return claim, history


class TestScoreProperties:

    @given(claim_with_history())
    @settings(max_examples=150, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_score_in_range_and_consistent(self, case):
        claim, history = case
        result = score_claim(claim, history)

        assert 0 <= result.score <= 100
        contributions = [score for _, score in result.detector_scores]
        assert all(0 <= s <= PER_DETECTOR_CAP for s in contributions)
        assert result.score == min(100, sum(contributions))

    @given(claim_with_history())
    @settings(max_examples=100, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_alert_codes_unique(self, case):
        claim, history = case
        codes = score_claim(claim, history).alert_codes
        assert len(codes) == len(set(codes))

    @given(claim_with_history())
    @settings(max_examples=100, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_deterministic(self, case):
        claim, history = case
        assert score_claim(claim, history) == score_claim(claim, list(history))

    @given(claims())
    @settings(max_examples=100, deadline=None)
    def test_missing_receipt_never_approved(self, claim):
        result = score_claim(claim, [])
        if claim.receipt_count == 0:
            assert AlertCode.MISSING_RECEIPT in result.alert_codes
            assert result.criteria.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
            assert result.criteria.suggested_action is SuggestedAction.REJECT
        else:
            assert AlertCode.MISSING_RECEIPT not in result.alert_codes

    @given(claims())
    @settings(max_examples=100, deadline=None)
    def test_requires_review_whenever_alerts(self, claim):
        result = score_claim(claim, None)
        if result.alerts:
            assert result.criteria.requires_review
        if result.criteria.suggested_action is SuggestedAction.APPROVE:
            assert result.criteria.risk_level is not RiskLevel.CRITICAL
            assert result.score <= 75


_LEVEL_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


class TestClassification:

    @given(st.integers(0, 100), st.integers(0, 100))
    def test_classification_monotonic(self, a, b):
        thresholds = EngineConfig().thresholds
        low, high = sorted((a, b))
        assert _LEVEL_ORDER.index(classify_score(low, thresholds)) <= _LEVEL_ORDER.index(
            classify_score(high, thresholds)
        )
