"""
Engine configuration schema.

Frozen dataclasses for every tunable the scoring and workflow code reads:
detector weights and thresholds, risk-level thresholds, workflow policy
and the historical window.  YAML is parsed into these types by the
loader; code receives them by injection and never reads files itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

from claims_kernel.domain.ports import HistoryWindow, ReviewerRole

# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------


DEFAULT_HIGH_RISK_CATEGORIES: tuple[str, ...] = (
    "Entertainment",
    "Miscellaneous",
    "Other",
    "Personal",
)


@dataclass(frozen=True)
class DetectorSettings:
    """Weights and thresholds for the six detectors.

    Each detector's contribution is capped at ``detector_score_cap``.
    Submission times are evaluated at ``utc_offset_minutes`` from UTC.
    """

    # amount
    round_amount_unit: Decimal = Decimal("100")
    round_amount_min: Decimal = Decimal("500")
    round_amount_weight: int = 15
    high_amount_threshold: Decimal = Decimal("10000")
    high_amount_weight: int = 25
    repeated_amount_count: int = 3
    repeated_amount_weight: int = 30

    # timing
    weekend_weight: int = 5
    holidays: tuple[date, ...] = ()
    off_hours_start: int = 6
    off_hours_end: int = 22
    off_hours_weight: int = 5
    utc_offset_minutes: int = 120
    stale_expense_days: int = 90
    stale_expense_weight: int = 20

    # frequency
    frequency_window_days: int = 30
    high_frequency_count: int = 15
    high_frequency_weight: int = 25
    gaming_ceiling: Decimal = Decimal("5000")
    gaming_band: Decimal = Decimal("100")
    gaming_min_count: int = 3
    gaming_weight: int = 65

    # category
    high_risk_categories: tuple[str, ...] = DEFAULT_HIGH_RISK_CATEGORIES
    high_risk_category_weight: int = 15
    category_switch_window: int = 10
    category_switch_distinct: int = 8
    category_switch_weight: int = 10

    # description
    vague_description_min_length: int = 10
    vague_description_weight: int = 15
    duplicate_description_count: int = 2
    duplicate_description_weight: int = 25

    # receipt
    missing_receipt_weight: int = 60

    detector_score_cap: int = 70

    def __post_init__(self) -> None:
        for name in (
            "round_amount_weight",
            "high_amount_weight",
            "repeated_amount_weight",
            "weekend_weight",
            "off_hours_weight",
            "stale_expense_weight",
            "high_frequency_weight",
            "gaming_weight",
            "high_risk_category_weight",
            "category_switch_weight",
            "vague_description_weight",
            "duplicate_description_weight",
            "missing_receipt_weight",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if not 0 <= self.detector_score_cap <= 100:
            raise ValueError("detector_score_cap must be within 0..100")
        if not (0 <= self.off_hours_start <= 24 and 0 <= self.off_hours_end <= 24):
            raise ValueError("off-hours bounds must be hours of the day")
        if self.gaming_band < 0 or self.gaming_ceiling <= 0:
            raise ValueError("threshold gaming band/ceiling out of range")
        if self.round_amount_unit <= 0:
            raise ValueError("round_amount_unit must be positive")
        for name in (
            "repeated_amount_count",
            "frequency_window_days",
            "gaming_min_count",
            "category_switch_window",
            "category_switch_distinct",
            "duplicate_description_count",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @property
    def utc_offset(self) -> timedelta:
        return timedelta(minutes=self.utc_offset_minutes)

    def is_high_risk_category(self, category: str) -> bool:
        wanted = category.strip().casefold()
        return any(c.casefold() == wanted for c in self.high_risk_categories)


# ---------------------------------------------------------------------------
# Review policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskThresholds:
    """Score boundaries for the risk levels (strictly increasing, 0..100)."""

    low: int = 25
    medium: int = 50
    high: int = 75
    critical: int = 90

    def __post_init__(self) -> None:
        if not 0 < self.low < self.medium < self.high < self.critical <= 100:
            raise ValueError(
                "risk thresholds must satisfy 0 < low < medium < high < critical <= 100"
            )


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


APPROVER_ROLES: tuple[ReviewerRole, ...] = (
    ReviewerRole.MANAGER,
    ReviewerRole.HR,
    ReviewerRole.ADMIN,
)


@dataclass(frozen=True)
class ApprovalTier:
    """One step of the approval chain.

    A tier with no conditions always applies; otherwise it applies when
    the amount is above ``amount_above`` or the category is one of
    ``categories``.
    """

    role: ReviewerRole
    amount_above: Decimal | None = None
    categories: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.role not in APPROVER_ROLES:
            raise ValueError(f"approval tier role must be one of {[r.value for r in APPROVER_ROLES]}")
        if self.amount_above is not None and self.amount_above < 0:
            raise ValueError("approval tier amount_above cannot be negative")

    @property
    def unconditional(self) -> bool:
        return self.amount_above is None and not self.categories

    def applies_to(self, amount: Decimal, category: str) -> bool:
        if self.unconditional:
            return True
        if self.amount_above is not None and amount > self.amount_above:
            return True
        wanted = category.strip().casefold()
        return any(c.strip().casefold() == wanted for c in self.categories)


DEFAULT_APPROVAL_TIERS: tuple[ApprovalTier, ...] = (
    ApprovalTier(ReviewerRole.MANAGER),
    ApprovalTier(ReviewerRole.HR, amount_above=Decimal("5000"), categories=("Entertainment", "Travel")),
    ApprovalTier(ReviewerRole.ADMIN, amount_above=Decimal("15000")),
)


@dataclass(frozen=True)
class WorkflowSettings:
    """Workflow policy switches.

    ``auto_reject_enabled`` gates the auto-reject sweep; when off, a
    reject suggestion is only a recommendation to the reviewer.
    ``approval_tiers`` is the role chain a manual approval must complete
    when reviewer roles are known; an empty tuple means one approval.
    """

    auto_reject_enabled: bool = False
    auto_reject_grace: timedelta = timedelta(hours=72)
    high_value_review_limit: Decimal = Decimal("10000")
    system_actor_id: str = "system"
    notify_employee_on_decision: bool = True
    approval_tiers: tuple[ApprovalTier, ...] = DEFAULT_APPROVAL_TIERS

    def __post_init__(self) -> None:
        if self.auto_reject_grace < timedelta(0):
            raise ValueError("auto_reject_grace cannot be negative")
        if self.high_value_review_limit < 0:
            raise ValueError("high_value_review_limit cannot be negative")
        if not self.system_actor_id:
            raise ValueError("system_actor_id is required")


# ---------------------------------------------------------------------------
# Top level
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """Everything the scoring service and the workflow read."""

    detectors: DetectorSettings = field(default_factory=DetectorSettings)
    thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
    history: HistoryWindow = field(default_factory=HistoryWindow)
    history_cache_ttl_seconds: int = 60
    checksum: str = ""

    def __post_init__(self) -> None:
        if self.history_cache_ttl_seconds < 0:
            raise ValueError("history_cache_ttl_seconds cannot be negative")
