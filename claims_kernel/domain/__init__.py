"""
Pure domain layer.

Claims, alerts, rules, the workflow table and the ports, with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (beyond the injectable Clock)
- I/O
"""

from claims_kernel.domain.claim import (
    OPEN_CLAIM_STATUSES,
    TERMINAL_CLAIM_STATUSES,
    Claim,
    ClaimAmendment,
    ClaimStatus,
    ExpenseCategory,
    HistoryAction,
    HistoryEntry,
    validate_claim,
)
from claims_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from claims_kernel.domain.ports import (
    ClaimRepository,
    HistoryWindow,
    NotificationPort,
    Reviewer,
    ReviewerDirectory,
    ReviewerRole,
)
from claims_kernel.domain.review import (
    Alert,
    AlertCode,
    AlertSeverity,
    DetectorResult,
    ReviewCriteria,
    RiskLevel,
    ScoringResult,
    SuggestedAction,
)
from claims_kernel.domain.rules import (
    AmountTrigger,
    ApprovalActions,
    ApprovalConditions,
    ApprovalRule,
    AutoApprovalDecision,
    AutoApprovalOutcome,
    CategoryTrigger,
    EscalationEvent,
    EscalationRule,
    EscalationTrigger,
    FrequencyTrigger,
    TimeoutTrigger,
    TriggerKind,
)
from claims_kernel.domain.workflow import (
    CLAIM_TRANSITIONS,
    ClaimTransition,
    Decision,
    WorkflowAction,
    find_transition,
)

__all__ = [
    "OPEN_CLAIM_STATUSES",
    "TERMINAL_CLAIM_STATUSES",
    "Claim",
    "ClaimAmendment",
    "ClaimStatus",
    "ExpenseCategory",
    "HistoryAction",
    "HistoryEntry",
    "validate_claim",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ClaimRepository",
    "HistoryWindow",
    "NotificationPort",
    "Reviewer",
    "ReviewerDirectory",
    "ReviewerRole",
    "Alert",
    "AlertCode",
    "AlertSeverity",
    "DetectorResult",
    "ReviewCriteria",
    "RiskLevel",
    "ScoringResult",
    "SuggestedAction",
    "AmountTrigger",
    "ApprovalActions",
    "ApprovalConditions",
    "ApprovalRule",
    "AutoApprovalDecision",
    "AutoApprovalOutcome",
    "CategoryTrigger",
    "EscalationEvent",
    "EscalationRule",
    "EscalationTrigger",
    "FrequencyTrigger",
    "TimeoutTrigger",
    "TriggerKind",
    "CLAIM_TRANSITIONS",
    "ClaimTransition",
    "Decision",
    "WorkflowAction",
    "find_transition",
]
