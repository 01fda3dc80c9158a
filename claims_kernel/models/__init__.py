"""ORM models for the claims kernel."""

from claims_kernel.models.claim import ClaimHistoryModel, ClaimModel
from claims_kernel.models.rule import ApprovalRuleModel, EscalationRuleModel

__all__ = [
    "ApprovalRuleModel",
    "ClaimHistoryModel",
    "ClaimModel",
    "EscalationRuleModel",
]
