"""
claims_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure engines with the repository,
    notification and reviewer-directory ports: scoring with a cached
    historical window, the approval workflow, the escalation and
    auto-reject sweeps, and the bundled SQLAlchemy and logging adapters.
    This is the only layer that reads the clock or performs I/O.

Architecture position:
    Services -- imperative shell over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        claims_services/ -> claims_engines/  (allowed)
        claims_services/ -> claims_kernel/   (allowed)
        claims_engines/  -> claims_services/ (FORBIDDEN)
        claims_kernel/   -> claims_services/ (FORBIDDEN)
"""

from claims_services.cache import TTLCache
from claims_services.claim_repository import SqlClaimRepository
from claims_services.escalation_service import EscalationService
from claims_services.notifications import LoggingNotifier, safe_notify
from claims_services.scoring_service import ScoringService
from claims_services.workflow_executor import (
    BulkDecisionResult,
    ClaimWorkflow,
    SubmissionOutcome,
)

__all__ = [
    "BulkDecisionResult",
    "ClaimWorkflow",
    "EscalationService",
    "LoggingNotifier",
    "ScoringService",
    "SqlClaimRepository",
    "SubmissionOutcome",
    "TTLCache",
    "safe_notify",
]
