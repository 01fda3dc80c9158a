"""
Typed Exception Hierarchy for the Claims Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The calling layer (review UI, scheduler, bulk tools) has to turn every
workflow failure into an actionable message.  Parsing message strings is
fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        workflow.submit_decision(claim_id, Decision.REJECT, actor_id)
    except MissingCommentError as e:
        api_response(code=e.code, claim_id=e.claim_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ClaimsKernelError (base)
    |
    +-- ValidationError
    |
    +-- WorkflowError
    |   +-- IllegalTransitionError
    |   |   +-- ClaimFinalizedError
    |   |   +-- SelfReviewError
    |   |   +-- UnauthorizedReviewerError
    |   +-- MissingCommentError
    |
    +-- ConcurrencyError
    |   +-- StaleStateError
    |
    +-- RepositoryError
    |   +-- ClaimNotFoundError
    |   +-- ImmutabilityViolationError
    |
    +-- RuleError
    |   +-- InvalidRuleError
    |
    +-- DetectorInputError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|-------------------------------------------
Validation   | VALIDATION_ERROR         | Claim input missing/malformed fields
-------------|--------------------------|-------------------------------------------
Workflow     | ILLEGAL_TRANSITION       | No such transition from current status
             | CLAIM_FINALIZED          | Claim already approved/rejected
             | SELF_REVIEW_FORBIDDEN    | Reviewer submitted the claim themselves
             | UNAUTHORIZED_REVIEWER    | Reviewer lacks authority for this claim
             | MISSING_COMMENT          | Reject decision without a comment
-------------|--------------------------|-------------------------------------------
Concurrency  | STALE_STATE              | Conditioned write lost the race
-------------|--------------------------|-------------------------------------------
Repository   | REPOSITORY_ERROR         | Port failure (wrapped)
             | CLAIM_NOT_FOUND          | Claim ID doesn't exist
             | IMMUTABILITY_VIOLATION   | History row or finalized claim modified
-------------|--------------------------|-------------------------------------------
Rules        | INVALID_RULE             | Rule shape rejected at construction
-------------|--------------------------|-------------------------------------------
Detectors    | DETECTOR_INPUT           | Detector cannot evaluate (never surfaced)

===============================================================================
HANDLING PATTERNS
===============================================================================

1. STALE STATE IS THE ONLY RETRYABLE ERROR:

    try:
        workflow.submit_decision(...)
    except StaleStateError:
        # re-read and retry exactly once, then surface to the reviewer
        workflow.submit_decision(...)

2. ILLEGAL TRANSITIONS ARE FINAL:

    except IllegalTransitionError as e:
        show_message(e.code, e.reason)
"""


class ClaimsKernelError(Exception):
    """
    Base exception for all claims kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CLAIMS_KERNEL_ERROR"


# Validation


class ValidationError(ClaimsKernelError):
    """Claim input is missing required fields or carries malformed values."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field_errors: list[dict]):
        self.field_errors = field_errors
        fields = ", ".join(e.get("field", "?") for e in field_errors)
        super().__init__(
            f"Claim validation failed: {len(field_errors)} error(s) ({fields})"
        )


# Workflow


class WorkflowError(ClaimsKernelError):
    """Base exception for approval-workflow errors."""

    code: str = "WORKFLOW_ERROR"


class IllegalTransitionError(WorkflowError):
    """The requested status change is not permitted for this claim/actor."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        claim_id: str,
        from_status: str,
        action: str,
        reason: str = "",
    ):
        self.claim_id = claim_id
        self.from_status = from_status
        self.action = action
        self.reason = reason or (
            f"Action '{action}' is not allowed from status '{from_status}'"
        )
        super().__init__(
            f"Illegal transition on claim {claim_id}: {self.reason}"
        )


class ClaimFinalizedError(IllegalTransitionError):
    """Claim is approved or rejected; terminal states admit no transitions."""

    code: str = "CLAIM_FINALIZED"

    def __init__(self, claim_id: str, from_status: str, action: str):
        super().__init__(
            claim_id,
            from_status,
            action,
            reason=f"Claim is already '{from_status}' and cannot be changed",
        )


class SelfReviewError(IllegalTransitionError):
    """A reviewer tried to decide a claim they submitted."""

    code: str = "SELF_REVIEW_FORBIDDEN"

    def __init__(self, claim_id: str, from_status: str, action: str, actor_id: str):
        self.actor_id = actor_id
        super().__init__(
            claim_id,
            from_status,
            action,
            reason=f"Actor {actor_id} cannot review their own claim",
        )


class UnauthorizedReviewerError(IllegalTransitionError):
    """The reviewer's role or assignment does not cover this claim."""

    code: str = "UNAUTHORIZED_REVIEWER"

    def __init__(
        self,
        claim_id: str,
        from_status: str,
        action: str,
        actor_id: str,
        reason: str,
    ):
        self.actor_id = actor_id
        super().__init__(claim_id, from_status, action, reason=reason)


class MissingCommentError(WorkflowError):
    """A reject decision was submitted without a comment."""

    code: str = "MISSING_COMMENT"

    def __init__(self, claim_id: str, action: str = "reject"):
        self.claim_id = claim_id
        self.action = action
        super().__init__(
            f"A comment is required to {action} claim {claim_id}"
        )


# Concurrency


class ConcurrencyError(ClaimsKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleStateError(ConcurrencyError):
    """
    Conditioned write rejected: the claim changed since it was read.

    Raised by the repository when the stored status or version no longer
    matches what the caller observed.
    """

    code: str = "STALE_STATE"

    def __init__(
        self,
        claim_id: str,
        expected_status: str,
        actual_status: str | None = None,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.claim_id = claim_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stale state on claim {claim_id}: expected status "
            f"'{expected_status}' (version {expected_version}), found "
            f"'{actual_status}' (version {actual_version})"
        )


# Repository


class RepositoryError(ClaimsKernelError):
    """A repository or other port call failed."""

    code: str = "REPOSITORY_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Repository operation '{operation}' failed: {reason}")


class ClaimNotFoundError(RepositoryError):
    """Claim with given ID was not found."""

    code: str = "CLAIM_NOT_FOUND"

    def __init__(self, claim_id: str):
        self.claim_id = claim_id
        super().__init__("get_claim", f"Claim not found: {claim_id}")


class ImmutabilityViolationError(RepositoryError):
    """Attempted to modify or delete an append-only or finalized record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = "flush"
        self.reason = reason
        ClaimsKernelError.__init__(
            self, f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Rules


class RuleError(ClaimsKernelError):
    """Base exception for approval/escalation rule errors."""

    code: str = "RULE_ERROR"


class InvalidRuleError(RuleError):
    """Rule shape rejected at construction time."""

    code: str = "INVALID_RULE"

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Invalid rule {rule_id!r}: {reason}")


# Detectors


class DetectorInputError(ClaimsKernelError):
    """
    A detector cannot evaluate its input.

    Caught by the detector runner and converted into a zero contribution;
    never reaches scoring callers.
    """

    code: str = "DETECTOR_INPUT"

    def __init__(self, detector: str, reason: str):
        self.detector = detector
        self.reason = reason
        super().__init__(f"Detector '{detector}' cannot evaluate: {reason}")
