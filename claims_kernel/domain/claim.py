"""
Claim domain types (``claims_kernel.domain.claim``).

Responsibility
--------------
Pure value objects for an expense claim: the claim itself, its lifecycle
status, the append-only history entries recorded on every transition, and
the amendment an employee may supply when resubmitting.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/`` or outer layers.

Invariants enforced
-------------------
* Claims are frozen; every change produces a new instance.
* ``history`` is append-only: the workflow only ever extends the tuple.
* ``validate_claim`` rejects malformed input before it reaches scoring
  or the workflow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID

from claims_kernel.exceptions import ValidationError


class ClaimStatus(str, Enum):
    """Claim lifecycle states."""

    PENDING = "pending"
    INFO_REQUESTED = "info_requested"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_CLAIM_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.APPROVED,
    ClaimStatus.REJECTED,
})

OPEN_CLAIM_STATUSES: tuple[ClaimStatus, ...] = (
    ClaimStatus.PENDING,
    ClaimStatus.INFO_REQUESTED,
)


class ExpenseCategory(str, Enum):
    """Known expense categories.

    Claims carry the category as a plain string; anything outside this
    list is accepted and treated as an open-ended "other".
    """

    FUEL = "Fuel"
    TRAVEL = "Travel"
    ACCOMMODATION = "Accommodation"
    MEALS = "Meals"
    ENTERTAINMENT = "Entertainment"
    VEHICLE_MAINTENANCE = "Vehicle Maintenance"
    TOLLS = "Tolls"
    OFFICE_SUPPLIES = "Office Supplies"
    COMMUNICATION = "Communication"
    TRAINING = "Training"
    MISCELLANEOUS = "Miscellaneous"
    OTHER = "Other"


class HistoryAction(str, Enum):
    """Actions recorded in a claim's audit history."""

    AUTO_APPROVED = "auto_approved"
    APPROVAL_RECORDED = "approval_recorded"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_REJECTED = "auto_rejected"
    INFO_REQUESTED = "info_requested"
    RESUBMITTED = "resubmitted"
    ESCALATED = "escalated"


@dataclass(frozen=True)
class HistoryEntry:
    """One immutable line of a claim's audit trail."""

    action: HistoryAction
    actor_id: str
    at: datetime
    from_status: ClaimStatus
    to_status: ClaimStatus
    comment: str = ""


@dataclass(frozen=True)
class Claim:
    """An employee expense claim.

    ``fraud_score`` is None until the claim has been scored.
    ``approved_by``/``approved_at`` are only set by a terminal transition;
    on rejection they record who rejected the claim and when.
    ``version`` is the optimistic-lock counter bumped by every write.
    """

    claim_id: UUID
    employee_id: str
    amount: Decimal
    category: str
    description: str
    expense_date: date
    submitted_at: datetime
    currency: str = "ZAR"
    status: ClaimStatus = ClaimStatus.PENDING
    receipt_count: int = 0
    department: str | None = None
    fraud_score: int | None = None
    fraud_flags: tuple[str, ...] = ()
    approved_by: str | None = None
    approved_at: datetime | None = None
    current_approver_id: str | None = None
    escalated_at: datetime | None = None
    escalation_level: int = 0
    status_changed_at: datetime | None = None
    version: int = 0
    required_approvals: int = 1
    approvals: tuple[str, ...] = ()
    flagged_for_review: bool = False
    fired_escalation_rules: tuple[str, ...] = ()
    history: tuple[HistoryEntry, ...] = field(default=(), compare=False)

    @property
    def has_receipt(self) -> bool:
        return (self.receipt_count or 0) > 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CLAIM_STATUSES

    @property
    def state_entered_at(self) -> datetime:
        """When the claim entered its current status."""
        return self.status_changed_at or self.submitted_at


@dataclass(frozen=True)
class ClaimAmendment:
    """Changes an employee may make when answering an info request.

    None means "leave unchanged".
    """

    amount: Decimal | None = None
    category: str | None = None
    description: str | None = None
    expense_date: date | None = None
    receipt_count: int | None = None

    def changed_fields(self) -> dict[str, object]:
        return {
            name: value
            for name, value in (
                ("amount", self.amount),
                ("category", self.category),
                ("description", self.description),
                ("expense_date", self.expense_date),
                ("receipt_count", self.receipt_count),
            )
            if value is not None
        }


def validate_claim(claim: Claim) -> None:
    """Reject claims with missing or malformed required fields.

    Raises:
        ValidationError: carrying one ``{"field", "message"}`` dict per
            problem found.
    """
    errors: list[dict] = []

    if not isinstance(claim.employee_id, str) or not claim.employee_id.strip():
        errors.append({"field": "employee_id", "message": "employee_id is required"})

    try:
        amount = Decimal(claim.amount)
    except (InvalidOperation, TypeError, ValueError):
        errors.append({"field": "amount", "message": f"amount is not numeric: {claim.amount!r}"})
    else:
        if not amount.is_finite() or amount <= 0:
            errors.append({"field": "amount", "message": "amount must be a positive number"})

    if not isinstance(claim.currency, str) or len(claim.currency) != 3:
        errors.append({"field": "currency", "message": "currency must be a 3-letter code"})

    if not isinstance(claim.category, str) or not claim.category.strip():
        errors.append({"field": "category", "message": "category is required"})

    if claim.description is None:
        errors.append({"field": "description", "message": "description is required"})

    if not isinstance(claim.expense_date, date):
        errors.append({"field": "expense_date", "message": "expense_date is required"})

    if not isinstance(claim.submitted_at, datetime):
        errors.append({"field": "submitted_at", "message": "submitted_at is required"})
    elif claim.submitted_at.tzinfo is None:
        errors.append({"field": "submitted_at", "message": "submitted_at must be timezone-aware"})

    if isinstance(claim.receipt_count, bool) or not isinstance(claim.receipt_count, int):
        errors.append({"field": "receipt_count", "message": "receipt_count must be an integer"})
    elif claim.receipt_count < 0:
        errors.append({"field": "receipt_count", "message": "receipt_count cannot be negative"})

    if errors:
        raise ValidationError(errors)
