"""
Ports (``claims_kernel.domain.ports``).

Responsibility
--------------
Structural interfaces the services depend on: the claim repository, the
notification sink and the optional reviewer directory.  Adapters live in
``claims_services`` (SQLAlchemy repository, logging notifier) or are
supplied by the host application.

Architecture position
---------------------
**Kernel domain layer** -- protocols and the value objects that cross
them.  ZERO I/O.

Invariants enforced
-------------------
* ``save_claim_transition`` is the single write path for claim state and
  is atomic: it applies only when both the stored status and the stored
  version equal the caller's expectation, otherwise it raises
  ``StaleStateError`` and changes nothing.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from claims_kernel.domain.claim import Claim, ClaimStatus, HistoryEntry
from claims_kernel.domain.rules import ApprovalRule, EscalationRule


@dataclass(frozen=True)
class HistoryWindow:
    """Bounded window of historical claims fed to the detectors.

    Claims submitted within ``days`` before the reference time, newest
    first, at most ``max_claims`` of them.
    """

    days: int = 365
    max_claims: int = 200

    def __post_init__(self) -> None:
        if self.days <= 0:
            raise ValueError("history window days must be positive")
        if self.max_claims <= 0:
            raise ValueError("history window max_claims must be positive")


class ClaimRepository(Protocol):
    """Persistence port for claims and rules."""

    def get_claim(self, claim_id: UUID) -> Claim:
        """Return the claim or raise ``ClaimNotFoundError``."""
        ...

    def get_historical_claims(
        self,
        employee_id: str,
        window: HistoryWindow,
        as_of: datetime,
    ) -> Sequence[Claim]:
        """Return the employee's claims inside ``window`` ending at ``as_of``."""
        ...

    def save_claim_transition(
        self,
        claim_id: UUID,
        expected_status: ClaimStatus,
        new_status: ClaimStatus,
        fields: Mapping[str, Any],
        *,
        expected_version: int,
        history_entry: HistoryEntry | None = None,
    ) -> Claim:
        """Conditionally write status + fields; return the stored claim.

        Raises ``StaleStateError`` when status or version moved on.
        """
        ...

    def get_active_approval_rules(self) -> Sequence[ApprovalRule]:
        ...

    def get_active_escalation_rules(self) -> Sequence[EscalationRule]:
        ...

    def get_open_claims(self, statuses: Iterable[ClaimStatus]) -> Sequence[Claim]:
        ...


class NotificationPort(Protocol):
    """Fire-and-forget notification sink."""

    def notify(self, user_id: str, event_type: str, payload: Mapping[str, Any]) -> None:
        ...


class ReviewerRole(str, Enum):
    ADMIN = "admin"
    HR = "hr"
    MANAGER = "manager"
    EMPLOYEE = "employee"


@dataclass(frozen=True)
class Reviewer:
    """A person who may decide claims, as seen by the workflow."""

    actor_id: str
    role: ReviewerRole
    department: str | None = None


class ReviewerDirectory(Protocol):
    """Pluggable lookup of reviewer role and department."""

    def get_reviewer(self, actor_id: str) -> Reviewer | None:
        ...
