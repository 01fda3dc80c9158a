"""
Module: claims_kernel.models.claim
Responsibility: ORM persistence for claims and their audit history.

Architecture position: Kernel > Models.  May import from db/base.py and
    the domain value objects it converts to and from.

Invariants enforced:
    - Claim status values are limited by a check constraint; transitions
      are enforced by the workflow and written through the repository's
      conditioned UPDATE (status + version).
    - History rows are append-only: ORM UPDATE/DELETE raises
      ImmutabilityViolationError.
    - UNIQUE(claim_id, position) keeps each claim's history a single
      ordered sequence.

Failure modes:
    - ImmutabilityViolationError on history UPDATE/DELETE.
    - IntegrityError on a duplicate history position (two writers appending
      the same slot; the conditioned UPDATE normally prevents this first).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claims_kernel.db.base import Base, UUIDString
from claims_kernel.domain.claim import (
    Claim,
    ClaimStatus,
    HistoryAction,
    HistoryEntry,
)
from claims_kernel.exceptions import ImmutabilityViolationError


class ClaimModel(Base):
    """Persistent expense claim.

    Contract:
        ``version`` is bumped by every write; the repository only updates a
        row whose status and version match what the caller read.
    """

    __tablename__ = "claims"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'info_requested', 'approved', 'rejected')",
            name="ck_claims_valid_status",
        ),
        Index("ix_claims_employee_submitted", "employee_id", "submitted_at"),
        Index("ix_claims_status", "status"),
    )

    claim_id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True)
    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZAR")
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    receipt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    fraud_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fraud_flags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    current_approver_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status_changed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required_approvals: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    approvals: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    flagged_for_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fired_escalation_rules: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    history: Mapped[list["ClaimHistoryModel"]] = relationship(
        "ClaimHistoryModel",
        back_populates="claim",
        order_by="ClaimHistoryModel.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Claim {self.claim_id} status={self.status} v{self.version}>"

    def to_dto(self) -> Claim:
        """Convert ORM model to frozen domain DTO."""
        return Claim(
            claim_id=self.claim_id,
            employee_id=self.employee_id,
            amount=self.amount,
            currency=self.currency,
            category=self.category,
            description=self.description,
            expense_date=self.expense_date,
            submitted_at=self.submitted_at,
            status=ClaimStatus(self.status),
            receipt_count=self.receipt_count,
            department=self.department,
            fraud_score=self.fraud_score,
            fraud_flags=tuple(self.fraud_flags or ()),
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            current_approver_id=self.current_approver_id,
            escalated_at=self.escalated_at,
            escalation_level=self.escalation_level,
            status_changed_at=self.status_changed_at,
            version=self.version,
            required_approvals=self.required_approvals,
            approvals=tuple(self.approvals or ()),
            flagged_for_review=self.flagged_for_review,
            fired_escalation_rules=tuple(self.fired_escalation_rules or ()),
            history=tuple(h.to_dto() for h in self.history),
        )

    @classmethod
    def from_dto(cls, dto: Claim) -> ClaimModel:
        """Create ORM model from domain DTO (history rows are added separately)."""
        return cls(
            claim_id=dto.claim_id,
            employee_id=dto.employee_id,
            amount=dto.amount,
            currency=dto.currency,
            category=dto.category,
            description=dto.description,
            expense_date=dto.expense_date,
            submitted_at=dto.submitted_at,
            status=dto.status.value,
            receipt_count=dto.receipt_count,
            department=dto.department,
            fraud_score=dto.fraud_score,
            fraud_flags=list(dto.fraud_flags),
            approved_by=dto.approved_by,
            approved_at=dto.approved_at,
            current_approver_id=dto.current_approver_id,
            escalated_at=dto.escalated_at,
            escalation_level=dto.escalation_level,
            status_changed_at=dto.status_changed_at,
            version=dto.version,
            required_approvals=dto.required_approvals,
            approvals=list(dto.approvals),
            flagged_for_review=dto.flagged_for_review,
            fired_escalation_rules=list(dto.fired_escalation_rules),
        )


class ClaimHistoryModel(Base):
    """Persistent claim history entry. Append-only."""

    __tablename__ = "claim_history"

    __table_args__ = (
        UniqueConstraint("claim_id", "position", name="uq_claim_history_position"),
    )

    entry_id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)
    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("claims.claim_id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    at: Mapped[datetime] = mapped_column(nullable=False)
    from_status: Mapped[str] = mapped_column(String(20), nullable=False)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")

    claim: Mapped["ClaimModel"] = relationship("ClaimModel", back_populates="history")

    def to_dto(self) -> HistoryEntry:
        return HistoryEntry(
            action=HistoryAction(self.action),
            actor_id=self.actor_id,
            at=self.at,
            from_status=ClaimStatus(self.from_status),
            to_status=ClaimStatus(self.to_status),
            comment=self.comment,
        )

    @classmethod
    def from_dto(cls, claim_id: UUID, position: int, dto: HistoryEntry) -> ClaimHistoryModel:
        return cls(
            claim_id=claim_id,
            position=position,
            action=dto.action.value,
            actor_id=dto.actor_id,
            at=dto.at,
            from_status=dto.from_status.value,
            to_status=dto.to_status.value,
            comment=dto.comment or "",
        )


# =============================================================================
# ORM-Level Immutability for History (Append-Only)
# =============================================================================


@event.listens_for(ClaimHistoryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to claim history rows."""
    raise ImmutabilityViolationError(
        entity_type="ClaimHistory",
        entity_id=str(target.entry_id),
        reason="Claim history is append-only -- cannot modify",
    )


@event.listens_for(ClaimHistoryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of claim history rows."""
    raise ImmutabilityViolationError(
        entity_type="ClaimHistory",
        entity_id=str(target.entry_id),
        reason="Claim history is append-only -- cannot delete",
    )
