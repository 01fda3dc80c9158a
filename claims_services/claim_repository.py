"""
SqlClaimRepository -- SQLAlchemy adapter for the ClaimRepository port.

Responsibility:
    Persist claims, their append-only history and the approval/escalation
    rules, and implement the single conditioned write path
    ``save_claim_transition``.

Architecture position:
    Services -- imperative shell adapter.  Opens one short transactional
    session per operation from the injected session factory and returns
    frozen domain DTOs, never ORM instances.

Invariants enforced:
    - ``save_claim_transition`` issues
      ``UPDATE claims ... WHERE claim_id = :id AND status = :expected
      AND version = :version`` and bumps ``version``; a zero row count
      means the claim moved on (StaleStateError) or does not exist
      (ClaimNotFoundError).  The history row is appended in the same
      transaction.
    - Only workflow-owned columns may be written; identity columns
      (claim_id, employee_id, submitted_at, currency, department) never
      change after insert.

Failure modes:
    - ClaimNotFoundError for an unknown claim id.
    - StaleStateError when the conditioned UPDATE matches no row.
    - RepositoryError on duplicate inserts or unknown field names.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from claims_kernel.db.engine import session_scope
from claims_kernel.domain.claim import Claim, ClaimStatus, HistoryEntry
from claims_kernel.domain.ports import HistoryWindow
from claims_kernel.domain.rules import ApprovalRule, EscalationRule
from claims_kernel.exceptions import (
    ClaimNotFoundError,
    RepositoryError,
    StaleStateError,
)
from claims_kernel.logging_config import get_logger
from claims_kernel.models.claim import ClaimHistoryModel, ClaimModel
from claims_kernel.models.rule import ApprovalRuleModel, EscalationRuleModel

logger = get_logger("services.claim_repository")

# Columns a transition may write.  status and version are set by the
# repository itself.
WRITABLE_FIELDS: frozenset[str] = frozenset({
    "amount",
    "category",
    "description",
    "expense_date",
    "receipt_count",
    "fraud_score",
    "fraud_flags",
    "approved_by",
    "approved_at",
    "current_approver_id",
    "escalated_at",
    "escalation_level",
    "status_changed_at",
    "required_approvals",
    "approvals",
    "flagged_for_review",
    "fired_escalation_rules",
})

_LIST_FIELDS = frozenset({"fraud_flags", "approvals", "fired_escalation_rules"})


class SqlClaimRepository:
    """ClaimRepository backed by the ``claims`` / ``claim_history`` tables."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def add_claim(self, claim: Claim) -> Claim:
        """Insert a new claim together with any history it already carries."""
        try:
            with session_scope(self._session_factory) as session:
                session.add(ClaimModel.from_dto(claim))
                for position, entry in enumerate(claim.history):
                    session.add(ClaimHistoryModel.from_dto(claim.claim_id, position, entry))
                session.flush()
                stored = self._load(session, claim.claim_id).to_dto()
        except IntegrityError as exc:
            raise RepositoryError("add_claim", f"Claim {claim.claim_id} could not be stored: {exc.orig}") from exc

        logger.info(
            "claim_added",
            extra={
                "claim_id": str(claim.claim_id),
                "employee_id": claim.employee_id,
                "status": claim.status.value,
            },
        )
        return stored

    def get_claim(self, claim_id: UUID) -> Claim:
        with session_scope(self._session_factory) as session:
            model = session.get(ClaimModel, claim_id)
            if model is None:
                raise ClaimNotFoundError(str(claim_id))
            return model.to_dto()

    def get_historical_claims(
        self,
        employee_id: str,
        window: HistoryWindow,
        as_of: datetime,
    ) -> Sequence[Claim]:
        """Employee claims submitted in ``[as_of - window.days, as_of]``, newest first."""
        start = as_of - timedelta(days=window.days)
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(ClaimModel)
                .where(
                    ClaimModel.employee_id == employee_id,
                    ClaimModel.submitted_at >= start,
                    ClaimModel.submitted_at <= as_of,
                )
                .order_by(ClaimModel.submitted_at.desc())
                .limit(window.max_claims)
            ).scalars().all()
            return tuple(m.to_dto() for m in models)

    def get_open_claims(self, statuses: Iterable[ClaimStatus]) -> Sequence[Claim]:
        wanted = [ClaimStatus(s).value for s in statuses]
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(ClaimModel)
                .where(ClaimModel.status.in_(wanted))
                .order_by(ClaimModel.submitted_at)
            ).scalars().all()
            return tuple(m.to_dto() for m in models)

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
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise RepositoryError(
                "save_claim_transition",
                f"Fields not writable: {', '.join(sorted(unknown))}",
            )

        values = {
            name: list(value) if name in _LIST_FIELDS else value
            for name, value in fields.items()
        }
        values["status"] = ClaimStatus(new_status).value
        values["version"] = ClaimModel.version + 1

        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(ClaimModel)
                .where(
                    ClaimModel.claim_id == claim_id,
                    ClaimModel.status == ClaimStatus(expected_status).value,
                    ClaimModel.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                current = session.get(ClaimModel, claim_id)
                if current is None:
                    raise ClaimNotFoundError(str(claim_id))
                raise StaleStateError(
                    str(claim_id),
                    ClaimStatus(expected_status).value,
                    actual_status=current.status,
                    expected_version=expected_version,
                    actual_version=current.version,
                )

            if history_entry is not None:
                position = session.scalar(
                    select(func.count())
                    .select_from(ClaimHistoryModel)
                    .where(ClaimHistoryModel.claim_id == claim_id)
                )
                session.add(ClaimHistoryModel.from_dto(claim_id, position or 0, history_entry))
                session.flush()

            stored = self._load(session, claim_id).to_dto()

        logger.debug(
            "claim_row_updated",
            extra={
                "claim_id": str(claim_id),
                "status": stored.status.value,
                "version": stored.version,
            },
        )
        return stored

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def get_active_approval_rules(self) -> Sequence[ApprovalRule]:
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(ApprovalRuleModel)
                .where(ApprovalRuleModel.active.is_(True))
                .order_by(ApprovalRuleModel.position)
            ).scalars().all()
            return tuple(m.to_dto() for m in models)

    def get_active_escalation_rules(self) -> Sequence[EscalationRule]:
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(EscalationRuleModel)
                .where(EscalationRuleModel.active.is_(True))
                .order_by(EscalationRuleModel.position)
            ).scalars().all()
            return tuple(m.to_dto() for m in models)

    def add_approval_rules(self, rules: Iterable[ApprovalRule]) -> int:
        """Append approval rules after the ones already stored; return the count added."""
        return self._add_rules("add_approval_rules", ApprovalRuleModel, rules)

    def add_escalation_rules(self, rules: Iterable[EscalationRule]) -> int:
        """Append escalation rules after the ones already stored; return the count added."""
        return self._add_rules("add_escalation_rules", EscalationRuleModel, rules)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _add_rules(self, operation: str, model_cls, rules) -> int:
        added = 0
        try:
            with session_scope(self._session_factory) as session:
                offset = session.scalar(select(func.count()).select_from(model_cls)) or 0
                for index, rule in enumerate(rules):
                    session.add(model_cls.from_dto(rule, position=offset + index))
                    added += 1
                session.flush()
        except IntegrityError as exc:
            raise RepositoryError(operation, f"Duplicate rule id: {exc.orig}") from exc
        logger.info("rules_added", extra={"operation": operation, "count": added})
        return added

    @staticmethod
    def _load(session: Session, claim_id: UUID) -> ClaimModel:
        return session.execute(
            select(ClaimModel)
            .where(ClaimModel.claim_id == claim_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
