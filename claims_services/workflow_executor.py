"""
ClaimWorkflow -- approval workflow executor (the decision API).

Responsibility:
    Drives a claim through its lifecycle: scoring on submission with
    auto-approval, reviewer decisions (approve / reject / request info),
    the role-tiered approval chain and the two-approver flow, employee
    resubmission, bulk approval and re-scoring.  Every status change is
    checked against ``CLAIM_TRANSITIONS`` and written through the
    repository's conditioned ``save_claim_transition``.

Architecture position:
    Services -- imperative shell.  Thin coordinator: scoring and rule
    evaluation are delegated to the pure engines, persistence to the
    ClaimRepository port, role lookup to the optional ReviewerDirectory,
    delivery to the NotificationPort.

Invariants enforced:
    - No decision is applied to a terminal claim (ClaimFinalizedError).
    - Reviewers never decide their own claims (SelfReviewError).
    - Rejections carry a comment (MissingCommentError).
    - With a reviewer directory, a manual approval completes only once
      every step of the configured approval chain is filled by a distinct
      approver of sufficient rank.
    - Each write is conditioned on the status and version that were read;
      a lost race surfaces as StaleStateError and nothing is written.
    - Every transition appends exactly one history entry.

Failure modes:
    - Port exceptions that are not kernel errors are wrapped in
      RepositoryError.
    - Notification failures are logged and never undo a transition.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any, Callable, TypeVar
from uuid import UUID

from claims_config.schema import EngineConfig
from claims_engines.approval_chain import fill_step, open_steps, required_steps
from claims_engines.review_policy import evaluate_auto_approval
from claims_kernel.domain.claim import (
    Claim,
    ClaimAmendment,
    ClaimStatus,
    HistoryAction,
    HistoryEntry,
    validate_claim,
)
from claims_kernel.domain.clock import Clock, SystemClock
from claims_kernel.domain.ports import (
    ClaimRepository,
    NotificationPort,
    ReviewerDirectory,
    ReviewerRole,
)
from claims_kernel.domain.review import ScoringResult
from claims_kernel.domain.rules import AutoApprovalDecision, AutoApprovalOutcome
from claims_kernel.domain.workflow import (
    DECISION_ACTIONS,
    Decision,
    WorkflowAction,
    find_transition,
)
from claims_kernel.exceptions import (
    ClaimFinalizedError,
    ClaimsKernelError,
    IllegalTransitionError,
    MissingCommentError,
    RepositoryError,
    SelfReviewError,
    StaleStateError,
    UnauthorizedReviewerError,
    ValidationError,
)
from claims_kernel.logging_config import LogContext, get_logger
from claims_services.notifications import (
    EVENT_CLAIM_APPROVED,
    EVENT_CLAIM_INFO_REQUESTED,
    EVENT_CLAIM_REJECTED,
    EVENT_CLAIM_RESUBMITTED,
    safe_notify,
)
from claims_services.scoring_service import ScoringService

logger = get_logger("services.workflow")

T = TypeVar("T")

_DECISION_HISTORY = {
    Decision.APPROVE: HistoryAction.APPROVED,
    Decision.REJECT: HistoryAction.REJECTED,
    Decision.REQUEST_INFO: HistoryAction.INFO_REQUESTED,
}

_DECISION_EVENTS = {
    Decision.APPROVE: EVENT_CLAIM_APPROVED,
    Decision.REJECT: EVENT_CLAIM_REJECTED,
    Decision.REQUEST_INFO: EVENT_CLAIM_INFO_REQUESTED,
}


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of ``process_submission``."""

    claim: Claim
    scoring: ScoringResult
    auto_approval: AutoApprovalDecision

    @property
    def auto_approved(self) -> bool:
        return self.auto_approval.outcome is AutoApprovalOutcome.AUTO_APPROVE


@dataclass(frozen=True)
class BulkDecisionResult:
    """Per-claim result of ``bulk_approve``."""

    claim_id: UUID
    success: bool
    claim: Claim | None = None
    error_code: str | None = None
    error: str | None = None


def call_port(operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Invoke a port method, wrapping foreign exceptions in RepositoryError."""
    try:
        return fn(*args, **kwargs)
    except ClaimsKernelError:
        raise
    except Exception as exc:
        raise RepositoryError(operation, f"{type(exc).__name__}: {exc}") from exc


def _parse_decision(value: Decision | str) -> Decision:
    try:
        return Decision(value)
    except ValueError as exc:
        allowed = ", ".join(d.value for d in Decision)
        raise ValidationError([{
            "field": "decision",
            "message": f"Unknown decision {value!r}; expected one of: {allowed}",
        }]) from exc


class ClaimWorkflow:
    """Applies submissions and reviewer decisions to claims."""

    def __init__(
        self,
        repository: ClaimRepository,
        scoring_service: ScoringService | None = None,
        notifier: NotificationPort | None = None,
        reviewer_directory: ReviewerDirectory | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or SystemClock()
        self._config = config or (
            scoring_service.config if scoring_service is not None else EngineConfig()
        )
        self._scoring = scoring_service or ScoringService(
            repository, config=self._config, clock=self._clock,
        )
        self._notifier = notifier
        self._directory = reviewer_directory

    # ------------------------------------------------------------------
    # Submission and scoring
    # ------------------------------------------------------------------

    def process_submission(self, claim_id: UUID) -> SubmissionOutcome:
        """Score a newly submitted claim, persist the score and apply auto-approval."""
        with LogContext.bind(claim_id=claim_id):
            claim = self._load(claim_id)
            self._require_status(claim, ClaimStatus.PENDING, "score")
            validate_claim(claim)

            scoring = self._scoring.score(claim)
            rules = call_port(
                "get_active_approval_rules", self._repository.get_active_approval_rules,
            )
            decision = evaluate_auto_approval(claim, scoring.criteria, rules)

            fields: dict[str, Any] = {
                "fraud_score": scoring.score,
                "fraud_flags": scoring.alert_codes,
                "flagged_for_review": decision.flag_for_review,
                "required_approvals": 2 if decision.require_additional_approval else 1,
            }

            if decision.outcome is AutoApprovalOutcome.AUTO_APPROVE:
                transition = find_transition(claim.status, WorkflowAction.AUTO_APPROVE)
                now = self._clock.now()
                system_actor = self._config.workflow.system_actor_id
                fields.update(
                    approved_by=system_actor,
                    approved_at=now,
                    status_changed_at=now,
                    fired_escalation_rules=(),
                )
                entry = HistoryEntry(
                    action=HistoryAction.AUTO_APPROVED,
                    actor_id=system_actor,
                    at=now,
                    from_status=claim.status,
                    to_status=transition.to_status,
                    comment=decision.reason,
                )
                updated = self._write(claim, transition.to_status, fields, entry)
                self._log_transition(claim, updated, WorkflowAction.AUTO_APPROVE, system_actor)
                if self._config.workflow.notify_employee_on_decision:
                    safe_notify(
                        self._notifier, updated.employee_id, EVENT_CLAIM_APPROVED,
                        self._payload(updated, comment=decision.reason),
                    )
            else:
                updated = self._write(claim, claim.status, fields, None)
                logger.info(
                    "auto_approval_not_applied",
                    extra={
                        "claim_id": str(claim.claim_id),
                        "outcome": decision.outcome.value,
                        "rule_id": decision.rule.rule_id if decision.rule else None,
                        "reason": decision.reason,
                    },
                )

            return SubmissionOutcome(claim=updated, scoring=scoring, auto_approval=decision)

    def rescore(self, claim_id: UUID) -> ScoringResult:
        """Recompute and persist the score of an open claim."""
        with LogContext.bind(claim_id=claim_id):
            claim = self._load(claim_id)
            if claim.is_terminal:
                raise ClaimFinalizedError(str(claim.claim_id), claim.status.value, "rescore")
            scoring = self._scoring.score(claim)
            self._write(
                claim,
                claim.status,
                {"fraud_score": scoring.score, "fraud_flags": scoring.alert_codes},
                None,
            )
            return scoring

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def submit_decision(
        self,
        claim_id: UUID,
        decision: Decision | str,
        actor_id: str,
        comment: str | None = None,
    ) -> Claim:
        """Apply a reviewer decision.

        Raises:
            ClaimFinalizedError: claim is already approved or rejected.
            IllegalTransitionError: decision not allowed from the current
                status (e.g. a decision on an ``info_requested`` claim).
            SelfReviewError: actor submitted the claim.
            UnauthorizedReviewerError: actor lacks authority for the claim.
            MissingCommentError: reject without a comment.
            StaleStateError: the claim changed between read and write.
            ValidationError: ``decision`` is not a known decision.
        """
        decision = _parse_decision(decision)
        with LogContext.bind(claim_id=claim_id, actor_id=actor_id):
            claim = self._load(claim_id)
            return self._apply_decision(claim, decision, actor_id, comment)

    def submit_decision_with_retry(
        self,
        claim_id: UUID,
        decision: Decision | str,
        actor_id: str,
        comment: str | None = None,
    ) -> Claim:
        """``submit_decision`` with one re-read and retry on StaleStateError."""
        try:
            return self.submit_decision(claim_id, decision, actor_id, comment)
        except StaleStateError as exc:
            logger.info(
                "decision_retry",
                extra={
                    "claim_id": str(claim_id),
                    "actor_id": actor_id,
                    "expected_status": exc.expected_status,
                    "actual_status": exc.actual_status,
                },
            )
            return self.submit_decision(claim_id, decision, actor_id, comment)

    def bulk_approve(
        self,
        claim_ids: Iterable[UUID],
        actor_id: str,
        comment: str | None = None,
    ) -> tuple[BulkDecisionResult, ...]:
        """Approve several claims; one failure never aborts the batch."""
        results: list[BulkDecisionResult] = []
        for claim_id in claim_ids:
            try:
                claim = self.submit_decision(claim_id, Decision.APPROVE, actor_id, comment)
            except ClaimsKernelError as exc:
                results.append(BulkDecisionResult(
                    claim_id=claim_id,
                    success=False,
                    error_code=exc.code,
                    error=str(exc),
                ))
            else:
                results.append(BulkDecisionResult(claim_id=claim_id, success=True, claim=claim))

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            "bulk_approve_completed",
            extra={
                "actor_id": actor_id,
                "requested": len(results),
                "succeeded": succeeded,
                "failed": len(results) - succeeded,
            },
        )
        return tuple(results)

    def resubmit(
        self,
        claim_id: UUID,
        actor_id: str,
        amendment: ClaimAmendment | None = None,
    ) -> Claim:
        """Employee answers an info request; the claim returns to pending and is re-scored."""
        with LogContext.bind(claim_id=claim_id, actor_id=actor_id):
            claim = self._load(claim_id)
            action = WorkflowAction.RESUBMIT
            if claim.is_terminal:
                raise ClaimFinalizedError(str(claim.claim_id), claim.status.value, action.value)
            transition = find_transition(claim.status, action)
            if transition is None:
                raise IllegalTransitionError(str(claim.claim_id), claim.status.value, action.value)
            if actor_id != claim.employee_id:
                raise UnauthorizedReviewerError(
                    str(claim.claim_id), claim.status.value, action.value, actor_id,
                    reason="Only the submitting employee may resubmit a claim",
                )

            changes = amendment.changed_fields() if amendment is not None else {}
            amended = replace(claim, **changes, status=transition.to_status)
            validate_claim(amended)
            scoring = self._scoring.score(amended)

            now = self._clock.now()
            fields: dict[str, Any] = {
                **changes,
                "fraud_score": scoring.score,
                "fraud_flags": scoring.alert_codes,
                "approvals": (),
                "fired_escalation_rules": (),
                "status_changed_at": now,
            }
            entry = HistoryEntry(
                action=HistoryAction.RESUBMITTED,
                actor_id=actor_id,
                at=now,
                from_status=claim.status,
                to_status=transition.to_status,
                comment=", ".join(sorted(changes)) if changes else "",
            )
            updated = self._write(claim, transition.to_status, fields, entry)
            self._log_transition(claim, updated, action, actor_id)
            safe_notify(
                self._notifier, updated.current_approver_id, EVENT_CLAIM_RESUBMITTED,
                self._payload(updated),
            )
            return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_decision(
        self,
        claim: Claim,
        decision: Decision,
        actor_id: str,
        comment: str | None,
    ) -> Claim:
        action = DECISION_ACTIONS[decision]
        claim_ref = str(claim.claim_id)
        if claim.is_terminal:
            raise ClaimFinalizedError(claim_ref, claim.status.value, action.value)
        transition = find_transition(claim.status, action)
        if transition is None:
            raise IllegalTransitionError(claim_ref, claim.status.value, action.value)
        if actor_id == claim.employee_id:
            raise SelfReviewError(claim_ref, claim.status.value, action.value, actor_id)
        self._check_authority(claim, actor_id, action)
        if decision is Decision.REJECT and not (comment and comment.strip()):
            raise MissingCommentError(claim_ref, action.value)

        now = self._clock.now()
        fields: dict[str, Any] = {}

        if decision is Decision.APPROVE:
            if actor_id in claim.approvals:
                raise IllegalTransitionError(
                    claim_ref, claim.status.value, action.value,
                    reason=f"Actor {actor_id} has already approved this claim",
                )
            approvals = (*claim.approvals, actor_id)
            remaining = self._steps_open_after(claim, actor_id, action)
            if remaining or len(approvals) < claim.required_approvals:
                entry = HistoryEntry(
                    action=HistoryAction.APPROVAL_RECORDED,
                    actor_id=actor_id,
                    at=now,
                    from_status=claim.status,
                    to_status=claim.status,
                    comment=comment or "",
                )
                updated = self._write(claim, claim.status, {"approvals": approvals}, entry)
                logger.info(
                    "approval_recorded",
                    extra={
                        "claim_id": claim_ref,
                        "actor_id": actor_id,
                        "approvals": len(approvals),
                        "required_approvals": claim.required_approvals,
                        "open_steps": [r.value for r in remaining],
                    },
                )
                return updated
            fields["approvals"] = approvals

        if decision in (Decision.APPROVE, Decision.REJECT):
            fields["approved_by"] = actor_id
            fields["approved_at"] = now
        fields["status_changed_at"] = now
        fields["fired_escalation_rules"] = ()

        entry = HistoryEntry(
            action=_DECISION_HISTORY[decision],
            actor_id=actor_id,
            at=now,
            from_status=claim.status,
            to_status=transition.to_status,
            comment=comment or "",
        )
        updated = self._write(claim, transition.to_status, fields, entry)
        self._log_transition(claim, updated, action, actor_id)

        if self._config.workflow.notify_employee_on_decision:
            safe_notify(
                self._notifier, updated.employee_id, _DECISION_EVENTS[decision],
                self._payload(updated, comment=comment),
            )
        return updated

    def _check_authority(self, claim: Claim, actor_id: str, action: WorkflowAction) -> None:
        """Enforce role-based authority when a reviewer directory is wired."""
        if self._directory is None:
            return

        def deny(reason: str) -> UnauthorizedReviewerError:
            return UnauthorizedReviewerError(
                str(claim.claim_id), claim.status.value, action.value, actor_id, reason,
            )

        reviewer = call_port("get_reviewer", self._directory.get_reviewer, actor_id)
        if reviewer is None:
            raise deny(f"Unknown reviewer {actor_id}")
        if reviewer.role is ReviewerRole.ADMIN:
            return

        if claim.escalation_level > 0 and claim.current_approver_id:
            if actor_id == claim.current_approver_id or reviewer.role.value == claim.current_approver_id:
                return
            raise deny(f"Claim is escalated to {claim.current_approver_id}")

        if reviewer.role is ReviewerRole.HR:
            return
        if reviewer.role is ReviewerRole.MANAGER:
            if claim.department is None or reviewer.department != claim.department:
                raise deny("Managers may only review claims from their own department")
            limit = self._config.workflow.high_value_review_limit
            if claim.amount > limit:
                raise deny(f"Amount {claim.amount} exceeds the manager review limit {limit}")
            return
        raise deny(f"Role '{reviewer.role.value}' may not review claims")

    def _steps_open_after(
        self,
        claim: Claim,
        actor_id: str,
        action: WorkflowAction,
    ) -> tuple[ReviewerRole, ...]:
        """Approval-chain steps still open once ``actor_id`` approves.

        The chain needs reviewer roles, so it only applies when a reviewer
        directory is wired.
        """
        if self._directory is None:
            return ()
        steps = required_steps(claim, self._config.workflow.approval_tiers)
        if not steps:
            return ()
        remaining = list(open_steps(steps, [self._role_of(a) for a in claim.approvals]))
        if not remaining:
            return ()
        index = fill_step(remaining, self._role_of(actor_id))
        if index is None:
            waiting = ", ".join(r.value for r in remaining)
            raise UnauthorizedReviewerError(
                str(claim.claim_id), claim.status.value, action.value, actor_id,
                reason=f"Claim is waiting for approval by: {waiting}",
            )
        del remaining[index]
        return tuple(remaining)

    def _role_of(self, actor_id: str) -> ReviewerRole | None:
        reviewer = call_port("get_reviewer", self._directory.get_reviewer, actor_id)
        return reviewer.role if reviewer is not None else None

    def _require_status(self, claim: Claim, status: ClaimStatus, action: str) -> None:
        if claim.is_terminal:
            raise ClaimFinalizedError(str(claim.claim_id), claim.status.value, action)
        if claim.status is not status:
            raise IllegalTransitionError(
                str(claim.claim_id), claim.status.value, action,
                reason=f"Claim must be '{status.value}' to {action}",
            )

    def _load(self, claim_id: UUID) -> Claim:
        return call_port("get_claim", self._repository.get_claim, claim_id)

    def _write(
        self,
        claim: Claim,
        new_status: ClaimStatus,
        fields: Mapping[str, Any],
        entry: HistoryEntry | None,
    ) -> Claim:
        updated = call_port(
            "save_claim_transition",
            self._repository.save_claim_transition,
            claim.claim_id,
            claim.status,
            new_status,
            fields,
            expected_version=claim.version,
            history_entry=entry,
        )
        self._scoring.invalidate_employee(claim.employee_id)
        return updated

    def _log_transition(
        self,
        before: Claim,
        after: Claim,
        action: WorkflowAction,
        actor_id: str,
    ) -> None:
        logger.info(
            "claim_transition",
            extra={
                "claim_id": str(after.claim_id),
                "action": action.value,
                "from_status": before.status.value,
                "to_status": after.status.value,
                "actor_id": actor_id,
                "version": after.version,
            },
        )

    @staticmethod
    def _payload(claim: Claim, comment: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "claim_id": str(claim.claim_id),
            "status": claim.status.value,
            "amount": str(claim.amount),
            "currency": claim.currency,
        }
        if comment:
            payload["comment"] = comment
        return payload
