"""
EscalationService -- periodic escalation and auto-reject sweeps.

Responsibility:
    Walk the open claims, evaluate the active escalation rules through the
    pure ``plan_escalation`` and persist each escalation with a conditioned
    write.  A second, configuration-gated sweep auto-rejects receipt-less
    claims left undecided past the grace period.

Architecture position:
    Services -- imperative shell.  Owns the clock and the writes; rule
    evaluation is delegated to ``claims_engines.escalation``.

Invariants enforced:
    - Each claim is re-read immediately before its write, and the write is
      conditioned on the status and version of that read.
    - One sweep raises a claim's escalation level by exactly one, however
      many rules fire; a rule fires at most once per status stint.
    - A sweep that loses a race to a manual decision skips the claim.

Failure modes:
    - StaleStateError on one claim  -> logged (escalation_skipped_stale),
      claim skipped, sweep continues.
    - RepositoryError on one claim  -> logged (escalation_failed), claim
      skipped, sweep continues.
    - Loading the open claims or the rules fails  -> RepositoryError
      propagates; nothing was written.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import uuid4

from claims_config.schema import EngineConfig
from claims_engines.escalation import EscalationPlan, needs_history, plan_escalation
from claims_kernel.domain.claim import (
    OPEN_CLAIM_STATUSES,
    Claim,
    ClaimStatus,
    HistoryAction,
    HistoryEntry,
)
from claims_kernel.domain.clock import Clock, SystemClock
from claims_kernel.domain.ports import ClaimRepository, NotificationPort
from claims_kernel.domain.review import AlertCode
from claims_kernel.domain.rules import EscalationEvent, EscalationRule
from claims_kernel.domain.workflow import WorkflowAction, find_transition
from claims_kernel.exceptions import RepositoryError, StaleStateError
from claims_kernel.logging_config import LogContext, get_logger
from claims_services.notifications import (
    EVENT_CLAIM_ESCALATED,
    EVENT_CLAIM_REJECTED,
    safe_notify,
)
from claims_services.workflow_executor import call_port

logger = get_logger("services.escalation")


class EscalationService:
    """Runs escalation and auto-reject sweeps over open claims."""

    def __init__(
        self,
        repository: ClaimRepository,
        notifier: NotificationPort | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._repository = repository
        self._notifier = notifier
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def run_escalation_sweep(self, now: datetime | None = None) -> list[EscalationEvent]:
        """Escalate every open claim whose rules newly fire at ``now``.

        Returns:
            One EscalationEvent per claim actually escalated by this sweep.
        """
        now = now or self._clock.now()
        sweep_id = str(uuid4())
        events: list[EscalationEvent] = []

        with LogContext.bind(sweep_id=sweep_id):
            rules = tuple(call_port(
                "get_active_escalation_rules", self._repository.get_active_escalation_rules,
            ))
            candidates = call_port(
                "get_open_claims", self._repository.get_open_claims, OPEN_CLAIM_STATUSES,
            )
            skipped = 0
            if rules:
                for candidate in candidates:
                    try:
                        event = self._escalate_one(candidate.claim_id, rules, now)
                    except StaleStateError as exc:
                        skipped += 1
                        logger.info(
                            "escalation_skipped_stale",
                            extra={
                                "claim_id": str(candidate.claim_id),
                                "expected_status": exc.expected_status,
                                "actual_status": exc.actual_status,
                            },
                        )
                        continue
                    except RepositoryError as exc:
                        skipped += 1
                        logger.error(
                            "escalation_failed",
                            extra={
                                "claim_id": str(candidate.claim_id),
                                "error_code": exc.code,
                                "error": str(exc),
                            },
                        )
                        continue
                    if event is not None:
                        events.append(event)

            logger.info(
                "escalation_sweep_completed",
                extra={
                    "sweep_id": sweep_id,
                    "rules": len(rules),
                    "open_claims": len(candidates),
                    "escalated": len(events),
                    "skipped": skipped,
                },
            )
        return events

    def _escalate_one(
        self,
        claim_id,
        rules: Sequence[EscalationRule],
        now: datetime,
    ) -> EscalationEvent | None:
        claim = call_port("get_claim", self._repository.get_claim, claim_id)
        history = self._history_for(claim, rules, now)
        plan = plan_escalation(claim, rules, now, history)
        if plan is None:
            return None

        updated = self._apply_plan(claim, plan, now)
        notified = False
        if plan.notify_original_approver:
            notified = safe_notify(
                self._notifier,
                claim.current_approver_id,
                EVENT_CLAIM_ESCALATED,
                {
                    "claim_id": str(claim.claim_id),
                    "escalated_to": plan.new_approver_id,
                    "escalation_level": plan.new_level,
                    "rule_ids": list(plan.rule_ids),
                },
            )

        logger.info(
            "escalation_applied",
            extra={
                "claim_id": str(claim.claim_id),
                "rule_ids": list(plan.rule_ids),
                "previous_level": claim.escalation_level,
                "new_level": updated.escalation_level,
                "previous_approver_id": claim.current_approver_id,
                "new_approver_id": updated.current_approver_id,
                "notified": notified,
            },
        )
        return EscalationEvent(
            claim_id=claim.claim_id,
            rule_ids=plan.rule_ids,
            previous_level=claim.escalation_level,
            new_level=updated.escalation_level,
            previous_approver_id=claim.current_approver_id,
            new_approver_id=updated.current_approver_id,
            escalated_at=now,
            notified=notified,
        )

    def _history_for(
        self,
        claim: Claim,
        rules: Sequence[EscalationRule],
        now: datetime,
    ) -> Sequence[Claim] | None:
        if not needs_history(rules):
            return None
        try:
            return self._repository.get_historical_claims(
                claim.employee_id, self._config.history, now,
            )
        except Exception as exc:
            logger.warning(
                "history_unavailable",
                extra={
                    "claim_id": str(claim.claim_id),
                    "employee_id": claim.employee_id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return None

    def _apply_plan(self, claim: Claim, plan: EscalationPlan, now: datetime) -> Claim:
        fields = {
            "escalation_level": plan.new_level,
            "current_approver_id": plan.new_approver_id,
            "escalated_at": now,
            "fired_escalation_rules": (*claim.fired_escalation_rules, *plan.rule_ids),
        }
        entry = HistoryEntry(
            action=HistoryAction.ESCALATED,
            actor_id=self._config.workflow.system_actor_id,
            at=now,
            from_status=claim.status,
            to_status=claim.status,
            comment=f"Escalated to {plan.new_approver_id} by {', '.join(plan.rule_ids)}",
        )
        return call_port(
            "save_claim_transition",
            self._repository.save_claim_transition,
            claim.claim_id,
            claim.status,
            claim.status,
            fields,
            expected_version=claim.version,
            history_entry=entry,
        )

    # ------------------------------------------------------------------
    # Auto-reject
    # ------------------------------------------------------------------

    def run_auto_reject_sweep(self, now: datetime | None = None) -> list[Claim]:
        """Reject pending claims without a receipt left past the grace period.

        Does nothing unless ``workflow.auto_reject_enabled`` is set.
        """
        settings = self._config.workflow
        if not settings.auto_reject_enabled:
            logger.debug("auto_reject_disabled")
            return []

        now = now or self._clock.now()
        sweep_id = str(uuid4())
        rejected: list[Claim] = []

        with LogContext.bind(sweep_id=sweep_id):
            candidates = call_port(
                "get_open_claims", self._repository.get_open_claims, (ClaimStatus.PENDING,),
            )
            for candidate in candidates:
                try:
                    claim = call_port("get_claim", self._repository.get_claim, candidate.claim_id)
                    if not self._auto_reject_due(claim, now):
                        continue
                    rejected.append(self._auto_reject(claim, now))
                except StaleStateError:
                    logger.info(
                        "auto_reject_skipped_stale",
                        extra={"claim_id": str(candidate.claim_id)},
                    )
                except RepositoryError as exc:
                    logger.error(
                        "auto_reject_failed",
                        extra={
                            "claim_id": str(candidate.claim_id),
                            "error_code": exc.code,
                            "error": str(exc),
                        },
                    )

            logger.info(
                "auto_reject_sweep_completed",
                extra={
                    "sweep_id": sweep_id,
                    "pending": len(candidates),
                    "rejected": len(rejected),
                },
            )
        return rejected

    def _auto_reject_due(self, claim: Claim, now: datetime) -> bool:
        return (
            claim.status is ClaimStatus.PENDING
            and AlertCode.MISSING_RECEIPT in claim.fraud_flags
            and now - claim.state_entered_at > self._config.workflow.auto_reject_grace
        )

    def _auto_reject(self, claim: Claim, now: datetime) -> Claim:
        transition = find_transition(claim.status, WorkflowAction.AUTO_REJECT)
        system_actor = self._config.workflow.system_actor_id
        comment = "Automatically rejected: no receipt supplied within the grace period"
        entry = HistoryEntry(
            action=HistoryAction.AUTO_REJECTED,
            actor_id=system_actor,
            at=now,
            from_status=claim.status,
            to_status=transition.to_status,
            comment=comment,
        )
        updated = call_port(
            "save_claim_transition",
            self._repository.save_claim_transition,
            claim.claim_id,
            claim.status,
            transition.to_status,
            {
                "approved_by": system_actor,
                "approved_at": now,
                "status_changed_at": now,
                "fired_escalation_rules": (),
            },
            expected_version=claim.version,
            history_entry=entry,
        )
        logger.info(
            "claim_transition",
            extra={
                "claim_id": str(updated.claim_id),
                "action": WorkflowAction.AUTO_REJECT.value,
                "from_status": claim.status.value,
                "to_status": updated.status.value,
                "actor_id": system_actor,
                "version": updated.version,
            },
        )
        if self._config.workflow.notify_employee_on_decision:
            safe_notify(
                self._notifier, updated.employee_id, EVENT_CLAIM_REJECTED,
                {
                    "claim_id": str(updated.claim_id),
                    "status": updated.status.value,
                    "comment": comment,
                },
            )
        return updated
