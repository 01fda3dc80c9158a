"""
Tests for the escalation and auto-reject sweeps.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from claims_config.schema import EngineConfig, WorkflowSettings
from claims_kernel.domain.claim import ClaimStatus, HistoryAction
from claims_kernel.domain.review import AlertCode
from claims_kernel.domain.rules import EscalationRule, FrequencyTrigger
from claims_kernel.domain.workflow import Decision
from claims_kernel.exceptions import StaleStateError
from claims_services.escalation_service import EscalationService
from tests.factories import BASE_TIME, EMPLOYEE_ID, make_claim, make_history, timeout_rule
from tests.fakes import FailingNotifier

TEN_DAYS_LATER = BASE_TIME + timedelta(days=10)


class TestEscalationSweep:

    def test_stale_claim_escalates_once(self, repo, escalation_service):
        repo.escalation_rules.append(timeout_rule(days=5))
        claim = repo.add_claim(make_claim(current_approver_id="mgr-001"))

        events = escalation_service.run_escalation_sweep(TEN_DAYS_LATER)

        assert len(events) == 1
        event = events[0]
        assert event.claim_id == claim.claim_id
        assert event.previous_level == 0
        assert event.new_level == 1
        assert event.previous_approver_id == "mgr-001"
        assert event.new_approver_id == "finance_manager"

        stored = repo.get_claim(claim.claim_id)
        assert stored.status is ClaimStatus.PENDING
        assert stored.escalation_level == 1
        assert stored.escalated_at == TEN_DAYS_LATER
        assert stored.fired_escalation_rules == ("stale-5d",)
        assert stored.history[-1].action is HistoryAction.ESCALATED
        assert stored.history[-1].actor_id == "system"

    def test_repeated_sweeps_do_not_escalate_again(self, repo, escalation_service):
        repo.escalation_rules.append(timeout_rule(days=5))
        claim = repo.add_claim(make_claim())

        for hours in range(0, 48, 6):
            escalation_service.run_escalation_sweep(TEN_DAYS_LATER + timedelta(hours=hours))

        stored = repo.get_claim(claim.claim_id)
        assert stored.escalation_level == 1
        assert len(stored.history) == 1

    def test_claim_not_yet_due(self, repo, escalation_service):
        repo.escalation_rules.append(timeout_rule(days=5))
        claim = repo.add_claim(make_claim())
        assert escalation_service.run_escalation_sweep(BASE_TIME + timedelta(days=4)) == []
        assert repo.get_claim(claim.claim_id).escalation_level == 0

    def test_terminal_claims_ignored(self, repo, escalation_service):
        repo.escalation_rules.append(timeout_rule(days=5))
        repo.add_claim(make_claim(status=ClaimStatus.APPROVED))
        repo.add_claim(make_claim(status=ClaimStatus.REJECTED))
        assert escalation_service.run_escalation_sweep(TEN_DAYS_LATER) == []
        assert repo.writes == 0

    def test_info_requested_claims_escalate(self, repo, escalation_service):
        repo.escalation_rules.append(timeout_rule(days=5))
        claim = repo.add_claim(make_claim(status=ClaimStatus.INFO_REQUESTED))
        assert len(escalation_service.run_escalation_sweep(TEN_DAYS_LATER)) == 1
        assert repo.get_claim(claim.claim_id).status is ClaimStatus.INFO_REQUESTED

    def test_decision_rearms_rules(self, repo, workflow, escalation_service, clock):
        repo.escalation_rules.append(timeout_rule(days=5))
        claim = repo.add_claim(make_claim())
        escalation_service.run_escalation_sweep(TEN_DAYS_LATER)

        clock.set_time(TEN_DAYS_LATER)
        updated = workflow.submit_decision(claim.claim_id, Decision.REQUEST_INFO, "rev-001")
        assert updated.fired_escalation_rules == ()
        assert updated.state_entered_at == TEN_DAYS_LATER

        assert escalation_service.run_escalation_sweep(TEN_DAYS_LATER + timedelta(days=4)) == []
        events = escalation_service.run_escalation_sweep(TEN_DAYS_LATER + timedelta(days=6))
        assert [e.new_level for e in events] == [2]

    def test_no_rules_means_no_work(self, repo, escalation_service):
        repo.add_claim(make_claim())
        assert escalation_service.run_escalation_sweep(TEN_DAYS_LATER) == []
        assert repo.writes == 0

    def test_defaults_to_clock(self, repo, notifier, config, clock):
        repo.escalation_rules.append(timeout_rule(days=5))
        repo.add_claim(make_claim())
        service = EscalationService(repo, notifier=notifier, config=config, clock=clock)
        assert service.run_escalation_sweep() == []
        clock.advance(int(timedelta(days=6).total_seconds()))
        assert len(service.run_escalation_sweep()) == 1

    def test_frequency_rule_loads_history(self, repo, escalation_service):
        rule = EscalationRule("busy", "Busy claimant", FrequencyTrigger(3, 30), "audit")
        repo.escalation_rules.append(rule)
        for past in make_history(3):
            repo.add_claim(replace(past, status=ClaimStatus.APPROVED))
        claim = repo.add_claim(make_claim())

        events = escalation_service.run_escalation_sweep(BASE_TIME + timedelta(hours=1))

        assert [e.claim_id for e in events] == [claim.claim_id]
        assert repo.history_calls >= 1

    def test_history_failure_skips_frequency_only(self, repo, escalation_service, captured_logs):
        repo.escalation_rules.extend([
            EscalationRule("busy", "Busy claimant", FrequencyTrigger(1, 30), "audit"),
            timeout_rule(days=5),
        ])
        repo.fail_history = True
        repo.add_claim(make_claim())

        events = escalation_service.run_escalation_sweep(TEN_DAYS_LATER)

        assert [e.rule_ids for e in events] == [("stale-5d",)]
        assert any(r["message"] == "history_unavailable" for r in captured_logs())


class TestEscalationNotifications:

    def test_original_approver_notified(self, repo, escalation_service, notifier):
        repo.escalation_rules.append(timeout_rule(days=5, notify_original_approver=True))
        claim = repo.add_claim(make_claim(current_approver_id="mgr-001"))

        [event] = escalation_service.run_escalation_sweep(TEN_DAYS_LATER)

        assert event.notified
        [(user_id, event_type, payload)] = notifier.sent
        assert user_id == "mgr-001"
        assert event_type == "claim_escalated"
        assert payload["claim_id"] == str(claim.claim_id)
        assert payload["escalated_to"] == "finance_manager"
        assert payload["escalation_level"] == 1

    def test_no_notification_without_previous_approver(self, repo, escalation_service, notifier):
        repo.escalation_rules.append(timeout_rule(days=5, notify_original_approver=True))
        repo.add_claim(make_claim())
        [event] = escalation_service.run_escalation_sweep(TEN_DAYS_LATER)
        assert not event.notified
        assert notifier.sent == []

    def test_notifier_failure_does_not_undo_escalation(self, repo, config, clock):
        repo.escalation_rules.append(timeout_rule(days=5, notify_original_approver=True))
        claim = repo.add_claim(make_claim(current_approver_id="mgr-001"))
        service = EscalationService(repo, notifier=FailingNotifier(), config=config, clock=clock)

        [event] = service.run_escalation_sweep(TEN_DAYS_LATER)

        assert not event.notified
        assert repo.get_claim(claim.claim_id).escalation_level == 1


class TestSweepFailures:

    def test_stale_claim_skipped(self, repo, escalation_service, monkeypatch, captured_logs):
        repo.escalation_rules.append(timeout_rule(days=5))
        first = repo.add_claim(make_claim())
        second = repo.add_claim(make_claim(submitted_at=BASE_TIME + timedelta(minutes=1)))
        original = repo.save_claim_transition

        def conflict_on_first(claim_id, *args, **kwargs):
            if claim_id == first.claim_id:
                raise StaleStateError(str(claim_id), "pending", "approved", 0, 1)
            return original(claim_id, *args, **kwargs)

        monkeypatch.setattr(repo, "save_claim_transition", conflict_on_first)

        events = escalation_service.run_escalation_sweep(TEN_DAYS_LATER)

        assert [e.claim_id for e in events] == [second.claim_id]
        assert any(r["message"] == "escalation_skipped_stale" for r in captured_logs())

    def test_repository_failure_logged_and_sweep_continues(self, repo, escalation_service, monkeypatch, captured_logs):
        repo.escalation_rules.append(timeout_rule(days=5))
        first = repo.add_claim(make_claim())
        repo.add_claim(make_claim(submitted_at=BASE_TIME + timedelta(minutes=1)))
        original = repo.get_claim

        def broken_first(claim_id):
            if claim_id == first.claim_id:
                raise ConnectionError("lost connection")
            return original(claim_id)

        monkeypatch.setattr(repo, "get_claim", broken_first)

        events = escalation_service.run_escalation_sweep(TEN_DAYS_LATER)

        assert len(events) == 1
        failures = [r for r in captured_logs() if r["message"] == "escalation_failed"]
        assert failures[0]["error_code"] == "REPOSITORY_ERROR"

    def test_sweep_logs_summary_with_sweep_id(self, repo, escalation_service, captured_logs):
        repo.escalation_rules.append(timeout_rule(days=5))
        repo.add_claim(make_claim())
        escalation_service.run_escalation_sweep(TEN_DAYS_LATER)
        summary = next(r for r in captured_logs() if r["message"] == "escalation_sweep_completed")
        assert summary["escalated"] == 1
        applied = next(r for r in captured_logs() if r["message"] == "escalation_applied")
        assert applied["sweep_id"] == summary["sweep_id"]


@pytest.fixture
def auto_reject_service(repo, notifier, clock):
    config = EngineConfig(workflow=WorkflowSettings(auto_reject_enabled=True, auto_reject_grace=timedelta(hours=72)))
    return EscalationService(repo, notifier=notifier, config=config, clock=clock)


class TestAutoRejectSweep:

    def test_disabled_by_default(self, repo, escalation_service):
        repo.add_claim(make_claim(receipt_count=0, fraud_flags=(AlertCode.MISSING_RECEIPT,)))
        assert escalation_service.run_auto_reject_sweep(TEN_DAYS_LATER) == []
        assert repo.writes == 0

    def test_rejects_receiptless_claim_after_grace(self, repo, auto_reject_service, notifier):
        claim = repo.add_claim(make_claim(receipt_count=0, fraud_flags=(AlertCode.MISSING_RECEIPT,)))

        [rejected] = auto_reject_service.run_auto_reject_sweep(BASE_TIME + timedelta(hours=73))

        assert rejected.claim_id == claim.claim_id
        assert rejected.status is ClaimStatus.REJECTED
        assert rejected.approved_by == "system"
        assert rejected.history[-1].action is HistoryAction.AUTO_REJECTED
        [(user_id, event_type, _)] = notifier.sent
        assert user_id == EMPLOYEE_ID
        assert event_type == "claim_rejected"

    def test_within_grace_untouched(self, repo, auto_reject_service):
        repo.add_claim(make_claim(receipt_count=0, fraud_flags=(AlertCode.MISSING_RECEIPT,)))
        assert auto_reject_service.run_auto_reject_sweep(BASE_TIME + timedelta(hours=72)) == []

    def test_claims_with_receipts_untouched(self, repo, auto_reject_service):
        repo.add_claim(make_claim(fraud_flags=(AlertCode.HIGH_RISK_CATEGORY,)))
        repo.add_claim(make_claim(
            status=ClaimStatus.INFO_REQUESTED,
            receipt_count=0,
            fraud_flags=(AlertCode.MISSING_RECEIPT,),
        ))
        assert auto_reject_service.run_auto_reject_sweep(TEN_DAYS_LATER) == []
