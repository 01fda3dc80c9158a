"""
In-memory port implementations for service tests.

InMemoryClaimRepository mirrors SqlClaimRepository's contract: the
conditioned write checks status and version under a lock, bumps the
version and appends the history entry atomically.
"""

import threading
from dataclasses import replace
from datetime import timedelta

from claims_kernel.domain.claim import ClaimStatus
from claims_kernel.exceptions import ClaimNotFoundError, StaleStateError
from claims_services.claim_repository import WRITABLE_FIELDS


class InMemoryClaimRepository:
    """Thread-safe dict-backed ClaimRepository."""

    def __init__(self, claims=(), approval_rules=(), escalation_rules=()):
        self._lock = threading.Lock()
        self._claims = {c.claim_id: c for c in claims}
        self.approval_rules = list(approval_rules)
        self.escalation_rules = list(escalation_rules)
        self.writes = 0
        self.history_calls = 0
        self.fail_history = False

    def add_claim(self, claim):
        with self._lock:
            self._claims[claim.claim_id] = claim
        return claim

    def get_claim(self, claim_id):
        with self._lock:
            claim = self._claims.get(claim_id)
        if claim is None:
            raise ClaimNotFoundError(str(claim_id))
        return claim

    def get_historical_claims(self, employee_id, window, as_of):
        self.history_calls += 1
        if self.fail_history:
            raise ConnectionError("history store unavailable")
        start = as_of - timedelta(days=window.days)
        with self._lock:
            rows = [
                c for c in self._claims.values()
                if c.employee_id == employee_id and start <= c.submitted_at <= as_of
            ]
        rows.sort(key=lambda c: c.submitted_at, reverse=True)
        return tuple(rows[: window.max_claims])

    def save_claim_transition(
        self,
        claim_id,
        expected_status,
        new_status,
        fields,
        *,
        expected_version,
        history_entry=None,
    ):
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"not writable: {sorted(unknown)}")
        with self._lock:
            current = self._claims.get(claim_id)
            if current is None:
                raise ClaimNotFoundError(str(claim_id))
            if current.status != expected_status or current.version != expected_version:
                raise StaleStateError(
                    str(claim_id),
                    ClaimStatus(expected_status).value,
                    actual_status=current.status.value,
                    expected_version=expected_version,
                    actual_version=current.version,
                )
            history = current.history
            if history_entry is not None:
                history = (*history, history_entry)
            updated = replace(
                current,
                **dict(fields),
                status=ClaimStatus(new_status),
                version=current.version + 1,
                history=history,
            )
            self._claims[claim_id] = updated
            self.writes += 1
            return updated

    def get_active_approval_rules(self):
        return tuple(r for r in self.approval_rules if r.active)

    def get_active_escalation_rules(self):
        return tuple(r for r in self.escalation_rules if r.active)

    def get_open_claims(self, statuses):
        wanted = {ClaimStatus(s) for s in statuses}
        with self._lock:
            rows = [c for c in self._claims.values() if c.status in wanted]
        return tuple(sorted(rows, key=lambda c: c.submitted_at))


class RecordingNotifier:
    """Collects notifications as (user_id, event_type, payload) tuples."""

    def __init__(self):
        self._lock = threading.Lock()
        self.sent = []

    def notify(self, user_id, event_type, payload):
        with self._lock:
            self.sent.append((user_id, event_type, dict(payload)))

    def events(self, event_type=None):
        return [s for s in self.sent if event_type is None or s[1] == event_type]


class FailingNotifier:
    def notify(self, user_id, event_type, payload):
        raise RuntimeError("mail relay down")


class StaticReviewerDirectory:
    def __init__(self, reviewers=()):
        self._reviewers = {r.actor_id: r for r in reviewers}

    def get_reviewer(self, actor_id):
        return self._reviewers.get(actor_id)
