"""
Pytest fixtures for the claims test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- A deterministic clock
- In-memory repository, notifier and reviewer directory
- Wired ScoringService / ClaimWorkflow / EscalationService
- An in-memory SQLite database for the SQLAlchemy repository tests
"""

import json
import logging
from io import StringIO

import pytest

from claims_config.schema import EngineConfig
from claims_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from claims_kernel.domain.clock import DeterministicClock
from claims_kernel.domain.ports import Reviewer, ReviewerRole
from claims_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from claims_services.claim_repository import SqlClaimRepository
from claims_services.escalation_service import EscalationService
from claims_services.scoring_service import ScoringService
from claims_services.workflow_executor import ClaimWorkflow
from tests.factories import ADMIN_ID, BASE_TIME, EMPLOYEE_ID, HR_ID, MANAGER_ID
from tests.fakes import InMemoryClaimRepository, RecordingNotifier, StaticReviewerDirectory


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture claims logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.submit_decision(...)
            logs = captured_logs()
            assert any(r["message"] == "claim_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("claims")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(BASE_TIME)


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def repo():
    return InMemoryClaimRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def directory():
    return StaticReviewerDirectory([
        Reviewer(ADMIN_ID, ReviewerRole.ADMIN),
        Reviewer(HR_ID, ReviewerRole.HR),
        Reviewer(MANAGER_ID, ReviewerRole.MANAGER, department="operations"),
        Reviewer("mgr-sales", ReviewerRole.MANAGER, department="sales"),
        Reviewer(EMPLOYEE_ID, ReviewerRole.EMPLOYEE, department="operations"),
        Reviewer("emp-002", ReviewerRole.EMPLOYEE, department="operations"),
        Reviewer("fm-001", ReviewerRole.MANAGER, department="finance"),
    ])


@pytest.fixture
def scoring_service(repo, config, clock):
    return ScoringService(repo, config=config, clock=clock)


@pytest.fixture
def workflow(repo, scoring_service, notifier, config, clock):
    """Workflow without a reviewer directory (any non-owner may decide)."""
    return ClaimWorkflow(
        repo,
        scoring_service=scoring_service,
        notifier=notifier,
        config=config,
        clock=clock,
    )


@pytest.fixture
def escalation_service(repo, notifier, config, clock):
    return EscalationService(repo, notifier=notifier, config=config, clock=clock)


# =============================================================================
# SQLite fixtures
# =============================================================================


@pytest.fixture
def sql_session_factory():
    """Fresh in-memory SQLite schema per test."""
    init_engine_from_url("sqlite://")
    create_tables()
    yield get_session_factory()
    reset_engine()


@pytest.fixture
def sql_repo(sql_session_factory):
    return SqlClaimRepository(sql_session_factory)
