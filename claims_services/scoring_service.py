"""
ScoringService -- loads the historical window and runs the scoring API.

Responsibility:
    Fetch an employee's bounded historical window through the repository
    port (cached in an explicit TTLCache), run ``score_claim`` and log the
    outcome.  The score itself is computed by the pure engine.

Architecture position:
    Services -- imperative shell.  No persistence of its own; the workflow
    executor writes the score.

Failure modes:
    - The historical window cannot be loaded  -> scoring continues with
      ``history=None`` (history-based detectors contribute nothing) and a
      ``history_unavailable`` warning is logged.
"""

from __future__ import annotations

from collections.abc import Sequence

from claims_config.schema import EngineConfig
from claims_engines.scoring import score_claim
from claims_kernel.domain.claim import Claim
from claims_kernel.domain.clock import Clock, SystemClock
from claims_kernel.domain.ports import ClaimRepository
from claims_kernel.domain.review import ScoringResult
from claims_kernel.logging_config import get_logger
from claims_services.cache import TTLCache

logger = get_logger("services.scoring")


class ScoringService:
    """Scores claims against their employee's cached historical window."""

    def __init__(
        self,
        repository: ClaimRepository,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        cache: TTLCache | None = None,
    ) -> None:
        self._repository = repository
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._cache = cache or TTLCache(
            ttl_seconds=self._config.history_cache_ttl_seconds,
            clock=self._clock,
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    def load_history(self, claim: Claim) -> Sequence[Claim] | None:
        """The employee's historical window ending at the claim's submission."""
        key = (claim.employee_id, claim.submitted_at)
        try:
            return self._cache.get_or_load(
                key,
                lambda: tuple(
                    self._repository.get_historical_claims(
                        claim.employee_id, self._config.history, claim.submitted_at,
                    )
                ),
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

    def score(self, claim: Claim) -> ScoringResult:
        history = self.load_history(claim)
        result = score_claim(claim, history, self._config)
        logger.info(
            "claim_scored",
            extra={
                "claim_id": str(claim.claim_id),
                "score": result.score,
                "risk_level": result.criteria.risk_level.value,
                "suggested_action": result.criteria.suggested_action.value,
                "alert_codes": list(result.alert_codes),
                "history_size": None if history is None else len(history),
            },
        )
        return result

    def invalidate_employee(self, employee_id: str) -> None:
        """Forget cached windows for an employee after one of their claims changed."""
        self._cache.invalidate_where(lambda key: key[0] == employee_id)
