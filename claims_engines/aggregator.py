"""
claims_engines.aggregator -- Combine detector output into one score.

Responsibility:
    Sum the per-detector partial scores, clamp to [0, 100], and merge the
    alert lists in detector order with duplicates removed.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  No workflow knowledge.

Invariants enforced:
    - The aggregated score is always within [0, 100].
    - At most one alert per code; the first occurrence (detector order)
      wins.
"""

from __future__ import annotations

from collections.abc import Iterable

from claims_kernel.domain.review import Alert, DetectorResult

MIN_SCORE = 0
MAX_SCORE = 100


def clamp_score(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, value))


def merge_alerts(groups: Iterable[Iterable[Alert]]) -> tuple[Alert, ...]:
    """Concatenate alert groups, keeping the first alert for each code."""
    seen: set[str] = set()
    merged: list[Alert] = []
    for group in groups:
        for alert in group:
            if alert.code in seen:
                continue
            seen.add(alert.code)
            merged.append(alert)
    return tuple(merged)


def aggregate(results: Iterable[DetectorResult]) -> tuple[int, tuple[Alert, ...]]:
    """Return ``(score, alerts)`` for detector results given in detector order."""
    results = list(results)
    total = sum(r.score for r in results)
    return clamp_score(total), merge_alerts(r.alerts for r in results)
