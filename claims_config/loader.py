"""
Configuration Loader (``claims_config.loader``).

Responsibility
--------------
Loads the engine YAML and parses it into the frozen ``claims_config.schema``
dataclasses and validated domain rules.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel's
domain rule types; the kernel never imports this package.

Invariants enforced
-------------------
* Unknown keys are rejected with ``ValueError`` rather than ignored, so a
  misspelled weight never silently falls back to its default.
* Every parsed object is a frozen dataclass; rules are validated on
  construction and malformed rule entries raise ``InvalidRuleError``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad setting value or unknown key  -> ``ValueError``.
* Bad rule entry  -> ``InvalidRuleError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from claims_config.schema import (
    ApprovalTier,
    DetectorSettings,
    EngineConfig,
    RiskThresholds,
    WorkflowSettings,
)
from claims_kernel.domain.ports import HistoryWindow, ReviewerRole
from claims_kernel.domain.rules import (
    AmountTrigger,
    ApprovalActions,
    ApprovalConditions,
    ApprovalRule,
    CategoryTrigger,
    EscalationRule,
    EscalationTrigger,
    FrequencyTrigger,
    TimeoutTrigger,
)
from claims_kernel.exceptions import InvalidRuleError

_ENGINE_SECTIONS = frozenset({
    "detectors",
    "thresholds",
    "workflow",
    "history",
    "history_cache_ttl_seconds",
    "approval_rules",
    "escalation_rules",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse decimal from {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Decimal must be finite: {value!r}")
    return result


def _check_keys(section: str, data: dict[str, Any], allowed: set[str] | frozenset[str]) -> None:
    unknown = set(data) - set(allowed)
    if unknown:
        raise ValueError(f"Unknown {section} keys: {sorted(unknown)}")


def _coerce_like(default: Any, value: Any, name: str) -> Any:
    """Coerce a YAML value to the type of the field's default."""
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be a boolean, got {value!r}")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        return value
    if isinstance(default, Decimal):
        return parse_decimal(value)
    if isinstance(default, tuple):
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"{name} must be a list, got {value!r}")
        return tuple(value)
    return value


def parse_detector_settings(data: dict[str, Any]) -> DetectorSettings:
    """Parse ``DetectorSettings``; omitted keys keep their defaults."""
    defaults = DetectorSettings()
    names = {f.name for f in fields(DetectorSettings)}
    _check_keys("detectors", data, names)

    kwargs: dict[str, Any] = {}
    for name, value in data.items():
        if name == "holidays":
            kwargs[name] = tuple(parse_date(v) for v in value or ())
        elif name == "high_risk_categories":
            kwargs[name] = tuple(str(v) for v in value or ())
        else:
            kwargs[name] = _coerce_like(getattr(defaults, name), value, name)
    return DetectorSettings(**kwargs)


def parse_thresholds(data: dict[str, Any]) -> RiskThresholds:
    _check_keys("thresholds", data, {"low", "medium", "high", "critical"})
    defaults = RiskThresholds()
    return RiskThresholds(**{
        name: _coerce_like(getattr(defaults, name), value, name)
        for name, value in data.items()
    })


def parse_workflow_settings(data: dict[str, Any]) -> WorkflowSettings:
    """Parse ``WorkflowSettings``; the grace period is given in hours."""
    _check_keys("workflow", data, {
        "auto_reject_enabled",
        "auto_reject_grace_hours",
        "high_value_review_limit",
        "system_actor_id",
        "notify_employee_on_decision",
        "approval_tiers",
    })
    defaults = WorkflowSettings()
    kwargs: dict[str, Any] = {}
    if "auto_reject_enabled" in data:
        kwargs["auto_reject_enabled"] = _coerce_like(
            False, data["auto_reject_enabled"], "auto_reject_enabled",
        )
    if "auto_reject_grace_hours" in data:
        kwargs["auto_reject_grace"] = timedelta(hours=float(data["auto_reject_grace_hours"]))
    if "high_value_review_limit" in data:
        kwargs["high_value_review_limit"] = parse_decimal(data["high_value_review_limit"])
    if "system_actor_id" in data:
        kwargs["system_actor_id"] = str(data["system_actor_id"])
    if "notify_employee_on_decision" in data:
        kwargs["notify_employee_on_decision"] = _coerce_like(
            defaults.notify_employee_on_decision,
            data["notify_employee_on_decision"],
            "notify_employee_on_decision",
        )
    if "approval_tiers" in data:
        kwargs["approval_tiers"] = tuple(
            parse_approval_tier(t) for t in data["approval_tiers"] or ()
        )
    return WorkflowSettings(**kwargs)


def parse_approval_tier(data: dict[str, Any]) -> ApprovalTier:
    """Parse one ``ApprovalTier``: ``{role: hr, amount_above: 5000, categories: [Travel]}``."""
    _check_keys("approval tier", data, {"role", "amount_above", "categories"})
    if "role" not in data:
        raise ValueError("approval tier role is required")
    try:
        role = ReviewerRole(str(data["role"]))
    except ValueError as exc:
        raise ValueError(f"Unknown approval tier role {data['role']!r}") from exc
    amount_above = data.get("amount_above")
    return ApprovalTier(
        role=role,
        amount_above=parse_decimal(amount_above) if amount_above is not None else None,
        categories=tuple(str(c) for c in data.get("categories") or ()),
    )


def parse_history_window(data: dict[str, Any]) -> HistoryWindow:
    _check_keys("history", data, {"days", "max_claims"})
    defaults = HistoryWindow()
    return HistoryWindow(
        days=_coerce_like(defaults.days, data.get("days", defaults.days), "days"),
        max_claims=_coerce_like(
            defaults.max_claims, data.get("max_claims", defaults.max_claims), "max_claims",
        ),
    )


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse an ``EngineConfig`` from a dict.

    Rule sections are accepted (so one file can carry both) but not part
    of ``EngineConfig``; use ``parse_rules`` for them.
    """
    _check_keys("engine", data, _ENGINE_SECTIONS)
    ttl = data.get("history_cache_ttl_seconds", 60)
    return EngineConfig(
        detectors=parse_detector_settings(data.get("detectors") or {}),
        thresholds=parse_thresholds(data.get("thresholds") or {}),
        workflow=parse_workflow_settings(data.get("workflow") or {}),
        history=parse_history_window(data.get("history") or {}),
        history_cache_ttl_seconds=_coerce_like(60, ttl, "history_cache_ttl_seconds"),
        checksum=compute_checksum(data),
    )


def parse_approval_rule(data: dict[str, Any]) -> ApprovalRule:
    """
    Parse an ``ApprovalRule``.

    Expected shape::

        id: small-fuel
        name: Small fuel claims
        conditions: {max_amount: 500, categories: [Fuel]}
        actions: {auto_approve: true}
    """
    rule_id = str(data.get("id", ""))
    try:
        _check_keys("approval rule", data, {"id", "name", "conditions", "actions", "active"})
        cond = data.get("conditions") or {}
        acts = data.get("actions") or {}
        _check_keys("approval conditions", cond, {"max_amount", "categories", "employees"})
        _check_keys(
            "approval actions", acts,
            {"auto_approve", "require_additional_approval", "flag_for_review"},
        )
        max_amount = cond.get("max_amount")
        conditions = ApprovalConditions(
            max_amount=parse_decimal(max_amount) if max_amount is not None else None,
            categories=tuple(str(c) for c in cond.get("categories") or ()),
            employees=tuple(str(e) for e in cond.get("employees") or ()),
        )
        actions = ApprovalActions(**{
            name: _coerce_like(False, acts.get(name, False), name)
            for name in ("auto_approve", "require_additional_approval", "flag_for_review")
        })
        active = _coerce_like(True, data.get("active", True), "active")
    except ValueError as exc:
        raise InvalidRuleError(rule_id or "<missing id>", str(exc)) from exc
    return ApprovalRule(
        rule_id=rule_id,
        name=str(data.get("name", rule_id)),
        conditions=conditions,
        actions=actions,
        active=active,
    )


def parse_trigger(rule_id: str, data: dict[str, Any]) -> EscalationTrigger:
    """Parse one trigger variant, selected by its ``type`` key."""
    kind = data.get("type")
    try:
        if kind == "timeout":
            _check_keys("timeout trigger", data, {"type", "days", "hours"})
            threshold = timedelta(
                days=float(data.get("days", 0)),
                hours=float(data.get("hours", 0)),
            )
            return TimeoutTrigger(threshold=threshold)
        if kind == "amount":
            _check_keys("amount trigger", data, {"type", "threshold"})
            return AmountTrigger(threshold=parse_decimal(data["threshold"]))
        if kind == "category":
            _check_keys("category trigger", data, {"type", "categories"})
            return CategoryTrigger(categories=tuple(str(c) for c in data.get("categories") or ()))
        if kind == "frequency":
            _check_keys("frequency trigger", data, {"type", "threshold", "window_days"})
            return FrequencyTrigger(
                threshold=int(data["threshold"]),
                window_days=int(data.get("window_days", 30)),
            )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidRuleError(rule_id, f"bad {kind} trigger: {exc}") from exc
    raise InvalidRuleError(rule_id, f"unknown trigger type {kind!r}")


def parse_escalation_rule(data: dict[str, Any]) -> EscalationRule:
    """
    Parse an ``EscalationRule``.

    Expected shape::

        id: stale-5d
        name: Pending for five days
        trigger: {type: timeout, days: 5}
        escalate_to: finance_manager
        notify_original_approver: true
    """
    rule_id = str(data.get("id", ""))
    try:
        _check_keys(
            "escalation rule", data,
            {"id", "name", "trigger", "escalate_to", "notify_original_approver", "active"},
        )
        notify = _coerce_like(
            False, data.get("notify_original_approver", False), "notify_original_approver",
        )
        active = _coerce_like(True, data.get("active", True), "active")
    except ValueError as exc:
        raise InvalidRuleError(rule_id or "<missing id>", str(exc)) from exc
    return EscalationRule(
        rule_id=rule_id,
        name=str(data.get("name", rule_id)),
        trigger=parse_trigger(rule_id, data.get("trigger") or {}),
        escalate_to=str(data.get("escalate_to") or ""),
        notify_original_approver=notify,
        active=active,
    )


def parse_rules(
    data: dict[str, Any],
) -> tuple[tuple[ApprovalRule, ...], tuple[EscalationRule, ...]]:
    """Parse the ``approval_rules`` and ``escalation_rules`` sections."""
    approval = tuple(parse_approval_rule(r) for r in data.get("approval_rules") or ())
    escalation = tuple(parse_escalation_rule(r) for r in data.get("escalation_rules") or ())
    for kind, rules in (("approval", approval), ("escalation", escalation)):
        seen: set[str] = set()
        for rule in rules:
            if rule.rule_id in seen:
                raise InvalidRuleError(rule.rule_id, f"duplicate {kind} rule id")
            seen.add(rule.rule_id)
    return approval, escalation


def load_engine_config(path: Path) -> EngineConfig:
    """Load and parse an engine YAML file."""
    return parse_engine_config(load_yaml_file(path))


def load_rules(path: Path) -> tuple[tuple[ApprovalRule, ...], tuple[EscalationRule, ...]]:
    """Load approval and escalation rules from a YAML file."""
    return parse_rules(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
