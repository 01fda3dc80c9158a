"""
Notification adapters.

``LoggingNotifier`` is the bundled NotificationPort: it writes each
notification as a structured log line.  ``safe_notify`` is how services
dispatch: fire-and-forget, a failing notifier is logged and never blocks
the transition that triggered it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from claims_kernel.domain.ports import NotificationPort
from claims_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

EVENT_CLAIM_APPROVED = "claim_approved"
EVENT_CLAIM_REJECTED = "claim_rejected"
EVENT_CLAIM_INFO_REQUESTED = "claim_info_requested"
EVENT_CLAIM_RESUBMITTED = "claim_resubmitted"
EVENT_CLAIM_ESCALATED = "claim_escalated"


class LoggingNotifier:
    """NotificationPort that records notifications in the log."""

    def notify(self, user_id: str, event_type: str, payload: Mapping[str, Any]) -> None:
        logger.info(
            "notification_sent",
            extra={
                "recipient_id": user_id,
                "event_type": event_type,
                "payload": dict(payload),
            },
        )


def safe_notify(
    notifier: NotificationPort | None,
    user_id: str | None,
    event_type: str,
    payload: Mapping[str, Any],
) -> bool:
    """Send one notification; return False (and log) instead of raising."""
    if notifier is None or not user_id:
        return False
    try:
        notifier.notify(user_id, event_type, payload)
    except Exception as exc:
        logger.warning(
            "notification_failed",
            extra={
                "recipient_id": user_id,
                "event_type": event_type,
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        return False
    return True
