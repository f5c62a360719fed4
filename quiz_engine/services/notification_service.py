"""
quiz_engine/services/notification_service.py
Fire-and-forget notifications to students and instructors
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    recipient_id: str
    type: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    def send(self, notification: Notification) -> None:
        ...


class LoggingNotificationSink:
    """Default sink: writes the notification to the log"""

    def send(self, notification: Notification) -> None:
        logger.info(f"Notification {notification.type} -> {notification.recipient_id}: {asdict(notification)}")


def notify_safely(sink: NotificationSink, notification: Notification) -> None:
    """Deliver a notification; a failing sink never fails the caller"""
    try:
        sink.send(notification)
    except Exception as e:
        logger.warning(f"Notification {notification.type} to {notification.recipient_id} failed: {e!r}")
