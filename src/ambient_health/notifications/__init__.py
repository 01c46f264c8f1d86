"""Notification sub-package — priority-gated alert delivery."""

from ambient_health.notifications.handlers import (
    DeliveryReport,
    NotificationDispatcher,
    NotificationHandler,
    create_dispatcher,
)

__all__ = ["DeliveryReport", "NotificationDispatcher", "NotificationHandler", "create_dispatcher"]
