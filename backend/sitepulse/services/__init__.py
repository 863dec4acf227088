from sitepulse.services.access_scope import AccessScopeResolver
from sitepulse.services.notification_counters import NotificationCounters
from sitepulse.services.notification_service import (
    NotificationAggregator,
    NotificationHub,
    create_notification_hub,
)

__all__ = [
    "AccessScopeResolver",
    "NotificationCounters",
    "NotificationAggregator",
    "NotificationHub",
    "create_notification_hub",
]
