from sitepulse.schemas.notifications import (
    NotificationType,
    NotificationCounts,
    NotificationCountsResponse,
    MarkAsReadRequest,
    MarkAsReadResponse,
    CountsMessage,
)

__all__ = [
    "NotificationType",
    "NotificationCounts",
    "NotificationCountsResponse",
    "MarkAsReadRequest",
    "MarkAsReadResponse",
    "CountsMessage",
]
