from sitepulse.services.realtime.events import ChangeEvent, ChangeEventType, ColumnFilter, FilterOperator
from sitepulse.services.realtime.transport import (
    RealtimeTransport,
    LocalRealtimeTransport,
    RedisRealtimeTransport,
    Subscription,
    TransportStatus,
    create_transport,
)
from sitepulse.services.realtime.channel import RealtimeChannel, ChannelStatus
from sitepulse.services.realtime.listener import NotificationChangeListener
from sitepulse.services.realtime.capture import ChangeCapture, install_change_capture, WATCHED_TABLES

__all__ = [
    "ChangeEvent",
    "ChangeEventType",
    "ColumnFilter",
    "FilterOperator",
    "RealtimeTransport",
    "LocalRealtimeTransport",
    "RedisRealtimeTransport",
    "Subscription",
    "TransportStatus",
    "create_transport",
    "RealtimeChannel",
    "ChannelStatus",
    "NotificationChangeListener",
    "ChangeCapture",
    "install_change_capture",
    "WATCHED_TABLES",
]
