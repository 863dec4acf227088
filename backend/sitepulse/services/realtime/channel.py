"""
RealtimeChannel - one owned subscription with an explicit lifecycle.

    disconnected -> connecting -> subscribed -> closed
                         \\            |
                          +-> error <--+

open() subscribes through the transport, close() releases it. Transport
status callbacks drive the state; errors are recorded, never raised, and
nothing here retries.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from sitepulse.core.logging_config import logger
from sitepulse.services.realtime.events import ChangeEvent, ChangeEventType, ColumnFilter
from sitepulse.services.realtime.transport import RealtimeTransport, Subscription, TransportStatus


class ChannelStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
    CLOSED = "closed"


ChangeHandler = Callable[[ChangeEvent], Union[None, Awaitable[None]]]
StatusListener = Callable[["RealtimeChannel", ChannelStatus], None]


class RealtimeChannel:
    """A named subscription to one table"""

    def __init__(
        self,
        name: str,
        transport: RealtimeTransport,
        table: str,
        handler: ChangeHandler,
        event: Union[ChangeEventType, str] = ChangeEventType.ALL,
        column_filter: Optional[ColumnFilter] = None,
        on_status_change: Optional[StatusListener] = None,
    ):
        self.name = name
        self.table = table
        self.event = ChangeEventType(event)
        self.column_filter = column_filter
        self._transport = transport
        self._handler = handler
        self._on_status_change = on_status_change
        self._subscription: Optional[Subscription] = None
        self._status = ChannelStatus.DISCONNECTED
        self.last_error: Optional[str] = None

    @property
    def status(self) -> ChannelStatus:
        return self._status

    @property
    def is_subscribed(self) -> bool:
        return self._status == ChannelStatus.SUBSCRIBED

    async def open(self) -> ChannelStatus:
        """Subscribe; returns the resulting status"""
        if self._status in (ChannelStatus.CONNECTING, ChannelStatus.SUBSCRIBED):
            return self._status

        self._set_status(ChannelStatus.CONNECTING)
        try:
            self._subscription = await self._transport.subscribe(
                table=self.table,
                event=self.event,
                column_filter=self.column_filter,
                callback=self._deliver,
                on_status=self._on_transport_status,
            )
        except asyncio.TimeoutError:
            self._on_transport_status(TransportStatus.TIMED_OUT)
        except Exception as e:
            self.last_error = str(e)
            self._on_transport_status(TransportStatus.CHANNEL_ERROR)

        return self._status

    async def close(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            try:
                await self._transport.unsubscribe(subscription)
            except Exception as e:
                logger.warning(f"[Realtime] {self.name}: unsubscribe failed: {e}")
        self._set_status(ChannelStatus.CLOSED)

    def _on_transport_status(self, status: TransportStatus) -> None:
        logger.log_realtime_event(self.name, status.value, table=self.table)

        if status == TransportStatus.SUBSCRIBED:
            if self._status == ChannelStatus.CONNECTING:
                self._set_status(ChannelStatus.SUBSCRIBED)
        elif status in (TransportStatus.CHANNEL_ERROR, TransportStatus.TIMED_OUT):
            if self._status != ChannelStatus.CLOSED:
                self.last_error = self.last_error or status.value
                logger.warning(f"[Realtime] {self.name}: {status.value}")
                self._set_status(ChannelStatus.ERROR)
        elif status == TransportStatus.CLOSED:
            self._set_status(ChannelStatus.CLOSED)

    async def _deliver(self, change: ChangeEvent) -> None:
        if self._status == ChannelStatus.CLOSED:
            return
        try:
            result = self._handler(change)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.log_error_with_context(e, context=f"realtime.{self.name}")

    def _set_status(self, status: ChannelStatus) -> None:
        if status == self._status:
            return
        self._status = status
        if self._on_status_change is not None:
            try:
                self._on_status_change(self, status)
            except Exception as e:
                logger.error(f"[Realtime] {self.name}: status listener error: {e}")

    def __repr__(self):
        return f"<RealtimeChannel {self.name} {self.table}:{self.event.value} {self._status.value}>"
