"""
Notification change listener - keeps badge counts fresh without polling.

| Channel                 | Table          | Event  | Transport filter          | Reaction                    |
|-------------------------|----------------|--------|---------------------------|-----------------------------|
| messages-notifications  | messages       | INSERT | sender_id != user         | membership re-check, recount|
| documents-notifications | documents      | INSERT | uploaded_by != user       | recount                     |
| rfis-notifications      | rfis           | *      | -                         | recount                     |
| tenders-notifications   | tenders        | *      | -                         | recount                     |
| membership-changes      | project_users  | *      | -                         | recount                     |
| projects-cleanup        | projects       | DELETE | -                         | recount                     |

The message filter only excludes the user's own rows, so each message insert
is checked against the user's memberships before it can trigger a recount.
Every recount recomputes all four badges over the current scope.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from sitepulse.core.logging_config import logger
from sitepulse.models.document import Document
from sitepulse.models.message import Message
from sitepulse.models.project import Project, ProjectMembership
from sitepulse.models.rfi import RFI
from sitepulse.models.tender import Tender
from sitepulse.services.access_scope import AccessScopeResolver
from sitepulse.services.realtime.channel import ChannelStatus, RealtimeChannel
from sitepulse.services.realtime.events import ChangeEvent, ChangeEventType, ColumnFilter
from sitepulse.services.realtime.transport import RealtimeTransport


RecountCallback = Callable[[str], Awaitable[None]]


class NotificationChangeListener:
    """Owns the realtime channels for one user"""

    def __init__(
        self,
        transport: RealtimeTransport,
        resolver: AccessScopeResolver,
        on_change: RecountCallback,
    ):
        self._transport = transport
        self._resolver = resolver
        self._on_change = on_change
        self._channels: List[RealtimeChannel] = []
        self._closed = False
        self.user_id: Optional[str] = None

    @property
    def channels(self) -> List[RealtimeChannel]:
        return list(self._channels)

    @property
    def connection_status(self) -> ChannelStatus:
        """Combined status of all channels"""
        if not self._channels:
            return ChannelStatus.CLOSED if self._closed else ChannelStatus.DISCONNECTED

        statuses = {channel.status for channel in self._channels}
        if ChannelStatus.ERROR in statuses:
            return ChannelStatus.ERROR
        if statuses == {ChannelStatus.SUBSCRIBED}:
            return ChannelStatus.SUBSCRIBED
        if ChannelStatus.CONNECTING in statuses:
            return ChannelStatus.CONNECTING
        if statuses == {ChannelStatus.CLOSED}:
            return ChannelStatus.CLOSED
        return ChannelStatus.DISCONNECTED

    async def open(self, user_id: str) -> ChannelStatus:
        """Subscribe every channel for the user"""
        if self._channels:
            await self.close()

        self.user_id = user_id
        self._closed = False
        self._channels = [
            RealtimeChannel(
                name=f"messages-notifications:{user_id}",
                transport=self._transport,
                table=Message.__tablename__,
                event=ChangeEventType.INSERT,
                column_filter=ColumnFilter.neq("sender_id", user_id),
                handler=self._on_message_insert,
                on_status_change=self._log_status,
            ),
            RealtimeChannel(
                name=f"documents-notifications:{user_id}",
                transport=self._transport,
                table=Document.__tablename__,
                event=ChangeEventType.INSERT,
                column_filter=ColumnFilter.neq("uploaded_by", user_id),
                handler=self._recount,
                on_status_change=self._log_status,
            ),
            RealtimeChannel(
                name=f"rfis-notifications:{user_id}",
                transport=self._transport,
                table=RFI.__tablename__,
                handler=self._recount,
                on_status_change=self._log_status,
            ),
            RealtimeChannel(
                name=f"tenders-notifications:{user_id}",
                transport=self._transport,
                table=Tender.__tablename__,
                handler=self._recount,
                on_status_change=self._log_status,
            ),
            RealtimeChannel(
                name=f"membership-changes:{user_id}",
                transport=self._transport,
                table=ProjectMembership.__tablename__,
                handler=self._recount,
                on_status_change=self._log_status,
            ),
            RealtimeChannel(
                name=f"projects-cleanup:{user_id}",
                transport=self._transport,
                table=Project.__tablename__,
                event=ChangeEventType.DELETE,
                handler=self._recount,
                on_status_change=self._log_status,
            ),
        ]

        await asyncio.gather(*(channel.open() for channel in self._channels))
        status = self.connection_status
        logger.info(f"[Notifications] Realtime channels for {user_id}: {status.value}")
        return status

    async def close(self) -> None:
        """Release every channel"""
        channels, self._channels = self._channels, []
        await asyncio.gather(*(channel.close() for channel in channels))
        if channels:
            logger.info(f"[Notifications] Realtime channels closed for {self.user_id}")
            self._closed = True
        self.user_id = None

    async def _on_message_insert(self, change: ChangeEvent) -> None:
        user_id = self.user_id
        project_id = change.record.get("project_id")
        if user_id is None:
            return

        if not await self._resolver.is_member(user_id, project_id):
            logger.debug(f"[Notifications] Ignoring message in project {project_id}: {user_id} is not a member")
            return

        await self._recount(change)

    async def _recount(self, change: ChangeEvent) -> None:
        if self.user_id is None:
            return
        await self._on_change(f"{change.table}:{change.event.value}")

    def _log_status(self, channel: RealtimeChannel, status: ChannelStatus) -> None:
        if status == ChannelStatus.ERROR:
            logger.warning(f"[Notifications] Channel {channel.name} error: {channel.last_error}")
        else:
            logger.log_realtime_event(channel.name, status.value)
