"""
Notification Service - the single source of truth for badge counts

NotificationAggregator holds the four unread counts for one signed-in user:

    start(user_id) -> scope resolve -> 4 counters in parallel -> publish
    realtime change -> (membership re-check) -> recount -> publish
    stop() -> channels released, counts reset

Publishing replaces all four counts at once, so listeners only ever see a
complete snapshot. Every refresh carries a sequence number; a result older
than the last published one is dropped, so out-of-order responses cannot
overwrite fresher counts.

Nothing here raises to the caller: failures degrade to zero counts, stale
counts or an error connection status.

NotificationHub keeps one aggregator per connected user for the API layer.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from sitepulse.core.exceptions import InvalidNotificationTypeError
from sitepulse.core.logging_config import logger
from sitepulse.schemas.notifications import NotificationCounts, NotificationType
from sitepulse.services.access_scope import AccessScopeResolver
from sitepulse.services.notification_counters import NotificationCounters
from sitepulse.services.realtime.channel import ChannelStatus
from sitepulse.services.realtime.listener import NotificationChangeListener
from sitepulse.services.realtime.transport import RealtimeTransport


CountsListener = Callable[[NotificationCounts], None]


class NotificationAggregator:
    """
    Badge counts for one user with an explicit start/stop lifecycle.

    Use cases:
    - Sidebar and header badges
    - Optimistic mark-as-read while a detail view is opened
    - Manual refresh after a bulk action
    """

    def __init__(
        self,
        resolver: AccessScopeResolver,
        counters: NotificationCounters,
        transport: Optional[RealtimeTransport] = None,
    ):
        self._resolver = resolver
        self._counters = counters
        self._transport = transport
        self._change_listener: Optional[NotificationChangeListener] = None

        self._counts = NotificationCounts.zero()
        self._user_id: Optional[str] = None
        self._listeners: List[CountsListener] = []

        # Refresh ordering
        self._issued_sequence = 0
        self._published_sequence = 0
        # Bumped on start/stop so results for a previous identity are dropped
        self._generation = 0

    # ========== State ==========

    @property
    def counts(self) -> NotificationCounts:
        return self._counts

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_started(self) -> bool:
        return self._user_id is not None

    @property
    def connection_status(self) -> ChannelStatus:
        if self._change_listener is None:
            return ChannelStatus.DISCONNECTED
        return self._change_listener.connection_status

    def add_listener(self, listener: CountsListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: CountsListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ========== Lifecycle ==========

    async def start(self, user_id: str) -> NotificationCounts:
        """
        Begin tracking counts for a user.

        Any previous user's state is torn down first; counts read zero until
        the first refresh resolves.
        """
        if self._user_id is not None:
            await self.stop()

        self._generation += 1
        self._user_id = user_id
        self._set_counts(NotificationCounts.zero())
        logger.info(f"[Notifications] Started for user {user_id}")

        if self._transport is not None:
            self._change_listener = NotificationChangeListener(
                transport=self._transport,
                resolver=self._resolver,
                on_change=self._on_realtime_change,
            )
            await self._change_listener.open(user_id)

        return await self.refresh_counts()

    async def stop(self) -> None:
        """Release realtime channels and forget the user"""
        listener, self._change_listener = self._change_listener, None
        if listener is not None:
            await listener.close()

        previous_user = self._user_id
        self._generation += 1
        self._user_id = None
        self._set_counts(NotificationCounts.zero())
        if previous_user is not None:
            logger.info(f"[Notifications] Stopped for user {previous_user}")

    # ========== Operations ==========

    async def refresh_counts(self) -> NotificationCounts:
        """
        Recompute all four counts from scratch and publish them together.

        Safe to call any number of times; never raises.
        """
        user_id = self._user_id
        if user_id is None:
            return self._counts

        self._issued_sequence += 1
        sequence = self._issued_sequence
        generation = self._generation

        try:
            scope = await self._resolver.resolve(user_id)
            counts = await self._counters.count_all(scope, user_id)
        except Exception as e:
            logger.log_error_with_context(e, context="notifications.refresh_counts", user_id=user_id)
            return self._counts

        self._publish(counts, sequence, generation)
        return self._counts

    def mark_as_read(self, notification_type: Any, entity_id: Optional[str] = None) -> bool:
        """
        Optimistically decrement one badge (never below zero).

        Local only: the next refresh recomputes from the store.

        Returns:
            False when the type is not recognised (counts unchanged)
        """
        parsed = NotificationType.parse(notification_type)
        if parsed is None:
            logger.warning(
                f"[Notifications] mark_as_read rejected: {InvalidNotificationTypeError(notification_type).message}"
            )
            return False

        self._set_counts(self._counts.with_count(parsed, self._counts.get(parsed) - 1))
        logger.debug(f"[Notifications] Marked {parsed.value} read" + (f" ({entity_id})" if entity_id else ""))
        return True

    def mark_all_as_read(self, notification_type: Any) -> bool:
        """Clear one badge entirely (e.g. when its tab is opened)"""
        parsed = NotificationType.parse(notification_type)
        if parsed is None:
            logger.warning(
                f"[Notifications] mark_all_as_read rejected: {InvalidNotificationTypeError(notification_type).message}"
            )
            return False

        self._set_counts(self._counts.with_count(parsed, 0))
        return True

    # ========== Internals ==========

    async def _on_realtime_change(self, reason: str) -> None:
        logger.debug(f"[Notifications] Recount triggered by {reason}")
        await self.refresh_counts()

    def _publish(self, counts: NotificationCounts, sequence: int, generation: int) -> bool:
        if generation != self._generation:
            logger.debug(f"[Notifications] Dropping refresh #{sequence} from a previous session")
            return False
        if sequence < self._published_sequence:
            logger.debug(
                f"[Notifications] Dropping stale refresh #{sequence} (published #{self._published_sequence})"
            )
            return False

        self._published_sequence = sequence
        self._set_counts(counts)
        return True

    def _set_counts(self, counts: NotificationCounts) -> None:
        if counts == self._counts:
            return
        self._counts = counts
        for listener in list(self._listeners):
            try:
                listener(counts)
            except Exception as e:
                logger.error(f"[Notifications] Counts listener error: {e}")


AggregatorFactory = Callable[[Optional[RealtimeTransport]], NotificationAggregator]


@dataclass
class _HubEntry:
    aggregator: NotificationAggregator
    started: "asyncio.Future[Any]"
    references: int = 0

    @property
    def running(self) -> bool:
        return self.started.done() and not self.started.cancelled() and self.started.exception() is None


class NotificationHub:
    """
    One live aggregator per connected user.

    Aggregators are reference counted: the first acquire() starts one (with
    realtime channels), the last release() stops it. A start runs in its own
    task; later acquires for the same user wait on that task, acquires for
    other users do not.
    """

    def __init__(self, factory: AggregatorFactory, transport: Optional[RealtimeTransport] = None):
        self._factory = factory
        self._transport = transport
        self._entries: Dict[str, _HubEntry] = {}

    @property
    def active_users(self) -> List[str]:
        return list(self._entries)

    def get(self, user_id: str) -> Optional[NotificationAggregator]:
        """The user's aggregator once its start has completed"""
        entry = self._entries.get(user_id)
        return entry.aggregator if entry is not None and entry.running else None

    async def acquire(self, user_id: str) -> NotificationAggregator:
        entry = self._entries.get(user_id)
        if entry is None or (entry.started.done() and not entry.running):
            aggregator = self._factory(self._transport)
            entry = _HubEntry(aggregator=aggregator, started=asyncio.ensure_future(aggregator.start(user_id)))
            self._entries[user_id] = entry
        entry.references += 1

        try:
            await asyncio.shield(entry.started)
        except BaseException:
            await self._release(user_id, entry)
            raise
        return entry.aggregator

    async def release(self, user_id: str) -> None:
        entry = self._entries.get(user_id)
        if entry is not None:
            await self._release(user_id, entry)

    async def _release(self, user_id: str, entry: _HubEntry) -> None:
        entry.references -= 1
        if entry.references > 0:
            return
        if self._entries.get(user_id) is entry:
            del self._entries[user_id]
        await self._stop(entry)

    @staticmethod
    async def _stop(entry: _HubEntry) -> None:
        if not entry.started.done():
            entry.started.cancel()
        await asyncio.wait({entry.started})
        await entry.aggregator.stop()

    @asynccontextmanager
    async def borrow(self, user_id: str) -> AsyncIterator[NotificationAggregator]:
        """
        The user's live aggregator if one exists, otherwise a short-lived
        one without realtime channels.
        """
        live = self.get(user_id)
        if live is not None:
            yield live
            return

        aggregator = self._factory(None)
        await aggregator.start(user_id)
        try:
            yield aggregator
        finally:
            await aggregator.stop()

    async def shutdown(self) -> None:
        entries, self._entries = list(self._entries.values()), {}
        for entry in entries:
            await self._stop(entry)
        logger.info(f"[Notifications] Hub shut down ({len(entries)} aggregator(s) stopped)")


def create_notification_hub(
    session_factory: Callable[[], Any],
    transport: Optional[RealtimeTransport] = None,
) -> NotificationHub:
    """Wire resolver, counters and transport into a hub"""
    resolver = AccessScopeResolver(session_factory)
    counters = NotificationCounters(session_factory)

    def factory(hub_transport: Optional[RealtimeTransport]) -> NotificationAggregator:
        return NotificationAggregator(resolver, counters, hub_transport)

    return NotificationHub(factory, transport)
