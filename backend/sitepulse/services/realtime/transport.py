"""
Realtime transports - deliver row change events to subscribers.

Two implementations share one contract:

- RedisRealtimeTransport: one Redis pub/sub channel per table
  ("{prefix}:{table}"), JSON payloads, a single reader task that hands
  each message to its own delivery task.
- LocalRealtimeTransport: in-process fan-out for single-node deployments
  and tests.

Subscriptions are filtered inside the transport (table, event type and an
optional ColumnFilter) so callbacks only see matching changes. Status
callbacks receive SUBSCRIBED / CHANNEL_ERROR / TIMED_OUT / CLOSED.

Reconnection is not handled here: a failed reader reports CHANNEL_ERROR and
stops.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.asyncio.client import PubSub

from sitepulse.core.config import settings
from sitepulse.core.exceptions import ChannelSubscribeError, RealtimeError
from sitepulse.core.logging_config import logger
from sitepulse.services.realtime.events import ChangeEvent, ChangeEventType, ColumnFilter


class TransportStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]
StatusCallback = Callable[[TransportStatus], None]


@dataclass
class Subscription:
    """Handle returned by RealtimeTransport.subscribe"""
    id: str
    table: str
    event: ChangeEventType
    column_filter: Optional[ColumnFilter]
    callback: ChangeCallback
    on_status: Optional[StatusCallback] = None

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if self.event != ChangeEventType.ALL and change.event != self.event:
            return False
        if self.column_filter is not None and not self.column_filter.matches(change):
            return False
        return True


class RealtimeTransport(ABC):
    """Base transport: subscription bookkeeping and filtered dispatch"""

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}
        self._tables: Dict[str, Set[str]] = defaultdict(set)  # table -> subscription ids
        self._lock = asyncio.Lock()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def connect(self) -> None:
        """Open the underlying connection (no-op by default)"""

    async def subscribe(
        self,
        table: str,
        event: Union[ChangeEventType, str] = ChangeEventType.ALL,
        column_filter: Optional[ColumnFilter] = None,
        callback: Optional[ChangeCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> Subscription:
        """
        Subscribe to changes on a table.

        Args:
            table: Table name
            event: INSERT, UPDATE, DELETE or "*"
            column_filter: Optional predicate evaluated before delivery
            callback: Called (and awaited if async) with each matching change
            on_status: Receives TransportStatus updates for this subscription

        Returns:
            Subscription handle for unsubscribe()

        Raises:
            ChannelSubscribeError / asyncio.TimeoutError if the transport
            could not subscribe
        """
        if callback is None:
            raise ValueError("callback is required")

        subscription = Subscription(
            id=str(uuid.uuid4()),
            table=table,
            event=ChangeEventType(event),
            column_filter=column_filter,
            callback=callback,
            on_status=on_status,
        )

        async with self._lock:
            first_for_table = not self._tables[table]
            if first_for_table:
                await self._attach_table(table)
            self._tables[table].add(subscription.id)
            self._subscriptions[subscription.id] = subscription

        self._notify(subscription, TransportStatus.SUBSCRIBED)
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        async with self._lock:
            if self._subscriptions.pop(subscription.id, None) is None:
                return
            table_subs = self._tables.get(subscription.table)
            if table_subs is not None:
                table_subs.discard(subscription.id)
                if not table_subs:
                    del self._tables[subscription.table]
                    await self._detach_table(subscription.table)

        self._notify(subscription, TransportStatus.CLOSED)

    async def close(self) -> None:
        """Release every subscription"""
        async with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
            self._tables.clear()

        for subscription in subscriptions:
            self._notify(subscription, TransportStatus.CLOSED)

    @abstractmethod
    async def publish(self, change: ChangeEvent) -> None:
        """Broadcast a change to every matching subscriber"""

    async def _attach_table(self, table: str) -> None:
        """Start receiving changes for a table"""

    async def _detach_table(self, table: str) -> None:
        """Stop receiving changes for a table"""

    async def _dispatch(self, change: ChangeEvent) -> int:
        """Deliver a change to all matching subscriptions at once; returns deliveries"""
        targets = [s for s in list(self._subscriptions.values()) if s.matches(change)]
        await asyncio.gather(*(self._deliver(subscription, change) for subscription in targets))
        return len(targets)

    async def _deliver(self, subscription: Subscription, change: ChangeEvent) -> None:
        try:
            result = subscription.callback(change)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"[Realtime] Callback error on {change.table} {change.event.value}: {e}")

    def _notify(self, subscription: Subscription, status: TransportStatus) -> None:
        if subscription.on_status is None:
            return
        try:
            subscription.on_status(status)
        except Exception as e:
            logger.error(f"[Realtime] Status callback error ({status.value}): {e}")

    def _notify_all(self, status: TransportStatus) -> None:
        for subscription in list(self._subscriptions.values()):
            self._notify(subscription, status)


class LocalRealtimeTransport(RealtimeTransport):
    """In-process transport; publish() delivers straight to subscribers"""

    async def publish(self, change: ChangeEvent) -> None:
        delivered = await self._dispatch(change)
        logger.log_realtime_event(
            f"local:{change.table}", change.event.value, deliveries=delivered
        )


class RedisRealtimeTransport(RealtimeTransport):
    """Redis pub/sub transport, one channel per table"""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        prefix: Optional[str] = None,
        subscribe_timeout: Optional[float] = None,
        redis: Optional[Redis] = None,
    ):
        super().__init__()
        self.redis_url = redis_url or settings.REDIS_URL
        self.prefix = prefix or settings.REALTIME_CHANNEL_PREFIX
        self.subscribe_timeout = subscribe_timeout or settings.REALTIME_SUBSCRIBE_TIMEOUT
        self._redis: Optional[Redis] = redis
        self._pubsub: Optional[PubSub] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._deliveries: Set[asyncio.Task] = set()

    def channel_for(self, table: str) -> str:
        return f"{self.prefix}:{table}"

    async def connect(self) -> None:
        """Connect to Redis"""
        if self._redis is None:
            try:
                self._redis = aioredis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
                await self._redis.ping()
            except Exception as e:
                logger.error(f"Redis connection error: {e}")
                raise RealtimeError(f"Could not connect to Redis: {e}") from e

        if self._pubsub is None:
            self._pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        logger.info("Realtime transport connected to Redis")

    async def publish(self, change: ChangeEvent) -> None:
        if self._redis is None:
            await self.connect()
        await self._redis.publish(self.channel_for(change.table), change.to_json())

    async def close(self) -> None:
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        for task in list(self._deliveries):
            task.cancel()
        await asyncio.gather(*self._deliveries, return_exceptions=True)
        self._deliveries.clear()

        await super().close()

        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        logger.info("Realtime transport disconnected from Redis")

    async def _attach_table(self, table: str) -> None:
        if self._pubsub is None:
            await self.connect()

        channel = self.channel_for(table)
        try:
            await asyncio.wait_for(self._pubsub.subscribe(channel), timeout=self.subscribe_timeout)
        except asyncio.TimeoutError:
            raise
        except Exception as e:
            raise ChannelSubscribeError(channel, str(e)) from e

        if self._reader_task is None or self._reader_task.done():
            self._reader_task = asyncio.create_task(self._reader())
        logger.log_realtime_event(channel, "redis_subscribed")

    async def _detach_table(self, table: str) -> None:
        if self._pubsub is None:
            return
        channel = self.channel_for(table)
        try:
            await self._pubsub.unsubscribe(channel)
        except Exception as e:
            logger.warning(f"[Realtime] Unsubscribe failed for {channel}: {e}")

    async def _reader(self) -> None:
        """Read pub/sub messages until cancelled or the connection fails"""
        try:
            while True:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None or message.get("type") != "message":
                    continue
                self._handle_message(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.log_error_with_context(e, context="realtime.redis_reader")
            self._notify_all(TransportStatus.CHANNEL_ERROR)

    def _handle_message(self, message: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Hand a pub/sub message to its own delivery task so the reader keeps reading"""
        try:
            change = ChangeEvent.from_json(message["data"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"[Realtime] Dropping malformed change on {message.get('channel')}: {e}")
            return None

        task = asyncio.create_task(self._dispatch(change))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)
        return task


def create_transport(backend: Optional[str] = None) -> RealtimeTransport:
    """Build the transport selected by REALTIME_BACKEND"""
    backend = (backend or settings.REALTIME_BACKEND).lower()
    if backend == "local":
        return LocalRealtimeTransport()
    if backend == "redis":
        return RedisRealtimeTransport()
    raise ValueError(f"Unknown realtime backend: {backend}")
