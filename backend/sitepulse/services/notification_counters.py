"""
Notification Counters - the four unread/new badge counts

| Badge      | Counted when                                                     |
|------------|------------------------------------------------------------------|
| messages   | in scope, sender is not the user, created inside the window      |
| rfis       | in scope, assigned to the user, status outstanding or overdue    |
| documents  | in scope, uploader is not the user, created inside the window    |
| tenders    | in scope, status open                                            |

The window is inclusive: a row created exactly `window_days` ago still counts.

Each counter is a count-only query on its own session so all four can run
at once. A failing counter logs and reports 0; the other three are unaffected.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.core.config import settings
from sitepulse.core.exceptions import CounterQueryError
from sitepulse.core.logging_config import logger
from sitepulse.models.document import Document
from sitepulse.models.message import Message
from sitepulse.models.rfi import RFI, ACTIONABLE_RFI_STATUSES
from sitepulse.models.tender import Tender, TenderStatus
from sitepulse.schemas.notifications import NotificationCounts, NotificationType


SessionFactory = Callable[[], AsyncSession]
Clock = Callable[[], datetime]


class NotificationCounters:
    """Count-only queries for each badge type"""

    def __init__(
        self,
        session_factory: SessionFactory,
        window_days: Optional[int] = None,
        clock: Clock = datetime.utcnow,
    ):
        self._session_factory = session_factory
        self.window_days = settings.NOTIFICATION_WINDOW_DAYS if window_days is None else window_days
        self._clock = clock

    def window_start(self) -> datetime:
        """Oldest created_at that still counts as new"""
        return self._clock() - timedelta(days=self.window_days)

    async def count_messages(self, scope: Iterable[str], user_id: str) -> int:
        stmt = (
            select(func.count(Message.id))
            .where(
                Message.project_id.in_(list(scope)),
                Message.sender_id != user_id,
                Message.created_at >= self.window_start(),
            )
        )
        return await self._scalar_count(NotificationType.MESSAGES, Message.__tablename__, stmt)

    async def count_rfis(self, scope: Iterable[str], user_id: str) -> int:
        stmt = (
            select(func.count(RFI.id))
            .where(
                RFI.project_id.in_(list(scope)),
                RFI.assigned_to == user_id,
                RFI.status.in_([s.value for s in ACTIONABLE_RFI_STATUSES]),
            )
        )
        return await self._scalar_count(NotificationType.RFIS, RFI.__tablename__, stmt)

    async def count_documents(self, scope: Iterable[str], user_id: str) -> int:
        stmt = (
            select(func.count(Document.id))
            .where(
                Document.project_id.in_(list(scope)),
                Document.uploaded_by != user_id,
                Document.created_at >= self.window_start(),
            )
        )
        return await self._scalar_count(NotificationType.DOCUMENTS, Document.__tablename__, stmt)

    async def count_tenders(self, scope: Iterable[str], user_id: str) -> int:
        stmt = (
            select(func.count(Tender.id))
            .where(
                Tender.project_id.in_(list(scope)),
                Tender.status == TenderStatus.OPEN.value,
            )
        )
        return await self._scalar_count(NotificationType.TENDERS, Tender.__tablename__, stmt)

    async def count_all(self, scope: Iterable[str], user_id: str) -> NotificationCounts:
        """
        Run all four counters concurrently and join.

        Args:
            scope: Project ids the user can see
            user_id: Acting user (excluded from authored counts)

        Returns:
            NotificationCounts; all zeros without touching the store when
            scope is empty
        """
        scope = frozenset(scope)
        if not scope:
            return NotificationCounts.zero()

        start = time.perf_counter()
        messages, rfis, documents, tenders = await asyncio.gather(
            self._isolated(NotificationType.MESSAGES, self.count_messages(scope, user_id)),
            self._isolated(NotificationType.RFIS, self.count_rfis(scope, user_id)),
            self._isolated(NotificationType.DOCUMENTS, self.count_documents(scope, user_id)),
            self._isolated(NotificationType.TENDERS, self.count_tenders(scope, user_id)),
        )
        logger.log_performance("notification_counters.count_all", (time.perf_counter() - start) * 1000)

        return NotificationCounts(
            messages=messages,
            rfis=rfis,
            documents=documents,
            tenders=tenders,
        )

    async def _isolated(self, counter: NotificationType, coro) -> int:
        """Await one counter, degrading any failure to 0"""
        try:
            return await coro
        except Exception as e:
            error = e if isinstance(e, CounterQueryError) else CounterQueryError(counter.value, str(e))
            logger.log_error_with_context(error, context=f"notification_counters.{counter.value}")
            return 0

    async def _scalar_count(self, counter: NotificationType, table: str, stmt) -> int:
        start = time.perf_counter()
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                count = result.scalar_one() or 0
        except Exception as e:
            raise CounterQueryError(counter.value, str(e)) from e

        logger.log_db_query("COUNT", table, (time.perf_counter() - start) * 1000, rows_affected=count)
        return int(count)
