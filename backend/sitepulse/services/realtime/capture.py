"""
Change capture - publish committed row changes to the realtime transport.

Hooks SQLAlchemy session events:

- after_flush: record INSERT/UPDATE/DELETE events for watched tables in
  session.info (flush state still shows new/dirty/deleted objects)
- after_commit: schedule a publish for each recorded event
- after_rollback: drop recorded events

Publishing happens only after commit, so a recount triggered by an event
always sees the committed row.
"""

import asyncio
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from sitepulse.core.logging_config import logger
from sitepulse.services.realtime.events import ChangeEvent, ChangeEventType
from sitepulse.services.realtime.transport import RealtimeTransport


WATCHED_TABLES: FrozenSet[str] = frozenset({
    "messages",
    "rfis",
    "documents",
    "tenders",
    "project_users",
    "projects",
})

_PENDING_KEY = "sitepulse_pending_changes"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def _table_name(obj: Any) -> Optional[str]:
    table = getattr(inspect(obj).mapper, "local_table", None)
    return getattr(table, "name", None)


def _row(obj: Any) -> Dict[str, Any]:
    state = inspect(obj)
    return {attr.key: _jsonable(getattr(obj, attr.key)) for attr in state.mapper.column_attrs}


def _previous_row(obj: Any) -> Dict[str, Any]:
    """Column values as they were before this flush"""
    state = inspect(obj)
    previous = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            previous[attr.key] = _jsonable(history.deleted[0])
        else:
            previous[attr.key] = _jsonable(getattr(obj, attr.key))
    return previous


class ChangeCapture:
    """Publishes watched-table changes after each successful commit"""

    def __init__(
        self,
        transport: RealtimeTransport,
        tables: Iterable[str] = WATCHED_TABLES,
        target: Any = Session,
    ):
        self._transport = transport
        self.tables = frozenset(tables)
        self._target = target
        self._installed = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> "ChangeCapture":
        if not self._installed:
            event.listen(self._target, "after_flush", self._after_flush)
            event.listen(self._target, "after_commit", self._after_commit)
            event.listen(self._target, "after_rollback", self._after_rollback)
            self._installed = True
            logger.info(f"[Realtime] Change capture installed for {sorted(self.tables)}")
        return self

    def uninstall(self) -> None:
        if self._installed:
            event.remove(self._target, "after_flush", self._after_flush)
            event.remove(self._target, "after_commit", self._after_commit)
            event.remove(self._target, "after_rollback", self._after_rollback)
            self._installed = False

    async def drain(self) -> None:
        """Wait for scheduled publishes to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _after_flush(self, session: Session, flush_context) -> None:
        pending: List[ChangeEvent] = session.info.setdefault(_PENDING_KEY, [])

        for obj in session.new:
            table = _table_name(obj)
            if table in self.tables:
                pending.append(ChangeEvent(table=table, event=ChangeEventType.INSERT, new=_row(obj)))

        for obj in session.dirty:
            table = _table_name(obj)
            if table in self.tables and session.is_modified(obj, include_collections=False):
                pending.append(ChangeEvent(
                    table=table,
                    event=ChangeEventType.UPDATE,
                    new=_row(obj),
                    old=_previous_row(obj),
                ))

        for obj in session.deleted:
            table = _table_name(obj)
            if table in self.tables:
                pending.append(ChangeEvent(table=table, event=ChangeEventType.DELETE, old=_row(obj)))

    def _after_commit(self, session: Session) -> None:
        changes: List[ChangeEvent] = session.info.pop(_PENDING_KEY, [])
        if not changes:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[Realtime] No running event loop, dropping {len(changes)} change(s)")
            return

        for change in changes:
            task = loop.create_task(self._transport.publish(change))
            self._tasks.add(task)
            task.add_done_callback(self._publish_done)

    def _after_rollback(self, session: Session) -> None:
        session.info.pop(_PENDING_KEY, None)

    def _publish_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.log_error_with_context(error, context="realtime.capture.publish")


def install_change_capture(transport: RealtimeTransport, **kwargs) -> ChangeCapture:
    """Create and install a ChangeCapture for the given transport"""
    return ChangeCapture(transport, **kwargs).install()
