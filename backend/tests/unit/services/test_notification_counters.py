"""
Unit Tests for NotificationCounters
"""
from datetime import timedelta

import pytest

from sitepulse.models import RFIStatus, TenderStatus
from sitepulse.schemas.notifications import NotificationCounts
from sitepulse.services.notification_counters import NotificationCounters


class TestMessageCounter:

    @pytest.mark.asyncio
    async def test_counts_recent_messages_from_others(self, counters, seed, user_id, other_user_id):
        project_id = await seed.project(user_id, other_user_id)
        await seed.message(project_id, other_user_id)
        await seed.message(project_id, other_user_id, age=timedelta(days=3))

        assert await counters.count_messages({project_id}, user_id) == 2

    @pytest.mark.asyncio
    async def test_own_messages_never_count(self, counters, seed, user_id):
        project_id = await seed.project(user_id)
        await seed.message(project_id, user_id)
        await seed.message(project_id, user_id, age=timedelta(minutes=1))

        assert await counters.count_messages({project_id}, user_id) == 0

    @pytest.mark.asyncio
    async def test_old_messages_excluded(self, counters, seed, user_id, other_user_id):
        project_id = await seed.project(user_id)
        await seed.message(project_id, other_user_id, age=timedelta(days=7, seconds=1))

        assert await counters.count_messages({project_id}, user_id) == 0

    @pytest.mark.asyncio
    async def test_window_boundary_is_inclusive(self, counters, seed, user_id, other_user_id):
        """A message created exactly 7 days ago still counts"""
        project_id = await seed.project(user_id)
        await seed.message(project_id, other_user_id, age=timedelta(days=7))

        assert await counters.count_messages({project_id}, user_id) == 1

    @pytest.mark.asyncio
    async def test_out_of_scope_projects_excluded(self, counters, seed, user_id, other_user_id):
        mine = await seed.project(user_id)
        theirs = await seed.project(other_user_id)
        await seed.message(theirs, other_user_id)

        assert await counters.count_messages({mine}, user_id) == 0


class TestRFICounter:

    @pytest.mark.asyncio
    async def test_counts_outstanding_and_overdue_assigned_to_user(self, counters, seed, user_id, other_user_id):
        project_id = await seed.project(user_id)
        await seed.rfi(project_id, user_id, RFIStatus.OUTSTANDING.value)
        await seed.rfi(project_id, user_id, RFIStatus.OVERDUE.value)
        await seed.rfi(project_id, user_id, RFIStatus.ANSWERED.value)
        await seed.rfi(project_id, user_id, RFIStatus.OPEN.value)
        await seed.rfi(project_id, other_user_id, RFIStatus.OVERDUE.value)
        await seed.rfi(project_id, None, RFIStatus.OUTSTANDING.value)

        assert await counters.count_rfis({project_id}, user_id) == 2


class TestDocumentCounter:

    @pytest.mark.asyncio
    async def test_counts_recent_uploads_by_others(self, counters, seed, user_id, other_user_id):
        project_id = await seed.project(user_id)
        await seed.document(project_id, other_user_id)
        await seed.document(project_id, other_user_id, age=timedelta(days=7))
        await seed.document(project_id, other_user_id, age=timedelta(days=8))
        await seed.document(project_id, user_id)

        assert await counters.count_documents({project_id}, user_id) == 2


class TestTenderCounter:

    @pytest.mark.asyncio
    async def test_counts_open_tenders_only(self, counters, seed, user_id):
        project_id = await seed.project(user_id)
        await seed.tender(project_id, TenderStatus.OPEN.value)
        await seed.tender(project_id, TenderStatus.OPEN.value)
        await seed.tender(project_id, TenderStatus.DRAFT.value)
        await seed.tender(project_id, TenderStatus.AWARDED.value)

        assert await counters.count_tenders({project_id}, user_id) == 2


class TestCountAll:

    @pytest.mark.asyncio
    async def test_example_scenario(self, counters, seed, user_id, other_user_id):
        """2 unread messages, 1 overdue RFI, 0 new documents, 1 open tender"""
        p1 = await seed.project(user_id, other_user_id)
        await seed.message(p1, other_user_id)
        await seed.message(p1, other_user_id)
        await seed.rfi(p1, user_id, RFIStatus.OVERDUE.value)
        await seed.tender(p1, TenderStatus.OPEN.value)

        counts = await counters.count_all({p1}, user_id)

        assert counts == NotificationCounts(messages=2, rfis=1, documents=0, tenders=1)
        assert counts.total == 4

    @pytest.mark.asyncio
    async def test_empty_scope_issues_no_queries(self, session_factory, frozen_now, user_id):
        opened = []

        def counting_factory():
            opened.append(1)
            return session_factory()

        counters = NotificationCounters(counting_factory, window_days=7, clock=lambda: frozen_now)

        counts = await counters.count_all(set(), user_id)

        assert counts == NotificationCounts.zero()
        assert opened == []

    @pytest.mark.asyncio
    async def test_failing_counter_is_isolated(self, session_factory, frozen_now, seed, user_id, other_user_id):
        class BrokenRFICounters(NotificationCounters):
            async def count_rfis(self, scope, user_id):
                raise RuntimeError("rfis table unavailable")

        counters = BrokenRFICounters(session_factory, window_days=7, clock=lambda: frozen_now)
        p1 = await seed.project(user_id)
        await seed.message(p1, other_user_id)
        await seed.document(p1, other_user_id)
        await seed.rfi(p1, user_id, RFIStatus.OVERDUE.value)
        await seed.tender(p1, TenderStatus.OPEN.value)

        counts = await counters.count_all({p1}, user_id)

        assert counts == NotificationCounts(messages=1, rfis=0, documents=1, tenders=1)

    def test_default_window_from_settings(self, session_factory):
        from sitepulse.core.config import settings

        counters = NotificationCounters(session_factory)

        assert counters.window_days == settings.NOTIFICATION_WINDOW_DAYS
