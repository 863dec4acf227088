"""
SitePulse - Test Configuration and Fixtures
"""
import os
import tempfile
from datetime import datetime, timedelta
from typing import AsyncGenerator, Optional
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from faker import Faker

# Set testing environment
_TEST_DIR = tempfile.mkdtemp(prefix="sitepulse-tests-")
os.environ['TESTING'] = 'true'
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = f'sqlite+aiosqlite:///{_TEST_DIR}/app.db'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['REALTIME_BACKEND'] = 'local'
os.environ['LOG_FILE'] = ''

from sitepulse.core.database import Base
from sitepulse.models import Project, ProjectMembership, Message, RFI, Document, Tender
from sitepulse.services.access_scope import AccessScopeResolver
from sitepulse.services.notification_counters import NotificationCounters
from sitepulse.services.realtime.transport import LocalRealtimeTransport

fake = Faker()

# Fixed "now" so window boundaries are deterministic
FROZEN_NOW = datetime(2026, 10, 19, 12, 0, 0)


def new_id() -> str:
    return str(uuid4())


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test"""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def frozen_now() -> datetime:
    return FROZEN_NOW


@pytest.fixture
def resolver(session_factory) -> AccessScopeResolver:
    return AccessScopeResolver(session_factory)


@pytest.fixture
def counters(session_factory, frozen_now) -> NotificationCounters:
    return NotificationCounters(session_factory, window_days=7, clock=lambda: frozen_now)


@pytest.fixture
def transport() -> LocalRealtimeTransport:
    return LocalRealtimeTransport()


class Seeder:
    """Writes fixture rows, one commit per row"""

    def __init__(self, session_factory, now: datetime):
        self._session_factory = session_factory
        self.now = now

    async def _add(self, obj):
        async with self._session_factory() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def project(self, *member_ids: str, name: Optional[str] = None) -> str:
        project = await self._add(Project(id=new_id(), name=name or fake.company()))
        for user_id in member_ids:
            await self.member(project.id, user_id)
        return project.id

    async def member(self, project_id: str, user_id: str) -> ProjectMembership:
        return await self._add(ProjectMembership(project_id=project_id, user_id=user_id))

    async def message(self, project_id: str, sender_id: str, age: timedelta = timedelta(hours=1)) -> Message:
        return await self._add(Message(
            project_id=project_id,
            sender_id=sender_id,
            content=fake.sentence(),
            created_at=self.now - age,
        ))

    async def rfi(self, project_id: str, assigned_to: Optional[str], status: str) -> RFI:
        return await self._add(RFI(
            project_id=project_id,
            assigned_to=assigned_to,
            subject=fake.sentence(nb_words=4),
            status=status,
            created_at=self.now,
        ))

    async def document(self, project_id: str, uploaded_by: str, age: timedelta = timedelta(hours=1)) -> Document:
        return await self._add(Document(
            project_id=project_id,
            uploaded_by=uploaded_by,
            name=fake.file_name(extension="pdf"),
            created_at=self.now - age,
        ))

    async def tender(self, project_id: str, status: str) -> Tender:
        return await self._add(Tender(
            project_id=project_id,
            title=fake.bs(),
            status=status,
            created_at=self.now,
        ))


@pytest.fixture
def seed(session_factory, frozen_now) -> Seeder:
    return Seeder(session_factory, frozen_now)


@pytest.fixture
def user_id() -> str:
    return new_id()


@pytest.fixture
def other_user_id() -> str:
    return new_id()


@pytest.fixture
def make_seeder(frozen_now):
    """Seeder bound to another session factory"""
    def _make(factory, now: Optional[datetime] = None) -> Seeder:
        return Seeder(factory, now or frozen_now)
    return _make


@pytest.fixture
def live_seed(session_factory) -> Seeder:
    """Seeder relative to the real clock, for code paths without an injected clock"""
    return Seeder(session_factory, datetime.utcnow())
