"""
Access Scope Resolver - which projects can a user see?

A user's scope is the set of project ids they hold a membership on. Every
unread counter is computed over this set.

Lookups fail closed: if the membership query errors, the user is treated as
having no projects, so a transient failure can only under-count, never
leak counts from projects the user does not belong to.
"""

import time
from typing import FrozenSet, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.core.exceptions import ScopeResolutionError
from sitepulse.core.logging_config import logger
from sitepulse.models.project import ProjectMembership


SessionFactory = Callable[[], AsyncSession]


class AccessScopeResolver:
    """Resolves project membership for a user"""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def resolve(self, user_id: str) -> FrozenSet[str]:
        """
        Get the ids of every project the user is a member of.

        Args:
            user_id: Authenticated user id

        Returns:
            Set of project ids, empty when the user has no memberships or
            the lookup failed
        """
        if not user_id:
            return frozenset()

        try:
            return await self._fetch_project_ids(user_id)
        except ScopeResolutionError as e:
            logger.log_error_with_context(e, context="access_scope.resolve", user_id=user_id)
            return frozenset()

    async def is_member(self, user_id: str, project_id: str) -> bool:
        """Check a single membership, failing closed to False"""
        if not user_id or not project_id:
            return False

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ProjectMembership.id)
                    .where(
                        ProjectMembership.user_id == user_id,
                        ProjectMembership.project_id == project_id,
                    )
                    .limit(1)
                )
                return result.first() is not None
        except Exception as e:
            logger.log_error_with_context(
                ScopeResolutionError(user_id, str(e)),
                context="access_scope.is_member",
                project_id=project_id,
            )
            return False

    async def _fetch_project_ids(self, user_id: str) -> FrozenSet[str]:
        start = time.perf_counter()
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ProjectMembership.project_id).where(ProjectMembership.user_id == user_id)
                )
                project_ids = frozenset(str(pid) for pid in result.scalars().all())
        except Exception as e:
            raise ScopeResolutionError(user_id, str(e)) from e

        logger.log_db_query(
            "SELECT",
            ProjectMembership.__tablename__,
            (time.perf_counter() - start) * 1000,
            rows_affected=len(project_ids),
        )
        return project_ids
