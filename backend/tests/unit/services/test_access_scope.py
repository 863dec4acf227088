"""
Unit Tests for AccessScopeResolver
"""
import pytest

from sitepulse.services.access_scope import AccessScopeResolver


class BrokenSession:
    """Session whose queries always fail"""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, *args, **kwargs):
        raise RuntimeError("connection reset by peer")


class TestResolve:
    """Tests for resolve()"""

    @pytest.mark.asyncio
    async def test_returns_member_projects(self, resolver, seed, user_id, other_user_id):
        p1 = await seed.project(user_id)
        p2 = await seed.project(user_id, other_user_id)
        await seed.project(other_user_id)

        scope = await resolver.resolve(user_id)

        assert scope == frozenset({p1, p2})

    @pytest.mark.asyncio
    async def test_no_memberships_is_empty(self, resolver, seed, user_id, other_user_id):
        await seed.project(other_user_id)

        assert await resolver.resolve(user_id) == frozenset()

    @pytest.mark.asyncio
    async def test_empty_user_id_is_empty(self, resolver):
        assert await resolver.resolve("") == frozenset()

    @pytest.mark.asyncio
    async def test_query_error_fails_closed(self, user_id):
        resolver = AccessScopeResolver(lambda: BrokenSession())

        assert await resolver.resolve(user_id) == frozenset()


class TestIsMember:
    """Tests for is_member()"""

    @pytest.mark.asyncio
    async def test_member(self, resolver, seed, user_id):
        project_id = await seed.project(user_id)

        assert await resolver.is_member(user_id, project_id) is True

    @pytest.mark.asyncio
    async def test_non_member(self, resolver, seed, user_id, other_user_id):
        project_id = await seed.project(other_user_id)

        assert await resolver.is_member(user_id, project_id) is False

    @pytest.mark.asyncio
    async def test_missing_project_id(self, resolver, user_id):
        assert await resolver.is_member(user_id, None) is False

    @pytest.mark.asyncio
    async def test_query_error_fails_closed(self, user_id):
        resolver = AccessScopeResolver(lambda: BrokenSession())

        assert await resolver.is_member(user_id, "any-project") is False
