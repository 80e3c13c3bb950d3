import pytest

from tukin.core.exceptions import RoleStoreUnavailable
from tukin.services.role_resolver import RoleName, RoleResolver, resolve_role_name, role_level
from tukin.services.stores import RoleRecord


class TestRoleNames:
    def test_fixed_table(self):
        assert resolve_role_name(1) == RoleName.ADMINISTRATOR
        assert resolve_role_name(2) == RoleName.MANAGER
        assert resolve_role_name(3) == RoleName.USER

    @pytest.mark.parametrize("value", [0, 4, 7, -1, None, "1", True, 1.0])
    def test_anything_else_is_unrecognized(self, value):
        assert resolve_role_name(value) == RoleName.UNRECOGNIZED

    def test_role_level_reverse_lookup(self):
        assert role_level("Manager") == 2
        assert role_level(RoleName.ADMINISTRATOR) == 1
        assert role_level("Editor") is None
        assert role_level("unknown") is None


class TestRoleResolver:
    @pytest.mark.asyncio
    async def test_fetches_matching_role(self, fake_role_store):
        resolver = RoleResolver(fake_role_store)
        role = await resolver.resolve(2)
        assert role.role_name == "Manager"
        assert role.permission == "24"

    @pytest.mark.asyncio
    async def test_unrecognized_role_skips_the_store(self, fake_role_store):
        resolver = RoleResolver(fake_role_store)
        assert await resolver.resolve(7) is None
        assert fake_role_store.calls == 0

    @pytest.mark.asyncio
    async def test_missing_role_returns_none(self, fake_role_store):
        fake_role_store.roles = [r for r in fake_role_store.roles if r.role_name != "User"]
        assert await RoleResolver(fake_role_store).resolve(3) is None

    @pytest.mark.asyncio
    async def test_duplicate_names_resolve_to_none(self, fake_role_store):
        fake_role_store.roles.append(RoleRecord("r-dup", "Manager", 2, "1234"))
        assert await RoleResolver(fake_role_store).resolve(2) is None

    @pytest.mark.asyncio
    async def test_store_errors_become_unavailable(self, fake_role_store):
        fake_role_store.error = ConnectionError("connection refused")
        with pytest.raises(RoleStoreUnavailable):
            await RoleResolver(fake_role_store).resolve(1)

    @pytest.mark.asyncio
    async def test_unavailable_passes_through(self, fake_role_store):
        fake_role_store.error = RoleStoreUnavailable("db down")
        with pytest.raises(RoleStoreUnavailable, match="db down"):
            await RoleResolver(fake_role_store).fetch_role(RoleName.USER)
