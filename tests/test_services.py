import pytest

from tukin.core.exceptions import (
    AuthenticationRequired,
    PermissionEncodingError,
    ResourceConflictError,
    ResourceNotFoundError,
    ValidationError,
)
from tukin.core.security import Identity
from tukin.models.role import Role
from tukin.models.user import User
from tukin.services.audit_service import audit_service
from tukin.services.auth_service import auth_service
from tukin.services.invalidation import PermissionInvalidator
from tukin.services.role_service import role_service
from conftest import LOGIN_EMAIL, LOGIN_PASSWORD


@pytest.fixture
def invalidator(cache):
    return PermissionInvalidator(cache)


def fill(cache, seeded):
    for name in ("admin", "manager", "user"):
        cache.put(seeded[name], ["posts.read"])


class TestRoleService:
    def test_new_role_defaults_to_no_permissions(self, db, seeded):
        role = Role(role_name="Empty", role_id=9)
        db.add(role)
        db.commit()
        assert role.permission == ""

    def test_list_roles_counts_holders(self, db, seeded):
        counts = {row["role"].role_name: row["user_count"] for row in role_service.list_roles(db)}
        # inactive admin still holds the code
        assert counts == {"Administrator": 2, "Manager": 2, "User": 1}

    @pytest.mark.asyncio
    async def test_create_role_canonicalizes(self, db, seeded, invalidator):
        role = await role_service.create_role(db, invalidator, "Editor", 10, ["2", "1", "1"])
        assert role.permission == "12"

    @pytest.mark.asyncio
    async def test_create_duplicate_role(self, db, seeded, invalidator):
        with pytest.raises(ResourceConflictError):
            await role_service.create_role(db, invalidator, "Manager", 20, ["1"])

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_categories(self, db, seeded, invalidator):
        with pytest.raises(ValidationError):
            await role_service.create_role(db, invalidator, "Editor", 10, ["1", "7"])

    @pytest.mark.asyncio
    async def test_set_permissions_invalidates_holders_only(self, db, seeded, invalidator, cache):
        fill(cache, seeded)
        change = await role_service.set_permissions(
            db, invalidator, seeded["role:Manager"], categories=["4", "2", "1"],
        )
        assert change == {"old": "24", "new": "124"}
        assert cache.get(seeded["manager"]) is None
        assert cache.get(seeded["admin"]) == ["posts.read"]
        assert cache.get(seeded["user"]) == ["posts.read"]

    @pytest.mark.asyncio
    async def test_set_permissions_rejects_untrusted_encoding(self, db, seeded, invalidator):
        with pytest.raises(PermissionEncodingError):
            await role_service.set_permissions(db, invalidator, seeded["role:User"], encoded="19")
        assert role_service.get_role(db, seeded["role:User"]).permission == "1"

    @pytest.mark.asyncio
    async def test_rename_clears_whole_cache(self, db, seeded, invalidator, cache):
        fill(cache, seeded)
        await role_service.update_role(db, invalidator, seeded["role:User"], role_name="Member")
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_description_update_keeps_other_entries(self, db, seeded, invalidator, cache):
        fill(cache, seeded)
        await role_service.update_role(db, invalidator, seeded["role:User"], description="Writers")
        assert cache.get(seeded["user"]) is None
        assert cache.get(seeded["manager"]) == ["posts.read"]

    @pytest.mark.asyncio
    async def test_delete_held_role(self, db, seeded, invalidator):
        with pytest.raises(ResourceConflictError):
            await role_service.delete_role(db, invalidator, seeded["role:Manager"])

    @pytest.mark.asyncio
    async def test_delete_unheld_role(self, db, seeded, invalidator):
        role = await role_service.create_role(db, invalidator, "Editor", 10, ["1"])
        await role_service.delete_role(db, invalidator, role.id)
        with pytest.raises(ResourceNotFoundError):
            role_service.get_role(db, role.id)

    @pytest.mark.asyncio
    async def test_custom_role_sharing_a_code_has_no_holders(self, db, seeded, invalidator, cache):
        fill(cache, seeded)
        role = await role_service.create_role(db, invalidator, "Editor", 3, ["1"])
        # code 3 users resolve to "User", not "Editor"
        assert cache.get(seeded["user"]) == ["posts.read"]
        counts = {row["role"].role_name: row["user_count"] for row in role_service.list_roles(db)}
        assert counts["Editor"] == 0

        await role_service.delete_role(db, invalidator, role.id)
        with pytest.raises(ResourceNotFoundError):
            role_service.get_role(db, role.id)

    @pytest.mark.asyncio
    async def test_assign_role(self, db, seeded, invalidator, cache):
        fill(cache, seeded)
        result = await role_service.assign_role(db, invalidator, seeded["user"], seeded["role:Manager"])
        assert result["old_role"] == "User"
        assert result["new_role"] == "Manager"
        assert db.query(User).filter(User.id == seeded["user"]).one().role == 2
        assert cache.get(seeded["user"]) is None
        assert cache.get(seeded["admin"]) == ["posts.read"]

    @pytest.mark.asyncio
    async def test_assign_role_outside_fixed_table(self, db, seeded, invalidator):
        role = await role_service.create_role(db, invalidator, "Editor", 10, ["1"])
        with pytest.raises(ValidationError):
            await role_service.assign_role(db, invalidator, seeded["user"], role.id)

    @pytest.mark.asyncio
    async def test_bulk_copy_permissions(self, db, seeded, invalidator):
        message = await role_service.bulk(
            db, invalidator, "copy_permissions", [seeded["role:Manager"], seeded["role:User"]],
        )
        assert message == "Copied permissions to 1 role(s)"
        assert role_service.get_role(db, seeded["role:User"]).permission == "24"

    @pytest.mark.asyncio
    async def test_bulk_delete_refuses_held_roles(self, db, seeded, invalidator):
        with pytest.raises(ResourceConflictError):
            await role_service.bulk(db, invalidator, "delete_multiple", [seeded["role:User"]])

    @pytest.mark.asyncio
    async def test_bulk_unknown_operation(self, db, seeded, invalidator):
        with pytest.raises(ValidationError):
            await role_service.bulk(db, invalidator, "explode", [seeded["role:User"]])

    def test_search_users(self, db, seeded):
        results = role_service.search_users(db, "manager")
        assert [u["email"] for u in results] == ["manager@example.com"]
        assert results[0]["role"] == "Manager"
        assert role_service.search_users(db, "m") == []

    def test_role_stats(self, db, seeded):
        stats = {row["role_name"]: row for row in role_service.role_stats(db)}
        assert stats["Manager"]["categories"] == ["2", "4"]
        assert stats["Manager"]["user_count"] == 2


class TestAuthService:
    def test_authenticate(self, db, seeded, tokens):
        result = auth_service.authenticate(db, tokens, LOGIN_EMAIL, LOGIN_PASSWORD)
        assert result["user"]["role"] == "Manager"
        assert tokens.verify_access_token(result["access_token"]).user_id == seeded["login"]

    def test_wrong_password(self, db, seeded, tokens):
        with pytest.raises(AuthenticationRequired):
            auth_service.authenticate(db, tokens, LOGIN_EMAIL, "wrong-password")

    def test_password_reset_pending(self, db, seeded, tokens):
        user = db.query(User).filter(User.email == LOGIN_EMAIL).one()
        user.must_reset_password = True
        db.commit()
        with pytest.raises(AuthenticationRequired, match="Password reset required"):
            auth_service.authenticate(db, tokens, LOGIN_EMAIL, LOGIN_PASSWORD)

    def test_refresh_requires_refresh_token(self, db, seeded, tokens):
        result = auth_service.authenticate(db, tokens, LOGIN_EMAIL, LOGIN_PASSWORD)
        with pytest.raises(AuthenticationRequired):
            auth_service.refresh_access_token(db, tokens, result["access_token"])

        refreshed = auth_service.refresh_access_token(db, tokens, result["refresh_token"])
        assert tokens.verify_access_token(refreshed["access_token"]).user_id == seeded["login"]

    def test_logout_revokes_refresh_token(self, db, seeded, tokens):
        result = auth_service.authenticate(db, tokens, LOGIN_EMAIL, LOGIN_PASSWORD)
        auth_service.logout(db, seeded["login"])
        with pytest.raises(AuthenticationRequired, match="Invalid refresh token"):
            auth_service.refresh_access_token(db, tokens, result["refresh_token"])

    def test_create_user_defaults_to_user_role(self, db, seeded):
        user = auth_service.create_user(db, "new@example.com", "password1")
        assert user.role == 3
        with pytest.raises(ResourceConflictError):
            auth_service.create_user(db, "new@example.com", "password1")


class TestAuditService:
    def test_record_and_query(self, db, seeded):
        admin = Identity(seeded["admin"], "admin@example.com")
        audit_service.record(
            db, admin,
            action="role.permissions_updated",
            resource_type="role",
            resource_id=seeded["role:User"],
            old_value={"permission": "1"},
            new_value={"permission": "12"},
        )
        audit_service.record(db, None, action="user.login", resource_type="user")

        result = audit_service.query_logs(db, resource_type="role")
        assert result["total"] == 1
        entry = result["logs"][0]
        assert entry.actor_id == seeded["admin"]
        assert entry.new_value_json == '{"permission": "12"}'

    def test_only_changed_fields_are_kept(self, db, seeded):
        entry = audit_service.record(
            db, None,
            action="role.updated",
            resource_type="role",
            old_value={"role_name": "User", "permission": "1"},
            new_value={"role_name": "Member", "permission": "1"},
        )
        assert entry.old_value_json == '{"role_name": "User"}'
        assert entry.new_value_json == '{"role_name": "Member"}'

    def test_filter_by_resource(self, db, seeded):
        for resource_id in ("r1", "r2", "r1"):
            audit_service.record(db, None, action="role.updated", resource_type="role", resource_id=resource_id)
        assert audit_service.query_logs(db, resource_id="r1")["total"] == 2
