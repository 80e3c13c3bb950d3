import itertools

import pytest

from tukin.core.exceptions import PermissionEncodingError
from tukin.services import permission_codec
from tukin.services.permission_codec import PermissionCategory


class TestEncodeDecode:
    def test_every_subset_round_trips(self):
        for size in range(len(permission_codec.ALL_CATEGORIES) + 1):
            for subset in itertools.combinations(permission_codec.ALL_CATEGORIES, size):
                flags = permission_codec.EMPTY
                for category in subset:
                    flags |= category
                assert permission_codec.decode(permission_codec.encode(flags)) == flags

    def test_encoding_is_canonical(self):
        assert permission_codec.encode(["4", "2"]) == "24"
        assert permission_codec.encode(["2", "4", "2"]) == "24"
        assert permission_codec.encode([4, 1]) == "14"
        assert permission_codec.encode(permission_codec.EMPTY) == ""

    def test_encode_ignores_unknown_values(self):
        assert permission_codec.encode(["9", "3", True]) == "3"

    def test_decode_edge_cases(self):
        assert permission_codec.decode("") == permission_codec.EMPTY
        assert permission_codec.decode("9") == permission_codec.EMPTY
        assert permission_codec.decode("11") == PermissionCategory.CONTENT
        assert permission_codec.decode("a4x") == PermissionCategory.USERS
        assert permission_codec.decode(None) == permission_codec.EMPTY
        assert permission_codec.decode(24) == permission_codec.EMPTY


class TestHasCategory:
    def test_manager_encoding(self):
        assert permission_codec.has_category("24", "2")
        assert permission_codec.has_category("24", PermissionCategory.USERS)
        assert not permission_codec.has_category("24", "3")

    def test_unknown_category_is_never_held(self):
        assert not permission_codec.has_category("1234", "9")
        assert not permission_codec.has_category("9", "9")
        assert not permission_codec.has_category(None, "1")


class TestExpand:
    def test_users_category_covers_staff(self):
        permissions = permission_codec.expand(PermissionCategory.USERS)
        assert permissions == [
            "users.read", "users.create", "users.update", "users.delete",
            "staff.read", "staff.create", "staff.update", "staff.delete",
        ]

    def test_manager_permissions(self):
        permissions = permission_codec.expand(permission_codec.decode("24"))
        assert "categories.update" in permissions
        assert "staff.read" in permissions
        assert "roles.create" not in permissions
        assert "posts.read" not in permissions

    def test_empty_expands_to_nothing(self):
        assert permission_codec.expand(permission_codec.EMPTY) == []


class TestValidateEncoding:
    def test_returns_canonical_form(self):
        assert permission_codec.validate_encoding("42") == "24"
        assert permission_codec.validate_encoding("") == ""

    @pytest.mark.parametrize("code", ["9", "19", "1a", " 1"])
    def test_rejects_unknown_characters(self, code):
        with pytest.raises(PermissionEncodingError):
            permission_codec.validate_encoding(code)

    def test_rejects_non_strings(self):
        with pytest.raises(PermissionEncodingError):
            permission_codec.validate_encoding(12)


class TestFormHelpers:
    def test_categories_from_flags(self):
        flags = permission_codec.categories_from_flags(taxonomy=True, users=True)
        assert permission_codec.encode(flags) == "24"

    def test_describe_marks_granted_rows(self):
        rows = permission_codec.describe(permission_codec.decode("3"))
        assert [row["digit"] for row in rows] == ["1", "2", "3", "4"]
        assert [row["granted"] for row in rows] == [False, False, True, False]
        assert rows[2]["permissions"][0] == "roles.read"
