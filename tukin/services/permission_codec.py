"""Permission codec — category bitmask <-> persisted digit string.

A role stores its granted categories as a string of decimal digits, one per
category (``"24"`` = taxonomy + user management). Internally categories are a
``PermissionCategory`` bitmask; the string form only exists at the
persistence boundary.

Decoding never raises: unknown characters are dropped, so corrupted data
degrades to fewer permissions, never to more.
"""

import enum
from typing import Dict, Iterable, List, Union

from tukin.core.exceptions import PermissionEncodingError


class PermissionCategory(enum.IntFlag):
    """Coarse administrative domains a role can be granted."""

    CONTENT = 1
    TAXONOMY = 2
    ROLES = 4
    USERS = 8

    @property
    def digit(self) -> str:
        return _CATEGORY_DIGITS[self]


EMPTY = PermissionCategory(0)

ALL_CATEGORIES: List[PermissionCategory] = [
    PermissionCategory.CONTENT,
    PermissionCategory.TAXONOMY,
    PermissionCategory.ROLES,
    PermissionCategory.USERS,
]

_CATEGORY_DIGITS: Dict[PermissionCategory, str] = {
    PermissionCategory.CONTENT: "1",
    PermissionCategory.TAXONOMY: "2",
    PermissionCategory.ROLES: "3",
    PermissionCategory.USERS: "4",
}
_DIGIT_CATEGORIES: Dict[str, PermissionCategory] = {
    digit: category for category, digit in _CATEGORY_DIGITS.items()
}

ACTIONS = ("read", "create", "update", "delete")

# Resources each category unlocks; every resource gets the four CRUD actions.
CATEGORY_RESOURCES: Dict[PermissionCategory, tuple] = {
    PermissionCategory.CONTENT: ("posts",),
    PermissionCategory.TAXONOMY: ("categories",),
    PermissionCategory.ROLES: ("roles",),
    PermissionCategory.USERS: ("users", "staff"),
}

CategoryLike = Union[PermissionCategory, str, int]


def category_from(value: CategoryLike) -> PermissionCategory:
    """Coerce a digit (``"3"`` or ``3``) or a single member to a category.

    Returns the empty set for anything that is not exactly one known category.
    """
    if isinstance(value, PermissionCategory):
        return value if value in _CATEGORY_DIGITS else EMPTY
    if isinstance(value, bool):
        return EMPTY
    if isinstance(value, int):
        value = str(value)
    if isinstance(value, str):
        return _DIGIT_CATEGORIES.get(value, EMPTY)
    return EMPTY


def members(categories: PermissionCategory) -> List[PermissionCategory]:
    """List the single categories contained in a bitmask, in digit order."""
    return [category for category in ALL_CATEGORIES if category & categories]


def encode(categories: Union[PermissionCategory, Iterable[CategoryLike]]) -> str:
    """Encode a category set to its canonical string (sorted, no duplicates)."""
    if isinstance(categories, PermissionCategory):
        flags = categories
    else:
        flags = EMPTY
        for value in categories:
            flags |= category_from(value)
    return "".join(sorted(category.digit for category in members(flags)))


def decode(code) -> PermissionCategory:
    """Decode a persisted string; unknown characters are discarded."""
    if not isinstance(code, str):
        return EMPTY
    flags = EMPTY
    for char in code:
        flags |= _DIGIT_CATEGORIES.get(char, EMPTY)
    return flags


def has_category(code, category: CategoryLike) -> bool:
    """Check a single category against an encoded string without decoding it."""
    wanted = category_from(category)
    if not wanted or not isinstance(code, str):
        return False
    return wanted.digit in code


def expand(categories: PermissionCategory) -> List[str]:
    """Expand granted categories into fine-grained permission strings."""
    permissions = []
    for category in members(categories):
        for resource in CATEGORY_RESOURCES[category]:
            permissions.extend(f"{resource}.{action}" for action in ACTIONS)
    return permissions


def categories_from_flags(
    content: bool = False,
    taxonomy: bool = False,
    roles: bool = False,
    users: bool = False,
) -> PermissionCategory:
    """Build a category set from the admin form's checkboxes."""
    flags = EMPTY
    if content:
        flags |= PermissionCategory.CONTENT
    if taxonomy:
        flags |= PermissionCategory.TAXONOMY
    if roles:
        flags |= PermissionCategory.ROLES
    if users:
        flags |= PermissionCategory.USERS
    return flags


def validate_encoding(code: str) -> str:
    """Validate an untrusted encoded string and return its canonical form.

    Raises:
        PermissionEncodingError: If the string holds anything but known digits.
    """
    if not isinstance(code, str):
        raise PermissionEncodingError("Permission encoding must be a string")
    unknown = sorted({char for char in code if char not in _DIGIT_CATEGORIES})
    if unknown:
        raise PermissionEncodingError(
            f"Unknown permission categories: {', '.join(repr(c) for c in unknown)}"
        )
    return encode(decode(code))


def describe(categories: PermissionCategory) -> List[Dict[str, object]]:
    """Matrix rows for the admin screen: one per category, granted or not."""
    return [
        {
            "digit": category.digit,
            "name": category.name.lower(),
            "granted": bool(category & categories),
            "permissions": expand(category),
        }
        for category in ALL_CATEGORIES
    ]
