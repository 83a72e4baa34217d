from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Union

from tenantgate.core.errors import InvalidPermission, InvalidRoleName


ROLE_MASTER_ADMIN = "master_admin"
ROLE_ADMIN = "admin"
ROLE_ANALYST = "analyst"
ROLE_VIEWER = "viewer"
ROLE_USER = "user"

ROLE_ORDER: dict[str, int] = {
    ROLE_USER: 0,
    ROLE_VIEWER: 1,
    ROLE_ANALYST: 2,
    ROLE_ADMIN: 3,
    ROLE_MASTER_ADMIN: 4,
}

ADMIN_RANK = ROLE_ORDER[ROLE_ADMIN]

# Custom role base permissions accepted at the boundary.
BASE_PERMISSIONS = frozenset({"read", "write", "delete", "manage"})
DEFAULT_BASE_PERMISSIONS = frozenset({"read"})

_ROLE_NAME_MIN = 2
_ROLE_NAME_MAX = 50
_WHITESPACE = re.compile(r"\s+")
_INVALID_CHARS = re.compile(r"[^a-z0-9_]")


@dataclass(frozen=True)
class BuiltinRole:
    name: str
    rank: int

    @property
    def is_builtin(self) -> bool:
        return True


@dataclass(frozen=True)
class CustomRole:
    company_id: str
    role_id: str
    name: str
    base_permissions: frozenset[str] = field(default=DEFAULT_BASE_PERMISSIONS)
    display_name: str | None = None
    description: str | None = None

    @property
    def rank(self) -> int:
        # Custom roles sit at the bottom of the hierarchy; pages and overrides widen them.
        return ROLE_ORDER[ROLE_USER]

    @property
    def is_builtin(self) -> bool:
        return False


Role = Union[BuiltinRole, CustomRole]

BUILTIN_ROLES: dict[str, BuiltinRole] = {name: BuiltinRole(name=name, rank=rank) for name, rank in ROLE_ORDER.items()}


def builtin_role(name: str) -> BuiltinRole | None:
    return BUILTIN_ROLES.get(name.strip().lower())


def is_admin_tier(role: Role) -> bool:
    # admin and master_admin share the built-in page floor and are not page-configurable.
    return role.rank >= ADMIN_RANK


def is_master_admin(role_name: str) -> bool:
    return role_name == ROLE_MASTER_ADMIN


def rank_allows(role: Role, minimum_rank: int | None) -> bool:
    if minimum_rank is None:
        return True
    return role.rank >= minimum_rank


def builtins_at_or_below(rank: int) -> list[BuiltinRole]:
    # Lower-ranked builtins whose page sets a role inherits.
    return sorted(
        (role for role in BUILTIN_ROLES.values() if role.rank <= rank),
        key=lambda role: role.rank,
    )


def normalize_role_name(raw: str) -> str:
    """Normalize a custom role name the way admins type it into the UI.

    Lowercases, maps whitespace runs to underscores and strips anything
    outside ``[a-z0-9_]``. The result must be 2-50 characters long.
    """
    normalized = _WHITESPACE.sub("_", raw.strip().lower())
    normalized = _INVALID_CHARS.sub("", normalized)
    if not _ROLE_NAME_MIN <= len(normalized) <= _ROLE_NAME_MAX:
        raise InvalidRoleName(
            f"role_name must be between {_ROLE_NAME_MIN} and {_ROLE_NAME_MAX} characters"
        )
    return normalized


def parse_base_permissions(values: list[str] | set[str] | frozenset[str] | None) -> frozenset[str]:
    # Store base permissions as an explicit enumerated set rather than a JSON blob.
    if not values:
        return DEFAULT_BASE_PERMISSIONS
    normalized = frozenset(value.strip().lower() for value in values)
    invalid = sorted(normalized - BASE_PERMISSIONS)
    if invalid:
        raise InvalidPermission(
            f"Invalid permissions: {', '.join(invalid)}. Valid: {', '.join(sorted(BASE_PERMISSIONS))}"
        )
    return normalized
