"""Admin roles and console page permissions.

Admins pass every check. Sub-admins only reach the pages listed in their
token's permissions claim.
"""

from enum import Enum
from typing import Iterable


class AdminRole(str, Enum):
    admin = "admin"
    subadmin = "subadmin"


class Permission(str, Enum):
    """Console page keys."""

    DEPOSITS = "deposits"
    WITHDRAWALS = "withdrawals"
    LOTTERY = "lottery"
    TOURNAMENTS = "tournaments"
    USERS = "users"


def has_permission(role: AdminRole, granted: Iterable[str], permission: Permission) -> bool:
    """Check if a role with the granted page keys may use a page"""
    if role == AdminRole.admin:
        return True
    return permission.value in set(granted)
