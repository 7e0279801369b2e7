# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    ORDER_PERMISSIONS,
    CASHBOOK_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS, ROLES, ROLE_ADMIN, ROLE_ORDER_MANAGER, ROLE_SHIP_MANAGER
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    validate_permission_code,
    get_role_permissions,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "ORDER_PERMISSIONS",
    "CASHBOOK_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLES",
    "ROLE_ADMIN",
    "ROLE_ORDER_MANAGER",
    "ROLE_SHIP_MANAGER",
    "get_all_permission_codes",
    "get_permission_definition",
    "validate_permission_code",
    "get_role_permissions",
]
