# Overview: Single policy check applied before every protected operation.

"""
Role-based access control.

- Fail closed: unknown roles and inactive users hold no permissions.
- Denials are logged; grants are not.
"""

from flask import current_app

from ..models import User
from ..permissions import get_role_permissions, validate_permission_code


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def get_user_permissions(user: User) -> set[str]:
    if user is None or not user.is_active:
        return set()
    return get_role_permissions(user.role)


def user_has_permission(user: User, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def require_permission(user: User, permission_code: str, resource: str | None = None) -> None:
    """
    Raise PermissionDeniedError unless `user` holds `permission_code`.

    Usage:
        require_permission(g.current_user, "SHIP_ORDERS", resource=request.path)
    """
    if not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")

    if not user_has_permission(user, permission_code):
        current_app.logger.warning(
            "Permission denied: user=%s role=%s permission=%s resource=%s",
            getattr(user, "id", None), getattr(user, "role", None), permission_code, resource,
        )
        raise PermissionDeniedError(f"Permission denied: {permission_code}")
