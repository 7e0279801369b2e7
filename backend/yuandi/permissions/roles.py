# Overview: Role -> permission grants. Users carry exactly one role.

from .definitions import PERMISSION_DEFINITIONS

ROLE_ADMIN = "Admin"
ROLE_ORDER_MANAGER = "OrderManager"
ROLE_SHIP_MANAGER = "ShipManager"

ROLES = (ROLE_ADMIN, ROLE_ORDER_MANAGER, ROLE_SHIP_MANAGER)

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: [perm[0] for perm in PERMISSION_DEFINITIONS],
    ROLE_ORDER_MANAGER: [
        "VIEW_INVENTORY",
        "MANAGE_PRODUCTS",
        "RECEIVE_INVENTORY",
        "ADJUST_INVENTORY",
        "MANAGE_ORDERS",
        "SHIP_ORDERS",
        "REFUND_ORDERS",
    ],
    ROLE_SHIP_MANAGER: [
        "VIEW_INVENTORY",
        "SHIP_ORDERS",
    ],
}
