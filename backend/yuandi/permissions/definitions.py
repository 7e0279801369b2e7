# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View products, stock levels and movement history",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Register and deactivate products",
        PermissionCategory.INVENTORY,
    ),
    (
        "RECEIVE_INVENTORY",
        "Receive Inventory",
        "Book inbound stock (purchases)",
        PermissionCategory.INVENTORY,
    ),
    (
        "ADJUST_INVENTORY",
        "Adjust Inventory",
        "Manual stock corrections and disposals",
        PermissionCategory.INVENTORY,
    ),
]


# -- ORDERS --

ORDER_PERMISSIONS = [
    (
        "MANAGE_ORDERS",
        "Manage Orders",
        "Create, view and cancel orders",
        PermissionCategory.ORDERS,
    ),
    (
        "SHIP_ORDERS",
        "Ship Orders",
        "Register shipments and complete delivered orders",
        PermissionCategory.ORDERS,
    ),
    (
        "REFUND_ORDERS",
        "Refund Orders",
        "Refund paid or shipped orders",
        PermissionCategory.ORDERS,
    ),
]


# -- CASHBOOK --

CASHBOOK_PERMISSIONS = [
    (
        "VIEW_CASHBOOK",
        "View Cashbook",
        "View cashbook entries and balances",
        PermissionCategory.CASHBOOK,
    ),
    (
        "MANAGE_CASHBOOK",
        "Manage Cashbook",
        "Record manual income and expense entries",
        PermissionCategory.CASHBOOK,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "MANAGE_SETTINGS",
        "Manage Settings",
        "Change runtime settings and exchange rates",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + ORDER_PERMISSIONS
    + CASHBOOK_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
