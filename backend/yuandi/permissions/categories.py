# Overview: Permission category constants.


class PermissionCategory:
    INVENTORY = "INVENTORY"
    ORDERS = "ORDERS"
    CASHBOOK = "CASHBOOK"
    SYSTEM = "SYSTEM"
