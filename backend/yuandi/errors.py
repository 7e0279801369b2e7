# Overview: Typed domain errors shared by services and routes.

"""
Error taxonomy for the inventory and ledger core.

Every service raises one of these (or validation.ValidationError for bad
input) instead of returning status flags. Routes translate them with
``status_code``; nothing below carries stack traces to clients.
"""


class ErpError(Exception):
    """Base class for domain errors surfaced through the API."""

    status_code = 400


class NotFoundError(ErpError):
    status_code = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class InsufficientStockError(ErpError):
    """Raised when a stock change would leave on_hand below zero."""

    def __init__(self, product_id, on_hand: int, delta: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"on hand {on_hand}, requested change {delta}"
        )
        self.product_id = product_id
        self.on_hand = on_hand
        self.delta = delta


class InvalidTransitionError(ErpError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot transition order from {current} to {requested}")
        self.current = current
        self.requested = requested


class InvalidCurrencyError(ErpError):
    def __init__(self, currency: str, on_date=None):
        suffix = f" on {on_date.isoformat()}" if on_date is not None else ""
        super().__init__(f"No exchange rate available for {currency}{suffix}")
        self.currency = currency
        self.on_date = on_date


class PersistenceError(ErpError):
    """The store failed or timed out; nothing was committed, safe to retry."""

    status_code = 500
