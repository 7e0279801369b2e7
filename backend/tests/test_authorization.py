"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- ShipManager limited to viewing inventory and shipping
- OrderManager denied cashbook and settings
- Unknown roles and unknown permission codes fail closed
"""

import pytest

from yuandi.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    ROLE_ADMIN,
    ROLE_ORDER_MANAGER,
    ROLE_SHIP_MANAGER,
    get_all_permission_codes,
    get_permission_definition,
    get_role_permissions,
)
from yuandi.services import permission_service
from yuandi.services.permission_service import PermissionDeniedError


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("POST", "/api/inventory/adjustment"),
            ("POST", "/api/inventory/inbound"),
            ("GET", "/api/inventory/low-stock"),
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("PATCH", "/api/orders/1/ship"),
            ("PATCH", "/api/orders/1/refund"),
            ("GET", "/api/cashbook"),
            ("POST", "/api/cashbook"),
            ("GET", "/api/settings"),
            ("PUT", "/api/settings/exchange-rates"),
        ],
    )
    def test_requires_auth(self, client, users, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# SHIP MANAGER (403 OUTSIDE SHIPPING)
# =============================================================================


class TestShipManagerDenied:
    @pytest.mark.parametrize(
        "method,path,permission",
        [
            ("POST", "/api/products", "MANAGE_PRODUCTS"),
            ("POST", "/api/inventory/inbound", "RECEIVE_INVENTORY"),
            ("GET", "/api/orders", "MANAGE_ORDERS"),
            ("PATCH", "/api/orders/1/cancel", "MANAGE_ORDERS"),
            ("PATCH", "/api/orders/1/refund", "REFUND_ORDERS"),
            ("GET", "/api/cashbook/summary", "VIEW_CASHBOOK"),
            ("PUT", "/api/settings", "MANAGE_SETTINGS"),
        ],
    )
    def test_denied(self, client, ship_manager_headers, method, path, permission):
        resp = getattr(client, method.lower())(path, json={}, headers=ship_manager_headers)
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == permission

    def test_can_view_inventory(self, client, ship_manager_headers):
        assert client.get("/api/inventory/low-stock", headers=ship_manager_headers).status_code == 200

    def test_can_reach_ship_route(self, client, ship_manager_headers):
        # Authorized; fails on the missing order instead
        resp = client.patch("/api/orders/1/ship", json={"courier": "cj", "tracking_number": "1"},
                            headers=ship_manager_headers)
        assert resp.status_code == 404


# =============================================================================
# ORDER MANAGER
# =============================================================================


class TestOrderManager:
    def test_cannot_record_cashbook_entry(self, client, order_manager_headers):
        resp = client.post(
            "/api/cashbook",
            json={"entry_type": "income", "category": "adjustment", "amount": 100},
            headers=order_manager_headers,
        )
        assert resp.status_code == 403

    def test_can_list_orders(self, client, order_manager_headers):
        resp = client.get("/api/orders", headers=order_manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 0

    def test_admin_can_read_cashbook(self, client, admin_headers):
        assert client.get("/api/cashbook", headers=admin_headers).status_code == 200


# =============================================================================
# POLICY
# =============================================================================


class TestPolicy:
    def test_admin_holds_every_permission(self):
        assert get_role_permissions(ROLE_ADMIN) == set(get_all_permission_codes())

    def test_role_grants_are_known_codes(self):
        codes = set(get_all_permission_codes())
        for role, grants in DEFAULT_ROLE_PERMISSIONS.items():
            assert set(grants) <= codes, role

    def test_unknown_role_has_no_permissions(self):
        assert get_role_permissions("Intern") == set()

    def test_definitions_carry_category(self):
        definition = get_permission_definition("SHIP_ORDERS")
        assert definition["code"] == "SHIP_ORDERS"
        assert definition["category"] == "ORDERS"
        assert get_permission_definition("LAUNCH_ROCKETS") is None

    def test_inactive_user_holds_nothing(self, users):
        user, _ = users[ROLE_ORDER_MANAGER]
        assert permission_service.user_has_permission(user, "MANAGE_ORDERS")
        user.is_active = False
        assert permission_service.get_user_permissions(user) == set()

    def test_unknown_permission_code_raises(self, users):
        user, _ = users[ROLE_ADMIN]
        with pytest.raises(ValueError):
            permission_service.require_permission(user, "LAUNCH_ROCKETS")

    def test_denial_is_logged(self, users, caplog):
        user, _ = users[ROLE_SHIP_MANAGER]
        with pytest.raises(PermissionDeniedError):
            permission_service.require_permission(user, "REFUND_ORDERS", resource="/api/orders/1/refund")
        assert "Permission denied" in caplog.text
