"""
CLI command tests (flask users / fx / ledger).
"""

from sqlalchemy import update

from yuandi.extensions import db
from yuandi.models import Product, User
from yuandi.services import session_service


class TestUserCommands:
    def test_create_prints_working_token(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["users", "create", "--username", "ops", "--role", "ShipManager"])

        assert result.exit_code == 0, result.output
        token = result.output.strip().splitlines()[-1].split(": ", 1)[1]
        user = session_service.validate_token(token)
        assert user is not None
        assert user.username == "ops"

    def test_rotate_token_invalidates_old(self, app, users):
        _, old_token = users["Admin"]
        runner = app.test_cli_runner()
        result = runner.invoke(args=["users", "rotate-token", "--username", "admin"])

        assert result.exit_code == 0, result.output
        assert session_service.validate_token(old_token) is None

    def test_unknown_role_rejected(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["users", "create", "--username", "x", "--role", "Root"])
        assert result.exit_code != 0
        assert db.session.query(User).count() == 0


class TestFxCommand:
    def test_set_rate(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["fx", "set", "--currency", "cny", "--rate", "189.5", "--date", "2026-05-01"])
        assert result.exit_code == 0, result.output
        assert "CNY 2026-05-01" in result.output

    def test_bad_date(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["fx", "set", "--currency", "CNY", "--rate", "189.5", "--date", "May 1"])
        assert result.exit_code != 0


class TestLedgerVerify:
    def test_clean_ledger(self, app, make_product):
        make_product(stock=3)
        result = app.test_cli_runner().invoke(args=["ledger", "verify"])
        assert result.exit_code == 0
        assert "OK" in result.output

    def test_drift_exits_non_zero(self, app, make_product):
        product = make_product(stock=3)
        db.session.execute(update(Product).where(Product.id == product.id).values(on_hand=5))
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "verify", "--product-id", str(product.id)])
        assert result.exit_code == 1
        assert "FAIL" in result.output
