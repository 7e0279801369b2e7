"""
Cashbook tests.

Verifies:
- sign convention per entry type
- currency conversion into KRW (dated rate, fallback setting, half-up rounding)
- balances and running balances are derived from entries only
- entries cannot be changed once written
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from yuandi.errors import InvalidCurrencyError
from yuandi.extensions import db
from yuandi.models import CashbookEntry
from yuandi.services import cashbook_service, exchange_rate_service, settings_service
from yuandi.validation import ValidationError


def _at(day: int, hour: int = 12) -> datetime:
    return datetime(2026, 3, day, hour, 0)


def _manual(amount: int, *, entry_type=None, currency="KRW", fx_rate=None, when=None, category="adjustment"):
    if entry_type is None:
        entry_type = "income" if amount > 0 else "expense"
    return cashbook_service.record_manual_entry(
        entry_type=entry_type,
        category=category,
        amount=amount,
        currency=currency,
        fx_rate=fx_rate,
        transaction_date=when,
    )


class TestEntrySigns:
    def test_income_positive_expense_negative(self, app):
        income = _manual(10000, category="order_payment")
        expense = _manual(-2500, category="shipping_cost")

        assert income.entry_type == "income"
        assert income.amount_krw == 10000
        assert expense.entry_type == "expense"
        assert expense.amount_krw == -2500
        assert income.fx_rate == 1

    @pytest.mark.parametrize("entry_type,amount", [
        ("income", -100),
        ("expense", 100),
        ("income", 0),
        ("expense", 0),
    ])
    def test_sign_mismatch_rejected(self, app, entry_type, amount):
        with pytest.raises(ValidationError):
            _manual(amount, entry_type=entry_type)
        assert db.session.query(CashbookEntry).count() == 0

    def test_unknown_category_rejected(self, app):
        with pytest.raises(ValidationError):
            _manual(100, category="bonus")

    def test_fractional_amount_rejected(self, app):
        with pytest.raises(ValidationError):
            _manual(10.5)


class TestCurrencyConversion:
    def test_uses_latest_rate_on_or_before_transaction_date(self, app):
        exchange_rate_service.set_rate(currency="CNY", rate="185", rate_date=date(2026, 3, 1))
        exchange_rate_service.set_rate(currency="CNY", rate="192.5", rate_date=date(2026, 3, 10))

        early = _manual(-100, currency="CNY", when=_at(5))
        late = _manual(-100, currency="CNY", when=_at(12))

        assert early.amount_krw == -18500
        assert late.amount_krw == -19250

    def test_no_rate_raises_invalid_currency(self, app):
        with pytest.raises(InvalidCurrencyError):
            _manual(-100, currency="CNY", when=_at(5))
        assert db.session.query(CashbookEntry).count() == 0

    def test_rate_dated_after_transaction_is_not_used(self, app):
        exchange_rate_service.set_rate(currency="CNY", rate="190", rate_date=date(2026, 3, 20))
        with pytest.raises(InvalidCurrencyError):
            _manual(-100, currency="CNY", when=_at(5))

    def test_fallback_setting_used_when_no_dated_rate(self, app):
        settings_service.update_settings({"fx.fallback_cny_krw": 188})
        entry = _manual(-10, currency="CNY", when=_at(5))
        assert entry.amount_krw == -1880

    def test_unsupported_currency(self, app):
        with pytest.raises(InvalidCurrencyError):
            _manual(-100, currency="USD")
        with pytest.raises(InvalidCurrencyError):
            _manual(-100, currency="USD", fx_rate="1300")

    def test_explicit_rate_rounds_half_up(self, app):
        entry = _manual(1, currency="CNY", fx_rate="100.5")
        assert entry.amount_krw == 101

        entry = _manual(-1, currency="CNY", fx_rate="100.5")
        assert entry.amount_krw == -101

    def test_explicit_rate_stored_to_four_places(self, app):
        entry = _manual(-1000, currency="CNY", fx_rate="190.123456")
        db.session.expire_all()
        stored = db.session.get(CashbookEntry, entry.id)

        assert stored.fx_rate == Decimal("190.1235")
        assert stored.amount_krw == exchange_rate_service.convert_to_base(-1000, stored.fx_rate)
        assert stored.amount_krw == -190124

    @pytest.mark.parametrize("fx_rate", ["2", "0.5"])
    def test_base_currency_rate_other_than_one_rejected(self, app, fx_rate):
        with pytest.raises(ValidationError):
            _manual(-100, currency="KRW", fx_rate=fx_rate)
        assert db.session.query(CashbookEntry).count() == 0

    def test_base_currency_accepts_rate_of_one(self, app):
        entry = _manual(-100, currency="KRW", fx_rate="1.0000")
        assert entry.amount_krw == -100

    @pytest.mark.parametrize("fx_rate", ["abc", "NaN", "0", "0.00001", "1e9", True])
    def test_malformed_explicit_rate_rejected(self, app, fx_rate):
        with pytest.raises(ValidationError):
            _manual(-100, currency="CNY", fx_rate=fx_rate)

    def test_convert_to_base(self):
        assert exchange_rate_service.convert_to_base(3, Decimal("0.5")) == 2
        assert exchange_rate_service.convert_to_base(-3, Decimal("0.5")) == -2
        assert exchange_rate_service.convert_to_base(7, Decimal("1")) == 7


class TestBalances:
    def test_balance_is_sum_of_entries(self, app):
        _manual(50000, when=_at(1))
        _manual(-12000, when=_at(2))
        _manual(3000, when=_at(3))

        assert cashbook_service.get_balance() == 41000
        assert cashbook_service.get_balance(as_of=_at(2)) == 38000
        assert cashbook_service.get_balance(as_of=_at(1) - timedelta(days=1)) == 0

    def test_running_balance_follows_ledger_order(self, app):
        # Inserted out of date order; the ledger orders by transaction_date
        _manual(-5000, when=_at(3))
        _manual(20000, when=_at(1))
        _manual(7000, when=_at(2))

        rows = cashbook_service.list_entries()
        assert [r["amount_krw"] for r in rows] == [20000, 7000, -5000]
        assert [r["balance_after_krw"] for r in rows] == [20000, 27000, 22000]

    def test_paged_running_balance_carries_opening_balance(self, app):
        for day, amount in ((1, 1000), (2, 2000), (3, -500), (4, 4000)):
            _manual(amount, when=_at(day))

        page = cashbook_service.list_entries(limit=2, offset=2)
        assert [r["balance_after_krw"] for r in page] == [2500, 6500]

        window = cashbook_service.list_entries(start=_at(3, 0), end=_at(3, 23))
        assert len(window) == 1
        assert window[0]["balance_after_krw"] == 2500

    def test_summary(self, app):
        _manual(30000, when=_at(1))
        _manual(-4000, when=_at(2))
        _manual(10000, when=_at(5))

        summary = cashbook_service.get_summary(start=_at(1, 0), end=_at(2, 23))
        assert summary == {
            "income_krw": 30000,
            "expense_krw": 4000,
            "net_krw": 26000,
            "entry_count": 2,
            "balance_krw": 26000,
        }

    def test_empty_ledger(self, app):
        assert cashbook_service.get_balance() == 0
        assert cashbook_service.list_entries() == []
        assert cashbook_service.get_summary()["entry_count"] == 0


class TestAppendOnly:
    def test_update_rejected(self, app):
        entry = _manual(1000)
        entry.description = "edited"
        with pytest.raises(ValueError):
            db.session.flush()
        db.session.rollback()

    def test_delete_rejected(self, app):
        entry = _manual(1000)
        db.session.delete(entry)
        with pytest.raises(ValueError):
            db.session.flush()
        db.session.rollback()
        assert db.session.query(CashbookEntry).count() == 1
