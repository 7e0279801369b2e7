# Overview: Dated exchange rates into the base currency (KRW).

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app

from ..errors import InvalidCurrencyError
from ..extensions import db
from ..models import ExchangeRate
from ..time_utils import utcnow, business_date
from ..validation import ValidationError
from .concurrency import run_in_transaction
from .settings_service import get_settings_store


SUPPORTED_CURRENCIES = ("KRW", "CNY")

# Currency -> settings key holding an undated fallback rate
FALLBACK_SETTING_KEYS = {
    "CNY": "fx.fallback_cny_krw",
}


def base_currency() -> str:
    return current_app.config.get("BASE_CURRENCY", "KRW")


def today() -> date:
    return business_date(utcnow(), current_app.config["BUSINESS_TIMEZONE"])


def resolve_rate(currency: str, on_date: date | None = None) -> Decimal:
    """
    Rate converting one unit of `currency` into the base currency.

    Uses the most recent stored rate dated on or before `on_date`, then the
    configured fallback setting. Raises InvalidCurrencyError otherwise.
    """
    if on_date is None:
        on_date = today()
    if currency not in SUPPORTED_CURRENCIES:
        raise InvalidCurrencyError(currency)
    if currency == base_currency():
        return Decimal(1)

    row = (
        db.session.query(ExchangeRate)
        .filter(ExchangeRate.currency == currency, ExchangeRate.rate_date <= on_date)
        .order_by(ExchangeRate.rate_date.desc())
        .first()
    )
    if row is not None:
        return Decimal(row.rate)

    setting_key = FALLBACK_SETTING_KEYS.get(currency)
    if setting_key is not None:
        fallback = get_settings_store().get(setting_key)
        if fallback is not None:
            return Decimal(str(fallback))

    raise InvalidCurrencyError(currency, on_date)


def convert_to_base(amount: int, rate: Decimal) -> int:
    """Whole-unit conversion, rounding half away from zero."""
    return int((Decimal(amount) * rate).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _parse_rate(value) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError("rate must be a number")
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("rate must be a number")
    if not rate.is_finite() or rate <= 0:
        raise ValidationError("rate must be > 0")
    return rate.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def set_rate(*, currency: str, rate, rate_date: date | None = None, source: str = "manual") -> ExchangeRate:
    """Store (or replace) the rate for one currency and day."""
    if currency not in SUPPORTED_CURRENCIES or currency == base_currency():
        raise ValidationError(f"currency must be one of {', '.join(c for c in SUPPORTED_CURRENCIES if c != base_currency())}")
    parsed = _parse_rate(rate)
    if rate_date is None:
        rate_date = today()

    def _op():
        row = db.session.query(ExchangeRate).filter_by(currency=currency, rate_date=rate_date).first()
        if row is None:
            row = ExchangeRate(currency=currency, rate_date=rate_date)
            db.session.add(row)
        row.rate = parsed
        row.source = source
        db.session.flush()
        return row

    return run_in_transaction(_op)


def list_rates(*, currency: str | None = None, limit: int = 60) -> list[ExchangeRate]:
    q = db.session.query(ExchangeRate)
    if currency:
        q = q.filter_by(currency=currency)
    return q.order_by(ExchangeRate.rate_date.desc()).limit(limit).all()
