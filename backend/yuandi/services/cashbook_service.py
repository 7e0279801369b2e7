# Overview: Service-layer operations for the cashbook; append-only financial ledger.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import and_, case, func, or_

from ..errors import InvalidCurrencyError
from ..extensions import db
from ..models import CashbookEntry
from ..time_utils import utcnow, business_date
from ..validation import ValidationError
from .concurrency import run_in_transaction
from .event_log_service import append_event
from .exchange_rate_service import SUPPORTED_CURRENCIES, base_currency, resolve_rate, convert_to_base
"""
Cashbook Invariants

- Entries are immutable facts; there is no update or delete path.
- income rows carry amount > 0, expense rows amount < 0.
- amount_krw = round_half_up(amount * fx_rate); fx_rate is resolved for the
  business date of transaction_date when the caller does not supply one.
- fx_rate is stored to 4 places and amount_krw is computed from the stored
  rate; the base currency always converts at 1.
- Balance at t = SUM(amount_krw) over entries with transaction_date <= t.
- record_entry only flushes: callers compose it into their own transaction.
"""


ENTRY_TYPE_INCOME = "income"
ENTRY_TYPE_EXPENSE = "expense"
ENTRY_TYPES = (ENTRY_TYPE_INCOME, ENTRY_TYPE_EXPENSE)

CATEGORY_ORDER_PAYMENT = "order_payment"
CATEGORY_REFUND = "refund"
CATEGORY_SHIPPING_COST = "shipping_cost"
CATEGORY_INVENTORY_PURCHASE = "inventory_purchase"
CATEGORY_ADJUSTMENT = "adjustment"
CATEGORIES = (
    CATEGORY_ORDER_PAYMENT,
    CATEGORY_REFUND,
    CATEGORY_SHIPPING_COST,
    CATEGORY_INVENTORY_PURCHASE,
    CATEGORY_ADJUSTMENT,
)


def _check_entry(entry_type: str, category: str, amount: int) -> None:
    if entry_type not in ENTRY_TYPES:
        raise ValidationError(f"entry_type must be one of: {', '.join(ENTRY_TYPES)}")
    if category not in CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(CATEGORIES)}")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("amount must be an integer")
    if amount == 0:
        raise ValidationError("amount must be non-zero")
    if entry_type == ENTRY_TYPE_INCOME and amount < 0:
        raise ValidationError("income entries must have a positive amount")
    if entry_type == ENTRY_TYPE_EXPENSE and amount > 0:
        raise ValidationError("expense entries must have a negative amount")


def _coerce_fx_rate(fx_rate) -> Decimal:
    if isinstance(fx_rate, bool):
        raise ValidationError("fx_rate must be a number")
    try:
        rate = Decimal(str(fx_rate))
    except (InvalidOperation, ValueError):
        raise ValidationError("fx_rate must be a number")
    if not rate.is_finite() or rate <= 0 or rate >= 10 ** 8:
        raise ValidationError("fx_rate must be > 0 and < 100000000")
    rate = rate.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    if rate <= 0:
        raise ValidationError("fx_rate must be > 0")
    return rate


def record_entry(
    *,
    entry_type: str,
    category: str,
    amount: int,
    currency: str,
    fx_rate=None,
    reference_type: str | None = None,
    reference_id=None,
    description: str | None = None,
    actor_user_id: int | None = None,
    transaction_date: datetime | None = None,
) -> CashbookEntry:
    """
    Append one cashbook entry inside the current transaction.

    Raises ValidationError for malformed input and InvalidCurrencyError when
    no rate can be resolved for currency/date.
    """
    _check_entry(entry_type, category, amount)

    if transaction_date is None:
        transaction_date = utcnow()

    if fx_rate is None:
        on_date = business_date(transaction_date, current_app.config["BUSINESS_TIMEZONE"])
        rate = resolve_rate(currency, on_date)
    else:
        if currency not in SUPPORTED_CURRENCIES:
            raise InvalidCurrencyError(currency)
        rate = _coerce_fx_rate(fx_rate)
        if currency == base_currency() and rate != 1:
            raise ValidationError(f"fx_rate for {currency} must be 1")

    entry = CashbookEntry(
        transaction_date=transaction_date,
        entry_type=entry_type,
        category=category,
        amount=amount,
        currency=currency,
        fx_rate=rate,
        amount_krw=convert_to_base(amount, rate),
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        description=description,
        actor_user_id=actor_user_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def record_manual_entry(
    *,
    entry_type: str,
    category: str,
    amount: int,
    currency: str = "KRW",
    fx_rate=None,
    description: str | None = None,
    transaction_date: datetime | None = None,
    actor_user_id: int | None = None,
) -> CashbookEntry:
    """Standalone entry (e.g. misc. income/expense) in its own transaction."""
    def _op():
        entry = record_entry(
            entry_type=entry_type,
            category=category,
            amount=amount,
            currency=currency,
            fx_rate=fx_rate,
            reference_type="manual",
            description=description,
            actor_user_id=actor_user_id,
            transaction_date=transaction_date,
        )
        append_event(
            table_name="cashbook_entries",
            record_id=entry.id,
            action="create",
            actor_user_id=actor_user_id,
            payload={"category": category, "amount": amount, "currency": currency},
        )
        return entry

    return run_in_transaction(_op)


def get_balance(as_of: datetime | None = None) -> int:
    """Base-currency balance over all entries with transaction_date <= as_of."""
    q = db.session.query(func.coalesce(func.sum(CashbookEntry.amount_krw), 0))
    if as_of is not None:
        q = q.filter(CashbookEntry.transaction_date <= as_of)
    return int(q.scalar() or 0)


def get_summary(*, start: datetime | None = None, end: datetime | None = None) -> dict:
    """Income/expense totals in KRW for [start, end] plus the closing balance."""
    q = db.session.query(
        func.coalesce(func.sum(case((CashbookEntry.amount_krw > 0, CashbookEntry.amount_krw), else_=0)), 0).label("income"),
        func.coalesce(func.sum(case((CashbookEntry.amount_krw < 0, CashbookEntry.amount_krw), else_=0)), 0).label("expense"),
        func.count(CashbookEntry.id).label("count"),
    )
    if start is not None:
        q = q.filter(CashbookEntry.transaction_date >= start)
    if end is not None:
        q = q.filter(CashbookEntry.transaction_date <= end)
    row = q.one()

    income = int(row.income or 0)
    expense = int(row.expense or 0)
    return {
        "income_krw": income,
        "expense_krw": -expense,
        "net_krw": income + expense,
        "entry_count": int(row.count or 0),
        "balance_krw": get_balance(as_of=end),
    }


def list_entries(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[dict]:
    """
    Entries in ledger order (transaction_date, id) with balance_after_krw.

    The running balance covers the whole book, so the page's opening
    balance is the sum of every entry ordered before its first row.
    """
    q = db.session.query(CashbookEntry)
    if start is not None:
        q = q.filter(CashbookEntry.transaction_date >= start)
    if end is not None:
        q = q.filter(CashbookEntry.transaction_date <= end)
    entries = (
        q.order_by(CashbookEntry.transaction_date.asc(), CashbookEntry.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    if not entries:
        return []

    first = entries[0]
    opening = db.session.query(func.coalesce(func.sum(CashbookEntry.amount_krw), 0)).filter(
        or_(
            CashbookEntry.transaction_date < first.transaction_date,
            and_(
                CashbookEntry.transaction_date == first.transaction_date,
                CashbookEntry.id < first.id,
            ),
        )
    ).scalar()

    running = int(opening or 0)
    rows = []
    for entry in entries:
        running += entry.amount_krw
        data = entry.to_dict()
        data["balance_after_krw"] = running
        rows.append(data)
    return rows


def list_entries_for_reference(reference_type: str, reference_id) -> list[CashbookEntry]:
    return (
        db.session.query(CashbookEntry)
        .filter_by(reference_type=reference_type, reference_id=str(reference_id))
        .order_by(CashbookEntry.id.asc())
        .all()
    )
