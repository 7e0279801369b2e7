# Overview: Allocates human-readable order numbers (ORD-YYMMDD-###).

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderSequence
from .concurrency import run_in_transaction
from .exchange_rate_service import today


ORDER_PREFIX = "ORD"


def _bump(on_date: date):
    stmt = (
        update(OrderSequence)
        .where(OrderSequence.sequence_date == on_date)
        .values(next_number=OrderSequence.next_number + 1)
    )
    return db.session.execute(stmt)


def _current(on_date: date) -> int:
    return (
        db.session.query(OrderSequence.next_number)
        .filter_by(sequence_date=on_date)
        .scalar()
    )


def next_order_number(on_date: date | None = None) -> str:
    """
    Atomically allocate the next order number for a business day.

    Runs in its own transaction: a number is consumed even if the order that
    requested it later fails, so numbers are unique but may have gaps.
    """
    if on_date is None:
        on_date = today()

    def _op() -> str:
        result = _bump(on_date)
        if result.rowcount:
            db.session.flush()
            next_num = _current(on_date) - 1
        else:
            db.session.add(OrderSequence(sequence_date=on_date, next_number=2))
            try:
                db.session.flush()
                next_num = 1
            except IntegrityError:
                # Another request created today's row first
                db.session.rollback()
                result = _bump(on_date)
                if not result.rowcount:
                    raise
                db.session.flush()
                next_num = _current(on_date) - 1

        return f"{ORDER_PREFIX}-{on_date:%y%m%d}-{next_num:03d}"

    return run_in_transaction(_op)
