from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


class CashbookEntry(db.Model):
    """
    Append-only financial ledger.

    SIGN CONVENTION:
    - income rows carry a positive amount, expense rows a negative amount
    - amount is in `currency`; amount_krw is the base-currency value
      (amount * fx_rate, half-up) used for balances

    Balance at time t is SUM(amount_krw) over rows with transaction_date <= t.
    Running balances are computed at query time, never stored.
    """
    __tablename__ = "cashbook_entries"
    __table_args__ = (
        db.CheckConstraint("amount <> 0", name="ck_cashbook_amount_nonzero"),
        db.Index("ix_cashbook_date_id", "transaction_date", "id"),
        db.Index("ix_cashbook_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # income | expense
    entry_type = db.Column(db.String(16), nullable=False)
    # order_payment | refund | shipping_cost | inventory_purchase | adjustment
    category = db.Column(db.String(32), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    fx_rate = db.Column(db.Numeric(12, 4), nullable=False)
    amount_krw = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_date": to_utc_z(self.transaction_date),
            "entry_type": self.entry_type,
            "category": self.category,
            "amount": self.amount,
            "currency": self.currency,
            "fx_rate": str(self.fx_rate) if self.fx_rate is not None else None,
            "amount_krw": self.amount_krw,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "description": self.description,
            "actor_user_id": self.actor_user_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(CashbookEntry, "before_update")
def _entry_is_immutable(mapper, connection, target):
    raise ValueError("cashbook entries are append-only")


@event.listens_for(CashbookEntry, "before_delete")
def _entry_cannot_be_deleted(mapper, connection, target):
    raise ValueError("cashbook entries are append-only")


class ExchangeRate(db.Model):
    """
    Daily conversion rate into the base currency (KRW per one unit).

    Resolution for a date picks the most recent rate_date <= that date.
    """
    __tablename__ = "exchange_rates"
    __table_args__ = (
        db.UniqueConstraint("currency", "rate_date", name="uq_exchange_rates_currency_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    currency = db.Column(db.String(3), nullable=False, index=True)
    rate_date = db.Column(db.Date, nullable=False, index=True)
    rate = db.Column(db.Numeric(12, 4), nullable=False)
    source = db.Column(db.String(32), nullable=False, default="manual")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "currency": self.currency,
            "rate_date": self.rate_date.isoformat() if self.rate_date else None,
            "rate": str(self.rate),
            "source": self.source,
        }
