from __future__ import annotations

from ..extensions import db
from creditdesk.time_utils import to_utc_z, utcnow


TRANSACTION_TYPES = ("payment", "adjustment")
PAYMENT_METHODS = ("cash", "card", "bank_transfer", "check", "other")


class TechnicalService(db.Model):
    """
    Business customer that buys on account (credit / "veresiye" ledger).

    BALANCE SIGN:
    - current_balance_cents > 0: the service owes us
    - current_balance_cents <= 0: settled or in credit (overpaid)

    INVARIANT: current_balance_cents == sum(transactions.amount_cents)
    + sum(sales.total_amount_cents). The balance is only ever changed by the
    ledger services, under a row lock plus the version_id optimistic check.

    Accounts are deactivated, not deleted, through the API. Hard deletion
    (which cascades to the ledger rows) is an operator CLI action.
    """
    __tablename__ = "technical_services"
    __table_args__ = (
        db.Index("ix_technical_services_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    tax_number = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    transactions = db.relationship(
        "TechnicalServiceTransaction",
        backref="technical_service",
        cascade="all, delete-orphan",
        lazy=True,
    )
    sales = db.relationship(
        "TechnicalServiceSale",
        backref="technical_service",
        cascade="all, delete-orphan",
        lazy=True,
    )
    history = db.relationship(
        "TechnicalServiceHistory",
        backref="technical_service",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<TechnicalService id={self.id} name={self.name!r} balance={self.current_balance_cents}>"

    @property
    def available_credit_cents(self) -> int:
        return self.credit_limit_cents - self.current_balance_cents

    @property
    def balance_status(self) -> str:
        if self.current_balance_cents > 0:
            return "owes"
        if self.current_balance_cents < 0:
            return "in_credit"
        return "settled"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "tax_number": self.tax_number,
            "notes": self.notes,
            "credit_limit_cents": self.credit_limit_cents,
            "current_balance_cents": self.current_balance_cents,
            "available_credit_cents": self.available_credit_cents,
            "balance_status": self.balance_status,
            "is_over_limit": self.current_balance_cents > self.credit_limit_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class TechnicalServiceTransaction(db.Model):
    """
    Payment or balance adjustment on a technical service account.

    amount_cents is the SIGNED delta applied to the balance:
    - payment: operator enters the amount paid, stored negative
    - adjustment: operator enters the target balance, stored as
      target - balance_before

    entered_amount_cents keeps what the operator typed.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "technical_service_transactions"
    __table_args__ = (
        db.Index("ix_ts_transactions_service_created", "technical_service_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    technical_service_id = db.Column(
        db.Integer,
        db.ForeignKey("technical_services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    transaction_type = db.Column(db.String(16), nullable=False, index=True)  # payment, adjustment
    amount_cents = db.Column(db.Integer, nullable=False)
    entered_amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    description = db.Column(db.Text, nullable=True)
    reference_number = db.Column(db.String(128), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "technical_service_id": self.technical_service_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "entered_amount_cents": self.entered_amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "description": self.description,
            "reference_number": self.reference_number,
            "payment_method": self.payment_method,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class TechnicalServiceSale(db.Model):
    """
    One product line of a credit sale.

    A cart produces one row per distinct product. total_amount_cents is
    added to the account balance; quantity is taken out of stock.
    """
    __tablename__ = "technical_service_sales"
    __table_args__ = (
        db.Index("ix_ts_sales_service_created", "technical_service_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    technical_service_id = db.Column(
        db.Integer,
        db.ForeignKey("technical_services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot so history stays readable if the product is renamed
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    price_source = db.Column(db.String(16), nullable=False)  # cost_margin, sale_price, list_price

    sale_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "technical_service_id": self.technical_service_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "price_source": self.price_source,
            "sale_date": self.sale_date.isoformat() if self.sale_date else None,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class TechnicalServiceHistory(db.Model):
    """
    Append-only audit trail for a technical service account.

    ACTION TYPES:
    - created / updated / deleted: account lifecycle
    - payment / adjustment: one row per TechnicalServiceTransaction
    - credit_sale: one row per TechnicalServiceSale line

    previous/new balance capture the account balance around the event.
    Rows are only removed together with the account itself.
    """
    __tablename__ = "technical_service_history"
    __table_args__ = (
        db.Index("ix_ts_history_service_created", "technical_service_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    technical_service_id = db.Column(
        db.Integer,
        db.ForeignKey("technical_services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    action_type = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.String(512), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=True)
    previous_balance_cents = db.Column(db.Integer, nullable=True)
    new_balance_cents = db.Column(db.Integer, nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    transaction_id = db.Column(
        db.Integer,
        db.ForeignKey("technical_service_transactions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    sale_id = db.Column(
        db.Integer,
        db.ForeignKey("technical_service_sales.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    transaction = db.relationship("TechnicalServiceTransaction")
    sale = db.relationship("TechnicalServiceSale")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "technical_service_id": self.technical_service_id,
            "action_type": self.action_type,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "previous_balance_cents": self.previous_balance_cents,
            "new_balance_cents": self.new_balance_cents,
            "reference": self.reference,
            "transaction_id": self.transaction_id,
            "sale_id": self.sale_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
