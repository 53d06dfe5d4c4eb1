from __future__ import annotations

from enum import Enum

from ..extensions import db
from fuelpos.numeric import decimal_str


class PaymentCategory(str, Enum):
    """Bucket a payment method's amounts roll up into on the shift closure."""
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    FLEET = "FLEET"
    VOUCHER = "VOUCHER"
    OTHER = "OTHER"


# Category -> ShiftClosure column
CATEGORY_TOTAL_COLUMNS = {
    PaymentCategory.CASH: "total_cash_cents",
    PaymentCategory.CARD: "total_card_cents",
    PaymentCategory.TRANSFER: "total_transfer_cents",
    PaymentCategory.FLEET: "total_fleet_cents",
    PaymentCategory.VOUCHER: "total_voucher_cents",
    PaymentCategory.OTHER: "total_other_cents",
}


class PaymentMethod(db.Model):
    """
    Configured tender type.

    category is resolved once, when the method is configured, from the
    explicit code -> category table in config (see
    allocation_service.resolve_category).
    """
    __tablename__ = "payment_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)
    category = db.Column(db.String(16), nullable=False, default=PaymentCategory.OTHER.value)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    @property
    def payment_category(self) -> PaymentCategory:
        return PaymentCategory(self.category)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "category": self.category,
            "is_active": self.is_active,
        }


class PaymentMethodAllocation(db.Model):
    """
    Share of a shift closure's sales settled by one payment method.

    INVARIANT: sum(amount_cents) over a closure == closure.total_value_cents
    within 1 cent.
    """
    __tablename__ = "payment_method_allocations"
    __table_args__ = (
        db.UniqueConstraint("shift_closure_id", "payment_method_id", name="uq_allocations_closure_method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_closure_id = db.Column(db.Integer, db.ForeignKey("shift_closures.id"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    percentage = db.Column(db.Numeric(7, 2), nullable=False, default=0)

    shift_closure = db.relationship("ShiftClosure", backref=db.backref("allocations", lazy=True))
    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_closure_id": self.shift_closure_id,
            "payment_method_id": self.payment_method_id,
            "payment_method_code": self.payment_method.code if self.payment_method else None,
            "amount_cents": self.amount_cents,
            "percentage": decimal_str(self.percentage),
        }
