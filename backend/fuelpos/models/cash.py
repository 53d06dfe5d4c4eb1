from __future__ import annotations

from ..extensions import db
from fuelpos.time_utils import to_utc_z

DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"


class CashRegister(db.Model):
    """
    Cash box of a point of sale.

    current_balance_cents is a cache: the authoritative balance is re-derived
    by walking the shift chain from opening_balance_cents (see
    cash_register_service.rebuild_current_balance).
    """
    __tablename__ = "cash_registers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    point_of_sale_id = db.Column(db.Integer, db.ForeignKey("points_of_sale.id"), nullable=False, unique=True)
    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    last_movement_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    point_of_sale = db.relationship("PointOfSale", backref=db.backref("cash_register", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "point_of_sale_id": self.point_of_sale_id,
            "opening_balance_cents": self.opening_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "last_movement_at": to_utc_z(self.last_movement_at),
            "is_active": self.is_active,
        }


class CashMovement(db.Model):
    """
    Cash in/out of a shift closure.

    is_sales_cash tags the movement that carries the shift's cash sales, the
    one adjusted when a correction changes cash-settled value.
    Immutable except through explicit correction.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_closure_direction", "shift_closure_id", "direction"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_closure_id = db.Column(db.Integer, db.ForeignKey("shift_closures.id"), nullable=False, index=True)
    direction = db.Column(db.String(8), nullable=False)  # IN, OUT
    amount_cents = db.Column(db.Integer, nullable=False)
    concept = db.Column(db.String(255), nullable=False)
    is_sales_cash = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    shift_closure = db.relationship("ShiftClosure", backref=db.backref("cash_movements", lazy=True))

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.direction == DIRECTION_IN else -self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_closure_id": self.shift_closure_id,
            "direction": self.direction,
            "amount_cents": self.amount_cents,
            "concept": self.concept,
            "is_sales_cash": self.is_sales_cash,
            "created_at": to_utc_z(self.created_at),
        }
