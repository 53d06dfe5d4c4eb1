from __future__ import annotations

from ..extensions import db
from fuelpos.numeric import decimal_str
from fuelpos.time_utils import iso_date, iso_time, to_utc_z

CLOSURE_OPEN = "OPEN"
CLOSURE_LOCKED = "LOCKED"
CLOSURE_FINALIZED = "FINALIZED"

NON_EDITABLE_STATUSES = (CLOSURE_LOCKED, CLOSURE_FINALIZED)


class Shift(db.Model):
    """
    One operating window at a point of sale.

    The shift chain of a point of sale is ordered by (start_date, start_time);
    the unique constraint makes that ordering total.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.UniqueConstraint("point_of_sale_id", "start_date", "start_time", name="uq_shifts_pos_start"),
        db.Index("ix_shifts_pos_chain", "point_of_sale_id", "start_date", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    point_of_sale_id = db.Column(db.Integer, db.ForeignKey("points_of_sale.id"), nullable=False, index=True)
    start_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    end_time = db.Column(db.Time, nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    point_of_sale = db.relationship("PointOfSale", backref=db.backref("shifts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "point_of_sale_id": self.point_of_sale_id,
            "start_date": iso_date(self.start_date),
            "start_time": iso_time(self.start_time),
            "end_date": iso_date(self.end_date),
            "end_time": iso_time(self.end_time),
            "user_id": self.user_id,
        }


class ShiftClosure(db.Model):
    """
    Closing record of one shift.

    LIFECYCLE:
    - OPEN: editable, corrections allowed
    - LOCKED: temporarily frozen (can be reopened)
    - FINALIZED: terminal

    Totals aggregate every MeterReading and ProductSale of the closure;
    category totals bucket the payment allocations.
    """
    __tablename__ = "shift_closures"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, unique=True)
    point_of_sale_id = db.Column(db.Integer, db.ForeignKey("points_of_sale.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=CLOSURE_OPEN, index=True)

    total_liters = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_gallons = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    # Payment category buckets (cents)
    total_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    total_card_cents = db.Column(db.Integer, nullable=False, default=0)
    total_transfer_cents = db.Column(db.Integer, nullable=False, default=0)
    total_fleet_cents = db.Column(db.Integer, nullable=False, default=0)
    total_voucher_cents = db.Column(db.Integer, nullable=False, default=0)
    total_other_cents = db.Column(db.Integer, nullable=False, default=0)

    dispenser_summary = db.Column(db.JSON, nullable=True)

    closed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shift = db.relationship("Shift", backref=db.backref("closure", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_editable(self) -> bool:
        return self.status not in NON_EDITABLE_STATUSES

    def category_totals(self) -> dict:
        return {
            "CASH": self.total_cash_cents,
            "CARD": self.total_card_cents,
            "TRANSFER": self.total_transfer_cents,
            "FLEET": self.total_fleet_cents,
            "VOUCHER": self.total_voucher_cents,
            "OTHER": self.total_other_cents,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "point_of_sale_id": self.point_of_sale_id,
            "status": self.status,
            "total_liters": decimal_str(self.total_liters),
            "total_gallons": decimal_str(self.total_gallons),
            "total_value_cents": self.total_value_cents,
            "category_totals_cents": self.category_totals(),
            "dispenser_summary": self.dispenser_summary,
            "closed_at": to_utc_z(self.closed_at),
            "version_id": self.version_id,
        }


class MeterReading(db.Model):
    """
    Per-hose meter record inside a shift closure.

    INVARIANTS:
    - quantity_sold = current_reading - previous_reading >= 0
    - sale_value_cents = quantity_sold x unit_price_cents (half-up)
    - For adjacent shifts of the same hose, the later previous_reading
      equals the earlier current_reading.

    Created when a shift is closed; mutated only by the correction cascade.
    """
    __tablename__ = "meter_readings"
    __table_args__ = (
        db.UniqueConstraint("shift_closure_id", "hose_id", name="uq_meter_readings_closure_hose"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_closure_id = db.Column(db.Integer, db.ForeignKey("shift_closures.id"), nullable=False, index=True)
    hose_id = db.Column(db.Integer, db.ForeignKey("hoses.id"), nullable=False, index=True)

    previous_reading = db.Column(db.Numeric(14, 3), nullable=False)
    current_reading = db.Column(db.Numeric(14, 3), nullable=False)
    quantity_sold = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    sale_value_cents = db.Column(db.Integer, nullable=False)

    read_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    recorded_by_user_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shift_closure = db.relationship("ShiftClosure", backref=db.backref("meter_readings", lazy=True))
    hose = db.relationship("Hose", backref=db.backref("meter_readings", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def snapshot(self) -> dict:
        """Audit payload of the mutable fields."""
        return {
            "previous_reading": decimal_str(self.previous_reading),
            "current_reading": decimal_str(self.current_reading),
            "quantity_sold": decimal_str(self.quantity_sold),
            "unit_price_cents": self.unit_price_cents,
            "sale_value_cents": self.sale_value_cents,
        }

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "shift_closure_id": self.shift_closure_id,
            "hose_id": self.hose_id,
            "read_at": to_utc_z(self.read_at),
            "recorded_by_user_id": self.recorded_by_user_id,
            "notes": self.notes,
            "version_id": self.version_id,
        }
        data.update(self.snapshot())
        return data


class ProductSale(db.Model):
    """Non-metered sale (lubricants, shop items) recorded inside a shift closure."""
    __tablename__ = "product_sales"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shift_closure_id = db.Column(db.Integer, db.ForeignKey("shift_closures.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shift_closure = db.relationship("ShiftClosure", backref=db.backref("product_sales", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_closure_id": self.shift_closure_id,
            "product_id": self.product_id,
            "payment_method_id": self.payment_method_id,
            "quantity": decimal_str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "sold_at": to_utc_z(self.sold_at),
        }
