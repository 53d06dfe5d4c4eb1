from __future__ import annotations

from ..extensions import db
from fuelpos.numeric import decimal_str


class Dispenser(db.Model):
    """Fuel dispenser (pump island unit) at a point of sale."""
    __tablename__ = "dispensers"
    __table_args__ = (
        db.UniqueConstraint("point_of_sale_id", "number", name="uq_dispensers_pos_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    point_of_sale_id = db.Column(db.Integer, db.ForeignKey("points_of_sale.id"), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(128), nullable=True)

    point_of_sale = db.relationship("PointOfSale", backref=db.backref("dispensers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "point_of_sale_id": self.point_of_sale_id,
            "number": self.number,
            "name": self.name or f"Dispenser {self.number}",
        }


class Hose(db.Model):
    """
    A single dispensing outlet with its own cumulative meter.

    last_reading is a convenience cache of the latest cumulative reading.
    MeterReading rows are the source of truth; the cache is refreshed
    best-effort after commits.
    """
    __tablename__ = "hoses"
    __table_args__ = (
        db.UniqueConstraint("dispenser_id", "number", name="uq_hoses_dispenser_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dispenser_id = db.Column(db.Integer, db.ForeignKey("dispensers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    last_reading = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    dispenser = db.relationship("Dispenser", backref=db.backref("hoses", lazy=True))
    product = db.relationship("Product")

    @property
    def point_of_sale_id(self) -> int:
        return self.dispenser.point_of_sale_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dispenser_id": self.dispenser_id,
            "product_id": self.product_id,
            "number": self.number,
            "last_reading": decimal_str(self.last_reading),
        }
