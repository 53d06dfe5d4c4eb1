from __future__ import annotations

from ..extensions import db
from fuelpos.time_utils import to_utc_z

UNIT_LITERS = "LITERS"
UNIT_GALLONS = "GALLONS"


class PointOfSale(db.Model):
    """
    A fuel station point of sale.

    Shifts, dispensers, vessels and the cash register all hang off a point
    of sale. The shift chain is ordered per point of sale.
    """
    __tablename__ = "points_of_sale"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Sellable product. Fuel products are dispensed through hoses and stored
    in vessels; price_cents is always the CURRENT sale price.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)
    unit = db.Column(db.String(16), nullable=False, default=UNIT_LITERS)  # LITERS, GALLONS
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_fuel = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "is_fuel": self.is_fuel,
            "is_active": self.is_active,
        }
