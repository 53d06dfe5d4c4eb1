from __future__ import annotations

from ..extensions import db
from fuelpos.numeric import decimal_str
from fuelpos.time_utils import to_utc_z

VESSEL_TANK = "TANK"
VESSEL_COMPARTMENT = "COMPARTMENT"


class Vessel(db.Model):
    """
    Storage tank or tanker compartment measured by dip height.

    DESIGN: Vessels are never deleted while movements reference them; they
    are deactivated instead. current_height / current_volume are mutated on
    every dip reading or computed fill.
    """
    __tablename__ = "vessels"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    point_of_sale_id = db.Column(db.Integer, db.ForeignKey("points_of_sale.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    kind = db.Column(db.String(16), nullable=False, default=VESSEL_TANK)  # TANK, COMPARTMENT
    name = db.Column(db.String(128), nullable=False)
    plate = db.Column(db.String(32), nullable=True, unique=True)  # Tanker plate, compartments only

    capacity = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    minimum_level = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    current_height = db.Column(db.Numeric(10, 2), nullable=False, default=0)  # centimetres
    current_volume = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    unit = db.Column(db.String(16), nullable=False, default="LITERS")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", backref=db.backref("vessels", lazy=True))
    point_of_sale = db.relationship("PointOfSale", backref=db.backref("vessels", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "point_of_sale_id": self.point_of_sale_id,
            "product_id": self.product_id,
            "kind": self.kind,
            "name": self.name,
            "plate": self.plate,
            "capacity": decimal_str(self.capacity),
            "minimum_level": decimal_str(self.minimum_level),
            "current_height": decimal_str(self.current_height),
            "current_volume": decimal_str(self.current_volume),
            "unit": self.unit,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class CalibrationPoint(db.Model):
    """
    One (height, volume) row of a vessel's calibration table.

    Heights are centimetres, volumes liters. A table is replaced wholesale
    (delete-all-then-insert), never partially mutated in place.
    """
    __tablename__ = "calibration_points"
    __table_args__ = (
        db.UniqueConstraint("vessel_id", "height", name="uq_calibration_points_vessel_height"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vessel_id = db.Column(db.Integer, db.ForeignKey("vessels.id"), nullable=False, index=True)
    height = db.Column(db.Numeric(10, 2), nullable=False)
    volume = db.Column(db.Numeric(14, 2), nullable=False)

    vessel = db.relationship("Vessel", backref=db.backref("calibration_points", lazy=True))

    def to_dict(self) -> dict:
        return {
            "height": decimal_str(self.height),
            "volume": decimal_str(self.volume),
        }


class VesselFill(db.Model):
    """Inventory entry computed from a before/after dip height pair."""
    __tablename__ = "vessel_fills"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    vessel_id = db.Column(db.Integer, db.ForeignKey("vessels.id"), nullable=False, index=True)
    previous_height = db.Column(db.Numeric(10, 2), nullable=False)
    new_height = db.Column(db.Numeric(10, 2), nullable=False)
    volume_delta = db.Column(db.Numeric(14, 2), nullable=False)  # vessel unit
    actor_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    vessel = db.relationship("Vessel", backref=db.backref("fills", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vessel_id": self.vessel_id,
            "previous_height": decimal_str(self.previous_height),
            "new_height": decimal_str(self.new_height),
            "volume_delta": decimal_str(self.volume_delta),
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }
