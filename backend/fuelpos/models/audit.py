from __future__ import annotations

from ..extensions import db
from fuelpos.time_utils import to_utc_z

CHANGE_GENERAL = "GENERAL"
CHANGE_METER_READING = "METER_READING"
CHANGE_PRODUCT_SALE = "PRODUCT_SALE"
CHANGE_PAYMENT_METHOD = "PAYMENT_METHOD"
CHANGE_CASH_MOVEMENT = "CASH_MOVEMENT"

VALID_CHANGE_KINDS = [
    CHANGE_GENERAL,
    CHANGE_METER_READING,
    CHANGE_PRODUCT_SALE,
    CHANGE_PAYMENT_METHOD,
    CHANGE_CASH_MOVEMENT,
]


class ShiftChangeLog(db.Model):
    """
    Append-only before/after trail of edits made to a shift.

    Written inside the same transaction as the change it records.
    """
    __tablename__ = "shift_change_logs"
    __table_args__ = (
        db.Index("ix_shift_change_logs_shift_created", "shift_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    actor_id = db.Column(db.Integer, nullable=True)
    change_kind = db.Column(db.String(32), nullable=False, index=True)
    old_payload = db.Column(db.JSON, nullable=True)
    new_payload = db.Column(db.JSON, nullable=True)
    description = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "actor_id": self.actor_id,
            "change_kind": self.change_kind,
            "old_payload": self.old_payload,
            "new_payload": self.new_payload,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
