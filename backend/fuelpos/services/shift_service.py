# Overview: Service-layer operations for shift closures; lifecycle and totals.

"""
Shift Closure Service

WHY: A shift closure is the financial record of one shift. Its totals are
derived from the meter readings and product sales it contains, and its
status decides whether corrections may still touch it.

LIFECYCLE:
- OPEN -> LOCKED      (lock_closure)
- LOCKED -> OPEN      (reopen_closure)
- OPEN|LOCKED -> FINALIZED (finalize_closure); FINALIZED is terminal

DESIGN PRINCIPLES:
- Totals are always recomputed from the rows, never patched incrementally
- Every status change is written to the shift audit trail
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Dispenser, Hose, MeterReading, ProductSale, Shift, ShiftClosure
from ..models.audit import CHANGE_GENERAL
from ..models.shifts import CLOSURE_FINALIZED, CLOSURE_LOCKED, CLOSURE_OPEN
from ..models.stations import UNIT_GALLONS
from ..numeric import decimal_str, round2, round3, to_decimal
from ..time_utils import utcnow
from .audit_service import record_change
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


def _liters_to_gallons() -> Decimal:
    return to_decimal(current_app.config.get("LITERS_TO_GALLONS", "0.264172"))


def get_closure(closure_id: int, *, lock: bool = False) -> ShiftClosure:
    query = db.session.query(ShiftClosure).filter_by(id=closure_id)
    if lock:
        query = lock_for_update(query)
    closure = query.first()
    if not closure:
        raise NotFound("ShiftClosure", closure_id)
    return closure


def get_closure_for_shift(shift_id: int) -> ShiftClosure | None:
    return db.session.query(ShiftClosure).filter_by(shift_id=shift_id).first()


def open_closure(shift_id: int) -> ShiftClosure:
    """Return the shift's closure, creating an empty OPEN one if missing."""
    shift = db.session.get(Shift, shift_id)
    if not shift:
        raise NotFound("Shift", shift_id)

    closure = get_closure_for_shift(shift_id)
    if closure:
        return closure

    with atomic():
        closure = ShiftClosure(
            shift_id=shift.id,
            point_of_sale_id=shift.point_of_sale_id,
            status=CLOSURE_OPEN,
            dispenser_summary={"dispensers": []},
        )
        db.session.add(closure)
    return closure


# =============================================================================
# TOTALS
# =============================================================================

def _quantity_in_liters(quantity: Decimal, unit: str) -> Decimal:
    if unit == UNIT_GALLONS:
        return quantity / _liters_to_gallons()
    return quantity


def build_dispenser_summary(closure: ShiftClosure) -> dict:
    """Per-dispenser, per-product quantities and values of a closure's readings."""
    rows = (
        db.session.query(MeterReading, Hose, Dispenser)
        .join(Hose, MeterReading.hose_id == Hose.id)
        .join(Dispenser, Hose.dispenser_id == Dispenser.id)
        .filter(MeterReading.shift_closure_id == closure.id)
        .order_by(Dispenser.number, Hose.number)
        .all()
    )

    dispensers: "OrderedDict[int, dict]" = OrderedDict()
    for reading, hose, dispenser in rows:
        entry = dispensers.setdefault(dispenser.id, {
            "dispenser_id": dispenser.id,
            "number": dispenser.number,
            "products": OrderedDict(),
            "value_cents": 0,
        })
        product = entry["products"].setdefault(hose.product_id, {
            "product_id": hose.product_id,
            "code": hose.product.code,
            "quantity": Decimal("0"),
            "value_cents": 0,
        })
        product["quantity"] += to_decimal(reading.quantity_sold)
        product["value_cents"] += reading.sale_value_cents
        entry["value_cents"] += reading.sale_value_cents

    summary = []
    for entry in dispensers.values():
        products = []
        for product in entry["products"].values():
            product["quantity"] = decimal_str(round3(product["quantity"]))
            products.append(product)
        entry["products"] = products
        summary.append(entry)
    return {"dispensers": summary}


def recompute_closure_totals(closure: ShiftClosure) -> ShiftClosure:
    """
    Re-derive liters, gallons, total value and the dispenser summary.

    total value = sum(reading sale values) + sum(product sale totals).
    Does not commit.
    """
    db.session.flush()

    readings = (
        db.session.query(MeterReading)
        .filter_by(shift_closure_id=closure.id)
        .all()
    )

    liters = Decimal("0")
    value_cents = 0
    for reading in readings:
        liters += _quantity_in_liters(to_decimal(reading.quantity_sold), reading.hose.product.unit)
        value_cents += reading.sale_value_cents

    product_sales_cents = (
        db.session.query(func.coalesce(func.sum(ProductSale.total_cents), 0))
        .filter(ProductSale.shift_closure_id == closure.id)
        .scalar()
    )

    closure.total_liters = round2(liters)
    closure.total_gallons = round2(liters * _liters_to_gallons())
    closure.total_value_cents = value_cents + int(product_sales_cents)
    closure.dispenser_summary = build_dispenser_summary(closure)
    db.session.flush()
    return closure


# =============================================================================
# LIFECYCLE
# =============================================================================

def _transition(closure_id: int, allowed_from: tuple, target: str, actor_id: int | None) -> ShiftClosure:
    with atomic():
        closure = get_closure(closure_id, lock=True)
        if closure.status not in allowed_from:
            raise ValidationError(
                f"Cannot move shift closure {closure.id} from {closure.status} to {target}",
                shift_closure_id=closure.id,
            )

        old_status = closure.status
        closure.status = target
        if target == CLOSURE_FINALIZED:
            closure.closed_at = utcnow()

        record_change(
            shift_id=closure.shift_id,
            actor_id=actor_id,
            change_kind=CHANGE_GENERAL,
            old_payload={"status": old_status},
            new_payload={"status": target},
            description=f"Shift closure status {old_status} -> {target}",
        )

    logger.info("Shift closure %s: %s -> %s", closure_id, old_status, target)
    return closure


def lock_closure(closure_id: int, actor_id: int | None = None) -> ShiftClosure:
    return _transition(closure_id, (CLOSURE_OPEN,), CLOSURE_LOCKED, actor_id)


def reopen_closure(closure_id: int, actor_id: int | None = None) -> ShiftClosure:
    return _transition(closure_id, (CLOSURE_LOCKED,), CLOSURE_OPEN, actor_id)


def finalize_closure(closure_id: int, actor_id: int | None = None) -> ShiftClosure:
    return _transition(closure_id, (CLOSURE_OPEN, CLOSURE_LOCKED), CLOSURE_FINALIZED, actor_id)
