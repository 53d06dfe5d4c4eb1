# Overview: Service-layer operations for hose meter readings.

"""
Meter Reading Ledger

WHY: Hoses carry cumulative meters. The quantity sold in a shift is the
difference between the shift's closing reading and the closing reading of
the previous shift, valued at the product's current price.

DESIGN PRINCIPLES:
- MeterReading rows are the source of truth; Hose.last_reading is a cache
- Readings are appended in chain order; later edits go through the
  correction cascade (cascade_service)
- Cache refreshes run after commit and never fail the recording
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from functools import partial

from sqlalchemy import and_, or_

from ..errors import ChainBoundExceeded, NonMonotonicReading, NotFound, ShiftLocked, ValidationError
from ..extensions import db
from ..models import Hose, MeterReading, Shift, ShiftClosure
from ..models.audit import CHANGE_METER_READING
from ..numeric import Number, money_cents, round3, to_decimal
from .audit_service import record_change
from .concurrency import atomic, lock_for_update
from .post_commit import PostCommitHooks
from .shift_chain import follows, hop_limit
from .shift_service import recompute_closure_totals

logger = logging.getLogger(__name__)


def _hose_readings_query(hose_id: int):
    return (
        db.session.query(MeterReading)
        .join(ShiftClosure, MeterReading.shift_closure_id == ShiftClosure.id)
        .join(Shift, ShiftClosure.shift_id == Shift.id)
        .filter(MeterReading.hose_id == hose_id)
    )


def list_hose_readings(hose_id: int) -> list[MeterReading]:
    """Readings of a hose in shift chain order."""
    return _hose_readings_query(hose_id).order_by(Shift.start_date, Shift.start_time).all()


def latest_reading(hose_id: int) -> MeterReading | None:
    return (
        _hose_readings_query(hose_id)
        .order_by(Shift.start_date.desc(), Shift.start_time.desc())
        .first()
    )


def _reading_before(hose_id: int, shift: Shift) -> MeterReading | None:
    return (
        _hose_readings_query(hose_id)
        .filter(
            or_(
                Shift.start_date < shift.start_date,
                and_(Shift.start_date == shift.start_date, Shift.start_time < shift.start_time),
            )
        )
        .order_by(Shift.start_date.desc(), Shift.start_time.desc())
        .first()
    )


def _reading_after(hose_id: int, shift: Shift) -> MeterReading | None:
    return _hose_readings_query(hose_id).filter(follows(shift)).first()


def following_readings(hose_id: int, shift: Shift, *, lock: bool = False, max_hops: int | None = None) -> list[MeterReading]:
    """
    Readings of a hose in shifts strictly after `shift`, in chain order.

    One ordered query. Shifts without a reading for the hose are not part of
    the result and do not count toward the hop limit. More than max_hops
    readings raises ChainBoundExceeded.
    """
    if max_hops is None:
        max_hops = hop_limit()

    query = (
        _hose_readings_query(hose_id)
        .filter(follows(shift))
        .order_by(Shift.start_date, Shift.start_time)
        .limit(max_hops + 1)
    )
    if lock:
        query = lock_for_update(query)
    readings = query.all()
    if len(readings) > max_hops:
        raise ChainBoundExceeded(shift.point_of_sale_id, shift.id, max_hops)
    return readings


def refresh_hose_cache(hose_id: int) -> Decimal | None:
    """Set Hose.last_reading to the current reading of the chain-latest record."""
    hose = db.session.get(Hose, hose_id)
    if hose is None:
        return None
    latest = latest_reading(hose_id)
    if latest is None:
        return to_decimal(hose.last_reading or 0)
    hose.last_reading = latest.current_reading
    db.session.flush()
    return to_decimal(hose.last_reading)


def record_reading(
    hose_id: int,
    shift_closure_id: int,
    new_current_reading: Number,
    actor_id: int | None = None,
) -> MeterReading:
    """
    Record the closing meter reading of a hose for a shift closure.

    previous reading: the hose's chain-latest reading before this shift,
    else its cached last_reading, else 0.

    Raises:
        NonMonotonicReading: the new reading is below the previous one
        ShiftLocked: the closure is LOCKED or FINALIZED
        ValidationError: duplicate reading, reading out of chain order
    """
    try:
        current = to_decimal(new_current_reading)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid meter reading: {new_current_reading!r}", hose_id=hose_id)
    if not current.is_finite():
        raise ValidationError(f"Meter reading must be a finite number, got {new_current_reading!r}", hose_id=hose_id)
    current = round3(current)
    if current < 0:
        raise ValidationError("Meter reading cannot be negative", hose_id=hose_id)

    with atomic():
        closure = lock_for_update(db.session.query(ShiftClosure).filter_by(id=shift_closure_id)).first()
        if not closure:
            raise NotFound("ShiftClosure", shift_closure_id)
        if not closure.is_editable:
            raise ShiftLocked(closure.id, closure.status)

        hose = lock_for_update(db.session.query(Hose).filter_by(id=hose_id)).first()
        if not hose:
            raise NotFound("Hose", hose_id)
        if hose.point_of_sale_id != closure.point_of_sale_id:
            raise ValidationError(
                f"Hose {hose_id} does not belong to the point of sale of shift closure {closure.id}",
                hose_id=hose_id,
            )

        existing = (
            db.session.query(MeterReading)
            .filter_by(shift_closure_id=closure.id, hose_id=hose.id)
            .first()
        )
        if existing:
            raise ValidationError(
                f"Hose {hose_id} already has reading {existing.id} in shift closure {closure.id}",
                hose_id=hose_id,
            )

        shift = closure.shift
        later = _reading_after(hose.id, shift)
        if later:
            raise ValidationError(
                f"Hose {hose_id} already has a reading in a later shift; correct that chain instead",
                hose_id=hose_id,
                shift_id=shift.id,
            )

        before = _reading_before(hose.id, shift)
        if before is not None:
            previous = to_decimal(before.current_reading)
        else:
            previous = to_decimal(hose.last_reading or 0)

        if current < previous:
            raise NonMonotonicReading(previous, current, hose_id=hose.id, shift_id=shift.id)

        price = hose.product.price_cents
        quantity = round3(current - previous)
        reading = MeterReading(
            shift_closure_id=closure.id,
            hose_id=hose.id,
            previous_reading=previous,
            current_reading=current,
            quantity_sold=quantity,
            unit_price_cents=price,
            sale_value_cents=money_cents(quantity, price),
            recorded_by_user_id=actor_id,
        )
        db.session.add(reading)
        db.session.flush()

        recompute_closure_totals(closure)

        record_change(
            shift_id=shift.id,
            actor_id=actor_id,
            change_kind=CHANGE_METER_READING,
            old_payload=None,
            new_payload=reading.snapshot(),
            description=f"Meter reading recorded for hose {hose.id}",
        )

    hooks = PostCommitHooks()
    hooks.add(f"refresh_hose_cache:{hose_id}", partial(refresh_hose_cache, hose_id))
    hooks.run()

    logger.info(
        "Meter reading recorded: hose=%s closure=%s %s->%s qty=%s",
        hose_id, shift_closure_id, reading.previous_reading, reading.current_reading, reading.quantity_sold,
    )
    return reading


def get_reading(reading_id: int) -> MeterReading:
    reading = db.session.get(MeterReading, reading_id)
    if not reading:
        raise NotFound("MeterReading", reading_id)
    return reading


def get_reading_details(reading_id: int) -> dict:
    """A reading with its hose, dispenser, product and shift context."""
    reading = get_reading(reading_id)
    hose = reading.hose
    closure = reading.shift_closure

    data = reading.to_dict()
    data["hose"] = hose.to_dict()
    data["dispenser"] = hose.dispenser.to_dict()
    data["product"] = hose.product.to_dict()
    data["shift"] = closure.shift.to_dict()
    data["closure_status"] = closure.status
    return data
