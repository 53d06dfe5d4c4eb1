# Overview: Meter reading correction with forward propagation through the shift chain.

"""
Cascade Correction Service

WHY: Cumulative meters chain shifts together: a shift's previous reading is
the preceding shift's current reading. Correcting the quantity sold in one
shift moves its current reading, so every later reading of the same hose
must shift by the same amount to keep the chain continuous.

STATES:
    VALIDATING -> APPLYING -> PROPAGATING -> RECONCILING -> COMMITTED
    any failure -> ABORTED (nothing persisted)

DESIGN PRINCIPLES:
- One transaction covers the edited reading, every downstream reading,
  allocation and cash adjustments, and the audit entry
- Downstream quantity_sold is held fixed; only the readings move
- Sale values are always computed at the product's CURRENT price. When the
  price changed since a downstream shift was recorded, the resulting value
  drift is reported and logged but not reallocated
- Only the edited shift is reconciled against payments and cash
- Hose caches are refreshed after commit; a failed refresh never fails the
  correction
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from functools import partial

from flask import current_app

from ..errors import NonMonotonicReading, NotFound, ShiftLocked, ValidationError
from ..extensions import db
from ..models import MeterReading, PaymentCategory, PaymentMethod, PaymentMethodAllocation, ShiftClosure
from ..models.audit import CHANGE_GENERAL, CHANGE_METER_READING
from ..numeric import Number, decimal_str, money_cents, round3, to_decimal
from . import allocation_service, cash_register_service
from .audit_service import record_change
from .concurrency import atomic, lock_for_update, run_with_retry
from .post_commit import PostCommitHooks
from .reading_service import following_readings, refresh_hose_cache
from .shift_service import recompute_closure_totals

logger = logging.getLogger(__name__)


class CascadeState(str, Enum):
    VALIDATING = "VALIDATING"
    APPLYING = "APPLYING"
    PROPAGATING = "PROPAGATING"
    RECONCILING = "RECONCILING"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"


@dataclass
class PropagatedStep:
    shift_id: int
    reading_id: int
    previous_reading: Decimal
    current_reading: Decimal
    quantity_sold: Decimal
    value_delta_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "shift_id": self.shift_id,
            "reading_id": self.reading_id,
            "previous_reading": decimal_str(self.previous_reading),
            "current_reading": decimal_str(self.current_reading),
            "quantity_sold": decimal_str(self.quantity_sold),
            "value_delta_cents": self.value_delta_cents,
        }


@dataclass
class CascadeSummary:
    reading_id: int
    hose_id: int | None = None
    quantity_delta: Decimal = Decimal("0")
    value_delta_cents: int = 0
    allocation_delta_cents: int = 0
    cash_delta_cents: int = 0
    payment_method_code: str | None = None
    steps: list[PropagatedStep] = field(default_factory=list)
    hops: int = 0
    state: CascadeState = CascadeState.VALIDATING

    @property
    def price_drift_cents(self) -> int:
        """Value change of downstream shifts (non-zero only after a price change)."""
        return sum(step.value_delta_cents for step in self.steps)

    def to_dict(self) -> dict:
        return {
            "reading_id": self.reading_id,
            "hose_id": self.hose_id,
            "quantity_delta": decimal_str(self.quantity_delta),
            "value_delta_cents": self.value_delta_cents,
            "allocation_delta_cents": self.allocation_delta_cents,
            "cash_delta_cents": self.cash_delta_cents,
            "payment_method_code": self.payment_method_code,
            "steps": [step.to_dict() for step in self.steps],
            "hops": self.hops,
            "price_drift_cents": self.price_drift_cents,
            "state": self.state.value,
        }


@dataclass
class CorrectionResult:
    reading: MeterReading
    summary: CascadeSummary

    def to_dict(self) -> dict:
        return {
            "reading": self.reading.to_dict(),
            "summary": self.summary.to_dict(),
        }


def _parse_quantity(value: Number, reading_id: int) -> Decimal:
    try:
        quantity = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid quantity: {value!r}", reading_id=reading_id)
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError("Quantity sold must be greater than zero", reading_id=reading_id)
    return round3(quantity)


def _method_category(closure: ShiftClosure, method_code: str) -> PaymentCategory | None:
    method = (
        db.session.query(PaymentMethod)
        .join(PaymentMethodAllocation, PaymentMethodAllocation.payment_method_id == PaymentMethod.id)
        .filter(PaymentMethodAllocation.shift_closure_id == closure.id)
        .filter(db.func.upper(PaymentMethod.code) == method_code.strip().upper())
        .first()
    )
    return method.payment_category if method else None


def _reprice(reading: MeterReading, previous: Decimal, quantity: Decimal) -> int:
    """Set previous/current/value on a reading; return the value delta."""
    price = reading.hose.product.price_cents
    old_value = reading.sale_value_cents

    reading.previous_reading = previous
    reading.quantity_sold = quantity
    reading.current_reading = round3(previous + quantity)
    reading.unit_price_cents = price
    reading.sale_value_cents = money_cents(quantity, price)
    return reading.sale_value_cents - old_value


def _propagate(reading: MeterReading, summary: CascadeSummary, actor_id: int | None) -> None:
    closure = reading.shift_closure
    shift = closure.shift
    preceding_current = to_decimal(reading.current_reading)

    for downstream in following_readings(reading.hose_id, shift, lock=True):
        summary.hops += 1
        following_shift_id = downstream.shift_closure.shift_id

        before = downstream.snapshot()
        quantity = to_decimal(downstream.quantity_sold)
        new_current = round3(preceding_current + quantity)
        if preceding_current > new_current:
            raise NonMonotonicReading(preceding_current, new_current, hose_id=reading.hose_id, shift_id=following_shift_id)

        value_delta = _reprice(downstream, preceding_current, quantity)
        summary.steps.append(PropagatedStep(
            shift_id=following_shift_id,
            reading_id=downstream.id,
            previous_reading=to_decimal(downstream.previous_reading),
            current_reading=to_decimal(downstream.current_reading),
            quantity_sold=quantity,
            value_delta_cents=value_delta,
        ))

        if value_delta:
            logger.warning(
                "Price drift on shift %s reading %s: value changed by %s cents at current price %s",
                following_shift_id, downstream.id, value_delta, downstream.unit_price_cents,
            )

        recompute_closure_totals(downstream.shift_closure)

        if before != downstream.snapshot():
            record_change(
                shift_id=following_shift_id,
                actor_id=actor_id,
                change_kind=CHANGE_GENERAL,
                old_payload=before,
                new_payload=downstream.snapshot(),
                description=f"Readings shifted by correction of reading {reading.id}",
            )

        preceding_current = to_decimal(downstream.current_reading)


def _reconcile(closure: ShiftClosure, summary: CascadeSummary, method_code: str) -> None:
    recompute_closure_totals(closure)

    tolerance = current_app.config.get("PRECISION_TOLERANCE_CENTS", 1)
    if abs(summary.value_delta_cents) <= tolerance:
        allocation_service.rebalance(closure)
        return

    summary.payment_method_code = method_code
    applied = allocation_service.apply_delta(closure, method_code, summary.value_delta_cents)
    summary.allocation_delta_cents = applied

    if applied and _method_category(closure, method_code) == PaymentCategory.CASH:
        summary.cash_delta_cents = cash_register_service.apply_sales_cash_delta(closure, applied)


def correct_meter_reading(
    reading_id: int,
    new_quantity_sold: Number,
    actor_id: int | None = None,
    payment_method_code: str | None = None,
) -> CorrectionResult:
    """
    Correct the quantity sold of a meter reading and propagate the change.

    Returns the updated reading and a CascadeSummary. Any error aborts the
    whole correction; nothing is persisted.

    Raises:
        ValidationError: quantity <= 0
        NotFound: unknown reading
        ShiftLocked: the reading's closure is LOCKED or FINALIZED
        NonMonotonicReading: a downstream step would break the meter chain
        ChainBoundExceeded: the hose has more than CASCADE_MAX_HOPS later readings
    """
    quantity = _parse_quantity(new_quantity_sold, reading_id)
    method_code = payment_method_code or current_app.config.get("DEFAULT_CORRECTION_PAYMENT_METHOD", "CASH")
    attempt: dict = {}

    def _apply():
        summary = CascadeSummary(reading_id=reading_id)
        hooks = PostCommitHooks()
        attempt["summary"] = summary

        with atomic():
            reading = lock_for_update(db.session.query(MeterReading).filter_by(id=reading_id)).first()
            if not reading:
                raise NotFound("MeterReading", reading_id)
            closure = reading.shift_closure
            if not closure.is_editable:
                raise ShiftLocked(closure.id, closure.status)
            summary.hose_id = reading.hose_id

            summary.state = CascadeState.APPLYING
            before = reading.snapshot()
            old_quantity = to_decimal(reading.quantity_sold)
            summary.value_delta_cents = _reprice(reading, to_decimal(reading.previous_reading), quantity)
            summary.quantity_delta = quantity - old_quantity

            summary.state = CascadeState.PROPAGATING
            _propagate(reading, summary, actor_id)

            summary.state = CascadeState.RECONCILING
            _reconcile(closure, summary, method_code)

            record_change(
                shift_id=closure.shift_id,
                actor_id=actor_id,
                change_kind=CHANGE_METER_READING,
                old_payload=before,
                new_payload={
                    **reading.snapshot(),
                    "propagated": [step.to_dict() for step in summary.steps],
                },
                description=f"Meter reading {reading.id} corrected: quantity {decimal_str(old_quantity)} -> {decimal_str(quantity)}",
            )

        hooks.add(f"refresh_hose_cache:{summary.hose_id}", partial(refresh_hose_cache, summary.hose_id))
        return reading, summary, hooks

    try:
        reading, summary, hooks = run_with_retry(_apply)
    except Exception:
        summary = attempt.get("summary")
        if summary is not None:
            logger.warning("Correction of reading %s aborted during %s", reading_id, summary.state.value)
            summary.state = CascadeState.ABORTED
        raise

    summary.state = CascadeState.COMMITTED
    hooks.run()

    logger.info(
        "Reading %s corrected: qty delta=%s value delta=%s allocation=%s cash=%s hops=%s drift=%s",
        reading_id, summary.quantity_delta, summary.value_delta_cents, summary.allocation_delta_cents,
        summary.cash_delta_cents, summary.hops, summary.price_drift_cents,
    )
    return CorrectionResult(reading=reading, summary=summary)
