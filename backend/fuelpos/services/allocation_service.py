# Overview: Service-layer operations for payment allocations of shift closures.

"""
Payment Allocation Service

WHY: A shift closure's sales total is broken down by payment method
(cash, cards, transfers, fleet accounts, vouchers...). When a correction
changes the shift's value, the breakdown must move with it so that the
allocations keep summing to the shift total.

DESIGN PRINCIPLES:
- Category is resolved once, when a payment method is configured, from an
  explicit code -> category table; allocations never re-match method names
- Amounts are integer cents and never go negative (floored at 0)
- Percentages are always recomputed against the closure's current total
- Category totals on the closure are re-bucketed from scratch each time
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping

from flask import current_app
from sqlalchemy import func

from ..errors import NotFound, ShiftLocked, ValidationError
from ..extensions import db
from ..models import PaymentCategory, PaymentMethod, PaymentMethodAllocation, ShiftClosure
from ..models.audit import CHANGE_PAYMENT_METHOD
from ..models.payments import CATEGORY_TOTAL_COLUMNS
from ..numeric import round2
from .audit_service import record_change
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


# =============================================================================
# METHOD CONFIGURATION
# =============================================================================

def resolve_category(
    code: str,
    *,
    is_cash: bool = False,
    is_card: bool = False,
    is_digital: bool = False,
    mapping: Mapping[str, str] | None = None,
) -> PaymentCategory:
    """
    Resolve a payment method code to its category.

    Order: explicit mapping table, then the method's flags, then OTHER.
    """
    if mapping is None:
        mapping = current_app.config.get("PAYMENT_METHOD_CATEGORIES", {})

    key = (code or "").strip().upper()
    if key in mapping:
        return PaymentCategory(mapping[key])
    if is_cash:
        return PaymentCategory.CASH
    if is_card:
        return PaymentCategory.CARD
    if is_digital:
        return PaymentCategory.TRANSFER
    return PaymentCategory.OTHER


def configure_payment_method(
    code: str,
    name: str,
    *,
    is_cash: bool = False,
    is_card: bool = False,
    is_digital: bool = False,
) -> PaymentMethod:
    """Create or update a payment method, fixing its category."""
    if not code or not name:
        raise ValidationError("Payment method code and name required")

    code = code.strip().upper()
    category = resolve_category(code, is_cash=is_cash, is_card=is_card, is_digital=is_digital)

    with atomic():
        method = db.session.query(PaymentMethod).filter_by(code=code).first()
        if method is None:
            method = PaymentMethod(code=code, name=name)
            db.session.add(method)
        method.name = name
        method.category = category.value

    return method


def get_payment_method(code: str) -> PaymentMethod:
    method = (
        db.session.query(PaymentMethod)
        .filter(func.upper(PaymentMethod.code) == (code or "").strip().upper())
        .first()
    )
    if not method:
        raise NotFound("PaymentMethod", code)
    return method


# =============================================================================
# ALLOCATIONS
# =============================================================================

def get_allocations(closure_id: int, *, lock: bool = False) -> list[PaymentMethodAllocation]:
    query = (
        db.session.query(PaymentMethodAllocation)
        .filter_by(shift_closure_id=closure_id)
        .order_by(PaymentMethodAllocation.id)
    )
    if lock:
        query = lock_for_update(query)
    return query.all()


def rebalance(closure: ShiftClosure) -> dict[PaymentCategory, int]:
    """
    Recompute every allocation's percentage and the closure's category totals.

    Percentages are amount / closure total x 100, rounded to 2 decimals
    (0 when the total is 0). Does not commit.
    """
    allocations = get_allocations(closure.id)
    total = closure.total_value_cents or 0

    buckets = {category: 0 for category in PaymentCategory}
    for allocation in allocations:
        if total > 0:
            allocation.percentage = round2(Decimal(allocation.amount_cents) / Decimal(total) * 100)
        else:
            allocation.percentage = round2(0)
        buckets[allocation.payment_method.payment_category] += allocation.amount_cents

    for category, column in CATEGORY_TOTAL_COLUMNS.items():
        setattr(closure, column, buckets[category])

    db.session.flush()
    return buckets


def apply_delta(closure: ShiftClosure, method_code: str, delta_cents: int) -> int:
    """
    Move a shift's value delta onto one payment method.

    Returns the delta actually applied (differs from delta_cents when the
    amount hits the zero floor). A closure without an allocation for the
    method is left untouched and 0 is returned. Does not commit.
    """
    allocation = (
        lock_for_update(
            db.session.query(PaymentMethodAllocation)
            .join(PaymentMethod, PaymentMethodAllocation.payment_method_id == PaymentMethod.id)
            .filter(PaymentMethodAllocation.shift_closure_id == closure.id)
            .filter(func.upper(PaymentMethod.code) == (method_code or "").strip().upper())
        )
        .first()
    )

    if allocation is None:
        logger.warning(
            "No matching allocation found for method %s on shift closure %s; delta %s not reallocated",
            method_code, closure.id, delta_cents,
        )
        return 0

    old_amount = allocation.amount_cents
    allocation.amount_cents = max(0, old_amount + delta_cents)
    applied = allocation.amount_cents - old_amount

    if applied != delta_cents:
        logger.warning(
            "Allocation %s floored at zero: requested delta %s, applied %s",
            allocation.id, delta_cents, applied,
        )

    rebalance(closure)
    return applied


def set_allocations(closure_id: int, amounts: Mapping[str, int], actor_id: int | None = None) -> list[PaymentMethodAllocation]:
    """
    Record the payment breakdown of a closure (method code -> cents).

    Methods not listed keep their current amount.
    """
    for code, amount in amounts.items():
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValidationError(f"Allocation amount for {code} must be a non-negative integer (cents)")

    with atomic():
        closure = lock_for_update(db.session.query(ShiftClosure).filter_by(id=closure_id)).first()
        if not closure:
            raise NotFound("ShiftClosure", closure_id)
        if not closure.is_editable:
            raise ShiftLocked(closure.id, closure.status)

        before = {a.payment_method.code: a.amount_cents for a in get_allocations(closure.id, lock=True)}

        for code, amount in amounts.items():
            method = get_payment_method(code)
            allocation = (
                db.session.query(PaymentMethodAllocation)
                .filter_by(shift_closure_id=closure.id, payment_method_id=method.id)
                .first()
            )
            if allocation is None:
                allocation = PaymentMethodAllocation(
                    shift_closure_id=closure.id,
                    payment_method_id=method.id,
                    amount_cents=0,
                )
                db.session.add(allocation)
            allocation.amount_cents = amount
        db.session.flush()

        rebalance(closure)
        allocations = get_allocations(closure.id)

        record_change(
            shift_id=closure.shift_id,
            actor_id=actor_id,
            change_kind=CHANGE_PAYMENT_METHOD,
            old_payload=before,
            new_payload={a.payment_method.code: a.amount_cents for a in allocations},
            description="Payment allocations recorded",
        )

    return allocations


def remove_allocation(allocation_id: int, actor_id: int | None = None) -> dict:
    """
    Delete one payment method line from a closure's breakdown.

    The closure total comes from its readings and product sales, so it does
    not move; the remaining lines are rebalanced against it. Returns the
    removed allocation as a dict.
    """
    with atomic():
        allocation = lock_for_update(
            db.session.query(PaymentMethodAllocation).filter_by(id=allocation_id)
        ).first()
        if not allocation:
            raise NotFound("PaymentMethodAllocation", allocation_id)

        closure = lock_for_update(db.session.query(ShiftClosure).filter_by(id=allocation.shift_closure_id)).first()
        if not closure.is_editable:
            raise ShiftLocked(closure.id, closure.status)

        removed = allocation.to_dict()
        code = allocation.payment_method.code
        db.session.delete(allocation)
        db.session.flush()

        rebalance(closure)

        record_change(
            shift_id=closure.shift_id,
            actor_id=actor_id,
            change_kind=CHANGE_PAYMENT_METHOD,
            old_payload=removed,
            description=f"Payment allocation {code} removed ({removed['amount_cents']} cents)",
        )

    logger.info("Allocation %s (%s) removed from shift closure %s", allocation_id, code, removed["shift_closure_id"])
    return removed


def allocation_balance(closure: ShiftClosure) -> int:
    """Sum of allocations minus the closure total (0 when balanced)."""
    allocated = (
        db.session.query(func.coalesce(func.sum(PaymentMethodAllocation.amount_cents), 0))
        .filter(PaymentMethodAllocation.shift_closure_id == closure.id)
        .scalar()
    )
    return int(allocated) - (closure.total_value_cents or 0)


def is_balanced(closure: ShiftClosure) -> bool:
    tolerance = current_app.config.get("PRECISION_TOLERANCE_CENTS", 1)
    return abs(allocation_balance(closure)) <= tolerance
