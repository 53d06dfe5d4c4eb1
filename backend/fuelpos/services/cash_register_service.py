# Overview: Service-layer operations for the cash register of a point of sale.

"""
Cash Register Service

WHY: Cash is counted per shift, but the register balance carries over from
shift to shift. The balance at any shift is the register's opening balance
plus the net cash (IN - OUT) of every closure up to that shift.

DESIGN PRINCIPLES:
- The chain walk is the only source of truth for balances
- CashRegister.current_balance_cents is a cache, rebuilt after every
  movement change and checked with balance_drift()
- The shift's cash sales live in a single movement tagged is_sales_cash
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import case, func

from ..errors import NotFound, ShiftLocked, ValidationError
from ..extensions import db
from ..models import CashMovement, CashRegister, Shift, ShiftClosure
from ..models.audit import CHANGE_CASH_MOVEMENT
from ..models.cash import DIRECTION_IN, DIRECTION_OUT
from ..time_utils import utcnow
from .audit_service import record_change
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)

SALES_CASH_CONCEPT = "Cash sales"


@dataclass(frozen=True)
class ChainedBalance:
    opening_balance_cents: int
    closing_balance_cents: int

    def to_dict(self) -> dict:
        return {
            "opening_balance_cents": self.opening_balance_cents,
            "closing_balance_cents": self.closing_balance_cents,
        }


def get_register(point_of_sale_id: int) -> CashRegister | None:
    return db.session.query(CashRegister).filter_by(point_of_sale_id=point_of_sale_id).first()


def get_or_create_register(point_of_sale_id: int, opening_balance_cents: int = 0) -> CashRegister:
    """Does not commit."""
    register = lock_for_update(
        db.session.query(CashRegister).filter_by(point_of_sale_id=point_of_sale_id)
    ).first()
    if register is None:
        register = CashRegister(
            point_of_sale_id=point_of_sale_id,
            opening_balance_cents=opening_balance_cents,
            current_balance_cents=opening_balance_cents,
        )
        db.session.add(register)
        db.session.flush()
    return register


def _net_expression():
    return func.coalesce(
        func.sum(
            case(
                (CashMovement.direction == DIRECTION_IN, CashMovement.amount_cents),
                else_=-CashMovement.amount_cents,
            )
        ),
        0,
    )


def _chain_nets(point_of_sale_id: int) -> list[tuple[int, int]]:
    """(shift_id, net cash) for every shift of the point of sale, in chain order."""
    rows = (
        db.session.query(Shift.id, _net_expression())
        .outerjoin(ShiftClosure, ShiftClosure.shift_id == Shift.id)
        .outerjoin(CashMovement, CashMovement.shift_closure_id == ShiftClosure.id)
        .filter(Shift.point_of_sale_id == point_of_sale_id)
        .group_by(Shift.id, Shift.start_date, Shift.start_time)
        .order_by(Shift.start_date, Shift.start_time)
        .all()
    )
    return [(shift_id, int(net)) for shift_id, net in rows]


def _opening_balance(point_of_sale_id: int) -> int:
    register = get_register(point_of_sale_id)
    return register.opening_balance_cents if register else 0


def get_chained_cash_balance(point_of_sale_id: int, shift_id: int) -> ChainedBalance:
    """
    Opening and closing cash balance of a shift.

    Walks the whole chain of the point of sale from the register's opening
    balance, accumulating each closure's IN - OUT.
    """
    shift = db.session.get(Shift, shift_id)
    if not shift or shift.point_of_sale_id != point_of_sale_id:
        raise NotFound("Shift", shift_id)

    running = _opening_balance(point_of_sale_id)
    for chain_shift_id, net in _chain_nets(point_of_sale_id):
        opening = running
        running += net
        if chain_shift_id == shift_id:
            return ChainedBalance(opening_balance_cents=opening, closing_balance_cents=running)

    raise NotFound("Shift", shift_id)


def derived_balance(point_of_sale_id: int) -> int:
    """Closing balance of the last shift in the chain."""
    return _opening_balance(point_of_sale_id) + sum(net for _, net in _chain_nets(point_of_sale_id))


def rebuild_current_balance(point_of_sale_id: int) -> CashRegister:
    """Overwrite the cached register balance with the chain-derived one. Does not commit."""
    register = get_or_create_register(point_of_sale_id)
    db.session.flush()
    register.current_balance_cents = derived_balance(point_of_sale_id)
    register.last_movement_at = utcnow()
    db.session.flush()
    return register


def balance_drift(point_of_sale_id: int) -> int:
    """Stored balance minus derived balance (0 when the cache is current)."""
    register = get_register(point_of_sale_id)
    if register is None:
        raise NotFound("CashRegister", point_of_sale_id)
    return register.current_balance_cents - derived_balance(point_of_sale_id)


def record_cash_movement(
    closure_id: int,
    direction: str,
    amount_cents: int,
    concept: str,
    *,
    is_sales_cash: bool = False,
    actor_id: int | None = None,
) -> CashMovement:
    """Record a cash in/out for a shift closure and refresh the register cache."""
    direction = (direction or "").upper()
    if direction not in (DIRECTION_IN, DIRECTION_OUT):
        raise ValidationError(f"Invalid direction: {direction}. Must be IN or OUT")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError("Cash movement amount must be a positive integer (cents)")
    if not concept:
        raise ValidationError("Cash movement concept required")
    if is_sales_cash and direction != DIRECTION_IN:
        raise ValidationError("The sales cash movement must be an IN movement")

    with atomic():
        closure = lock_for_update(db.session.query(ShiftClosure).filter_by(id=closure_id)).first()
        if not closure:
            raise NotFound("ShiftClosure", closure_id)
        if not closure.is_editable:
            raise ShiftLocked(closure.id, closure.status)

        if is_sales_cash and _sales_cash_movement(closure.id) is not None:
            raise ValidationError(f"Shift closure {closure.id} already has a sales cash movement")

        movement = CashMovement(
            shift_closure_id=closure.id,
            direction=direction,
            amount_cents=amount_cents,
            concept=concept,
            is_sales_cash=is_sales_cash,
        )
        db.session.add(movement)
        db.session.flush()

        rebuild_current_balance(closure.point_of_sale_id)

        record_change(
            shift_id=closure.shift_id,
            actor_id=actor_id,
            change_kind=CHANGE_CASH_MOVEMENT,
            new_payload=movement.to_dict(),
            description=f"Cash {direction} {amount_cents}: {concept}",
        )

    return movement


def correct_cash_movement(
    movement_id: int,
    *,
    amount_cents: int | None = None,
    concept: str | None = None,
    actor_id: int | None = None,
) -> CashMovement:
    """
    Correct the amount and/or concept of a recorded cash movement.

    The sales cash movement is owned by reconciliation and cannot be edited
    here. The register cache is rebuilt when the amount changes.

    Raises:
        NotFound: unknown movement
        ShiftLocked: the movement's closure is LOCKED or FINALIZED
        ValidationError: sales cash movement, bad amount/concept, nothing to change
    """
    if amount_cents is not None and (
        not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0
    ):
        raise ValidationError("Cash movement amount must be a positive integer (cents)", movement_id=movement_id)
    if concept is not None and not concept.strip():
        raise ValidationError("Cash movement concept cannot be blank", movement_id=movement_id)

    with atomic():
        movement = lock_for_update(db.session.query(CashMovement).filter_by(id=movement_id)).first()
        if not movement:
            raise NotFound("CashMovement", movement_id)
        if movement.is_sales_cash:
            raise ValidationError(
                f"Cash movement {movement_id} carries the shift's cash sales and is adjusted by reconciliation only",
                movement_id=movement_id,
            )

        closure = lock_for_update(db.session.query(ShiftClosure).filter_by(id=movement.shift_closure_id)).first()
        if not closure.is_editable:
            raise ShiftLocked(closure.id, closure.status)

        amount_changed = amount_cents is not None and amount_cents != movement.amount_cents
        concept_changed = concept is not None and concept.strip() != movement.concept
        if not (amount_changed or concept_changed):
            raise ValidationError("At least one field must differ from the current value", movement_id=movement_id)

        before = movement.to_dict()
        if amount_changed:
            movement.amount_cents = amount_cents
        if concept_changed:
            movement.concept = concept.strip()
        db.session.flush()

        if amount_changed:
            rebuild_current_balance(closure.point_of_sale_id)

        record_change(
            shift_id=closure.shift_id,
            actor_id=actor_id,
            change_kind=CHANGE_CASH_MOVEMENT,
            old_payload=before,
            new_payload=movement.to_dict(),
            description=f"Cash movement {movement_id} corrected",
        )

    logger.info(
        "Cash movement %s corrected: amount %s -> %s",
        movement_id, before["amount_cents"], movement.amount_cents,
    )
    return movement


def _sales_cash_movement(closure_id: int) -> CashMovement | None:
    return lock_for_update(
        db.session.query(CashMovement).filter_by(shift_closure_id=closure_id, is_sales_cash=True)
    ).first()


def apply_sales_cash_delta(closure: ShiftClosure, delta_cents: int) -> int:
    """
    Adjust the closure's sales cash movement by delta_cents (floored at 0).

    The movement is created when missing and the delta is positive.
    Returns the delta actually applied. Does not commit.
    """
    if delta_cents == 0:
        return 0

    movement = _sales_cash_movement(closure.id)
    if movement is None:
        if delta_cents < 0:
            logger.warning(
                "Shift closure %s has no sales cash movement; negative cash delta %s not applied",
                closure.id, delta_cents,
            )
            return 0
        movement = CashMovement(
            shift_closure_id=closure.id,
            direction=DIRECTION_IN,
            amount_cents=0,
            concept=SALES_CASH_CONCEPT,
            is_sales_cash=True,
        )
        db.session.add(movement)

    old_amount = movement.amount_cents or 0
    movement.amount_cents = max(0, old_amount + delta_cents)
    applied = movement.amount_cents - old_amount
    db.session.flush()

    rebuild_current_balance(closure.point_of_sale_id)
    return applied
