# Overview: Chronological ordering of shifts per point of sale.

"""
Shift Chain

Shifts of one point of sale form a chain ordered by (start_date, start_time).
Start times are unique per point of sale, so "the next shift" is always
well defined. Forward traversal is bounded by CASCADE_MAX_HOPS.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import and_, or_

from ..extensions import db
from ..models import Shift


def follows(shift: Shift):
    """SQL predicate: strictly after `shift` in chain order."""
    return or_(
        Shift.start_date > shift.start_date,
        and_(Shift.start_date == shift.start_date, Shift.start_time > shift.start_time),
    )


def hop_limit() -> int:
    return int(current_app.config.get("CASCADE_MAX_HOPS", 500))


def ordered_shifts(point_of_sale_id: int) -> list[Shift]:
    return (
        db.session.query(Shift)
        .filter_by(point_of_sale_id=point_of_sale_id)
        .order_by(Shift.start_date, Shift.start_time)
        .all()
    )


def next_shift(point_of_sale_id: int, shift: Shift) -> Shift | None:
    """Minimal shift of the same point of sale strictly following `shift`."""
    return (
        db.session.query(Shift)
        .filter(Shift.point_of_sale_id == point_of_sale_id)
        .filter(follows(shift))
        .order_by(Shift.start_date, Shift.start_time)
        .first()
    )


def previous_shift(point_of_sale_id: int, shift: Shift) -> Shift | None:
    return (
        db.session.query(Shift)
        .filter(Shift.point_of_sale_id == point_of_sale_id)
        .filter(
            or_(
                Shift.start_date < shift.start_date,
                and_(Shift.start_date == shift.start_date, Shift.start_time < shift.start_time),
            )
        )
        .order_by(Shift.start_date.desc(), Shift.start_time.desc())
        .first()
    )
