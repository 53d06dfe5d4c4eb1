# Overview: Service-layer operations for vessels; dip readings and computed fills.

"""
Vessel Level Service

WHY: Every dip reading of a tank or tanker compartment updates the
vessel's stored height and volume, and every delivery is recorded as the
volume difference between the before/after dip heights.

DESIGN PRINCIPLES:
- Calibration tables are in liters; vessel volumes are stored in the
  vessel's own unit (LITERS or GALLONS)
- Range errors from the table abort the operation (no partial update)
- Low-level conditions are reported as warnings, not errors
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Vessel, VesselFill
from ..models.stations import UNIT_GALLONS
from ..numeric import Number, round2, to_decimal
from . import calibration_service
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)

STATUS_NORMAL = "NORMAL"
STATUS_WARNING = "WARNING"
STATUS_CRITICAL = "CRITICAL"

FILL_NORMAL = "NORMAL"
FILL_LOW = "LOW"
FILL_CRITICAL = "CRITICAL"
FILL_EMPTY = "EMPTY"

# Within 20% above the minimum level counts as low
LOW_LEVEL_MARGIN = Decimal("1.2")


@dataclass
class FillResult:
    vessel: Vessel
    volume_delta: Decimal
    warnings: list[str] = field(default_factory=list)
    fill: VesselFill | None = None

    def to_dict(self) -> dict:
        return {
            "vessel": self.vessel.to_dict(),
            "volume_delta": format(self.volume_delta, "f"),
            "warnings": self.warnings,
            "fill_id": self.fill.id if self.fill else None,
        }


@dataclass
class LevelUpdate:
    vessel: Vessel
    volume: Decimal
    status: str = STATUS_NORMAL
    warnings: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "vessel": self.vessel.to_dict(),
            "volume": format(self.volume, "f"),
            "status": self.status,
            "warnings": self.warnings,
            "messages": self.messages,
        }


def _liters_to_gallons() -> Decimal:
    return to_decimal(current_app.config.get("LITERS_TO_GALLONS", "0.264172"))


def to_vessel_unit(vessel: Vessel, liters: Number) -> Decimal:
    """Convert a table volume (liters) into the vessel's unit."""
    value = to_decimal(liters)
    if vessel.unit == UNIT_GALLONS:
        value = value * _liters_to_gallons()
    return round2(value)


def _get_vessel_locked(vessel_id: int) -> Vessel:
    vessel = lock_for_update(db.session.query(Vessel).filter_by(id=vessel_id)).first()
    if not vessel:
        raise NotFound("Vessel", vessel_id)
    return vessel


def interpolate_height(vessel_id: int, height: Number) -> Decimal:
    """Volume (table units) held by the vessel at the given dip height."""
    return calibration_service.height_to_volume(vessel_id, height)


def record_vessel_fill(
    vessel_id: int,
    previous_height: Number,
    new_height: Number,
    actor_id: int | None = None,
) -> FillResult:
    """
    Record a delivery measured as a before/after dip height pair.

    Returns the volume added (vessel unit, floored at 0) with warnings.

    Raises:
        ValidationError: non-finite or negative heights, or a drop to 0 (a drain, not a fill)
        RangeError / MissingCalibrationData: from the calibration table
    """
    before = calibration_service.parse_measure(previous_height, "previous height", vessel_id)
    after = calibration_service.parse_measure(new_height, "new height", vessel_id)

    if before < 0 or after < 0:
        raise ValidationError("Heights cannot be negative", vessel_id=vessel_id)

    if after == 0 and before > 0:
        raise ValidationError(
            f"New height 0cm with previous height {before}cm indicates draining the vessel, not a fill",
            vessel_id=vessel_id,
        )

    with atomic():
        vessel = _get_vessel_locked(vessel_id)
        warnings: list[str] = []

        if after == 0 and before == 0:
            warnings.append(f"Vessel {vessel.name} stays empty (0cm -> 0cm); no inventory entry")
            return FillResult(vessel=vessel, volume_delta=round2(0), warnings=warnings)

        if after <= before:
            warnings.append(f"Vessel {vessel.name}: no height increase ({after - before}cm)")

        table = calibration_service.load_table(vessel_id)
        delta_liters = table.volume_delta(before, after)
        volume_delta = to_vessel_unit(vessel, max(Decimal("0"), delta_liters))
        new_volume = to_vessel_unit(vessel, table.height_to_volume(after))

        vessel.current_height = after
        vessel.current_volume = new_volume

        fill = VesselFill(
            vessel_id=vessel.id,
            previous_height=before,
            new_height=after,
            volume_delta=volume_delta,
            actor_id=actor_id,
        )
        db.session.add(fill)
        db.session.flush()

    logger.info(
        "Vessel fill recorded: vessel=%s %s->%s cm delta=%s %s",
        vessel_id, before, after, volume_delta, vessel.unit,
    )
    return FillResult(vessel=vessel, volume_delta=volume_delta, warnings=warnings, fill=fill)


def update_level_by_height(vessel_id: int, height: Number) -> LevelUpdate:
    """
    Set a vessel's level from a dip reading.

    The volume is checked against capacity (hard error) and minimum level
    (CRITICAL below it, WARNING within 20% above it).
    """
    h = calibration_service.parse_measure(height, "height", vessel_id)
    if h < 0:
        raise ValidationError("Fluid height cannot be negative", vessel_id=vessel_id)

    with atomic():
        vessel = _get_vessel_locked(vessel_id)
        volume = to_vessel_unit(vessel, calibration_service.height_to_volume(vessel_id, h))

        capacity = to_decimal(vessel.capacity)
        if capacity > 0 and volume > capacity:
            raise ValidationError(
                f"Computed volume ({volume}) exceeds vessel capacity ({capacity})",
                vessel_id=vessel_id,
            )

        result = LevelUpdate(vessel=vessel, volume=volume)
        minimum = to_decimal(vessel.minimum_level)
        if volume < minimum:
            result.status = STATUS_CRITICAL
            result.warnings.append(
                f"Volume {volume} {vessel.unit} is below the minimum level ({minimum} {vessel.unit})"
            )
            result.messages.append("Vessel at critical level; resupply required")
        elif volume < minimum * LOW_LEVEL_MARGIN:
            result.status = STATUS_WARNING
            result.warnings.append(
                f"Low level: volume {volume} {vessel.unit} is close to the minimum ({minimum} {vessel.unit})"
            )
            result.messages.append("Schedule a resupply soon")

        vessel.current_height = h
        vessel.current_volume = volume

    if result.status != STATUS_NORMAL:
        logger.warning("Vessel %s level %s: %s", vessel_id, result.status, "; ".join(result.warnings))
    else:
        result.messages.append(f"Level updated: {volume} {vessel.unit} ({h}cm)")
    return result


def fill_percentage(vessel: Vessel) -> Decimal:
    capacity = to_decimal(vessel.capacity)
    if capacity == 0:
        return round2(0)
    return round2(to_decimal(vessel.current_volume) / capacity * 100)


def classify_fill(percentage: Number) -> str:
    pct = to_decimal(percentage)
    if pct >= 50:
        return FILL_NORMAL
    if pct >= 20:
        return FILL_LOW
    if pct > 0:
        return FILL_CRITICAL
    return FILL_EMPTY


def get_vessel_statuses(point_of_sale_id: int) -> list[dict]:
    """Fill status of every active vessel of a point of sale."""
    vessels = (
        db.session.query(Vessel)
        .filter_by(point_of_sale_id=point_of_sale_id, is_active=True)
        .order_by(Vessel.name)
        .all()
    )
    statuses = []
    for vessel in vessels:
        pct = fill_percentage(vessel)
        statuses.append({
            "vessel": vessel.to_dict(),
            "fill_percentage": format(pct, "f"),
            "status": classify_fill(pct),
            "needs_resupply": pct <= 20,
        })
    return statuses
