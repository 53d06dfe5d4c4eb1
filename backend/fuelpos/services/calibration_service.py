# Overview: Service-layer operations for calibration tables; converts dip heights into volumes.

"""
Calibration Table Service

WHY: A vessel's fill level is measured as a dip height. Converting that
height into a volume needs the vessel's calibration table: an ordered set
of (height, volume) points.

DESIGN PRINCIPLES:
- Heights in centimetres, volumes in liters (the table's unit convention)
- Heights strictly ascending per vessel (hard error otherwise)
- Volumes non-decreasing (warning only; legacy tables may be imperfect)
- Exact match short-circuits; otherwise linear interpolation
- Height 0 below the table minimum is the empty-vessel bootstrap case
- Tables are replaced wholesale, never partially mutated
"""

from __future__ import annotations

import csv
import io
import math
from bisect import bisect_left
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Iterable, Sequence

from flask import current_app

from ..errors import MissingCalibrationData, NotFound, RangeError, ValidationError
from ..extensions import db
from ..models import CalibrationPoint, Vessel
from ..numeric import Number, decimal_str, round2, to_decimal
from .concurrency import atomic

ZERO = Decimal("0")


def parse_measure(value: Number, name: str = "height", vessel_id: int | None = None) -> Decimal:
    """Height or volume as a finite Decimal; anything else is a ValidationError."""
    try:
        measure = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid {name}: {value!r}", vessel_id=vessel_id)
    if not measure.is_finite():
        raise ValidationError(f"{name.capitalize()} must be a finite number, got {value!r}", vessel_id=vessel_id)
    return measure


@dataclass
class TableValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


class CalibrationTable:
    """
    In-memory calibration table of one vessel.

    Points are kept in the order given so validate() can report ordering
    problems; lookups run against a height-sorted copy.
    """

    def __init__(self, points: Iterable[tuple[Number, Number]], vessel_id: int | None = None):
        self.vessel_id = vessel_id
        self.points = [
            (parse_measure(h, "height", vessel_id), parse_measure(v, "volume", vessel_id)) for h, v in points
        ]
        self._sorted = sorted(self.points, key=lambda p: p[0])
        self._heights = [h for h, _ in self._sorted]

    def __len__(self) -> int:
        return len(self.points)

    @property
    def min_height(self) -> Decimal:
        self._require_points()
        return self._heights[0]

    @property
    def max_height(self) -> Decimal:
        self._require_points()
        return self._heights[-1]

    def _require_points(self) -> None:
        if not self.points:
            raise MissingCalibrationData(self.vessel_id)

    def height_to_volume(self, height: Number) -> Decimal:
        """
        Convert a dip height into a volume.

        Raises:
            ValidationError: height is not a finite number
            MissingCalibrationData: table has no points
            RangeError: height outside [min, max] (height 0 excepted)
        """
        h = parse_measure(height, "height", self.vessel_id)
        self._require_points()

        if h < self.min_height:
            if h == ZERO:
                return round2(ZERO)
            raise RangeError(h, "minimum", self.min_height, vessel_id=self.vessel_id)
        if h > self.max_height:
            raise RangeError(h, "maximum", self.max_height, vessel_id=self.vessel_id)

        idx = bisect_left(self._heights, h)
        if self._heights[idx] == h:
            return self._sorted[idx][1]

        h_low, v_low = self._sorted[idx - 1]
        h_high, v_high = self._sorted[idx]
        factor = (h - h_low) / (h_high - h_low)
        return round2(v_low + factor * (v_high - v_low))

    def volume_delta(self, height_before: Number, height_after: Number) -> Decimal:
        return self.height_to_volume(height_after) - self.height_to_volume(height_before)

    def validate(self) -> TableValidation:
        result = TableValidation()
        if not self.points:
            result.errors.append("No calibration data")
            return result

        for i in range(1, len(self.points)):
            if self.points[i][0] <= self.points[i - 1][0]:
                result.errors.append(f"Height at position {i} is not greater than the previous one")

        for i in range(1, len(self.points)):
            if self.points[i][1] < self.points[i - 1][1]:
                result.warnings.append(
                    f"Volume at height {self.points[i][0]}cm is lower than the previous one"
                )

        if self.points[0][0] != ZERO:
            result.warnings.append("Table does not start at height 0")
        if self.points[0][1] != ZERO:
            result.warnings.append("Volume does not start at 0")

        return result

    def to_rows(self) -> list[dict]:
        return [{"height": decimal_str(h), "volume": decimal_str(v)} for h, v in self._sorted]


def generate_from_geometry(
    diameter: Number,
    max_height: Number,
    step: Number = 1,
    *,
    factor: Number = 10,
) -> list[tuple[Decimal, Decimal]]:
    """
    Build a table for an upright cylindrical vessel.

    diameter and max_height are metres; generated heights are centimetres
    from 0 to max_height*100 in `step` increments. Each volume is
    pi * r^2 * height_m * factor, rounded to 2 decimals.
    """
    d = parse_measure(diameter, "diameter")
    top = parse_measure(max_height, "maximum height") * 100
    inc = parse_measure(step, "step")
    if d <= 0 or top <= 0:
        raise ValidationError("Diameter and maximum height must be positive")
    if inc <= 0:
        raise ValidationError("Step must be positive")

    radius = float(d) / 2
    area = math.pi * radius ** 2
    points = []
    height = ZERO
    while height <= top:
        volume = area * (float(height) / 100) * float(factor)
        points.append((height, round2(repr(volume))))
        height += inc
    return points


# =============================================================================
# PERSISTENCE
# =============================================================================

def _get_vessel(vessel_id: int) -> Vessel:
    vessel = db.session.get(Vessel, vessel_id)
    if not vessel:
        raise NotFound("Vessel", vessel_id)
    return vessel


def load_table(vessel_id: int) -> CalibrationTable:
    _get_vessel(vessel_id)
    rows = (
        db.session.query(CalibrationPoint)
        .filter_by(vessel_id=vessel_id)
        .order_by(CalibrationPoint.height)
        .all()
    )
    return CalibrationTable(((row.height, row.volume) for row in rows), vessel_id=vessel_id)


def height_to_volume(vessel_id: int, height: Number) -> Decimal:
    return load_table(vessel_id).height_to_volume(height)


def volume_delta(vessel_id: int, height_before: Number, height_after: Number) -> Decimal:
    return load_table(vessel_id).volume_delta(height_before, height_after)


def validate_table(vessel_id: int) -> TableValidation:
    return load_table(vessel_id).validate()


def replace_table(vessel_id: int, points: Sequence[tuple[Number, Number]]) -> CalibrationTable:
    """
    Replace a vessel's table wholesale (delete-all-then-insert).

    Tables with validation errors are rejected before anything is deleted.
    Warnings are accepted.
    """
    table = CalibrationTable(points, vessel_id=vessel_id)
    validation = table.validate()
    if not validation.is_valid:
        raise ValidationError(
            "Invalid calibration table: " + "; ".join(validation.errors),
            vessel_id=vessel_id,
        )

    with atomic():
        _get_vessel(vessel_id)
        db.session.query(CalibrationPoint).filter_by(vessel_id=vessel_id).delete()
        db.session.add_all(
            CalibrationPoint(vessel_id=vessel_id, height=h, volume=v) for h, v in table.points
        )

    return table


def generate_table(vessel_id: int, diameter: Number, max_height: Number, step: Number = 1) -> CalibrationTable:
    points = generate_from_geometry(
        diameter,
        max_height,
        step,
        factor=current_app.config.get("GEOMETRY_VOLUME_FACTOR", 10),
    )
    return replace_table(vessel_id, points)


def delete_table(vessel_id: int) -> int:
    with atomic():
        _get_vessel(vessel_id)
        deleted = db.session.query(CalibrationPoint).filter_by(vessel_id=vessel_id).delete()
    return deleted


def parse_table_csv(text: str) -> list[tuple[Decimal, Decimal]]:
    """Parse CSV with `height` and `volume` columns; unparseable rows are skipped."""
    reader = csv.DictReader(io.StringIO(text.strip()))
    if not reader.fieldnames or "height" not in reader.fieldnames or "volume" not in reader.fieldnames:
        raise ValidationError('CSV must have "height" and "volume" columns')

    points = []
    for row in reader:
        try:
            points.append((parse_measure(row["height"].strip()), parse_measure(row["volume"].strip(), "volume")))
        except (ValidationError, AttributeError):
            continue

    if not points:
        raise ValidationError("No valid rows found in CSV")
    return points


def import_table_csv(vessel_id: int, text: str) -> CalibrationTable:
    return replace_table(vessel_id, parse_table_csv(text))


def export_table_csv(vessel_id: int) -> str:
    table = load_table(vessel_id)
    if not len(table):
        raise MissingCalibrationData(vessel_id)

    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(["height", "volume"])
    for row in table.to_rows():
        writer.writerow([row["height"], row["volume"]])
    return out.getvalue()
