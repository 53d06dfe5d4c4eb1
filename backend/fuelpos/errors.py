# Overview: Domain error kinds raised by the core services.

"""
Domain errors.

Every error here aborts the enclosing transaction; nothing is partially
applied. Each error names the entity it concerns so callers can report the
offending shift, vessel or reading.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for business rule violations."""

    kind = "DOMAIN_ERROR"
    http_status = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict:
        data = {"error": self.message, "kind": self.kind}
        if self.context:
            data["context"] = {k: str(v) if not isinstance(v, (int, str, bool)) else v for k, v in self.context.items()}
        return data


class ValidationError(DomainError, ValueError):
    """400-level input problem."""

    kind = "VALIDATION_ERROR"


class NotFound(DomainError, LookupError):
    kind = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class MissingCalibrationData(DomainError):
    kind = "MISSING_CALIBRATION_DATA"

    def __init__(self, vessel_id: Any = None):
        super().__init__("no calibration data", vessel_id=vessel_id)
        self.vessel_id = vessel_id


class RangeError(DomainError, ValueError):
    """Height outside the calibration table bounds."""

    kind = "RANGE_ERROR"

    def __init__(self, height, bound: str, limit, vessel_id: Any = None):
        if bound == "minimum":
            message = f"Height {height} is below the calibration table minimum ({limit})"
        else:
            message = f"Height {height} exceeds the calibration table maximum ({limit})"
        super().__init__(message, height=height, bound=bound, limit=limit, vessel_id=vessel_id)
        self.height = height
        self.bound = bound
        self.limit = limit
        self.vessel_id = vessel_id


class NonMonotonicReading(DomainError):
    """A cumulative meter reading would fall below its predecessor."""

    kind = "NON_MONOTONIC_READING"

    def __init__(self, previous_reading, current_reading, *, hose_id: Any = None, shift_id: Any = None):
        super().__init__(
            f"Current reading {current_reading} is below previous reading {previous_reading}",
            hose_id=hose_id,
            shift_id=shift_id,
        )
        self.previous_reading = previous_reading
        self.current_reading = current_reading
        self.hose_id = hose_id
        self.shift_id = shift_id


class ShiftLocked(DomainError):
    kind = "SHIFT_LOCKED"
    http_status = 403

    def __init__(self, shift_closure_id: Any, status: str):
        super().__init__(
            f"Shift closure {shift_closure_id} is {status.lower()} and cannot be edited",
            shift_closure_id=shift_closure_id,
            status=status,
        )
        self.shift_closure_id = shift_closure_id
        self.status = status


class ChainBoundExceeded(DomainError):
    """Forward propagation hit its hop limit with shifts still remaining."""

    kind = "CHAIN_BOUND_EXCEEDED"
    http_status = 500

    def __init__(self, point_of_sale_id: Any, shift_id: Any, max_hops: int):
        super().__init__(
            f"Shift chain of point of sale {point_of_sale_id} exceeded {max_hops} hops after shift {shift_id}",
            point_of_sale_id=point_of_sale_id,
            shift_id=shift_id,
            max_hops=max_hops,
        )
        self.point_of_sale_id = point_of_sale_id
        self.shift_id = shift_id
        self.max_hops = max_hops
