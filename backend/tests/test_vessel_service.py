# Overview: Pytest coverage for vessel fills and dip-level updates.

from decimal import Decimal

import pytest

from fuelpos.errors import RangeError, ValidationError
from fuelpos.models import VesselFill
from fuelpos.services import vessel_service
from fuelpos.services.vessel_service import (
    FILL_CRITICAL,
    FILL_EMPTY,
    FILL_LOW,
    FILL_NORMAL,
    STATUS_CRITICAL,
    STATUS_NORMAL,
    STATUS_WARNING,
)


class TestRecordVesselFill:
    def test_fill_volume_is_table_difference(self, db_session, vessel):
        result = vessel_service.record_vessel_fill(vessel.id, 5, 15, actor_id=3)

        assert result.volume_delta == Decimal("600.00")
        assert result.warnings == []
        assert result.fill is not None

        db_session.refresh(vessel)
        assert vessel.current_height == Decimal("15")
        assert vessel.current_volume == Decimal("850.00")

        fill = db_session.query(VesselFill).filter_by(vessel_id=vessel.id).one()
        assert fill.volume_delta == Decimal("600.00")
        assert fill.actor_id == 3

    def test_gallon_vessel_converts_delta(self, db_session, vessel):
        vessel.unit = "GALLONS"
        db_session.commit()

        result = vessel_service.record_vessel_fill(vessel.id, 5, 15)
        assert result.volume_delta == Decimal("158.50")

    def test_drop_to_zero_is_rejected(self, db_session, vessel):
        with pytest.raises(ValidationError):
            vessel_service.record_vessel_fill(vessel.id, 12, 0)
        assert db_session.query(VesselFill).count() == 0

    def test_empty_to_empty_warns_without_entry(self, db_session, vessel):
        result = vessel_service.record_vessel_fill(vessel.id, 0, 0)
        assert result.volume_delta == Decimal("0.00")
        assert result.fill is None
        assert len(result.warnings) == 1
        assert db_session.query(VesselFill).count() == 0

    def test_no_increase_warns_and_floors_at_zero(self, db_session, vessel):
        result = vessel_service.record_vessel_fill(vessel.id, 15, 10)
        assert result.volume_delta == Decimal("0.00")
        assert any("no height increase" in w for w in result.warnings)

    def test_out_of_range_aborts(self, db_session, vessel):
        with pytest.raises(RangeError):
            vessel_service.record_vessel_fill(vessel.id, 5, 30)
        db_session.refresh(vessel)
        assert vessel.current_height == Decimal("0")

    def test_negative_height_rejected(self, db_session, vessel):
        with pytest.raises(ValidationError):
            vessel_service.record_vessel_fill(vessel.id, -1, 5)

    def test_non_finite_heights_rejected(self, db_session, vessel):
        with pytest.raises(ValidationError):
            vessel_service.record_vessel_fill(vessel.id, 5, "nan")
        with pytest.raises(ValidationError):
            vessel_service.record_vessel_fill(vessel.id, "-inf", 5)
        assert db_session.query(VesselFill).count() == 0


class TestUpdateLevel:
    def test_non_finite_height_rejected(self, db_session, vessel):
        with pytest.raises(ValidationError):
            vessel_service.update_level_by_height(vessel.id, "Infinity")

    def test_normal_level(self, db_session, vessel):
        result = vessel_service.update_level_by_height(vessel.id, 10)
        assert result.status == STATUS_NORMAL
        assert result.volume == Decimal("500")
        assert result.warnings == []

    def test_over_capacity_is_error(self, db_session, vessel):
        with pytest.raises(ValidationError):
            vessel_service.update_level_by_height(vessel.id, 20)

    def test_below_minimum_is_critical(self, db_session, vessel):
        result = vessel_service.update_level_by_height(vessel.id, 1)
        assert result.status == STATUS_CRITICAL
        assert result.volume == Decimal("50.00")

    def test_near_minimum_is_warning(self, db_session, vessel):
        result = vessel_service.update_level_by_height(vessel.id, "2.2")
        assert result.status == STATUS_WARNING
        assert result.volume == Decimal("110.00")


class TestFillStatus:
    @pytest.mark.parametrize("pct,expected", [
        (75, FILL_NORMAL),
        (50, FILL_NORMAL),
        (20, FILL_LOW),
        (5, FILL_CRITICAL),
        (0, FILL_EMPTY),
    ])
    def test_classify_fill(self, pct, expected):
        assert vessel_service.classify_fill(pct) == expected

    def test_vessel_statuses(self, db_session, vessel, point_of_sale):
        vessel_service.update_level_by_height(vessel.id, 10)

        statuses = vessel_service.get_vessel_statuses(point_of_sale.id)
        assert len(statuses) == 1
        assert statuses[0]["fill_percentage"] == "50.00"
        assert statuses[0]["status"] == FILL_NORMAL
        assert statuses[0]["needs_resupply"] is False
