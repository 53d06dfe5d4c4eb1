# Overview: Pytest coverage for meter reading corrections and forward propagation.

"""
Cascade Correction Tests

Covers:
- Forward propagation keeps downstream quantities and meter continuity
- Reconciliation of the edited shift (allocations, cash register)
- All-or-nothing behavior on every failure path
- Price drift reporting and post-commit cache refresh
"""

from decimal import Decimal

import pytest

from fuelpos.errors import ChainBoundExceeded, NonMonotonicReading, NotFound, ShiftLocked, ValidationError
from fuelpos.extensions import db
from fuelpos.models import CashMovement, CashRegister, MeterReading, PaymentMethodAllocation, ShiftChangeLog
from fuelpos.models.audit import CHANGE_METER_READING
from fuelpos.services import allocation_service, cascade_service, cash_register_service, reading_service, shift_service
from fuelpos.services.cascade_service import CascadeState, correct_meter_reading


def _record_chain(hose, closures, currents):
    return [
        reading_service.record_reading(hose.id, closure.id, value).id
        for closure, value in zip(closures, currents)
    ]


def _reading(reading_id):
    return db.session.get(MeterReading, reading_id)


class TestPropagation:
    def test_two_shift_example(self, db_session, hose, make_shift):
        a_id, b_id = _record_chain(hose, [make_shift(0), make_shift(1)], ["150", "180"])

        result = correct_meter_reading(a_id, "70", actor_id=1)

        a, b = _reading(a_id), _reading(b_id)
        assert a.previous_reading == Decimal("100")
        assert a.quantity_sold == Decimal("70")
        assert a.current_reading == Decimal("170")
        assert b.previous_reading == Decimal("170")
        assert b.quantity_sold == Decimal("30")
        assert b.current_reading == Decimal("200")

        summary = result.summary
        assert summary.state == CascadeState.COMMITTED
        assert summary.quantity_delta == Decimal("20")
        assert summary.value_delta_cents == 2000
        assert summary.hops == 1
        assert [step.reading_id for step in summary.steps] == [b_id]

    def test_long_chain_stays_continuous(self, db_session, hose, make_shift):
        closures = [make_shift(i) for i in range(5)]
        ids = _record_chain(hose, closures, ["150", "180", "230", "260", "300"])
        quantities_before = [_reading(i).quantity_sold for i in ids]

        correct_meter_reading(ids[1], "45")

        readings = [_reading(i) for i in ids]
        assert readings[1].current_reading == Decimal("195")
        for k in range(2, 5):
            assert readings[k].quantity_sold == quantities_before[k]
            assert readings[k].previous_reading == readings[k - 1].current_reading
            assert readings[k].current_reading >= readings[k].previous_reading
        assert readings[0].current_reading == Decimal("150")

    def test_correction_is_idempotent(self, db_session, hose, make_shift):
        a_id, _ = _record_chain(hose, [make_shift(0), make_shift(1)], ["150", "180"])

        correct_meter_reading(a_id, "70")
        second = correct_meter_reading(a_id, "70").summary

        assert second.quantity_delta == Decimal("0")
        assert second.value_delta_cents == 0
        assert second.allocation_delta_cents == 0
        assert second.cash_delta_cents == 0
        assert all(step.value_delta_cents == 0 for step in second.steps)

    def test_shift_without_reading_is_skipped(self, db_session, hose, make_shift):
        a, gap, b = make_shift(0), make_shift(1), make_shift(2)
        a_id, b_id = _record_chain(hose, [a, b], ["150", "180"])

        summary = correct_meter_reading(a_id, "70").summary

        assert summary.hops == 1
        assert len(summary.steps) == 1
        assert _reading(b_id).previous_reading == Decimal("170")

    def test_locked_downstream_shift_is_still_updated(self, db_session, hose, make_shift):
        a, b = make_shift(0), make_shift(1)
        a_id, b_id = _record_chain(hose, [a, b], ["150", "180"])
        shift_service.lock_closure(b.id)

        correct_meter_reading(a_id, "70")
        assert _reading(b_id).previous_reading == Decimal("170")

    def test_hose_cache_refreshed(self, db_session, hose, make_shift):
        a_id, _ = _record_chain(hose, [make_shift(0), make_shift(1)], ["150", "180"])

        correct_meter_reading(a_id, "70")

        db_session.refresh(hose)
        assert hose.last_reading == Decimal("200")

    def test_closure_totals_follow_correction(self, db_session, hose, make_shift):
        a = make_shift(0)
        (a_id,) = _record_chain(hose, [a], ["150"])

        correct_meter_reading(a_id, "70")

        db_session.refresh(a)
        assert a.total_liters == Decimal("70.00")
        assert a.total_value_cents == 7000


class TestReconciliation:
    @pytest.fixture
    def paid_shift(self, db_session, hose, make_shift, payment_methods, cash_register):
        """Shift worth 500.00: CASH 100.00 (also the sales cash movement), CARD 400.00."""
        closure = make_shift(0)
        (reading_id,) = _record_chain(hose, [closure], ["600"])
        allocation_service.set_allocations(closure.id, {"CASH": 10000, "CARD": 40000})
        cash_register_service.record_cash_movement(closure.id, "IN", 10000, "Cash sales", is_sales_cash=True)
        return closure, reading_id

    def _amounts(self, db_session, closure):
        return {
            a.payment_method.code: a
            for a in db_session.query(PaymentMethodAllocation).filter_by(shift_closure_id=closure.id)
        }

    def test_delta_goes_to_cash_and_register(self, db_session, paid_shift, point_of_sale):
        closure, reading_id = paid_shift

        summary = correct_meter_reading(reading_id, "520").summary

        assert summary.value_delta_cents == 2000
        assert summary.allocation_delta_cents == 2000
        assert summary.cash_delta_cents == 2000

        allocations = self._amounts(db_session, closure)
        assert allocations["CASH"].amount_cents == 12000
        assert allocations["CASH"].percentage == Decimal("23.08")
        assert allocation_service.allocation_balance(shift_service.get_closure(closure.id)) == 0

        movement = db_session.query(CashMovement).filter_by(shift_closure_id=closure.id, is_sales_cash=True).one()
        assert movement.amount_cents == 12000
        register = db_session.query(CashRegister).filter_by(point_of_sale_id=point_of_sale.id).one()
        assert register.current_balance_cents == 22000
        assert cash_register_service.balance_drift(point_of_sale.id) == 0

    def test_card_delta_leaves_cash_alone(self, db_session, paid_shift):
        closure, reading_id = paid_shift

        summary = correct_meter_reading(reading_id, "480", payment_method_code="CARD").summary

        assert summary.allocation_delta_cents == -2000
        assert summary.cash_delta_cents == 0
        allocations = self._amounts(db_session, closure)
        assert allocations["CARD"].amount_cents == 38000
        assert allocations["CASH"].amount_cents == 10000

    def test_unallocated_method_is_noop(self, db_session, paid_shift, caplog):
        closure, reading_id = paid_shift

        summary = correct_meter_reading(reading_id, "520", payment_method_code="RUMBO").summary

        assert summary.allocation_delta_cents == 0
        assert summary.cash_delta_cents == 0
        assert "No matching allocation found" in caplog.text

    def test_price_drift_reported_not_reallocated(self, db_session, hose, make_shift, fuel_product):
        a_id, b_id = _record_chain(hose, [make_shift(0), make_shift(1)], ["150", "180"])
        fuel_product.price_cents = 200
        db_session.commit()

        summary = correct_meter_reading(a_id, "70").summary

        assert summary.value_delta_cents == 14000 - 5000
        assert summary.steps[0].value_delta_cents == 3000
        assert summary.price_drift_cents == 3000
        assert _reading(b_id).sale_value_cents == 6000


class TestAbort:
    def test_non_positive_quantity(self, db_session, hose, make_shift):
        (a_id,) = _record_chain(hose, [make_shift(0)], ["150"])
        with pytest.raises(ValidationError):
            correct_meter_reading(a_id, "0")
        with pytest.raises(ValidationError):
            correct_meter_reading(a_id, "abc")

    def test_unknown_reading(self, db_session):
        with pytest.raises(NotFound):
            correct_meter_reading(424242, "10")

    def test_locked_shift(self, db_session, hose, make_shift):
        a = make_shift(0)
        (a_id,) = _record_chain(hose, [a], ["150"])
        shift_service.lock_closure(a.id)

        with pytest.raises(ShiftLocked):
            correct_meter_reading(a_id, "70")
        assert _reading(a_id).quantity_sold == Decimal("50")

    def test_broken_downstream_rolls_back_everything(self, db_session, hose, make_shift):
        closures = [make_shift(i) for i in range(3)]
        ids = _record_chain(hose, closures, ["150", "180", "200"])
        broken = _reading(ids[2])
        broken.quantity_sold = Decimal("-40")
        db_session.commit()
        audit_count = db_session.query(ShiftChangeLog).count()

        with pytest.raises(NonMonotonicReading) as exc:
            correct_meter_reading(ids[0], "70")

        assert exc.value.shift_id == closures[2].shift_id
        db_session.expire_all()
        assert _reading(ids[0]).current_reading == Decimal("150")
        assert _reading(ids[1]).previous_reading == Decimal("150")
        assert db_session.query(ShiftChangeLog).count() == audit_count

    def test_chain_bound_aborts(self, app, db_session, hose, make_shift, monkeypatch):
        closures = [make_shift(i) for i in range(3)]
        ids = _record_chain(hose, closures, ["150", "180", "200"])
        monkeypatch.setitem(app.config, "CASCADE_MAX_HOPS", 1)

        with pytest.raises(ChainBoundExceeded):
            correct_meter_reading(ids[0], "70")

        db_session.expire_all()
        assert _reading(ids[0]).current_reading == Decimal("150")
        assert _reading(ids[1]).previous_reading == Decimal("150")

    def test_hop_limit_ignores_shifts_without_readings(self, app, db_session, hose, make_shift, monkeypatch):
        closures = [make_shift(i) for i in range(4)]
        a_id, d_id = _record_chain(hose, [closures[0], closures[3]], ["150", "180"])
        monkeypatch.setitem(app.config, "CASCADE_MAX_HOPS", 1)

        summary = correct_meter_reading(a_id, "70").summary

        assert summary.hops == 1
        assert _reading(d_id).previous_reading == Decimal("170")
        assert _reading(d_id).current_reading == Decimal("200")


class TestAuditAndHooks:
    def test_correction_is_audited(self, db_session, hose, make_shift):
        a = make_shift(0)
        a_id, _ = _record_chain(hose, [a, make_shift(1)], ["150", "180"])

        correct_meter_reading(a_id, "70", actor_id=5)

        entry = (
            db_session.query(ShiftChangeLog)
            .filter_by(shift_id=a.shift_id, change_kind=CHANGE_METER_READING)
            .order_by(ShiftChangeLog.id.desc())
            .first()
        )
        assert entry.actor_id == 5
        assert entry.old_payload["quantity_sold"] == "50.000"
        assert entry.new_payload["quantity_sold"] == "70.000"
        assert len(entry.new_payload["propagated"]) == 1

    def test_failed_cache_refresh_does_not_fail_correction(self, db_session, hose, make_shift, monkeypatch, caplog):
        (a_id,) = _record_chain(hose, [make_shift(0)], ["150"])

        def boom(hose_id):
            raise RuntimeError("cache unavailable")

        monkeypatch.setattr(cascade_service, "refresh_hose_cache", boom)

        result = correct_meter_reading(a_id, "70")

        assert result.summary.state == CascadeState.COMMITTED
        assert _reading(a_id).current_reading == Decimal("170")
        assert "Post-commit hook" in caplog.text
