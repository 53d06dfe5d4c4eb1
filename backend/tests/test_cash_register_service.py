# Overview: Pytest coverage for chained cash balances and the register cache.

from datetime import date, time

import pytest

from fuelpos.errors import NotFound, ShiftLocked, ValidationError
from fuelpos.models import CashMovement, CashRegister, PointOfSale, Shift, ShiftChangeLog
from fuelpos.models.audit import CHANGE_CASH_MOVEMENT
from fuelpos.models.shifts import CLOSURE_LOCKED
from fuelpos.services import cash_register_service, shift_service


@pytest.fixture
def cash_chain(db_session, cash_register, make_shift):
    """
    Three closures on a register opened with 100.00:
    shift 0: +50.00 sales, -10.00 expense; shift 1: nothing; shift 2: +20.00
    """
    closures = [make_shift(i) for i in range(3)]
    cash_register_service.record_cash_movement(closures[0].id, "IN", 5000, "Cash sales", is_sales_cash=True)
    cash_register_service.record_cash_movement(closures[0].id, "OUT", 1000, "Supplies")
    cash_register_service.record_cash_movement(closures[2].id, "IN", 2000, "Float top-up")
    return closures


class TestChainedBalance:
    def test_balances_accumulate_through_chain(self, db_session, cash_chain, point_of_sale):
        balances = [
            cash_register_service.get_chained_cash_balance(point_of_sale.id, c.shift_id)
            for c in cash_chain
        ]
        assert [(b.opening_balance_cents, b.closing_balance_cents) for b in balances] == [
            (10000, 14000),
            (14000, 14000),
            (14000, 16000),
        ]

    def test_shift_without_closure_carries_balance(self, db_session, cash_chain, point_of_sale):
        late = Shift(point_of_sale_id=point_of_sale.id, start_date=date(2026, 3, 9), start_time=time(6, 0))
        db_session.add(late)
        db_session.commit()

        balance = cash_register_service.get_chained_cash_balance(point_of_sale.id, late.id)
        assert balance.opening_balance_cents == 16000
        assert balance.closing_balance_cents == 16000

    def test_without_register_opens_at_zero(self, db_session, make_shift, point_of_sale):
        closure = make_shift(0)
        balance = cash_register_service.get_chained_cash_balance(point_of_sale.id, closure.shift_id)
        assert balance.opening_balance_cents == 0

    def test_shift_of_other_point_of_sale(self, db_session, cash_chain):
        other = PointOfSale(code="EDS-02", name="Station 2")
        db_session.add(other)
        db_session.commit()

        with pytest.raises(NotFound):
            cash_register_service.get_chained_cash_balance(other.id, cash_chain[0].shift_id)


class TestRegisterCache:
    def test_current_balance_tracks_movements(self, db_session, cash_chain, point_of_sale):
        register = db_session.query(CashRegister).filter_by(point_of_sale_id=point_of_sale.id).one()
        assert register.current_balance_cents == 16000
        assert cash_register_service.balance_drift(point_of_sale.id) == 0

    def test_drift_detected_and_rebuilt(self, db_session, cash_chain, point_of_sale):
        register = db_session.query(CashRegister).filter_by(point_of_sale_id=point_of_sale.id).one()
        register.current_balance_cents = 0
        db_session.commit()

        assert cash_register_service.balance_drift(point_of_sale.id) == -16000

        cash_register_service.rebuild_current_balance(point_of_sale.id)
        db_session.commit()
        assert cash_register_service.balance_drift(point_of_sale.id) == 0


class TestCashMovements:
    def test_invalid_direction(self, db_session, make_shift):
        closure = make_shift(0)
        with pytest.raises(ValidationError):
            cash_register_service.record_cash_movement(closure.id, "SIDEWAYS", 100, "x")

    def test_locked_closure(self, db_session, make_shift):
        closure = make_shift(0, status=CLOSURE_LOCKED)
        with pytest.raises(ShiftLocked):
            cash_register_service.record_cash_movement(closure.id, "IN", 100, "x")

    def test_single_sales_cash_movement(self, db_session, cash_chain):
        with pytest.raises(ValidationError):
            cash_register_service.record_cash_movement(cash_chain[0].id, "IN", 100, "More sales", is_sales_cash=True)


class TestSalesCashDelta:
    def test_adjusts_tagged_movement(self, db_session, cash_chain, point_of_sale):
        applied = cash_register_service.apply_sales_cash_delta(cash_chain[0], 1500)
        db_session.commit()

        assert applied == 1500
        movement = db_session.query(CashMovement).filter_by(shift_closure_id=cash_chain[0].id, is_sales_cash=True).one()
        assert movement.amount_cents == 6500
        assert cash_register_service.balance_drift(point_of_sale.id) == 0

    def test_floors_at_zero(self, db_session, cash_chain):
        applied = cash_register_service.apply_sales_cash_delta(cash_chain[0], -9000)
        db_session.commit()
        assert applied == -5000

    def test_creates_movement_for_positive_delta(self, db_session, cash_chain):
        applied = cash_register_service.apply_sales_cash_delta(cash_chain[1], 700)
        db_session.commit()

        assert applied == 700
        movement = db_session.query(CashMovement).filter_by(shift_closure_id=cash_chain[1].id).one()
        assert movement.is_sales_cash
        assert movement.direction == "IN"

    def test_negative_delta_without_movement_is_ignored(self, db_session, cash_chain):
        assert cash_register_service.apply_sales_cash_delta(cash_chain[1], -700) == 0
        assert db_session.query(CashMovement).filter_by(shift_closure_id=cash_chain[1].id).count() == 0


class TestCorrectCashMovement:
    def _supplies(self, db_session, closure):
        return db_session.query(CashMovement).filter_by(shift_closure_id=closure.id, concept="Supplies").one()

    def test_amount_correction_rebuilds_register(self, db_session, cash_chain, point_of_sale):
        supplies = self._supplies(db_session, cash_chain[0])

        movement = cash_register_service.correct_cash_movement(supplies.id, amount_cents=2500, actor_id=3)

        assert movement.amount_cents == 2500
        register = db_session.query(CashRegister).filter_by(point_of_sale_id=point_of_sale.id).one()
        assert register.current_balance_cents == 14500
        assert cash_register_service.balance_drift(point_of_sale.id) == 0
        balance = cash_register_service.get_chained_cash_balance(point_of_sale.id, cash_chain[0].shift_id)
        assert balance.closing_balance_cents == 12500

    def test_correction_is_audited(self, db_session, cash_chain):
        supplies = self._supplies(db_session, cash_chain[0])

        cash_register_service.correct_cash_movement(supplies.id, concept="Cleaning supplies", actor_id=3)

        entry = (
            db_session.query(ShiftChangeLog)
            .filter_by(shift_id=cash_chain[0].shift_id, change_kind=CHANGE_CASH_MOVEMENT)
            .order_by(ShiftChangeLog.id.desc())
            .first()
        )
        assert entry.actor_id == 3
        assert entry.old_payload["concept"] == "Supplies"
        assert entry.new_payload["concept"] == "Cleaning supplies"

    def test_sales_cash_movement_is_not_editable(self, db_session, cash_chain):
        sales = db_session.query(CashMovement).filter_by(shift_closure_id=cash_chain[0].id, is_sales_cash=True).one()
        with pytest.raises(ValidationError):
            cash_register_service.correct_cash_movement(sales.id, amount_cents=1)

    def test_locked_closure(self, db_session, cash_chain):
        supplies = self._supplies(db_session, cash_chain[0])
        shift_service.lock_closure(cash_chain[0].id)

        with pytest.raises(ShiftLocked):
            cash_register_service.correct_cash_movement(supplies.id, amount_cents=2500)
        db_session.expire_all()
        assert self._supplies(db_session, cash_chain[0]).amount_cents == 1000

    def test_requires_a_change(self, db_session, cash_chain):
        supplies = self._supplies(db_session, cash_chain[0])
        with pytest.raises(ValidationError):
            cash_register_service.correct_cash_movement(supplies.id, amount_cents=1000, concept="Supplies")
        with pytest.raises(ValidationError):
            cash_register_service.correct_cash_movement(supplies.id, amount_cents=0)

    def test_unknown_movement(self, db_session):
        with pytest.raises(NotFound):
            cash_register_service.correct_cash_movement(999, amount_cents=100)
