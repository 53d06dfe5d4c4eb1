# Overview: Pytest coverage for recording and correcting counter product sales.

from decimal import Decimal

import pytest

from fuelpos.errors import NotFound, ShiftLocked, ValidationError
from fuelpos.models import CashMovement, CashRegister, PaymentMethodAllocation, Product, ShiftChangeLog
from fuelpos.models.audit import CHANGE_PRODUCT_SALE
from fuelpos.services import allocation_service, cash_register_service, product_sale_service, reading_service, shift_service


@pytest.fixture
def motor_oil(db_session):
    product = Product(code="LUB-20W50", name="Motor oil 1qt", price_cents=2500, is_fuel=False)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def shop_closure(db_session, hose, make_shift, payment_methods, cash_register, motor_oil):
    """
    Closure worth 100.00: 50.00 of diesel plus 2 x 25.00 of motor oil paid in
    cash. Allocations CASH 60.00 / CARD 40.00; sales cash movement 60.00.
    """
    closure = make_shift(0)
    reading_service.record_reading(hose.id, closure.id, "150")
    sale = product_sale_service.record_product_sale(closure.id, motor_oil.id, "2", payment_method_code="CASH")
    allocation_service.set_allocations(closure.id, {"CASH": 6000, "CARD": 4000})
    cash_register_service.record_cash_movement(closure.id, "IN", 6000, "Cash sales", is_sales_cash=True)
    return closure, sale


def _allocations(db_session, closure):
    return {
        a.payment_method.code: a
        for a in db_session.query(PaymentMethodAllocation).filter_by(shift_closure_id=closure.id)
    }


class TestRecordProductSale:
    def test_sale_feeds_closure_total(self, db_session, shop_closure):
        closure, sale = shop_closure

        assert sale.unit_price_cents == 2500
        assert sale.total_cents == 5000
        db_session.refresh(closure)
        assert closure.total_value_cents == 10000
        assert closure.total_liters == Decimal("50.00")

    def test_explicit_price_and_audit(self, db_session, make_shift, motor_oil):
        closure = make_shift(0)

        sale = product_sale_service.record_product_sale(
            closure.id, motor_oil.id, "1.5", unit_price_cents=2000, actor_id=9,
        )

        assert sale.total_cents == 3000
        assert sale.payment_method_id is None
        entry = db_session.query(ShiftChangeLog).filter_by(
            shift_id=closure.shift_id, change_kind=CHANGE_PRODUCT_SALE,
        ).one()
        assert entry.actor_id == 9
        assert entry.new_payload["total_cents"] == 3000

    def test_invalid_input(self, db_session, make_shift, motor_oil):
        closure = make_shift(0)
        for quantity in ("0", "-1", "nan", "abc"):
            with pytest.raises(ValidationError):
                product_sale_service.record_product_sale(closure.id, motor_oil.id, quantity)
        with pytest.raises(ValidationError):
            product_sale_service.record_product_sale(closure.id, motor_oil.id, "1", unit_price_cents=0)

    def test_unknown_references(self, db_session, make_shift, motor_oil, payment_methods):
        closure = make_shift(0)
        with pytest.raises(NotFound):
            product_sale_service.record_product_sale(closure.id, 999, "1")
        with pytest.raises(NotFound):
            product_sale_service.record_product_sale(closure.id, motor_oil.id, "1", payment_method_code="CHEQUE")

    def test_locked_closure(self, db_session, make_shift, motor_oil):
        closure = make_shift(0)
        shift_service.lock_closure(closure.id)
        with pytest.raises(ShiftLocked):
            product_sale_service.record_product_sale(closure.id, motor_oil.id, "1")


class TestCorrectProductSale:
    def test_cash_sale_moves_allocation_and_register(self, db_session, shop_closure, point_of_sale):
        closure, sale = shop_closure

        result = product_sale_service.correct_product_sale(sale.id, quantity="3", actor_id=4)

        assert result.sale.total_cents == 7500
        assert result.value_delta_cents == 2500
        assert result.allocation_delta_cents == 2500
        assert result.cash_delta_cents == 2500

        db_session.refresh(closure)
        assert closure.total_value_cents == 12500
        allocations = _allocations(db_session, closure)
        assert allocations["CASH"].amount_cents == 8500
        assert allocations["CASH"].percentage == Decimal("68.00")
        assert allocations["CARD"].amount_cents == 4000
        assert allocation_service.is_balanced(closure)

        movement = db_session.query(CashMovement).filter_by(shift_closure_id=closure.id, is_sales_cash=True).one()
        assert movement.amount_cents == 8500
        register = db_session.query(CashRegister).filter_by(point_of_sale_id=point_of_sale.id).one()
        assert register.current_balance_cents == 18500

    def test_price_correction_on_card_sale_leaves_cash(self, db_session, shop_closure, motor_oil):
        closure, _ = shop_closure
        card_sale = product_sale_service.record_product_sale(closure.id, motor_oil.id, "1", payment_method_code="CARD")
        allocation_service.set_allocations(closure.id, {"CARD": 6500})

        result = product_sale_service.correct_product_sale(card_sale.id, unit_price_cents=2000)

        assert result.value_delta_cents == -500
        assert result.cash_delta_cents == 0
        allocations = _allocations(db_session, closure)
        assert allocations["CARD"].amount_cents == 6000
        assert allocations["CASH"].amount_cents == 6000

    def test_sale_without_method_only_rebalances(self, db_session, shop_closure, motor_oil):
        closure, _ = shop_closure
        loose = product_sale_service.record_product_sale(closure.id, motor_oil.id, "1")

        result = product_sale_service.correct_product_sale(loose.id, quantity="2")

        assert result.value_delta_cents == 2500
        assert result.allocation_delta_cents == 0
        allocations = _allocations(db_session, closure)
        assert allocations["CASH"].amount_cents == 6000
        db_session.refresh(closure)
        assert closure.total_value_cents == 15000

    def test_correction_is_audited(self, db_session, shop_closure):
        closure, sale = shop_closure

        product_sale_service.correct_product_sale(sale.id, quantity="3", actor_id=4)

        entry = (
            db_session.query(ShiftChangeLog)
            .filter_by(shift_id=closure.shift_id, change_kind=CHANGE_PRODUCT_SALE)
            .order_by(ShiftChangeLog.id.desc())
            .first()
        )
        assert entry.actor_id == 4
        assert entry.old_payload["total_cents"] == 5000
        assert entry.new_payload["total_cents"] == 7500

    def test_locked_closure(self, db_session, shop_closure):
        closure, sale = shop_closure
        shift_service.lock_closure(closure.id)

        with pytest.raises(ShiftLocked):
            product_sale_service.correct_product_sale(sale.id, quantity="3")
        db_session.expire_all()
        assert _allocations(db_session, closure)["CASH"].amount_cents == 6000

    def test_requires_a_value(self, db_session, shop_closure):
        _, sale = shop_closure
        with pytest.raises(ValidationError):
            product_sale_service.correct_product_sale(sale.id)
        with pytest.raises(ValidationError):
            product_sale_service.correct_product_sale(sale.id, quantity="inf")

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFound):
            product_sale_service.correct_product_sale(999, quantity="1")
