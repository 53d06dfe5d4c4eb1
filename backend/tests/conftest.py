"""
Pytest fixtures for FuelPOS backend tests.

Provides the in-memory test database, a station with one dispenser/hose,
payment methods, a calibrated vessel and a shift factory.
"""

from datetime import date, time, timedelta
from decimal import Decimal

import pytest
from fuelpos import create_app
from fuelpos.config import TestConfig
from fuelpos.extensions import db
from fuelpos.models import (
    CalibrationPoint,
    CashRegister,
    Dispenser,
    Hose,
    PointOfSale,
    Product,
    Shift,
    ShiftClosure,
    Vessel,
)
from fuelpos.models.shifts import CLOSURE_OPEN
from fuelpos.services import allocation_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def point_of_sale(db_session):
    pos = PointOfSale(code="EDS-01", name="Station 1")
    db_session.add(pos)
    db_session.commit()
    return pos


@pytest.fixture(scope='function')
def fuel_product(db_session):
    """Diesel at 1.00 per liter."""
    product = Product(code="ACPM", name="Diesel", unit="LITERS", price_cents=100, is_fuel=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def hose(db_session, point_of_sale, fuel_product):
    """Hose 1 of dispenser 1, meter cache at 100.000."""
    dispenser = Dispenser(point_of_sale_id=point_of_sale.id, number=1)
    db_session.add(dispenser)
    db_session.flush()

    hose = Hose(dispenser_id=dispenser.id, product_id=fuel_product.id, number=1, last_reading=Decimal("100"))
    db_session.add(hose)
    db_session.commit()
    return hose


@pytest.fixture(scope='function')
def payment_methods(db_session):
    """CASH, CARD and VOUCHER methods keyed by code."""
    return {
        "CASH": allocation_service.configure_payment_method("CASH", "Efectivo"),
        "CARD": allocation_service.configure_payment_method("CARD", "Tarjeta"),
        "VOUCHER": allocation_service.configure_payment_method("BONOS VIVE TERPEL", "Bonos"),
    }


@pytest.fixture(scope='function')
def cash_register(db_session, point_of_sale):
    register = CashRegister(
        point_of_sale_id=point_of_sale.id,
        opening_balance_cents=10000,
        current_balance_cents=10000,
    )
    db_session.add(register)
    db_session.commit()
    return register


@pytest.fixture(scope='function')
def make_shift(db_session, point_of_sale):
    """
    Factory: make_shift(index) creates the index-th shift of the day chain
    (08:00 + 8h * index) with an OPEN closure.
    """
    base = date(2026, 3, 1)

    def _make(index: int, status: str = CLOSURE_OPEN, pos_id: int | None = None) -> ShiftClosure:
        hours = 8 + 8 * index
        shift = Shift(
            point_of_sale_id=pos_id or point_of_sale.id,
            start_date=base + timedelta(days=hours // 24),
            start_time=time(hours % 24, 0),
        )
        db_session.add(shift)
        db_session.flush()

        closure = ShiftClosure(
            shift_id=shift.id,
            point_of_sale_id=shift.point_of_sale_id,
            status=status,
        )
        db_session.add(closure)
        db_session.commit()
        return closure

    return _make


@pytest.fixture(scope='function')
def vessel(db_session, point_of_sale, fuel_product):
    """Tank with table {(0,0), (10,500), (20,1200)}; capacity 1000 L, minimum 100 L."""
    tank = Vessel(
        point_of_sale_id=point_of_sale.id,
        product_id=fuel_product.id,
        name="Tank 1",
        capacity=Decimal("1000"),
        minimum_level=Decimal("100"),
    )
    db_session.add(tank)
    db_session.flush()

    for height, volume in ((0, 0), (10, 500), (20, 1200)):
        db_session.add(CalibrationPoint(vessel_id=tank.id, height=Decimal(height), volume=Decimal(volume)))
    db_session.commit()
    return tank
