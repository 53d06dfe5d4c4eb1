# backend/fuelpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fuelpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fuelpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Safety bound for forward propagation through the shift chain.
    # Reaching it is a fatal condition, never a silent truncation.
    CASCADE_MAX_HOPS = int(os.environ.get("CASCADE_MAX_HOPS", "500"))

    # Payment method that absorbs the value delta of a reading correction
    # when the caller does not name one.
    DEFAULT_CORRECTION_PAYMENT_METHOD = os.environ.get("DEFAULT_CORRECTION_PAYMENT_METHOD", "CASH")

    # 0.01 currency units
    PRECISION_TOLERANCE_CENTS = 1

    LITERS_TO_GALLONS = "0.264172"

    # volume = pi * r^2 * height_m * factor (calibration tables are in liters)
    GEOMETRY_VOLUME_FACTOR = 10

    # Explicit method code -> category table. Resolved once when a payment
    # method is configured; see allocation_service.resolve_category.
    PAYMENT_METHOD_CATEGORIES = {
        "CASH": "CASH",
        "EFECTIVO": "CASH",
        "CARD": "CARD",
        "CREDIT_CARD": "CARD",
        "DEBIT_CARD": "CARD",
        "TARJETA_CREDITO": "CARD",
        "TARJETA_DEBITO": "CARD",
        "TRANSFER": "TRANSFER",
        "BANK_TRANSFER": "TRANSFER",
        "TRANSFERENCIA_BANCARIA": "TRANSFER",
        "FLEET": "FLEET",
        "RUMBO": "FLEET",
        "VOUCHER": "VOUCHER",
        "BONOS VIVE TERPEL": "VOUCHER",
    }


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "DEBUG"
