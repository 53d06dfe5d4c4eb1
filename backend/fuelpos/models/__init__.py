from .stations import PointOfSale, Product
from .vessels import Vessel, CalibrationPoint, VesselFill
from .dispensers import Dispenser, Hose
from .shifts import Shift, ShiftClosure, MeterReading, ProductSale
from .payments import PaymentCategory, PaymentMethod, PaymentMethodAllocation
from .cash import CashRegister, CashMovement
from .audit import ShiftChangeLog

__all__ = [
    'PointOfSale', 'Product',
    'Vessel', 'CalibrationPoint', 'VesselFill',
    'Dispenser', 'Hose',
    'Shift', 'ShiftClosure', 'MeterReading', 'ProductSale',
    'PaymentCategory', 'PaymentMethod', 'PaymentMethodAllocation',
    'CashRegister', 'CashMovement',
    'ShiftChangeLog',
]
