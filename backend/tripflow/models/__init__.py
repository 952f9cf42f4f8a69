from .tenancy import Organization
from .orders import Order, Trip
from .documents import FiscalCounter, DeliveryMemo
from .ledger import LedgerEntry
from .wages import TripWage, AttendanceRecord, AttendanceDay

__all__ = [
    'Organization',
    'Order', 'Trip',
    'FiscalCounter', 'DeliveryMemo',
    'LedgerEntry',
    'TripWage', 'AttendanceRecord', 'AttendanceDay',
]
