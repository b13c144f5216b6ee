"""Fee subsystem — calculation engine, transaction lifecycle, commission payouts."""

from marketfee.fees.engine import FeeCalculationEngine
from marketfee.fees.transactions import FeeTransactionManager

__all__ = [
    "FeeCalculationEngine",
    "FeeTransactionManager",
]
