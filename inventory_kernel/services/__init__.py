"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.batch_ledger import BatchLedger
from inventory_kernel.services.sales_order_service import SalesOrderEngine
from inventory_kernel.services.settlement_service import ProfitSettlementEngine

__all__ = [
    "BatchLedger",
    "ProfitSettlementEngine",
    "SalesOrderEngine",
]
