"""ORM models for the inventory kernel."""

from inventory_kernel.models.batch import BATCH_IMMUTABLE_FIELDS, Batch
from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLineItem
from inventory_kernel.models.settlement import Settlement

__all__ = [
    "BATCH_IMMUTABLE_FIELDS",
    "Batch",
    "SalesOrder",
    "SalesOrderLineItem",
    "Settlement",
]
