"""Services for the settlement trigger."""

from inventory_jobs.services.scheduler import SettlementScheduler

__all__ = ["SettlementScheduler"]
