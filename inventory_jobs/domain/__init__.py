"""Pure schedule evaluation for the settlement trigger."""

from inventory_jobs.domain.schedule import previous_period, should_run_settlement

__all__ = ["previous_period", "should_run_settlement"]
