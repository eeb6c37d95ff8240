"""
inventory_jobs -- Unattended settlement trigger.

Runs an in-process daily check that settles the previous calendar month
on the configured trigger day.  The scheduler is a pure trigger: it holds
no business state and calls ProfitSettlementEngine in its own transaction.

Architecture:
    inventory_jobs/ is a top-level package.  Nothing in inventory_kernel/
    imports from inventory_jobs.
"""
