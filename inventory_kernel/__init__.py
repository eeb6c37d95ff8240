"""
Inventory Kernel - batch stock, sales and monthly profit settlement

A transactional core with:
- Row-locked stock deduction (no overselling)
- Exact decimal profit arithmetic
- Exactly-once monthly settlement backed by a storage constraint
- Permanent order locking once a month is settled
"""

__version__ = "0.1.0"
