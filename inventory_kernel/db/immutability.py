"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Owners are paid against settlement totals.  Once a sale is included in a
settlement, nothing may silently change the numbers behind that payment.
The services already refuse such writes; this module is the second layer,
catching any Python/SQLAlchemy code path that bypasses them.

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

Storage-level constraints (CHECK, UNIQUE, FK RESTRICT) in models/ remain the
final guard for raw SQL.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable                 | What
--------------------|--------------------------------|-------------------------------
Batch               | ALWAYS (from creation)         | identifier, purchase date,
                    |                                | purchase price, initial qty
SalesOrder          | After is_locked = True         | every business field; delete
SalesOrderLineItem  | ALWAYS (from creation)         | every business field
                    | When parent order is locked    | delete
Settlement          | ALWAYS (from creation)         | every field; delete

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at / updated_by_id may change on any record; they are audit
   metadata, not business data.

2. "WAS LOCKED", NOT "IS LOCKED".  The settlement itself performs the
   is_locked False -> True transition; only changes after that are blocked.
   Attribute history tells the two apart.

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup (create_tables() does it)

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, select
from sqlalchemy.orm.attributes import get_history

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_registered = False


def _changed_fields(mapper, target) -> list[str]:
    """Names of mapped column attributes with pending changes."""
    changed = []
    for attr in mapper.column_attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if get_history(target, attr.key).has_changes():
            changed.append(attr.key)
    return changed


def _block(entity_type: str, entity_id, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type, entity_id=str(entity_id), reason=reason
    )


def _check_batch_immutability(mapper, connection, target):
    """Block changes to a batch's cost basis and identity."""
    from inventory_kernel.models.batch import BATCH_IMMUTABLE_FIELDS

    frozen = [f for f in _changed_fields(mapper, target) if f in BATCH_IMMUTABLE_FIELDS]
    if frozen:
        _block(
            "Batch",
            target.id,
            "UPDATE",
            f"immutable field(s) changed: {', '.join(sorted(frozen))}",
        )


def _check_sales_order_immutability(mapper, connection, target):
    """
    Block changes to a locked order.

    Allowed: the locking transition itself (is_locked False -> True together
    with settlement_id).  Blocked: anything once the row was locked,
    including unlocking.
    """
    lock_history = get_history(target, "is_locked")
    was_locked = True in (lock_history.deleted or ()) or True in (
        lock_history.unchanged or ()
    )
    changed = _changed_fields(mapper, target)

    if was_locked and changed:
        _block(
            "SalesOrder",
            target.id,
            "UPDATE",
            f"order is locked; attempted to change {', '.join(sorted(changed))}",
        )

    locking_fields = {"is_locked", "settlement_id"}
    if not was_locked and "is_locked" in changed and set(changed) - locking_fields:
        _block(
            "SalesOrder",
            target.id,
            "UPDATE",
            "locking transition may not change other fields",
        )


def _check_sales_order_delete(mapper, connection, target):
    lock_history = get_history(target, "is_locked")
    committed = lock_history.deleted or lock_history.unchanged or ()
    if True in committed or target.is_locked:
        _block("SalesOrder", target.id, "DELETE", "order is locked")


def _check_line_item_immutability(mapper, connection, target):
    changed = _changed_fields(mapper, target)
    if changed:
        _block(
            "SalesOrderLineItem",
            target.id,
            "UPDATE",
            f"line items are immutable; attempted to change {', '.join(sorted(changed))}",
        )


def _check_line_item_delete(mapper, connection, target):
    from inventory_kernel.models.sales_order import SalesOrder

    locked = connection.execute(
        select(SalesOrder.is_locked).where(SalesOrder.id == target.sales_order_id)
    ).scalar_one_or_none()
    if locked:
        _block("SalesOrderLineItem", target.id, "DELETE", "parent order is locked")


def _check_settlement_immutability(mapper, connection, target):
    changed = _changed_fields(mapper, target)
    if changed:
        _block(
            "Settlement",
            target.id,
            "UPDATE",
            f"settlements are immutable; attempted to change {', '.join(sorted(changed))}",
        )


def _check_settlement_delete(mapper, connection, target):
    _block("Settlement", target.id, "DELETE", "settlements are never deleted")


def _listeners():
    from inventory_kernel.models.batch import Batch
    from inventory_kernel.models.sales_order import SalesOrder, SalesOrderLineItem
    from inventory_kernel.models.settlement import Settlement

    return (
        (Batch, "before_update", _check_batch_immutability),
        (SalesOrder, "before_update", _check_sales_order_immutability),
        (SalesOrder, "before_delete", _check_sales_order_delete),
        (SalesOrderLineItem, "before_update", _check_line_item_immutability),
        (SalesOrderLineItem, "before_delete", _check_line_item_delete),
        (Settlement, "before_update", _check_settlement_immutability),
        (Settlement, "before_delete", _check_settlement_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability enforcement event listeners (idempotent)."""
    global _registered
    if _registered:
        return
    for target, identifier, fn in _listeners():
        event.listen(target, identifier, fn)
    _registered = True
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners. TESTS ONLY."""
    global _registered
    if not _registered:
        return
    for target, identifier, fn in _listeners():
        if event.contains(target, identifier, fn):
            event.remove(target, identifier, fn)
    _registered = False
