"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP layer, the settlement scheduler, operators' scripts) must
react to failures by KIND, not by parsing message strings:

  - The HTTP layer maps each category to a status code.
  - The scheduler treats SettlementAlreadyExecutedError as an expected no-op
    and everything else as a failure to log.

Every exception therefore:
  1. Belongs to one of four categories (InvalidArgument, NotFound,
     Conflict, Forbidden) plus the internal guard/config categories.
  2. Has a CODE class attribute (machine-readable, API-safe).
  3. Carries structured DATA as attributes (not just a message string).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- InvalidArgumentError
    |   +-- ValidationError
    |   +-- UnknownBatchesError
    |   +-- InsufficientStockError
    |
    +-- NotFoundError
    |   +-- BatchNotFoundError
    |   +-- SalesOrderNotFoundError
    |
    +-- ConflictError
    |   +-- DuplicateBatchIdentifierError
    |   +-- BatchReferencedError
    |   +-- SettlementAlreadyExecutedError
    |
    +-- ForbiddenError
    |   +-- SalesOrderLockedError
    |
    +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
InvalidArgument | VALIDATION_FAILED             | One or more input fields out of range
                | UNKNOWN_BATCHES               | Order references batches that don't exist
                | INSUFFICIENT_STOCK            | Aggregated demand exceeds current stock
----------------|-------------------------------|---------------------------------------
NotFound        | BATCH_NOT_FOUND               | Batch ID doesn't exist
                | SALES_ORDER_NOT_FOUND         | Sales order ID doesn't exist
----------------|-------------------------------|---------------------------------------
Conflict        | DUPLICATE_BATCH_IDENTIFIER    | Batch identifier already used
                | BATCH_REFERENCED              | Batch delete while line items reference it
                | SETTLEMENT_ALREADY_EXECUTED   | (month, year) already settled
----------------|-------------------------------|---------------------------------------
Forbidden       | SALES_ORDER_LOCKED            | Mutating an order included in a settlement
----------------|-------------------------------|---------------------------------------
Guard           | IMMUTABILITY_VIOLATION        | ORM listener blocked a frozen-field write
Config          | CONFIGURATION_ERROR           | Bad config file / environment value

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        engine.execute(month=1, year=2024)
    except SettlementAlreadyExecutedError as e:
        # Expected: somebody already ran it.
        log.info("already settled", extra={"month": e.month, "year": e.year})
    except InvalidArgumentError as e:
        return {"error": e.code, "details": getattr(e, "field_errors", [])}

===============================================================================
"""

from typing import Any


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Category bases


class InvalidArgumentError(InventoryKernelError):
    """Malformed or out-of-range input, including business-rule violations."""

    code: str = "INVALID_ARGUMENT"


class NotFoundError(InventoryKernelError):
    """Referenced entity is absent."""

    code: str = "NOT_FOUND"


class ConflictError(InventoryKernelError):
    """Uniqueness or referential conflict."""

    code: str = "CONFLICT"


class ForbiddenError(InventoryKernelError):
    """Operation disallowed by the current state of the entity."""

    code: str = "FORBIDDEN"


# InvalidArgument


class ValidationError(InvalidArgumentError):
    """
    One or more input fields failed validation.

    Every offending field is listed so that a client can fix all problems
    in a single round trip.  ``field_errors`` is a list of
    ``{"field": ..., "message": ...}`` dicts.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, field_errors: list[dict[str, str]]):
        self.field_errors = field_errors
        details = "; ".join(f"{e['field']}: {e['message']}" for e in field_errors)
        super().__init__(
            f"Validation failed with {len(field_errors)} error(s): {details}"
        )

    @property
    def fields(self) -> list[str]:
        return [e["field"] for e in self.field_errors]


class UnknownBatchesError(InvalidArgumentError):
    """A sales order references batch IDs that do not exist."""

    code: str = "UNKNOWN_BATCHES"

    def __init__(self, batch_ids: list[str]):
        self.batch_ids = batch_ids
        super().__init__(f"Batch(es) not found: {', '.join(batch_ids)}")


class InsufficientStockError(InvalidArgumentError):
    """
    Aggregated demand on a batch exceeds its current quantity.

    The top-level attributes describe the first shortfall (by batch
    identifier); ``shortfalls`` lists every short batch.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        batch_identifier: str,
        available: int,
        required: int,
        shortfalls: list[dict[str, Any]] | None = None,
    ):
        self.batch_identifier = batch_identifier
        self.available = available
        self.required = required
        self.shortfalls = shortfalls or [
            {
                "batch_identifier": batch_identifier,
                "available": available,
                "required": required,
            }
        ]
        super().__init__(
            f"Insufficient stock for batch {batch_identifier}. "
            f"Available: {available}, Required: {required}"
        )


# NotFound


class BatchNotFoundError(NotFoundError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class SalesOrderNotFoundError(NotFoundError):
    """Sales order with given ID was not found."""

    code: str = "SALES_ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Sales order not found: {order_id}")


# Conflict


class DuplicateBatchIdentifierError(ConflictError):
    """Batch identifier already exists."""

    code: str = "DUPLICATE_BATCH_IDENTIFIER"

    def __init__(self, batch_identifier: str):
        self.batch_identifier = batch_identifier
        super().__init__(f"Batch identifier already exists: {batch_identifier}")


class BatchReferencedError(ConflictError):
    """Batch cannot be deleted while sales-order line items reference it."""

    code: str = "BATCH_REFERENCED"

    def __init__(self, batch_id: str, line_item_count: int):
        self.batch_id = batch_id
        self.line_item_count = line_item_count
        super().__init__(
            f"Cannot delete batch {batch_id}: referenced by "
            f"{line_item_count} sales order line item(s)"
        )


class SettlementAlreadyExecutedError(ConflictError):
    """A settlement already exists for this (month, year)."""

    code: str = "SETTLEMENT_ALREADY_EXECUTED"

    def __init__(self, month: int, year: int):
        self.month = month
        self.year = year
        super().__init__(f"Profit split already executed for {month}/{year}")


# Forbidden


class SalesOrderLockedError(ForbiddenError):
    """Sales order is locked by a settlement and is permanently read-only."""

    code: str = "SALES_ORDER_LOCKED"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Cannot modify locked sales order {order_id}")


# Guards


class ImmutabilityViolationError(InventoryKernelError):
    """
    Attempted to modify or delete an immutable record.

    Raised by the ORM listeners in ``db/immutability.py`` when a write
    bypasses the services.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class ConfigurationError(InventoryKernelError):
    """Configuration file or environment value is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for '{key}': {reason}")

