"""
BatchLedger -- batch lifecycle and the stock-quantity invariant.

Responsibility:
    Creates, updates, lists and deletes batches, and owns every write to
    ``current_quantity``.  SalesOrderEngine never touches stock directly:
    it asks the ledger to lock the batches it needs and to deduct from them.

Architecture position:
    Kernel > Services -- imperative shell.  Leaf service; depends on no
    other kernel service.

Invariants enforced:
    - current_quantity == initial_quantity at creation.
    - 0 <= current_quantity <= initial_quantity at all times (service check
      plus storage CHECK constraint).
    - Purchase price, purchase date, initial quantity and identifier never
      change (absent from BatchUpdate; ORM listener backs it up).
    - A batch referenced by any line item cannot be deleted.
    - Stock-affecting reads for a sale use SELECT ... FOR UPDATE, ordered by
      id, so concurrent orders on the same batch serialize instead of both
      passing the availability check on a stale quantity.
    - The decrement itself is a conditional UPDATE (current_quantity >= q),
      so even a backend without row locks cannot drive stock negative.

Failure modes:
    - ValidationError: bad price / quantity / name (all fields reported).
    - DuplicateBatchIdentifierError: identifier already used.
    - BatchNotFoundError: unknown batch id on update/delete.
    - BatchReferencedError: delete of a batch with line items.
    - InsufficientStockError: stock fell below the demand between the
      locked read and the decrement.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from inventory_kernel.db.types import as_utc
from inventory_kernel.domain.dtos import BatchInfo, BatchUpdate
from inventory_kernel.domain.validation import FieldErrors
from inventory_kernel.exceptions import (
    BatchNotFoundError,
    BatchReferencedError,
    DuplicateBatchIdentifierError,
    InsufficientStockError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.batch import Batch
from inventory_kernel.models.sales_order import SalesOrderLineItem
from inventory_kernel.services.base import BaseService

logger = get_logger("services.batch_ledger")


class BatchLedger(BaseService[Batch]):
    """
    Service for the batch lifecycle and stock levels.

    Contract:
        Public methods return frozen ``BatchInfo`` DTOs.  Mutations flush
        within the caller's transaction.

    Non-goals:
        - Does NOT restore stock when an order is deleted.
        - Does NOT layer costs across batches (one batch, one cost basis).
    """

    @staticmethod
    def _to_dto(batch: Batch) -> BatchInfo:
        return BatchInfo(
            id=batch.id,
            batch_identifier=batch.batch_identifier,
            product_name=batch.product_name,
            purchase_date=batch.purchase_date,
            purchase_price_per_unit=batch.purchase_price_per_unit,
            default_selling_price_per_unit=batch.default_selling_price_per_unit,
            initial_quantity=batch.initial_quantity,
            current_quantity=batch.current_quantity,
            created_at=as_utc(batch.created_at),
            updated_at=as_utc(batch.updated_at),
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create(
        self,
        batch_identifier: str,
        product_name: str,
        purchase_date: date,
        purchase_price_per_unit: Decimal | int | str,
        initial_quantity: int,
        default_selling_price_per_unit: Decimal | int | str | None = None,
        actor_id: UUID | None = None,
    ) -> BatchInfo:
        """
        Register a purchased lot.

        Postconditions:
            - ``current_quantity == initial_quantity``.
            - ``default_selling_price_per_unit`` is 0 when omitted.

        Raises:
            ValidationError: Listing every invalid field.
            DuplicateBatchIdentifierError: If the identifier is taken
                (application check, backed by uq_batch_identifier).
        """
        errors = FieldErrors()
        identifier = errors.text("batch_identifier", batch_identifier)
        name = errors.text("product_name", product_name)
        if not isinstance(purchase_date, date):
            errors.add("purchase_date", "must be a date")
        purchase_price = errors.money("purchase_price_per_unit", purchase_price_per_unit)
        default_price = errors.money(
            "default_selling_price_per_unit",
            default_selling_price_per_unit,
            required=False,
        )
        quantity = errors.positive_int("initial_quantity", initial_quantity)
        errors.raise_if_any()

        if self._get_by_identifier_orm(identifier) is not None:
            raise DuplicateBatchIdentifierError(identifier)

        batch = Batch(
            batch_identifier=identifier,
            product_name=name,
            purchase_date=purchase_date,
            purchase_price_per_unit=purchase_price,
            default_selling_price_per_unit=(
                default_price if default_price is not None else Decimal("0")
            ),
            initial_quantity=quantity,
            current_quantity=quantity,
            created_by_id=actor_id,
        )
        self.session.add(batch)
        try:
            self.session.flush()
        except IntegrityError:
            # Concurrent create with the same identifier won the race.
            logger.warning(
                "concurrent_batch_create_conflict",
                extra={"batch_identifier": identifier},
            )
            raise DuplicateBatchIdentifierError(identifier)

        logger.info(
            "batch_created",
            extra={
                "batch_id": str(batch.id),
                "batch_identifier": identifier,
                "initial_quantity": quantity,
            },
        )
        return self._to_dto(batch)

    def update(
        self,
        batch_id: UUID,
        changes: BatchUpdate,
        actor_id: UUID | None = None,
    ) -> BatchInfo:
        """
        Apply an administrative correction.

        Only product name, current quantity (bounded by initial quantity)
        and default selling price can change.

        Raises:
            BatchNotFoundError: If the batch does not exist.
            ValidationError: Listing every invalid field.
        """
        batch = self._get_for_update(batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))

        errors = FieldErrors()
        name = None
        if changes.product_name is not None:
            name = errors.text("product_name", changes.product_name)
        quantity = None
        if changes.current_quantity is not None:
            quantity = errors.non_negative_int("current_quantity", changes.current_quantity)
            if quantity is not None and quantity > batch.initial_quantity:
                errors.add(
                    "current_quantity",
                    f"cannot exceed initial quantity ({batch.initial_quantity})",
                )
                quantity = None
        default_price = errors.money(
            "default_selling_price_per_unit",
            changes.default_selling_price_per_unit,
            required=False,
        )
        errors.raise_if_any()

        if name is not None:
            batch.product_name = name
        if quantity is not None:
            previous = batch.current_quantity
            batch.current_quantity = quantity
            logger.info(
                "batch_quantity_corrected",
                extra={
                    "batch_id": str(batch.id),
                    "previous_quantity": previous,
                    "current_quantity": quantity,
                },
            )
        if default_price is not None:
            batch.default_selling_price_per_unit = default_price
        if not changes.is_empty:
            batch.updated_by_id = actor_id
        self.session.flush()

        logger.info("batch_updated", extra={"batch_id": str(batch.id)})
        return self._to_dto(batch)

    def delete(self, batch_id: UUID) -> BatchInfo:
        """
        Delete a batch that no sale has ever drawn from.

        Returns:
            The batch's final snapshot.

        Raises:
            BatchNotFoundError: If the batch does not exist.
            BatchReferencedError: If any line item references the batch.
        """
        batch = self._get_for_update(batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))

        references = self.session.execute(
            select(func.count(SalesOrderLineItem.id)).where(
                SalesOrderLineItem.batch_id == batch_id
            )
        ).scalar_one()
        if references:
            raise BatchReferencedError(str(batch_id), references)

        snapshot = self._to_dto(batch)
        self.session.delete(batch)
        self.session.flush()

        logger.info(
            "batch_deleted",
            extra={"batch_id": str(batch_id), "batch_identifier": snapshot.batch_identifier},
        )
        return snapshot

    # -------------------------------------------------------------------------
    # Stock
    # -------------------------------------------------------------------------

    def check_availability(
        self, batch_id: UUID, quantity: int, *, for_update: bool = False
    ) -> bool:
        """
        True when the batch exists and holds at least ``quantity`` units.

        A sale must re-check inside the transaction that deducts, with
        ``for_update=True``; an unlocked answer may be stale by the time
        it is acted on.
        """
        batch = self._get_for_update(batch_id) if for_update else self.session.get(Batch, batch_id)
        if batch is None:
            return False
        return batch.has_stock(quantity)

    def lock_for_sale(self, batch_ids: Iterable[UUID]) -> dict[UUID, Batch]:
        """
        Row-lock and load the given batches in one read.

        Locks are taken in id order so that two orders touching the same
        batches cannot deadlock each other.  Missing ids are simply absent
        from the result.
        """
        ids = sorted(set(batch_ids), key=str)
        if not ids:
            return {}
        rows = self.session.execute(
            select(Batch)
            .where(Batch.id.in_(ids))
            .order_by(Batch.id)
            .with_for_update()
        ).scalars().all()
        return {batch.id: batch for batch in rows}

    def deduct(self, batch: Batch, quantity: int) -> None:
        """
        Decrement a locked batch's stock in the database.

        Preconditions: ``batch`` came from ``lock_for_sale()`` in the
            current transaction.

        The UPDATE only matches while enough stock remains, so the check
        and the write are one statement.  ``batch`` is refreshed from the
        row afterwards.

        Raises:
            ValueError: If ``quantity`` is not positive.
            InsufficientStockError: If the row holds less than ``quantity``.
        """
        if quantity <= 0:
            raise ValueError(
                f"Cannot deduct {quantity} from batch {batch.batch_identifier}"
            )
        result = self.session.execute(
            update(Batch)
            .where(Batch.id == batch.id, Batch.current_quantity >= quantity)
            .values(current_quantity=Batch.current_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(batch, attribute_names=["current_quantity", "updated_at"])
        if result.rowcount != 1:
            logger.warning(
                "stock_deduction_rejected",
                extra={
                    "batch_id": str(batch.id),
                    "available": batch.current_quantity,
                    "required": quantity,
                },
            )
            raise InsufficientStockError(
                batch.batch_identifier, batch.current_quantity, quantity
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, batch_id: UUID) -> BatchInfo | None:
        batch = self.session.get(Batch, batch_id)
        return self._to_dto(batch) if batch else None

    def get_by_identifier(self, batch_identifier: str) -> BatchInfo | None:
        batch = self._get_by_identifier_orm(batch_identifier)
        return self._to_dto(batch) if batch else None

    def list(self, product_name: str | None = None) -> list[BatchInfo]:
        """All batches, optionally for one product, by product name then identifier."""
        stmt = select(Batch)
        if product_name:
            stmt = stmt.where(Batch.product_name == product_name)
        stmt = stmt.order_by(Batch.product_name, Batch.batch_identifier)
        return [self._to_dto(b) for b in self.session.execute(stmt).scalars()]

    def list_available(self) -> list[BatchInfo]:
        """Batches with stock left, by product name then identifier."""
        stmt = (
            select(Batch)
            .where(Batch.current_quantity > 0)
            .order_by(Batch.product_name, Batch.batch_identifier)
        )
        return [self._to_dto(b) for b in self.session.execute(stmt).scalars()]

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _get_by_identifier_orm(self, batch_identifier: Any) -> Batch | None:
        return self.session.execute(
            select(Batch).where(Batch.batch_identifier == batch_identifier)
        ).scalar_one_or_none()

    def _get_for_update(self, batch_id: UUID) -> Batch | None:
        """Get ORM Batch by id with row lock for concurrent mutation."""
        return self.session.execute(
            select(Batch).where(Batch.id == batch_id).with_for_update()
        ).scalar_one_or_none()
