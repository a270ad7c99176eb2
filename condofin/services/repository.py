"""Datastore boundary for the accounting engine.

All reads and writes the engine performs go through LedgerRepository, so the
services above it stay free of query details. Each write is a point where
other writers may interleave; multi-step rewrites use atomic() so readers
never observe a transaction with partial allocations.
"""

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Iterator

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from condofin.models import (
    AllocationKind,
    Creditor,
    ExtraCharge,
    FeeHistory,
    Owner,
    Transaction,
    TransactionMonth,
    TransactionType,
    Unit,
)
from condofin.services.errors import NotFoundError
from condofin.services.months import validate_month

logger = logging.getLogger(__name__)

_OWNER_PERIOD_FIELDS = {"start_month", "end_month"}
_TRANSACTION_PATCH_FIELDS = {
    "transaction_date",
    "value_date",
    "description",
    "type",
    "category",
    "reference_month",
    "unit_id",
    "creditor_id",
}


class LedgerRepository:
    """CRUD access to units, creditors, fees, owners, transactions and allocations."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    # --- unit of work -------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the enclosed writes as one database transaction.

        Commits on success, rolls back and re-raises on any error.
        """
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def lock_transaction(self, transaction_id: int) -> Transaction:
        """Load a transaction row with a write lock (SELECT ... FOR UPDATE).

        Serializes concurrent re-slices of the same transaction on backends
        with row locking. SQLite ignores the clause and relies on its
        database-level write lock instead.
        """
        stmt = select(Transaction).where(Transaction.id == transaction_id).with_for_update()
        transaction = self.db.execute(stmt).scalar_one_or_none()
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    # --- entity lookups -----------------------------------------------------

    def get_unit(self, unit_id: int) -> Unit:
        unit = self.db.get(Unit, unit_id)
        if unit is None:
            raise NotFoundError("Unit", unit_id)
        return unit

    def get_creditor(self, creditor_id: int) -> Creditor:
        creditor = self.db.get(Creditor, creditor_id)
        if creditor is None:
            raise NotFoundError("Creditor", creditor_id)
        return creditor

    def get_transaction(self, transaction_id: int) -> Transaction:
        transaction = self.db.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    def get_owner(self, owner_id: int) -> Owner:
        owner = self.db.get(Owner, owner_id)
        if owner is None:
            raise NotFoundError("Owner", owner_id)
        return owner

    def list_units(self) -> list[Unit]:
        return self.db.query(Unit).order_by(Unit.code).all()

    def list_creditors(self) -> list[Creditor]:
        return self.db.query(Creditor).order_by(Creditor.name).all()

    # --- fees ---------------------------------------------------------------

    def find_fee_history(
        self, unit_id: int | None = None, creditor_id: int | None = None
    ) -> list[FeeHistory]:
        """Fee history of one unit or one creditor, ascending by effective_from."""
        if (unit_id is None) == (creditor_id is None):
            raise ValueError("Exactly one of unit_id or creditor_id is required")
        query = self.db.query(FeeHistory)
        if unit_id is not None:
            query = query.filter(FeeHistory.unit_id == unit_id)
        else:
            query = query.filter(FeeHistory.creditor_id == creditor_id)
        return query.order_by(FeeHistory.effective_from, FeeHistory.id).all()

    def all_fee_history(self) -> list[FeeHistory]:
        return self.db.query(FeeHistory).order_by(FeeHistory.effective_from, FeeHistory.id).all()

    def add_fee_history(
        self,
        amount: Decimal,
        effective_from: str,
        effective_to: str | None = None,
        unit_id: int | None = None,
        creditor_id: int | None = None,
    ) -> FeeHistory:
        record = FeeHistory(
            unit_id=unit_id,
            creditor_id=creditor_id,
            amount=amount,
            effective_from=validate_month(effective_from),
            effective_to=validate_month(effective_to) if effective_to else None,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def find_extra_charges(self, unit_id: int | None = None) -> list[ExtraCharge]:
        """Global extra charges plus the ones scoped to unit_id (if given)."""
        query = self.db.query(ExtraCharge)
        if unit_id is None:
            query = query.filter(ExtraCharge.unit_id.is_(None))
        else:
            query = query.filter(or_(ExtraCharge.unit_id.is_(None), ExtraCharge.unit_id == unit_id))
        return query.order_by(ExtraCharge.effective_from, ExtraCharge.id).all()

    def all_extra_charges(self) -> list[ExtraCharge]:
        return self.db.query(ExtraCharge).order_by(ExtraCharge.effective_from, ExtraCharge.id).all()

    # --- allocations --------------------------------------------------------

    def find_allocations(
        self,
        transaction_id: int | None = None,
        unit_id: int | None = None,
        creditor_id: int | None = None,
        month_from: str | None = None,
        month_to: str | None = None,
        kind: AllocationKind | None = None,
    ) -> list[TransactionMonth]:
        """Allocations filtered by transaction, or by owning entity and month range.

        Month bounds only match regular-month allocations (prior-debt rows have
        no month).
        """
        query = self.db.query(TransactionMonth)
        if unit_id is not None or creditor_id is not None:
            query = query.join(Transaction, TransactionMonth.transaction_id == Transaction.id)
            if unit_id is not None:
                query = query.filter(Transaction.unit_id == unit_id)
            if creditor_id is not None:
                query = query.filter(Transaction.creditor_id == creditor_id)
        if transaction_id is not None:
            query = query.filter(TransactionMonth.transaction_id == transaction_id)
        if month_from is not None:
            query = query.filter(TransactionMonth.month >= validate_month(month_from))
        if month_to is not None:
            query = query.filter(TransactionMonth.month <= validate_month(month_to))
        if kind is not None:
            query = query.filter(TransactionMonth.kind == kind)
        return query.order_by(TransactionMonth.transaction_id, TransactionMonth.id).all()

    def create_allocation(
        self,
        transaction_id: int,
        month: str | None,
        amount: Decimal,
        extra_charge_id: int | None = None,
        kind: AllocationKind = AllocationKind.REGULAR_MONTH,
    ) -> int:
        """Insert one allocation row and return its id."""
        if kind == AllocationKind.REGULAR_MONTH:
            validate_month(month)
        elif month is not None:
            raise ValueError("Prior-debt allocations carry no month")
        allocation = TransactionMonth(
            transaction_id=transaction_id,
            kind=kind,
            month=month,
            amount=amount,
            extra_charge_id=extra_charge_id,
        )
        self.db.add(allocation)
        self.db.flush()
        return allocation.id

    def delete_allocations(self, transaction_id: int) -> int:
        """Delete every allocation of a transaction; returns the number removed."""
        count = (
            self.db.query(TransactionMonth)
            .filter(TransactionMonth.transaction_id == transaction_id)
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        return count

    def find_orphan_allocations(self) -> list[TransactionMonth]:
        """Allocations whose parent transaction no longer exists."""
        existing = select(Transaction.id)
        return (
            self.db.query(TransactionMonth)
            .filter(TransactionMonth.transaction_id.not_in(existing))
            .order_by(TransactionMonth.id)
            .all()
        )

    def delete_allocation_rows(self, allocation_ids: list[int]) -> int:
        if not allocation_ids:
            return 0
        count = (
            self.db.query(TransactionMonth)
            .filter(TransactionMonth.id.in_(allocation_ids))
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        return count

    def all_allocations(self) -> list[TransactionMonth]:
        return self.db.query(TransactionMonth).order_by(TransactionMonth.id).all()

    # --- owners -------------------------------------------------------------

    def find_owners(self, unit_id: int) -> list[Owner]:
        """Owners of a unit ordered by start_month ("since the beginning" first)."""
        owners = self.db.query(Owner).filter(Owner.unit_id == unit_id).all()
        return sorted(owners, key=lambda o: (o.start_month or "", o.id))

    def all_owners(self) -> list[Owner]:
        owners = self.db.query(Owner).all()
        return sorted(owners, key=lambda o: (o.unit_id, o.start_month or "", o.id))

    def update_owner_period(self, owner_id: int, **changes: str | None) -> Owner:
        """Set start_month and/or end_month of an owner (None clears the bound)."""
        unknown = set(changes) - _OWNER_PERIOD_FIELDS
        if unknown:
            raise ValueError(f"Unsupported owner period fields: {sorted(unknown)}")
        owner = self.get_owner(owner_id)
        for name, value in changes.items():
            setattr(owner, name, validate_month(value) if value is not None else None)
        self.db.flush()
        return owner

    # --- transactions -------------------------------------------------------

    def find_transactions(
        self,
        unit_id: int | None = None,
        creditor_id: int | None = None,
        transaction_type: TransactionType | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        unallocated_only: bool = False,
    ) -> list[Transaction]:
        query = self.db.query(Transaction)
        if unit_id is not None:
            query = query.filter(Transaction.unit_id == unit_id)
        if creditor_id is not None:
            query = query.filter(Transaction.creditor_id == creditor_id)
        if transaction_type is not None:
            query = query.filter(Transaction.type == transaction_type)
        if date_from is not None:
            query = query.filter(Transaction.transaction_date >= date_from)
        if date_to is not None:
            query = query.filter(Transaction.transaction_date <= date_to)
        if unallocated_only:
            allocated = select(TransactionMonth.transaction_id)
            query = query.filter(Transaction.id.not_in(allocated))
        return query.order_by(Transaction.transaction_date, Transaction.id).all()

    def update_transaction(self, transaction_id: int, patch: dict[str, Any]) -> Transaction:
        """Apply a field patch to a transaction.

        The amount is deliberately not patchable: changing it would break the
        allocation sum invariant without re-slicing.
        """
        unknown = set(patch) - _TRANSACTION_PATCH_FIELDS
        if unknown:
            raise ValueError(f"Unsupported transaction fields: {sorted(unknown)}")
        transaction = self.get_transaction(transaction_id)
        for name, value in patch.items():
            if name == "reference_month" and value is not None:
                validate_month(value)
            setattr(transaction, name, value)
        self.db.flush()
        return transaction

    def delete_transaction(self, transaction_id: int) -> None:
        """Delete the transaction row only; allocations are handled by the caller."""
        transaction = self.get_transaction(transaction_id)
        self.db.delete(transaction)
        self.db.flush()


__all__ = ["LedgerRepository"]
