"""Month allocation ORM model linking a transaction to the months it pays for."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condofin.models import Base, BaseModel


class AllocationKind(str, Enum):
    """What an allocation pays for."""

    REGULAR_MONTH = "regular_month"
    PRIOR_DEBT = "prior_debt"


@dataclass(frozen=True)
class RegularMonth:
    """Allocation target: a calendar month's expected charge."""

    month: str


@dataclass(frozen=True)
class PriorDebtCarryover:
    """Allocation target: debt recorded before the ledger began."""


AllocationTarget = RegularMonth | PriorDebtCarryover


class TransactionMonth(Base, BaseModel):
    """Allocation of (part of) a transaction's amount to a target.

    Amounts carry the sign of the parent transaction. For every reconciled
    transaction the allocation amounts sum to the transaction amount.
    """

    __tablename__ = "transaction_months"

    # No ondelete cascade: deleting a transaction leaves orphans to be purged
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id"),
        nullable=False,
        index=True,
    )
    kind: Mapped[AllocationKind] = mapped_column(
        SQLEnum(AllocationKind),
        nullable=False,
        default=AllocationKind.REGULAR_MONTH,
    )
    month: Mapped[str | None] = mapped_column(
        String(7),
        nullable=True,
        index=True,
        comment="Allocated month (YYYY-MM), NULL for prior-debt allocations",
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    extra_charge_id: Mapped[int | None] = mapped_column(
        ForeignKey("extra_charges.id"),
        nullable=True,
        index=True,
        comment="Set when the allocation pays down an extra charge",
    )

    transaction: Mapped["Transaction"] = relationship(  # noqa: F821
        "Transaction",
        back_populates="month_allocations",
        foreign_keys=[transaction_id],
    )

    __table_args__ = (Index("idx_transaction_month_tx_month", "transaction_id", "month"),)

    @property
    def target(self) -> AllocationTarget:
        if self.kind == AllocationKind.PRIOR_DEBT:
            return PriorDebtCarryover()
        return RegularMonth(self.month)

    @property
    def is_regular(self) -> bool:
        return self.kind != AllocationKind.PRIOR_DEBT

    def __repr__(self) -> str:
        return (
            f"<TransactionMonth(id={self.id}, transaction_id={self.transaction_id}, "
            f"target={self.target}, amount={self.amount}, extra_charge_id={self.extra_charge_id})>"
        )


__all__ = [
    "TransactionMonth",
    "AllocationKind",
    "AllocationTarget",
    "RegularMonth",
    "PriorDebtCarryover",
]
