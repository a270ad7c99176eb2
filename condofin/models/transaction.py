"""Transaction ORM model for imported bank-ledger entries."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condofin.models import Base, BaseModel


class TransactionType(str, Enum):
    """Kind of bank movement."""

    PAYMENT = "payment"
    EXPENSE = "expense"
    FEE = "fee"
    TRANSFER = "transfer"


class Transaction(Base, BaseModel):
    """Model representing one line of the bank statement.

    Sign convention: positive amounts are income (unit payments), negative
    amounts are money leaving the account (expenses, bank fees, transfers).

    A transaction is linked to a Unit or to a Creditor by convention, not by
    constraint. Month allocations (TransactionMonth) record which months the
    amount actually pays for; they are not deleted with the transaction.
    """

    __tablename__ = "transactions"

    transaction_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="Date of transaction",
    )
    value_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Signed amount: positive = income, negative = outflow",
    )
    balance: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Account balance snapshot after this movement",
    )
    type: Mapped[TransactionType] = mapped_column(
        SQLEnum(TransactionType),
        nullable=False,
        default=TransactionType.PAYMENT,
    )
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_month: Mapped[str | None] = mapped_column(
        String(7),
        nullable=True,
        comment="Legacy single-month label (YYYY-MM)",
    )

    unit_id: Mapped[int | None] = mapped_column(
        ForeignKey("units.id"),
        nullable=True,
        index=True,
    )
    creditor_id: Mapped[int | None] = mapped_column(
        ForeignKey("creditors.id"),
        nullable=True,
        index=True,
    )

    # Allocations survive their transaction; the ledger purges orphans explicitly
    month_allocations: Mapped[list["TransactionMonth"]] = relationship(  # noqa: F821
        "TransactionMonth",
        back_populates="transaction",
        passive_deletes="all",
    )

    __table_args__ = (
        Index("idx_transaction_unit_date", "unit_id", "transaction_date"),
        Index("idx_transaction_creditor_date", "creditor_id", "transaction_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, date={self.transaction_date}, amount={self.amount}, "
            f"type={self.type}, unit_id={self.unit_id}, creditor_id={self.creditor_id})>"
        )


__all__ = ["Transaction", "TransactionType"]
