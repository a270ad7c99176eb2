"""Creditor ORM model for suppliers and utilities paid by the condominium."""

from decimal import Decimal

from sqlalchemy import Boolean, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condofin.models import Base, BaseModel


class Creditor(Base, BaseModel):
    """Model representing an external payee.

    Symmetric to Unit on the expense side: amount_due is the fallback fee and
    FeeHistory records describe how the recurring amount changed over time.
    Only creditors flagged is_fixed have an expected monthly amount.
    """

    __tablename__ = "creditors"

    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="other",
        comment="Expense category (e.g., 'water', 'cleaning', 'insurance')",
    )
    amount_due: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Fallback monthly amount when no fee history record applies",
    )
    is_fixed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Recurring fixed expense; ad hoc creditors have no expected amount",
    )

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    nib: Mapped[str | None] = mapped_column(String(50), nullable=True)

    fee_history: Mapped[list["FeeHistory"]] = relationship(  # noqa: F821
        "FeeHistory",
        back_populates="creditor",
        order_by="FeeHistory.effective_from",
    )

    def __repr__(self) -> str:
        return f"<Creditor(id={self.id}, name={self.name!r}, is_fixed={self.is_fixed})>"


__all__ = ["Creditor"]
