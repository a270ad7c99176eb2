"""Fee history ORM model for time-varying unit and creditor fees."""

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condofin.models import Base, BaseModel


class FeeHistory(Base, BaseModel):
    """A fee period: the amount owed per month between two "YYYY-MM" months.

    Belongs to exactly one Unit or one Creditor. effective_to = None means the
    record is open-ended (the current fee). Periods of the same entity must
    not overlap; the validation pass reports any that do.
    """

    __tablename__ = "fee_history"

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
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Monthly fee amount",
    )
    effective_from: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="First month the fee applies (YYYY-MM)",
    )
    effective_to: Mapped[str | None] = mapped_column(
        String(7),
        nullable=True,
        comment="Last month the fee applies (YYYY-MM), NULL = ongoing",
    )

    unit: Mapped["Unit | None"] = relationship(  # noqa: F821
        "Unit",
        back_populates="fee_history",
        foreign_keys=[unit_id],
    )
    creditor: Mapped["Creditor | None"] = relationship(  # noqa: F821
        "Creditor",
        back_populates="fee_history",
        foreign_keys=[creditor_id],
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_fee_history_amount_non_negative"),
        Index("idx_fee_history_unit_from", "unit_id", "effective_from"),
        Index("idx_fee_history_creditor_from", "creditor_id", "effective_from"),
    )

    def __repr__(self) -> str:
        return (
            f"<FeeHistory(id={self.id}, unit_id={self.unit_id}, creditor_id={self.creditor_id}, "
            f"amount={self.amount}, {self.effective_from}..{self.effective_to or 'open'})>"
        )


__all__ = ["FeeHistory"]
