"""Extra charge ORM model for charges layered on top of the base fee."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from condofin.models import Base, BaseModel


class ExtraCharge(Base, BaseModel):
    """Additional recurring or time-bounded monthly charge.

    unit_id = None makes the charge global (every unit owes it). Unlike fee
    history, several extra charges may be active in the same month; they add up.
    """

    __tablename__ = "extra_charges"

    unit_id: Mapped[int | None] = mapped_column(
        ForeignKey("units.id"),
        nullable=True,
        index=True,
        comment="Scoped unit, NULL = applies to all units",
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Amount per month",
    )
    effective_from: Mapped[str] = mapped_column(String(7), nullable=False)
    effective_to: Mapped[str | None] = mapped_column(String(7), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ExtraCharge(id={self.id}, unit_id={self.unit_id}, description={self.description!r}, "
            f"amount={self.amount}, {self.effective_from}..{self.effective_to or 'open'})>"
        )


__all__ = ["ExtraCharge"]
