"""Owner ORM model for residents associated with a unit over a period."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condofin.models import Base, BaseModel


class Owner(Base, BaseModel):
    """Owner of a unit for a bounded or open period.

    start_month = None means "since the beginning of records"; end_month = None
    marks the current owner. At most one owner per unit may be current.
    """

    __tablename__ = "owners"

    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    nib: Mapped[str | None] = mapped_column(String(50), nullable=True)
    start_month: Mapped[str | None] = mapped_column(String(7), nullable=True)
    end_month: Mapped[str | None] = mapped_column(String(7), nullable=True)
    previous_debt: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Debt recorded manually for the period before the ledger began",
    )

    unit: Mapped["Unit"] = relationship(  # noqa: F821
        "Unit",
        back_populates="owners",
        foreign_keys=[unit_id],
    )

    __table_args__ = (Index("idx_owner_unit_start", "unit_id", "start_month"),)

    def __repr__(self) -> str:
        return (
            f"<Owner(id={self.id}, unit_id={self.unit_id}, name={self.name!r}, "
            f"{self.start_month or 'start'}..{self.end_month or 'current'})>"
        )


__all__ = ["Owner"]
