"""Unit ORM model for condominium fractions (apartments, garages, common areas)."""

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condofin.models import Base, BaseModel


class Unit(Base, BaseModel):
    """Model representing a condominium fraction.

    The monthly_fee column is the fallback fee used for any month that no
    FeeHistory record covers. Owners and fee history hang off the unit.
    """

    __tablename__ = "units"

    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        index=True,
        comment="Fraction code (e.g., '1A', 'Garagem')",
    )
    floor: Mapped[int | None] = mapped_column(
        nullable=True,
        comment="Floor number, negative for basements",
    )
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    monthly_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Fallback monthly fee when no fee history record applies",
    )
    previous_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Opening credit carried from before the records began",
    )

    # Contact fields (copied down to owners at migration time)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    nib: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Relationships
    owners: Mapped[list["Owner"]] = relationship(  # noqa: F821
        "Owner",
        back_populates="unit",
        order_by="Owner.start_month",
    )
    fee_history: Mapped[list["FeeHistory"]] = relationship(  # noqa: F821
        "FeeHistory",
        back_populates="unit",
        order_by="FeeHistory.effective_from",
    )

    def __repr__(self) -> str:
        return f"<Unit(id={self.id}, code={self.code!r}, monthly_fee={self.monthly_fee})>"


__all__ = ["Unit"]
