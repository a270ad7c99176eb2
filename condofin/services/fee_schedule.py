"""Fee resolution for units and creditors.

Resolves the monthly fee owed for any month from a fee history plus the
extra charges layered on top of it. Pure computation: callers load the
records, this module never touches the database.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from condofin.models import ExtraCharge, FeeHistory
from condofin.services.months import is_month_in_range, validate_month

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtraLine:
    """One extra charge contributing to a month's expected amount."""

    id: int | None
    description: str
    amount: Decimal


@dataclass(frozen=True)
class FeeBreakdown:
    """Expected amount for one month, itemised for receipts."""

    base_fee: Decimal
    extras: list[ExtraLine] = field(default_factory=list)
    total: Decimal = Decimal("0")


class FeeSchedule:
    """Fee resolution rules.

    The default fee is injected once (from configuration) and only used when a
    caller has no entity-level fallback of its own.
    """

    def __init__(self, default_fee: Decimal = Decimal("0")):
        self.default_fee = Decimal(default_fee)

    def fee_for_month(
        self,
        history: Iterable[FeeHistory],
        month: str,
        fallback: Decimal | None = None,
    ) -> Decimal:
        """Fee for a month from the most recent record covering it.

        Records are scanned in ascending effective_from order; the last one
        starting on or before the month (and not closed before it) wins. With
        no such record the fallback (or the configured default) applies.

        Args:
            history: FeeHistory records of one unit or creditor
            month: Month to resolve ("YYYY-MM")
            fallback: Entity-level fallback fee (Unit.monthly_fee, Creditor.amount_due)

        Returns:
            Applicable fee as Decimal
        """
        validate_month(month)
        result = None
        seen_from = set()
        for record in sorted(history, key=lambda r: r.effective_from):
            if record.effective_from in seen_from:
                logger.warning(
                    "Fee history has two records starting %s (record id=%s); later one wins",
                    record.effective_from,
                    record.id,
                )
            seen_from.add(record.effective_from)
            if record.effective_from > month:
                break
            if is_month_in_range(month, record.effective_from, record.effective_to):
                result = record

        if result is None:
            return self._fallback(fallback)
        return Decimal(result.amount)

    def extras_for_month(
        self,
        extra_charges: Iterable[ExtraCharge],
        month: str,
        unit_id: int | None = None,
    ) -> list[ExtraCharge]:
        """Extra charges active in a month: global ones plus those scoped to unit_id."""
        validate_month(month)
        return [
            charge
            for charge in extra_charges
            if is_month_in_range(month, charge.effective_from, charge.effective_to)
            and (charge.unit_id is None or charge.unit_id == unit_id)
        ]

    def total_fee_for_month(
        self,
        history: Iterable[FeeHistory],
        extra_charges: Iterable[ExtraCharge],
        month: str,
        fallback: Decimal | None = None,
        unit_id: int | None = None,
    ) -> FeeBreakdown:
        """Base fee plus every active extra charge for the month."""
        base_fee = self.fee_for_month(history, month, fallback)
        extras = [
            ExtraLine(id=charge.id, description=charge.description, amount=Decimal(charge.amount))
            for charge in self.extras_for_month(extra_charges, month, unit_id)
        ]
        total = base_fee + sum((e.amount for e in extras), Decimal("0"))
        return FeeBreakdown(base_fee=base_fee, extras=extras, total=total)

    def _fallback(self, fallback: Decimal | None) -> Decimal:
        if fallback is None:
            return self.default_fee
        return Decimal(fallback)


__all__ = ["FeeSchedule", "FeeBreakdown", "ExtraLine"]
