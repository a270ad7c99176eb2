"""Debt aggregation: expected vs paid per unit/creditor per year.

Figures are built from an EntityLedger, an in-memory view of one unit or
creditor: its fee history, extra charges and the payments already bucketed
by month. Payments are the entity's month allocations; a transaction with no
allocation at all counts at the month of its date with its raw amount, so
unreconciled data still shows up in the totals. That fallback never pays down
an extra charge: only allocations carrying an extra_charge_id do.

Sign handling: units are paid by positive transactions, creditors by negative
ones. Creditor payments are reported as positive amounts.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import Session

from condofin.models import AllocationKind, ExtraCharge, FeeHistory, Transaction
from condofin.services.config import EngineConfig, load_config
from condofin.services.errors import NotFoundError
from condofin.services.fee_schedule import FeeBreakdown, FeeSchedule
from condofin.services.months import (
    format_month,
    month_of,
    month_range,
    months_of_year,
    year_of,
)
from condofin.services.owner_period import is_month_in_owner_period
from condofin.services.repository import LedgerRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

MonthFilter = Callable[[str], bool]


@dataclass
class EntityLedger:
    """Everything the aggregator needs to know about one unit or creditor."""

    entity_type: str
    entity_id: int
    label: str
    fallback_fee: Decimal | None
    has_expected: bool
    fee_history: list[FeeHistory] = field(default_factory=list)
    extra_charges: list[ExtraCharge] = field(default_factory=list)
    payments: dict[str, Decimal] = field(default_factory=dict)
    """Paid amount per month (regular allocations plus unallocated fallback)."""
    prior_debt_paid: Decimal = ZERO
    extra_payments: dict[int, Decimal] = field(default_factory=dict)

    @property
    def is_unit(self) -> bool:
        return self.entity_type == "unit"


@dataclass(frozen=True)
class MonthStatus:
    month: str
    paid: Decimal
    expected: Decimal
    base_fee: Decimal
    extras: list = field(default_factory=list)

    @property
    def is_paid(self) -> bool:
        # Months with nothing due count as paid only when something came in
        if self.expected > 0:
            return self.paid >= self.expected
        return self.paid > 0


@dataclass(frozen=True)
class YearFigures:
    """Expected, paid and debt for one year; accumulated_debt sums debts up to it."""

    year: int
    expected: Decimal
    paid: Decimal
    debt: Decimal
    accumulated_debt: Decimal = ZERO


@dataclass(frozen=True)
class UnitDebt:
    unit_id: int
    owner_id: int | None
    year: int
    expected_ytd: Decimal
    paid_ytd: Decimal
    year_debt: Decimal
    past_years_debt: Decimal
    previous_debt: Decimal
    previous_debt_paid: Decimal
    previous_debt_remaining: Decimal

    @property
    def total_debt(self) -> Decimal:
        return self.year_debt + self.past_years_debt + self.previous_debt_remaining


@dataclass(frozen=True)
class ExtraChargeBalance:
    extra_charge_id: int
    description: str
    monthly_amount: Decimal
    months: int
    total_expected: Decimal
    total_paid: Decimal
    remaining: Decimal


def _sum(values) -> Decimal:
    return sum(values, ZERO)


def _owner_period_filter(start_month: str | None, end_month: str | None) -> MonthFilter:
    def in_period(month: str) -> bool:
        return is_month_in_owner_period(month, start_month, end_month)

    return in_period


class DebtService:
    """Per-entity debt figures built on FeeSchedule and the allocation ledger."""

    def __init__(
        self,
        db_session: Session,
        fee_schedule: FeeSchedule | None = None,
        config: EngineConfig | None = None,
        as_of: date | None = None,
    ):
        """Initialize debt service.

        Args:
            db_session: SQLAlchemy database session
            fee_schedule: Fee resolver (defaults to one built from config)
            config: Engine configuration (defaults to load_config())
            as_of: Date treated as "today" (defaults to the real current date)
        """
        self.db = db_session
        self.repo = LedgerRepository(db_session)
        self.config = config if config is not None else load_config()
        self.fee_schedule = fee_schedule or FeeSchedule(self.config.default_monthly_fee)
        self._as_of = as_of

    @property
    def today(self) -> date:
        return self._as_of or date.today()

    # --- loading ------------------------------------------------------------

    def load_unit(self, unit_id: int) -> EntityLedger:
        unit = self.repo.get_unit(unit_id)
        ledger = EntityLedger(
            entity_type="unit",
            entity_id=unit.id,
            label=unit.code,
            fallback_fee=unit.monthly_fee,
            has_expected=True,
            fee_history=self.repo.find_fee_history(unit_id=unit.id),
            extra_charges=self.repo.find_extra_charges(unit_id=unit.id),
        )
        self._collect_payments(ledger, self.repo.find_transactions(unit_id=unit.id), sign=Decimal("1"))
        return ledger

    def load_creditor(self, creditor_id: int) -> EntityLedger:
        creditor = self.repo.get_creditor(creditor_id)
        ledger = EntityLedger(
            entity_type="creditor",
            entity_id=creditor.id,
            label=creditor.name,
            fallback_fee=creditor.amount_due if creditor.amount_due is not None else ZERO,
            has_expected=bool(creditor.is_fixed),
            fee_history=self.repo.find_fee_history(creditor_id=creditor.id),
        )
        self._collect_payments(
            ledger, self.repo.find_transactions(creditor_id=creditor.id), sign=Decimal("-1")
        )
        return ledger

    def load(self, entity_type: str, entity_id: int) -> EntityLedger:
        if entity_type == "unit":
            return self.load_unit(entity_id)
        if entity_type == "creditor":
            return self.load_creditor(entity_id)
        raise ValueError(f"Unknown entity type: {entity_type!r}")

    def _collect_payments(
        self, ledger: EntityLedger, transactions: list[Transaction], sign: Decimal
    ) -> None:
        payments: dict[str, Decimal] = defaultdict(lambda: ZERO)
        extra_payments: dict[int, Decimal] = defaultdict(lambda: ZERO)

        for transaction in transactions:
            if Decimal(transaction.amount) * sign <= 0:
                continue
            allocations = transaction.month_allocations
            if not allocations:
                payments[month_of(transaction.transaction_date)] += Decimal(transaction.amount) * sign
                continue
            for allocation in allocations:
                amount = Decimal(allocation.amount) * sign
                if allocation.kind == AllocationKind.PRIOR_DEBT:
                    ledger.prior_debt_paid += amount
                    continue
                payments[allocation.month] += amount
                if allocation.extra_charge_id is not None:
                    extra_payments[allocation.extra_charge_id] += amount

        ledger.payments = dict(payments)
        ledger.extra_payments = dict(extra_payments)

    # --- per-month ----------------------------------------------------------

    def expected_for_month(self, ledger: EntityLedger, month: str) -> FeeBreakdown:
        """Expected charge for a month; ad hoc creditors owe nothing."""
        if not ledger.has_expected:
            return FeeBreakdown(base_fee=ZERO, extras=[], total=ZERO)
        return self.fee_schedule.total_fee_for_month(
            ledger.fee_history,
            ledger.extra_charges if ledger.is_unit else [],
            month,
            ledger.fallback_fee,
            ledger.entity_id if ledger.is_unit else None,
        )

    def monthly_status(self, ledger: EntityLedger, year: int) -> list[MonthStatus]:
        """Paid vs expected for each of the twelve months of a year."""
        statuses = []
        for month in months_of_year(year):
            breakdown = self.expected_for_month(ledger, month)
            statuses.append(
                MonthStatus(
                    month=month,
                    paid=ledger.payments.get(month, ZERO),
                    expected=breakdown.total,
                    base_fee=breakdown.base_fee,
                    extras=breakdown.extras,
                )
            )
        return statuses

    # --- per-year -----------------------------------------------------------

    def due_months(self, year: int) -> list[str]:
        """Months of a year already due as of today (none for future years)."""
        today = self.today
        if year < today.year:
            return months_of_year(year)
        if year == today.year:
            return months_of_year(year)[: today.month]
        return []

    def year_figures(
        self,
        ledger: EntityLedger,
        year: int,
        since: str | None = None,
        month_filter: MonthFilter | None = None,
    ) -> YearFigures:
        """Expected (months due so far), paid and floored debt for one year.

        Args:
            ledger: Entity to compute for
            year: Calendar year
            since: First month counted as expected (earlier months owe nothing)
            month_filter: Restricts both expected and paid months (owner periods)
        """
        expected_months = [m for m in self.due_months(year) if since is None or m >= since]
        paid_months = months_of_year(year)
        if month_filter is not None:
            expected_months = [m for m in expected_months if month_filter(m)]
            paid_months = [m for m in paid_months if month_filter(m)]

        expected = _sum(self.expected_for_month(ledger, m).total for m in expected_months)
        paid = _sum(ledger.payments.get(m, ZERO) for m in paid_months)
        return YearFigures(year=year, expected=expected, paid=paid, debt=max(ZERO, expected - paid))

    def start_month(self, ledger: EntityLedger) -> str | None:
        """Earliest month with any ledger activity: payments or a fee record."""
        candidates = list(ledger.payments)
        candidates.extend(record.effective_from for record in ledger.fee_history)
        return min(candidates) if candidates else None

    def counting_start(self, year: int, start: str | None) -> str | None:
        """First expected month of a year given the ledger start month.

        Past years begin at the start month. The current year always counts
        from January, so year-to-date figures agree across every report.
        """
        if year >= self.today.year:
            return None
        return start

    def yearly_history(self, ledger: EntityLedger) -> list[YearFigures]:
        """Year-by-year figures from the first active year to the current one."""
        start = self.start_month(ledger)
        if start is None:
            return []

        history = []
        accumulated = ZERO
        for year in range(year_of(start), self.today.year + 1):
            figures = self.year_figures(ledger, year, since=self.counting_start(year, start))
            accumulated += figures.debt
            history.append(
                YearFigures(
                    year=year,
                    expected=figures.expected,
                    paid=figures.paid,
                    debt=figures.debt,
                    accumulated_debt=accumulated,
                )
            )
        return history

    def past_years_debt(
        self,
        ledger: EntityLedger,
        year: int,
        since: str | None = None,
        month_filter: MonthFilter | None = None,
    ) -> Decimal:
        """Sum of max(0, expected - paid) over every year before `year`.

        Each year is floored independently, so a surplus year never offsets a
        deficit year. Counting starts at `since` (defaults to the ledger's
        first active month).
        """
        start = since or self.start_month(ledger)
        if start is None:
            return ZERO
        total = ZERO
        for past_year in range(year_of(start), year):
            total += self.year_figures(
                ledger, past_year, since=self.counting_start(past_year, start), month_filter=month_filter
            ).debt
        return total

    # --- unit-level reports -------------------------------------------------

    def unit_debt(self, unit_id: int, owner_id: int | None = None) -> UnitDebt:
        """Debt position of a unit, optionally restricted to one owner's period.

        previous_debt is the manually recorded pre-ledger debt (the owner's, or
        the sum over all owners). It is reported next to the computed
        past-years debt and reduced only by prior-debt allocations.

        Raises:
            NotFoundError: If the unit does not exist, or the owner does not
                exist or belongs to another unit
        """
        ledger = self.load_unit(unit_id)
        owners = self.repo.find_owners(unit_id)

        month_filter = None
        since = self.start_month(ledger)
        if owner_id is not None:
            owner = self.repo.get_owner(owner_id)
            if owner.unit_id != unit_id:
                raise NotFoundError("Owner", owner_id)
            month_filter = _owner_period_filter(owner.start_month, owner.end_month)
            if owner.start_month:
                since = owner.start_month
            previous_debt = Decimal(owner.previous_debt or 0)
        else:
            previous_debt = _sum(Decimal(o.previous_debt or 0) for o in owners)

        year = self.today.year
        current = self.year_figures(ledger, year, month_filter=month_filter)
        past = self.past_years_debt(ledger, year, since=since, month_filter=month_filter)

        return UnitDebt(
            unit_id=unit_id,
            owner_id=owner_id,
            year=year,
            expected_ytd=current.expected,
            paid_ytd=current.paid,
            year_debt=current.debt,
            past_years_debt=past,
            previous_debt=previous_debt,
            previous_debt_paid=ledger.prior_debt_paid,
            previous_debt_remaining=max(ZERO, previous_debt - ledger.prior_debt_paid),
        )

    def outstanding_extras(self, unit_id: int) -> list[ExtraChargeBalance]:
        """Balance of every extra charge the unit owes, up to the current month.

        Only allocations tagged with the extra charge count as paid.
        """
        ledger = self.load_unit(unit_id)
        current_month = format_month(self.today.year, self.today.month)

        balances = []
        for charge in ledger.extra_charges:
            if charge.effective_from > current_month:
                continue
            last = min(charge.effective_to or current_month, current_month)
            months = month_range(charge.effective_from, last)
            monthly = Decimal(charge.amount)
            expected = monthly * len(months)
            paid = ledger.extra_payments.get(charge.id, ZERO)
            balances.append(
                ExtraChargeBalance(
                    extra_charge_id=charge.id,
                    description=charge.description,
                    monthly_amount=monthly,
                    months=len(months),
                    total_expected=expected,
                    total_paid=paid,
                    remaining=max(ZERO, expected - paid),
                )
            )
        return balances


__all__ = [
    "DebtService",
    "EntityLedger",
    "MonthStatus",
    "YearFigures",
    "UnitDebt",
    "ExtraChargeBalance",
]
