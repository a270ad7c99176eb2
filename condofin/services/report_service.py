"""Report assembly on top of the debt aggregator.

Batch reports (overview, debt summary) never fail as a whole because one
entity is broken: per-entity errors are collected next to the partial
results, and entities with open ledger violations carry flags so the
presentation layer can mark them.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from condofin.models import AllocationKind, Unit
from condofin.services.config import EngineConfig, load_config
from condofin.services.debt_service import (
    ZERO,
    DebtService,
    EntityLedger,
    ExtraChargeBalance,
    MonthStatus,
    UnitDebt,
    YearFigures,
)
from condofin.services.errors import CondoError
from condofin.services.fee_schedule import FeeSchedule
from condofin.services.months import month_of, year_of
from condofin.services.owner_period import current_owner
from condofin.services.repository import LedgerRepository
from condofin.services.validation_service import ValidationService, Violation, violations_by_entity

logger = logging.getLogger(__name__)

SAVINGS_CATEGORY = "savings"


@dataclass(frozen=True)
class EntityError:
    """Failure computing one entity inside a batch report."""

    entity_type: str
    entity_id: int
    message: str


@dataclass
class EntityOverview:
    entity_type: str
    id: int
    code: str
    name: str
    months: list[MonthStatus]
    total_paid: Decimal
    total_expected: Decimal
    year_debt: Decimal
    past_years_debt: Decimal
    flags: list[Violation] = field(default_factory=list)

    @property
    def total_debt(self) -> Decimal:
        return self.year_debt + self.past_years_debt


@dataclass
class OverviewTotals:
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    total_debt: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses


@dataclass
class OverviewReport:
    year: int
    units: list[EntityOverview] = field(default_factory=list)
    creditors: list[EntityOverview] = field(default_factory=list)
    totals: OverviewTotals = field(default_factory=OverviewTotals)
    errors: list[EntityError] = field(default_factory=list)


@dataclass
class PaymentHistory:
    entity_type: str
    entity_id: int
    payments: dict[str, Decimal] = field(default_factory=dict)
    expected: dict[str, Decimal] = field(default_factory=dict)
    yearly: list[YearFigures] = field(default_factory=list)


@dataclass
class MonthlySummaryRow:
    month: str
    income: Decimal = ZERO
    expenses: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses


@dataclass
class UnitDebtRow:
    id: int
    code: str
    name: str
    previous: YearFigures
    years: list[YearFigures]
    flags: list[Violation] = field(default_factory=list)

    @property
    def total_expected(self) -> Decimal:
        return self.previous.expected + sum((y.expected for y in self.years), ZERO)

    @property
    def total_paid(self) -> Decimal:
        return self.previous.paid + sum((y.paid for y in self.years), ZERO)

    @property
    def total_debt(self) -> Decimal:
        return self.previous.debt + sum((y.debt for y in self.years), ZERO)


@dataclass
class DebtSummary:
    start_year: int
    end_year: int
    units: list[UnitDebtRow] = field(default_factory=list)
    year_totals: dict[int, YearFigures] = field(default_factory=dict)
    base_fees: dict[int, Decimal] = field(default_factory=dict)
    extra_charge_totals: dict[int, dict[int, Decimal]] = field(default_factory=dict)
    errors: list[EntityError] = field(default_factory=list)


def _display_name(unit: Unit) -> str:
    owner = current_owner(unit.owners)
    if owner is not None:
        return owner.name
    return unit.owners[0].name if unit.owners else unit.code


class ReportService:
    """Read-side facade for overview, monthly and debt reports."""

    def __init__(
        self,
        db_session: Session,
        fee_schedule: FeeSchedule | None = None,
        config: EngineConfig | None = None,
        as_of: date | None = None,
    ):
        """Initialize report service.

        Args:
            db_session: SQLAlchemy database session
            fee_schedule: Fee resolver shared with the debt aggregator
            config: Engine configuration (defaults to load_config())
            as_of: Date treated as "today" (defaults to the real current date)
        """
        self.db = db_session
        self.repo = LedgerRepository(db_session)
        self.config = config if config is not None else load_config()
        self.debts = DebtService(db_session, fee_schedule, self.config, as_of)

    @property
    def today(self) -> date:
        return self.debts.today

    def _flags(self) -> dict[tuple[str, int], list[Violation]]:
        violations = ValidationService(self.db, self.config.allocation_tolerance).run()
        return violations_by_entity(violations)

    # --- overview -----------------------------------------------------------

    def _entity_overview(self, ledger: EntityLedger, year: int, code: str, name: str) -> EntityOverview:
        months = self.debts.monthly_status(ledger, year)
        figures = self.debts.year_figures(ledger, year)
        return EntityOverview(
            entity_type=ledger.entity_type,
            id=ledger.entity_id,
            code=code,
            name=name,
            months=months,
            total_paid=figures.paid,
            total_expected=figures.expected,
            year_debt=figures.debt,
            past_years_debt=self.debts.past_years_debt(ledger, year),
        )

    def get_overview(self, year: int) -> OverviewReport:
        """Income and expense grid for a year, one row per unit and creditor.

        Entities that fail to compute are listed in report.errors and left
        out of the rows and totals.
        """
        report = OverviewReport(year=year)
        flags = self._flags()

        for unit in self.repo.list_units():
            try:
                row = self._entity_overview(self.debts.load_unit(unit.id), year, unit.code, _display_name(unit))
            except (CondoError, ValueError) as e:
                logger.error("Overview failed for unit %s: %s", unit.code, e, exc_info=True)
                report.errors.append(EntityError("unit", unit.id, str(e)))
                continue
            row.flags = flags.get(("unit", unit.id), [])
            report.units.append(row)
            report.totals.income += row.total_paid
            report.totals.total_debt += row.total_debt

        for creditor in self.repo.list_creditors():
            try:
                row = self._entity_overview(
                    self.debts.load_creditor(creditor.id), year, creditor.name, creditor.name
                )
            except (CondoError, ValueError) as e:
                logger.error("Overview failed for creditor %s: %s", creditor.name, e, exc_info=True)
                report.errors.append(EntityError("creditor", creditor.id, str(e)))
                continue
            row.flags = flags.get(("creditor", creditor.id), [])
            report.creditors.append(row)
            report.totals.expenses += row.total_paid

        logger.info(
            "Overview %d: %d units, %d creditors, %d errors",
            year,
            len(report.units),
            len(report.creditors),
            len(report.errors),
        )
        return report

    # --- single entity ------------------------------------------------------

    def _load_entity(self, unit_id: int | None, creditor_id: int | None) -> EntityLedger:
        if (unit_id is None) == (creditor_id is None):
            raise ValueError("Exactly one of unit_id or creditor_id is required")
        if unit_id is not None:
            return self.debts.load_unit(unit_id)
        return self.debts.load_creditor(creditor_id)

    def get_monthly_status(
        self, year: int, unit_id: int | None = None, creditor_id: int | None = None
    ) -> list[MonthStatus]:
        """Twelve months of paid/expected/is_paid for one unit or creditor."""
        return self.debts.monthly_status(self._load_entity(unit_id, creditor_id), year)

    def get_unit_debt(self, unit_id: int, owner_id: int | None = None) -> UnitDebt:
        return self.debts.unit_debt(unit_id, owner_id)

    def get_outstanding_extras(self, unit_id: int) -> list[ExtraChargeBalance]:
        return self.debts.outstanding_extras(unit_id)

    def get_payment_history(
        self, unit_id: int | None = None, creditor_id: int | None = None
    ) -> PaymentHistory:
        """Monthly payments, expected amounts since the first active month, and yearly debt.

        The current year is always expected from January.
        """
        ledger = self._load_entity(unit_id, creditor_id)
        history = PaymentHistory(
            entity_type=ledger.entity_type,
            entity_id=ledger.entity_id,
            payments=dict(sorted(ledger.payments.items())),
        )
        start = self.debts.start_month(ledger)
        if start is None:
            return history

        for year in range(year_of(start), self.today.year + 1):
            since = self.debts.counting_start(year, start)
            for month in self.debts.due_months(year):
                if since is None or month >= since:
                    history.expected[month] = self.debts.expected_for_month(ledger, month).total
        history.yearly = self.debts.yearly_history(ledger)
        return history

    # --- ledger-wide --------------------------------------------------------

    def get_monthly_summary(self) -> list[MonthlySummaryRow]:
        """Income and expenses per month across the whole ledger.

        Allocations count at their month (prior-debt allocations are skipped);
        unallocated transactions count at the month of their date. Unallocated
        savings movements are internal and left out, as are unassigned copies
        of an assigned expense on the same day for the same amount.
        """
        rows: dict[str, MonthlySummaryRow] = {}

        def row(month: str) -> MonthlySummaryRow:
            if month not in rows:
                rows[month] = MonthlySummaryRow(month=month)
            return rows[month]

        transactions = self.repo.find_transactions()
        assigned_expenses = {
            (t.transaction_date, Decimal(t.amount))
            for t in transactions
            if t.amount < 0 and (t.creditor_id is not None or t.category)
        }

        for transaction in transactions:
            amount = Decimal(transaction.amount)
            allocations = transaction.month_allocations
            if allocations:
                for allocation in allocations:
                    if allocation.kind == AllocationKind.PRIOR_DEBT:
                        continue
                    if amount > 0:
                        row(allocation.month).income += Decimal(allocation.amount)
                    else:
                        row(allocation.month).expenses += abs(Decimal(allocation.amount))
                continue

            month = month_of(transaction.transaction_date)
            if amount > 0:
                row(month).income += amount
            elif amount < 0:
                if transaction.category == SAVINGS_CATEGORY:
                    continue
                unassigned = transaction.creditor_id is None and not transaction.category
                if unassigned and (transaction.transaction_date, amount) in assigned_expenses:
                    logger.debug("Skipping unassigned duplicate expense %d", transaction.id)
                    continue
                row(month).expenses += abs(amount)

        return [rows[m] for m in sorted(rows)]

    def get_debt_summary(self, start_year: int | None = None, end_year: int | None = None) -> DebtSummary:
        """Per-unit debt table by year, with a column for pre-ledger balances.

        The "previous" column is the manual opening position: the owners'
        recorded previous debt minus the unit's previous balance credit.
        """
        end_year = end_year or self.today.year
        units = self.repo.list_units()
        flags = self._flags()

        ledgers: dict[int, EntityLedger] = {}
        errors: list[EntityError] = []
        for unit in units:
            try:
                ledgers[unit.id] = self.debts.load_unit(unit.id)
            except (CondoError, ValueError) as e:
                logger.error("Debt summary failed for unit %s: %s", unit.code, e, exc_info=True)
                errors.append(EntityError("unit", unit.id, str(e)))

        if start_year is None:
            starts = [self.debts.start_month(ledger) for ledger in ledgers.values()]
            starts = [s for s in starts if s]
            start_year = year_of(min(starts)) if starts else end_year
        if start_year > end_year:
            raise ValueError(f"start_year {start_year} is after end_year {end_year}")

        years = list(range(start_year, end_year + 1))
        summary = DebtSummary(start_year=start_year, end_year=end_year, errors=errors)
        summary.base_fees = {year: ZERO for year in years}
        extra_totals: dict[int, dict[int, Decimal]] = defaultdict(lambda: {year: ZERO for year in years})

        for unit in units:
            ledger = ledgers.get(unit.id)
            if ledger is None:
                continue
            try:
                unit_years = []
                for year in years:
                    unit_years.append(self.debts.year_figures(ledger, year))
                    for month in self.debts.due_months(year):
                        breakdown = self.debts.expected_for_month(ledger, month)
                        summary.base_fees[year] += breakdown.base_fee
                        for extra in breakdown.extras:
                            if extra.id is not None:
                                extra_totals[extra.id][year] += extra.amount
            except (CondoError, ValueError) as e:
                logger.error("Debt summary failed for unit %s: %s", unit.code, e, exc_info=True)
                summary.errors.append(EntityError("unit", unit.id, str(e)))
                continue

            manual = sum((Decimal(o.previous_debt or 0) for o in unit.owners), ZERO) - Decimal(
                unit.previous_balance or 0
            )
            previous = YearFigures(
                year=start_year - 1,
                expected=max(ZERO, manual),
                paid=max(ZERO, -manual),
                debt=max(ZERO, manual),
            )
            summary.units.append(
                UnitDebtRow(
                    id=unit.id,
                    code=unit.code,
                    name=_display_name(unit),
                    previous=previous,
                    years=unit_years,
                    flags=flags.get(("unit", unit.id), []),
                )
            )

        for year in years:
            figures = [next(y for y in row.years if y.year == year) for row in summary.units]
            summary.year_totals[year] = YearFigures(
                year=year,
                expected=sum((f.expected for f in figures), ZERO),
                paid=sum((f.paid for f in figures), ZERO),
                debt=sum((f.debt for f in figures), ZERO),
            )
        summary.extra_charge_totals = {
            charge_id: totals for charge_id, totals in extra_totals.items() if any(v > 0 for v in totals.values())
        }
        return summary


__all__ = [
    "ReportService",
    "EntityError",
    "EntityOverview",
    "OverviewTotals",
    "OverviewReport",
    "PaymentHistory",
    "MonthlySummaryRow",
    "UnitDebtRow",
    "DebtSummary",
]
