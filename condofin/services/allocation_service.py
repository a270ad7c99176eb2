"""Allocation ledger: distributing transactions across the months they pay for.

Maintains the invariant that a transaction's allocations sum to its amount.
Every rewrite deletes the existing allocations and creates the new set inside
one database transaction, so re-slicing with the same inputs is idempotent and
readers never see a half-written allocation set.

Allocation paths:
- single month: the whole amount to one month (reference month or date month)
- capped split: consume the amount month by month, each capped at that
  month's fee, the last month absorbing whatever remains
- lump sum: derive the month count from the fee at the reference month, then
  capped split; small or fractional counts need manual review
- explicit lines: caller-provided (month | prior debt, amount) pairs
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from condofin.models import (
    AllocationKind,
    FeeHistory,
    PriorDebtCarryover,
    RegularMonth,
    Transaction,
    TransactionMonth,
    TransactionType,
)
from condofin.models.transaction_month import AllocationTarget
from condofin.services.audit_service import AuditService
from condofin.services.config import EngineConfig, load_config
from condofin.services.errors import AmbiguousLumpSumError, InvariantViolationError
from condofin.services.fee_schedule import FeeSchedule
from condofin.services.months import add_months, month_of, months_of_year, parse_month, validate_month
from condofin.services.repository import LedgerRepository
from condofin.services.validation_service import Severity, Violation, ViolationKind

logger = logging.getLogger(__name__)

LUMPSUM_BATCH_MIN_AMOUNT = Decimal("100")


@dataclass(frozen=True)
class AllocationLine:
    """Requested allocation: a target and the (signed) amount paid towards it."""

    target: AllocationTarget
    amount: Decimal
    extra_charge_id: int | None = None


@dataclass(frozen=True)
class LumpSumPlan:
    """Month coverage derived for a lump-sum payment."""

    transaction_id: int | None
    amount: Decimal
    reference_month: str
    monthly_fee: Decimal
    ratio: Decimal
    months_covered: int
    months: list[str] = field(default_factory=list)


@dataclass
class AllocationBatchResult:
    """Outcome of a batch allocation pass."""

    created: int = 0
    skipped: list[int] = field(default_factory=list)
    needs_review: list[AmbiguousLumpSumError] = field(default_factory=list)
    """Lump sums left untouched because their month count is ambiguous"""


def plan_capped_split(
    amount: Decimal,
    months: list[str],
    per_month_amount: Callable[[str], Decimal],
) -> list[tuple[str, Decimal]]:
    """Consume amount across months in order, capping each month.

    Each month receives min(remaining, cap(month)); the last month in the list
    receives everything still remaining. Consumption stops as soon as the
    amount is exhausted, so later months may get nothing. The sign of the
    amount is carried onto every portion.

    Args:
        amount: Transaction amount (signed)
        months: Ordered, distinct "YYYY-MM" months
        per_month_amount: Cap for a month (typically the fee for that month)

    Returns:
        List of (month, signed amount) pairs summing exactly to amount
    """
    if not months:
        raise ValueError("At least one month is required to split a transaction")
    for month in months:
        validate_month(month)
    if any(a >= b for a, b in zip(months, months[1:])):
        raise ValueError(f"Months must be distinct and in chronological order: {months}")

    amount = Decimal(amount)
    sign = Decimal("-1") if amount < 0 else Decimal("1")
    remaining = abs(amount)
    portions = []

    last_index = len(months) - 1
    for index, month in enumerate(months):
        if remaining <= 0:
            break
        if index == last_index:
            portion = remaining
        else:
            portion = min(remaining, abs(Decimal(per_month_amount(month))))
        if portion > 0:
            portions.append((month, portion * sign))
            remaining -= portion

    return portions


def lump_sum_months(reference_month: str, months_covered: int) -> list[str]:
    """Months a lump sum pays for.

    Exactly twelve months cover the calendar year of the reference month. More
    than twelve cover whole years from January of that year, then the leading
    months of the following year. Fewer run consecutively from the reference month.
    """
    year, _ = parse_month(reference_month)
    if months_covered == 12:
        return months_of_year(year)
    if months_covered > 12:
        full_years, extra_months = divmod(months_covered, 12)
        months = []
        for offset in range(full_years):
            months.extend(months_of_year(year + offset))
        months.extend(months_of_year(year + full_years)[:extra_months])
        return months
    return [add_months(reference_month, i) for i in range(months_covered)]


class AllocationService:
    """Allocation ledger operations over the datastore boundary."""

    def __init__(
        self,
        db_session: Session,
        fee_schedule: FeeSchedule | None = None,
        config: EngineConfig | None = None,
    ):
        """Initialize allocation service.

        Args:
            db_session: SQLAlchemy database session
            fee_schedule: Fee resolver (defaults to one built from config)
            config: Engine configuration (defaults to load_config())
        """
        self.db = db_session
        self.repo = LedgerRepository(db_session)
        self.config = config if config is not None else load_config()
        self.fee_schedule = fee_schedule or FeeSchedule(self.config.default_monthly_fee)

    # --- single month -------------------------------------------------------

    def allocate_single_month(
        self, transaction_id: int, month: str, actor_id: int | None = None
    ) -> list[TransactionMonth]:
        """Allocate the full transaction amount to one month (replacing any existing split)."""
        validate_month(month)
        return self._rewrite(
            transaction_id,
            lambda tx: [AllocationLine(RegularMonth(month), Decimal(tx.amount))],
            action="allocate_single_month",
            actor_id=actor_id,
        )

    def allocate_from_reference(
        self, transaction_id: int, actor_id: int | None = None
    ) -> list[TransactionMonth]:
        """Allocate to the transaction's reference month, or the month of its date."""
        transaction = self.repo.get_transaction(transaction_id)
        month = transaction.reference_month or month_of(transaction.transaction_date)
        return self.allocate_single_month(transaction_id, month, actor_id)

    def allocate_unallocated(self, actor_id: int | None = None) -> AllocationBatchResult:
        """Give every transaction without allocations a single-month allocation.

        Transactions linked to neither a unit nor a creditor are skipped unless
        they are bank fees or transfers, which belong to the condominium itself.
        """
        result = AllocationBatchResult()
        for transaction in self.repo.find_transactions(unallocated_only=True):
            unlinked = transaction.unit_id is None and transaction.creditor_id is None
            if unlinked and transaction.type not in (TransactionType.FEE, TransactionType.TRANSFER):
                logger.info(
                    "Skipping transaction %d: no unit or creditor assigned (%s)",
                    transaction.id,
                    transaction.description,
                )
                result.skipped.append(transaction.id)
                continue
            self.allocate_from_reference(transaction.id, actor_id)
            result.created += 1

        logger.info(
            "Allocated %d transactions to their months, skipped %d",
            result.created,
            len(result.skipped),
        )
        return result

    # --- multi-month splits -------------------------------------------------

    def split_across_months(
        self,
        transaction_id: int,
        months: list[str],
        per_month_amount: Callable[[str], Decimal],
        actor_id: int | None = None,
    ) -> list[TransactionMonth]:
        """Re-slice a transaction across months with per-month caps.

        Existing allocations are replaced; calling twice with the same inputs
        leaves the same allocations.
        """
        months = list(months)

        def planner(tx: Transaction) -> list[AllocationLine]:
            return [
                AllocationLine(RegularMonth(month), portion)
                for month, portion in plan_capped_split(Decimal(tx.amount), months, per_month_amount)
            ]

        return self._rewrite(
            transaction_id,
            planner,
            action="split_across_months",
            actor_id=actor_id,
            changes={"months": months},
        )

    def plan_lump_sum(
        self,
        transaction: Transaction,
        history: Iterable[FeeHistory],
        fallback: Decimal | None = None,
    ) -> LumpSumPlan:
        """Derive how many months a lump sum covers.

        months_covered = round(|amount| / fee at the reference month).

        Raises:
            AmbiguousLumpSumError: If no fee applies, the count is below the
                configured minimum, or amount/fee is too far from a whole number
        """
        history = list(history)
        amount = Decimal(transaction.amount)
        reference_month = transaction.reference_month or month_of(transaction.transaction_date)
        fee = self.fee_schedule.fee_for_month(history, reference_month, fallback)

        if fee <= 0:
            raise AmbiguousLumpSumError(
                transaction.id, amount, fee, None, f"no monthly fee applies at {reference_month}"
            )

        ratio = abs(amount) / fee
        months_covered = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        if months_covered < self.config.lumpsum_min_months:
            raise AmbiguousLumpSumError(
                transaction.id,
                amount,
                fee,
                ratio,
                f"covers {ratio:.2f} months, below the {self.config.lumpsum_min_months}-month threshold",
            )
        if abs(ratio - months_covered) > self.config.lumpsum_max_fraction:
            raise AmbiguousLumpSumError(
                transaction.id,
                amount,
                fee,
                ratio,
                f"covers {ratio:.2f} months, not a whole number of months",
            )

        return LumpSumPlan(
            transaction_id=transaction.id,
            amount=amount,
            reference_month=reference_month,
            monthly_fee=fee,
            ratio=ratio,
            months_covered=months_covered,
            months=lump_sum_months(reference_month, months_covered),
        )

    def split_lump_sum(self, transaction_id: int, actor_id: int | None = None) -> list[TransactionMonth]:
        """Split a lump-sum payment across the months it covers.

        Months are capped at the fee in force for each month, so a payment
        spanning a fee change fills the old-rate months first and the new-rate
        months after, and stops exactly when the amount runs out.
        """
        transaction = self.repo.get_transaction(transaction_id)
        history, fallback = self._fee_source(transaction)
        plan = self.plan_lump_sum(transaction, history, fallback)

        logger.info(
            "Splitting lump sum: transaction=%d amount=%s fee=%s months=%d (%s..%s)",
            transaction_id,
            plan.amount,
            plan.monthly_fee,
            plan.months_covered,
            plan.months[0],
            plan.months[-1],
        )
        return self.split_across_months(
            transaction_id,
            plan.months,
            lambda month: self.fee_schedule.fee_for_month(history, month, fallback),
            actor_id=actor_id,
        )

    def split_lump_sums(
        self, min_amount: Decimal = LUMPSUM_BATCH_MIN_AMOUNT, actor_id: int | None = None
    ) -> AllocationBatchResult:
        """Split every unit payment that still sits in a single month.

        Candidates are unit payments of at least min_amount that are either
        unallocated or allocated whole to one regular month. Payments worth
        about one month are left alone. Ambiguous ones are collected in
        needs_review and the pass moves on to the next payment.
        """
        result = AllocationBatchResult()
        candidates = self.repo.find_transactions(transaction_type=TransactionType.PAYMENT)
        for transaction in candidates:
            if transaction.unit_id is None or Decimal(transaction.amount) < min_amount:
                continue
            allocations = transaction.month_allocations
            single_month = (
                len(allocations) == 1
                and allocations[0].is_regular
                and abs(Decimal(allocations[0].amount) - Decimal(transaction.amount))
                <= self.config.allocation_tolerance
            )
            if allocations and not single_month:
                continue

            history, fallback = self._fee_source(transaction)
            fee = self.fee_schedule.fee_for_month(
                history,
                transaction.reference_month or month_of(transaction.transaction_date),
                fallback,
            )
            if fee > 0 and abs(Decimal(transaction.amount)) / fee < Decimal("1.5"):
                result.skipped.append(transaction.id)
                continue

            try:
                self.split_lump_sum(transaction.id, actor_id)
            except AmbiguousLumpSumError as e:
                logger.warning("Lump sum needs manual review: %s", e)
                result.needs_review.append(e)
                continue
            result.created += 1

        logger.info(
            "Lump-sum pass: %d split, %d left as single month, %d need review",
            result.created,
            len(result.skipped),
            len(result.needs_review),
        )
        return result

    # --- explicit lines -----------------------------------------------------

    def replace_allocations(
        self,
        transaction_id: int,
        lines: list[AllocationLine],
        actor_id: int | None = None,
    ) -> list[TransactionMonth]:
        """Replace a transaction's allocations with explicit lines.

        An empty list clears the allocations (the transaction becomes
        unreconciled). Otherwise the lines must sum to the transaction amount.

        Raises:
            InvariantViolationError: If the lines do not sum to the amount
        """
        lines = list(lines)
        for line in lines:
            if isinstance(line.target, RegularMonth):
                validate_month(line.target.month)

        def planner(tx: Transaction) -> list[AllocationLine]:
            if lines:
                self._check_lines_sum(tx, lines)
            return lines

        return self._rewrite(
            transaction_id,
            planner,
            action="replace_allocations",
            actor_id=actor_id,
        )

    # --- maintenance --------------------------------------------------------

    def reconcile_orphans(self) -> int:
        """Delete allocations whose transaction no longer exists.

        Transaction deletions do not cascade to allocations, so this has to run
        after any deletion outside delete_transaction().

        Returns:
            Number of allocations removed
        """
        with self.repo.atomic():
            orphans = self.repo.find_orphan_allocations()
            for orphan in orphans:
                logger.info(
                    "Deleting orphan allocation %d (missing transaction %d, %s, %s)",
                    orphan.id,
                    orphan.transaction_id,
                    orphan.target,
                    orphan.amount,
                )
            removed = self.repo.delete_allocation_rows([o.id for o in orphans])
        if removed:
            logger.warning("Purged %d orphan allocations", removed)
        return removed

    def allocation_sum(self, transaction_id: int) -> Decimal:
        allocations = self.repo.find_allocations(transaction_id=transaction_id)
        return sum((Decimal(a.amount) for a in allocations), Decimal("0"))

    # --- internals ----------------------------------------------------------

    def _fee_source(self, transaction: Transaction) -> tuple[list[FeeHistory], Decimal | None]:
        if transaction.unit_id is not None:
            unit = self.repo.get_unit(transaction.unit_id)
            return self.repo.find_fee_history(unit_id=unit.id), unit.monthly_fee
        if transaction.creditor_id is not None:
            creditor = self.repo.get_creditor(transaction.creditor_id)
            return self.repo.find_fee_history(creditor_id=creditor.id), creditor.amount_due
        raise AmbiguousLumpSumError(
            transaction.id,
            Decimal(transaction.amount),
            Decimal("0"),
            None,
            "transaction is linked to neither a unit nor a creditor",
        )

    def _check_lines_sum(self, transaction: Transaction, lines: list[AllocationLine]) -> None:
        allocated = sum((Decimal(line.amount) for line in lines), Decimal("0"))
        amount = Decimal(transaction.amount)
        if abs(amount - allocated) > self.config.allocation_tolerance:
            violation = Violation(
                kind=ViolationKind.ALLOCATION_SUM_MISMATCH,
                severity=Severity.ERROR,
                entity_type="transaction",
                entity_id=transaction.id,
                message=f"Allocations sum to {allocated}, transaction amount is {amount}",
                expected=amount,
                actual=allocated,
                unit_id=transaction.unit_id,
                creditor_id=transaction.creditor_id,
            )
            raise InvariantViolationError(violation.message, [violation])

    def _rewrite(
        self,
        transaction_id: int,
        planner: Callable[[Transaction], list[AllocationLine]],
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> list[TransactionMonth]:
        """Delete and recreate a transaction's allocations atomically."""
        with self.repo.atomic():
            transaction = self.repo.lock_transaction(transaction_id)
            lines = planner(transaction)
            removed = self.repo.delete_allocations(transaction_id)
            for line in lines:
                if isinstance(line.target, PriorDebtCarryover):
                    self.repo.create_allocation(
                        transaction_id,
                        None,
                        line.amount,
                        line.extra_charge_id,
                        kind=AllocationKind.PRIOR_DEBT,
                    )
                else:
                    self.repo.create_allocation(
                        transaction_id, line.target.month, line.amount, line.extra_charge_id
                    )
            AuditService.log(
                self.db,
                "transaction",
                transaction_id,
                action,
                actor_id,
                {**(changes or {}), "removed": removed, "created": len(lines)},
            )

        self.db.expire(transaction, ["month_allocations"])
        logger.debug(
            "%s: transaction=%d removed=%d created=%d", action, transaction_id, removed, len(lines)
        )
        return self.repo.find_allocations(transaction_id=transaction_id)


__all__ = [
    "AllocationLine",
    "LumpSumPlan",
    "AllocationBatchResult",
    "AllocationService",
    "plan_capped_split",
    "lump_sum_months",
]
