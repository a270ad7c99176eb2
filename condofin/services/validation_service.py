"""Ledger integrity audit.

audit_snapshot() is a pure function from a data snapshot to a list of
violations. It never fixes anything: each violation carries enough context
(entity, expected vs actual) to drive a manual or scripted correction through
the reconciliation commands.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import Session

from condofin.models import FeeHistory, Owner, Transaction, TransactionMonth
from condofin.services.months import next_month
from condofin.services.repository import LedgerRepository

logger = logging.getLogger(__name__)


class ViolationKind(str, Enum):
    """Invariant a violation breaks."""

    ALLOCATION_SUM_MISMATCH = "allocation_sum_mismatch"
    ORPHAN_ALLOCATION = "orphan_allocation"
    FEE_HISTORY_OWNER = "fee_history_owner"
    FEE_HISTORY_INVERTED = "fee_history_inverted"
    FEE_HISTORY_OVERLAP = "fee_history_overlap"
    FEE_HISTORY_GAP = "fee_history_gap"
    MULTIPLE_CURRENT_OWNERS = "multiple_current_owners"
    OWNER_PERIOD_OVERLAP = "owner_period_overlap"
    TRANSACTION_DUAL_LINK = "transaction_dual_link"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Violation:
    """One broken invariant, with the entity it was found on."""

    kind: ViolationKind
    severity: Severity
    entity_type: str
    entity_id: int
    message: str
    expected: Decimal | str | None = None
    actual: Decimal | str | None = None
    unit_id: int | None = None
    creditor_id: int | None = None


@dataclass
class LedgerSnapshot:
    """In-memory copy of the rows the audit inspects."""

    transactions: list[Transaction] = field(default_factory=list)
    allocations: list[TransactionMonth] = field(default_factory=list)
    fee_history: list[FeeHistory] = field(default_factory=list)
    owners: list[Owner] = field(default_factory=list)


def check_allocation_sum(
    transaction: Transaction,
    allocations: list[TransactionMonth],
    tolerance: Decimal = Decimal("0.01"),
) -> Violation | None:
    """Compare a transaction's allocation sum with its amount.

    Transactions without allocations are unreconciled, not broken, and pass.
    """
    if not allocations:
        return None
    allocated = sum((Decimal(a.amount) for a in allocations), Decimal("0"))
    amount = Decimal(transaction.amount)
    if abs(amount - allocated) <= tolerance:
        return None
    return Violation(
        kind=ViolationKind.ALLOCATION_SUM_MISMATCH,
        severity=Severity.ERROR,
        entity_type="transaction",
        entity_id=transaction.id,
        message=(
            f"Transaction {transaction.id} ({transaction.transaction_date}, {amount}): "
            f"allocation sum {allocated}, diff {amount - allocated}"
        ),
        expected=amount,
        actual=allocated,
        unit_id=transaction.unit_id,
        creditor_id=transaction.creditor_id,
    )


def _fee_history_violations(records: list[FeeHistory]) -> list[Violation]:
    violations = []
    groups: dict[tuple, list[FeeHistory]] = defaultdict(list)

    for record in records:
        if (record.unit_id is None) == (record.creditor_id is None):
            violations.append(
                Violation(
                    kind=ViolationKind.FEE_HISTORY_OWNER,
                    severity=Severity.ERROR,
                    entity_type="fee_history",
                    entity_id=record.id,
                    message=(
                        f"Fee record {record.id} must belong to exactly one unit or creditor "
                        f"(unit_id={record.unit_id}, creditor_id={record.creditor_id})"
                    ),
                    unit_id=record.unit_id,
                    creditor_id=record.creditor_id,
                )
            )
            continue
        if record.effective_to and record.effective_to < record.effective_from:
            violations.append(
                Violation(
                    kind=ViolationKind.FEE_HISTORY_INVERTED,
                    severity=Severity.ERROR,
                    entity_type="fee_history",
                    entity_id=record.id,
                    message=(
                        f"Fee record {record.id} ends {record.effective_to} "
                        f"before it starts {record.effective_from}"
                    ),
                    unit_id=record.unit_id,
                    creditor_id=record.creditor_id,
                )
            )
        groups[(record.unit_id, record.creditor_id)].append(record)

    for (unit_id, creditor_id), group in groups.items():
        entity_type, entity_id = ("unit", unit_id) if unit_id is not None else ("creditor", creditor_id)
        ordered = sorted(group, key=lambda r: (r.effective_from, r.id or 0))
        for curr, nxt in zip(ordered, ordered[1:]):
            if curr.effective_to is None or curr.effective_to >= nxt.effective_from:
                span = f"{curr.effective_from}..{curr.effective_to or 'ongoing'}"
                violations.append(
                    Violation(
                        kind=ViolationKind.FEE_HISTORY_OVERLAP,
                        severity=Severity.ERROR,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        message=(
                            f"Fee record {span} ({curr.amount}) overlaps "
                            f"record from {nxt.effective_from} ({nxt.amount})"
                        ),
                        expected=nxt.effective_from,
                        actual=curr.effective_to,
                        unit_id=unit_id,
                        creditor_id=creditor_id,
                    )
                )
            elif nxt.effective_from > next_month(curr.effective_to):
                violations.append(
                    Violation(
                        kind=ViolationKind.FEE_HISTORY_GAP,
                        severity=Severity.WARNING,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        message=(
                            f"Gap in fee history between {curr.effective_to} and "
                            f"{nxt.effective_from}; fallback fee applies in between"
                        ),
                        expected=next_month(curr.effective_to),
                        actual=nxt.effective_from,
                        unit_id=unit_id,
                        creditor_id=creditor_id,
                    )
                )
    return violations


def _owner_violations(owners: list[Owner]) -> list[Violation]:
    violations = []
    by_unit: dict[int, list[Owner]] = defaultdict(list)
    for owner in owners:
        by_unit[owner.unit_id].append(owner)

    for unit_id, group in by_unit.items():
        current = [o for o in group if o.end_month is None]
        if len(current) > 1:
            violations.append(
                Violation(
                    kind=ViolationKind.MULTIPLE_CURRENT_OWNERS,
                    severity=Severity.ERROR,
                    entity_type="unit",
                    entity_id=unit_id,
                    message=(
                        f"Unit {unit_id} has {len(current)} current owners: "
                        + ", ".join(o.name for o in current)
                    ),
                    expected="1",
                    actual=str(len(current)),
                    unit_id=unit_id,
                )
            )
        ordered = sorted(group, key=lambda o: (o.start_month or "", o.id or 0))
        for curr, nxt in zip(ordered, ordered[1:]):
            # A missing start means "since the beginning", so it overlaps anything before it
            if curr.end_month is None or nxt.start_month is None or curr.end_month >= nxt.start_month:
                violations.append(
                    Violation(
                        kind=ViolationKind.OWNER_PERIOD_OVERLAP,
                        severity=Severity.ERROR,
                        entity_type="unit",
                        entity_id=unit_id,
                        message=(
                            f"Owner '{curr.name}' ({curr.start_month or 'start'}.."
                            f"{curr.end_month or 'current'}) overlaps owner '{nxt.name}' "
                            f"from {nxt.start_month or 'start'}"
                        ),
                        expected=nxt.start_month,
                        actual=curr.end_month,
                        unit_id=unit_id,
                    )
                )
    return violations


def audit_snapshot(snapshot: LedgerSnapshot, tolerance: Decimal = Decimal("0.01")) -> list[Violation]:
    """Run every integrity check over a snapshot.

    Args:
        snapshot: Rows to inspect
        tolerance: Accepted allocation sum difference

    Returns:
        Violations, errors first
    """
    violations: list[Violation] = []

    transaction_ids = {t.id for t in snapshot.transactions}
    allocations_by_tx: dict[int, list[TransactionMonth]] = defaultdict(list)
    for allocation in snapshot.allocations:
        if allocation.transaction_id not in transaction_ids:
            violations.append(
                Violation(
                    kind=ViolationKind.ORPHAN_ALLOCATION,
                    severity=Severity.ERROR,
                    entity_type="allocation",
                    entity_id=allocation.id,
                    message=(
                        f"Allocation {allocation.id} references missing transaction "
                        f"{allocation.transaction_id}"
                    ),
                )
            )
            continue
        allocations_by_tx[allocation.transaction_id].append(allocation)

    for transaction in snapshot.transactions:
        mismatch = check_allocation_sum(transaction, allocations_by_tx.get(transaction.id, []), tolerance)
        if mismatch is not None:
            violations.append(mismatch)
        if transaction.unit_id is not None and transaction.creditor_id is not None:
            violations.append(
                Violation(
                    kind=ViolationKind.TRANSACTION_DUAL_LINK,
                    severity=Severity.WARNING,
                    entity_type="transaction",
                    entity_id=transaction.id,
                    message=(
                        f"Transaction {transaction.id} is linked to unit {transaction.unit_id} "
                        f"and creditor {transaction.creditor_id}"
                    ),
                    unit_id=transaction.unit_id,
                    creditor_id=transaction.creditor_id,
                )
            )

    violations.extend(_fee_history_violations(snapshot.fee_history))
    violations.extend(_owner_violations(snapshot.owners))

    violations.sort(key=lambda v: (v.severity != Severity.ERROR, v.kind.value, v.entity_id))
    return violations


class ValidationService:
    """Loads a snapshot from the database and audits it."""

    def __init__(self, db_session: Session, tolerance: Decimal = Decimal("0.01")):
        """Initialize with database session."""
        self.db = db_session
        self.repo = LedgerRepository(db_session)
        self.tolerance = tolerance

    def load_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            transactions=self.repo.find_transactions(),
            allocations=self.repo.all_allocations(),
            fee_history=self.repo.all_fee_history(),
            owners=self.repo.all_owners(),
        )

    def run(self) -> list[Violation]:
        violations = audit_snapshot(self.load_snapshot(), self.tolerance)
        errors = sum(1 for v in violations if v.severity == Severity.ERROR)
        logger.info(
            "Ledger audit finished: %d errors, %d warnings",
            errors,
            len(violations) - errors,
        )
        return violations


def violations_by_entity(violations: list[Violation]) -> dict[tuple[str, int], list[Violation]]:
    """Index violations by the unit/creditor they concern, for report flags."""
    index: dict[tuple[str, int], list[Violation]] = defaultdict(list)
    for violation in violations:
        if violation.unit_id is not None:
            index[("unit", violation.unit_id)].append(violation)
        if violation.creditor_id is not None:
            index[("creditor", violation.creditor_id)].append(violation)
    return dict(index)


__all__ = [
    "ViolationKind",
    "Severity",
    "Violation",
    "LedgerSnapshot",
    "check_allocation_sum",
    "audit_snapshot",
    "ValidationService",
    "violations_by_entity",
]
