"""Unit tests for the ledger integrity audit."""

from datetime import date
from decimal import Decimal

from condofin.models import FeeHistory, Owner, Transaction, TransactionMonth
from condofin.services.validation_service import (
    LedgerSnapshot,
    Severity,
    ValidationService,
    ViolationKind,
    audit_snapshot,
    check_allocation_sum,
    violations_by_entity,
)


def tx(id, amount, unit_id=1, creditor_id=None):
    return Transaction(
        id=id,
        transaction_date=date(2024, 3, 1),
        description="Transferencia",
        amount=Decimal(amount),
        unit_id=unit_id,
        creditor_id=creditor_id,
    )


def row(id, transaction_id, amount, month="2024-03"):
    return TransactionMonth(id=id, transaction_id=transaction_id, month=month, amount=Decimal(amount))


def kinds(violations):
    return [v.kind for v in violations]


class TestAllocationSum:
    def test_unallocated_transaction_passes(self):
        assert check_allocation_sum(tx(1, "100"), []) is None

    def test_within_tolerance_passes(self):
        assert check_allocation_sum(tx(1, "100"), [row(1, 1, "99.99")]) is None

    def test_mismatch_reports_expected_and_actual(self):
        violation = check_allocation_sum(tx(1, "100"), [row(1, 1, "45"), row(2, 1, "45")])

        assert violation.kind == ViolationKind.ALLOCATION_SUM_MISMATCH
        assert violation.expected == Decimal("100")
        assert violation.actual == Decimal("90")
        assert violation.unit_id == 1


class TestAuditSnapshot:
    def test_clean_snapshot(self):
        snapshot = LedgerSnapshot(
            transactions=[tx(1, "90")],
            allocations=[row(1, 1, "45", "2024-01"), row(2, 1, "45", "2024-02")],
            fee_history=[
                FeeHistory(id=1, unit_id=1, amount=Decimal("37.50"), effective_from="2023-01", effective_to="2023-12"),
                FeeHistory(id=2, unit_id=1, amount=Decimal("45"), effective_from="2024-01"),
            ],
            owners=[
                Owner(id=1, unit_id=1, name="A", start_month=None, end_month="2024-08"),
                Owner(id=2, unit_id=1, name="B", start_month="2024-09", end_month=None),
            ],
        )
        assert audit_snapshot(snapshot) == []

    def test_orphan_allocation(self):
        violations = audit_snapshot(LedgerSnapshot(allocations=[row(7, 99, "45")]))

        assert kinds(violations) == [ViolationKind.ORPHAN_ALLOCATION]
        assert violations[0].entity_id == 7

    def test_fee_history_problems(self):
        history = [
            FeeHistory(id=1, unit_id=1, amount=Decimal("30"), effective_from="2022-01", effective_to="2022-06"),
            FeeHistory(id=2, unit_id=1, amount=Decimal("35"), effective_from="2023-01"),
            FeeHistory(id=3, unit_id=1, amount=Decimal("45"), effective_from="2024-01"),
            FeeHistory(id=4, amount=Decimal("10"), effective_from="2024-01"),
            FeeHistory(id=5, creditor_id=2, amount=Decimal("10"), effective_from="2024-05", effective_to="2024-01"),
        ]

        found = kinds(audit_snapshot(LedgerSnapshot(fee_history=history)))

        assert ViolationKind.FEE_HISTORY_OWNER in found
        assert ViolationKind.FEE_HISTORY_INVERTED in found
        assert ViolationKind.FEE_HISTORY_OVERLAP in found
        assert ViolationKind.FEE_HISTORY_GAP in found

    def test_owner_problems(self):
        owners = [
            Owner(id=1, unit_id=3, name="A", start_month="2020-01", end_month=None),
            Owner(id=2, unit_id=3, name="B", start_month="2024-01", end_month=None),
        ]

        found = kinds(audit_snapshot(LedgerSnapshot(owners=owners)))

        assert ViolationKind.MULTIPLE_CURRENT_OWNERS in found
        assert ViolationKind.OWNER_PERIOD_OVERLAP in found

    def test_dual_link_is_a_warning_after_errors(self):
        snapshot = LedgerSnapshot(
            transactions=[tx(1, "50", unit_id=1, creditor_id=2), tx(2, "10")],
            allocations=[row(1, 2, "5")],
        )

        violations = audit_snapshot(snapshot)

        assert kinds(violations) == [ViolationKind.ALLOCATION_SUM_MISMATCH, ViolationKind.TRANSACTION_DUAL_LINK]
        assert violations[-1].severity == Severity.WARNING

    def test_index_by_entity(self):
        violations = audit_snapshot(LedgerSnapshot(transactions=[tx(1, "50", unit_id=4, creditor_id=2)]))

        index = violations_by_entity(violations)

        assert set(index) == {("unit", 4), ("creditor", 2)}


class TestValidationService:
    def test_run_against_database(self, db_session, make_unit, make_transaction, allocate, caplog):
        unit = make_unit()
        good = make_transaction("45", unit=unit)
        bad = make_transaction("100", unit=unit)
        allocate(good, ("2024-01", "45"))
        allocate(bad, ("2024-01", "45"))

        with caplog.at_level("INFO"):
            violations = ValidationService(db_session).run()

        assert [(v.kind, v.entity_id) for v in violations] == [(ViolationKind.ALLOCATION_SUM_MISMATCH, bad.id)]
        assert "1 errors, 0 warnings" in caplog.text
