"""Unit tests for reconciliation commands."""

from datetime import date
from decimal import Decimal

import pytest

from condofin.models import AuditLog, FeeHistory, Owner, RegularMonth, Transaction, TransactionMonth
from condofin.services.allocation_service import AllocationLine
from condofin.services.errors import InvariantViolationError, NotFoundError
from condofin.services.reconciliation_service import (
    ReconciliationService,
    group_duplicate_owners,
    normalize_name,
)


@pytest.fixture
def service(db_session, config):
    return ReconciliationService(db_session, config=config)


def audit_actions(db_session, entity_type):
    return [e.action for e in db_session.query(AuditLog).filter(AuditLog.entity_type == entity_type).all()]


class TestNameMatching:
    def test_normalize_strips_accents_and_punctuation(self):
        assert normalize_name("José  Sá") == "josesa"
        assert normalize_name("Ana-Rita O'Neill") == "anaritaoneill"

    def test_group_by_containment(self):
        owners = [
            Owner(id=1, unit_id=1, name="Maria Silva"),
            Owner(id=2, unit_id=1, name="Maria Silva Santos"),
            Owner(id=3, unit_id=1, name="Joao"),
        ]
        groups = group_duplicate_owners(owners)
        assert [[o.id for o in g] for g in groups] == [[1, 2], [3]]


class TestCloseFeePeriod:
    def test_closes_open_record_and_starts_new_one(self, service, db_session, make_unit, make_fee):
        unit = make_unit()
        old = make_fee("37.50", "2023-01", unit=unit)

        record = service.close_fee_period(Decimal("45"), "2024-01", unit_id=unit.id, actor_id=3)

        db_session.refresh(old)
        assert old.effective_to == "2023-12"
        assert record.effective_from == "2024-01"
        assert record.effective_to is None
        assert record.amount == Decimal("45")
        assert audit_actions(db_session, "fee_history") == ["close_period", "create"]

    def test_rerun_is_noop(self, service, db_session, make_unit, make_fee):
        unit = make_unit()
        make_fee("37.50", "2023-01", unit=unit)

        first = service.close_fee_period(Decimal("45"), "2024-01", unit_id=unit.id)
        second = service.close_fee_period(Decimal("45"), "2024-01", unit_id=unit.id)

        assert first.id == second.id
        assert db_session.query(FeeHistory).count() == 2
        assert len(audit_actions(db_session, "fee_history")) == 2

    def test_rerun_with_other_amount_corrects(self, service, db_session, make_unit):
        unit = make_unit()
        service.close_fee_period(Decimal("45"), "2024-01", unit_id=unit.id)

        record = service.close_fee_period(Decimal("47"), "2024-01", unit_id=unit.id)

        assert record.amount == Decimal("47")
        assert audit_actions(db_session, "fee_history") == ["create", "correct"]

    def test_rejects_period_before_existing_record(self, service, make_unit, make_fee):
        unit = make_unit()
        make_fee("45", "2024-06", unit=unit)
        with pytest.raises(InvariantViolationError):
            service.close_fee_period(Decimal("40"), "2024-01", unit_id=unit.id)

    def test_creditor_period(self, service, make_creditor):
        creditor = make_creditor(amount_due="60", is_fixed=True)
        record = service.close_fee_period(Decimal("65"), "2025-01", creditor_id=creditor.id)
        assert record.creditor_id == creditor.id
        assert record.unit_id is None

    def test_requires_exactly_one_entity(self, service):
        with pytest.raises(ValueError):
            service.close_fee_period(Decimal("45"), "2024-01")

    def test_missing_unit(self, service):
        with pytest.raises(NotFoundError):
            service.close_fee_period(Decimal("45"), "2024-01", unit_id=404)


class TestMergeDuplicateOwners:
    @pytest.fixture
    def unit(self, make_unit, make_owner):
        unit = make_unit(code="4B")
        make_owner(
            unit, "José Sá", start_month=None, end_month="2023-12", previous_debt="50", email="jose@example.pt"
        )
        make_owner(unit, "Jose Sa", start_month="2023-06", previous_debt="80")
        make_owner(unit, "Maria Lopes", start_month="2024-01")
        return unit

    def test_merge_and_fix_periods(self, service, db_session, unit):
        result = service.merge_duplicate_owners(unit.id, actor_id=1)

        owners = sorted(db_session.query(Owner).all(), key=lambda o: o.id)
        assert [o.name for o in owners] == ["José Sá", "Maria Lopes"]
        kept = owners[0]
        assert kept.start_month is None
        assert kept.end_month == "2023-12"
        assert kept.previous_debt == Decimal("80")
        assert kept.email == "jose@example.pt"
        assert owners[1].end_month is None

        assert len(result.merges) == 1
        assert result.merges[0].kept_id == kept.id
        assert result.periods_fixed == [kept.id]

    def test_second_run_changes_nothing(self, service, unit):
        service.merge_duplicate_owners(unit.id)
        assert not service.merge_duplicate_owners(unit.id).changed

    def test_last_owner_made_current(self, service, db_session, make_unit, make_owner):
        unit = make_unit(code="5C")
        make_owner(unit, "Ana", start_month="2020-01", end_month="2022-12")
        last = make_owner(unit, "Rui", start_month="2023-01", end_month="2024-12")

        result = service.merge_duplicate_owners(unit.id)

        db_session.refresh(last)
        assert last.end_month is None
        assert result.periods_fixed == [last.id]

    def test_single_closed_owner_made_current(self, service, db_session, make_unit, make_owner):
        unit = make_unit(code="5D")
        only = make_owner(unit, "Ines", start_month="2021-01", end_month="2023-06")

        result = service.merge_duplicate_owners(unit.id)

        db_session.refresh(only)
        assert only.end_month is None
        assert result.periods_fixed == [only.id]
        assert not service.merge_duplicate_owners(unit.id).changed


class TestTransactionCommands:
    def test_reallocate_to_reference_month(self, service, make_unit, make_transaction, allocate):
        unit = make_unit()
        tx = make_transaction("45", on=date(2024, 4, 3), unit=unit, reference_month="2024-03")
        allocate(tx, ("2024-01", "20"), ("2024-02", "25"))

        allocations = service.reallocate_transaction(tx.id)

        assert [(a.month, a.amount) for a in allocations] == [("2024-03", Decimal("45.00"))]

    def test_reallocate_with_lines(self, service, make_unit, make_transaction):
        unit = make_unit()
        tx = make_transaction("90", unit=unit)

        allocations = service.reallocate_transaction(
            tx.id,
            [
                AllocationLine(RegularMonth("2024-01"), Decimal("45")),
                AllocationLine(RegularMonth("2024-02"), Decimal("45")),
            ],
        )

        assert sorted(a.month for a in allocations) == ["2024-01", "2024-02"]

    def test_update_transaction_is_audited(self, service, db_session, make_unit, make_transaction):
        unit = make_unit()
        tx = make_transaction("45", unit=unit)

        updated = service.update_transaction(tx.id, {"reference_month": "2024-02", "category": "quota"}, actor_id=9)

        assert updated.reference_month == "2024-02"
        entry = db_session.query(AuditLog).filter(AuditLog.entity_type == "transaction").one()
        assert entry.action == "update"
        assert entry.actor_id == 9
        assert entry.changes == {"reference_month": "2024-02", "category": "quota"}

    def test_amount_is_not_patchable(self, service, db_session, make_transaction):
        tx = make_transaction("45")

        with pytest.raises(ValueError):
            service.update_transaction(tx.id, {"amount": Decimal("50")})

        db_session.refresh(tx)
        assert tx.amount == Decimal("45")
        assert db_session.query(AuditLog).count() == 0

    def test_delete_transaction_removes_allocations(
        self, service, db_session, make_unit, make_transaction, allocate
    ):
        unit = make_unit()
        tx = make_transaction("90", unit=unit)
        allocate(tx, ("2024-01", "45"), ("2024-02", "45"))
        tx_id = tx.id

        assert service.delete_transaction(tx_id, actor_id=2) == 2

        assert db_session.get(Transaction, tx_id) is None
        assert db_session.query(TransactionMonth).count() == 0
        entry = db_session.query(AuditLog).filter(AuditLog.entity_type == "transaction").one()
        assert entry.changes["allocations_removed"] == 2
        assert Decimal(entry.changes["amount"]) == Decimal("90")

    def test_delete_missing_transaction(self, service):
        with pytest.raises(NotFoundError):
            service.delete_transaction(777)

    def test_purge_orphans(self, service, db_session, make_transaction, allocate):
        tx = make_transaction("45")
        allocate(tx, ("2024-01", "45"))
        db_session.delete(tx)
        db_session.commit()

        assert service.purge_orphans() == 1
