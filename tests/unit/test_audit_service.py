"""Unit tests for the correction trail."""

from datetime import date
from decimal import Decimal

from condofin.models import AllocationKind
from condofin.services.audit_service import AuditService, to_json_value


class TestToJsonValue:
    def test_ledger_values_are_converted(self):
        changes = {
            "amount": Decimal("450.00"),
            "date": date(2024, 1, 15),
            "kind": AllocationKind.PRIOR_DEBT,
            "months": ("2024-01", "2024-02"),
            "nested": {"was": Decimal("37.50")},
            "removed": 1,
        }

        assert to_json_value(changes) == {
            "amount": "450.00",
            "date": "2024-01-15",
            "kind": "prior_debt",
            "months": ["2024-01", "2024-02"],
            "nested": {"was": "37.50"},
            "removed": 1,
        }


class TestAuditService:
    def test_log_stores_converted_changes(self, db_session):
        entry = AuditService.log(db_session, "fee_history", 3, "correct", 7, {"amount": Decimal("47")})
        db_session.commit()

        db_session.refresh(entry)
        assert entry.changes == {"amount": "47"}
        assert entry.actor_id == 7

    def test_history_is_per_row_and_ordered(self, db_session):
        AuditService.log(db_session, "transaction", 1, "allocate_single_month")
        AuditService.log(db_session, "owner", 1, "merge")
        AuditService.log(db_session, "transaction", 1, "split_lump_sum")
        AuditService.log(db_session, "transaction", 2, "delete")
        db_session.commit()

        trail = AuditService.history(db_session, "transaction", 1)

        assert [e.action for e in trail] == ["allocate_single_month", "split_lump_sum"]
        assert trail[0].changes is None
