"""Integration tests for report assembly over a small building ledger."""

from datetime import date
from decimal import Decimal

import pytest

from condofin.models import AllocationKind, TransactionMonth
from condofin.services.report_service import ReportService
from condofin.services.validation_service import ViolationKind

AS_OF = date(2025, 3, 15)


@pytest.fixture
def building(db_session, make_unit, make_creditor, make_owner, make_extra, make_transaction, allocate):
    """Two units at 45/month, one water supplier, a two-month works levy in 2025.

    1A paid ten months of 2024 in one go and January 2025; 1B never paid.
    """
    unit_a = make_unit(code="1A", monthly_fee="45", previous_balance=Decimal("30"))
    unit_b = make_unit(code="1B", monthly_fee="45", previous_balance=Decimal("50"))
    make_owner(unit_a, "Maria Silva", previous_debt="100")
    water = make_creditor(name="Aguas")
    levy = make_extra("5", "2025-01", "2025-02", description="Obras fachada")

    annual = make_transaction("450", on=date(2024, 1, 15), unit=unit_a)
    allocate(annual, *[(f"2024-{m:02d}", "45") for m in range(1, 11)])
    january = make_transaction("45", on=date(2025, 1, 5), unit=unit_a)
    allocate(january, ("2025-01", "45"))
    prior = make_transaction("20", on=date(2025, 3, 1), unit=unit_a)
    db_session.add(
        TransactionMonth(transaction_id=prior.id, kind=AllocationKind.PRIOR_DEBT, month=None, amount=Decimal("20"))
    )
    db_session.commit()

    make_transaction("-30", on=date(2025, 2, 10), creditor=water, description="Fatura agua")
    make_transaction("-30", on=date(2025, 2, 10), description="Fatura agua (copia)")
    make_transaction("-100", on=date(2025, 2, 11), category="savings", description="Poupanca")

    return {"a": unit_a, "b": unit_b, "water": water, "levy": levy}


@pytest.fixture
def reports(db_session, config):
    return ReportService(db_session, config=config, as_of=AS_OF)


class TestOverview:
    def test_rows_and_totals(self, reports, building):
        report = reports.get_overview(2025)

        assert [u.code for u in report.units] == ["1A", "1B"]
        row_a, row_b = report.units
        assert row_a.name == "Maria Silva"
        assert row_a.total_expected == Decimal("145")
        assert row_a.total_paid == Decimal("45")
        assert row_a.year_debt == Decimal("100")
        assert row_a.past_years_debt == Decimal("90")
        assert row_b.name == "1B"
        assert row_b.year_debt == Decimal("145")
        assert row_b.past_years_debt == Decimal("0")

        assert [c.name for c in report.creditors] == ["Aguas"]
        assert report.creditors[0].total_paid == Decimal("30")
        assert report.creditors[0].total_debt == Decimal("0")

        assert report.totals.income == Decimal("45")
        assert report.totals.expenses == Decimal("30")
        assert report.totals.balance == Decimal("15")
        assert report.totals.total_debt == Decimal("335")
        assert report.errors == []

    def test_month_cells(self, reports, building):
        row_a = reports.get_overview(2025).units[0]

        january = row_a.months[0]
        assert january.expected == Decimal("50")
        assert january.base_fee == Decimal("45")
        assert [e.id for e in january.extras] == [building["levy"].id]
        assert not january.is_paid
        assert row_a.months[3].expected == Decimal("45")

    def test_broken_entity_reported_not_fatal(self, reports, building, make_unit, make_transaction, allocate):
        broken = make_unit(code="9X")
        bad = make_transaction("45", on=date(2024, 5, 1), unit=broken)
        allocate(bad, ("2024-13", "45"))

        report = reports.get_overview(2025)

        assert [u.code for u in report.units] == ["1A", "1B"]
        assert [(e.entity_type, e.entity_id) for e in report.errors] == [("unit", broken.id)]
        assert "2024-13" in report.errors[0].message

    def test_violations_flag_the_entity(self, reports, building, make_transaction, allocate):
        partial = make_transaction("100", on=date(2024, 5, 2), unit=building["b"])
        allocate(partial, ("2024-05", "45"))

        report = reports.get_overview(2025)

        row_a, row_b = report.units
        assert row_a.flags == []
        assert [f.kind for f in row_b.flags] == [ViolationKind.ALLOCATION_SUM_MISMATCH]


class TestSingleEntityReports:
    def test_monthly_status_requires_one_entity(self, reports, building):
        with pytest.raises(ValueError):
            reports.get_monthly_status(2025, unit_id=building["a"].id, creditor_id=building["water"].id)
        with pytest.raises(ValueError):
            reports.get_monthly_status(2025)

    def test_monthly_status_for_creditor(self, reports, building):
        statuses = reports.get_monthly_status(2025, creditor_id=building["water"].id)

        assert statuses[1].paid == Decimal("30")
        assert statuses[1].expected == Decimal("0")
        assert statuses[1].is_paid
        assert not statuses[0].is_paid

    def test_unit_payment_history(self, reports, building):
        history = reports.get_payment_history(unit_id=building["a"].id)

        assert list(history.payments)[0] == "2024-01"
        assert list(history.payments)[-1] == "2025-01"
        assert len(history.expected) == 15
        assert history.expected["2025-01"] == Decimal("50")
        assert history.expected["2025-03"] == Decimal("45")
        assert [(y.year, y.accumulated_debt) for y in history.yearly] == [
            (2024, Decimal("90")),
            (2025, Decimal("190")),
        ]

    def test_empty_history(self, reports, building):
        history = reports.get_payment_history(unit_id=building["b"].id)
        assert history.payments == {}
        assert history.expected == {}
        assert history.yearly == []

    def test_unit_debt_includes_prior_debt(self, reports, building):
        debt = reports.get_unit_debt(building["a"].id)

        assert debt.previous_debt == Decimal("100")
        assert debt.previous_debt_paid == Decimal("20")
        assert debt.previous_debt_remaining == Decimal("80")
        assert debt.total_debt == Decimal("270")

    def test_outstanding_extras(self, reports, building):
        balances = reports.get_outstanding_extras(building["b"].id)

        assert [(b.description, b.remaining) for b in balances] == [("Obras fachada", Decimal("10"))]


class TestLedgerWideReports:
    def test_monthly_summary(self, reports, building):
        rows = reports.get_monthly_summary()

        assert [r.month for r in rows] == [f"2024-{m:02d}" for m in range(1, 11)] + ["2025-01", "2025-02"]
        assert rows[0].income == Decimal("45")
        february = rows[-1]
        assert february.income == Decimal("0")
        assert february.expenses == Decimal("30")
        assert february.balance == Decimal("-30")

    def test_debt_summary(self, reports, building):
        summary = reports.get_debt_summary()

        assert (summary.start_year, summary.end_year) == (2024, 2025)
        row_a, row_b = summary.units
        assert [(y.year, y.expected, y.paid, y.debt) for y in row_a.years] == [
            (2024, Decimal("540"), Decimal("450"), Decimal("90")),
            (2025, Decimal("145"), Decimal("45"), Decimal("100")),
        ]
        assert row_a.previous.debt == Decimal("70")
        assert row_a.total_debt == Decimal("260")
        assert row_b.previous.debt == Decimal("0")
        assert row_b.previous.paid == Decimal("50")

        assert summary.base_fees == {2024: Decimal("1080"), 2025: Decimal("270")}
        assert summary.extra_charge_totals == {building["levy"].id: {2024: Decimal("0"), 2025: Decimal("20")}}
        assert summary.year_totals[2024].debt == Decimal("630")

    def test_debt_summary_range_checked(self, reports, building):
        with pytest.raises(ValueError):
            reports.get_debt_summary(start_year=2026, end_year=2025)


class TestYearToDateAgreement:
    def test_overview_and_unit_debt_agree_before_first_fee_record(self, reports, make_unit, make_fee):
        unit = make_unit(code="6F", monthly_fee="50")
        make_fee("60", "2025-02", unit=unit)

        row = reports.get_overview(2025).units[0]
        debt = reports.get_unit_debt(unit.id)

        assert row.total_expected == debt.expected_ytd == Decimal("170")
        assert row.year_debt == debt.year_debt
        assert list(reports.get_payment_history(unit_id=unit.id).expected) == ["2025-01", "2025-02", "2025-03"]
