"""Read-only report endpoints: overview, monthly status, debts, summaries, audit."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from condofin.api.deps import get_report_service, get_validation_service
from condofin.api.errors import raise_app_error, to_app_error
from condofin.api.schemas import (
    AuditResponse,
    DebtSummaryResponse,
    EntityErrorResponse,
    EntityOverviewResponse,
    ExtraChargeBalanceResponse,
    MonthlyStatusResponse,
    MonthlySummaryItem,
    MonthlySummaryResponse,
    MonthStatusResponse,
    OverviewResponse,
    OverviewTotalsResponse,
    PaymentHistoryResponse,
    UnitDebtResponse,
    UnitDebtRowResponse,
    ViolationFlag,
    ViolationResponse,
    YearFiguresResponse,
    money,
)
from condofin.services.errors import CondoError
from condofin.services.report_service import EntityOverview, PaymentHistory, ReportService
from condofin.services.validation_service import Severity, ValidationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reports"])


def _overview_row(row: EntityOverview) -> EntityOverviewResponse:
    return EntityOverviewResponse(
        id=row.id,
        code=row.code,
        name=row.name,
        months=[MonthStatusResponse.from_status(m) for m in row.months],
        total_paid=money(row.total_paid),
        total_expected=money(row.total_expected),
        year_debt=money(row.year_debt),
        past_years_debt=money(row.past_years_debt),
        total_debt=money(row.total_debt),
        flags=[ViolationFlag.from_violation(v) for v in row.flags],
    )


def _payment_history(history: PaymentHistory) -> PaymentHistoryResponse:
    return PaymentHistoryResponse(
        payments={month: money(amount) for month, amount in history.payments.items()},
        expected={month: money(amount) for month, amount in history.expected.items()},
        yearly=[YearFiguresResponse.from_figures(y) for y in history.yearly],
    )


@router.get("/reports/overview", response_model=OverviewResponse)
async def get_overview(
    year: int | None = Query(None, ge=1900, le=9999),
    service: ReportService = Depends(get_report_service),  # noqa: B008
) -> OverviewResponse:
    """Yearly grid of paid vs expected per unit (income) and creditor (expenses).

    Entities that fail to compute are listed under errors; the rest of the
    report is still returned.
    """
    try:
        report = service.get_overview(year or service.today.year)
        return OverviewResponse(
            year=report.year,
            units=[_overview_row(row) for row in report.units],
            creditors=[_overview_row(row) for row in report.creditors],
            totals=OverviewTotalsResponse(
                income=money(report.totals.income),
                expenses=money(report.totals.expenses),
                balance=money(report.totals.balance),
                total_debt=money(report.totals.total_debt),
            ),
            errors=[EntityErrorResponse.model_validate(e) for e in report.errors],
        )
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error in /reports/overview: %s", e, exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to build overview")


@router.get("/reports/monthly-status", response_model=MonthlyStatusResponse)
async def get_monthly_status(
    year: int | None = Query(None, ge=1900, le=9999),
    unit_id: int | None = None,
    creditor_id: int | None = None,
    service: ReportService = Depends(get_report_service),  # noqa: B008
) -> MonthlyStatusResponse:
    """Twelve months of paid/expected/is_paid for one unit or one creditor.

    Raises:
        404: Unit or creditor not found
        422: Neither or both of unit_id and creditor_id given
    """
    try:
        months = service.get_monthly_status(year or service.today.year, unit_id, creditor_id)
        return MonthlyStatusResponse(months=[MonthStatusResponse.from_status(m) for m in months])
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error in /reports/monthly-status: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch monthly status"
        )


@router.get("/reports/monthly-summary", response_model=MonthlySummaryResponse)
async def get_monthly_summary(
    service: ReportService = Depends(get_report_service),  # noqa: B008
) -> MonthlySummaryResponse:
    """Income, expenses and balance for every month with activity."""
    try:
        rows = service.get_monthly_summary()
        return MonthlySummaryResponse(
            data=[
                MonthlySummaryItem(
                    month=row.month,
                    income=money(row.income),
                    expenses=money(row.expenses),
                    balance=money(row.balance),
                )
                for row in rows
            ]
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error in /reports/monthly-summary: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate monthly summary"
        )


@router.get("/reports/debt-summary", response_model=DebtSummaryResponse)
async def get_debt_summary(
    start_year: int | None = Query(None, ge=1900, le=9999),
    end_year: int | None = Query(None, ge=1900, le=9999),
    service: ReportService = Depends(get_report_service),  # noqa: B008
) -> DebtSummaryResponse:
    """Per-unit debt by year, with the pre-ledger opening position first."""
    try:
        summary = service.get_debt_summary(start_year, end_year)
        return DebtSummaryResponse(
            start_year=summary.start_year,
            end_year=summary.end_year,
            units=[
                UnitDebtRowResponse(
                    id=row.id,
                    code=row.code,
                    name=row.name,
                    previous=YearFiguresResponse.from_figures(row.previous),
                    years=[YearFiguresResponse.from_figures(y) for y in row.years],
                    total_expected=money(row.total_expected),
                    total_paid=money(row.total_paid),
                    total_debt=money(row.total_debt),
                    flags=[ViolationFlag.from_violation(v) for v in row.flags],
                )
                for row in summary.units
            ],
            year_totals={y: YearFiguresResponse.from_figures(f) for y, f in summary.year_totals.items()},
            base_fees={y: money(v) for y, v in summary.base_fees.items()},
            extra_charge_totals={
                charge_id: {y: money(v) for y, v in totals.items()}
                for charge_id, totals in summary.extra_charge_totals.items()
            },
            errors=[EntityErrorResponse.model_validate(e) for e in summary.errors],
        )
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error in /reports/debt-summary: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to build debt summary"
        )


@router.get("/reports/audit", response_model=AuditResponse)
async def get_audit(
    service: ValidationService = Depends(get_validation_service),  # noqa: B008
) -> AuditResponse:
    """Run the ledger integrity checks and list every violation found."""
    try:
        violations = service.run()
        errors = sum(1 for v in violations if v.severity == Severity.ERROR)
        return AuditResponse(
            errors=errors,
            warnings=len(violations) - errors,
            violations=[ViolationResponse.from_violation(v) for v in violations],
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error in /reports/audit: %s", e, exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to run audit")


@router.get("/units/{unit_id}/debt", response_model=UnitDebtResponse)
async def get_unit_debt(
    unit_id: int,
    owner_id: int | None = None,
    service: ReportService = Depends(get_report_service),  # noqa: B008
) -> UnitDebtResponse:
    """Past-years debt and remaining previous debt of a unit.

    With owner_id only the months of that owner's period count.
    """
    try:
        return UnitDebtResponse.from_debt(service.get_unit_debt(unit_id, owner_id))
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error in /units/%s/debt: %s", unit_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to calculate debt"
        )


@router.get("/units/{unit_id}/payment-history", response_model=PaymentHistoryResponse)
async def get_unit_payment_history(
    unit_id: int,
    service: ReportService = Depends(get_report_service),  # noqa: B008
) -> PaymentHistoryResponse:
    try:
        return _payment_history(service.get_payment_history(unit_id=unit_id))
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error in /units/%s/payment-history: %s", unit_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch payment history"
        )


@router.get("/units/{unit_id}/extra-charges", response_model=list[ExtraChargeBalanceResponse])
async def get_unit_extra_charges(
    unit_id: int,
    service: ReportService = Depends(get_report_service),  # noqa: B008
) -> list[ExtraChargeBalanceResponse]:
    """Expected, paid and remaining amount of each extra charge the unit owes."""
    try:
        return [ExtraChargeBalanceResponse.from_balance(b) for b in service.get_outstanding_extras(unit_id)]
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error in /units/%s/extra-charges: %s", unit_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch extra charges"
        )


@router.get("/creditors/{creditor_id}/payment-history", response_model=PaymentHistoryResponse)
async def get_creditor_payment_history(
    creditor_id: int,
    service: ReportService = Depends(get_report_service),  # noqa: B008
) -> PaymentHistoryResponse:
    try:
        return _payment_history(service.get_payment_history(creditor_id=creditor_id))
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error in /creditors/%s/payment-history: %s", creditor_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch payment history"
        )
