"""Request and response schemas for the reporting and ledger API.

Amounts leave the engine as Decimal with full precision and are rounded to
cents here, at the presentation boundary.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from condofin.models import TransactionType
from condofin.services.allocation_service import AllocationBatchResult
from condofin.services.debt_service import ExtraChargeBalance, MonthStatus, UnitDebt, YearFigures
from condofin.services.months import validate_month
from condofin.services.validation_service import Violation

CENT = Decimal("0.01")


def money(value: Decimal | None) -> float:
    """Round a Decimal to cents for output."""
    if value is None:
        return 0.0
    return float(Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


class ErrorResponse(BaseModel):
    """Error response body."""

    error: dict[str, Any]


# --- reports ----------------------------------------------------------------


class ExtraLineResponse(BaseModel):
    id: int | None = None
    description: str
    amount: float


class MonthStatusResponse(BaseModel):
    """Paid vs expected for one month."""

    month: str
    """Month (YYYY-MM)."""

    paid: float
    expected: float
    base_fee: float
    extras: list[ExtraLineResponse] = []
    is_paid: bool

    @classmethod
    def from_status(cls, status: MonthStatus) -> "MonthStatusResponse":
        return cls(
            month=status.month,
            paid=money(status.paid),
            expected=money(status.expected),
            base_fee=money(status.base_fee),
            extras=[
                ExtraLineResponse(id=e.id, description=e.description, amount=money(e.amount))
                for e in status.extras
            ],
            is_paid=status.is_paid,
        )


class MonthlyStatusResponse(BaseModel):
    months: list[MonthStatusResponse]


class ViolationFlag(BaseModel):
    """Open ledger violation attached to a report row."""

    kind: str
    severity: str
    message: str

    @classmethod
    def from_violation(cls, violation: Violation) -> "ViolationFlag":
        return cls(kind=violation.kind.value, severity=violation.severity.value, message=violation.message)


class EntityErrorResponse(BaseModel):
    entity_type: str
    entity_id: int
    message: str

    model_config = ConfigDict(from_attributes=True)


class EntityOverviewResponse(BaseModel):
    """One unit or creditor row of the yearly overview."""

    id: int
    code: str
    name: str
    months: list[MonthStatusResponse]
    total_paid: float
    total_expected: float
    year_debt: float
    past_years_debt: float
    total_debt: float
    flags: list[ViolationFlag] = []


class OverviewTotalsResponse(BaseModel):
    income: float
    expenses: float
    balance: float
    total_debt: float


class OverviewResponse(BaseModel):
    year: int
    units: list[EntityOverviewResponse]
    creditors: list[EntityOverviewResponse]
    totals: OverviewTotalsResponse
    errors: list[EntityErrorResponse] = []


class UnitDebtResponse(BaseModel):
    """Debt position of a unit (optionally one owner's period)."""

    unit_id: int
    owner_id: int | None = None
    year: int
    expected_ytd: float
    paid_ytd: float
    year_debt: float
    past_years_debt: float
    previous_debt: float
    previous_debt_paid: float
    previous_debt_remaining: float
    total_debt: float

    @classmethod
    def from_debt(cls, debt: UnitDebt) -> "UnitDebtResponse":
        return cls(
            unit_id=debt.unit_id,
            owner_id=debt.owner_id,
            year=debt.year,
            expected_ytd=money(debt.expected_ytd),
            paid_ytd=money(debt.paid_ytd),
            year_debt=money(debt.year_debt),
            past_years_debt=money(debt.past_years_debt),
            previous_debt=money(debt.previous_debt),
            previous_debt_paid=money(debt.previous_debt_paid),
            previous_debt_remaining=money(debt.previous_debt_remaining),
            total_debt=money(debt.total_debt),
        )


class YearFiguresResponse(BaseModel):
    year: int
    expected: float
    paid: float
    debt: float
    accumulated_debt: float = 0.0

    @classmethod
    def from_figures(cls, figures: YearFigures) -> "YearFiguresResponse":
        return cls(
            year=figures.year,
            expected=money(figures.expected),
            paid=money(figures.paid),
            debt=money(figures.debt),
            accumulated_debt=money(figures.accumulated_debt),
        )


class PaymentHistoryResponse(BaseModel):
    payments: dict[str, float]
    expected: dict[str, float]
    yearly: list[YearFiguresResponse]


class ExtraChargeBalanceResponse(BaseModel):
    extra_charge_id: int
    description: str
    monthly_amount: float
    months: int
    total_expected: float
    total_paid: float
    remaining: float

    @classmethod
    def from_balance(cls, balance: ExtraChargeBalance) -> "ExtraChargeBalanceResponse":
        return cls(
            extra_charge_id=balance.extra_charge_id,
            description=balance.description,
            monthly_amount=money(balance.monthly_amount),
            months=balance.months,
            total_expected=money(balance.total_expected),
            total_paid=money(balance.total_paid),
            remaining=money(balance.remaining),
        )


class MonthlySummaryItem(BaseModel):
    month: str
    income: float
    expenses: float
    balance: float


class MonthlySummaryResponse(BaseModel):
    data: list[MonthlySummaryItem]


class UnitDebtRowResponse(BaseModel):
    id: int
    code: str
    name: str
    previous: YearFiguresResponse
    years: list[YearFiguresResponse]
    total_expected: float
    total_paid: float
    total_debt: float
    flags: list[ViolationFlag] = []


class DebtSummaryResponse(BaseModel):
    start_year: int
    end_year: int
    units: list[UnitDebtRowResponse]
    year_totals: dict[int, YearFiguresResponse]
    base_fees: dict[int, float]
    extra_charge_totals: dict[int, dict[int, float]]
    errors: list[EntityErrorResponse] = []


class ViolationResponse(BaseModel):
    kind: str
    severity: str
    entity_type: str
    entity_id: int
    message: str
    expected: str | None = None
    actual: str | None = None

    @classmethod
    def from_violation(cls, violation: Violation) -> "ViolationResponse":
        return cls(
            kind=violation.kind.value,
            severity=violation.severity.value,
            entity_type=violation.entity_type,
            entity_id=violation.entity_id,
            message=violation.message,
            expected=str(violation.expected) if violation.expected is not None else None,
            actual=str(violation.actual) if violation.actual is not None else None,
        )


class AuditResponse(BaseModel):
    errors: int
    warnings: int
    violations: list[ViolationResponse]


# --- ledger commands --------------------------------------------------------


class AllocationResponse(BaseModel):
    """One month allocation of a transaction."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    transaction_id: int
    kind: str
    month: str | None = None
    amount: float
    extra_charge_id: int | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _kind_value(cls, value: Any) -> Any:
        return getattr(value, "value", value)

    @field_validator("amount", mode="before")
    @classmethod
    def _round_amount(cls, value: Any) -> Any:
        return money(value)


class AllocationsResponse(BaseModel):
    transaction_id: int
    allocations: list[AllocationResponse]


class AllocationLinePayload(BaseModel):
    """Explicit allocation line: a month, or the prior-debt carryover when month is omitted."""

    month: str | None = None
    prior_debt: bool = False
    amount: Decimal
    extra_charge_id: int | None = None

    @field_validator("month")
    @classmethod
    def _valid_month(cls, value: str | None) -> str | None:
        return validate_month(value) if value is not None else None


class ReallocatePayload(BaseModel):
    lines: list[AllocationLinePayload] | None = None
    """Explicit lines; omit to reset to the reference month allocation."""

    actor_id: int | None = None


class SingleMonthPayload(BaseModel):
    month: str
    actor_id: int | None = None

    @field_validator("month")
    @classmethod
    def _valid_month(cls, value: str) -> str:
        return validate_month(value)


class ActorPayload(BaseModel):
    actor_id: int | None = None


class LumpSumBatchPayload(BaseModel):
    min_amount: Decimal = Field(default=Decimal("100"), gt=0)
    actor_id: int | None = None


class NeedsReviewResponse(BaseModel):
    transaction_id: int | None
    amount: float
    monthly_fee: float
    ratio: float | None = None
    reason: str


class BatchAllocationResponse(BaseModel):
    created: int
    skipped: list[int]
    needs_review: list[NeedsReviewResponse] = []

    @classmethod
    def from_result(cls, result: AllocationBatchResult) -> "BatchAllocationResponse":
        return cls(
            created=result.created,
            skipped=result.skipped,
            needs_review=[
                NeedsReviewResponse(
                    transaction_id=e.transaction_id,
                    amount=money(e.amount),
                    monthly_fee=money(e.monthly_fee),
                    ratio=float(e.ratio) if e.ratio is not None else None,
                    reason=e.reason,
                )
                for e in result.needs_review
            ],
        )


class TransactionPatch(BaseModel):
    """Editable transaction fields; the amount is not among them."""

    model_config = ConfigDict(extra="forbid")

    transaction_date: date | None = None
    value_date: date | None = None
    description: str | None = None
    type: TransactionType | None = None
    category: str | None = None
    reference_month: str | None = None
    unit_id: int | None = None
    creditor_id: int | None = None
    actor_id: int | None = None

    @field_validator("reference_month")
    @classmethod
    def _valid_month(cls, value: str | None) -> str | None:
        return validate_month(value) if value is not None else None


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    transaction_date: date
    description: str
    amount: float
    type: str
    category: str | None = None
    reference_month: str | None = None
    unit_id: int | None = None
    creditor_id: int | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _type_value(cls, value: Any) -> Any:
        return getattr(value, "value", value)

    @field_validator("amount", mode="before")
    @classmethod
    def _round_amount(cls, value: Any) -> Any:
        return money(value)


class DeleteTransactionResponse(BaseModel):
    transaction_id: int
    allocations_removed: int


class FeePeriodPayload(BaseModel):
    amount: Decimal = Field(ge=0)
    effective_from: str
    unit_id: int | None = None
    creditor_id: int | None = None
    actor_id: int | None = None

    @field_validator("effective_from")
    @classmethod
    def _valid_month(cls, value: str) -> str:
        return validate_month(value)


class FeePeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    unit_id: int | None = None
    creditor_id: int | None = None
    amount: float
    effective_from: str
    effective_to: str | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _round_amount(cls, value: Any) -> Any:
        return money(value)


class NewOwnerPayload(BaseModel):
    name: str = Field(min_length=1)
    start_month: str
    email: str | None = None
    telefone: str | None = None
    nib: str | None = None
    previous_debt: Decimal = Decimal("0")
    actor_id: int | None = None

    @field_validator("start_month")
    @classmethod
    def _valid_month(cls, value: str) -> str:
        return validate_month(value)


class OwnerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    unit_id: int
    name: str
    start_month: str | None = None
    end_month: str | None = None


class OwnerCleanupResponse(BaseModel):
    unit_id: int
    merges: list[dict[str, Any]]
    periods_fixed: list[int]


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    actor_id: int | None = None
    changes: dict[str, Any] | None = None
    created_at: datetime


class PurgeResponse(BaseModel):
    removed: int
