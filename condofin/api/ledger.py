"""Ledger correction endpoints: allocations, transactions, fee periods, owners.

Authorization is not enforced here; these routes are meant to sit behind the
administrator layer of the deployment.
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from condofin.api.deps import (
    get_allocation_service,
    get_owner_service,
    get_reconciliation_service,
)
from condofin.api.errors import raise_app_error, to_app_error
from condofin.api.schemas import (
    ActorPayload,
    AllocationResponse,
    AllocationsResponse,
    AuditEntryResponse,
    BatchAllocationResponse,
    DeleteTransactionResponse,
    FeePeriodPayload,
    FeePeriodResponse,
    LumpSumBatchPayload,
    NewOwnerPayload,
    OwnerCleanupResponse,
    OwnerResponse,
    PurgeResponse,
    ReallocatePayload,
    SingleMonthPayload,
    TransactionPatch,
    TransactionResponse,
)
from condofin.models import PriorDebtCarryover, RegularMonth
from condofin.services import get_db
from condofin.services.allocation_service import AllocationLine, AllocationService
from condofin.services.audit_service import AuditService
from condofin.services.errors import CondoError
from condofin.services.owner_period import OwnerService
from condofin.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ledger", tags=["ledger"])


def _allocations(transaction_id: int, allocations) -> AllocationsResponse:
    return AllocationsResponse(
        transaction_id=transaction_id,
        allocations=[AllocationResponse.model_validate(a) for a in allocations],
    )


@router.get("/transactions/{transaction_id}/allocations", response_model=AllocationsResponse)
async def list_allocations(
    transaction_id: int,
    service: AllocationService = Depends(get_allocation_service),  # noqa: B008
) -> AllocationsResponse:
    try:
        service.repo.get_transaction(transaction_id)
        return _allocations(transaction_id, service.repo.find_allocations(transaction_id=transaction_id))
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error listing allocations of %s: %s", transaction_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list allocations"
        )


@router.put("/transactions/{transaction_id}/allocations", response_model=AllocationsResponse)
async def reallocate_transaction(
    transaction_id: int,
    payload: ReallocatePayload,
    service: ReconciliationService = Depends(get_reconciliation_service),  # noqa: B008
) -> AllocationsResponse:
    """Replace a transaction's allocations with explicit lines.

    Lines without a month (or with prior_debt set) pay the prior-debt
    carryover. Omitting lines resets to the reference month allocation.

    Raises:
        404: Transaction not found
        409: Lines do not sum to the transaction amount
    """
    lines = None
    if payload.lines is not None:
        lines = [
            AllocationLine(
                target=PriorDebtCarryover() if line.prior_debt or line.month is None else RegularMonth(line.month),
                amount=line.amount,
                extra_charge_id=line.extra_charge_id,
            )
            for line in payload.lines
        ]
    try:
        allocations = service.reallocate_transaction(transaction_id, lines, payload.actor_id)
        return _allocations(transaction_id, allocations)
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error reallocating transaction %s: %s", transaction_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to reallocate transaction"
        )


@router.post("/transactions/{transaction_id}/allocations/single-month", response_model=AllocationsResponse)
async def allocate_single_month(
    transaction_id: int,
    payload: SingleMonthPayload,
    service: AllocationService = Depends(get_allocation_service),  # noqa: B008
) -> AllocationsResponse:
    try:
        allocations = service.allocate_single_month(transaction_id, payload.month, payload.actor_id)
        return _allocations(transaction_id, allocations)
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error allocating transaction %s: %s", transaction_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to allocate transaction"
        )


@router.post("/transactions/{transaction_id}/allocations/lump-sum", response_model=AllocationsResponse)
async def split_lump_sum(
    transaction_id: int,
    payload: ActorPayload,
    service: AllocationService = Depends(get_allocation_service),  # noqa: B008
) -> AllocationsResponse:
    """Split a lump-sum payment across the months it covers.

    Raises:
        404: Transaction not found
        422: Month count ambiguous; needs manual review
    """
    try:
        allocations = service.split_lump_sum(transaction_id, payload.actor_id)
        return _allocations(transaction_id, allocations)
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error splitting lump sum %s: %s", transaction_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to split lump sum"
        )


@router.post("/allocations/unallocated", response_model=BatchAllocationResponse)
async def allocate_unallocated(
    payload: ActorPayload,
    service: AllocationService = Depends(get_allocation_service),  # noqa: B008
) -> BatchAllocationResponse:
    """Allocate every transaction that has no allocation yet to its month."""
    try:
        result = service.allocate_unallocated(payload.actor_id)
        return BatchAllocationResponse.from_result(result)
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error allocating unallocated transactions: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to allocate transactions"
        )


@router.post("/allocations/lump-sums", response_model=BatchAllocationResponse)
async def split_lump_sums(
    payload: LumpSumBatchPayload,
    service: AllocationService = Depends(get_allocation_service),  # noqa: B008
) -> BatchAllocationResponse:
    """Split large single-month unit payments; ambiguous ones come back in needs_review."""
    try:
        result = service.split_lump_sums(payload.min_amount, payload.actor_id)
        return BatchAllocationResponse.from_result(result)
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error splitting lump sums: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to split lump sums"
        )


@router.post("/allocations/purge-orphans", response_model=PurgeResponse)
async def purge_orphans(
    service: ReconciliationService = Depends(get_reconciliation_service),  # noqa: B008
) -> PurgeResponse:
    try:
        return PurgeResponse(removed=service.purge_orphans())
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error purging orphan allocations: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to purge orphans"
        )


@router.patch("/transactions/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: int,
    payload: TransactionPatch,
    service: ReconciliationService = Depends(get_reconciliation_service),  # noqa: B008
) -> TransactionResponse:
    """Correct transaction fields (date, classification, links). The amount cannot change."""
    patch = payload.model_dump(exclude_unset=True, exclude={"actor_id"})
    try:
        transaction = service.update_transaction(transaction_id, patch, payload.actor_id)
        return TransactionResponse.model_validate(transaction)
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error updating transaction %s: %s", transaction_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update transaction"
        )


@router.delete("/transactions/{transaction_id}", response_model=DeleteTransactionResponse)
async def delete_transaction(
    transaction_id: int,
    actor_id: int | None = None,
    service: ReconciliationService = Depends(get_reconciliation_service),  # noqa: B008
) -> DeleteTransactionResponse:
    """Delete a transaction (e.g. an imported duplicate) with its allocations."""
    try:
        removed = service.delete_transaction(transaction_id, actor_id)
        return DeleteTransactionResponse(transaction_id=transaction_id, allocations_removed=removed)
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error deleting transaction %s: %s", transaction_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete transaction"
        )


@router.post("/fee-periods", response_model=FeePeriodResponse, status_code=status.HTTP_201_CREATED)
async def close_fee_period(
    payload: FeePeriodPayload,
    service: ReconciliationService = Depends(get_reconciliation_service),  # noqa: B008
) -> FeePeriodResponse:
    """Start a new fee period for a unit or creditor, closing the previous one.

    Raises:
        404: Unit or creditor not found
        409: A later fee period already exists
        422: Neither or both of unit_id and creditor_id given
    """
    try:
        record = service.close_fee_period(
            payload.amount,
            payload.effective_from,
            unit_id=payload.unit_id,
            creditor_id=payload.creditor_id,
            actor_id=payload.actor_id,
        )
        return FeePeriodResponse.model_validate(record)
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error closing fee period: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to close fee period"
        )


@router.post("/units/{unit_id}/owners", response_model=OwnerResponse, status_code=status.HTTP_201_CREATED)
async def establish_current_owner(
    unit_id: int,
    payload: NewOwnerPayload,
    service: OwnerService = Depends(get_owner_service),  # noqa: B008
) -> OwnerResponse:
    """Record a new current owner; the previous one ends the month before."""
    try:
        owner = service.establish_current_owner(
            unit_id,
            payload.name,
            payload.start_month,
            email=payload.email,
            telefone=payload.telefone,
            nib=payload.nib,
            previous_debt=payload.previous_debt,
            actor_id=payload.actor_id,
        )
        return OwnerResponse.model_validate(owner)
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error establishing owner for unit %s: %s", unit_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to establish owner"
        )


@router.post("/units/{unit_id}/owners/merge-duplicates", response_model=OwnerCleanupResponse)
async def merge_duplicate_owners(
    unit_id: int,
    payload: ActorPayload,
    service: ReconciliationService = Depends(get_reconciliation_service),  # noqa: B008
) -> OwnerCleanupResponse:
    try:
        result = service.merge_duplicate_owners(unit_id, payload.actor_id)
        return OwnerCleanupResponse(
            unit_id=result.unit_id,
            merges=[{"kept_id": m.kept_id, "removed_ids": m.removed_ids} for m in result.merges],
            periods_fixed=result.periods_fixed,
        )
    except HTTPException:
        raise
    except (CondoError, ValueError) as e:
        raise_app_error(to_app_error(e))
    except Exception as e:
        logger.error("Error merging owners of unit %s: %s", unit_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to merge owners"
        )


@router.get("/audit/{entity_type}/{entity_id}", response_model=list[AuditEntryResponse])
async def get_audit_trail(
    entity_type: Literal["transaction", "fee_history", "owner"],
    entity_id: int,
    db: Session = Depends(get_db),  # noqa: B008
) -> list[AuditEntryResponse]:
    """Corrections recorded for one row, oldest first (also for deleted transactions)."""
    try:
        return [AuditEntryResponse.model_validate(e) for e in AuditService.history(db, entity_type, entity_id)]
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error reading audit trail of %s %s: %s", entity_type, entity_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to read audit trail"
        )
