"""FastAPI dependencies wiring sessions and configuration into the services."""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from condofin.services import get_db
from condofin.services.allocation_service import AllocationService
from condofin.services.config import EngineConfig, load_config
from condofin.services.owner_period import OwnerService
from condofin.services.reconciliation_service import ReconciliationService
from condofin.services.report_service import ReportService
from condofin.services.validation_service import ValidationService


@lru_cache
def get_engine_config() -> EngineConfig:
    """Engine configuration, loaded once per process."""
    return load_config()


def get_report_service(
    db: Session = Depends(get_db),  # noqa: B008
    config: EngineConfig = Depends(get_engine_config),  # noqa: B008
) -> ReportService:
    return ReportService(db, config=config)


def get_allocation_service(
    db: Session = Depends(get_db),  # noqa: B008
    config: EngineConfig = Depends(get_engine_config),  # noqa: B008
) -> AllocationService:
    return AllocationService(db, config=config)


def get_reconciliation_service(
    db: Session = Depends(get_db),  # noqa: B008
    config: EngineConfig = Depends(get_engine_config),  # noqa: B008
) -> ReconciliationService:
    return ReconciliationService(db, config=config)


def get_validation_service(
    db: Session = Depends(get_db),  # noqa: B008
    config: EngineConfig = Depends(get_engine_config),  # noqa: B008
) -> ValidationService:
    return ValidationService(db, config.allocation_tolerance)


def get_owner_service(db: Session = Depends(get_db)) -> OwnerService:  # noqa: B008
    return OwnerService(db)
