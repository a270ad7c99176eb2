"""Owner period resolution and current-owner bookkeeping."""

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from condofin.models import Owner
from condofin.services.audit_service import AuditService
from condofin.services.errors import InvariantViolationError
from condofin.services.months import is_month_in_range, previous_month, validate_month
from condofin.services.repository import LedgerRepository

logger = logging.getLogger(__name__)


def is_month_in_owner_period(month: str, start_month: str | None, end_month: str | None) -> bool:
    """Check if a month falls within an owner's period.

    start_month None = from the beginning, end_month None = current/ongoing.
    """
    return is_month_in_range(month, start_month, end_month)


def owner_for_month(owners: Iterable[Owner], month: str) -> Owner | None:
    """First owner whose period contains the month, or None."""
    validate_month(month)
    for owner in owners:
        if is_month_in_owner_period(month, owner.start_month, owner.end_month):
            return owner
    return None


def current_owner(owners: Iterable[Owner]) -> Owner | None:
    """The owner with no end month, or None."""
    for owner in owners:
        if owner.end_month is None:
            return owner
    return None


class OwnerService:
    """Owner period writes that keep one current owner per unit."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session
        self.repo = LedgerRepository(db_session)

    def establish_current_owner(
        self,
        unit_id: int,
        name: str,
        start_month: str,
        email: str | None = None,
        telefone: str | None = None,
        nib: str | None = None,
        previous_debt: Decimal = Decimal("0"),
        actor_id: int | None = None,
    ) -> Owner:
        """Record a new current owner and close the previous one.

        The previous current owner's end_month becomes the month before
        start_month. Contact fields default to the unit's own.

        Raises:
            NotFoundError: If the unit does not exist
            InvariantViolationError: If the previous owner started after start_month
        """
        validate_month(start_month)
        unit = self.repo.get_unit(unit_id)

        with self.repo.atomic():
            previous = current_owner(self.repo.find_owners(unit_id))
            if previous is not None:
                end_month = previous_month(start_month)
                if previous.start_month and previous.start_month > end_month:
                    raise InvariantViolationError(
                        f"Owner {previous.id} starts {previous.start_month}, "
                        f"cannot end before new owner starting {start_month}"
                    )
                self.repo.update_owner_period(previous.id, end_month=end_month)
                AuditService.log(
                    self.db, "owner", previous.id, "close_period", actor_id, {"end_month": end_month}
                )

            owner = Owner(
                unit_id=unit.id,
                name=name,
                email=email if email is not None else unit.email,
                telefone=telefone if telefone is not None else unit.telefone,
                nib=nib if nib is not None else unit.nib,
                start_month=start_month,
                end_month=None,
                previous_debt=previous_debt,
            )
            self.db.add(owner)
            self.db.flush()
            AuditService.log(
                self.db, "owner", owner.id, "create", actor_id, {"start_month": start_month}
            )

        logger.info(
            "Established current owner: unit=%s owner_id=%d start=%s previous_owner=%s",
            unit.code,
            owner.id,
            start_month,
            previous.id if previous else None,
        )
        return owner


__all__ = [
    "is_month_in_owner_period",
    "owner_for_month",
    "current_owner",
    "OwnerService",
]
