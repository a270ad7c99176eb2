"""Reconciliation commands: explicit, idempotent ledger corrections.

Each command runs as one unit of work, writes an audit entry for every
entity it changes, and can be re-run safely: a second run with the same
arguments finds nothing left to change.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from condofin.models import FeeHistory, Owner
from condofin.services.allocation_service import AllocationLine, AllocationService
from condofin.services.audit_service import AuditService
from condofin.services.config import EngineConfig, load_config
from condofin.services.errors import InvariantViolationError
from condofin.services.months import previous_month, validate_month
from condofin.services.repository import LedgerRepository

logger = logging.getLogger(__name__)


@dataclass
class OwnerMerge:
    kept_id: int
    removed_ids: list[int] = field(default_factory=list)


@dataclass
class OwnerCleanupResult:
    unit_id: int
    merges: list[OwnerMerge] = field(default_factory=list)
    periods_fixed: list[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.merges or self.periods_fixed)


def normalize_name(name: str) -> str:
    """Lowercase alphanumerics of a name with accents stripped ("José  Sá" -> "josesa")."""
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_only = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[^a-z0-9]", "", ascii_only.lower())


def group_duplicate_owners(owners: list[Owner]) -> list[list[Owner]]:
    """Group owners whose normalized names contain one another."""
    groups: list[tuple[str, list[Owner]]] = []
    for owner in owners:
        key = normalize_name(owner.name)
        for group_key, group in groups:
            if key and (key in group_key or group_key in key):
                group.append(owner)
                break
        else:
            groups.append((key, [owner]))
    return [group for _, group in groups]


def _completeness(owner: Owner) -> tuple[int, int]:
    contacts = sum(1 for value in (owner.email, owner.telefone, owner.nib) if value)
    return contacts + len(owner.name.strip()), -(owner.id or 0)


class ReconciliationService:
    """Correction commands for fee periods, owners, transactions and allocations."""

    def __init__(self, db_session: Session, config: EngineConfig | None = None):
        """Initialize reconciliation service.

        Args:
            db_session: SQLAlchemy database session
            config: Engine configuration (defaults to load_config())
        """
        self.db = db_session
        self.repo = LedgerRepository(db_session)
        self.config = config if config is not None else load_config()
        self.allocations = AllocationService(db_session, config=self.config)

    # --- fee periods --------------------------------------------------------

    def close_fee_period(
        self,
        amount: Decimal,
        effective_from: str,
        unit_id: int | None = None,
        creditor_id: int | None = None,
        actor_id: int | None = None,
    ) -> FeeHistory:
        """Start a new fee period, closing the one in force before it.

        Any earlier record still open (or running past the new start) is
        closed at the month before effective_from. Re-running with the same
        arguments returns the existing record unchanged.

        Raises:
            NotFoundError: If the unit or creditor does not exist
            InvariantViolationError: If a record already starts after effective_from
        """
        validate_month(effective_from)
        amount = Decimal(amount)
        if amount < 0:
            raise ValueError(f"Fee amount must not be negative, got {amount}")
        if (unit_id is None) == (creditor_id is None):
            raise ValueError("Exactly one of unit_id or creditor_id is required")
        if unit_id is not None:
            self.repo.get_unit(unit_id)
        else:
            self.repo.get_creditor(creditor_id)

        history = self.repo.find_fee_history(unit_id=unit_id, creditor_id=creditor_id)
        later = [r for r in history if r.effective_from > effective_from]
        if later:
            raise InvariantViolationError(
                f"Fee record {later[0].id} already starts {later[0].effective_from}, "
                f"after the new period {effective_from}"
            )

        existing = next((r for r in history if r.effective_from == effective_from), None)
        close_at = previous_month(effective_from)

        with self.repo.atomic():
            for record in history:
                if record is existing:
                    continue
                if record.effective_to is None or record.effective_to > close_at:
                    previous_to = record.effective_to
                    record.effective_to = close_at
                    AuditService.log(
                        self.db,
                        "fee_history",
                        record.id,
                        "close_period",
                        actor_id,
                        {"effective_to": close_at, "was": previous_to},
                    )
                    logger.info(
                        "Closed fee record %d (%s) at %s", record.id, record.amount, close_at
                    )

            if existing is None:
                record = self.repo.add_fee_history(
                    amount, effective_from, unit_id=unit_id, creditor_id=creditor_id
                )
                AuditService.log(
                    self.db,
                    "fee_history",
                    record.id,
                    "create",
                    actor_id,
                    {"amount": amount, "effective_from": effective_from},
                )
            else:
                record = existing
                if Decimal(record.amount) != amount or record.effective_to is not None:
                    AuditService.log(
                        self.db,
                        "fee_history",
                        record.id,
                        "correct",
                        actor_id,
                        {"amount": amount, "was": record.amount, "effective_to": None},
                    )
                    record.amount = amount
                    record.effective_to = None
            self.db.flush()

        logger.info(
            "Fee period from %s set to %s (unit_id=%s creditor_id=%s)",
            effective_from,
            amount,
            unit_id,
            creditor_id,
        )
        return record

    # --- owners -------------------------------------------------------------

    def merge_duplicate_owners(self, unit_id: int, actor_id: int | None = None) -> OwnerCleanupResult:
        """Merge owners recorded twice under similar names, then fix the periods.

        Within a duplicate group the record with the most contact data is kept;
        its period widens to cover the group and its previous debt becomes the
        group's largest. Afterwards each owner without an end month is closed
        at the month before the next owner starts, and the last owner always
        becomes current, even when it is the only one.
        """
        self.repo.get_unit(unit_id)
        result = OwnerCleanupResult(unit_id=unit_id)

        with self.repo.atomic():
            for group in group_duplicate_owners(self.repo.find_owners(unit_id)):
                if len(group) < 2:
                    continue
                best = max(group, key=_completeness)
                others = [o for o in group if o.id != best.id]

                starts = [o.start_month for o in group]
                ends = [o.end_month for o in group]
                best.start_month = None if None in starts else min(starts)
                best.end_month = None if None in ends else max(ends)
                best.previous_debt = max(Decimal(o.previous_debt or 0) for o in group)
                for other in others:
                    best.email = best.email or other.email
                    best.telefone = best.telefone or other.telefone
                    best.nib = best.nib or other.nib
                    self.db.delete(other)

                self.db.flush()
                merge = OwnerMerge(kept_id=best.id, removed_ids=[o.id for o in others])
                result.merges.append(merge)
                AuditService.log(
                    self.db,
                    "owner",
                    best.id,
                    "merge",
                    actor_id,
                    {"removed": merge.removed_ids, "names": [o.name for o in others]},
                )
                logger.info(
                    "Unit %d: merged owners %s into %d (%s)",
                    unit_id,
                    merge.removed_ids,
                    best.id,
                    best.name,
                )

            owners = self.repo.find_owners(unit_id)
            for curr, nxt in zip(owners, owners[1:]):
                if curr.end_month is not None:
                    continue
                if nxt.start_month is None:
                    logger.warning(
                        "Unit %d: cannot close owner %d, next owner %d has no start month",
                        unit_id,
                        curr.id,
                        nxt.id,
                    )
                    continue
                end_month = previous_month(nxt.start_month)
                self.repo.update_owner_period(curr.id, end_month=end_month)
                result.periods_fixed.append(curr.id)
                AuditService.log(self.db, "owner", curr.id, "close_period", actor_id, {"end_month": end_month})

            if owners and owners[-1].end_month is not None:
                last = owners[-1]
                self.repo.update_owner_period(last.id, end_month=None)
                result.periods_fixed.append(last.id)
                AuditService.log(self.db, "owner", last.id, "set_current", actor_id, {"end_month": None})

        if result.changed:
            logger.info(
                "Unit %d owner cleanup: %d merges, %d periods fixed",
                unit_id,
                len(result.merges),
                len(result.periods_fixed),
            )
        return result

    # --- transactions and allocations ---------------------------------------

    def reallocate_transaction(
        self,
        transaction_id: int,
        lines: list[AllocationLine] | None = None,
        actor_id: int | None = None,
    ):
        """Replace a transaction's allocations.

        With explicit lines they must sum to the transaction amount; without,
        the transaction goes back to a single allocation at its reference month
        (or the month of its date).
        """
        if lines is None:
            return self.allocations.allocate_from_reference(transaction_id, actor_id)
        return self.allocations.replace_allocations(transaction_id, lines, actor_id)

    def purge_orphans(self) -> int:
        return self.allocations.reconcile_orphans()

    def update_transaction(
        self, transaction_id: int, patch: dict[str, Any], actor_id: int | None = None
    ):
        """Patch transaction fields (amount excluded) and record the change."""
        with self.repo.atomic():
            transaction = self.repo.update_transaction(transaction_id, patch)
            AuditService.log(
                self.db,
                "transaction",
                transaction_id,
                "update",
                actor_id,
                dict(patch),
            )
        logger.info("Updated transaction %d: %s", transaction_id, sorted(patch))
        return transaction

    def delete_transaction(self, transaction_id: int, actor_id: int | None = None) -> int:
        """Delete a transaction together with its allocations.

        Returns:
            Number of allocations removed with it
        """
        with self.repo.atomic():
            transaction = self.repo.lock_transaction(transaction_id)
            snapshot = {
                "date": transaction.transaction_date,
                "amount": transaction.amount,
                "description": transaction.description,
            }
            removed = self.repo.delete_allocations(transaction_id)
            self.repo.delete_transaction(transaction_id)
            AuditService.log(
                self.db,
                "transaction",
                transaction_id,
                "delete",
                actor_id,
                {**snapshot, "allocations_removed": removed},
            )
        logger.info("Deleted transaction %d and %d allocations", transaction_id, removed)
        return removed


__all__ = [
    "ReconciliationService",
    "OwnerCleanupResult",
    "OwnerMerge",
    "normalize_name",
    "group_duplicate_owners",
]
