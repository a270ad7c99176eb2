"""Audit trail of ledger corrections.

Every reallocation, fee-period change, owner merge and transaction edit
leaves one AuditLog row. Entries are added to the caller's session and are
committed (or rolled back) together with the change they describe.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from condofin.models.audit_log import AuditLog


def to_json_value(value: Any) -> Any:
    """Convert ledger values into something the JSON column can store.

    Decimals become strings so amounts keep their exact cents.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    return value


class AuditService:
    """Writes and reads the correction trail."""

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Record one correction.

        Args:
            db: Database session (the entry joins its unit of work)
            entity_type: "transaction", "fee_history" or "owner"
            entity_id: Primary key of the corrected row
            action: What was done ("split_lump_sum", "close_period", "merge", ...)
            actor_id: Administrator who ran the correction, if known
            changes: Field values before/after; Decimal, date and enum values are converted

        Returns:
            The pending AuditLog row
        """
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes=to_json_value(changes) if changes is not None else None,
        )
        db.add(audit)
        return audit

    @staticmethod
    def history(db: Session, entity_type: str, entity_id: int) -> list[AuditLog]:
        """Corrections recorded for one row, oldest first."""
        return (
            db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id)
            .all()
        )


__all__ = ["AuditService", "to_json_value"]
