"""Domain exceptions raised by the accounting engine.

Callers distinguish three failure families:
- NotFoundError: a referenced unit/creditor/transaction/owner does not exist
- InvariantViolationError: data breaks a ledger invariant (carries the violations)
- AmbiguousLumpSumError: a lump-sum payment needs manual review before splitting
"""

from decimal import Decimal


class CondoError(Exception):
    """Base exception for accounting engine errors."""

    pass


class ConfigError(CondoError):
    """Configuration loading or validation error."""

    pass


class NotFoundError(CondoError):
    """Referenced entity does not exist."""

    def __init__(self, entity_type: str, entity_id: int | str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class InvariantViolationError(CondoError):
    """Operation would break (or found broken) a ledger invariant."""

    def __init__(self, message: str, violations: list | None = None):
        self.violations = violations or []
        super().__init__(message)


class AmbiguousLumpSumError(CondoError):
    """Lump-sum payment whose month count cannot be derived safely."""

    def __init__(
        self,
        transaction_id: int | None,
        amount: Decimal,
        monthly_fee: Decimal,
        ratio: Decimal | None,
        reason: str,
    ):
        self.transaction_id = transaction_id
        self.amount = amount
        self.monthly_fee = monthly_fee
        self.ratio = ratio
        self.reason = reason
        super().__init__(
            f"Transaction {transaction_id} ({amount}) needs manual review: {reason}"
        )


__all__ = [
    "CondoError",
    "ConfigError",
    "NotFoundError",
    "InvariantViolationError",
    "AmbiguousLumpSumError",
]
