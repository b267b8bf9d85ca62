"""Exception hierarchy for the installment ledger."""

from __future__ import annotations

from typing import Iterable, List, Optional


class LedgerError(Exception):
    """Base exception for all ledger errors."""


class LedgerValidationError(LedgerError):
    """Raised when input is rejected before anything is persisted.

    ``errors`` holds one message per problem found so callers can report all
    of them at once.
    """

    def __init__(self, errors: Iterable[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid ledger input")


class ProofRejectedError(LedgerValidationError):
    """Raised when an uploaded payment proof has a disallowed type or size."""


class LedgerNotFoundError(LedgerError):
    """Raised when a referenced entity does not exist."""

    entity = "Entity"

    def __init__(self, identifier: object, message: Optional[str] = None) -> None:
        self.identifier = identifier
        super().__init__(message or f"{self.entity} not found: {identifier}")


class ContractNotFoundError(LedgerNotFoundError):
    """Raised when a contract id does not exist."""

    entity = "Contract"


class RowNotFoundError(LedgerNotFoundError):
    """Raised when a billing row id or sequence number is not on the contract."""

    entity = "Row"


class PaymentNotFoundError(LedgerNotFoundError):
    """Raised when a child payment id does not belong to its parent row."""

    entity = "Child payment"


class ConfigurationError(LedgerError):
    """Raised when configuration is invalid or missing."""
