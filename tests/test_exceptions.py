"""Tests for custom exception hierarchy."""

from installment_ledger.exceptions import (
    ConfigurationError,
    ContractNotFoundError,
    LedgerError,
    LedgerNotFoundError,
    LedgerValidationError,
    PaymentNotFoundError,
    ProofRejectedError,
    RowNotFoundError,
)


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_ledger_error_is_exception(self) -> None:
        assert isinstance(LedgerError("test"), Exception)

    def test_validation_error_is_ledger_error(self) -> None:
        assert isinstance(LedgerValidationError("test"), LedgerError)

    def test_proof_rejected_is_validation_error(self) -> None:
        err = ProofRejectedError("Only PNG/JPG/WEBP/PDF allowed")
        assert isinstance(err, LedgerValidationError)
        assert isinstance(err, LedgerError)

    def test_not_found_errors(self) -> None:
        for cls in (ContractNotFoundError, RowNotFoundError, PaymentNotFoundError):
            assert isinstance(cls(1), LedgerNotFoundError)
            assert isinstance(cls(1), LedgerError)

    def test_configuration_error_is_ledger_error(self) -> None:
        assert isinstance(ConfigurationError("test"), LedgerError)


class TestMessages:
    def test_validation_errors_joined(self) -> None:
        err = LedgerValidationError(["Row 1: bad", "Row 2: worse"])
        assert err.errors == ["Row 1: bad", "Row 2: worse"]
        assert str(err) == "Row 1: bad; Row 2: worse"

    def test_single_validation_message(self) -> None:
        err = LedgerValidationError("Months must be greater than 0")
        assert err.errors == ["Months must be greater than 0"]

    def test_not_found_message(self) -> None:
        assert str(ContractNotFoundError(12)) == "Contract not found: 12"
        assert str(RowNotFoundError(3)) == "Row not found: 3"
        assert str(PaymentNotFoundError(9)) == "Child payment not found: 9"
        assert RowNotFoundError(3).identifier == 3

    def test_custom_not_found_message(self) -> None:
        assert str(ContractNotFoundError(1, "gone")) == "gone"
