"""Tests for config and logging."""

import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

import pytest

from installment_ledger.config import LedgerConfig, ProofStorageConfig, SurchargeConfig
from installment_ledger.exceptions import ConfigurationError
from installment_ledger.logging import JsonFormatter, get_logger, setup_logging


class TestSurchargeConfig:
    def test_default_values(self) -> None:
        config = SurchargeConfig()
        assert config.rate_percent == Decimal("5")
        assert config.cycle_days == 30

    def test_rejects_bad_values(self) -> None:
        with pytest.raises(ConfigurationError):
            SurchargeConfig(rate_percent=Decimal("-1"))
        with pytest.raises(ConfigurationError):
            SurchargeConfig(cycle_days=0)


class TestProofStorageConfig:
    def test_default_values(self) -> None:
        config = ProofStorageConfig()
        assert config.upload_dir == Path("uploads") / "payment-proofs"
        assert config.public_prefix == "/uploads/payment-proofs"
        assert config.max_bytes == 12 * 1024 * 1024
        assert ".pdf" in config.allowed_extensions

    def test_rejects_bad_limit(self) -> None:
        with pytest.raises(ConfigurationError):
            ProofStorageConfig(max_bytes=0)


class TestLedgerConfig:
    """Tests for LedgerConfig."""

    def test_default_values(self) -> None:
        config = LedgerConfig()
        assert config.database_url == "sqlite:///ledger.sqlite3"
        assert config.timezone == "Asia/Karachi"
        assert config.currency_prefix == "Rs. "
        assert config.log_level == "INFO"

    def test_unknown_timezone(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown timezone"):
            LedgerConfig(timezone="Mars/Olympus_Mons")

    def test_unknown_log_format(self) -> None:
        with pytest.raises(ConfigurationError):
            LedgerConfig(log_format="xml")

    def test_from_env(self, tmp_path) -> None:
        env = {
            "LEDGER_DATABASE_URL": "sqlite:///:memory:",
            "LEDGER_TIMEZONE": "UTC",
            "LEDGER_SURCHARGE_PERCENT": "2.5",
            "LEDGER_SURCHARGE_CYCLE_DAYS": "15",
            "LEDGER_UPLOAD_DIR": str(tmp_path),
            "LEDGER_PROOF_MAX_BYTES": "1024",
            "LEDGER_CURRENCY_PREFIX": "PKR ",
            "LOG_LEVEL": "DEBUG",
            "LOG_FORMAT": "json",
        }
        with patch.dict("os.environ", env, clear=True):
            config = LedgerConfig.from_env()

        assert config.database_url == "sqlite:///:memory:"
        assert config.timezone == "UTC"
        assert config.surcharge.rate_percent == Decimal("2.5")
        assert config.surcharge.cycle_days == 15
        assert config.proofs.upload_dir == tmp_path
        assert config.proofs.max_bytes == 1024
        assert config.currency_prefix == "PKR "
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_from_env_defaults(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            config = LedgerConfig.from_env()
        assert config.surcharge.rate_percent == Decimal("5")
        assert config.timezone == "Asia/Karachi"

    def test_from_env_invalid_number(self) -> None:
        with patch.dict("os.environ", {"LEDGER_SURCHARGE_PERCENT": "five"}, clear=True):
            with pytest.raises(ConfigurationError):
                LedgerConfig.from_env()


class TestLogging:
    def test_setup_logging_standard(self) -> None:
        setup_logging(level="DEBUG", format_type="standard")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger("installment_ledger").level == logging.DEBUG
        assert logging.getLogger("sqlalchemy").level == logging.WARNING

    def test_setup_logging_json(self) -> None:
        setup_logging(level="INFO", format_type="json")
        root = logging.getLogger()
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_invalid_level_falls_back_to_info(self) -> None:
        setup_logging(level="NOPE")
        assert logging.getLogger().level == logging.INFO

    def test_json_formatter(self) -> None:
        record = logging.LogRecord("installment_ledger.surcharge", logging.INFO, __file__, 1, "locked %d", (3,), None)
        data = json.loads(JsonFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["logger"] == "installment_ledger.surcharge"
        assert data["message"] == "locked 3"
        assert "timestamp" in data

    def test_json_formatter_with_exception(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        data = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad" in data["exception"]

    def test_get_logger(self) -> None:
        assert get_logger("installment_ledger.test").name == "installment_ledger.test"

    def test_json_formatter_ledger_context(self) -> None:
        record = logging.LogRecord("installment_ledger.service", logging.INFO, __file__, 1, "saved", (), None)
        record.contract_id = 7
        record.row_count = 10
        data = json.loads(JsonFormatter().format(record))
        assert data["contract_id"] == 7
        assert data["row_count"] == 10
        assert "total_surcharge" not in data
