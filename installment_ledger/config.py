"""Configuration management for the installment ledger."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ConfigurationError
from .utils import DEFAULT_TIMEZONE

DEFAULT_PROOF_EXTENSIONS: Tuple[str, ...] = (".png", ".jpg", ".jpeg", ".webp", ".pdf")


@dataclass
class SurchargeConfig:
    """Late-payment surcharge settings."""

    rate_percent: Decimal = Decimal("5")
    cycle_days: int = 30

    def __post_init__(self) -> None:
        self.rate_percent = Decimal(self.rate_percent)
        if self.rate_percent < 0:
            raise ConfigurationError("Surcharge rate must not be negative")
        if self.cycle_days <= 0:
            raise ConfigurationError("Surcharge cycle length must be positive")


@dataclass
class ProofStorageConfig:
    """Where payment-proof uploads are stored and what is accepted."""

    upload_dir: Path = field(default_factory=lambda: Path("uploads") / "payment-proofs")
    public_prefix: str = "/uploads/payment-proofs"
    max_bytes: int = 12 * 1024 * 1024
    allowed_extensions: Tuple[str, ...] = DEFAULT_PROOF_EXTENSIONS

    def __post_init__(self) -> None:
        self.upload_dir = Path(self.upload_dir)
        if self.max_bytes <= 0:
            raise ConfigurationError("Proof size limit must be positive")


@dataclass
class LedgerConfig:
    """Main configuration for the installment ledger."""

    database_url: str = "sqlite:///ledger.sqlite3"
    timezone: str = DEFAULT_TIMEZONE
    currency_prefix: str = "Rs. "
    surcharge: SurchargeConfig = field(default_factory=SurchargeConfig)
    proofs: ProofStorageConfig = field(default_factory=ProofStorageConfig)
    log_level: str = "INFO"
    log_format: str = "standard"

    def __post_init__(self) -> None:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"Unknown timezone: {self.timezone}") from exc
        if self.log_format not in ("standard", "json"):
            raise ConfigurationError(f"Unknown log format: {self.log_format}")

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Create config from environment variables."""
        try:
            surcharge = SurchargeConfig(
                rate_percent=Decimal(os.getenv("LEDGER_SURCHARGE_PERCENT", "5")),
                cycle_days=int(os.getenv("LEDGER_SURCHARGE_CYCLE_DAYS", "30")),
            )
            proofs = ProofStorageConfig(
                upload_dir=Path(os.getenv("LEDGER_UPLOAD_DIR", "uploads/payment-proofs")),
                max_bytes=int(os.getenv("LEDGER_PROOF_MAX_BYTES", str(12 * 1024 * 1024))),
            )
        except (InvalidOperation, ValueError) as exc:
            raise ConfigurationError(f"Invalid ledger configuration: {exc}") from exc

        return cls(
            database_url=os.getenv("LEDGER_DATABASE_URL", "sqlite:///ledger.sqlite3"),
            timezone=os.getenv("LEDGER_TIMEZONE", DEFAULT_TIMEZONE),
            currency_prefix=os.getenv("LEDGER_CURRENCY_PREFIX", "Rs. "),
            surcharge=surcharge,
            proofs=proofs,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )
