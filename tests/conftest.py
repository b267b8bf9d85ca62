"""Pytest configuration and fixtures."""

from datetime import date
from decimal import Decimal

import pytest

from installment_ledger.clock import FixedClock
from installment_ledger.config import ProofStorageConfig
from installment_ledger.data_models import Contract
from installment_ledger.proofs import DiskProofStore
from installment_ledger.service import LedgerService
from installment_ledger.store import SqlLedgerStore
from installment_ledger.surcharge import SurchargeEngine


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned before the first installment falls due."""
    return FixedClock(date(2025, 1, 1))


@pytest.fixture
def store():
    """In-memory ledger store."""
    store = SqlLedgerStore("sqlite://")
    yield store
    store.dispose()


@pytest.fixture
def proof_store(tmp_path) -> DiskProofStore:
    """Proof store writing under a temporary directory."""
    return DiskProofStore(ProofStorageConfig(upload_dir=tmp_path / "proofs"))


@pytest.fixture
def engine() -> SurchargeEngine:
    return SurchargeEngine()


@pytest.fixture
def service(store, engine, clock, proof_store) -> LedgerService:
    return LedgerService(store, engine=engine, clock=clock, proof_store=proof_store)


@pytest.fixture
def sample_contract() -> Contract:
    """1,200,000 over 10 months: 200,000 down, 10% (120,000) at possession.

    The monthly pool is 880,000, i.e. ten installments of 88,000 due on the
    10th of each month from January 2025.
    """
    return Contract(
        total_amount=1_200_000,
        months=10,
        start_date=date(2025, 1, 10),
        down_payment=200_000,
        possession_percent=Decimal("10"),
        booking_date=date(2024, 12, 15),
        client_name="Ayesha Khan",
        unit_number="A-101",
        unit_type="Apartment",
        project="Seaview Heights",
    )


@pytest.fixture
def sample_payload() -> dict:
    """Creation payload equivalent to ``sample_contract``."""
    return {
        "total_amount": "1,200,000",
        "months": "10",
        "start_date": "10/01/2025",
        "down_payment": "200000",
        "possession_percent": "10",
        "booking_date": "2024-12-15",
        "client_name": "Ayesha Khan",
        "unit_number": "A-101",
        "unit_type": "Apartment",
        "project": "Seaview Heights",
    }
