"""Data models for the installment ledger.

This module defines dataclasses for the entities the ledger works with: the
contract header, its scheduled billing rows, the child payments recorded
against a row, the one-off possession charge and the surcharge lock state
kept on each charge. Amounts are whole currency units (``int``); percentages
are ``Decimal``; dates are plain calendar dates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from .utils import round_half_up


@dataclass(frozen=True)
class SurchargeLockState:
    """Late-payment surcharge locked on a charge.

    Attributes
    ----------
    locked_amount: int
        Total surcharge locked so far. Never decreases.
    cycles_applied: int
        Number of late cycles already charged. Never decreases.
    balance_base: Optional[int]
        Outstanding balance captured when the first cycle was charged; the
        percentage base for every later cycle. ``None`` until the first
        cycle triggers, and fixed from then on.
    """

    locked_amount: int = 0
    cycles_applied: int = 0
    balance_base: Optional[int] = None

    @property
    def triggered(self) -> bool:
        return self.cycles_applied > 0


@dataclass
class ChildPayment:
    """A partial payment recorded against a parent billing row."""

    line_no: int
    amount_paid: int = 0
    payment_date: Optional[date] = None
    description: str = ""
    instrument_type: Optional[str] = None
    instrument_no: Optional[str] = None
    payment_proof: Optional[str] = None
    id: Optional[int] = None


@dataclass
class BillingRow:
    """One scheduled charge (normally a monthly installment) of a contract.

    ``amount_paid`` and ``payment_date`` describe a payment recorded
    directly on the row; further split payments live in ``children``. The
    surcharge lock state is stored on the row and carried across saves.
    """

    sequence_no: int
    installment_amount: int
    due_date: Optional[date]
    description: str = ""
    amount_paid: int = 0
    payment_date: Optional[date] = None
    instrument_type: Optional[str] = None
    instrument_no: Optional[str] = None
    payment_proof: Optional[str] = None
    children: List[ChildPayment] = field(default_factory=list)
    surcharge: SurchargeLockState = field(default_factory=SurchargeLockState)
    id: Optional[int] = None


@dataclass
class PossessionCharge:
    """The one-time charge due at handover, stored on the contract header.

    Its face value is derived from the contract (see
    ``Contract.possession_amount``), so the amount is attached to the charge
    by the contract rather than stored here.
    """

    due_date: Optional[date] = None
    amount_paid: int = 0
    payment_date: Optional[date] = None
    instrument_type: Optional[str] = None
    instrument_no: Optional[str] = None
    payment_proof: Optional[str] = None
    surcharge: SurchargeLockState = field(default_factory=SurchargeLockState)
    installment_amount: int = 0
    description: str = "POSSESSION"

    @property
    def children(self) -> List[ChildPayment]:
        return []


@dataclass
class Contract:
    """A client's installment contract for one property unit."""

    total_amount: int
    months: int
    start_date: Optional[date]
    down_payment: int = 0
    possession_percent: Decimal = Decimal("0")
    booking_date: Optional[date] = None
    client_name: str = ""
    unit_number: str = ""
    unit_type: str = ""
    project: str = ""
    rows: List[BillingRow] = field(default_factory=list)
    possession: PossessionCharge = field(default_factory=PossessionCharge)
    id: Optional[int] = None

    def __post_init__(self) -> None:
        self.possession_percent = Decimal(self.possession_percent)
        self.sync_possession()

    @property
    def possession_amount(self) -> int:
        """Possession share of the total, rounded half-up to whole units."""
        return round_half_up(Decimal(self.total_amount) * self.possession_percent / Decimal(100))

    @property
    def monthly_pool_amount(self) -> int:
        """Amount left to spread across the monthly installments."""
        return max(0, self.total_amount - self.down_payment - self.possession_amount)

    @property
    def has_possession(self) -> bool:
        return self.possession_amount > 0

    def sync_possession(self) -> None:
        """Refresh the possession charge's face value from the header terms."""
        self.possession.installment_amount = self.possession_amount

    def schedule_terms(self) -> tuple:
        """Header fields that determine the generated schedule."""
        return (
            self.total_amount,
            self.down_payment,
            self.possession_percent,
            self.months,
            self.start_date,
        )

    def sorted_rows(self) -> List[BillingRow]:
        return sorted(self.rows, key=lambda r: r.sequence_no)

    def find_row(self, row_id: Optional[int] = None, sequence_no: Optional[int] = None) -> Optional[BillingRow]:
        for row in self.rows:
            if row_id is not None and row.id == row_id:
                return row
            if row_id is None and sequence_no is not None and row.sequence_no == sequence_no:
                return row
        return None


@dataclass
class ScheduleEntry:
    """An entry produced by the schedule generator."""

    sequence_no: int
    due_date: date
    installment_amount: int
    description: str
