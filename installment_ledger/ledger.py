"""Ledger reconciliation: totals and statement lines.

Everything here is pure aggregation over a contract's rows and its
possession charge. Surcharge is never recomputed here; the figures come from
the lock state the engine has already stored on each charge.

Policy: ``total_due`` equals ``total_receivable``. Surcharge is reported
separately in ``total_surcharge`` and is not added to the headline due
figure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from .data_models import Contract
from .payments import display_balance, effective_paid, effective_payment_date
from .surcharge import SurchargeBlock, SurchargeEngine


@dataclass
class LedgerTotals:
    """Summary figures for a contract's ledger."""

    total_payable: int
    total_paid: int
    total_receivable: int
    total_surcharge: int
    total_due: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_payable": self.total_payable,
            "total_paid": self.total_paid,
            "total_receivable": self.total_receivable,
            "total_surcharge": self.total_surcharge,
            "total_due": self.total_due,
        }


@dataclass
class StatementLine:
    """One row of a ledger statement, with all display figures computed."""

    sequence_no: Optional[int]
    description: str
    installment_amount: int
    due_date: Optional[date]
    amount_paid: int
    payment_date: Optional[date]
    instrument_type: str
    instrument_no: str
    balance: int
    surcharge: int
    late_days: int
    receivable: int
    cycles: int = 0
    is_possession: bool = False
    payment_proof: Optional[str] = None
    blocks: List[SurchargeBlock] = field(default_factory=list)


def compute_totals(contract: Contract) -> LedgerTotals:
    """Roll up every row and the possession charge into the summary figures."""
    contract.sync_possession()
    payable = contract.possession_amount + contract.monthly_pool_amount
    paid = sum(effective_paid(row) for row in contract.rows) + effective_paid(contract.possession)
    receivable = max(0, payable - paid)
    surcharge = sum(row.surcharge.locked_amount for row in contract.rows)
    surcharge += contract.possession.surcharge.locked_amount
    return LedgerTotals(
        total_payable=payable,
        total_paid=paid,
        total_receivable=receivable,
        total_surcharge=surcharge,
        total_due=receivable,
    )


def _line(charge: Any, engine: SurchargeEngine, today: date, receivable: int, **extra: Any) -> StatementLine:
    return StatementLine(
        description=charge.description or "",
        installment_amount=charge.installment_amount,
        due_date=charge.due_date,
        amount_paid=effective_paid(charge),
        payment_date=effective_payment_date(charge),
        instrument_type=charge.instrument_type or "",
        instrument_no=charge.instrument_no or "",
        balance=display_balance(charge),
        surcharge=charge.surcharge.locked_amount,
        late_days=engine.late_days(charge, today),
        receivable=receivable,
        cycles=charge.surcharge.cycles_applied,
        payment_proof=charge.payment_proof,
        blocks=engine.breakdown(charge.installment_amount, charge.surcharge),
        **extra,
    )


def statement_lines(contract: Contract, engine: SurchargeEngine, today: date) -> List[StatementLine]:
    """Build statement lines in sequence order, possession charge last.

    ``receivable`` on each line is the running balance: cumulative
    installments minus cumulative payments up to and including that line,
    floored at zero.
    """
    contract.sync_possession()
    lines: List[StatementLine] = []
    running_due = 0
    running_paid = 0
    for row in contract.sorted_rows():
        running_due += row.installment_amount
        running_paid += effective_paid(row)
        lines.append(
            _line(row, engine, today, max(0, running_due - running_paid), sequence_no=row.sequence_no)
        )
    if contract.has_possession:
        possession = contract.possession
        running_due += possession.installment_amount
        running_paid += effective_paid(possession)
        lines.append(
            _line(
                possession,
                engine,
                today,
                max(0, running_due - running_paid),
                sequence_no=None,
                is_possession=True,
            )
        )
    return lines
