"""Installment schedule generation.

The monthly pool of a contract (total minus down payment minus the
possession share) is split into ``months`` near-equal installments. The
division is done in whole units: every installment gets the floor of the
even share and the leftover units are handed out one each to the first
installments, so the generated amounts always add up to the pool exactly.

When the contract terms change, the schedule is regenerated over the
existing rows. Rows are matched by sequence number and keep everything that
records what actually happened (payments, children, proofs, locked
surcharge); only the computed amount, due date and description change.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List

from .data_models import BillingRow, Contract, ScheduleEntry
from .exceptions import LedgerValidationError
from .utils import add_months


def ordinal(n: int) -> str:
    """Return ``n`` with its English ordinal suffix (1st, 2nd, 11th, 23rd)."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def installment_description(sequence_no: int) -> str:
    return f"{ordinal(sequence_no)} INSTALLMENT"


def split_amount(pool: int, months: int) -> List[int]:
    """Split ``pool`` into ``months`` whole amounts that sum to ``pool``.

    >>> split_amount(100, 3)
    [34, 33, 33]
    """
    if months <= 0:
        raise LedgerValidationError("Months must be greater than 0")
    base, remainder = divmod(pool, months)
    return [base + 1 if i < remainder else base for i in range(months)]


def generate_schedule(pool: int, months: int, start_date: date) -> List[ScheduleEntry]:
    """Build the installment schedule for a monthly pool.

    Parameters
    ----------
    pool: int
        Amount to spread over the installments (``Contract.monthly_pool_amount``).
    months: int
        Number of monthly installments; must be positive.
    start_date: date
        Due date of the first installment. Installment ``i`` (zero-based) is
        due ``i`` months later, with the day clamped to the month's length.
    """
    amounts = split_amount(pool, months)
    return [
        ScheduleEntry(
            sequence_no=i + 1,
            due_date=add_months(start_date, i),
            installment_amount=amount,
            description=installment_description(i + 1),
        )
        for i, amount in enumerate(amounts)
    ]


def schedule_for(contract: Contract) -> List[ScheduleEntry]:
    """Generate the schedule from a contract's header terms."""
    start = contract.start_date
    if start is None:
        raise LedgerValidationError("Contract start date is required to build a schedule")
    return generate_schedule(contract.monthly_pool_amount, contract.months, start)


def rebuild_rows(contract: Contract, existing_rows: Iterable[BillingRow]) -> List[BillingRow]:
    """Regenerate the contract's rows, preserving history by sequence number.

    Existing rows beyond the new month count are dropped; rows past the old
    count are created with no payments and a fresh surcharge lock state.
    """
    by_sequence: Dict[int, BillingRow] = {row.sequence_no: row for row in existing_rows}
    rows: List[BillingRow] = []
    for entry in schedule_for(contract):
        row = by_sequence.get(entry.sequence_no)
        if row is None:
            row = BillingRow(
                sequence_no=entry.sequence_no,
                installment_amount=entry.installment_amount,
                due_date=entry.due_date,
                description=entry.description,
            )
        else:
            row.installment_amount = entry.installment_amount
            row.due_date = entry.due_date
            row.description = entry.description
        rows.append(row)
    return rows
