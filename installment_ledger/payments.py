"""Payment aggregation for billing rows.

A charge can be settled by a payment recorded directly on it plus any number
of child (split) payments. These helpers fold them into the figures the
surcharge engine and the totals work from. They accept any row-like object
exposing ``installment_amount``, ``amount_paid``, ``payment_date`` and
``children``: both ``BillingRow`` and ``PossessionCharge`` qualify.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional


def effective_paid(row: Any) -> int:
    """Direct payment plus the sum of all child payments."""
    return row.amount_paid + sum(child.amount_paid for child in row.children)


def effective_payment_date(row: Any) -> Optional[date]:
    """Latest payment date among the row and its children, or ``None``."""
    dates = [row.payment_date] if row.payment_date is not None else []
    dates.extend(c.payment_date for c in row.children if c.payment_date is not None)
    return max(dates) if dates else None


def outstanding_balance(installment_amount: int, paid: int) -> int:
    return max(0, installment_amount - paid)


def current_balance(row: Any) -> int:
    """Mathematical balance still owed on the row."""
    return outstanding_balance(row.installment_amount, effective_paid(row))


def display_balance(row: Any) -> int:
    """Balance shown to staff and clients.

    A row nobody has paid anything against reports 0 rather than its full
    face value; the balance appears only after the first payment.
    """
    paid = effective_paid(row)
    if paid == 0:
        return 0
    return outstanding_balance(row.installment_amount, paid)


def is_fully_paid(row: Any) -> bool:
    return row.installment_amount > 0 and current_balance(row) == 0
