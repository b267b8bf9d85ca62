"""Late-payment surcharge engine.

A charge that stays overdue accrues a flat percentage surcharge for every
complete cycle (30 days by default) it remains late. Once a cycle has been
charged it is locked on the charge and is never taken back: re-running the
engine with edited payments or an earlier date can only leave the lock state
unchanged or add further cycles.

The rules, in the order ``SurchargeEngine.evaluate`` applies them:

* a zero-value charge never accrues surcharge;
* nothing accrues until at least one payment date has been recorded;
* lateness is measured from the due date to today while any balance is
  left, or to the latest payment date once the charge is paid in full;
* the first cycle is charged on the full installment amount, and every later
  cycle on the balance captured when the first cycle was locked.

Each cycle's increment is rounded half-up on its own, so the locked total is
the sum of independently rounded whole amounts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from .config import SurchargeConfig
from .data_models import SurchargeLockState
from .logging import get_logger
from .payments import effective_paid, effective_payment_date, outstanding_balance
from .utils import day_difference, round_half_up

logger = get_logger(__name__)


@dataclass(frozen=True)
class SurchargePolicy:
    """Rate and cycle length used by the engine."""

    rate_percent: Decimal = Decimal("5")
    cycle_days: int = 30

    @classmethod
    def from_config(cls, config: SurchargeConfig) -> "SurchargePolicy":
        return cls(rate_percent=config.rate_percent, cycle_days=config.cycle_days)

    def cycles_for(self, days_late: int) -> int:
        """Number of complete late cycles in ``days_late`` days."""
        return max(0, days_late) // self.cycle_days

    def increment(self, base: int) -> int:
        """Surcharge for a single cycle charged on ``base``."""
        if base <= 0:
            return 0
        return round_half_up(self.rate_percent / Decimal(100) * Decimal(base))


@dataclass(frozen=True)
class SurchargeBlock:
    """One locked cycle, for itemized statements."""

    cycle: int
    days_from: int
    days_to: int
    base: int
    amount: int


class SurchargeEngine:
    """Evaluates and locks late-payment surcharge on row-like charges."""

    def __init__(self, policy: Optional[SurchargePolicy] = None) -> None:
        self.policy = policy or SurchargePolicy()

    def cutoff_date(self, balance: int, payment_date: Optional[date], today: date) -> Optional[date]:
        """End date of the lateness window: today while owing, else the payment date."""
        return today if balance > 0 else payment_date

    def evaluate(
        self,
        installment_amount: int,
        due_date: Optional[date],
        paid: int,
        payment_date: Optional[date],
        state: SurchargeLockState,
        today: date,
    ) -> SurchargeLockState:
        """Return the lock state after accounting for any newly elapsed cycles.

        Parameters
        ----------
        installment_amount:
            Face value of the charge.
        due_date:
            When the charge fell due; ``None`` means unknown and never
            accrues.
        paid:
            Effective amount paid so far (direct plus child payments).
        payment_date:
            Latest effective payment date, ``None`` if nothing was paid.
        state:
            Lock state currently persisted on the charge.
        today:
            Today's date in the business timezone.
        """
        if installment_amount <= 0:
            return state
        if payment_date is None:
            return state

        balance = outstanding_balance(installment_amount, paid)
        end = self.cutoff_date(balance, payment_date, today)
        days_late = day_difference(due_date, end)
        preview_cycles = self.policy.cycles_for(days_late)

        if preview_cycles <= state.cycles_applied:
            return state

        balance_base = state.balance_base
        if balance_base is None:
            balance_base = balance

        added = 0
        for cycle in range(state.cycles_applied + 1, preview_cycles + 1):
            base = installment_amount if cycle == 1 else balance_base
            added += self.policy.increment(base)

        new_state = SurchargeLockState(
            locked_amount=state.locked_amount + added,
            cycles_applied=preview_cycles,
            balance_base=balance_base,
        )
        logger.info(
            "Locked surcharge cycles %d..%d: +%d (total %d, base %d, %d days late)",
            state.cycles_applied + 1,
            preview_cycles,
            added,
            new_state.locked_amount,
            balance_base,
            days_late,
        )
        return new_state

    def apply(self, charge: Any, today: date) -> SurchargeLockState:
        """Evaluate ``charge`` and store the resulting lock state on it."""
        charge.surcharge = self.evaluate(
            charge.installment_amount,
            charge.due_date,
            effective_paid(charge),
            effective_payment_date(charge),
            charge.surcharge,
            today,
        )
        return charge.surcharge

    def late_days(self, charge: Any, today: date) -> int:
        """Days the charge is (or was, if now paid in full) past its due date."""
        balance = outstanding_balance(charge.installment_amount, effective_paid(charge))
        end = self.cutoff_date(balance, effective_payment_date(charge), today)
        return day_difference(charge.due_date, end)

    def breakdown(self, installment_amount: int, state: SurchargeLockState) -> List[SurchargeBlock]:
        """Itemize the cycles locked in ``state``.

        Amounts add up to ``state.locked_amount`` as long as the rate and the
        installment amount have not changed since the cycles were locked.
        """
        if not state.triggered:
            return []
        blocks: List[SurchargeBlock] = []
        cycle_days = self.policy.cycle_days
        for cycle in range(1, state.cycles_applied + 1):
            base = installment_amount if cycle == 1 else (state.balance_base or 0)
            blocks.append(
                SurchargeBlock(
                    cycle=cycle,
                    days_from=(cycle - 1) * cycle_days + 1,
                    days_to=cycle * cycle_days,
                    base=base,
                    amount=self.policy.increment(base),
                )
            )
        return blocks
