"""Ledger service: the save pipeline tying the pieces together.

Every save runs the same sequence against one contract, inside one store
transaction that holds the contract's lock:

1. validate the incoming rows and header changes (nothing is written if this
   fails);
2. apply header changes and the row / child-payment diff;
3. rebuild the schedule if any schedule term changed;
4. re-run the surcharge engine for every row and the possession charge,
   edited or not, because elapsed time alone can complete a new cycle;
5. write everything back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from .clock import Clock, SystemClock
from .config import LedgerConfig
from .data_models import BillingRow, Contract, SurchargeLockState
from .exceptions import LedgerValidationError, PaymentNotFoundError, RowNotFoundError
from .ledger import LedgerTotals, StatementLine, compute_totals, statement_lines
from .logging import get_logger
from .payloads import (
    contract_from_payload,
    contract_patch_from_payload,
    possession_patch_from_payload,
    rows_from_payload,
)
from .proofs import DiskProofStore, ProofStore
from .schedule import rebuild_rows
from .store import LedgerStore, SqlLedgerStore
from .surcharge import SurchargeEngine, SurchargePolicy

logger = get_logger(__name__)


@dataclass
class LedgerView:
    """A contract together with its reconciled totals."""

    contract: Contract
    totals: LedgerTotals


class LedgerService:
    """Reads, saves and reconciles contract ledgers."""

    def __init__(
        self,
        store: LedgerStore,
        engine: Optional[SurchargeEngine] = None,
        clock: Optional[Clock] = None,
        proof_store: Optional[ProofStore] = None,
        timezone: Optional[str] = None,
    ) -> None:
        self.store = store
        self.engine = engine or SurchargeEngine()
        self.clock = clock or SystemClock(timezone)
        self.proof_store = proof_store
        self.timezone = timezone

    @classmethod
    def from_config(cls, config: LedgerConfig, clock: Optional[Clock] = None) -> "LedgerService":
        return cls(
            store=SqlLedgerStore(config.database_url),
            engine=SurchargeEngine(SurchargePolicy.from_config(config.surcharge)),
            clock=clock or SystemClock(config.timezone),
            proof_store=DiskProofStore(config.proofs),
            timezone=config.timezone,
        )

    def _view(self, contract: Contract) -> LedgerView:
        return LedgerView(contract=contract, totals=compute_totals(contract))

    def _lock_all(self, contract: Contract, today: date) -> None:
        contract.sync_possession()
        for row in contract.rows:
            self.engine.apply(row, today)
        self.engine.apply(contract.possession, today)

    def _rebuild(self, contract: Contract) -> None:
        contract.rows = rebuild_rows(contract, contract.rows)
        contract.sync_possession()
        logger.info(
            "Rebuilt schedule for contract %s: %d rows",
            contract.id,
            len(contract.rows),
            extra={"contract_id": contract.id, "row_count": len(contract.rows)},
        )

    def create_contract(self, contract: Contract) -> LedgerView:
        """Generate the initial schedule for ``contract`` and persist it."""
        if contract.months <= 0:
            raise LedgerValidationError("Months must be greater than 0")
        contract.rows = rebuild_rows(contract, [])
        self._lock_all(contract, self.clock.today())
        self.store.add(contract)
        return self._view(contract)

    def create_contract_from_payload(self, payload: Mapping[str, Any]) -> LedgerView:
        return self.create_contract(contract_from_payload(payload, self.timezone))

    def get_ledger(self, contract_id: int) -> LedgerView:
        return self._view(self.store.get(contract_id))

    def statement(self, contract_id: int) -> tuple:
        """Return ``(contract, lines, totals)`` for rendering a statement."""
        contract = self.store.get(contract_id)
        lines: List[StatementLine] = statement_lines(contract, self.engine, self.clock.today())
        return contract, lines, compute_totals(contract)

    def save_ledger(
        self,
        contract_id: int,
        rows: Any,
        contract_patch: Optional[Mapping[str, Any]] = None,
        possession_patch: Optional[Mapping[str, Any]] = None,
    ) -> LedgerView:
        """Apply a full ledger save for one contract.

        ``rows`` is the complete row list as the caller sees it: rows missing
        from it are deleted, rows without an id are created, and rows with an
        id must already belong to the contract. Child payments follow the same
        rules within their row. Surcharge state is never taken from the input.

        Raises
        ------
        LedgerValidationError
            Invalid rows or header values; raised before anything is written.
        ContractNotFoundError, RowNotFoundError, PaymentNotFoundError
            When an id in the request does not exist on the contract.
        """
        incoming = rows_from_payload(rows, self.timezone)
        header = contract_patch_from_payload(contract_patch, self.timezone)
        possession = possession_patch_from_payload(possession_patch, self.timezone)
        today = self.clock.today()

        with self.store.edit(contract_id) as contract:
            terms_before = contract.schedule_terms()
            for key, value in header.items():
                setattr(contract, key, value)
            for key, value in possession.items():
                setattr(contract.possession, key, value)

            contract.rows = self._merge_rows(contract, incoming)

            if contract.schedule_terms() != terms_before:
                self._rebuild(contract)
            self._lock_all(contract, today)

        total_surcharge = compute_totals(contract).total_surcharge
        logger.info(
            "Saved ledger for contract %s: %d rows, %d locked surcharge",
            contract_id,
            len(contract.rows),
            total_surcharge,
            extra={"contract_id": contract_id, "row_count": len(contract.rows), "total_surcharge": total_surcharge},
        )
        return self._view(contract)

    def _merge_rows(self, contract: Contract, incoming: List[BillingRow]) -> List[BillingRow]:
        existing: Dict[int, BillingRow] = {row.id: row for row in contract.rows if row.id is not None}
        merged: List[BillingRow] = []
        for row in incoming:
            if row.id is None:
                row.surcharge = SurchargeLockState()
                for child in row.children:
                    if child.id is not None:
                        raise PaymentNotFoundError(child.id)
                merged.append(row)
                continue
            current = existing.get(row.id)
            if current is None:
                raise RowNotFoundError(row.id)
            known_children = {c.id for c in current.children}
            for child in row.children:
                if child.id is not None and child.id not in known_children:
                    raise PaymentNotFoundError(child.id)
            row.surcharge = current.surcharge
            merged.append(row)
        return merged

    def rebuild_schedule(self, contract_id: int) -> LedgerView:
        """Regenerate rows from the current header terms, keeping history."""
        today = self.clock.today()
        with self.store.edit(contract_id) as contract:
            self._rebuild(contract)
            self._lock_all(contract, today)
        return self._view(contract)

    def recompute(self, contract_id: int) -> LedgerView:
        """Save with no edits: locks any cycles completed since the last save."""
        today = self.clock.today()
        with self.store.edit(contract_id) as contract:
            self._lock_all(contract, today)
        return self._view(contract)

    def delete_contract(self, contract_id: int) -> None:
        self.store.delete(contract_id)

    def _target(self, contract: Contract, row_id: Optional[int], sequence_no: Optional[int], possession: bool):
        if possession:
            return contract.possession
        if row_id is None and sequence_no is None:
            raise LedgerValidationError("row_id or sequence_no required")
        row = contract.find_row(row_id=row_id, sequence_no=sequence_no)
        if row is None:
            raise RowNotFoundError(row_id if row_id is not None else sequence_no)
        return row

    def upload_proof(
        self,
        contract_id: int,
        data: bytes,
        filename: str = "",
        content_type: Optional[str] = None,
        row_id: Optional[int] = None,
        sequence_no: Optional[int] = None,
        possession: bool = False,
    ) -> str:
        """Store a proof file and attach it; returns the stored reference."""
        if self.proof_store is None:
            raise LedgerValidationError("Payment proof uploads are not configured")
        self.store.get(contract_id)
        reference = self.proof_store.save(contract_id, data, filename, content_type)
        try:
            if row_id is not None or sequence_no is not None or possession:
                self.attach_proof(contract_id, reference, row_id, sequence_no, possession)
        except Exception:
            self.proof_store.delete(reference)
            raise
        return reference

    def attach_proof(
        self,
        contract_id: int,
        reference: str,
        row_id: Optional[int] = None,
        sequence_no: Optional[int] = None,
        possession: bool = False,
    ) -> None:
        """Point a row (or the possession charge) at a stored proof."""
        with self.store.edit(contract_id) as contract:
            target = self._target(contract, row_id, sequence_no, possession)
            target.payment_proof = reference

    def remove_proof(
        self,
        contract_id: int,
        row_id: Optional[int] = None,
        sequence_no: Optional[int] = None,
        possession: bool = False,
    ) -> Optional[str]:
        """Clear a row's (or the possession charge's) proof and delete the file."""
        with self.store.edit(contract_id) as contract:
            target = self._target(contract, row_id, sequence_no, possession)
            reference = target.payment_proof
            target.payment_proof = None
        if reference and self.proof_store is not None:
            self.proof_store.delete(reference)
        return reference
