"""Persistence layer for contracts and their ledgers.

This module keeps contracts, billing rows and child payments in a relational
database through SQLAlchemy. It defaults to SQLite for local use but accepts
any SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL).

Saves go through ``SqlLedgerStore.edit``: the contract row is locked
(``SELECT ... FOR UPDATE`` on databases that support it), the ledger is
handed to the caller as plain dataclasses, and on success the changes are
written back as an id-based diff in the same transaction. Two saves for the
same contract are therefore serialized, which the surcharge lock state relies
on to never go backwards.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import ContextManager, Dict, Iterator, List, Optional, Protocol, Tuple

from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.orm import declarative_base, relationship, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from .data_models import BillingRow, ChildPayment, Contract, PossessionCharge, SurchargeLockState
from .exceptions import ContractNotFoundError, PaymentNotFoundError, RowNotFoundError
from .logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContractModel(Base):
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_name = Column(String(255), nullable=False, default="")
    unit_number = Column(String(64), nullable=False, default="")
    unit_type = Column(String(64), nullable=False, default="")
    project = Column(String(255), nullable=False, default="")
    total_amount = Column(BigInteger, nullable=False, default=0)
    down_payment = Column(BigInteger, nullable=False, default=0)
    possession_percent = Column(Numeric(7, 3), nullable=False, default=0)
    months = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=True)
    booking_date = Column(Date, nullable=True)

    possession_due_date = Column(Date, nullable=True)
    possession_paid = Column(BigInteger, nullable=False, default=0)
    possession_payment_date = Column(Date, nullable=True)
    possession_instrument_type = Column(String(64), nullable=True)
    possession_instrument_no = Column(String(128), nullable=True)
    possession_payment_proof = Column(String(512), nullable=True)
    possession_surcharge_amount = Column(BigInteger, nullable=False, default=0)
    possession_surcharge_cycles = Column(Integer, nullable=False, default=0)
    possession_surcharge_balance_base = Column(BigInteger, nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)

    rows = relationship(
        "LedgerRowModel",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="LedgerRowModel.sequence_no",
        passive_deletes=True,
    )


class LedgerRowModel(Base):
    __tablename__ = "ledger_rows"
    __table_args__ = (UniqueConstraint("contract_id", "sequence_no", name="uq_ledger_rows_contract_sequence"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence_no = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False, default="")
    installment_amount = Column(BigInteger, nullable=False, default=0)
    due_date = Column(Date, nullable=True)
    amount_paid = Column(BigInteger, nullable=False, default=0)
    payment_date = Column(Date, nullable=True)
    instrument_type = Column(String(64), nullable=True)
    instrument_no = Column(String(128), nullable=True)
    payment_proof = Column(String(512), nullable=True)
    surcharge_amount = Column(BigInteger, nullable=False, default=0)
    surcharge_cycles = Column(Integer, nullable=False, default=0)
    surcharge_balance_base = Column(BigInteger, nullable=True)

    contract = relationship("ContractModel", back_populates="rows")
    children = relationship(
        "LedgerChildModel",
        back_populates="row",
        cascade="all, delete-orphan",
        order_by="LedgerChildModel.line_no",
        passive_deletes=True,
    )


class LedgerChildModel(Base):
    __tablename__ = "ledger_child_rows"
    __table_args__ = (UniqueConstraint("row_id", "line_no", name="uq_ledger_child_rows_row_line"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    row_id = Column(Integer, ForeignKey("ledger_rows.id", ondelete="CASCADE"), nullable=False, index=True)
    line_no = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False, default="")
    amount_paid = Column(BigInteger, nullable=False, default=0)
    payment_date = Column(Date, nullable=True)
    instrument_type = Column(String(64), nullable=True)
    instrument_no = Column(String(128), nullable=True)
    payment_proof = Column(String(512), nullable=True)

    row = relationship("LedgerRowModel", back_populates="children")


class LedgerStore(Protocol):
    """Storage operations the ledger service depends on."""

    def add(self, contract: Contract) -> Contract:
        ...

    def get(self, contract_id: int) -> Contract:
        ...

    def edit(self, contract_id: int) -> ContextManager[Contract]:
        ...

    def delete(self, contract_id: int) -> None:
        ...


class SqlLedgerStore:
    """Database-backed ledger store."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        kwargs: Dict[str, object] = {"future": True, "echo": echo}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty database
            kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
        self._engine = create_engine(url, **kwargs)
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def add(self, contract: Contract) -> Contract:
        """Insert a new contract with its rows; ids are set on the dataclasses."""
        model = ContractModel(months=contract.months)
        _apply_header(model, contract)
        pairs: List[Tuple[BillingRow, LedgerRowModel]] = []
        for row in contract.sorted_rows():
            row_model = LedgerRowModel()
            _apply_row(row_model, row)
            for child in row.children:
                child_model = LedgerChildModel()
                _apply_child(child_model, child)
                row_model.children.append(child_model)
            model.rows.append(row_model)
            pairs.append((row, row_model))
        with self._session_factory() as session:
            with session.begin():
                session.add(model)
                session.flush()
                contract.id = model.id
                _copy_ids(pairs)
        logger.info(
            "Created contract %s with %d rows",
            contract.id,
            len(contract.rows),
            extra={"contract_id": contract.id, "row_count": len(contract.rows)},
        )
        return contract

    def get(self, contract_id: int) -> Contract:
        """Load a contract with rows ordered by sequence and children by line."""
        with self._session_factory() as session:
            model = session.execute(
                select(ContractModel)
                .where(ContractModel.id == contract_id)
                .options(selectinload(ContractModel.rows).selectinload(LedgerRowModel.children))
            ).scalar_one_or_none()
            if model is None:
                raise ContractNotFoundError(contract_id)
            return _to_contract(model)

    @contextmanager
    def edit(self, contract_id: int) -> Iterator[Contract]:
        """Lock a contract, yield it for changes and write them back atomically.

        If the body raises, nothing is written and the exception propagates.
        """
        with self._session_factory() as session:
            with session.begin():
                model = session.execute(
                    select(ContractModel)
                    .where(ContractModel.id == contract_id)
                    .options(selectinload(ContractModel.rows).selectinload(LedgerRowModel.children))
                    .with_for_update()
                ).scalar_one_or_none()
                if model is None:
                    raise ContractNotFoundError(contract_id)
                contract = _to_contract(model)
                yield contract
                _write_back(session, model, contract)

    def delete(self, contract_id: int) -> None:
        """Delete a contract together with all of its rows and child payments."""
        with self._session_factory() as session:
            with session.begin():
                model = session.get(ContractModel, contract_id)
                if model is None:
                    raise ContractNotFoundError(contract_id)
                session.delete(model)
        logger.info("Deleted contract %s", contract_id)

    def dispose(self) -> None:
        self._engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _lock_state(amount: Optional[int], cycles: Optional[int], base: Optional[int]) -> SurchargeLockState:
    return SurchargeLockState(
        locked_amount=int(amount or 0),
        cycles_applied=int(cycles or 0),
        balance_base=None if base is None else int(base),
    )


def _to_child(model: LedgerChildModel) -> ChildPayment:
    return ChildPayment(
        id=model.id,
        line_no=model.line_no,
        description=model.description or "",
        amount_paid=int(model.amount_paid or 0),
        payment_date=model.payment_date,
        instrument_type=model.instrument_type,
        instrument_no=model.instrument_no,
        payment_proof=model.payment_proof,
    )


def _to_row(model: LedgerRowModel) -> BillingRow:
    return BillingRow(
        id=model.id,
        sequence_no=model.sequence_no,
        description=model.description or "",
        installment_amount=int(model.installment_amount or 0),
        due_date=model.due_date,
        amount_paid=int(model.amount_paid or 0),
        payment_date=model.payment_date,
        instrument_type=model.instrument_type,
        instrument_no=model.instrument_no,
        payment_proof=model.payment_proof,
        children=[_to_child(c) for c in model.children],
        surcharge=_lock_state(model.surcharge_amount, model.surcharge_cycles, model.surcharge_balance_base),
    )


def _to_contract(model: ContractModel) -> Contract:
    possession = PossessionCharge(
        due_date=model.possession_due_date,
        amount_paid=int(model.possession_paid or 0),
        payment_date=model.possession_payment_date,
        instrument_type=model.possession_instrument_type,
        instrument_no=model.possession_instrument_no,
        payment_proof=model.possession_payment_proof,
        surcharge=_lock_state(
            model.possession_surcharge_amount,
            model.possession_surcharge_cycles,
            model.possession_surcharge_balance_base,
        ),
    )
    return Contract(
        id=model.id,
        client_name=model.client_name or "",
        unit_number=model.unit_number or "",
        unit_type=model.unit_type or "",
        project=model.project or "",
        total_amount=int(model.total_amount or 0),
        down_payment=int(model.down_payment or 0),
        possession_percent=Decimal(model.possession_percent or 0),
        months=model.months,
        start_date=model.start_date,
        booking_date=model.booking_date,
        rows=[_to_row(r) for r in model.rows],
        possession=possession,
    )


def _apply_header(model: ContractModel, contract: Contract) -> None:
    model.client_name = contract.client_name
    model.unit_number = contract.unit_number
    model.unit_type = contract.unit_type
    model.project = contract.project
    model.total_amount = contract.total_amount
    model.down_payment = contract.down_payment
    model.possession_percent = contract.possession_percent
    model.months = contract.months
    model.start_date = contract.start_date
    model.booking_date = contract.booking_date

    possession = contract.possession
    model.possession_due_date = possession.due_date
    model.possession_paid = possession.amount_paid
    model.possession_payment_date = possession.payment_date
    model.possession_instrument_type = possession.instrument_type
    model.possession_instrument_no = possession.instrument_no
    model.possession_payment_proof = possession.payment_proof
    model.possession_surcharge_amount = possession.surcharge.locked_amount
    model.possession_surcharge_cycles = possession.surcharge.cycles_applied
    model.possession_surcharge_balance_base = possession.surcharge.balance_base


def _apply_row(model: LedgerRowModel, row: BillingRow) -> None:
    model.sequence_no = row.sequence_no
    model.description = row.description
    model.installment_amount = row.installment_amount
    model.due_date = row.due_date
    model.amount_paid = row.amount_paid
    model.payment_date = row.payment_date
    model.instrument_type = row.instrument_type
    model.instrument_no = row.instrument_no
    model.payment_proof = row.payment_proof
    model.surcharge_amount = row.surcharge.locked_amount
    model.surcharge_cycles = row.surcharge.cycles_applied
    model.surcharge_balance_base = row.surcharge.balance_base


def _apply_child(model: LedgerChildModel, child: ChildPayment) -> None:
    model.line_no = child.line_no
    model.description = child.description
    model.amount_paid = child.amount_paid
    model.payment_date = child.payment_date
    model.instrument_type = child.instrument_type
    model.instrument_no = child.instrument_no
    model.payment_proof = child.payment_proof


def _copy_ids(pairs: List[Tuple[BillingRow, LedgerRowModel]]) -> None:
    for row, row_model in pairs:
        row.id = row_model.id
        for child, child_model in zip(row.children, row_model.children):
            child.id = child_model.id


def _write_back(session, model: ContractModel, contract: Contract) -> None:
    """Persist ``contract`` onto ``model`` as a create/update/delete diff by id."""
    _apply_header(model, contract)

    existing: Dict[int, LedgerRowModel] = {r.id: r for r in model.rows}
    incoming_ids = {row.id for row in contract.rows if row.id is not None}
    unknown = incoming_ids - set(existing)
    if unknown:
        raise RowNotFoundError(sorted(unknown)[0])

    for row_id, row_model in list(existing.items()):
        if row_id not in incoming_ids:
            model.rows.remove(row_model)
            del existing[row_id]
    session.flush()

    # park renumbered rows on unique negative numbers so swaps don't collide
    renumbered = [
        existing[row.id]
        for row in contract.rows
        if row.id is not None and existing[row.id].sequence_no != row.sequence_no
    ]
    for row_model in renumbered:
        row_model.sequence_no = -row_model.id
    if renumbered:
        session.flush()

    pairs: List[Tuple[BillingRow, LedgerRowModel]] = []
    for row in contract.sorted_rows():
        row_model = existing[row.id] if row.id is not None else LedgerRowModel()
        _apply_row(row_model, row)
        if row.id is None:
            model.rows.append(row_model)
        pairs.append((row, row_model))
    session.flush()

    for row, row_model in pairs:
        _write_children(session, row, row_model)
    session.flush()

    for row, row_model in pairs:
        row.id = row_model.id
    logger.debug("Wrote ledger for contract %s (%d rows)", model.id, len(pairs))


def _write_children(session, row: BillingRow, row_model: LedgerRowModel) -> None:
    existing: Dict[int, LedgerChildModel] = {c.id: c for c in row_model.children}
    incoming_ids = {child.id for child in row.children if child.id is not None}
    unknown = incoming_ids - set(existing)
    if unknown:
        raise PaymentNotFoundError(sorted(unknown)[0])

    for child_id, child_model in list(existing.items()):
        if child_id not in incoming_ids:
            row_model.children.remove(child_model)
            del existing[child_id]
    session.flush()

    renumbered = [
        existing[child.id]
        for child in row.children
        if child.id is not None and existing[child.id].line_no != child.line_no
    ]
    for child_model in renumbered:
        child_model.line_no = -child_model.id
    if renumbered:
        session.flush()

    created: List[Tuple[ChildPayment, LedgerChildModel]] = []
    for child in row.children:
        if child.id is not None:
            _apply_child(existing[child.id], child)
            continue
        child_model = LedgerChildModel()
        _apply_child(child_model, child)
        row_model.children.append(child_model)
        created.append((child, child_model))
    session.flush()
    for child, child_model in created:
        child.id = child_model.id
