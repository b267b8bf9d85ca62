"""Tests for the SQL ledger store."""

from datetime import date

import pytest

from installment_ledger.data_models import BillingRow, ChildPayment, Contract, SurchargeLockState
from installment_ledger.exceptions import (
    ContractNotFoundError,
    PaymentNotFoundError,
    RowNotFoundError,
)
from installment_ledger.schedule import rebuild_rows
from installment_ledger.store import SqlLedgerStore


@pytest.fixture
def stored(store: SqlLedgerStore, sample_contract: Contract) -> Contract:
    sample_contract.rows = rebuild_rows(sample_contract, [])
    return store.add(sample_contract)


class TestAddAndGet:
    def test_ids_assigned(self, stored: Contract) -> None:
        assert stored.id is not None
        assert all(row.id is not None for row in stored.rows)

    def test_round_trip(self, store: SqlLedgerStore, stored: Contract) -> None:
        loaded = store.get(stored.id)
        assert loaded.client_name == "Ayesha Khan"
        assert loaded.total_amount == 1_200_000
        assert loaded.possession_percent == stored.possession_percent
        assert loaded.start_date == date(2025, 1, 10)
        assert loaded.booking_date == date(2024, 12, 15)
        assert [r.sequence_no for r in loaded.rows] == list(range(1, 11))
        assert loaded.possession.installment_amount == 120_000

    def test_missing_contract(self, store: SqlLedgerStore) -> None:
        with pytest.raises(ContractNotFoundError):
            store.get(999)


class TestEdit:
    """Tests for SqlLedgerStore.edit."""

    def test_payments_children_and_surcharge_persist(self, store: SqlLedgerStore, stored: Contract) -> None:
        with store.edit(stored.id) as contract:
            row = contract.find_row(sequence_no=1)
            row.amount_paid = 20_000
            row.payment_date = date(2025, 1, 20)
            row.children.append(ChildPayment(line_no=1, amount_paid=5_000, payment_date=date(2025, 1, 25)))
            row.surcharge = SurchargeLockState(locked_amount=4400, cycles_applied=1, balance_base=63_000)
            contract.possession.due_date = date(2025, 12, 1)

        loaded = store.get(stored.id)
        row = loaded.find_row(sequence_no=1)
        assert row.amount_paid == 20_000
        assert row.children[0].amount_paid == 5_000
        assert row.children[0].id is not None
        assert row.surcharge == SurchargeLockState(locked_amount=4400, cycles_applied=1, balance_base=63_000)
        assert loaded.possession.due_date == date(2025, 12, 1)

    def test_rows_removed_and_added(self, store: SqlLedgerStore, stored: Contract) -> None:
        with store.edit(stored.id) as contract:
            contract.rows = [r for r in contract.rows if r.sequence_no != 10]
            contract.rows.append(BillingRow(sequence_no=11, installment_amount=500, due_date=date(2026, 1, 1)))

        loaded = store.get(stored.id)
        assert [r.sequence_no for r in loaded.sorted_rows()] == [1, 2, 3, 4, 5, 6, 7, 8, 9, 11]

    def test_sequence_numbers_can_be_swapped(self, store: SqlLedgerStore, stored: Contract) -> None:
        first_id = stored.find_row(sequence_no=1).id
        second_id = stored.find_row(sequence_no=2).id
        with store.edit(stored.id) as contract:
            contract.find_row(row_id=first_id).sequence_no = 2
            contract.find_row(row_id=second_id).sequence_no = 1

        loaded = store.get(stored.id)
        assert loaded.find_row(row_id=first_id).sequence_no == 2
        assert loaded.find_row(row_id=second_id).sequence_no == 1

    def test_error_rolls_back(self, store: SqlLedgerStore, stored: Contract) -> None:
        with pytest.raises(RuntimeError):
            with store.edit(stored.id) as contract:
                contract.client_name = "Changed"
                contract.rows = []
                raise RuntimeError("boom")

        loaded = store.get(stored.id)
        assert loaded.client_name == "Ayesha Khan"
        assert len(loaded.rows) == 10

    def test_unknown_row_id(self, store: SqlLedgerStore, stored: Contract) -> None:
        with pytest.raises(RowNotFoundError):
            with store.edit(stored.id) as contract:
                contract.rows[0].id = 99_999

    def test_unknown_child_id(self, store: SqlLedgerStore, stored: Contract) -> None:
        with pytest.raises(PaymentNotFoundError):
            with store.edit(stored.id) as contract:
                contract.rows[0].children.append(ChildPayment(id=424242, line_no=1, amount_paid=1))

    def test_edit_missing_contract(self, store: SqlLedgerStore) -> None:
        with pytest.raises(ContractNotFoundError):
            with store.edit(12345):
                pass


class TestDelete:
    def test_delete_cascades(self, store: SqlLedgerStore, stored: Contract) -> None:
        store.delete(stored.id)
        with pytest.raises(ContractNotFoundError):
            store.get(stored.id)

    def test_delete_missing(self, store: SqlLedgerStore) -> None:
        with pytest.raises(ContractNotFoundError):
            store.delete(7)
