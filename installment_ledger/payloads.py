"""Conversion between wire payloads (JSON / form data) and ledger dataclasses.

Incoming values are loosely typed: amounts arrive as strings with commas,
empty fields as ``""`` or ``None``, dates in several formats. Everything is
sanitized here, once, so the calculations only ever see well-formed
integers, ``Decimal`` percentages and ``date`` objects. Problems are
collected and raised together as a ``LedgerValidationError``; malformed
dates are not problems, they become ``None``.

Surcharge lock state is never read from a payload. It is server-side state
owned by the surcharge engine.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from .data_models import BillingRow, ChildPayment, Contract, PossessionCharge, SurchargeLockState
from .exceptions import LedgerValidationError
from .ledger import LedgerTotals, StatementLine
from .utils import parse_amount, parse_int, parse_percent, to_date_only

HEADER_AMOUNT_FIELDS = ("total_amount", "down_payment")
HEADER_TEXT_FIELDS = ("client_name", "unit_number", "unit_type", "project")
HEADER_DATE_FIELDS = ("start_date", "booking_date")
START_DATE_REQUIRED = "start_date is required (YYYY-MM-DD or DD/MM/YYYY)"
PERCENT_STEP = Decimal("0.001")
POSSESSION_FIELDS = (
    "due_date",
    "amount_paid",
    "payment_date",
    "instrument_type",
    "instrument_no",
    "payment_proof",
)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _amount(data: Mapping[str, Any], key: str, label: str, errors: List[str], *, allow_negative: bool = False) -> int:
    try:
        value = parse_amount(data.get(key))
    except ValueError as exc:
        errors.append(f"{label}: {key}: {exc}")
        return 0
    if value < 0 and not allow_negative:
        errors.append(f"{label}: {key} must not be negative")
        return 0
    return value


def _child_from_payload(data: Mapping[str, Any], label: str, errors: List[str], tz: Optional[str] = None) -> ChildPayment:
    try:
        line_no = parse_int(data.get("line_no"), 0)
    except ValueError:
        line_no = 0
    if not line_no or line_no <= 0:
        errors.append(f"{label}: each child payment needs a positive line_no")
    try:
        child_id = parse_int(data.get("id"))
    except ValueError:
        errors.append(f"{label}: invalid id {data.get('id')!r}")
        child_id = None
    return ChildPayment(
        id=child_id,
        line_no=line_no or 0,
        description=_text(data.get("description")) or "",
        amount_paid=_amount(data, "amount_paid", label, errors),
        payment_date=to_date_only(data.get("payment_date"), tz),
        instrument_type=_text(data.get("instrument_type")),
        instrument_no=_text(data.get("instrument_no")),
        payment_proof=_text(data.get("payment_proof")),
    )


def rows_from_payload(payload: Any, tz: Optional[str] = None) -> List[BillingRow]:
    """Parse and validate the row list of a ledger save.

    Raises
    ------
    LedgerValidationError
        If the payload is not a list, a row lacks a positive sequence number,
        sequence numbers repeat, a child lacks a positive line number, line
        numbers repeat within a parent, or an amount is not a number.
    """
    if not isinstance(payload, list):
        raise LedgerValidationError("rows must be a list")

    errors: List[str] = []
    rows: List[BillingRow] = []
    seen_sequences: set = set()
    for index, data in enumerate(payload, start=1):
        if not isinstance(data, Mapping):
            errors.append(f"Row {index}: must be an object")
            continue
        label = f"Row {index}"
        try:
            sequence_no = parse_int(data.get("sequence_no"), 0)
        except ValueError:
            sequence_no = 0
        if not sequence_no or sequence_no <= 0:
            errors.append(f"{label}: every row must have a positive sequence_no")
        elif sequence_no in seen_sequences:
            errors.append(f"{label}: sequence_no {sequence_no} must be unique")
        else:
            seen_sequences.add(sequence_no)
            label = f"Row {sequence_no}"

        try:
            row_id = parse_int(data.get("id"))
        except ValueError:
            errors.append(f"{label}: invalid id {data.get('id')!r}")
            row_id = None

        children_data = data.get("children") or []
        if not isinstance(children_data, list):
            errors.append(f"{label}: children must be a list")
            children_data = []
        children: List[ChildPayment] = []
        seen_lines: set = set()
        for child_index, child_data in enumerate(children_data, start=1):
            child_label = f"{label} child {child_index}"
            if not isinstance(child_data, Mapping):
                errors.append(f"{child_label}: must be an object")
                continue
            child = _child_from_payload(child_data, child_label, errors, tz)
            if child.line_no > 0:
                if child.line_no in seen_lines:
                    errors.append(f"{child_label}: line_no {child.line_no} must be unique within its row")
                seen_lines.add(child.line_no)
            children.append(child)

        rows.append(
            BillingRow(
                id=row_id,
                sequence_no=sequence_no or 0,
                description=_text(data.get("description")) or "",
                installment_amount=_amount(data, "installment_amount", label, errors),
                due_date=to_date_only(data.get("due_date"), tz),
                amount_paid=_amount(data, "amount_paid", label, errors),
                payment_date=to_date_only(data.get("payment_date"), tz),
                instrument_type=_text(data.get("instrument_type")),
                instrument_no=_text(data.get("instrument_no")),
                payment_proof=_text(data.get("payment_proof")),
                children=children,
            )
        )

    if errors:
        raise LedgerValidationError(errors)
    return rows


def contract_patch_from_payload(payload: Optional[Mapping[str, Any]], tz: Optional[str] = None) -> Dict[str, Any]:
    """Parse the header fields present in ``payload`` into typed values."""
    if not payload:
        return {}
    if not isinstance(payload, Mapping):
        raise LedgerValidationError("contract must be an object")

    errors: List[str] = []
    patch: Dict[str, Any] = {}
    for key in HEADER_AMOUNT_FIELDS:
        if payload.get(key) is not None:
            patch[key] = _amount(payload, key, "Contract", errors)
    if payload.get("possession_percent") is not None:
        try:
            percent = parse_percent(payload.get("possession_percent"))
        except ValueError as exc:
            errors.append(f"Contract: possession_percent: {exc}")
        else:
            if not 0 <= percent <= 100:
                errors.append("Contract: possession_percent must be between 0 and 100")
            elif percent != percent.quantize(PERCENT_STEP):
                errors.append("Contract: possession_percent allows at most 3 decimal places")
            patch["possession_percent"] = percent
    if payload.get("months") is not None:
        try:
            months = parse_int(payload.get("months"), 0)
        except ValueError:
            months = 0
        if not months or months <= 0:
            errors.append("Months must be greater than 0")
        patch["months"] = months
    for key in HEADER_DATE_FIELDS:
        if key in payload:
            patch[key] = to_date_only(payload.get(key), tz)
    # the schedule is anchored on start_date, so it may change but never be cleared
    if "start_date" in patch and patch["start_date"] is None:
        errors.append(START_DATE_REQUIRED)
    for key in HEADER_TEXT_FIELDS:
        if payload.get(key) is not None:
            patch[key] = _text(payload.get(key)) or ""

    if errors:
        raise LedgerValidationError(errors)
    return patch


def possession_patch_from_payload(payload: Optional[Mapping[str, Any]], tz: Optional[str] = None) -> Dict[str, Any]:
    """Parse possession-charge fields present in ``payload``."""
    if not payload:
        return {}
    if not isinstance(payload, Mapping):
        raise LedgerValidationError("possession must be an object")

    errors: List[str] = []
    patch: Dict[str, Any] = {}
    for key in POSSESSION_FIELDS:
        if key not in payload:
            continue
        if key == "amount_paid":
            patch[key] = _amount(payload, key, "Possession", errors)
        elif key.endswith("_date"):
            patch[key] = to_date_only(payload.get(key), tz)
        else:
            patch[key] = _text(payload.get(key))
    if errors:
        raise LedgerValidationError(errors)
    return patch


def contract_from_payload(payload: Mapping[str, Any], tz: Optional[str] = None) -> Contract:
    """Build a new ``Contract`` from a creation payload (no rows yet)."""
    if not isinstance(payload, Mapping):
        raise LedgerValidationError("contract must be an object")
    errors: List[str] = []
    if payload.get("total_amount") in (None, ""):
        errors.append("total_amount is required")
    if payload.get("months") in (None, ""):
        errors.append("months is required")
    if "start_date" not in payload:
        errors.append(START_DATE_REQUIRED)
    try:
        patch = contract_patch_from_payload(payload, tz)
    except LedgerValidationError as exc:
        errors.extend(exc.errors)
        patch = {}
    possession_data = payload.get("possession")
    try:
        possession_patch = possession_patch_from_payload(possession_data, tz)
    except LedgerValidationError as exc:
        errors.extend(exc.errors)
        possession_patch = {}
    if errors:
        raise LedgerValidationError(errors)

    contract = Contract(
        total_amount=patch["total_amount"],
        months=patch["months"],
        start_date=patch["start_date"],
        down_payment=patch.get("down_payment", 0),
        possession_percent=patch.get("possession_percent", 0),
        booking_date=patch.get("booking_date"),
        client_name=patch.get("client_name", ""),
        unit_number=patch.get("unit_number", ""),
        unit_type=patch.get("unit_type", ""),
        project=patch.get("project", ""),
    )
    for key, value in possession_patch.items():
        setattr(contract.possession, key, value)
    return contract


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def surcharge_to_dict(state: SurchargeLockState) -> Dict[str, Any]:
    return {
        "locked_amount": state.locked_amount,
        "cycles_applied": state.cycles_applied,
        "balance_base": state.balance_base,
    }


def child_to_dict(child: ChildPayment) -> Dict[str, Any]:
    return {
        "id": child.id,
        "line_no": child.line_no,
        "description": child.description,
        "amount_paid": child.amount_paid,
        "payment_date": _iso(child.payment_date),
        "instrument_type": child.instrument_type,
        "instrument_no": child.instrument_no,
        "payment_proof": child.payment_proof,
    }


def row_to_dict(row: BillingRow) -> Dict[str, Any]:
    return {
        "id": row.id,
        "sequence_no": row.sequence_no,
        "description": row.description,
        "installment_amount": row.installment_amount,
        "due_date": _iso(row.due_date),
        "amount_paid": row.amount_paid,
        "payment_date": _iso(row.payment_date),
        "instrument_type": row.instrument_type,
        "instrument_no": row.instrument_no,
        "payment_proof": row.payment_proof,
        "surcharge": surcharge_to_dict(row.surcharge),
        "children": [child_to_dict(c) for c in row.children],
    }


def possession_to_dict(possession: PossessionCharge) -> Dict[str, Any]:
    return {
        "amount": possession.installment_amount,
        "due_date": _iso(possession.due_date),
        "amount_paid": possession.amount_paid,
        "payment_date": _iso(possession.payment_date),
        "instrument_type": possession.instrument_type,
        "instrument_no": possession.instrument_no,
        "payment_proof": possession.payment_proof,
        "surcharge": surcharge_to_dict(possession.surcharge),
    }


def contract_to_dict(contract: Contract) -> Dict[str, Any]:
    """Header fields plus derived amounts and the possession charge."""
    contract.sync_possession()
    return {
        "id": contract.id,
        "client_name": contract.client_name,
        "unit_number": contract.unit_number,
        "unit_type": contract.unit_type,
        "project": contract.project,
        "total_amount": contract.total_amount,
        "down_payment": contract.down_payment,
        "possession_percent": str(contract.possession_percent),
        "possession_amount": contract.possession_amount,
        "monthly_pool_amount": contract.monthly_pool_amount,
        "months": contract.months,
        "start_date": _iso(contract.start_date),
        "booking_date": _iso(contract.booking_date),
        "possession": possession_to_dict(contract.possession),
    }


def ledger_to_dict(contract: Contract, totals: LedgerTotals) -> Dict[str, Any]:
    return {
        "contract": contract_to_dict(contract),
        "rows": [row_to_dict(r) for r in contract.sorted_rows()],
        "totals": totals.to_dict(),
    }


def statement_line_to_dict(line: StatementLine) -> Dict[str, Any]:
    return {
        "sequence_no": line.sequence_no,
        "description": line.description,
        "installment_amount": line.installment_amount,
        "due_date": _iso(line.due_date),
        "amount_paid": line.amount_paid,
        "payment_date": _iso(line.payment_date),
        "instrument_type": line.instrument_type,
        "instrument_no": line.instrument_no,
        "balance": line.balance,
        "surcharge": line.surcharge,
        "cycles": line.cycles,
        "late_days": line.late_days,
        "receivable": line.receivable,
        "is_possession": line.is_possession,
        "surcharge_blocks": [
            {
                "cycle": b.cycle,
                "days_from": b.days_from,
                "days_to": b.days_to,
                "base": b.base,
                "amount": b.amount,
            }
            for b in line.blocks
        ],
    }
