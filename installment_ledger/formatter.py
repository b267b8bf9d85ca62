"""Output helpers for ledger statements.

Text tables go to stdout with plain tab-separated printing; CSV and JSON are
written with the standard library; the print-ready HTML statement is a Jinja
template (the same engine the web app uses). Dates are shown as ``D-M-YYYY``
and money as ``Rs. 1,234``.
"""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

from jinja2 import Environment

from .data_models import Contract, ScheduleEntry
from .ledger import LedgerTotals, StatementLine
from .payloads import contract_to_dict, statement_line_to_dict
from .utils import format_currency, format_dmy

CSV_HEADER = [
    "Sr",
    "Description",
    "Installment",
    "Due_Date",
    "Paid",
    "Payment_Date",
    "Instrument_Type",
    "Instrument_No",
    "Balance",
    "Late_Days",
    "Surcharge",
    "Receivable",
]


def print_totals(totals: LedgerTotals, prefix: str = "Rs. ") -> None:
    """Print the ledger summary figures."""
    print("Summary")
    print("-" * 72)
    print(f"Total payable      : {format_currency(totals.total_payable, prefix)}")
    print(f"Total paid         : {format_currency(totals.total_paid, prefix)}")
    print(f"Total receivable   : {format_currency(totals.total_receivable, prefix)}")
    print(f"Total surcharge    : {format_currency(totals.total_surcharge, prefix)}")
    print(f"Total due          : {format_currency(totals.total_due, prefix)}")
    print("-" * 72)


def print_schedule(schedule: Iterable[ScheduleEntry], prefix: str = "Rs. ") -> None:
    """Print a generated (not yet saved) schedule."""
    print("\t".join(["Sr", "Due", "Installment", "Description"]))
    for entry in schedule:
        print(
            "\t".join(
                [
                    str(entry.sequence_no),
                    format_dmy(entry.due_date),
                    format_currency(entry.installment_amount, prefix),
                    entry.description,
                ]
            )
        )


def _sr(line: StatementLine) -> str:
    return "P" if line.is_possession else str(line.sequence_no)


def print_statement(lines: Iterable[StatementLine], prefix: str = "Rs. ") -> None:
    """Print statement lines as a simple table.

    Parameters
    ----------
    lines: Iterable[StatementLine]
        Lines from :func:`installment_ledger.ledger.statement_lines`.
    prefix: str
        Currency prefix for money columns.
    """
    print("\t".join(["Sr", "Description", "Installment", "Due", "Paid", "PaidOn", "Balance", "Late", "Surcharge", "Receivable"]))
    for line in lines:
        print(
            "\t".join(
                [
                    _sr(line),
                    line.description,
                    format_currency(line.installment_amount, prefix),
                    format_dmy(line.due_date),
                    format_currency(line.amount_paid, prefix),
                    format_dmy(line.payment_date),
                    format_currency(line.balance, prefix),
                    str(line.late_days),
                    format_currency(line.surcharge, prefix),
                    format_currency(line.receivable, prefix),
                ]
            )
        )


def _csv_rows(lines: Iterable[StatementLine]) -> List[List[Any]]:
    return [
        [
            _sr(line),
            line.description,
            line.installment_amount,
            format_dmy(line.due_date),
            line.amount_paid,
            format_dmy(line.payment_date),
            line.instrument_type,
            line.instrument_no,
            line.balance,
            line.late_days,
            line.surcharge,
            line.receivable,
        ]
        for line in lines
    ]


def statement_to_csv(lines: Iterable[StatementLine]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    writer.writerows(_csv_rows(lines))
    return buffer.getvalue()


def statement_to_dict(contract: Contract, lines: Iterable[StatementLine], totals: LedgerTotals) -> Dict[str, Any]:
    return {
        "contract": contract_to_dict(contract),
        "lines": [statement_line_to_dict(line) for line in lines],
        "totals": totals.to_dict(),
    }


def export_to_json(path: Path, contract: Contract, lines: List[StatementLine], totals: LedgerTotals) -> None:
    """Export a statement and its totals to a JSON file."""
    with path.open("w", encoding="utf-8") as f:
        json.dump(statement_to_dict(contract, lines, totals), f, indent=2)


def export_to_csv(path: Path, lines: List[StatementLine]) -> None:
    """Export statement lines to a CSV file."""
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        writer.writerows(_csv_rows(lines))


_env = Environment(autoescape=True)
_env.filters["money"] = format_currency
_env.filters["dmy"] = format_dmy

STATEMENT_TEMPLATE = _env.from_string(
    """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Ledger {{ contract.unit_number or contract.id }}</title>
<style>
body { font-family: sans-serif; font-size: 11px; }
table { border-collapse: collapse; width: 100%; }
th, td { border: 1px solid #999; padding: 3px 5px; }
td.num { text-align: right; }
@page { size: A4 landscape; margin: 10mm; }
</style>
</head>
<body>
<h1>Customer Ledger</h1>
<p>
Client: {{ contract.client_name or "" }}<br>
Unit: {{ contract.unit_number or "" }} {{ contract.unit_type or "" }}<br>
Project: {{ contract.project or "" }}<br>
Booking date: {{ contract.booking_date | dmy }}
</p>
<table>
<thead>
<tr><th>Sr</th><th>Description</th><th>Installment</th><th>Due Date</th><th>Paid</th><th>Payment Date</th><th>Instrument</th><th>Balance</th><th>Late Days</th><th>Surcharge</th><th>Receivable</th></tr>
</thead>
<tbody>
{% for line in lines %}
<tr>
<td>{{ "P" if line.is_possession else line.sequence_no }}</td>
<td>{{ line.description }}</td>
<td class="num">{{ line.installment_amount | money(prefix) }}</td>
<td>{{ line.due_date | dmy }}</td>
<td class="num">{{ line.amount_paid | money(prefix) }}</td>
<td>{{ line.payment_date | dmy }}</td>
<td>{{ line.instrument_type }} {{ line.instrument_no }}</td>
<td class="num">{{ line.balance | money(prefix) }}</td>
<td class="num">{{ line.late_days }}</td>
<td class="num">{{ line.surcharge | money(prefix) }}</td>
<td class="num">{{ line.receivable | money(prefix) }}</td>
</tr>
{% endfor %}
</tbody>
</table>
<table>
<tr><th>Total payable</th><td class="num">{{ totals.total_payable | money(prefix) }}</td></tr>
<tr><th>Total paid</th><td class="num">{{ totals.total_paid | money(prefix) }}</td></tr>
<tr><th>Total receivable</th><td class="num">{{ totals.total_receivable | money(prefix) }}</td></tr>
<tr><th>Total surcharge</th><td class="num">{{ totals.total_surcharge | money(prefix) }}</td></tr>
<tr><th>Total due</th><td class="num">{{ totals.total_due | money(prefix) }}</td></tr>
</table>
</body>
</html>
"""
)


def render_statement_html(
    contract: Contract,
    lines: List[StatementLine],
    totals: LedgerTotals,
    prefix: str = "Rs. ",
) -> str:
    """Render a print-ready HTML statement; all text fields are escaped."""
    return STATEMENT_TEMPLATE.render(contract=contract, lines=lines, totals=totals, prefix=prefix)
