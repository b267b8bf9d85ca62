"""Command-line interface for the installment ledger.

This module uses ``click`` to implement a multi-command interface. Users can
preview a payment schedule, evaluate the surcharge on a single charge, and
work with stored contracts: create them, apply ledger saves from a JSON
payload, re-run surcharge locking and print or export statements.
"""

from __future__ import annotations

import csv
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .clock import FixedClock
from .config import LedgerConfig
from .data_models import Contract, SurchargeLockState
from .exceptions import ConfigurationError, LedgerError
from .formatter import (
    export_to_csv,
    export_to_json,
    print_schedule,
    print_statement,
    print_totals,
    render_statement_html,
)
from .logging import get_logger, setup_logging
from .payloads import ledger_to_dict
from .schedule import generate_schedule
from .service import LedgerService
from .surcharge import SurchargeEngine, SurchargePolicy
from .utils import format_currency, parse_amount, parse_percent, to_date_only, today_in

logger = get_logger(__name__)


def parse_date_option(value: Optional[str], tz: Optional[str] = None, name: str = "date"):
    if value is None:
        return None
    parsed = to_date_only(value, tz)
    if parsed is None:
        raise click.BadParameter(f"Invalid {name}: {value}")
    return parsed


def parse_amount_option(value: Optional[str], name: str = "amount") -> int:
    try:
        return parse_amount(value)
    except ValueError:
        raise click.BadParameter(f"Invalid {name}: {value}")


def load_payload(path: Path) -> Dict[str, Any]:
    """Read a JSON object from ``path``."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"{path} is not valid JSON: {exc}")
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} must contain a JSON object")
    return data


def _service(ctx: click.Context) -> LedgerService:
    obj = ctx.obj
    if "service" not in obj:
        obj["service"] = LedgerService.from_config(obj["config"], clock=obj.get("clock"))
    return obj["service"]


def _run(action):
    try:
        return action()
    except LedgerError as exc:
        raise click.ClickException(str(exc))


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


@click.group()
@click.option("--database", "database", help="Database URL (default: $LEDGER_DATABASE_URL)")
@click.option("--today", "today", help="Evaluate as if today were this date (YYYY-MM-DD)")
@click.pass_context
def cli(ctx: click.Context, database: Optional[str], today: Optional[str]) -> None:
    """Installment ledger: schedules, late surcharge and statements."""
    try:
        config = LedgerConfig.from_env()
    except ConfigurationError as exc:
        raise click.ClickException(str(exc))
    if database:
        config = replace(config, database_url=database)
    setup_logging(config.log_level, config.log_format)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    if today:
        ctx.obj["clock"] = FixedClock(parse_date_option(today, config.timezone, "today"))


@cli.command()
@click.option("--total", "-t", "total", required=True, help="Total contract amount")
@click.option("--months", "-m", "months", required=True, type=int, help="Number of monthly installments")
@click.option("--start-date", "-s", "start_date", required=True, help="First installment due date")
@click.option("--down-payment", "-d", "down_payment", default="0", help="Down payment amount")
@click.option("--possession-percent", "possession_percent", default="0", help="Possession share of the total (percent)")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
@click.pass_context
def schedule(
    ctx: click.Context,
    total: str,
    months: int,
    start_date: str,
    down_payment: str,
    possession_percent: str,
    output: Optional[str],
) -> None:
    """Preview the installment schedule for a set of contract terms."""
    config: LedgerConfig = ctx.obj["config"]
    try:
        contract = Contract(
            total_amount=parse_amount_option(total, "total"),
            months=months,
            start_date=parse_date_option(start_date, config.timezone, "start date"),
            down_payment=parse_amount_option(down_payment, "down payment"),
            possession_percent=parse_percent(possession_percent),
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    entries = _run(lambda: generate_schedule(contract.monthly_pool_amount, months, contract.start_date))

    if output:
        path = Path(output)
        rows = [
            {
                "sequence_no": e.sequence_no,
                "due_date": e.due_date.isoformat(),
                "installment_amount": e.installment_amount,
                "description": e.description,
            }
            for e in entries
        ]
        if path.suffix.lower() == ".json":
            with path.open("w", encoding="utf-8") as f:
                json.dump(
                    {"possession_amount": contract.possession_amount, "schedule": rows},
                    f,
                    indent=2,
                )
        elif path.suffix.lower() == ".csv":
            with path.open("w", newline="", encoding="utf-8") as f:
                writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()) if rows else ["sequence_no"])
                writer.writeheader()
                writer.writerows(rows)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Schedule exported to {path}")
        return

    prefix = config.currency_prefix
    click.echo(f"Monthly pool       : {format_currency(contract.monthly_pool_amount, prefix)}")
    if contract.has_possession:
        click.echo(f"Possession amount  : {format_currency(contract.possession_amount, prefix)}")
    print_schedule(entries, prefix)


@cli.command()
@click.option("--amount", "-a", "amount", required=True, help="Installment amount")
@click.option("--due-date", "due_date", required=True, help="Installment due date")
@click.option("--paid", "paid", default="0", help="Amount paid so far")
@click.option("--payment-date", "payment_date", help="Latest payment date")
@click.option("--cycles-applied", "cycles_applied", default=0, type=int, help="Cycles already locked")
@click.option("--locked-amount", "locked_amount", default="0", help="Surcharge already locked")
@click.option("--balance-base", "balance_base", help="Balance frozen at first trigger")
@click.pass_context
def surcharge(
    ctx: click.Context,
    amount: str,
    due_date: str,
    paid: str,
    payment_date: Optional[str],
    cycles_applied: int,
    locked_amount: str,
    balance_base: Optional[str],
) -> None:
    """Evaluate the late-payment surcharge for a single installment."""
    config: LedgerConfig = ctx.obj["config"]
    tz = config.timezone
    clock = ctx.obj.get("clock")
    today = clock.today() if clock else today_in(tz)
    engine = SurchargeEngine(SurchargePolicy.from_config(config.surcharge))
    installment = parse_amount_option(amount)
    state = SurchargeLockState(
        locked_amount=parse_amount_option(locked_amount, "locked amount"),
        cycles_applied=cycles_applied,
        balance_base=parse_amount_option(balance_base, "balance base") if balance_base else None,
    )
    result = engine.evaluate(
        installment,
        parse_date_option(due_date, tz, "due date"),
        parse_amount_option(paid, "paid"),
        parse_date_option(payment_date, tz, "payment date"),
        state,
        today,
    )
    prefix = config.currency_prefix
    click.echo(f"As of              : {today.isoformat()}")
    click.echo(f"Cycles applied     : {result.cycles_applied}")
    click.echo(f"Locked surcharge   : {format_currency(result.locked_amount, prefix)}")
    if result.balance_base is not None:
        click.echo(f"Balance base       : {format_currency(result.balance_base, prefix)}")
    for block in engine.breakdown(installment, result):
        click.echo(
            f"  cycle {block.cycle} (days {block.days_from}-{block.days_to}) "
            f"on {format_currency(block.base, prefix)}: {format_currency(block.amount, prefix)}"
        )


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the ledger tables if they do not exist."""
    service = _service(ctx)
    click.echo(f"Database ready at {ctx.obj['config'].database_url}")
    logger.debug("Store %r initialised", service.store)


@cli.command("create-contract")
@click.argument("payload", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def create_contract(ctx: click.Context, payload: Path) -> None:
    """Create a contract from a JSON file and generate its schedule."""
    service = _service(ctx)
    data = load_payload(payload)
    view = _run(lambda: service.create_contract_from_payload(data))
    click.echo(f"Created contract {view.contract.id} with {len(view.contract.rows)} rows")


@cli.command()
@click.argument("contract_id", type=int)
@click.argument("payload", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def save(ctx: click.Context, contract_id: int, payload: Path) -> None:
    """Apply a ledger save from a JSON file with ``rows``, ``contract`` and ``possession``."""
    service = _service(ctx)
    data = load_payload(payload)
    view = _run(
        lambda: service.save_ledger(
            contract_id,
            data.get("rows"),
            data.get("contract"),
            data.get("possession"),
        )
    )
    _echo_json(ledger_to_dict(view.contract, view.totals))


@cli.command()
@click.argument("contract_id", type=int)
@click.pass_context
def recompute(ctx: click.Context, contract_id: int) -> None:
    """Lock any surcharge cycles completed since the last save."""
    service = _service(ctx)
    view = _run(lambda: service.recompute(contract_id))
    print_totals(view.totals, ctx.obj["config"].currency_prefix)


@cli.command()
@click.argument("contract_id", type=int)
@click.option("--output", "output", type=str, help="Output file path (.json, .csv or .html)")
@click.pass_context
def statement(ctx: click.Context, contract_id: int, output: Optional[str]) -> None:
    """Print or export a contract's ledger statement."""
    service = _service(ctx)
    prefix = ctx.obj["config"].currency_prefix
    contract, lines, totals = _run(lambda: service.statement(contract_id))
    if output:
        path = Path(output)
        suffix = path.suffix.lower()
        if suffix == ".json":
            export_to_json(path, contract, lines, totals)
        elif suffix == ".csv":
            export_to_csv(path, lines)
        elif suffix in (".html", ".htm"):
            path.write_text(render_statement_html(contract, lines, totals, prefix), encoding="utf-8")
        else:
            raise click.BadParameter("Unsupported output format; use .json, .csv or .html")
        click.echo(f"Statement exported to {path}")
        return
    print_totals(totals, prefix)
    print_statement(lines, prefix)


if __name__ == "__main__":
    cli()
