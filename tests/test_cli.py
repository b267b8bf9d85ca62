"""Tests for the command-line interface."""

import json

import pytest
from click.testing import CliRunner

from installment_ledger.main import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def env(tmp_path) -> dict:
    return {
        "LEDGER_DATABASE_URL": f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        "LEDGER_UPLOAD_DIR": str(tmp_path / "proofs"),
        "LOG_LEVEL": "WARNING",
    }


@pytest.fixture
def contract_file(tmp_path, sample_payload):
    path = tmp_path / "contract.json"
    path.write_text(json.dumps(sample_payload), encoding="utf-8")
    return path


def create(runner: CliRunner, env: dict, contract_file) -> int:
    result = runner.invoke(cli, ["create-contract", str(contract_file)], env=env)
    assert result.exit_code == 0, result.output
    assert "Created contract 1 with 10 rows" in result.output
    return 1


class TestScheduleCommand:
    def test_prints_schedule(self, runner, env) -> None:
        result = runner.invoke(cli, ["schedule", "-t", "100", "-m", "3", "-s", "2025-01-31"], env=env)
        assert result.exit_code == 0, result.output
        assert "1st INSTALLMENT" in result.output
        assert "28-2-2025" in result.output
        assert "Rs. 34" in result.output

    def test_exports_json(self, runner, env, tmp_path) -> None:
        out = tmp_path / "schedule.json"
        result = runner.invoke(
            cli,
            ["schedule", "-t", "1,000", "-m", "4", "-s", "01/01/2025", "-d", "100", "--possession-percent", "10", "--output", str(out)],
            env=env,
        )
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["possession_amount"] == 100
        assert [r["installment_amount"] for r in data["schedule"]] == [200, 200, 200, 200]

    def test_exports_csv(self, runner, env, tmp_path) -> None:
        out = tmp_path / "schedule.csv"
        result = runner.invoke(cli, ["schedule", "-t", "100", "-m", "3", "-s", "2025-01-01", "--output", str(out)], env=env)
        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8").splitlines()[0] == "sequence_no,due_date,installment_amount,description"

    def test_bad_start_date(self, runner, env) -> None:
        result = runner.invoke(cli, ["schedule", "-t", "100", "-m", "3", "-s", "someday"], env=env)
        assert result.exit_code == 2
        assert "Invalid start date" in result.output

    def test_zero_months(self, runner, env) -> None:
        result = runner.invoke(cli, ["schedule", "-t", "100", "-m", "0", "-s", "2025-01-01"], env=env)
        assert result.exit_code == 1
        assert "Months must be greater than 0" in result.output


class TestSurchargeCommand:
    def test_partial_payment(self, runner, env) -> None:
        result = runner.invoke(
            cli,
            [
                "--today", "2025-03-12",
                "surcharge",
                "--amount", "100000",
                "--due-date", "2025-01-10",
                "--paid", "20000",
                "--payment-date", "2025-01-15",
            ],
            env=env,
        )
        assert result.exit_code == 0, result.output
        assert "Cycles applied     : 2" in result.output
        assert "Locked surcharge   : Rs. 9,000" in result.output
        assert "Balance base       : Rs. 80,000" in result.output
        assert "cycle 2 (days 31-60)" in result.output

    def test_no_payment(self, runner, env) -> None:
        result = runner.invoke(
            cli,
            ["--today", "2025-03-12", "surcharge", "--amount", "100000", "--due-date", "2025-01-10"],
            env=env,
        )
        assert result.exit_code == 0, result.output
        assert "Locked surcharge   : Rs. 0" in result.output


class TestLedgerCommands:
    """Tests for the stored-contract commands."""

    def test_init_db(self, runner, env) -> None:
        result = runner.invoke(cli, ["init-db"], env=env)
        assert result.exit_code == 0, result.output
        assert "Database ready" in result.output

    def test_save_and_recompute(self, runner, env, contract_file, tmp_path) -> None:
        contract_id = create(runner, env, contract_file)
        statement = runner.invoke(cli, ["statement", str(contract_id), "--output", str(tmp_path / "s.json")], env=env)
        assert statement.exit_code == 0, statement.output
        lines = json.loads((tmp_path / "s.json").read_text(encoding="utf-8"))["lines"]

        save_file = tmp_path / "save.json"
        rows = [
            {
                "sequence_no": line["sequence_no"],
                "installment_amount": line["installment_amount"],
                "due_date": line["due_date"],
                "description": line["description"],
            }
            for line in lines
            if not line["is_possession"]
        ]
        rows[0]["amount_paid"] = 20_000
        rows[0]["payment_date"] = "2025-02-05"
        save_file.write_text(json.dumps({"rows": rows}), encoding="utf-8")

        # rows without ids replace the generated ones
        result = runner.invoke(cli, ["--today", "2025-02-10", "save", str(contract_id), str(save_file)], env=env)
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["totals"]["total_paid"] == 20_000
        assert data["totals"]["total_surcharge"] == 4400

        result = runner.invoke(cli, ["--today", "2025-03-12", "recompute", str(contract_id)], env=env)
        assert result.exit_code == 0, result.output
        assert "Total surcharge    : Rs. 7,800" in result.output

    def test_statement_print_and_export(self, runner, env, contract_file, tmp_path) -> None:
        contract_id = create(runner, env, contract_file)
        result = runner.invoke(cli, ["statement", str(contract_id)], env=env)
        assert result.exit_code == 0, result.output
        assert "Total payable      : Rs. 1,000,000" in result.output
        assert "POSSESSION" in result.output

        html_path = tmp_path / "ledger.html"
        result = runner.invoke(cli, ["statement", str(contract_id), "--output", str(html_path)], env=env)
        assert result.exit_code == 0, result.output
        assert "Ayesha Khan" in html_path.read_text(encoding="utf-8")

        csv_path = tmp_path / "ledger.csv"
        result = runner.invoke(cli, ["statement", str(contract_id), "--output", str(csv_path)], env=env)
        assert result.exit_code == 0, result.output
        assert csv_path.read_text(encoding="utf-8").startswith("Sr,Description")

    def test_unsupported_export(self, runner, env, contract_file, tmp_path) -> None:
        contract_id = create(runner, env, contract_file)
        result = runner.invoke(cli, ["statement", str(contract_id), "--output", str(tmp_path / "x.pdf")], env=env)
        assert result.exit_code == 2

    def test_missing_contract(self, runner, env) -> None:
        result = runner.invoke(cli, ["statement", "99"], env=env)
        assert result.exit_code == 1
        assert "Contract not found: 99" in result.output

    def test_invalid_save_payload(self, runner, env, contract_file, tmp_path) -> None:
        contract_id = create(runner, env, contract_file)
        save_file = tmp_path / "save.json"
        save_file.write_text(json.dumps({"rows": [{"sequence_no": 0}]}), encoding="utf-8")
        result = runner.invoke(cli, ["save", str(contract_id), str(save_file)], env=env)
        assert result.exit_code == 1
        assert "positive sequence_no" in result.output
