"""JSON API for contract ledgers.

``create_app`` wires a :class:`LedgerService` from the environment (or from
an injected config / service for tests) and exposes the ledger read, save,
proof upload / delete and statement export endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

from flask import Flask, Response, abort, jsonify, request, send_from_directory

from installment_ledger.config import LedgerConfig
from installment_ledger.exceptions import LedgerNotFoundError, LedgerValidationError
from installment_ledger.formatter import render_statement_html, statement_to_csv, statement_to_dict
from installment_ledger.logging import get_logger, setup_logging
from installment_ledger.payloads import ledger_to_dict
from installment_ledger.proofs import DiskProofStore
from installment_ledger.service import LedgerService
from installment_ledger.utils import parse_int

logger = get_logger(__name__)

EXPORT_FORMATS = ("json", "csv", "html")


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def _target_args(source) -> dict:
    args: dict = {"possession": _flag(source.get("possession"))}
    errors = []
    for key in ("row_id", "sequence_no"):
        try:
            args[key] = parse_int(source.get(key))
        except ValueError:
            errors.append(f"{key} must be an integer")
    if errors:
        raise LedgerValidationError(errors)
    return args


def create_app(config: Optional[LedgerConfig] = None, service: Optional[LedgerService] = None) -> Flask:
    """Build the Flask app.

    Parameters
    ----------
    config: LedgerConfig, optional
        Settings to use; read from the environment when omitted.
    service: LedgerService, optional
        Pre-built service (tests pass one with an in-memory store and a
        fixed clock).
    """
    config = config or LedgerConfig.from_env()
    setup_logging(config.log_level, config.log_format)
    service = service or LedgerService.from_config(config)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.proofs.max_bytes + 64 * 1024
    app.extensions["ledger_service"] = service

    @app.errorhandler(LedgerValidationError)
    def _validation_error(exc: LedgerValidationError):
        return jsonify({"error": str(exc), "errors": exc.errors}), 400

    @app.errorhandler(LedgerNotFoundError)
    def _not_found(exc: LedgerNotFoundError):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(413)
    def _too_large(_exc):
        return jsonify({"error": "File too large"}), 413

    @app.get("/api/ledger/<int:contract_id>")
    def get_ledger(contract_id: int):
        view = service.get_ledger(contract_id)
        return jsonify(ledger_to_dict(view.contract, view.totals))

    @app.put("/api/ledger/<int:contract_id>")
    def save_ledger(contract_id: int):
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            raise LedgerValidationError("Request body must be a JSON object")
        view = service.save_ledger(
            contract_id,
            body.get("rows"),
            body.get("contract"),
            body.get("possession"),
        )
        return jsonify(ledger_to_dict(view.contract, view.totals))

    @app.post("/api/ledger/<int:contract_id>/upload-proof")
    def upload_proof(contract_id: int):
        upload = request.files.get("file")
        if upload is None:
            raise LedgerValidationError("File missing")
        reference = service.upload_proof(
            contract_id,
            upload.read(),
            filename=upload.filename or "",
            content_type=upload.mimetype or None,
            **_target_args(request.form),
        )
        return jsonify({"url": reference}), 201

    @app.delete("/api/ledger/<int:contract_id>/delete-proof")
    def delete_proof(contract_id: int):
        source = request.get_json(silent=True)
        if not isinstance(source, dict):
            source = request.args
        reference = service.remove_proof(contract_id, **_target_args(source))
        return jsonify({"deleted": reference})

    @app.get("/api/ledger/<int:contract_id>/export/<fmt>")
    def export_statement(contract_id: int, fmt: str):
        fmt = fmt.lower()
        if fmt not in EXPORT_FORMATS:
            abort(404)
        contract, lines, totals = service.statement(contract_id)
        name = f"ledger-{contract_id}"
        if fmt == "json":
            return jsonify(statement_to_dict(contract, lines, totals))
        if fmt == "csv":
            return Response(
                statement_to_csv(lines),
                mimetype="text/csv",
                headers={"Content-Disposition": f'attachment; filename="{name}.csv"'},
            )
        return Response(
            render_statement_html(contract, lines, totals, config.currency_prefix),
            mimetype="text/html",
        )

    proof_store = service.proof_store
    if isinstance(proof_store, DiskProofStore):

        @app.get(proof_store.public_prefix + "/<path:name>")
        def serve_proof(name: str):
            return send_from_directory(proof_store.upload_dir.resolve(), name)

    logger.info("Ledger API ready")
    return app
