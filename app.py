"""
Ledger Insight — HTTP API.

JSON endpoints over ``LedgerInsightPipeline``.  Every response carries a
``success`` flag; input problems (``ParseError``/``ValidationError``) come
back as 400 with the error message verbatim.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Tuple

from flask import Flask, request
from werkzeug.utils import secure_filename

from ledger_insight import __version__
from ledger_insight.config import EngineConfig
from ledger_insight.errors import LedgerInsightError
from ledger_insight.logging_setup import get_logger
from ledger_insight.pipeline import LedgerInsightPipeline

# -------------------------------------------------------
# App Setup
# -------------------------------------------------------

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = 16 * 1024 * 1024

ALLOWED_EXTENSIONS = {"csv", "tsv", "txt", "xlsx", "xlsm"}

pipeline = LedgerInsightPipeline(config=EngineConfig(log_level=logging.WARNING))

logger = get_logger("api")

Response = Tuple[Dict[str, Any], int]

# -------------------------------------------------------
# Helpers
# -------------------------------------------------------


class RequestError(LedgerInsightError):
    """Malformed HTTP request (wrong body shape, missing upload)."""


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise RequestError("Request body must be a JSON object")
    return data


def list_field(data: Dict[str, Any], key: str, required: bool = False) -> List[Any]:
    value = data.get(key)
    if value is None:
        if required:
            raise RequestError(f"'{key}' is required")
        return []
    if not isinstance(value, list):
        raise RequestError(f"'{key}' must be a list")
    return value


@app.errorhandler(LedgerInsightError)
def handle_input_error(exc: LedgerInsightError) -> Response:
    logger.info("Rejected request to %s: %s", request.path, exc)
    return {"success": False, "error": str(exc)}, 400


# -------------------------------------------------------
# Routes
# -------------------------------------------------------

@app.route("/api/health", methods=["GET"])
def api_health() -> Response:
    return {
        "status": "online",
        "version": __version__,
        "endpoints": [
            "/api/profile",
            "/api/mapping",
            "/api/accounts/<number>/classification",
            "/api/trial-balance/validate",
            "/api/working-papers",
            "/api/working-papers/<id>",
            "/api/working-papers/<id>/documents",
            "/api/datasets/<id>/working-papers",
        ],
    }, 200


@app.route("/api/profile", methods=["POST"])
def api_profile() -> Response:
    """Profile every sheet of an uploaded file.

    Form fields ``dataset_name`` (and optionally ``engagement_id``,
    ``sheet_name``) additionally store the chosen sheet as a dataset version.
    """
    if "file" not in request.files:
        raise RequestError("No file uploaded")

    upload = request.files["file"]
    if not upload.filename:
        raise RequestError("No file selected")
    if not allowed_file(upload.filename):
        raise RequestError("Invalid file type")

    filename = secure_filename(upload.filename)
    fmt = Path(filename).suffix.lstrip(".").lower()
    payload = upload.read()

    sheets = pipeline.parse_tabular_payload(payload, fmt, sheet_name=Path(filename).stem)
    result: Dict[str, Any] = {
        "success": True,
        "file_name": filename,
        "sheets": [],
    }
    for sheet in sheets:
        columns = pipeline.profile_columns(sheet)
        mapping = pipeline.resolve_column_mapping(sheet.headers)
        result["sheets"].append({
            **sheet.to_dict(),
            "columns": [c.to_dict() for c in columns],
            "mapping": mapping.report(),
        })

    dataset_name = request.form.get("dataset_name", "").strip()
    if dataset_name:
        dataset = pipeline.import_dataset(
            payload,
            fmt,
            name=dataset_name,
            sheet_name=request.form.get("sheet_name") or None,
            file_name=filename,
            engagement_id=request.form.get("engagement_id") or None,
        )
        result["dataset"] = dataset.to_dict()

    return result, 200


@app.route("/api/mapping", methods=["POST"])
def api_mapping() -> Response:
    headers = list_field(json_body(), "headers", required=True)
    mapping = pipeline.resolve_column_mapping([str(h) for h in headers])
    return {"success": True, **mapping.report()}, 200


@app.route("/api/accounts/<number>/classification", methods=["GET"])
def api_classification(number: str) -> Response:
    classification = pipeline.classify_account(number)
    return {"success": True, "account_number": number, **classification.to_dict()}, 200


@app.route("/api/trial-balance/validate", methods=["POST"])
def api_validate_trial_balance() -> Response:
    accounts = list_field(json_body(), "accounts", required=True)
    report = pipeline.validate_trial_balance(accounts)
    return {"success": True, **report.to_dict()}, 200


@app.route("/api/working-papers", methods=["POST"])
def api_build_working_paper() -> Response:
    data = json_body()
    paper = pipeline.build_working_paper(
        list_field(data, "selected"),
        list_field(data, "prior"),
        list_field(data, "expected"),
        name=str(data.get("name", "")),
        description=str(data.get("description", "")),
        engagement_id=data.get("engagement_id"),
    )
    pipeline.sink.save_working_paper(paper)
    return {"success": True, "working_paper": paper.to_dict()}, 201


@app.route("/api/datasets/<dataset_id>/working-papers", methods=["POST"])
def api_working_paper_from_dataset(dataset_id: str) -> Response:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise RequestError("Request body must be a JSON object")
    numbers = data.get("selected_numbers")
    if numbers is not None and not isinstance(numbers, list):
        raise RequestError("'selected_numbers' must be a list")
    overrides = data.get("mapping") or {}
    if not isinstance(overrides, dict):
        raise RequestError("'mapping' must be an object")

    paper = pipeline.working_paper_from_dataset(
        dataset_id,
        [str(n) for n in numbers] if numbers is not None else None,
        mapping_overrides=overrides,
        prior=list_field(data, "prior"),
        expected=list_field(data, "expected"),
        name=str(data.get("name", "")),
        description=str(data.get("description", "")),
    )
    return {"success": True, "working_paper": paper.to_dict()}, 201


@app.route("/api/working-papers/<paper_id>", methods=["GET"])
def api_get_working_paper(paper_id: str) -> Response:
    paper = pipeline.sink.get_working_paper(paper_id)
    return {"success": True, "working_paper": paper.to_dict()}, 200


@app.route("/api/working-papers/<paper_id>/documents", methods=["POST"])
def api_link_document(paper_id: str) -> Response:
    document_id = str(json_body().get("document_id", "")).strip()
    if not document_id:
        raise RequestError("'document_id' is required")
    paper = pipeline.sink.get_working_paper(paper_id)
    linked = paper.link_document(document_id)
    pipeline.sink.save_working_paper(paper)
    return {
        "success": True,
        "linked": linked,
        "supporting_documents": list(paper.supporting_documents),
    }, 200


# -------------------------------------------------------
# Main
# -------------------------------------------------------

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))
