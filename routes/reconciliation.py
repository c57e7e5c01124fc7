"""REST endpoints exposing the production reconciliation engine.

The service is stateless: every request carries the job, the production run
log and the workflow metadata it should be reconciled against.
"""

from __future__ import annotations

import math
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from marshmallow import ValidationError

from reconciliation import (
    all_stage_progress,
    allocate_fifo,
    convert_unit,
    current_stage_summary,
    evaluate_output_entry,
    job_progress,
    lot_availability,
    partition_runs,
    snapshot_fingerprint,
    stage_progress,
    stage_summary,
    tolerance_band,
)
from schemas import (
    AllocationRequestSchema,
    AllocationResultSchema,
    ClassifyRequestSchema,
    JobProgressSchema,
    LotAvailabilitySchema,
    OutputCheckRequestSchema,
    OutputEntryDecisionSchema,
    ReconciliationRequestSchema,
    RunSchema,
    StageProgressSchema,
    StageRequestSchema,
    StageSummarySchema,
)

bp = Blueprint("reconciliation", __name__, url_prefix="/api/reconciliation")

classify_request_schema = ClassifyRequestSchema()
reconciliation_request_schema = ReconciliationRequestSchema()
stage_request_schema = StageRequestSchema()
allocation_request_schema = AllocationRequestSchema()
output_check_request_schema = OutputCheckRequestSchema()

runs_schema = RunSchema(many=True)
stage_progress_schema = StageProgressSchema()
stage_progress_list_schema = StageProgressSchema(many=True)
job_progress_schema = JobProgressSchema()
stage_summary_schema = StageSummarySchema()
lots_schema = LotAvailabilitySchema(many=True)
allocation_result_schema = AllocationResultSchema()
output_decision_schema = OutputEntryDecisionSchema()

STAGE_NOT_FOUND = "Stage not found in any workflow."


def _log_event(event: str, payload: dict[str, Any]) -> None:
    current_app.logger.info({"event": event, **payload})


def _load_payload(schema) -> dict[str, Any]:
    """Load the JSON body with ``schema`` and enforce request size limits."""

    data = schema.load(request.get_json(silent=True) or {})

    errors: dict[str, str] = {}
    max_runs = current_app.config.get("RECONCILIATION_MAX_RUNS")
    if max_runs and len(data.get("runs") or []) > max_runs:
        errors["runs"] = f"At most {max_runs} production runs can be reconciled per request."
    max_workflows = current_app.config.get("RECONCILIATION_MAX_WORKFLOWS")
    if max_workflows and len(data.get("workflows") or []) > max_workflows:
        errors["workflows"] = f"At most {max_workflows} workflows can be supplied per request."
    if errors:
        raise ValidationError(errors)
    return data


def _validation_failed(exc: ValidationError):
    _log_event("reconciliation_payload_rejected", {"path": request.path, "fields": sorted(exc.messages)})
    return jsonify({"errors": exc.messages}), 400


def _stage_not_found(stage_id):
    return jsonify({"msg": STAGE_NOT_FOUND, "stage_id": stage_id}), 404


def _parse_float(value, *, field_name: str, required: bool = True):
    if value is None or str(value).strip() == "":
        if required:
            raise ValidationError({field_name: "This field is required."})
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError({field_name: "Must be a number."})
    if not math.isfinite(number):
        raise ValidationError({field_name: "Must be a finite number."})
    return number


def _resolve_stage_id(data: dict[str, Any]):
    return data.get("stage_id") or data["job"].current_stage_id


@bp.get("/tolerance")
def tolerance():
    try:
        planned = _parse_float(request.args.get("planned"), field_name="planned")
    except ValidationError as exc:
        return _validation_failed(exc)

    band = tolerance_band(planned)
    return jsonify(
        {
            "planned": planned,
            "lower": band.lower,
            "upper": band.upper,
            "completion_threshold": band.completion_threshold(planned),
            "completion_threshold_upper": band.completion_threshold_upper(planned),
        }
    )


@bp.get("/convert")
def convert():
    try:
        qty = _parse_float(request.args.get("qty"), field_name="qty")
        multiplier = _parse_float(request.args.get("multiplier"), field_name="multiplier", required=False)
    except ValidationError as exc:
        return _validation_failed(exc)

    from_unit = request.args.get("from", "")
    to_unit = request.args.get("to", "")
    return jsonify(
        {
            "qty": convert_unit(qty, from_unit, to_unit, multiplier),
            "from": from_unit,
            "to": to_unit,
        }
    )


@bp.post("/runs/classify")
def classify():
    try:
        data = _load_payload(classify_request_schema)
    except ValidationError as exc:
        return _validation_failed(exc)

    partition = partition_runs(data["runs"], data["stage_id"])
    return jsonify(
        {
            "stage_id": data["stage_id"],
            "production": runs_schema.dump(partition.production),
            "transfer": runs_schema.dump(partition.transfer),
            "snapshot": snapshot_fingerprint(data["runs"]),
        }
    )


@bp.post("/stages/<string:stage_id>/progress")
def stage_progress_detail(stage_id: str):
    try:
        data = _load_payload(reconciliation_request_schema)
    except ValidationError as exc:
        return _validation_failed(exc)

    progress = stage_progress(data["job"], stage_id, data["runs"], data["workflows"])
    if progress is None:
        return _stage_not_found(stage_id)
    return jsonify(
        {
            **stage_progress_schema.dump(progress),
            "snapshot": snapshot_fingerprint(data["runs"]),
        }
    )


@bp.post("/stages/progress")
def stage_progress_list():
    try:
        data = _load_payload(reconciliation_request_schema)
    except ValidationError as exc:
        return _validation_failed(exc)

    stages = all_stage_progress(data["job"], data["runs"], data["workflows"])
    return jsonify(
        {
            "stages": stage_progress_list_schema.dump(stages),
            "snapshot": snapshot_fingerprint(data["runs"]),
        }
    )


@bp.post("/job-progress")
def job_progress_detail():
    try:
        data = _load_payload(reconciliation_request_schema)
    except ValidationError as exc:
        return _validation_failed(exc)

    progress = job_progress(data["job"], data["runs"], data["workflows"])
    return jsonify(
        {
            **job_progress_schema.dump(progress),
            "snapshot": snapshot_fingerprint(data["runs"]),
        }
    )


@bp.post("/current-stage")
def current_stage():
    try:
        data = _load_payload(reconciliation_request_schema)
    except ValidationError as exc:
        return _validation_failed(exc)

    summary = current_stage_summary(data["job"], data["runs"], data["workflows"])
    if summary is None:
        return _stage_not_found(data["job"].current_stage_id)
    return jsonify(
        {
            **stage_summary_schema.dump(summary),
            "snapshot": snapshot_fingerprint(data["runs"]),
        }
    )


@bp.post("/lots")
def lots():
    try:
        data = _load_payload(stage_request_schema)
    except ValidationError as exc:
        return _validation_failed(exc)

    stage_id = _resolve_stage_id(data)
    summary = stage_summary(data["job"], stage_id, data["runs"], data["workflows"])
    if summary is None:
        return _stage_not_found(stage_id)

    availability = lot_availability(
        data["runs"],
        stage_id,
        summary.previous_stage_id,
        to_input_unit=summary.convert_to_input_uom,
    )
    return jsonify(
        {
            "stage_id": stage_id,
            "previous_stage_id": summary.previous_stage_id,
            "uom": summary.input_uom,
            "lots": lots_schema.dump(availability),
            "snapshot": snapshot_fingerprint(data["runs"]),
        }
    )


@bp.post("/allocate")
def allocate():
    try:
        data = _load_payload(allocation_request_schema)
    except ValidationError as exc:
        return _validation_failed(exc)

    job = data["job"]
    stage_id = _resolve_stage_id(data)
    summary = stage_summary(job, stage_id, data["runs"], data["workflows"])
    if summary is None:
        return _stage_not_found(stage_id)

    previous_stage_id = data.get("previous_stage_id") or summary.previous_stage_id
    result = allocate_fifo(
        data["needed_qty"],
        data["runs"],
        stage_id,
        previous_stage_id,
        data.get("consumed_by_lot"),
        to_input_unit=summary.convert_to_input_uom,
    )
    snapshot = snapshot_fingerprint(data["runs"])
    if result.is_shortage:
        _log_event(
            "fifo_allocation_shortage",
            {
                "job_id": job.id,
                "stage_id": stage_id,
                "needed_qty": result.needed_qty,
                "available_qty": result.available_qty,
                "shortage": result.shortage,
                "snapshot": snapshot,
            },
        )
    return jsonify(
        {
            **allocation_result_schema.dump(result),
            "stage_id": stage_id,
            "previous_stage_id": previous_stage_id,
            "uom": summary.input_uom,
            "snapshot": snapshot,
        }
    )


@bp.post("/output-check")
def output_check():
    try:
        data = _load_payload(output_check_request_schema)
    except ValidationError as exc:
        return _validation_failed(exc)

    job = data["job"]
    snapshot = snapshot_fingerprint(data["runs"])
    expected = data.get("snapshot")
    if expected and expected != snapshot:
        _log_event(
            "output_check_stale_snapshot",
            {"job_id": job.id, "expected": expected, "snapshot": snapshot},
        )
        return (
            jsonify(
                {
                    "msg": "Production runs changed since the snapshot was taken. Reload and try again.",
                    "snapshot": snapshot,
                }
            ),
            409,
        )

    stage_id = _resolve_stage_id(data)
    decision = evaluate_output_entry(
        job,
        data["runs"],
        data["workflows"],
        data["qty_good"],
        data.get("qty_scrap") or 0,
        stage_id=stage_id,
    )
    if decision is None:
        return _stage_not_found(stage_id)

    if not decision.allowed:
        _log_event(
            "output_entry_blocked",
            {
                "job_id": job.id,
                "stage_id": stage_id,
                "reason": decision.reason.value,
                "qty_good": decision.qty_good,
                "shortage": decision.shortage,
                "excess": decision.excess,
            },
        )
    return jsonify({**output_decision_schema.dump(decision), "snapshot": snapshot})
