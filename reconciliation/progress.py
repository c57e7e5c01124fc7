"""Stage and job progress derived from the production run log."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .records import BomItem, Job, ProductionRun, Stage, Workflow, find_stage
from .runs import partition_runs, produced_in_stage, total_good, transferred_in_quantity
from .tolerance import CompletionState, ToleranceBand, completion_state, tolerance_band
from .units import BOX, CARTON, SHEETS, UnitKind, convert_unit, parse_unit, to_input_unit, to_output_unit


@dataclass(frozen=True)
class StageProgress:
    stage_id: str
    stage_name: str
    produced: float
    planned: float
    percentage: float
    uom: str
    is_current: bool


@dataclass(frozen=True)
class JobProgress:
    produced: float
    planned: float
    percentage: float
    uom: str


@dataclass(frozen=True)
class StageSummary:
    stage_id: str
    stage_name: str
    input_uom: str
    output_uom: str
    number_up: float
    previous_stage_id: Optional[str]
    total_produced_in_stage: float
    transferred_in: float
    planned_qty: float
    planned_uom: str
    tolerance: ToleranceBand
    completion_threshold: float
    completion_threshold_upper: float
    is_current: bool

    def convert_to_output_uom(self, qty_in_input_uom: float) -> float:
        return to_output_unit(qty_in_input_uom, self.input_uom, self.output_uom, self.number_up)

    def convert_to_input_uom(self, qty_in_output_uom: float) -> float:
        return to_input_unit(qty_in_output_uom, self.input_uom, self.output_uom, self.number_up)

    @property
    def transferred_in_output(self) -> float:
        return self.convert_to_output_uom(self.transferred_in)

    @property
    def state(self) -> CompletionState:
        return completion_state(
            self.total_produced_in_stage,
            self.completion_threshold,
            self.completion_threshold_upper,
        )

    def total_after(self, candidate_qty: float) -> float:
        """Stage total once a candidate entry in the input unit is recorded."""

        return self.total_produced_in_stage + self.convert_to_output_uom(candidate_qty)

    def state_after(self, candidate_qty: float) -> CompletionState:
        return completion_state(
            self.total_after(candidate_qty),
            self.completion_threshold,
            self.completion_threshold_upper,
        )


def percentage_of(produced: float, planned: float) -> float:
    if planned > 0:
        return min(100.0, produced / planned * 100)
    return 0.0


def _sheet_bom_item(job: Job) -> Optional[BomItem]:
    for item in job.bom:
        if parse_unit(item.uom).is_sheet:
            return item
    return None


def _planned_sheets(job: Job) -> float:
    sheet_item = _sheet_bom_item(job)
    if sheet_item is not None:
        return sheet_item.qty_required
    return job.planned_output_qty


def planned_quantity(job: Job, stage: Stage) -> tuple[float, str]:
    """Return the planned quantity for ``stage`` and the unit it is reported in.

    Packaging stages plan in cartons: planned boxes times pieces per box when
    both are set, otherwise the planned output converted by number-up.  The
    carton unit is reported even when no conversion applied.  Every other
    stage plans in sheets from the BOM, falling back to the planned output.
    """

    if stage.output_unit.is_packaging:
        boxes = job.packaging.planned_boxes
        pcs_per_box = job.packaging.pcs_per_box
        if boxes > 0 and pcs_per_box > 0:
            return boxes * pcs_per_box, CARTON.code
        return convert_unit(job.planned_output_qty, SHEETS, CARTON, job.number_up), CARTON.code
    return _planned_sheets(job), SHEETS.code


def stage_progress(
    job: Job,
    stage_id: str,
    runs: Sequence[ProductionRun],
    workflows: Iterable[Workflow],
) -> Optional[StageProgress]:
    stage = find_stage(stage_id, workflows)
    if stage is None:
        return None

    produced = total_good(partition_runs(runs, stage_id).production)
    planned, uom = planned_quantity(job, stage)
    return StageProgress(
        stage_id=stage_id,
        stage_name=stage.name,
        produced=produced,
        planned=planned,
        percentage=percentage_of(produced, planned),
        uom=uom,
        is_current=job.current_stage_id == stage_id,
    )


def all_stage_progress(
    job: Job,
    runs: Sequence[ProductionRun],
    workflows: Iterable[Workflow],
) -> list[StageProgress]:
    workflows = list(workflows)
    results = []
    for stage_id in job.planned_stage_ids:
        progress = stage_progress(job, stage_id, runs, workflows)
        if progress is not None:
            results.append(progress)
    return results


def stage_summary(
    job: Job,
    stage_id: Optional[str],
    runs: Sequence[ProductionRun],
    workflows: Iterable[Workflow],
) -> Optional[StageSummary]:
    """Summarise ``stage_id`` for deciding on the next output entry."""

    stage = find_stage(stage_id, workflows)
    if stage is None:
        return None

    planned, planned_uom = planned_quantity(job, stage)
    band = tolerance_band(planned)
    previous_stage_id = job.previous_stage_id(stage_id)
    return StageSummary(
        stage_id=stage.id,
        stage_name=stage.name,
        input_uom=stage.input_uom,
        output_uom=stage.output_uom,
        number_up=job.number_up,
        previous_stage_id=previous_stage_id,
        total_produced_in_stage=produced_in_stage(runs, stage_id),
        transferred_in=transferred_in_quantity(runs, stage_id, previous_stage_id),
        planned_qty=planned,
        planned_uom=planned_uom,
        tolerance=band,
        completion_threshold=band.completion_threshold(planned),
        completion_threshold_upper=band.completion_threshold_upper(planned),
        is_current=job.current_stage_id == stage_id,
    )


def current_stage_summary(
    job: Job,
    runs: Sequence[ProductionRun],
    workflows: Iterable[Workflow],
) -> Optional[StageSummary]:
    return stage_summary(job, job.current_stage_id, runs, workflows)


def _job_stage_lookup(job: Job, workflows: list[Workflow]):
    own = next((w for w in workflows if job.workflow_id and w.id == job.workflow_id), None)
    if own is not None:
        return own.find_stage
    return lambda stage_id: find_stage(stage_id, workflows)


def job_progress(
    job: Job,
    runs: Sequence[ProductionRun],
    workflows: Iterable[Workflow],
) -> JobProgress:
    """Overall progress of a job.

    With packaging planned, progress counts boxes packed by the last carton
    stage and nothing else.  Without it, progress follows the final stage's
    output unit.
    """

    workflows = list(workflows)
    pcs_per_box = job.packaging.pcs_per_box
    planned_boxes = job.packaging.planned_boxes

    if planned_boxes > 0 and pcs_per_box > 0:
        lookup = _job_stage_lookup(job, workflows)
        carton_stage_id = None
        for stage_id in reversed(job.planned_stage_ids):
            stage = lookup(stage_id)
            if stage is not None and stage.output_unit.is_packaging:
                carton_stage_id = stage_id
                break
        if carton_stage_id is None:
            return JobProgress(produced=0.0, planned=planned_boxes, percentage=0.0, uom=BOX.code)
        produced_boxes = produced_in_stage(runs, carton_stage_id) / pcs_per_box
        return JobProgress(
            produced=produced_boxes,
            planned=planned_boxes,
            percentage=percentage_of(produced_boxes, planned_boxes),
            uom=BOX.code,
        )

    last_stage_id = job.planned_stage_ids[-1] if job.planned_stage_ids else job.current_stage_id
    last_stage = find_stage(last_stage_id, workflows)
    final_code = (
        (last_stage.output_uom if last_stage else "")
        or (job.output[0].uom if job.output else "")
        or job.unit
        or SHEETS.code
    )
    final_unit = parse_unit(final_code)

    produced = 0.0
    for stage_id in reversed(job.planned_stage_ids):
        stage = find_stage(stage_id, workflows)
        if stage is not None and stage.output_uom and stage.output_unit == final_unit:
            produced = produced_in_stage(runs, stage_id)
            break
    if produced == 0:
        produced = total_good(run for run in runs if not run.is_transfer)

    if final_unit.kind in (UnitKind.CARTON, UnitKind.BOX):
        planned = planned_boxes * pcs_per_box
        uom = CARTON.code
    else:
        planned = _planned_sheets(job)
        uom = final_unit.code

    return JobProgress(
        produced=produced,
        planned=planned,
        percentage=percentage_of(produced, planned),
        uom=uom,
    )


__all__ = [
    "JobProgress",
    "StageProgress",
    "StageSummary",
    "all_stage_progress",
    "current_stage_summary",
    "job_progress",
    "percentage_of",
    "planned_quantity",
    "stage_progress",
    "stage_summary",
]
