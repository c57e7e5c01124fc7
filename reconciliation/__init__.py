"""Production stage reconciliation engine."""

from .entries import (
    EntryBlockReason,
    OutputEntryDecision,
    PlannedRun,
    evaluate_output_entry,
    split_entry,
)
from .lots import (
    AllocationResult,
    AllocationStatus,
    LotAllocation,
    LotAvailability,
    allocate_fifo,
    completed_lots,
    lot_availability,
    next_available_lot,
)
from .progress import (
    JobProgress,
    StageProgress,
    StageSummary,
    all_stage_progress,
    current_stage_summary,
    job_progress,
    stage_progress,
    stage_summary,
)
from .records import (
    Job,
    ProductionRun,
    Stage,
    Workflow,
    find_stage,
    job_from_dict,
    runs_from_dicts,
    workflows_from_dicts,
)
from .runs import (
    RunPartition,
    classify_runs,
    partition_runs,
    snapshot_fingerprint,
    source_runs_for_transfers,
    transferred_in_quantity,
)
from .tolerance import CompletionState, ToleranceBand, completion_state, tolerance_band
from .units import Unit, UnitKind, convert_unit, parse_unit, to_input_unit, to_output_unit

__all__ = [
    "AllocationResult",
    "AllocationStatus",
    "CompletionState",
    "EntryBlockReason",
    "Job",
    "JobProgress",
    "LotAllocation",
    "LotAvailability",
    "OutputEntryDecision",
    "PlannedRun",
    "ProductionRun",
    "RunPartition",
    "Stage",
    "StageProgress",
    "StageSummary",
    "ToleranceBand",
    "Unit",
    "UnitKind",
    "Workflow",
    "all_stage_progress",
    "allocate_fifo",
    "classify_runs",
    "completed_lots",
    "completion_state",
    "convert_unit",
    "current_stage_summary",
    "evaluate_output_entry",
    "find_stage",
    "job_from_dict",
    "job_progress",
    "lot_availability",
    "next_available_lot",
    "parse_unit",
    "partition_runs",
    "runs_from_dicts",
    "snapshot_fingerprint",
    "source_runs_for_transfers",
    "split_entry",
    "stage_progress",
    "stage_summary",
    "to_input_unit",
    "to_output_unit",
    "tolerance_band",
    "transferred_in_quantity",
    "workflows_from_dicts",
]
