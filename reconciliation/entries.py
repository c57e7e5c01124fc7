"""Pre-commit checks for a new output entry on a stage."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

from .lots import AllocationResult, LotAllocation, allocate_fifo
from .progress import StageSummary, stage_summary
from .records import Job, ProductionRun, Workflow, to_quantity
from .tolerance import CompletionState


class EntryBlockReason(str, Enum):
    INVALID_QUANTITY = "invalid_quantity"
    INSUFFICIENT_TRANSFER = "insufficient_transfer"
    EXCEEDS_TRANSFERRED = "exceeds_transferred"
    OVER_LIMIT = "over_limit"


@dataclass(frozen=True)
class PlannedRun:
    stage_id: str
    lot: str
    qty_good: int
    qty_scrap: int
    notes: str = ""


@dataclass(frozen=True)
class OutputEntryDecision:
    allowed: bool
    reason: Optional[EntryBlockReason]
    summary: StageSummary
    qty_good: float
    qty_scrap: float
    qty_in_output_uom: float
    total_after: float
    state_after: CompletionState
    allocation: Optional[AllocationResult] = None
    shortage: float = 0.0
    excess: float = 0.0
    planned_runs: tuple[PlannedRun, ...] = ()


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).to_integral_value(rounding=ROUND_HALF_UP))


def split_entry(
    summary: StageSummary,
    allocations: Sequence[LotAllocation],
    qty_good: float,
    qty_scrap: float = 0,
) -> list[PlannedRun]:
    """Turn an accepted entry into the runs to record, one per allocated lot.

    Quantities arrive in the stage's input unit and are stored in its output
    unit.  Scrap is shared out in proportion to each lot's good quantity.
    """

    if not allocations:
        return [
            PlannedRun(
                stage_id=summary.stage_id,
                lot="",
                qty_good=round_half_up(summary.convert_to_output_uom(qty_good)),
                qty_scrap=round_half_up(summary.convert_to_output_uom(qty_scrap)) if qty_scrap > 0 else 0,
            )
        ]

    allocated_good = sum(allocation.qty for allocation in allocations)
    scrap_per_unit = qty_scrap / allocated_good if qty_scrap > 0 and allocated_good > 0 else 0
    parts = len(allocations)

    planned = []
    for index, allocation in enumerate(allocations, start=1):
        scrap = round_half_up(allocation.qty * scrap_per_unit) if scrap_per_unit > 0 else 0
        planned.append(
            PlannedRun(
                stage_id=summary.stage_id,
                lot=allocation.lot,
                qty_good=round_half_up(summary.convert_to_output_uom(allocation.qty)),
                qty_scrap=round_half_up(summary.convert_to_output_uom(scrap)) if scrap > 0 else 0,
                notes=f"(Part {index}/{parts})" if parts > 1 else "",
            )
        )
    return planned


def evaluate_output_entry(
    job: Job,
    runs: Sequence[ProductionRun],
    workflows: Iterable[Workflow],
    qty_good: float,
    qty_scrap: float = 0,
    stage_id: Optional[str] = None,
    consumed_by_lot: Optional[Mapping[str, float]] = None,
) -> Optional[OutputEntryDecision]:
    """Decide whether recording ``qty_good`` (input unit) on a stage is allowed.

    Returns ``None`` when the stage is unknown.  A blocked decision names the
    reason and, for shortages and over-production, the amount involved.
    """

    stage_id = stage_id or job.current_stage_id
    summary = stage_summary(job, stage_id, runs, workflows)
    if summary is None:
        return None

    good = to_quantity(qty_good)
    scrap = max(0.0, to_quantity(qty_scrap))
    total_after = summary.total_after(good)

    def decision(allowed, reason=None, **extra) -> OutputEntryDecision:
        return OutputEntryDecision(
            allowed=allowed,
            reason=reason,
            summary=summary,
            qty_good=good,
            qty_scrap=scrap,
            qty_in_output_uom=summary.convert_to_output_uom(good),
            total_after=total_after,
            state_after=summary.state_after(good),
            **extra,
        )

    if good <= 0:
        return decision(False, EntryBlockReason.INVALID_QUANTITY)

    allocation = None
    if summary.transferred_in > 0:
        allocation = allocate_fifo(
            good,
            runs,
            summary.stage_id,
            summary.previous_stage_id,
            consumed_by_lot,
            to_input_unit=summary.convert_to_input_uom,
        )
        if allocation.is_shortage:
            return decision(
                False,
                EntryBlockReason.INSUFFICIENT_TRANSFER,
                allocation=allocation,
                shortage=allocation.shortage,
            )
        if total_after > summary.transferred_in_output:
            return decision(
                False,
                EntryBlockReason.EXCEEDS_TRANSFERRED,
                allocation=allocation,
                excess=total_after - summary.transferred_in_output,
            )

    if total_after > summary.completion_threshold_upper:
        return decision(
            False,
            EntryBlockReason.OVER_LIMIT,
            allocation=allocation,
            excess=total_after - summary.completion_threshold_upper,
        )

    allocations = allocation.allocations if allocation is not None else ()
    return decision(
        True,
        allocation=allocation,
        planned_runs=tuple(split_entry(summary, allocations, good, scrap)),
    )


__all__ = [
    "EntryBlockReason",
    "OutputEntryDecision",
    "PlannedRun",
    "evaluate_output_entry",
    "round_half_up",
    "split_entry",
]
