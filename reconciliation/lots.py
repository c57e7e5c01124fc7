"""Lot availability and FIFO allocation of transferred work-in-process."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Sequence

from .records import ProductionRun, to_quantity
from .runs import partition_runs, source_runs_for_transfers

Converter = Callable[[float], float]


@dataclass(frozen=True)
class LotAvailability:
    lot: str
    transferred_qty: float
    consumed_qty: float
    remaining_qty: float
    transferred_at: Optional[datetime]


@dataclass(frozen=True)
class LotAllocation:
    lot: str
    qty: float


class AllocationStatus(str, Enum):
    ALLOCATED = "allocated"
    SHORTAGE = "shortage"


@dataclass(frozen=True)
class AllocationResult:
    status: AllocationStatus
    needed_qty: float
    available_qty: float
    allocations: tuple[LotAllocation, ...] = ()
    shortage: float = 0.0
    lots: tuple[LotAvailability, ...] = ()

    @property
    def is_shortage(self) -> bool:
        return self.status is AllocationStatus.SHORTAGE


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def _identity(qty: float) -> float:
    return qty


def _transferred_by_lot(sources: Sequence[ProductionRun]) -> Dict[str, list]:
    lots: Dict[str, list] = {}
    for run in sources:
        lot = run.lot.strip()
        if not lot:
            continue
        entry = lots.get(lot)
        if entry is None:
            lots[lot] = [run.qty_good, run.at]
            continue
        entry[0] += run.qty_good
        if run.at is not None and (entry[1] is None or run.at < entry[1]):
            entry[1] = run.at
    return lots


def _consumed_by_lot(
    production: Sequence[ProductionRun],
    transferred_lots: Sequence[str],
    convert: Converter,
) -> Dict[str, float]:
    consumed: Dict[str, float] = defaultdict(float)
    for run in production:
        lot = run.lot.strip()
        if lot:
            consumed[lot] += convert(run.qty_good)

    # Operators often leave the lot blank or mistype it when only one lot
    # is in the stage, so all output counts against that lot.
    if len(transferred_lots) == 1:
        total = sum((convert(run.qty_good) for run in production), 0.0)
        if total > 0:
            return {transferred_lots[0]: total}
    return consumed


def lot_availability(
    runs: Sequence[ProductionRun],
    stage_id: Optional[str],
    previous_stage_id: Optional[str],
    consumed_by_lot: Optional[Mapping[str, float]] = None,
    *,
    to_input_unit: Optional[Converter] = None,
) -> list[LotAvailability]:
    """Return the lots transferred into ``stage_id``, oldest transfer first.

    Transferred quantities come from the source runs in ``previous_stage_id``.
    Consumption is the stage's genuine output per lot label unless
    ``consumed_by_lot`` supplies it; ``to_input_unit`` converts recorded
    output back into the unit the lots were transferred in.
    """

    partition = partition_runs(runs, stage_id)
    sources = source_runs_for_transfers(partition.transfer, runs, previous_stage_id)
    transferred = _transferred_by_lot(sources)

    if consumed_by_lot is not None:
        consumed = {str(lot).strip(): to_quantity(qty) for lot, qty in consumed_by_lot.items()}
    else:
        consumed = _consumed_by_lot(partition.production, list(transferred), to_input_unit or _identity)

    availability = []
    for lot, (transferred_qty, transferred_at) in transferred.items():
        consumed_qty = consumed.get(lot, 0.0)
        availability.append(
            LotAvailability(
                lot=lot,
                transferred_qty=transferred_qty,
                consumed_qty=consumed_qty,
                remaining_qty=max(0.0, transferred_qty - consumed_qty),
                transferred_at=transferred_at,
            )
        )

    order = {lot.lot: index for index, lot in enumerate(availability)}
    availability.sort(
        key=lambda lot: (
            lot.transferred_at is None,
            lot.transferred_at.timestamp() if lot.transferred_at else 0.0,
            order[lot.lot],
        )
    )
    return availability


def next_available_lot(lots: Sequence[LotAvailability]) -> Optional[LotAvailability]:
    return next((lot for lot in lots if lot.remaining_qty > 0), None)


def completed_lots(lots: Sequence[LotAvailability]) -> list[LotAvailability]:
    return [lot for lot in lots if lot.remaining_qty <= 0 and lot.consumed_qty > 0]


def allocate_fifo(
    needed_qty: float,
    runs: Sequence[ProductionRun],
    stage_id: Optional[str],
    previous_stage_id: Optional[str],
    consumed_by_lot: Optional[Mapping[str, float]] = None,
    *,
    to_input_unit: Optional[Converter] = None,
) -> AllocationResult:
    """Allocate ``needed_qty`` (input unit) across lots, oldest first.

    When the lots cannot cover the request the result is a shortage carrying
    the unmet amount and no allocations at all.  The run list must be a
    fresh snapshot taken right before the output is recorded.
    """

    lots = tuple(
        lot_availability(
            runs,
            stage_id,
            previous_stage_id,
            consumed_by_lot,
            to_input_unit=to_input_unit,
        )
    )
    needed = max(Decimal("0"), _dec(to_quantity(needed_qty)))
    available = sum((_dec(lot.remaining_qty) for lot in lots), Decimal("0"))

    if needed > available:
        return AllocationResult(
            status=AllocationStatus.SHORTAGE,
            needed_qty=float(needed),
            available_qty=float(available),
            shortage=float(needed - available),
            lots=lots,
        )

    allocations = []
    outstanding = needed
    for lot in lots:
        if outstanding <= 0:
            break
        remaining = _dec(lot.remaining_qty)
        if remaining <= 0:
            continue
        take = min(outstanding, remaining)
        allocations.append(LotAllocation(lot=lot.lot, qty=float(take)))
        outstanding -= take

    return AllocationResult(
        status=AllocationStatus.ALLOCATED,
        needed_qty=float(needed),
        available_qty=float(available),
        allocations=tuple(allocations),
        lots=lots,
    )


__all__ = [
    "AllocationResult",
    "AllocationStatus",
    "LotAllocation",
    "LotAvailability",
    "allocate_fifo",
    "completed_lots",
    "lot_availability",
    "next_available_lot",
]
