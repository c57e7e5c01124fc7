"""Classification of production runs into genuine output and WIP transfers."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .records import ProductionRun


@dataclass(frozen=True)
class RunPartition:
    production: tuple[ProductionRun, ...]
    transfer: tuple[ProductionRun, ...]


def partition_runs(runs: Iterable[ProductionRun], stage_id: Optional[str]) -> RunPartition:
    """Split the runs recorded against ``stage_id``.

    A run carrying source run identifiers moved work-in-process into the
    stage; every other run is genuine output of the stage.
    """

    production: list[ProductionRun] = []
    transfer: list[ProductionRun] = []
    for run in runs:
        if run.stage_id != stage_id:
            continue
        if run.is_transfer:
            transfer.append(run)
        else:
            production.append(run)
    return RunPartition(production=tuple(production), transfer=tuple(transfer))


classify_runs = partition_runs


def source_runs_for_transfers(
    transfer_runs: Iterable[ProductionRun],
    all_runs: Iterable[ProductionRun],
    previous_stage_id: Optional[str],
) -> list[ProductionRun]:
    """Return the runs the transfers were sourced from.

    Each source run appears once however many transfers reference it.  When
    ``previous_stage_id`` is ``None`` the source runs are not restricted to a
    stage.
    """

    source_ids: set[str] = set()
    for run in transfer_runs:
        source_ids.update(run.transfer_source_run_ids)

    sources: list[ProductionRun] = []
    seen: set[str] = set()
    for run in all_runs:
        if previous_stage_id is not None and run.stage_id != previous_stage_id:
            continue
        if run.id not in source_ids or run.id in seen:
            continue
        seen.add(run.id)
        sources.append(run)
    return sources


def total_good(runs: Iterable[ProductionRun]) -> float:
    return sum((run.qty_good for run in runs), 0.0)


def produced_in_stage(runs: Iterable[ProductionRun], stage_id: Optional[str]) -> float:
    return total_good(partition_runs(runs, stage_id).production)


def transferred_in_quantity(
    runs: Sequence[ProductionRun],
    stage_id: Optional[str],
    previous_stage_id: Optional[str],
) -> float:
    """Quantity moved into ``stage_id``, measured on the source runs."""

    transfers = partition_runs(runs, stage_id).transfer
    if not transfers:
        return 0.0
    return total_good(source_runs_for_transfers(transfers, runs, previous_stage_id))


def _snapshot_row(run: ProductionRun) -> list:
    return [
        run.id,
        run.stage_id,
        run.qty_good,
        run.qty_scrap,
        run.lot,
        run.at.isoformat() if run.at else None,
        sorted(run.transfer_source_run_ids),
    ]


def snapshot_fingerprint(runs: Iterable[ProductionRun]) -> str:
    """Return a stable fingerprint of a run list.

    The order of ``runs`` does not matter.  Two snapshots with the same
    fingerprint produce the same reconciliation results.
    """

    rows = sorted((_snapshot_row(run) for run in runs), key=lambda row: json.dumps(row, default=str))
    payload = json.dumps(rows, separators=(",", ":"), default=str)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


__all__ = [
    "RunPartition",
    "classify_runs",
    "partition_runs",
    "produced_in_stage",
    "snapshot_fingerprint",
    "source_runs_for_transfers",
    "total_good",
    "transferred_in_quantity",
]
