from datetime import datetime, timezone

import pytest

from reconciliation.lots import (
    AllocationStatus,
    allocate_fifo,
    completed_lots,
    lot_availability,
    next_available_lot,
)
from reconciliation.records import ProductionRun


def _at(day):
    return datetime(2024, 3, day, 8, 0, tzinfo=timezone.utc)


def _two_lot_runs():
    # Listed newest first so ordering must come from the timestamps.
    return [
        ProductionRun(id="b1", stage_id="print", qty_good=100, lot="B", at=_at(2)),
        ProductionRun(id="a1", stage_id="print", qty_good=100, lot="A", at=_at(1)),
        ProductionRun(id="t1", stage_id="die", qty_good=200, transfer_source_run_ids=("b1", "a1")),
    ]


def test_allocation_takes_oldest_lot_first():
    result = allocate_fifo(150, _two_lot_runs(), "die", "print")

    assert result.status is AllocationStatus.ALLOCATED
    assert [(a.lot, a.qty) for a in result.allocations] == [("A", 100), ("B", 50)]
    assert sum(a.qty for a in result.allocations) == 150


def test_shortage_reports_unmet_amount_without_allocations():
    runs = [
        ProductionRun(id="a1", stage_id="print", qty_good=50, lot="A", at=_at(1)),
        ProductionRun(id="b1", stage_id="print", qty_good=30, lot="B", at=_at(2)),
        ProductionRun(id="t1", stage_id="die", transfer_source_run_ids=("a1", "b1")),
    ]

    result = allocate_fifo(100, runs, "die", "print")

    assert result.is_shortage
    assert result.available_qty == 80
    assert result.shortage == 20
    assert result.allocations == ()


def test_single_lot_absorbs_unlabelled_consumption():
    runs = [
        ProductionRun(id="p1", stage_id="print", qty_good=200, lot="LOT-1", at=_at(1)),
        ProductionRun(id="t1", stage_id="die", transfer_source_run_ids=("p1",)),
        ProductionRun(id="d1", stage_id="die", qty_good=50, lot=""),
        ProductionRun(id="d2", stage_id="die", qty_good=50, lot="LOT-1"),
    ]

    lots = lot_availability(runs, "die", "print")

    assert len(lots) == 1
    assert lots[0].consumed_qty == 100
    assert lots[0].remaining_qty == 100


def test_multiple_lots_only_count_labelled_consumption():
    runs = _two_lot_runs() + [
        ProductionRun(id="d1", stage_id="die", qty_good=40, lot="A"),
        ProductionRun(id="d2", stage_id="die", qty_good=25, lot=""),
    ]

    lots = {lot.lot: lot for lot in lot_availability(runs, "die", "print")}

    assert lots["A"].remaining_qty == 60
    assert lots["B"].remaining_qty == 100


def test_consumption_is_converted_back_to_input_unit():
    runs = _two_lot_runs() + [ProductionRun(id="d1", stage_id="die", qty_good=400, lot="A")]

    lots = lot_availability(runs, "die", "print", to_input_unit=lambda qty: qty / 4)

    assert lots[0].lot == "A"
    assert lots[0].consumed_qty == 100
    assert lots[0].remaining_qty == 0
    assert completed_lots(lots) == [lots[0]]
    assert next_available_lot(lots).lot == "B"


def test_supplied_consumption_overrides_the_run_log():
    runs = _two_lot_runs() + [ProductionRun(id="d1", stage_id="die", qty_good=100, lot="A")]

    result = allocate_fifo(150, runs, "die", "print", consumed_by_lot={"A": 0, "B": 20})

    assert [(a.lot, a.qty) for a in result.allocations] == [("A", 100), ("B", 50)]
    assert result.available_qty == 180


def test_lot_keeps_earliest_transfer_time_and_undated_lots_sort_last():
    runs = [
        ProductionRun(id="n1", stage_id="print", qty_good=10, lot="N"),
        ProductionRun(id="c2", stage_id="print", qty_good=10, lot="C", at=_at(5)),
        ProductionRun(id="c1", stage_id="print", qty_good=10, lot="C", at=_at(3)),
        ProductionRun(id="d1", stage_id="print", qty_good=10, lot="D", at=_at(4)),
        ProductionRun(id="t1", stage_id="die", transfer_source_run_ids=("n1", "c2", "c1", "d1")),
    ]

    lots = lot_availability(runs, "die", "print")

    assert [lot.lot for lot in lots] == ["C", "D", "N"]
    assert lots[0].transferred_qty == 20
    assert lots[0].transferred_at == _at(3)


def test_source_runs_without_lot_are_not_allocatable():
    runs = [
        ProductionRun(id="p1", stage_id="print", qty_good=100, lot="  "),
        ProductionRun(id="t1", stage_id="die", transfer_source_run_ids=("p1",)),
    ]

    assert lot_availability(runs, "die", "print") == []
    assert allocate_fifo(1, runs, "die", "print").is_shortage


def test_allocation_is_repeatable_for_the_same_snapshot():
    runs = _two_lot_runs()
    assert allocate_fifo(120, runs, "die", "print") == allocate_fifo(120, runs, "die", "print")


@pytest.mark.parametrize("needed", [0.1, 33.3, 100, 133.7, 200])
def test_allocations_sum_to_request(needed):
    result = allocate_fifo(needed, _two_lot_runs(), "die", "print")
    assert sum(a.qty for a in result.allocations) == pytest.approx(needed)
    assert all(a.qty > 0 for a in result.allocations)


def test_zero_request_allocates_nothing():
    result = allocate_fifo(0, _two_lot_runs(), "die", "print")
    assert result.status is AllocationStatus.ALLOCATED
    assert result.allocations == ()


def test_negative_request_is_treated_as_zero():
    result = allocate_fifo(-25, _two_lot_runs(), "die", "print")

    assert result.status is AllocationStatus.ALLOCATED
    assert result.needed_qty == 0
    assert result.allocations == ()
    assert result.shortage == 0
