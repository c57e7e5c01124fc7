"""Plain record types consumed by the reconciliation engine.

The document store hands out loosely shaped dictionaries (camelCase keys,
missing fields, numbers stored as strings).  The builders in this module turn
them into immutable records and never raise: anything unreadable becomes a
zero quantity, an empty label or a missing timestamp.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from .units import Unit, parse_unit


@dataclass(frozen=True)
class Stage:
    id: str
    name: str = ""
    input_uom: str = ""
    output_uom: str = ""

    @property
    def input_unit(self) -> Unit:
        return parse_unit(self.input_uom)

    @property
    def output_unit(self) -> Unit:
        return parse_unit(self.output_uom)


@dataclass(frozen=True)
class Workflow:
    id: str = ""
    name: str = ""
    stages: tuple[Stage, ...] = ()

    def find_stage(self, stage_id: Optional[str]) -> Optional[Stage]:
        if not stage_id:
            return None
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None


@dataclass(frozen=True)
class Packaging:
    pcs_per_box: float = 1
    planned_boxes: float = 0


@dataclass(frozen=True)
class BomItem:
    sku: str = ""
    name: str = ""
    qty_required: float = 0
    uom: str = ""


@dataclass(frozen=True)
class OutputItem:
    sku: str = ""
    name: str = ""
    qty_planned: float = 0
    uom: str = ""


@dataclass(frozen=True)
class Job:
    id: str = ""
    code: str = ""
    quantity: float = 0
    unit: str = ""
    workflow_id: str = ""
    planned_stage_ids: tuple[str, ...] = ()
    current_stage_id: Optional[str] = None
    number_up: float = 1
    packaging: Packaging = field(default_factory=Packaging)
    bom: tuple[BomItem, ...] = ()
    output: tuple[OutputItem, ...] = ()
    requires_output_to_advance: bool = False

    @property
    def planned_output_qty(self) -> float:
        """Planned quantity of the first output line, else the ordered quantity."""

        if self.output and self.output[0].qty_planned:
            return self.output[0].qty_planned
        return self.quantity

    def stage_index(self, stage_id: Optional[str]) -> int:
        try:
            return self.planned_stage_ids.index(stage_id)
        except ValueError:
            return -1

    def previous_stage_id(self, stage_id: Optional[str]) -> Optional[str]:
        index = self.stage_index(stage_id)
        if index > 0:
            return self.planned_stage_ids[index - 1]
        return None

    def is_last_stage(self, stage_id: Optional[str]) -> bool:
        return bool(self.planned_stage_ids) and self.planned_stage_ids[-1] == stage_id


@dataclass(frozen=True)
class ProductionRun:
    id: str = ""
    stage_id: str = ""
    qty_good: float = 0
    qty_scrap: float = 0
    lot: str = ""
    at: Optional[datetime] = None
    transfer_source_run_ids: tuple[str, ...] = ()

    @property
    def is_transfer(self) -> bool:
        return len(self.transfer_source_run_ids) > 0


def _get(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def to_quantity(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Return ``value`` as a float, or ``default`` when it is not numeric."""

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return number


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse the timestamp shapes found on stored production runs."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, Mapping):
        seconds = to_quantity(value.get("seconds", value.get("_seconds")), default=None)
        if seconds is None:
            return None
        return parse_timestamp(seconds)
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _id_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value if item is not None and str(item) != "")


def stage_from_dict(data: Mapping[str, Any]) -> Stage:
    return Stage(
        id=_text(_get(data, "id")),
        name=_text(_get(data, "name")),
        input_uom=_text(_get(data, "input_uom", "inputUOM")),
        output_uom=_text(_get(data, "output_uom", "outputUOM")),
    )


def workflow_from_dict(data: Mapping[str, Any]) -> Workflow:
    stages = _get(data, "stages", default=[])
    if not isinstance(stages, (list, tuple)):
        stages = []
    return Workflow(
        id=_text(_get(data, "id")),
        name=_text(_get(data, "name")),
        stages=tuple(
            stage if isinstance(stage, Stage) else stage_from_dict(stage)
            for stage in stages
            if isinstance(stage, (Stage, Mapping))
        ),
    )


def workflows_from_dicts(items: Iterable[Any]) -> list[Workflow]:
    return [
        item if isinstance(item, Workflow) else workflow_from_dict(item)
        for item in items or []
        if isinstance(item, (Workflow, Mapping))
    ]


def run_from_dict(data: Mapping[str, Any]) -> ProductionRun:
    return ProductionRun(
        id=_text(_get(data, "id")),
        stage_id=_text(_get(data, "stage_id", "stageId")),
        qty_good=to_quantity(_get(data, "qty_good", "qtyGood")),
        qty_scrap=to_quantity(_get(data, "qty_scrap", "qtyScrap")),
        lot=_text(_get(data, "lot")),
        at=parse_timestamp(_get(data, "at")),
        transfer_source_run_ids=_id_list(
            _get(data, "transfer_source_run_ids", "transferSourceRunIds")
        ),
    )


def runs_from_dicts(items: Iterable[Any]) -> list[ProductionRun]:
    return [
        item if isinstance(item, ProductionRun) else run_from_dict(item)
        for item in items or []
        if isinstance(item, (ProductionRun, Mapping))
    ]


def _bom_item(data: Mapping[str, Any]) -> BomItem:
    return BomItem(
        sku=_text(_get(data, "sku")),
        name=_text(_get(data, "name")),
        qty_required=to_quantity(_get(data, "qty_required", "qtyRequired")),
        uom=_text(_get(data, "uom")),
    )


def _output_item(data: Mapping[str, Any]) -> OutputItem:
    return OutputItem(
        sku=_text(_get(data, "sku")),
        name=_text(_get(data, "name")),
        qty_planned=to_quantity(_get(data, "qty_planned", "qtyPlanned")),
        uom=_text(_get(data, "uom")),
    )


def job_from_dict(data: Mapping[str, Any]) -> Job:
    specs = _get(data, "production_specs", "productionSpecs", default={})
    if not isinstance(specs, Mapping):
        specs = {}
    number_up = to_quantity(_get(data, "number_up", "numberUp", default=_get(specs, "number_up", "numberUp")))

    packaging_data = _get(data, "packaging", default={})
    if not isinstance(packaging_data, Mapping):
        packaging_data = {}
    pcs_per_box = to_quantity(_get(packaging_data, "pcs_per_box", "pcsPerBox"))
    packaging = Packaging(
        pcs_per_box=pcs_per_box or 1,
        planned_boxes=to_quantity(_get(packaging_data, "planned_boxes", "plannedBoxes")),
    )

    bom = _get(data, "bom", default=[])
    output = _get(data, "output", default=[])
    stage_ids = _get(data, "planned_stage_ids", "plannedStageIds", default=[])
    current_stage_id = _text(_get(data, "current_stage_id", "currentStageId")) or None

    return Job(
        id=_text(_get(data, "id")),
        code=_text(_get(data, "code")),
        quantity=to_quantity(_get(data, "quantity")),
        unit=_text(_get(data, "unit")),
        workflow_id=_text(_get(data, "workflow_id", "workflowId")),
        planned_stage_ids=_id_list(stage_ids),
        current_stage_id=current_stage_id,
        number_up=number_up or 1,
        packaging=packaging,
        bom=tuple(_bom_item(item) for item in bom if isinstance(item, Mapping)) if isinstance(bom, (list, tuple)) else (),
        output=tuple(_output_item(item) for item in output if isinstance(item, Mapping)) if isinstance(output, (list, tuple)) else (),
        requires_output_to_advance=bool(
            _get(data, "requires_output_to_advance", "requireOutputToAdvance", default=False)
        ),
    )


def find_stage(stage_id: Optional[str], workflows: Iterable[Workflow]) -> Optional[Stage]:
    """Return the first stage named ``stage_id`` across ``workflows``."""

    if not stage_id:
        return None
    for workflow in workflows:
        stage = workflow.find_stage(stage_id)
        if stage is not None:
            return stage
    return None


__all__ = [
    "BomItem",
    "Job",
    "OutputItem",
    "Packaging",
    "ProductionRun",
    "Stage",
    "Workflow",
    "find_stage",
    "job_from_dict",
    "parse_timestamp",
    "run_from_dict",
    "runs_from_dicts",
    "stage_from_dict",
    "to_quantity",
    "workflow_from_dict",
    "workflows_from_dicts",
]
