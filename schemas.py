from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, pre_load, validates
from marshmallow.validate import Range

from reconciliation import (
    AllocationStatus,
    CompletionState,
    EntryBlockReason,
    job_from_dict,
)
from reconciliation.records import run_from_dict, workflow_from_dict


# --- helpers ---------------------------------------------------------------

def _camelize_aliases(in_data, aliases):
    """Accept snake_case spellings of keys the document store writes in camelCase."""

    if not isinstance(in_data, dict):
        return in_data
    data = dict(in_data)
    for snake, camel in aliases.items():
        if snake in data and camel not in data:
            data[camel] = data.pop(snake)
    return data


class DocumentSchema(Schema):
    """Base for records read from the document store."""

    aliases: dict = {}

    class Meta:
        unknown = EXCLUDE

    @pre_load
    def normalize_keys(self, in_data, **kwargs):
        return _camelize_aliases(in_data, self.aliases)


# --- document records (LOAD) ----------------------------------------------

class StageSchema(DocumentSchema):
    aliases = {"input_uom": "inputUOM", "output_uom": "outputUOM"}

    id = fields.Str(required=True)
    name = fields.Str(allow_none=True)
    input_uom = fields.Str(data_key="inputUOM", allow_none=True)
    output_uom = fields.Str(data_key="outputUOM", allow_none=True)


class WorkflowSchema(DocumentSchema):
    id = fields.Str(allow_none=True)
    name = fields.Str(allow_none=True)
    stages = fields.List(fields.Nested(StageSchema), load_default=list)

    @post_load
    def make_workflow(self, data, **kwargs):
        return workflow_from_dict(data)


class PackagingSchema(DocumentSchema):
    aliases = {"pcs_per_box": "pcsPerBox", "planned_boxes": "plannedBoxes"}

    pcs_per_box = fields.Raw(data_key="pcsPerBox", allow_none=True)
    planned_boxes = fields.Raw(data_key="plannedBoxes", allow_none=True)


class BomItemSchema(DocumentSchema):
    aliases = {"qty_required": "qtyRequired"}

    sku = fields.Str(allow_none=True)
    name = fields.Str(allow_none=True)
    qty_required = fields.Raw(data_key="qtyRequired", allow_none=True)
    uom = fields.Str(allow_none=True)


class OutputItemSchema(DocumentSchema):
    aliases = {"qty_planned": "qtyPlanned"}

    sku = fields.Str(allow_none=True)
    name = fields.Str(allow_none=True)
    qty_planned = fields.Raw(data_key="qtyPlanned", allow_none=True)
    uom = fields.Str(allow_none=True)


class ProductionSpecsSchema(DocumentSchema):
    aliases = {"number_up": "numberUp"}

    number_up = fields.Raw(data_key="numberUp", allow_none=True)


class JobSchema(DocumentSchema):
    aliases = {
        "workflow_id": "workflowId",
        "planned_stage_ids": "plannedStageIds",
        "current_stage_id": "currentStageId",
        "production_specs": "productionSpecs",
        "number_up": "numberUp",
        "requires_output_to_advance": "requireOutputToAdvance",
    }

    id = fields.Str(allow_none=True)
    code = fields.Str(allow_none=True)
    quantity = fields.Raw(allow_none=True)
    unit = fields.Str(allow_none=True)
    workflow_id = fields.Str(data_key="workflowId", allow_none=True)
    planned_stage_ids = fields.List(fields.Str(), data_key="plannedStageIds", load_default=list)
    current_stage_id = fields.Str(data_key="currentStageId", allow_none=True)
    production_specs = fields.Nested(ProductionSpecsSchema, data_key="productionSpecs", allow_none=True)
    number_up = fields.Raw(data_key="numberUp", allow_none=True)
    packaging = fields.Nested(PackagingSchema, allow_none=True)
    bom = fields.List(fields.Nested(BomItemSchema), load_default=list)
    output = fields.List(fields.Nested(OutputItemSchema), load_default=list)
    requires_output_to_advance = fields.Bool(data_key="requireOutputToAdvance", load_default=False)

    @post_load
    def make_job(self, data, **kwargs):
        return job_from_dict(data)


class ProductionRunSchema(DocumentSchema):
    aliases = {
        "stage_id": "stageId",
        "qty_good": "qtyGood",
        "qty_scrap": "qtyScrap",
        "transfer_source_run_ids": "transferSourceRunIds",
    }

    id = fields.Raw(allow_none=True)
    stage_id = fields.Raw(data_key="stageId", allow_none=True)
    qty_good = fields.Raw(data_key="qtyGood", allow_none=True)
    qty_scrap = fields.Raw(data_key="qtyScrap", allow_none=True)
    lot = fields.Raw(allow_none=True)
    at = fields.Raw(allow_none=True)
    transfer_source_run_ids = fields.Raw(data_key="transferSourceRunIds", allow_none=True)

    @post_load
    def make_run(self, data, **kwargs):
        return run_from_dict(data)


# --- requests (LOAD) --------------------------------------------------------

class RunListRequestSchema(Schema):
    runs = fields.List(fields.Nested(ProductionRunSchema), load_default=list)

    class Meta:
        unknown = EXCLUDE


class ClassifyRequestSchema(RunListRequestSchema):
    stage_id = fields.Str(required=True)


class ReconciliationRequestSchema(RunListRequestSchema):
    job = fields.Nested(JobSchema, required=True)
    workflows = fields.List(fields.Nested(WorkflowSchema), load_default=list)


class StageRequestSchema(ReconciliationRequestSchema):
    stage_id = fields.Str(load_default=None, allow_none=True)


class AllocationRequestSchema(StageRequestSchema):
    needed_qty = fields.Float(required=True, validate=Range(min=0))
    previous_stage_id = fields.Str(load_default=None, allow_none=True)
    consumed_by_lot = fields.Dict(
        keys=fields.Str(), values=fields.Float(), load_default=None, allow_none=True
    )

    @validates("consumed_by_lot")
    def validate_consumed_by_lot(self, value, **kwargs):
        if value and any(qty < 0 for qty in value.values()):
            raise ValidationError("Consumed quantities cannot be negative.")


class OutputCheckRequestSchema(StageRequestSchema):
    qty_good = fields.Float(required=True)
    qty_scrap = fields.Float(load_default=0, validate=Range(min=0))
    snapshot = fields.Str(load_default=None, allow_none=True)


# --- results (DUMP) ---------------------------------------------------------

class RunSchema(Schema):
    id = fields.Str()
    stage_id = fields.Str()
    qty_good = fields.Float()
    qty_scrap = fields.Float()
    lot = fields.Str()
    at = fields.DateTime(allow_none=True)
    transfer_source_run_ids = fields.List(fields.Str())


class StageProgressSchema(Schema):
    stage_id = fields.Str()
    stage_name = fields.Str()
    produced = fields.Float()
    planned = fields.Float()
    percentage = fields.Float()
    uom = fields.Str()
    is_current = fields.Bool()


class JobProgressSchema(Schema):
    produced = fields.Float()
    planned = fields.Float()
    percentage = fields.Float()
    uom = fields.Str()


class ToleranceBandSchema(Schema):
    lower = fields.Int()
    upper = fields.Int()


class StageSummarySchema(Schema):
    stage_id = fields.Str()
    stage_name = fields.Str()
    input_uom = fields.Str()
    output_uom = fields.Str()
    number_up = fields.Float()
    previous_stage_id = fields.Str(allow_none=True)
    total_produced_in_stage = fields.Float()
    transferred_in = fields.Float()
    transferred_in_output = fields.Float()
    planned_qty = fields.Float()
    planned_uom = fields.Str()
    tolerance = fields.Nested(ToleranceBandSchema)
    completion_threshold = fields.Float()
    completion_threshold_upper = fields.Float()
    state = fields.Enum(CompletionState, by_value=True)
    is_current = fields.Bool()


class LotAvailabilitySchema(Schema):
    lot = fields.Str()
    transferred_qty = fields.Float()
    consumed_qty = fields.Float()
    remaining_qty = fields.Float()
    transferred_at = fields.DateTime(allow_none=True)


class LotAllocationSchema(Schema):
    lot = fields.Str()
    qty = fields.Float()


class AllocationResultSchema(Schema):
    status = fields.Enum(AllocationStatus, by_value=True)
    needed_qty = fields.Float()
    available_qty = fields.Float()
    allocations = fields.List(fields.Nested(LotAllocationSchema))
    shortage = fields.Float()
    lots = fields.List(fields.Nested(LotAvailabilitySchema))


class PlannedRunSchema(Schema):
    stage_id = fields.Str()
    lot = fields.Str()
    qty_good = fields.Int()
    qty_scrap = fields.Int()
    notes = fields.Str()


class OutputEntryDecisionSchema(Schema):
    allowed = fields.Bool()
    reason = fields.Enum(EntryBlockReason, by_value=True, allow_none=True)
    qty_good = fields.Float()
    qty_scrap = fields.Float()
    qty_in_output_uom = fields.Float()
    total_after = fields.Float()
    state_after = fields.Enum(CompletionState, by_value=True)
    shortage = fields.Float()
    excess = fields.Float()
    allocation = fields.Nested(AllocationResultSchema, allow_none=True)
    planned_runs = fields.List(fields.Nested(PlannedRunSchema))
    summary = fields.Nested(StageSummarySchema)
