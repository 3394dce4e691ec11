"""Selection closure and migration order endpoints."""

from fastapi import APIRouter

from ..models import (
    PlanRequest,
    PlanResponse,
    ValidateOrderRequest,
    ValidateOrderResponse,
)
from ...models.schema import SchemaMetadata
from ...orchestrator import plan_migration
from ...services.migration_order import group_into_batches, validate_custom_order
from ...services.relation_graph import RelationGraph

router = APIRouter()


@router.post("", response_model=PlanResponse)
async def create_plan(request: PlanRequest):
    """Expand a selection to its closure and order it."""
    metadata = SchemaMetadata.from_dict(request.metadata.model_dump())
    plan = plan_migration(
        metadata,
        request.collections,
        include_system=request.include_system,
        expand_closure=request.expand_closure,
        custom_order=request.custom_order,
    )
    return PlanResponse(
        order=plan.order,
        batches=group_into_batches(plan),
        edges=[list(e) for e in plan.edges],
        violated_edges=[list(e) for e in plan.violated_edges],
        cycles=plan.cycles,
        warnings=plan.warnings,
    )


@router.post("/validate-order", response_model=ValidateOrderResponse)
async def validate_order(request: ValidateOrderRequest):
    """Check a user-supplied order against the selection's dependencies."""
    metadata = SchemaMetadata.from_dict(request.metadata.model_dump())
    graph = RelationGraph.from_metadata(metadata)
    warnings = validate_custom_order(graph, request.collections, request.order)
    return ValidateOrderResponse(valid=not warnings, warnings=warnings)
