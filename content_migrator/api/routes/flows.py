"""Flow validation endpoint."""

from fastapi import APIRouter, HTTPException

from ..models import FlowValidateRequest, FlowValidateResponse, FlowValidationItem
from ...loaders.flow_loader import FlowLoader
from ...models.flow import Flow, Operation

router = APIRouter()


@router.post("/validate", response_model=FlowValidateResponse)
async def validate_flows(request: FlowValidateRequest):
    """Validate flows and their operation graphs without writing anything."""
    try:
        flows = [Flow.from_dict(f) for f in request.flows]
        operations = [Operation.from_dict(o) for o in request.operations]
    except KeyError as e:
        raise HTTPException(status_code=422, detail=f"Missing field: {e}")

    # Validation never touches the client
    loader = FlowLoader(client=None)
    results = loader.validate(flows, operations)
    errors = loader.batch_errors(flows, operations)
    items = [FlowValidationItem(**r.to_dict()) for r in results.values()]

    return FlowValidateResponse(
        valid=not errors and all(i.is_valid for i in items),
        flows=items,
        errors=errors,
    )
