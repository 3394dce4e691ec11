"""Schema diff endpoints."""

from fastapi import APIRouter

from ..models import SchemaFilterRequest, SchemaFilterResponse
from ...models.schema import SchemaDiff
from ...services.diff_selector import NOTHING_TO_APPLY, filter_schema_diff

router = APIRouter()


@router.post("/filter", response_model=SchemaFilterResponse)
async def filter_diff(request: SchemaFilterRequest):
    """Filter a diff to the selected collections, keeping its hash."""
    diff = SchemaDiff.from_dict(request.diff.get("data", request.diff))
    filtered = filter_schema_diff(diff, request.collections, include_system=request.include_system)
    payload = filtered.to_dict()
    return SchemaFilterResponse(
        hash=filtered.hash,
        diff=payload["diff"],
        is_empty=filtered.is_empty,
        message=NOTHING_TO_APPLY if filtered.is_empty else None,
        counts={
            "collections": len(filtered.collections),
            "fields": len(filtered.fields),
            "relations": len(filtered.relations),
        },
    )
