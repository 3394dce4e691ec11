"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field
from datetime import datetime


# Request Models
class ConnectionCreate(BaseModel):
    url: str
    token: str


class MetadataPayload(BaseModel):
    """Raw /collections, /fields and /relations payloads."""
    collections: List[Dict[str, Any]] = Field(default_factory=list)
    fields: List[Dict[str, Any]] = Field(default_factory=list)
    relations: List[Dict[str, Any]] = Field(default_factory=list)


class PlanRequest(BaseModel):
    metadata: MetadataPayload
    collections: List[str] = Field(default_factory=list)
    include_system: bool = False
    expand_closure: bool = True
    custom_order: List[str] = Field(default_factory=list)


class ValidateOrderRequest(BaseModel):
    metadata: MetadataPayload
    collections: List[str]
    order: List[str]
    include_system: bool = False


class SchemaFilterRequest(BaseModel):
    diff: Dict[str, Any]  # {"hash": ..., "diff": {"collections": [...], "fields": [...], "relations": [...]}}
    collections: List[str] = Field(default_factory=list)
    include_system: bool = False


class FlowValidateRequest(BaseModel):
    flows: List[Dict[str, Any]]
    operations: List[Dict[str, Any]] = Field(default_factory=list)


class FlowEnvironmentCreate(BaseModel):
    collections: Dict[str, str] = Field(default_factory=dict)
    users: Dict[str, str] = Field(default_factory=dict)
    roles: Dict[str, str] = Field(default_factory=dict)
    base_url: Optional[str] = None


class AccessControlOptionsCreate(BaseModel):
    preserve_role_ids: bool = True
    skip_admin_roles: bool = True
    preserve_policy_ids: bool = True
    skip_admin_policies: bool = True
    skip_invalid_permissions: bool = True


class MigrationCreate(BaseModel):
    name: str
    source: ConnectionCreate
    target: ConnectionCreate
    collections: List[str] = Field(default_factory=list)
    include_system: bool = False
    expand_closure: bool = True
    custom_order: List[str] = Field(default_factory=list)
    migrate_schema: bool = True
    migrate_data: bool = True
    migrate_files: bool = False
    file_folders: List[str] = Field(default_factory=list)
    preserve_file_ids: bool = True
    flows: List[str] = Field(default_factory=list)
    preserve_flow_ids: bool = True
    flow_conflict: Literal["skip", "overwrite", "rename"] = "overwrite"
    flow_environment: FlowEnvironmentCreate = Field(default_factory=FlowEnvironmentCreate)
    migrate_access_control: bool = False
    access_control: AccessControlOptionsCreate = Field(default_factory=AccessControlOptionsCreate)
    item_limit: Optional[int] = None
    fields: Dict[str, List[str]] = Field(default_factory=dict)
    title_filter: Optional[str] = None
    title_field: str = "translations.title"
    concurrency: int = 1
    dry_run: bool = True


# Response Models
class PlanResponse(BaseModel):
    order: List[str]
    batches: List[List[str]]
    edges: List[List[str]]
    violated_edges: List[List[str]] = Field(default_factory=list)
    cycles: List[List[str]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ValidateOrderResponse(BaseModel):
    valid: bool
    warnings: List[str] = Field(default_factory=list)


class SchemaFilterResponse(BaseModel):
    hash: Optional[str] = None
    diff: Dict[str, List[Dict[str, Any]]]
    is_empty: bool
    message: Optional[str] = None
    counts: Dict[str, int] = Field(default_factory=dict)


class FlowValidationItem(BaseModel):
    flow_id: str
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    cycle_at: Optional[str] = None


class FlowValidateResponse(BaseModel):
    valid: bool
    flows: List[FlowValidationItem]
    errors: List[str] = Field(default_factory=list)


class MigrationStepResponse(BaseModel):
    id: str
    name: str
    entity: str
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    records_succeeded: int = 0
    records_failed: int = 0
    records_skipped: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class MigrationResponse(BaseModel):
    id: str
    name: str
    status: str
    dry_run: bool
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    plan: Optional[Dict[str, Any]] = None
    steps: List[MigrationStepResponse] = Field(default_factory=list)
    total_records_processed: int = 0
    total_records_succeeded: int = 0
    total_records_failed: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class MigrationListResponse(BaseModel):
    migrations: List[MigrationResponse]
    total: int


class ProgressResponse(BaseModel):
    migration_id: str
    status: str
    progress: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
