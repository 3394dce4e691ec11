"""Flow and operation models."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .record import UnitResult

AUDIT_FIELDS = ("date_created", "user_created", "date_updated", "user_updated")

# Operation option keys holding URLs rewritten to the target base URL
URL_OPTION_KEYS = ("url", "webhook_url", "endpoint", "callback_url")
LOCAL_URL = re.compile(r"https?://localhost(:\d+)?")


class ConflictResolution(str, Enum):
    """What to do with a flow whose id already exists on the target."""
    SKIP = "skip"
    OVERWRITE = "overwrite"
    RENAME = "rename"


@dataclass
class EnvironmentMapping:
    """
    Source to target names referenced inside operation options.

    Supports:
    - ``collection``, ``user`` and ``role`` option values
    - Local development URLs in webhook-style options
    """
    collections: Dict[str, str] = field(default_factory=dict)
    users: Dict[str, str] = field(default_factory=dict)
    roles: Dict[str, str] = field(default_factory=dict)
    base_url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.collections or self.users or self.roles or self.base_url)

    def _lookups(self):
        return (("collection", self.collections), ("user", self.users), ("role", self.roles))

    def transform_options(self, options: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Return a copy of ``options`` with mapped references; unmapped values are kept."""
        if not options or self.is_empty:
            return options

        transformed = dict(options)
        for key, mapping in self._lookups():
            value = transformed.get(key)
            if isinstance(value, str) and value in mapping:
                transformed[key] = mapping[value]

        if self.base_url:
            base_url = self.base_url.rstrip("/")
            for key in URL_OPTION_KEYS:
                value = transformed.get(key)
                if isinstance(value, str):
                    transformed[key] = LOCAL_URL.sub(lambda _: base_url, value)
        return transformed

    def unmapped_references(self, operation: "Operation") -> List[str]:
        """Warnings for option references missing from a non-empty mapping."""
        options = operation.options or {}
        warnings = []
        for key, mapping in self._lookups():
            value = options.get(key)
            if mapping and isinstance(value, str) and value not in mapping:
                warnings.append(f'Operation "{operation.label}" references unmapped {key}: {value}')
        return warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collections": self.collections,
            "users": self.users,
            "roles": self.roles,
            "base_url": self.base_url,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EnvironmentMapping":
        data = data or {}
        return cls(
            collections=dict(data.get("collections") or {}),
            users=dict(data.get("users") or {}),
            roles=dict(data.get("roles") or {}),
            base_url=data.get("base_url"),
        )


@dataclass
class Operation:
    """A single step of a flow, linked to the next steps by resolve/reject."""
    id: str
    flow: str
    key: str = ""
    type: str = ""
    name: Optional[str] = None
    position_x: int = 0
    position_y: int = 0
    options: Optional[Dict[str, Any]] = None
    resolve: Optional[str] = None
    reject: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.id

    @property
    def pointers(self) -> List[str]:
        """Outgoing resolve/reject targets."""
        return [p for p in (self.resolve, self.reject) if p]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "flow": self.flow,
            "key": self.key,
            "type": self.type,
            "name": self.name,
            "position_x": self.position_x,
            "position_y": self.position_y,
            "options": self.options,
            "resolve": self.resolve,
            "reject": self.reject,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Operation":
        """Create from an /operations payload entry."""
        return cls(
            id=data["id"],
            flow=data.get("flow") or "",
            key=data.get("key") or "",
            type=data.get("type") or "",
            name=data.get("name"),
            position_x=data.get("position_x") or 0,
            position_y=data.get("position_y") or 0,
            options=data.get("options"),
            resolve=data.get("resolve"),
            reject=data.get("reject"),
        )


@dataclass
class Flow:
    """An automation flow rooted at one operation."""
    id: str
    name: str = ""
    icon: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None
    status: str = "active"
    trigger: Optional[str] = None
    accountability: Optional[str] = None
    options: Optional[Dict[str, Any]] = None
    operation: Optional[str] = None  # Root operation ID

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "description": self.description,
            "status": self.status,
            "trigger": self.trigger,
            "accountability": self.accountability,
            "options": self.options,
            "operation": self.operation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flow":
        """Create from a /flows payload entry."""
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            icon=data.get("icon"),
            color=data.get("color"),
            description=data.get("description"),
            status=data.get("status") or "active",
            trigger=data.get("trigger"),
            accountability=data.get("accountability"),
            options=data.get("options"),
            operation=data.get("operation"),
        )


@dataclass
class FlowValidationResult:
    """Validation outcome for one flow."""
    flow_id: str
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cycle_at: Optional[str] = None  # First operation revisited on the walk stack

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "flow_id": self.flow_id,
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "cycle_at": self.cycle_at,
        }


@dataclass
class FlowImportResult:
    """Aggregated result of migrating a batch of flows."""
    flows: List[UnitResult] = field(default_factory=list)
    operations: List[UnitResult] = field(default_factory=list)
    validation: Dict[str, FlowValidationResult] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    id_mapping: Dict[str, str] = field(default_factory=dict)

    @property
    def successful_flows(self) -> int:
        return sum(1 for f in self.flows if f.success)

    @property
    def skipped_flows(self) -> int:
        return sum(1 for f in self.flows if f.status == "skipped")

    @property
    def successful_operations(self) -> int:
        return sum(1 for o in self.operations if o.success)

    @property
    def message(self) -> str:
        return (
            f"Imported {self.successful_flows}/{len(self.flows)} flows and "
            f"{self.successful_operations}/{len(self.operations)} operations"
        ) + (f" ({self.skipped_flows} skipped)" if self.skipped_flows else "")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "message": self.message,
            "flows": [f.to_dict() for f in self.flows],
            "operations": [o.to_dict() for o in self.operations],
            "validation": {k: v.to_dict() for k, v in self.validation.items()},
            "errors": self.errors,
            "id_mapping": self.id_mapping,
        }
