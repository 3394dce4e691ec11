"""Access control models: roles, policies, permissions and their links."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .record import UnitResult


@dataclass
class Role:
    id: str
    name: str = ""
    icon: Optional[str] = None
    description: Optional[str] = None
    admin_access: bool = False
    app_access: bool = False
    policies: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Body for create/update, without link collections."""
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Role":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            icon=data.get("icon"),
            description=data.get("description"),
            admin_access=bool(data.get("admin_access", False)),
            app_access=bool(data.get("app_access", False)),
            policies=[p for p in data.get("policies") or [] if isinstance(p, str)],
        )


@dataclass
class Policy:
    id: str
    name: str = ""
    icon: Optional[str] = None
    description: Optional[str] = None
    ip_access: Optional[Any] = None
    enforce_tfa: bool = False
    admin_access: bool = False
    app_access: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Body for create/update, without link collections."""
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "description": self.description,
            "ip_access": self.ip_access or None,
            "enforce_tfa": self.enforce_tfa,
            "admin_access": self.admin_access,
            "app_access": self.app_access,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Policy":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            icon=data.get("icon"),
            description=data.get("description"),
            ip_access=data.get("ip_access"),
            enforce_tfa=bool(data.get("enforce_tfa", False)),
            admin_access=bool(data.get("admin_access", False)),
            app_access=bool(data.get("app_access", False)),
        )


@dataclass
class Permission:
    id: Any
    collection: str
    action: str
    policy: Optional[str] = None
    permissions: Optional[Dict[str, Any]] = None
    validation: Optional[Dict[str, Any]] = None
    presets: Optional[Dict[str, Any]] = None
    fields: Optional[List[str]] = None

    @property
    def key(self) -> tuple:
        """Natural key used to match permissions across instances."""
        return (self.collection, self.action, self.policy)

    def to_payload(self) -> Dict[str, Any]:
        """Body for create/update; the numeric id is never carried over."""
        return {
            "policy": self.policy,
            "collection": self.collection,
            "action": self.action,
            "permissions": self.permissions or None,
            "validation": self.validation or None,
            "presets": self.presets or None,
            "fields": self.fields or None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Permission":
        return cls(
            id=data.get("id"),
            collection=data.get("collection") or "",
            action=data.get("action") or "",
            policy=data.get("policy"),
            permissions=data.get("permissions"),
            validation=data.get("validation"),
            presets=data.get("presets"),
            fields=data.get("fields"),
        )


@dataclass
class Access:
    """Link between a role (or user) and a policy."""
    policy: str
    role: Optional[str] = None
    id: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Access":
        return cls(id=data.get("id"), role=data.get("role"), policy=data.get("policy"))


@dataclass
class AccessControlData:
    """All access control objects fetched from one instance."""
    roles: List[Role] = field(default_factory=list)
    policies: List[Policy] = field(default_factory=list)
    permissions: List[Permission] = field(default_factory=list)
    access: List[Access] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        """Counts split by admin/custom and permissions per collection."""
        by_collection: Dict[str, int] = {}
        for permission in self.permissions:
            by_collection[permission.collection] = by_collection.get(permission.collection, 0) + 1
        return {
            "roles": {
                "count": len(self.roles),
                "admin": [r.id for r in self.roles if r.admin_access],
                "custom": [r.id for r in self.roles if not r.admin_access],
            },
            "policies": {
                "count": len(self.policies),
                "admin": [p.id for p in self.policies if p.admin_access],
                "custom": [p.id for p in self.policies if not p.admin_access],
            },
            "permissions": {
                "count": len(self.permissions),
                "by_collection": by_collection,
            },
        }


@dataclass
class AccessControlResult:
    """Per-object results of an access control migration."""
    roles: List[UnitResult] = field(default_factory=list)
    policies: List[UnitResult] = field(default_factory=list)
    permissions: List[UnitResult] = field(default_factory=list)
    access: List[UnitResult] = field(default_factory=list)

    @property
    def message(self) -> str:
        def ok(results: List[UnitResult]) -> int:
            return sum(1 for r in results if r.success)

        return (
            f"Imported {ok(self.roles)} roles, {ok(self.policies)} policies, "
            f"{ok(self.permissions)} permissions and {ok(self.access)} access links"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "roles": [r.to_dict() for r in self.roles],
            "policies": [p.to_dict() for p in self.policies],
            "permissions": [p.to_dict() for p in self.permissions],
            "access": [a.to_dict() for a in self.access],
        }
