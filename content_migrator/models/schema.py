"""Schema models for collections, fields, relations and schema diffs."""

from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, List, Optional
from enum import Enum
import json

SYSTEM_PREFIX = "directus_"


def is_system_collection(name: Optional[str], prefix: str = SYSTEM_PREFIX) -> bool:
    """Check if a collection name carries the reserved system prefix."""
    return bool(name) and name.startswith(prefix)


class RelationType(str, Enum):
    """Kinds of relations between collections."""
    MANY_TO_ONE = "m2o"
    ONE_TO_MANY = "o2m"
    MANY_TO_MANY = "m2m"
    MANY_TO_ANY = "m2a"


class ChangeKind(str, Enum):
    """Kind of a single change record inside a diff entry."""
    NEW = "N"
    EDIT = "E"
    DELETE = "D"


@dataclass
class CollectionDescriptor:
    """A collection as reported by the platform."""
    collection: str
    system: bool = False
    singleton: bool = False
    is_folder: bool = False
    meta: Dict[str, Any] = dataclass_field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "collection": self.collection,
            "system": self.system,
            "singleton": self.singleton,
            "is_folder": self.is_folder,
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], prefix: str = SYSTEM_PREFIX) -> "CollectionDescriptor":
        """Create from a /collections payload entry."""
        meta = data.get("meta") or {}
        name = data.get("collection", "")
        return cls(
            collection=name,
            system=is_system_collection(name, prefix),
            singleton=bool(meta.get("singleton", False)),
            is_folder=bool(meta.get("is_folder", False)) or data.get("schema", True) is None,
            meta=meta,
        )


@dataclass
class FieldDescriptor:
    """A field of a collection, with its raw schema constraints."""
    collection: str
    field: str
    type: str = "string"
    interface: Optional[str] = None
    is_nullable: bool = True
    is_unique: bool = False
    is_primary_key: bool = False
    default_value: Optional[Any] = None
    max_length: Optional[int] = None
    foreign_key_table: Optional[str] = None
    foreign_key_column: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "collection": self.collection,
            "field": self.field,
            "type": self.type,
            "meta": {"interface": self.interface},
            "schema": {
                "is_nullable": self.is_nullable,
                "is_unique": self.is_unique,
                "is_primary_key": self.is_primary_key,
                "default_value": self.default_value,
                "max_length": self.max_length,
                "foreign_key_table": self.foreign_key_table,
                "foreign_key_column": self.foreign_key_column,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldDescriptor":
        """Create from a /fields payload entry."""
        meta = data.get("meta") or {}
        schema = data.get("schema") or {}
        return cls(
            collection=data.get("collection", ""),
            field=data.get("field", ""),
            type=data.get("type") or "string",
            interface=meta.get("interface"),
            is_nullable=schema.get("is_nullable", True),
            is_unique=schema.get("is_unique", False),
            is_primary_key=schema.get("is_primary_key", False),
            default_value=schema.get("default_value"),
            max_length=schema.get("max_length"),
            foreign_key_table=schema.get("foreign_key_table"),
            foreign_key_column=schema.get("foreign_key_column"),
        )


@dataclass
class RelationDescriptor:
    """
    Relation metadata between two collections.

    ``collection``/``field`` is always the many side holding the foreign key.
    ``related_collection`` is the one side, and is empty for many-to-any
    relations where ``one_allowed_collections`` lists the possible targets.
    """
    collection: str
    field: str
    related_collection: Optional[str] = None
    one_collection: Optional[str] = None
    many_collection: Optional[str] = None
    one_field: Optional[str] = None
    junction_field: Optional[str] = None
    one_collection_field: Optional[str] = None
    one_allowed_collections: List[str] = dataclass_field(default_factory=list)
    foreign_key_table: Optional[str] = None

    @property
    def relation_type(self) -> RelationType:
        """Derive the relation kind from its metadata."""
        if self.one_allowed_collections:
            return RelationType.MANY_TO_ANY
        if self.junction_field:
            return RelationType.MANY_TO_MANY
        if self.one_field:
            return RelationType.ONE_TO_MANY
        return RelationType.MANY_TO_ONE

    @property
    def participants(self) -> List[str]:
        """All collection names this relation mentions, without duplicates."""
        names = [
            self.collection,
            self.related_collection,
            self.one_collection,
            self.many_collection,
            *self.one_allowed_collections,
        ]
        result = []
        for name in names:
            if name and name not in result:
                result.append(name)
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "collection": self.collection,
            "field": self.field,
            "related_collection": self.related_collection,
            "meta": {
                "one_collection": self.one_collection,
                "many_collection": self.many_collection,
                "one_field": self.one_field,
                "junction_field": self.junction_field,
                "one_collection_field": self.one_collection_field,
                "one_allowed_collections": self.one_allowed_collections or None,
            },
            "schema": {"foreign_key_table": self.foreign_key_table},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelationDescriptor":
        """Create from a /relations payload entry."""
        meta = data.get("meta") or {}
        schema = data.get("schema") or {}
        return cls(
            collection=data.get("collection") or meta.get("many_collection") or "",
            field=data.get("field") or meta.get("many_field") or "",
            related_collection=data.get("related_collection") or meta.get("one_collection"),
            one_collection=meta.get("one_collection"),
            many_collection=meta.get("many_collection"),
            one_field=meta.get("one_field"),
            junction_field=meta.get("junction_field"),
            one_collection_field=meta.get("one_collection_field"),
            one_allowed_collections=list(meta.get("one_allowed_collections") or []),
            foreign_key_table=schema.get("foreign_key_table"),
        )


@dataclass
class ChangeRecord:
    """A single change inside a diff entry (deep-diff style)."""
    kind: Optional[ChangeKind]
    before: Optional[Any] = None
    after: Optional[Any] = None
    path: List[Any] = dataclass_field(default_factory=list)

    @property
    def is_effective(self) -> bool:
        """True for New, Edit and Delete records."""
        return self.kind is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeRecord":
        """Create from a raw diff record (``kind``/``lhs``/``rhs``)."""
        try:
            kind = ChangeKind(data.get("kind"))
        except ValueError:
            kind = None
        return cls(
            kind=kind,
            before=data.get("lhs"),
            after=data.get("rhs"),
            path=list(data.get("path") or []),
        )


@dataclass
class DiffEntry:
    """
    One itemized entry of a schema diff.

    The raw payload is kept so that a filtered diff is forwarded exactly as
    the server produced it.
    """
    collection: str
    field: Optional[str] = None
    related_collection: Optional[str] = None
    changes: List[ChangeRecord] = dataclass_field(default_factory=list)
    raw: Dict[str, Any] = dataclass_field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        """Check if at least one New/Edit/Delete record is present."""
        return any(change.is_effective for change in self.changes)

    def relation_participants(self) -> List[str]:
        """
        Collections touched by a relation entry.

        Reads the entry key and the before/after payloads of every change
        record, so relation metadata moved from one side is still matched.
        """
        names = [self.collection, self.related_collection]
        for change in self.changes:
            for payload in (change.before, change.after):
                if not isinstance(payload, dict):
                    continue
                names.append(payload.get("related_collection"))
                meta = payload.get("meta")
                if isinstance(meta, dict):
                    names.append(meta.get("one_collection"))
                    names.append(meta.get("many_collection"))
        result = []
        for name in names:
            if name and name not in result:
                result.append(name)
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to the raw payload."""
        if self.raw:
            return self.raw
        data: Dict[str, Any] = {"collection": self.collection}
        if self.field is not None:
            data["field"] = self.field
        if self.related_collection is not None:
            data["related_collection"] = self.related_collection
        data["diff"] = [
            {k: v for k, v in (
                ("kind", c.kind.value if c.kind else None),
                ("path", c.path or None),
                ("lhs", c.before),
                ("rhs", c.after),
            ) if v is not None}
            for c in self.changes
        ]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiffEntry":
        """Create from a raw diff entry."""
        return cls(
            collection=data.get("collection", ""),
            field=data.get("field"),
            related_collection=data.get("related_collection"),
            changes=[ChangeRecord.from_dict(c) for c in data.get("diff") or []],
            raw=data,
        )


@dataclass
class SchemaDiff:
    """A hashed comparison between a source snapshot and a target schema."""
    hash: Optional[str] = None
    collections: List[DiffEntry] = dataclass_field(default_factory=list)
    fields: List[DiffEntry] = dataclass_field(default_factory=list)
    relations: List[DiffEntry] = dataclass_field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to apply."""
        return not (self.collections or self.fields or self.relations)

    @property
    def change_count(self) -> int:
        """Total number of itemized entries."""
        return len(self.collections) + len(self.fields) + len(self.relations)

    def touched_collections(self) -> List[str]:
        """Collections named by any entry, in first-seen order."""
        names: List[str] = []
        for entry in self.collections + self.fields:
            if entry.collection not in names:
                names.append(entry.collection)
        for entry in self.relations:
            for name in entry.relation_participants():
                if name not in names:
                    names.append(name)
        return names

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the payload expected by the apply endpoint."""
        return {
            "hash": self.hash,
            "diff": {
                "collections": [e.to_dict() for e in self.collections],
                "fields": [e.to_dict() for e in self.fields],
                "relations": [e.to_dict() for e in self.relations],
            },
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SchemaDiff":
        """Create from a /schema/diff response body (envelope already removed)."""
        if not data:
            return cls()
        diff = data.get("diff") or {}
        return cls(
            hash=data.get("hash"),
            collections=[DiffEntry.from_dict(e) for e in diff.get("collections") or []],
            fields=[DiffEntry.from_dict(e) for e in diff.get("fields") or []],
            relations=[DiffEntry.from_dict(e) for e in diff.get("relations") or []],
        )

    @classmethod
    def from_json_file(cls, file_path: str) -> "SchemaDiff":
        """Load a diff from a JSON file."""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data.get("data", data))


@dataclass
class SchemaMetadata:
    """Collections, fields and relations fetched from one instance."""
    collections: List[CollectionDescriptor] = dataclass_field(default_factory=list)
    fields: List[FieldDescriptor] = dataclass_field(default_factory=list)
    relations: List[RelationDescriptor] = dataclass_field(default_factory=list)

    def collection_names(self) -> List[str]:
        """Names of all known collections."""
        return [c.collection for c in self.collections]

    def get_collection(self, name: str) -> Optional[CollectionDescriptor]:
        """Look up a collection descriptor by name."""
        for collection in self.collections:
            if collection.collection == name:
                return collection
        return None

    def has_field(self, collection: str, field_name: str) -> bool:
        return any(f.collection == collection and f.field == field_name for f in self.fields)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "collections": [c.to_dict() for c in self.collections],
            "fields": [f.to_dict() for f in self.fields],
            "relations": [r.to_dict() for r in self.relations],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], prefix: str = SYSTEM_PREFIX) -> "SchemaMetadata":
        """Create from raw /collections, /fields and /relations payloads."""
        return cls(
            collections=[CollectionDescriptor.from_dict(c, prefix) for c in data.get("collections") or []],
            fields=[FieldDescriptor.from_dict(f) for f in data.get("fields") or []],
            relations=[RelationDescriptor.from_dict(r) for r in data.get("relations") or []],
        )

    @classmethod
    def from_json_file(cls, file_path: str) -> "SchemaMetadata":
        """Load metadata from a JSON file."""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data.get("data", data))
