"""Relation graph: which collections must travel together."""

import logging
from typing import Dict, Iterable, List, Optional, Set

from ..models.schema import (
    SYSTEM_PREFIX,
    CollectionDescriptor,
    FieldDescriptor,
    RelationDescriptor,
    RelationType,
    SchemaMetadata,
)

logger = logging.getLogger(__name__)

# Interfaces that always point at a system collection
SYSTEM_INTERFACES = {
    "file": "files",
    "file-image": "files",
    "files": "files",
    "user": "users",
    "folder": "folders",
}

# Interfaces whose target is declared by the field's relation
RELATIONAL_INTERFACES = {
    "list-m2m",
    "list-m2o",
    "list-o2m",
    "list-m2a",
    "list-o2m-tree-view",
    "select-dropdown-m2o",
}

HEURISTIC_FIELD_TYPES = {"uuid", "char"}

# Name fragment -> system collection suffix
HEURISTIC_NAME_HINTS = [
    (("created_by", "updated_by", "user", "owner", "author"), "users"),
    (("file", "image", "avatar", "photo", "attachment", "thumbnail"), "files"),
    (("folder",), "folders"),
]


class RelationGraph:
    """
    Coupling between collections derived from relation and field metadata.

    Supports:
    - Single-hop lookup of collections that must accompany a collection
    - Bounded fixpoint expansion of a selection to its closure
    - Warnings for selected collections that reference unselected ones
    """

    def __init__(
        self,
        collections: Optional[Iterable[CollectionDescriptor]] = None,
        fields: Optional[Iterable[FieldDescriptor]] = None,
        relations: Optional[Iterable[RelationDescriptor]] = None,
        system_prefix: str = SYSTEM_PREFIX
    ):
        """
        Initialize the graph.

        Args:
            collections: Known collections (used to bound closure expansion)
            fields: Field descriptors of all collections
            relations: Relation descriptors
            system_prefix: Reserved prefix of system collections
        """
        self.collections = list(collections or [])
        self.fields = list(fields or [])
        self.relations = list(relations or [])
        self.system_prefix = system_prefix

        self._fields_by_collection: Dict[str, List[FieldDescriptor]] = {}
        for f in self.fields:
            self._fields_by_collection.setdefault(f.collection, []).append(f)

    @classmethod
    def from_metadata(cls, metadata: SchemaMetadata, system_prefix: str = SYSTEM_PREFIX) -> "RelationGraph":
        """Build a graph from fetched schema metadata."""
        return cls(metadata.collections, metadata.fields, metadata.relations, system_prefix)

    @property
    def known_collections(self) -> Set[str]:
        """Every collection named by descriptors, fields or relations."""
        names = {c.collection for c in self.collections}
        names.update(f.collection for f in self.fields)
        for relation in self.relations:
            names.update(relation.participants)
        return names

    def system_name(self, suffix: str) -> str:
        return f"{self.system_prefix}{suffix}"

    def is_system(self, name: str) -> bool:
        return name.startswith(self.system_prefix)

    def junction_partners(self, relation: RelationDescriptor) -> List[str]:
        """
        Collections on the far side of a many-to-many junction leg.

        The sibling leg is the relation on the same junction whose field is
        this leg's ``junction_field``.
        """
        partners = []
        for other in self.relations:
            if other is relation or other.collection != relation.collection:
                continue
            if other.field == relation.junction_field:
                partners.extend(other.participants)
                partners.extend(other.one_allowed_collections)
        return partners

    def relation_target(self, field: FieldDescriptor) -> List[str]:
        """Collections a relational field points at."""
        targets = []
        for relation in self.relations:
            if relation.collection == field.collection and relation.field == field.field:
                if relation.related_collection:
                    targets.append(relation.related_collection)
                targets.extend(relation.one_allowed_collections)
            elif relation.related_collection == field.collection and relation.one_field == field.field:
                # O2M alias: the many side holds the foreign key
                targets.append(relation.collection)
                if relation.junction_field:
                    targets.extend(self.junction_partners(relation))
        if field.foreign_key_table:
            targets.append(field.foreign_key_table)
        return targets

    def field_targets(self, field: FieldDescriptor) -> List[str]:
        """
        Collections implied by a field: interface hint, foreign key, or name.
        """
        targets: List[str] = []
        interface = (field.interface or "").lower()

        if interface in SYSTEM_INTERFACES:
            targets.append(self.system_name(SYSTEM_INTERFACES[interface]))
        if interface in RELATIONAL_INTERFACES or interface in SYSTEM_INTERFACES:
            targets.extend(self.relation_target(field))

        if field.foreign_key_table:
            targets.append(field.foreign_key_table)

        if field.type in HEURISTIC_FIELD_TYPES and not field.is_primary_key:
            name = field.field.lower()
            for fragments, suffix in HEURISTIC_NAME_HINTS:
                if any(fragment in name for fragment in fragments):
                    targets.append(self.system_name(suffix))
                    break

        return targets

    def _relation_matches(self, collection: str) -> List[str]:
        matches: List[str] = []
        for relation in self.relations:
            touched = False

            if collection in (relation.collection, relation.related_collection):
                touched = True
            if collection in (relation.one_collection, relation.many_collection):
                touched = True

            if relation.relation_type == RelationType.MANY_TO_MANY:
                partners = self.junction_partners(relation)
                if touched or collection in partners:
                    matches.append(relation.collection)
                    matches.extend(relation.participants)
                    matches.extend(partners)
                    continue

            if relation.relation_type == RelationType.MANY_TO_ANY and collection in relation.one_allowed_collections:
                touched = True

            if touched:
                matches.extend(relation.participants)
        return matches

    def related_collections(self, collection: str, include_system: bool = False) -> Set[str]:
        """
        Collections that must accompany ``collection`` in a single hop.

        Args:
            collection: Collection name
            include_system: If False, matches with the reserved prefix are dropped

        Returns:
            Set of collection names, always including ``collection`` itself
        """
        candidates = self._relation_matches(collection)
        for f in self._fields_by_collection.get(collection, []):
            candidates.extend(self.field_targets(f))

        result = {collection}
        for name in candidates:
            if not name:
                continue
            if not include_system and self.is_system(name):
                continue
            result.add(name)
        return result

    def closure(self, selection: Iterable[str], include_system: bool = False) -> List[str]:
        """
        Expand a selection until no new collection appears.

        The loop is bounded by the number of known collections so cyclic or
        malformed relation data cannot keep it running.

        Returns:
            The closed selection, original selection first, then discovered
            collections in discovery order
        """
        selection = list(selection)
        result: List[str] = []
        for name in selection:
            if name not in result:
                result.append(name)

        frontier = list(result)
        max_rounds = len(self.known_collections | set(result)) + 1
        rounds = 0

        while frontier and rounds < max_rounds:
            rounds += 1
            discovered: List[str] = []
            for name in frontier:
                for related in sorted(self.related_collections(name, include_system)):
                    if related not in result and related not in discovered:
                        discovered.append(related)
            result.extend(discovered)
            frontier = discovered

        if frontier:
            logger.warning(f"Closure expansion stopped after {rounds} rounds with {len(frontier)} pending collections")

        added = len(result) - len(set(selection))
        if added:
            logger.info(f"Closure added {added} collections to the selection")
        return result

    def missing_dependencies(self, selection: Iterable[str], include_system: bool = False) -> List[str]:
        """
        Warnings for selected collections coupled to unselected ones.

        These are not blocking: the target applies relation metadata even when
        one side is missing.
        """
        selection = list(selection)
        selected = set(selection)
        warnings = []
        for name in selection:
            missing = sorted(self.related_collections(name, include_system) - selected)
            if missing:
                warnings.append(f"{name} references collections outside the selection: {', '.join(missing)}")
        return warnings
