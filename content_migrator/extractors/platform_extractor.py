"""Extractors reading schema metadata, items, flows and access control from an instance."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .base import BaseExtractor
from ..client import PlatformAPIError, PlatformClient
from ..models.access import Access, AccessControlData, Permission, Policy, Role
from ..models.file import FileAsset, Folder
from ..models.flow import Flow, Operation
from ..models.record import SourceRecord
from ..models.schema import (
    SYSTEM_PREFIX,
    CollectionDescriptor,
    FieldDescriptor,
    RelationDescriptor,
    SchemaMetadata,
)

logger = logging.getLogger(__name__)

ALL = -1


def title_filter_query(field_path: str, text: str) -> Dict[str, Any]:
    """
    Build a ``_contains`` filter on a possibly nested field.

    ``"translations.title"`` becomes
    ``{"translations": {"title": {"_contains": text}}}``.
    """
    query: Dict[str, Any] = {"_contains": text}
    for part in reversed(field_path.split(".")):
        query = {part: query}
    return query


class CollectionItemExtractor(BaseExtractor):
    """
    Pages through ``/items/{collection}``.

    Singleton collections are read with a single request and yield at most
    one record. An optional filter is sent with every page.
    """

    def __init__(
        self,
        client: PlatformClient,
        collection: str,
        batch_size: int = 100,
        limit: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
        singleton: bool = False,
        filter: Optional[Dict[str, Any]] = None
    ):
        super().__init__(collection, batch_size, limit)
        self.client = client
        self.fields = list(fields) if fields else None
        self.singleton = singleton
        self.filter = filter

    def _query_fields(self) -> Optional[str]:
        if not self.fields:
            return None
        # The id is needed to key the upsert even when not requested
        return ",".join(["id"] + [f for f in self.fields if f != "id"])

    def extract_batch(self, offset: int = 0, limit: int = 100) -> List[SourceRecord]:
        if self.singleton:
            if offset > 0:
                return []
            item = self.client.get(f"/items/{self.collection}", params={"fields": self._query_fields()})
            return [self.create_record(item.get("id"), item)] if item else []

        params = {
            "limit": limit,
            "offset": offset,
            "fields": self._query_fields(),
            "filter": self.filter,
        }
        items = self.client.get(f"/items/{self.collection}", params=params) or []
        records = []
        for item in items:
            if item.get("id") is None:
                self.add_warning(f"Skipping {self.collection} item without id")
                continue
            records.append(self.create_record(item["id"], item))
        return records


class PlatformExtractor:
    """
    Reads everything a migration needs from one instance.

    Supports:
    - Collections, fields and relations (schema metadata)
    - The full schema snapshot
    - Paged collection items, optionally filtered by title
    - Folders and file metadata
    - Flows with their operations
    - Roles, policies, permissions and access links
    """

    def __init__(
        self,
        client: PlatformClient,
        system_prefix: str = SYSTEM_PREFIX,
        page_size: int = 100
    ):
        self.client = client
        self.system_prefix = system_prefix
        self.page_size = page_size

    def _read_all(self, endpoint: str) -> List[Dict[str, Any]]:
        return self.client.get(endpoint, params={"limit": ALL}) or []

    # Schema

    def fetch_collections(self) -> List[CollectionDescriptor]:
        data = self._read_all("/collections")
        return [CollectionDescriptor.from_dict(c, self.system_prefix) for c in data]

    def fetch_fields(self) -> List[FieldDescriptor]:
        return [FieldDescriptor.from_dict(f) for f in self._read_all("/fields")]

    def fetch_relations(self) -> List[RelationDescriptor]:
        return [RelationDescriptor.from_dict(r) for r in self._read_all("/relations")]

    def fetch_metadata(self) -> SchemaMetadata:
        """Fetch collections, fields and relations."""
        metadata = SchemaMetadata(
            collections=self.fetch_collections(),
            fields=self.fetch_fields(),
            relations=self.fetch_relations(),
        )
        logger.info(
            f"Fetched {len(metadata.collections)} collections, {len(metadata.fields)} fields "
            f"and {len(metadata.relations)} relations from {self.client.base_url}"
        )
        return metadata

    # Items

    def items(
        self,
        collection: str,
        limit: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
        singleton: bool = False,
        title_filter: Optional[str] = None,
        title_field: str = "translations.title"
    ) -> CollectionItemExtractor:
        """Create an item extractor for one collection, optionally filtered by title."""
        query = None
        if title_filter and title_filter.strip():
            query = title_filter_query(title_field, title_filter.strip())
            logger.info(f"Filtering {collection} on {title_field} containing '{title_filter.strip()}'")
        return CollectionItemExtractor(
            self.client,
            collection,
            batch_size=self.page_size,
            limit=limit,
            fields=fields,
            singleton=singleton,
            filter=query,
        )

    # Files

    def fetch_folders(self) -> List[Folder]:
        return [Folder.from_dict(f) for f in self._read_all("/folders")]

    def fetch_files(self) -> List[FileAsset]:
        files = [FileAsset.from_dict(f) for f in self._read_all("/files")]
        logger.info(f"Fetched {len(files)} files from {self.client.base_url}")
        return files

    # Flows

    def fetch_flows(self, flow_ids: Optional[Sequence[str]] = None) -> Tuple[List[Flow], List[Operation]]:
        """
        Fetch flows and their operations.

        Args:
            flow_ids: Flows to keep; None or ``["*"]`` keeps all

        Returns:
            Tuple of (flows, operations belonging to those flows)
        """
        flows = [Flow.from_dict(f) for f in self._read_all("/flows")]
        operations = [Operation.from_dict(o) for o in self._read_all("/operations")]

        if flow_ids and "*" not in flow_ids:
            wanted = set(flow_ids)
            missing = wanted - {f.id for f in flows}
            if missing:
                logger.warning(f"Flows not found on source: {', '.join(sorted(missing))}")
            flows = [f for f in flows if f.id in wanted]
            kept = {f.id for f in flows}
            operations = [o for o in operations if o.flow in kept]

        logger.info(f"Fetched {len(flows)} flows and {len(operations)} operations")
        return flows, operations

    # Access control

    def fetch_access_control(self) -> AccessControlData:
        """
        Fetch roles, policies, permissions and role-policy links.

        Instances without an ``/access`` endpoint are read without links.
        """
        roles = [Role.from_dict(r) for r in self._read_all("/roles")]
        policies = [Policy.from_dict(p) for p in self._read_all("/policies")]
        permissions = [Permission.from_dict(p) for p in self._read_all("/permissions")]
        try:
            access = [Access.from_dict(a) for a in self._read_all("/access")]
        except PlatformAPIError as e:
            logger.warning(f"Could not read access links: {e.message}")
            access = []

        for role in roles:
            for link in access:
                if link.role == role.id and link.policy not in role.policies:
                    role.policies.append(link.policy)

        return AccessControlData(roles=roles, policies=policies, permissions=permissions, access=access)
