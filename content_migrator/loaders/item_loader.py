"""Identity-preserving item loader."""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..client import PlatformAPIError, PlatformClient
from ..models.flow import AUDIT_FIELDS
from ..models.migration import MigrationSession
from ..models.record import ErrorDetail, ImportRecord, SourceRecord, UpsertResult
from .base import BaseLoader, LoadResult, ProgressCallback

logger = logging.getLogger(__name__)

# Never written to the target; the id travels in the URL or is set explicitly on create
STRIPPED_FIELDS = ("id",) + AUDIT_FIELDS

NOT_FOUND_STATUSES = (403, 404)

Item = Union[SourceRecord, Dict[str, Any]]


class ItemLoader(BaseLoader):
    """
    Loader that copies items so they keep their source id on the target.

    Supports:
    - Look up by id, then update in place or create with the explicit id
    - Optional field subsets per collection
    - Singleton collections (no id in the URL)
    - Bounded parallelism and cancellation through :class:`BaseLoader`

    There is no id-less fallback: if the create with an explicit id fails,
    the item is reported as an error.
    """

    def __init__(
        self,
        client: PlatformClient,
        concurrency: int = 1,
        not_found_statuses: Sequence[int] = NOT_FOUND_STATUSES
    ):
        """
        Initialize the loader.

        Args:
            client: Client for the target instance
            concurrency: Number of items written in parallel
            not_found_statuses: Lookup statuses meaning "item does not exist".
                The platform answers 403 for items that do not exist, so
                both 403 and 404 are treated as absent by default.
        """
        super().__init__(client, concurrency)
        self.not_found_statuses = tuple(not_found_statuses)
        self._options: Dict[str, Tuple[Optional[List[str]], bool]] = {}

    @staticmethod
    def clean_payload(data: Dict[str, Any], fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Remove identity and audit fields, then reduce to ``fields`` if given.

        Requested fields that are not present on the item are ignored.
        """
        payload = {k: v for k, v in data.items() if k not in STRIPPED_FIELDS}
        if fields:
            wanted = set(fields)
            payload = {k: v for k, v in payload.items() if k in wanted}
        return payload

    def _fetch_existing(self, collection: str, item_id: Any, singleton: bool) -> Optional[Dict[str, Any]]:
        """
        Read the target item, or None when it does not exist.

        Raises:
            PlatformAPIError: for statuses other than the not-found ones
        """
        endpoint = f"/items/{collection}" if singleton else f"/items/{collection}/{item_id}"
        try:
            existing = self.client.get(endpoint)
        except PlatformAPIError as e:
            if e.status_code in self.not_found_statuses:
                return None
            raise
        return existing or None

    def upsert(
        self,
        collection: str,
        item_id: Any,
        data: Dict[str, Any],
        fields: Optional[Iterable[str]] = None,
        singleton: bool = False
    ) -> UpsertResult:
        """
        Create or update one item keyed by its source id.

        Args:
            collection: Target collection
            item_id: Source id, kept on the target
            data: Item payload from the source
            fields: Optional field subset
            singleton: Collection holds a single item addressed without an id

        Returns:
            UpsertResult tagged Created, Updated or Failed
        """
        payload = self.clean_payload(data, fields)

        try:
            existing = self._fetch_existing(collection, item_id, singleton)

            if singleton:
                response = self.client.patch(f"/items/{collection}", payload)
                if existing:
                    return UpsertResult.updated(item_id, response)
                return UpsertResult.created(item_id, response)

            if existing:
                logger.debug(f"Updating {collection}/{item_id}")
                response = self.client.patch(f"/items/{collection}/{item_id}", payload)
                return UpsertResult.updated(item_id, response)

            logger.debug(f"Creating {collection}/{item_id}")
            response = self.client.post(f"/items/{collection}", {"id": item_id, **payload})
            return UpsertResult.created(item_id, response)

        except PlatformAPIError as e:
            logger.error(f"Failed to import {collection}/{item_id}: {e.message}")
            return UpsertResult.failed(
                item_id,
                ErrorDetail(message=e.message, status=e.status_code, details=e.details),
            )

    def load_record(self, record: SourceRecord) -> ImportRecord:
        fields, singleton = self._options.get(record.collection, (None, False))
        result = self.upsert(record.collection, record.id, record.data, fields, singleton)
        return ImportRecord.from_upsert(result)

    def load_collection(
        self,
        collection: str,
        items: Sequence[Item],
        fields: Optional[List[str]] = None,
        limit: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
        session: Optional[MigrationSession] = None,
        singleton: bool = False,
        cancel_event: Optional[threading.Event] = None
    ) -> LoadResult:
        """
        Transfer items of one collection to the target.

        Args:
            collection: Collection name
            items: Source items (records or raw dicts) in source order
            fields: Optional field subset
            limit: Optional cap on the number of items
            progress_callback: Called with ``(processed, total)`` after every item
            session: Session whose progress map is updated
            singleton: Collection is a singleton
            cancel_event: Checked before each item

        Returns:
            LoadResult with one ImportRecord per processed item
        """
        records = [self._to_record(collection, item) for item in items]
        if limit is not None and limit > 0:
            records = records[:limit]
        if singleton:
            records = records[:1]

        logger.info(f"Loading {len(records)} items into {collection}...")
        self._options[collection] = (fields, singleton)
        try:
            return self.load_batch(collection, records, progress_callback, session, cancel_event)
        finally:
            self._options.pop(collection, None)

    @staticmethod
    def _to_record(collection: str, item: Item) -> SourceRecord:
        if isinstance(item, SourceRecord):
            return item
        return SourceRecord(id=item.get("id"), collection=collection, data=item)
