"""Shared pytest fixtures for content migrator tests."""

import copy
import itertools
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from content_migrator.client import PlatformAPIError
from content_migrator.models.schema import SchemaMetadata


class FakePlatform:
    """
    In-memory stand-in for :class:`PlatformClient`.

    Rows live in tables keyed by endpoint (``items/<collection>``, ``flows``,
    ``operations``, ``roles`` ...). Missing rows answer 403 like the real
    platform does. Every call is recorded with a copy of its body.
    """

    def __init__(self, base_url: str = "http://target.test", missing_status: int = 403):
        self.base_url = base_url
        self.missing_status = missing_status
        self.tables: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self.singletons: set = set()
        self.responses: Dict[Tuple[str, str], Any] = {}
        self.fail_when: List[Callable[[str, str, Any], bool]] = []
        self.calls: List[Tuple[str, str, Any]] = []
        self._ids = itertools.count(1000)
        self._lock = threading.Lock()

    # Helpers for tests

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        for row in rows:
            self.tables.setdefault(table, {})[row.get("id")] = copy.deepcopy(row)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    def row(self, table: str, row_id: Any) -> Optional[Dict[str, Any]]:
        return self.tables.get(table, {}).get(row_id)

    def calls_to(self, method: str, prefix: str = "") -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == method and c[1].startswith(prefix)]

    # Client surface

    @staticmethod
    def _split(endpoint: str) -> Tuple[str, Optional[str]]:
        parts = endpoint.strip("/").split("/")
        if parts[0] == "items":
            table = f"items/{parts[1]}"
            row_id = parts[2] if len(parts) > 2 else None
        else:
            table = parts[0]
            row_id = parts[1] if len(parts) > 1 else None
        return table, row_id

    def _lookup(self, table: str, row_id: str) -> Tuple[Any, Optional[Dict[str, Any]]]:
        # Ids arrive as strings in URLs; rows may be keyed by int
        rows = self.tables.get(table, {})
        for key, row in rows.items():
            if str(key) == row_id:
                return key, row
        return None, None

    def _check(self, method: str, endpoint: str, body: Any) -> None:
        self.calls.append((method, endpoint, copy.deepcopy(body)))
        for predicate in self.fail_when:
            if predicate(method, endpoint, body):
                raise PlatformAPIError("Invalid payload", status_code=400, details={"endpoint": endpoint})

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        with self._lock:
            self._check("GET", endpoint, params)
            if ("GET", endpoint) in self.responses:
                return copy.deepcopy(self.responses[("GET", endpoint)])

            table, row_id = self._split(endpoint)
            if table in self.singletons:
                rows = self.rows(table)
                return copy.deepcopy(rows[0]) if rows else None
            if row_id is None:
                rows = self.rows(table)
                params = params or {}
                offset = params.get("offset") or 0
                limit = params.get("limit")
                if limit is not None and limit >= 0:
                    rows = rows[offset:offset + limit]
                else:
                    rows = rows[offset:]
                return copy.deepcopy(rows)

            _, row = self._lookup(table, row_id)
            if row is None:
                raise PlatformAPIError("You don't have permission to access this.", status_code=self.missing_status)
            return copy.deepcopy(row)

    def post(self, endpoint: str, data: Optional[Any] = None, params: Optional[Dict[str, Any]] = None) -> Any:
        with self._lock:
            self._check("POST", endpoint, data)
            if ("POST", endpoint) in self.responses:
                return copy.deepcopy(self.responses[("POST", endpoint)])

            table, _ = self._split(endpoint)
            body = copy.deepcopy(data or {})
            row_id = body.get("id")
            if row_id is None:
                row_id = next(self._ids)
                body["id"] = row_id
            rows = self.tables.setdefault(table, {})
            if row_id in rows:
                raise PlatformAPIError(f'Value "{row_id}" for field "id" has to be unique.', status_code=400)
            rows[row_id] = body
            return copy.deepcopy(body)

    def patch(self, endpoint: str, data: Any) -> Any:
        with self._lock:
            self._check("PATCH", endpoint, data)
            table, row_id = self._split(endpoint)
            if table in self.singletons:
                rows = self.tables.setdefault(table, {})
                current = next(iter(rows.values()), {"id": 1})
                current.update(copy.deepcopy(data))
                rows[current["id"]] = current
                return copy.deepcopy(current)

            key, row = self._lookup(table, row_id)
            if row is None:
                raise PlatformAPIError("You don't have permission to access this.", status_code=self.missing_status)
            row.update(copy.deepcopy(data))
            return copy.deepcopy(row)

    def delete(self, endpoint: str) -> Any:
        with self._lock:
            self._check("DELETE", endpoint, None)
            table, row_id = self._split(endpoint)
            key, row = self._lookup(table, row_id)
            if row is None:
                raise PlatformAPIError("You don't have permission to access this.", status_code=self.missing_status)
            del self.tables[table][key]
            return None

    def validate_token(self) -> Dict[str, Any]:
        self.calls.append(("GET", "/users", {"limit": 1}))
        return {"url": self.base_url, "user_count": 1}


@pytest.fixture
def target() -> FakePlatform:
    """Empty target instance."""
    return FakePlatform()


@pytest.fixture
def source() -> FakePlatform:
    """Empty source instance."""
    return FakePlatform(base_url="http://source.test")


@pytest.fixture
def blog_metadata_payload() -> Dict[str, Any]:
    """
    Raw metadata of a small blog schema.

    ``articles`` -> ``authors`` (m2o), ``articles`` <-> ``tags`` through the
    ``articles_tags`` junction, ``authors.avatar`` is a file field, and
    ``pages`` is unrelated.
    """
    return {
        "collections": [
            {"collection": "articles", "meta": {}},
            {"collection": "authors", "meta": {}},
            {"collection": "tags", "meta": {}},
            {"collection": "articles_tags", "meta": {"hidden": True}},
            {"collection": "pages", "meta": {}},
            {"collection": "settings", "meta": {"singleton": True}},
            {"collection": "directus_files", "meta": {}},
            {"collection": "directus_users", "meta": {}},
        ],
        "fields": [
            {"collection": "articles", "field": "id", "type": "integer", "schema": {"is_primary_key": True}},
            {"collection": "articles", "field": "author", "type": "integer",
             "meta": {"interface": "select-dropdown-m2o"},
             "schema": {"foreign_key_table": "authors", "foreign_key_column": "id"}},
            {"collection": "articles", "field": "tags", "type": "alias", "meta": {"interface": "list-m2m"}},
            {"collection": "authors", "field": "id", "type": "integer", "schema": {"is_primary_key": True}},
            {"collection": "authors", "field": "avatar", "type": "uuid", "meta": {"interface": "file-image"},
             "schema": {"foreign_key_table": "directus_files", "foreign_key_column": "id"}},
            {"collection": "tags", "field": "id", "type": "integer", "schema": {"is_primary_key": True}},
            {"collection": "articles_tags", "field": "id", "type": "integer", "schema": {"is_primary_key": True}},
            {"collection": "articles_tags", "field": "articles_id", "type": "integer"},
            {"collection": "articles_tags", "field": "tags_id", "type": "integer"},
            {"collection": "pages", "field": "id", "type": "integer", "schema": {"is_primary_key": True}},
            {"collection": "pages", "field": "title", "type": "string", "meta": {"interface": "input"}},
        ],
        "relations": [
            {"collection": "articles", "field": "author", "related_collection": "authors",
             "meta": {"many_collection": "articles", "one_collection": "authors"}},
            {"collection": "articles_tags", "field": "articles_id", "related_collection": "articles",
             "meta": {"many_collection": "articles_tags", "one_collection": "articles",
                      "one_field": "tags", "junction_field": "tags_id"}},
            {"collection": "articles_tags", "field": "tags_id", "related_collection": "tags",
             "meta": {"many_collection": "articles_tags", "one_collection": "tags",
                      "junction_field": "articles_id"}},
            {"collection": "authors", "field": "avatar", "related_collection": "directus_files",
             "meta": {"many_collection": "authors", "one_collection": "directus_files"}},
        ],
    }


@pytest.fixture
def blog_metadata(blog_metadata_payload) -> SchemaMetadata:
    return SchemaMetadata.from_dict(blog_metadata_payload)
