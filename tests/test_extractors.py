"""Tests for reading metadata, items, flows and access control from the source."""

import pytest

from content_migrator.extractors.platform_extractor import (
    CollectionItemExtractor,
    PlatformExtractor,
    title_filter_query,
)


@pytest.fixture
def extractor(source) -> PlatformExtractor:
    return PlatformExtractor(source, page_size=2)


class TestCollectionItemExtractor:
    """Test suite for paged item reads."""

    def test_pages_until_short_page(self, source):
        source.seed("items/articles", *[{"id": i, "title": str(i)} for i in range(1, 6)])

        result = CollectionItemExtractor(source, "articles", batch_size=2).extract()

        assert [r.id for r in result.records] == [1, 2, 3, 4, 5]
        assert len(source.calls_to("GET", "/items/articles")) == 3

    def test_limit(self, source):
        source.seed("items/articles", *[{"id": i} for i in range(1, 6)])

        result = CollectionItemExtractor(source, "articles", batch_size=2, limit=3).extract()

        assert [r.id for r in result.records] == [1, 2, 3]
        assert source.calls_to("GET")[-1][2]["limit"] == 1

    def test_fields_always_include_id(self, source):
        source.seed("items/articles", {"id": 1, "title": "x"})

        CollectionItemExtractor(source, "articles", fields=["title", "body"]).extract()

        assert source.calls_to("GET")[0][2]["fields"] == "id,title,body"

    def test_items_without_id_skipped(self, source):
        source.responses[("GET", "/items/articles")] = [{"id": 1}, {"title": "no id"}]

        result = CollectionItemExtractor(source, "articles").extract()

        assert [r.id for r in result.records] == [1]
        assert result.warnings == ["Skipping articles item without id"]

    def test_singleton(self, source):
        source.singletons.add("items/settings")
        source.seed("items/settings", {"id": 1, "site_name": "Blog"})

        result = CollectionItemExtractor(source, "settings", singleton=True).extract()

        assert [r.data["site_name"] for r in result.records] == ["Blog"]

    def test_errors_collected(self, source):
        source.fail_when.append(lambda *args: True)

        result = CollectionItemExtractor(source, "articles").extract()

        assert not result.success
        assert result.errors[0]["status"] == 400

    def test_filter_sent_with_every_page(self, source):
        source.seed("items/articles", *[{"id": i} for i in range(1, 4)])
        query = {"status": {"_eq": "published"}}

        CollectionItemExtractor(source, "articles", batch_size=2, filter=query).extract()

        assert [c[2]["filter"] for c in source.calls_to("GET", "/items/articles")] == [query, query]


class TestPlatformExtractor:
    """Test suite for whole-instance reads."""

    def test_metadata(self, source, blog_metadata_payload, extractor):
        source.responses[("GET", "/collections")] = blog_metadata_payload["collections"]
        source.responses[("GET", "/fields")] = blog_metadata_payload["fields"]
        source.responses[("GET", "/relations")] = blog_metadata_payload["relations"]

        metadata = extractor.fetch_metadata()

        assert "articles" in metadata.collection_names()
        assert metadata.get_collection("settings").singleton
        assert len(metadata.relations) == 4

    def test_flows_filtered_by_id(self, source, extractor):
        source.seed("flows", {"id": "f1", "name": "One"}, {"id": "f2", "name": "Two"})
        source.seed("operations", {"id": "a", "flow": "f1"}, {"id": "b", "flow": "f2"})

        flows, operations = extractor.fetch_flows(["f2", "missing"])

        assert [f.id for f in flows] == ["f2"]
        assert [o.id for o in operations] == ["b"]

    def test_all_flows(self, source, extractor):
        source.seed("flows", {"id": "f1"}, {"id": "f2"})

        flows, _ = extractor.fetch_flows(["*"])

        assert len(flows) == 2

    def test_access_control_links_roles(self, source, extractor):
        source.seed("roles", {"id": "r1", "name": "Editor"})
        source.seed("policies", {"id": "p1", "name": "Edit"})
        source.seed("permissions", {"id": 1, "collection": "articles", "action": "read", "policy": "p1"})
        source.seed("access", {"id": 1, "role": "r1", "policy": "p1"})

        data = extractor.fetch_access_control()

        assert data.roles[0].policies == ["p1"]
        assert data.permissions[0].policy == "p1"

    def test_access_endpoint_unavailable(self, source, extractor):
        source.seed("roles", {"id": "r1", "name": "Editor"})
        source.fail_when.append(lambda method, endpoint, body: endpoint == "/access")

        data = extractor.fetch_access_control()

        assert data.access == []
        assert data.roles[0].policies == []

    def test_title_filter(self, source, extractor):
        source.seed("items/articles", {"id": 1})

        extractor.items("articles", title_filter="  Launch ").extract()

        assert source.calls_to("GET")[0][2]["filter"] == {"translations": {"title": {"_contains": "Launch"}}}

    def test_blank_title_filter_ignored(self, source, extractor):
        source.seed("items/articles", {"id": 1})

        extractor.items("articles", title_filter="   ").extract()

        assert source.calls_to("GET")[0][2]["filter"] is None

    def test_title_filter_on_plain_field(self):
        assert title_filter_query("title", "news") == {"title": {"_contains": "news"}}

    def test_folders_and_files(self, source, extractor):
        source.seed("folders", {"id": "f1", "name": "Media", "parent": None})
        source.seed("files", {"id": "img-1", "folder": "f1", "title": "Beach"})

        folders = extractor.fetch_folders()
        files = extractor.fetch_files()

        assert [(f.id, f.name, f.parent) for f in folders] == [("f1", "Media", None)]
        assert (files[0].id, files[0].folder, files[0].label) == ("img-1", "f1", "Beach")
        assert source.calls_to("GET", "/files")[0][2] == {"limit": -1}
