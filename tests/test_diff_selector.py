"""Tests for filtering schema diffs to a selection."""

from content_migrator.models.schema import SchemaDiff
from content_migrator.services.diff_selector import DiffSelector, filter_schema_diff


def make_diff(collections=(), fields=(), relations=(), hash="abc123") -> SchemaDiff:
    return SchemaDiff.from_dict({
        "hash": hash,
        "diff": {
            "collections": list(collections),
            "fields": list(fields),
            "relations": list(relations),
        },
    })


class TestFilterSchemaDiff:
    """Test suite for diff filtering."""

    def test_selected_collection_kept(self):
        diff = make_diff(collections=[{"collection": "A", "diff": [{"kind": "N"}]}])

        filtered = filter_schema_diff(diff, {"A"})

        assert not filtered.is_empty
        assert [e.collection for e in filtered.collections] == ["A"]
        assert filtered.hash == "abc123"

    def test_empty_selection_yields_empty_lists(self):
        diff = make_diff(collections=[{"collection": "A", "diff": [{"kind": "N"}]}])

        filtered = filter_schema_diff(diff, set())

        assert filtered.is_empty
        assert filtered.collections == [] and filtered.fields == [] and filtered.relations == []
        assert filtered.hash == "abc123"

    def test_changes_on_unselected_collections_only(self):
        diff = make_diff(
            collections=[{"collection": "B", "diff": [{"kind": "E", "lhs": 1, "rhs": 2}]}],
            fields=[{"collection": "B", "field": "title", "diff": [{"kind": "N", "rhs": {}}]}],
        )

        assert filter_schema_diff(diff, {"A"}).is_empty

    def test_fields_follow_their_collection(self):
        diff = make_diff(fields=[
            {"collection": "A", "field": "title", "diff": [{"kind": "N"}]},
            {"collection": "B", "field": "title", "diff": [{"kind": "N"}]},
        ])

        filtered = filter_schema_diff(diff, {"A"})

        assert [(e.collection, e.field) for e in filtered.fields] == [("A", "title")]

    def test_relation_matched_on_either_side(self):
        """A relation is kept when its related collection is selected."""
        diff = make_diff(relations=[
            {"collection": "B", "field": "a_id", "related_collection": "A", "diff": [{"kind": "N"}]},
        ])

        assert len(filter_schema_diff(diff, {"A"}).relations) == 1
        assert len(filter_schema_diff(diff, {"B"}).relations) == 1
        assert filter_schema_diff(diff, {"C"}).is_empty

    def test_relation_matched_through_change_payload(self):
        diff = make_diff(relations=[{
            "collection": "B",
            "field": "a_id",
            "diff": [{"kind": "D", "lhs": {"meta": {"one_collection": "A", "many_collection": "B"}}}],
        }])

        assert len(filter_schema_diff(diff, {"A"}).relations) == 1

    def test_entries_without_effective_changes_dropped(self):
        diff = make_diff(collections=[
            {"collection": "A", "diff": []},
            {"collection": "A", "diff": [{"kind": "X"}]},
        ])

        assert filter_schema_diff(diff, {"A"}).is_empty

    def test_system_collections_need_opt_in(self):
        diff = make_diff(collections=[{"collection": "directus_users", "diff": [{"kind": "E"}]}])

        assert filter_schema_diff(diff, {"directus_users"}).is_empty
        assert not filter_schema_diff(diff, {"directus_users"}, include_system=True).is_empty

    def test_raw_entries_forwarded_unchanged(self):
        entry = {"collection": "A", "field": "title", "diff": [{"kind": "E", "path": ["meta", "note"], "lhs": "x", "rhs": "y"}]}
        diff = make_diff(fields=[entry])

        payload = filter_schema_diff(diff, {"A"}).to_dict()

        assert payload == {
            "hash": "abc123",
            "diff": {"collections": [], "fields": [entry], "relations": []},
        }


class TestDiffSelector:
    """Test suite for the selector predicates."""

    def test_accepts(self):
        selector = DiffSelector(["articles", "directus_files"])

        assert selector.accepts("articles")
        assert not selector.accepts("pages")
        assert not selector.accepts("directus_files")
