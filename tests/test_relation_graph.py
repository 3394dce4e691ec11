"""Tests for relation graph lookups and selection closure."""

import pytest

from content_migrator.models.schema import FieldDescriptor, RelationDescriptor
from content_migrator.services.relation_graph import RelationGraph


@pytest.fixture
def graph(blog_metadata) -> RelationGraph:
    return RelationGraph.from_metadata(blog_metadata)


class TestRelatedCollections:
    """Test suite for single-hop lookups."""

    def test_always_contains_itself(self, graph):
        """Every collection is part of its own single hop, related or not."""
        for name in ("articles", "authors", "pages", "unknown"):
            assert name in graph.related_collections(name)

    def test_m2o_is_symmetric(self, graph):
        """Both sides of a many-to-one see each other."""
        assert "authors" in graph.related_collections("articles")
        assert "articles" in graph.related_collections("authors")

    def test_m2m_pulls_junction_and_partner(self, graph):
        """A many-to-many side brings the junction and the far side."""
        related = graph.related_collections("articles")
        assert {"articles_tags", "tags"} <= related

        related = graph.related_collections("tags")
        assert {"articles_tags", "articles"} <= related

    def test_unrelated_collection(self, graph):
        assert graph.related_collections("pages") == {"pages"}

    def test_system_collections_hidden_by_default(self, graph):
        """File interface targets are dropped unless system collections are included."""
        assert "directus_files" not in graph.related_collections("authors")
        assert "directus_files" in graph.related_collections("authors", include_system=True)

    def test_name_heuristic_on_uuid_fields(self):
        """A uuid field named like an owner reference points at the users collection."""
        graph = RelationGraph(fields=[
            FieldDescriptor(collection="notes", field="owner", type="uuid"),
            FieldDescriptor(collection="notes", field="id", type="uuid", is_primary_key=True),
        ])

        related = graph.related_collections("notes", include_system=True)

        assert related == {"notes", "directus_users"}

    def test_m2a_allowed_collections(self):
        """Every allowed collection of a many-to-any relation is coupled to the junction."""
        relation = RelationDescriptor(
            collection="pages_blocks",
            field="item",
            one_allowed_collections=["block_hero", "block_text"],
        )
        graph = RelationGraph(relations=[relation])

        assert graph.related_collections("block_hero") >= {"pages_blocks", "block_hero", "block_text"}
        assert graph.related_collections("pages_blocks") >= {"block_hero", "block_text"}


class TestClosure:
    """Test suite for fixpoint expansion."""

    def test_closure_reaches_connected_component(self, graph):
        """Expansion converges to the connected component, selection first."""
        result = graph.closure(["authors"])

        assert result[0] == "authors"
        assert set(result) == {"authors", "articles", "articles_tags", "tags"}

    def test_closure_of_unrelated(self, graph):
        assert graph.closure(["pages"]) == ["pages"]

    def test_closure_is_idempotent(self, graph):
        first = graph.closure(["tags"])
        assert set(graph.closure(first)) == set(first)

    def test_closure_with_system(self, graph):
        result = graph.closure(["authors"], include_system=True)
        assert "directus_files" in result

    def test_closure_terminates_on_cyclic_relations(self):
        """Mutually referencing collections do not keep the loop running."""
        relations = [
            RelationDescriptor(collection="a", field="b_id", related_collection="b"),
            RelationDescriptor(collection="b", field="c_id", related_collection="c"),
            RelationDescriptor(collection="c", field="a_id", related_collection="a"),
        ]
        graph = RelationGraph(relations=relations)

        assert set(graph.closure(["a"])) == {"a", "b", "c"}

    def test_duplicate_selection_is_collapsed(self, graph):
        assert graph.closure(["pages", "pages"]) == ["pages"]

    def test_generator_selection(self, graph):
        result = graph.closure(name for name in ["authors"])

        assert result[0] == "authors"
        assert len(result) == 4


class TestMissingDependencies:
    """Test suite for warnings when closure is not applied."""

    def test_reports_unselected_partners(self, graph):
        warnings = graph.missing_dependencies(["articles"])

        assert len(warnings) == 1
        assert warnings[0].startswith("articles references collections outside the selection")
        assert "authors" in warnings[0]

    def test_generator_selection(self, graph):
        warnings = graph.missing_dependencies(name for name in ["articles"])

        assert len(warnings) == 1
        assert "authors" in warnings[0]

    def test_closed_selection_has_no_warnings(self, graph):
        assert graph.missing_dependencies(graph.closure(["articles"])) == []
