"""Tests for migration ordering, cycle handling and custom order validation."""

import pytest

from content_migrator.models.schema import FieldDescriptor, RelationDescriptor
from content_migrator.orchestrator import plan_migration
from content_migrator.services.migration_order import (
    calculate_migration_order,
    find_cycles,
    group_into_batches,
    precedence_edges,
    validate_custom_order,
)
from content_migrator.services.relation_graph import RelationGraph

BLOG = ["authors", "articles", "articles_tags", "tags"]


@pytest.fixture
def graph(blog_metadata) -> RelationGraph:
    return RelationGraph.from_metadata(blog_metadata)


@pytest.fixture
def cyclic_graph() -> RelationGraph:
    return RelationGraph(relations=[
        RelationDescriptor(collection="a", field="b_id", related_collection="b"),
        RelationDescriptor(collection="b", field="a_id", related_collection="a"),
    ])


class TestPrecedenceEdges:
    """Test suite for edge construction."""

    def test_one_side_before_many_side(self, graph):
        edges = precedence_edges(graph, BLOG)

        assert edges == [
            ("authors", "articles"),
            ("articles", "articles_tags"),
            ("tags", "articles_tags"),
        ]

    def test_edges_restricted_to_selection(self, graph):
        assert precedence_edges(graph, ["articles", "pages"]) == []

    def test_folders_precede_files(self):
        graph = RelationGraph()
        assert precedence_edges(graph, ["directus_files", "directus_folders"]) == [
            ("directus_folders", "directus_files")
        ]

    def test_m2a_allowed_collections_precede_junction(self):
        graph = RelationGraph(relations=[
            RelationDescriptor(collection="pages_blocks", field="item", one_allowed_collections=["hero", "text"]),
        ])

        assert precedence_edges(graph, ["pages_blocks", "hero", "text"]) == [
            ("hero", "pages_blocks"),
            ("text", "pages_blocks"),
        ]

    def test_foreign_key_without_relation(self):
        graph = RelationGraph(fields=[
            FieldDescriptor(collection="orders", field="customer", type="integer", foreign_key_table="customers"),
        ])

        assert precedence_edges(graph, ["orders", "customers"]) == [("customers", "orders")]


class TestCalculateMigrationOrder:
    """Test suite for the topological sort."""

    def test_dependencies_come_first(self, graph):
        plan = calculate_migration_order(graph, BLOG)

        assert plan.order == ["authors", "articles", "tags", "articles_tags"]
        for one, many in plan.edges:
            assert plan.order.index(one) < plan.order.index(many)
        assert plan.violated_edges == []
        assert plan.cycles == []

    def test_ties_follow_discovery_order(self):
        """Independent collections keep their selection order."""
        plan = calculate_migration_order(RelationGraph(), ["pages", "menus", "faq"])
        assert plan.order == ["pages", "menus", "faq"]

    def test_system_dependency_warning(self, graph):
        plan = calculate_migration_order(graph, BLOG)

        assert plan.warnings == [
            "authors has relations to system collections: directus_files. Ensure ID mapping is handled."
        ]

    def test_cycle_is_reported_not_fatal(self, cyclic_graph):
        """A cycle emits the lowest discovery index first and records the broken edge."""
        plan = calculate_migration_order(cyclic_graph, ["a", "b"])

        assert plan.order == ["a", "b"]
        assert plan.violated_edges == [("b", "a")]
        assert plan.cycles == [["a", "b"]]
        assert "Circular dependency detected: a → b → a" in plan.warnings

    def test_cycle_tie_break_uses_discovery_order(self, cyclic_graph):
        plan = calculate_migration_order(cyclic_graph, ["b", "a"])

        assert plan.order == ["b", "a"]
        assert plan.violated_edges == [("a", "b")]

    def test_collections_downstream_of_a_cycle_wait_for_it(self):
        """Only a cycle member is forced; its dependents keep their dependencies."""
        graph = RelationGraph(relations=[
            RelationDescriptor(collection="a", field="b_id", related_collection="b"),
            RelationDescriptor(collection="b", field="a_id", related_collection="a"),
            RelationDescriptor(collection="d", field="b_id", related_collection="b"),
            RelationDescriptor(collection="c", field="d_id", related_collection="d"),
        ])

        plan = calculate_migration_order(graph, ["c", "d", "a", "b"])

        assert plan.order == ["a", "b", "d", "c"]
        assert plan.violated_edges == [("b", "a")]
        assert plan.cycles == [["a", "b"]]

    def test_cycle_waits_for_its_own_dependencies(self):
        graph = RelationGraph(relations=[
            RelationDescriptor(collection="a", field="b_id", related_collection="b"),
            RelationDescriptor(collection="b", field="a_id", related_collection="a"),
            RelationDescriptor(collection="x", field="y_id", related_collection="y"),
            RelationDescriptor(collection="y", field="x_id", related_collection="x"),
            RelationDescriptor(collection="a", field="x_id", related_collection="x"),
        ])

        plan = calculate_migration_order(graph, ["a", "b", "x", "y"])

        assert plan.order == ["x", "y", "a", "b"]
        assert plan.violated_edges == [("y", "x"), ("b", "a")]

    def test_duplicates_in_selection(self, graph):
        plan = calculate_migration_order(graph, BLOG + ["authors"])
        assert len(plan.order) == len(BLOG)


class TestFindCycles:
    """Test suite for strongly connected components."""

    def test_no_cycles(self):
        assert find_cycles(["a", "b", "c"], [("a", "b"), ("b", "c")]) == []

    def test_two_separate_cycles(self):
        nodes = ["a", "b", "c", "d", "e"]
        edges = [("a", "b"), ("b", "a"), ("c", "d"), ("d", "e"), ("e", "c")]

        assert find_cycles(nodes, edges) == [["a", "b"], ["c", "d", "e"]]

    def test_long_chain_does_not_recurse(self):
        nodes = [f"c{i}" for i in range(3000)]
        edges = [(nodes[i], nodes[i + 1]) for i in range(len(nodes) - 1)]

        assert find_cycles(nodes, edges) == []


class TestValidateCustomOrder:
    """Test suite for user-supplied orders."""

    def test_valid_order(self, graph):
        order = ["tags", "authors", "articles", "articles_tags"]
        assert validate_custom_order(graph, BLOG, order) == []

    def test_violated_edge(self, graph):
        order = ["articles", "authors", "tags", "articles_tags"]

        warnings = validate_custom_order(graph, BLOG, order)

        assert warnings == ["articles is positioned before its dependency authors"]

    def test_not_a_permutation(self, graph):
        warnings = validate_custom_order(graph, BLOG, ["authors", "authors", "pages", "articles", "tags"])

        assert "Collections listed more than once: authors" in warnings
        assert "Collections missing from the order: articles_tags" in warnings
        assert "Collections not in the selection: pages" in warnings


class TestBatches:
    """Test suite for grouping a plan into levels."""

    def test_levels(self, graph):
        plan = calculate_migration_order(graph, BLOG)

        assert group_into_batches(plan) == [["authors", "tags"], ["articles"], ["articles_tags"]]

    def test_cycle_members_form_last_batch(self, cyclic_graph):
        plan = calculate_migration_order(cyclic_graph, ["a", "b", "c"])

        assert group_into_batches(plan) == [["c"], ["a", "b"]]


class TestPlanMigration:
    """Test suite for selection planning."""

    def test_expands_closure(self, blog_metadata):
        plan = plan_migration(blog_metadata, ["articles"])
        assert set(plan.order) == set(BLOG)

    def test_without_closure_warns(self, blog_metadata):
        plan = plan_migration(blog_metadata, ["articles"], expand_closure=False)

        assert plan.order == ["articles"]
        assert any("outside the selection" in w for w in plan.warnings)

    def test_empty_selection_means_all_visible(self, blog_metadata):
        plan = plan_migration(blog_metadata, [])

        assert "pages" in plan.order
        assert not any(name.startswith("directus_") for name in plan.order)

    def test_custom_order_applied_when_permutation(self, blog_metadata):
        order = ["tags", "authors", "articles", "articles_tags"]
        plan = plan_migration(blog_metadata, ["articles"], custom_order=order)

        assert plan.order == order

    def test_custom_order_ignored_when_not_permutation(self, blog_metadata):
        plan = plan_migration(blog_metadata, ["articles"], custom_order=["articles"])

        assert plan.order[0] == "authors"
        assert "Custom order does not match the selection; using the computed order" in plan.warnings
