"""
Unit tests for classification trees and the classification registry.
"""

from __future__ import annotations

import logging
from itertools import combinations
from pathlib import Path

import pytest

from metabin.core.constants import NOHITS_ID, UNASSIGNED_ID
from metabin.core.exceptions import MalformedTreeError, UnknownClassificationError
from metabin.core.taxonomy import ClassificationRegistry, ClassificationTree


class TestTreeConstruction:
    """Tests for building trees."""

    def test_root_is_self_parented_node(self, taxonomy: ClassificationTree) -> None:
        """The node that is its own parent is the root."""
        assert taxonomy.root == 1
        assert taxonomy.parent(1) is None
        assert taxonomy.depth(1) == 0

    def test_parent_zero_marks_root(self) -> None:
        """A parent id of 0 marks the root as well."""
        tree = ClassificationTree("GTDB", {10: 0, 11: 10})
        assert tree.root == 10

    def test_two_roots_rejected(self) -> None:
        """More than one root is an error."""
        with pytest.raises(MalformedTreeError, match="exactly one root"):
            ClassificationTree("Taxonomy", {1: 1, 5: 5})

    def test_cycle_rejected(self) -> None:
        """Nodes caught in a cycle are not connected to the root."""
        with pytest.raises(MalformedTreeError, match="not connected"):
            ClassificationTree("Taxonomy", {1: 1, 2: 3, 3: 2})

    def test_from_table(self, taxonomy_file: Path) -> None:
        """Trees load from a TSV with id, parent, rank and name."""
        tree = ClassificationTree.from_table(taxonomy_file)

        assert len(tree) == 13
        assert tree.rank(1423) == "species"
        assert tree.label(1239) == "Firmicutes"
        assert tree.get_lca(1423, 1280) == 1239

    def test_from_table_missing_columns(self, temp_dir: Path) -> None:
        """A table without a parent column is malformed."""
        path = temp_dir / "bad.tsv"
        path.write_text("id\tname\n1\troot\n")
        with pytest.raises(MalformedTreeError, match="parent"):
            ClassificationTree.from_table(path)

    def test_from_ncbi_dump(self, temp_dir: Path) -> None:
        """nodes.dmp and names.dmp are read, keeping scientific names only."""
        nodes = temp_dir / "nodes.dmp"
        nodes.write_text(
            "1\t|\t1\t|\tno rank\t|\n"
            "2\t|\t1\t|\tsuperkingdom\t|\n"
            "1239\t|\t2\t|\tphylum\t|\n"
        )
        names = temp_dir / "names.dmp"
        names.write_text(
            "1\t|\troot\t|\t\t|\tscientific name\t|\n"
            "2\t|\tBacteria\t|\tBacteria <bacteria>\t|\tscientific name\t|\n"
            "2\t|\teubacteria\t|\t\t|\tgenbank common name\t|\n"
            "1239\t|\tFirmicutes\t|\t\t|\tscientific name\t|\n"
        )

        tree = ClassificationTree.from_file(nodes, names)

        assert tree.root == 1
        assert tree.rank(1239) == "phylum"
        assert tree.parent(1239) == 2
        assert tree.label(2) == "Bacteria"
        assert tree.id_of("Firmicutes") == 1239

    def test_from_ncbi_dump_picks_fields_by_position(self, temp_dir: Path) -> None:
        """Full-width taxdump rows load; only the leading fields are used."""
        nodes = temp_dir / "nodes.dmp"
        nodes.write_text(
            "1\t|\t1\t|\tno rank\t|\t\t|\t8\t|\t0\t|\t1\t|\t0\t|\n"
            "2\t|\t1\t|\tsuperkingdom\t|\t\t|\t0\t|\t0\t|\t11\t|\t0\t|\n"
        )

        tree = ClassificationTree.from_ncbi_dump(nodes)

        assert tree.nodes == frozenset({1, 2})
        assert tree.rank(2) == "superkingdom"
        assert tree.label(2) == "2"

    def test_from_ncbi_dump_too_few_fields(self, temp_dir: Path) -> None:
        """A file that is not tab-pipe-tab separated is malformed."""
        nodes = temp_dir / "nodes.dmp"
        nodes.write_text("1\t1\n2\t1\n")
        with pytest.raises(MalformedTreeError, match="fields"):
            ClassificationTree.from_ncbi_dump(nodes)


class TestTreeStructure:
    """Tests for structural queries."""

    def test_path_to_root(self, taxonomy: ClassificationTree) -> None:
        """Path lists the node and all its ancestors."""
        assert taxonomy.path_to_root(1423) == [1423, 1386, 1239, 2, 1]

    def test_descendants(self, taxonomy: ClassificationTree) -> None:
        """Descendants include the node itself."""
        assert set(taxonomy.descendants(1239)) == {1239, 1386, 1423, 1279, 1280}

    def test_post_order_children_first(self, taxonomy: ClassificationTree) -> None:
        """Every node comes after all of its children."""
        order = taxonomy.post_order()
        position = {node: i for i, node in enumerate(order)}
        assert len(order) == len(taxonomy)
        for node in taxonomy.nodes:
            parent = taxonomy.parent(node)
            if parent is not None:
                assert position[node] < position[parent]

    def test_post_order_restricted(self, taxonomy: ClassificationTree) -> None:
        """Restricting keeps only the given nodes and their ancestors."""
        order = taxonomy.post_order([1423, 562])
        assert set(order) == {1423, 1386, 1239, 562, 561, 1224, 2, 1}
        assert order[-1] == 1

    def test_label_falls_back_to_id(self) -> None:
        """Nodes without a name are labelled by their id."""
        tree = ClassificationTree("KEGG", {1: 1, 100: 1})
        assert tree.label(100) == "100"

    def test_disable_never_disables_root(self, taxonomy: ClassificationTree) -> None:
        """The root and unknown ids cannot be disabled."""
        taxonomy.disable([1, 1386, 999])
        assert taxonomy.disabled_ids == frozenset({1386})


class TestTreeAncestry:
    """Tests for ancestor and LCA queries."""

    def test_is_ancestor(self, taxonomy: ClassificationTree) -> None:
        """Ancestry includes the node itself."""
        assert taxonomy.is_ancestor(2, 1423)
        assert taxonomy.is_ancestor(1423, 1423)
        assert not taxonomy.is_ancestor(1423, 2)
        assert not taxonomy.is_ancestor(1224, 1423)

    def test_lca_of_siblings(self, taxonomy: ClassificationTree) -> None:
        """Sibling genera meet at their phylum."""
        assert taxonomy.get_lca(1386, 1279) == 1239

    def test_lca_of_ancestor_pair(self, taxonomy: ClassificationTree) -> None:
        """The LCA of an ancestor and a descendant is the ancestor."""
        assert taxonomy.get_lca(2, 1239) == 2
        assert taxonomy.get_lca(1239, 2) == 2

    def test_lca_is_ancestor_of_both(self, taxonomy: ClassificationTree) -> None:
        """get_lca(a, b) is an ancestor-or-self of a and b for every pair."""
        for a, b in combinations(sorted(taxonomy.nodes), 2):
            lca = taxonomy.get_lca(a, b)
            assert taxonomy.is_ancestor(lca, a)
            assert taxonomy.is_ancestor(lca, b)
        for node in taxonomy.nodes:
            assert taxonomy.get_lca(node, node) == node

    def test_lca_with_unknown_ids(self, taxonomy: ClassificationTree) -> None:
        """Unknown ids are ignored."""
        assert taxonomy.get_lca(999, 1423) == 1423
        assert taxonomy.get_lca(1423, 999) == 1423
        assert taxonomy.get_lca(998, 999) == 0

    def test_unknown_ids_are_logged_once(
        self, taxonomy: ClassificationTree, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Each unknown positive id is reported once; sentinels stay quiet."""
        with caplog.at_level(logging.WARNING, logger="metabin.core.taxonomy"):
            taxonomy.get_lca(1423, 999)
            taxonomy.get_lca(999, 1280)
            taxonomy.get_lca_of([1423, 998, -1])
            taxonomy.get_lca(1423, 0)

        messages = [record.getMessage() for record in caplog.records]
        assert len(messages) == 2
        assert "999" in messages[0]
        assert "998" in messages[1]

    def test_lca_of_many(self, taxonomy: ClassificationTree) -> None:
        """LCA of several nodes."""
        assert taxonomy.get_lca_of([1423, 1280, 562]) == 2
        assert taxonomy.get_lca_of([1423, 9606]) == 1
        assert taxonomy.get_lca_of([]) == 0

    def test_covering_node(self, taxonomy: ClassificationTree) -> None:
        """Deepest node holding the required share of the weight."""
        weights = {1423: 9.0, 562: 1.0}
        assert taxonomy.covering_node(weights, 80) == 1423
        assert taxonomy.covering_node(weights, 100) == 2

    def test_covering_node_prefers_heavier_branch(self, taxonomy: ClassificationTree) -> None:
        """At equal depth the heavier node wins."""
        weights = {1423: 6.0, 1280: 4.0}
        assert taxonomy.covering_node(weights, 40) == 1423

    def test_covering_node_without_weight(self, taxonomy: ClassificationTree) -> None:
        """No weight in the tree gives 0."""
        assert taxonomy.covering_node({}, 100) == 0
        assert taxonomy.covering_node({999: 5.0}, 100) == 0


class TestClassificationRegistry:
    """Tests for ClassificationRegistry."""

    def test_known_ids_include_sentinels(self, registry: ClassificationRegistry) -> None:
        """Sentinel ids are known in every classification."""
        assert NOHITS_ID in registry.known_ids("Taxonomy")
        assert UNASSIGNED_ID in registry.known_ids("KEGG")
        assert 1423 in registry.known_ids("Taxonomy")
        assert 100 in registry.known_ids("KEGG")
        assert 0 not in registry.known_ids("KEGG")

    def test_classification_without_tree(self, registry: ClassificationRegistry) -> None:
        """Tree-less classifications have ids but no tree."""
        assert "KEGG" in registry
        assert not registry.has_tree("KEGG")
        assert registry.disabled_ids("KEGG") == frozenset()
        with pytest.raises(UnknownClassificationError):
            registry.get_tree("KEGG")

    def test_unknown_classification(self, registry: ClassificationRegistry) -> None:
        """Unknown names raise with the available classifications listed."""
        with pytest.raises(UnknownClassificationError, match="SEED") as exc_info:
            registry.known_ids("SEED")
        assert "KEGG" in exc_info.value.suggestion

    def test_is_ancestor_delegates_to_tree(self, registry: ClassificationRegistry) -> None:
        """Ancestry queries go to the registered tree."""
        assert registry.is_ancestor("Taxonomy", 1239, 1280)
        assert registry.classifications == ["KEGG", "Taxonomy"]

    def test_fresh_registries_are_independent(self, taxonomy: ClassificationTree) -> None:
        """Registries do not share state."""
        first = ClassificationRegistry()
        first.register_tree(taxonomy)
        second = ClassificationRegistry()
        assert "Taxonomy" in first
        assert "Taxonomy" not in second
