"""
Classification trees and the service that hands them to the pipeline.

A ClassificationTree is a rooted tree of integer class ids (NCBI taxonomy,
GTDB, or a functional hierarchy) with optional ranks and names. It answers
the ancestry questions the LCA algorithms and the min-support filter need.

Trees are injected through a ClassificationTreeService instead of being
looked up from process-wide state, so several runs (or tests) can use
different trees side by side.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Protocol

import polars as pl

from metabin.core.constants import SENTINEL_IDS
from metabin.core.exceptions import MalformedTreeError, UnknownClassificationError

logger = logging.getLogger(__name__)


class ClassificationTree:
    """
    Rooted tree over integer class ids.

    Args:
        name: Classification name (e.g. "Taxonomy")
        parents: Mapping of node id to parent id. The root is the node that
            is its own parent or whose parent is 0 / not a node.
        ranks: Optional mapping of node id to rank name
        names: Optional mapping of node id to display name

    Raises:
        MalformedTreeError: If there is not exactly one root or the parent
            relation contains a cycle

    Example:
        >>> tree = ClassificationTree("Taxonomy", {1: 1, 2: 1, 1239: 2, 1385: 1239})
        >>> tree.get_lca(1385, 2)
        2
    """

    def __init__(
        self,
        name: str,
        parents: Mapping[int, int],
        ranks: Mapping[int, str] | None = None,
        names: Mapping[int, str] | None = None,
        source: str = "<memory>",
    ) -> None:
        self.name = name
        self._parent: dict[int, int] = {}
        self._children: dict[int, list[int]] = defaultdict(list)
        self._rank: dict[int, str] = dict(ranks or {})
        self._names: dict[int, str] = dict(names or {})
        self._disabled: set[int] = set()
        self._unknown_seen: set[int] = set()
        self._depth: dict[int, int] = {}

        roots = [
            node for node, parent in parents.items()
            if node == parent or parent == 0 or parent not in parents
        ]
        if len(roots) != 1:
            raise MalformedTreeError(source, f"expected exactly one root, found {len(roots)}")
        self.root = roots[0]

        for node, parent in parents.items():
            if node == self.root:
                continue
            self._parent[node] = parent
            self._children[parent].append(node)
        self._nodes = frozenset(parents)
        self._compute_depths(source)
        self._name_to_id = {label: node for node, label in self._names.items()}

    def _compute_depths(self, source: str) -> None:
        self._depth[self.root] = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            for child in self._children.get(node, ()):
                self._depth[child] = self._depth[node] + 1
                stack.append(child)
        if len(self._depth) != len(self._nodes):
            raise MalformedTreeError(
                source,
                f"{len(self._nodes) - len(self._depth)} node(s) are not connected to the root",
            )

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def from_table(cls, path: Path, name: str = "Taxonomy") -> ClassificationTree:
        """
        Load a tree from a tab-separated table with columns id, parent, rank, name.

        The rank and name columns are optional.
        """
        df = pl.read_csv(path, separator="\t", comment_prefix="#", infer_schema_length=0)
        missing = {"id", "parent"} - set(df.columns)
        if missing:
            raise MalformedTreeError(str(path), f"missing column(s) {', '.join(sorted(missing))}")

        df = df.with_columns(
            pl.col("id").str.strip_chars().cast(pl.Int64),
            pl.col("parent").str.strip_chars().cast(pl.Int64),
        )
        parents = dict(zip(df["id"].to_list(), df["parent"].to_list()))
        ranks = dict(zip(df["id"].to_list(), df["rank"].to_list())) if "rank" in df.columns else None
        names = dict(zip(df["id"].to_list(), df["name"].to_list())) if "name" in df.columns else None
        logger.debug("Loaded %d nodes for %s from %s", len(parents), name, path)
        return cls(name, parents, ranks=ranks, names=names, source=str(path))

    @classmethod
    def from_ncbi_dump(
        cls,
        nodes_path: Path,
        names_path: Path | None = None,
        name: str = "Taxonomy",
    ) -> ClassificationTree:
        """
        Load a tree from NCBI taxdump files (nodes.dmp and optionally names.dmp).

        Only scientific names are taken from names.dmp.
        """
        nodes = _read_dmp(nodes_path, ["id", "parent", "rank"]).with_columns(
            pl.col("id").cast(pl.Int64),
            pl.col("parent").cast(pl.Int64),
        )
        parents = dict(zip(nodes["id"].to_list(), nodes["parent"].to_list()))
        ranks = dict(zip(nodes["id"].to_list(), nodes["rank"].to_list()))

        names: dict[int, str] | None = None
        if names_path is not None:
            scientific = (
                _read_dmp(names_path, ["id", "name", "unique_name", "name_class"])
                .filter(pl.col("name_class") == "scientific name")
                .select(pl.col("id").cast(pl.Int64), pl.col("name"))
            )
            names = dict(zip(scientific["id"].to_list(), scientific["name"].to_list()))

        logger.debug("Loaded %d nodes for %s from %s", len(parents), name, nodes_path)
        return cls(name, parents, ranks=ranks, names=names, source=str(nodes_path))

    @classmethod
    def from_file(
        cls,
        path: Path,
        names_path: Path | None = None,
        name: str = "Taxonomy",
    ) -> ClassificationTree:
        """Load a tree, choosing the format from the file extension."""
        if path.suffix == ".dmp":
            return cls.from_ncbi_dump(path, names_path, name=name)
        return cls.from_table(path, name=name)

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------

    def __contains__(self, node: int) -> bool:
        return node in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes(self) -> frozenset[int]:
        return self._nodes

    def parent(self, node: int) -> int | None:
        """Parent of a node, None for the root."""
        return self._parent.get(node)

    def children(self, node: int) -> list[int]:
        return list(self._children.get(node, ()))

    def depth(self, node: int) -> int:
        return self._depth[node]

    def rank(self, node: int) -> str | None:
        return self._rank.get(node)

    def label(self, node: int) -> str:
        """Display name of a node, falling back to its id."""
        return self._names.get(node, str(node))

    def id_of(self, label: str) -> int | None:
        """Node id for a display name, None if unknown."""
        return self._name_to_id.get(label)

    def path_to_root(self, node: int) -> list[int]:
        """The node followed by all of its ancestors up to the root."""
        path = [node]
        while node != self.root:
            node = self._parent[node]
            path.append(node)
        return path

    def descendants(self, node: int) -> Iterator[int]:
        """The node and every node below it."""
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(self._children.get(current, ()))

    def post_order(self, nodes: Iterable[int] | None = None) -> list[int]:
        """
        Nodes in post-order (children before parents).

        Args:
            nodes: If given, restrict to these nodes and their ancestors
        """
        if nodes is None:
            keep: set[int] | None = None
        else:
            keep = set()
            for node in nodes:
                if node in self._nodes:
                    keep.update(self.path_to_root(node))

        order: list[int] = []
        stack: list[tuple[int, bool]] = [(self.root, False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                order.append(node)
                continue
            stack.append((node, True))
            for child in self._children.get(node, ()):
                if keep is None or child in keep:
                    stack.append((child, False))
        return order

    # -------------------------------------------------------------------------
    # Ancestry
    # -------------------------------------------------------------------------

    def is_ancestor(self, ancestor: int, node: int) -> bool:
        """True if ``ancestor`` lies on the path from ``node`` to the root (or equals it)."""
        if ancestor not in self._nodes or node not in self._nodes:
            return False
        depth = self._depth[ancestor]
        while self._depth[node] > depth:
            node = self._parent[node]
        return node == ancestor

    def get_lca(self, a: int, b: int) -> int:
        """
        Deepest common ancestor of two nodes.

        Ids that are not part of the tree are ignored: the LCA of a node and
        an unknown id is the node itself; two unknown ids give 0. Unknown
        positive ids are logged once per tree.
        """
        if a not in self._nodes:
            self._warn_unknown(a)
            if b in self._nodes:
                return b
            self._warn_unknown(b)
            return 0
        if b not in self._nodes:
            self._warn_unknown(b)
            return a
        while self._depth[a] > self._depth[b]:
            a = self._parent[a]
        while self._depth[b] > self._depth[a]:
            b = self._parent[b]
        while a != b:
            a = self._parent[a]
            b = self._parent[b]
        return a

    def get_lca_of(self, nodes: Iterable[int]) -> int:
        """LCA of any number of nodes (0 if none is part of the tree)."""
        result = 0
        for node in nodes:
            if node not in self._nodes:
                self._warn_unknown(node)
                continue
            result = node if result == 0 else self.get_lca(result, node)
            if result == self.root:
                break
        return result

    def _warn_unknown(self, node: int) -> None:
        # 0 and the sentinels are expected here; only real ids are reported
        if node <= 0 or node in self._unknown_seen:
            return
        self._unknown_seen.add(node)
        logger.warning("Id %d is not part of the %s tree; ignored in LCA", node, self.name)

    def covering_node(self, weights: Mapping[int, float], percent: float) -> int:
        """
        Deepest node whose subtree holds at least ``percent`` of the total weight.

        With percent=100 this is the LCA of all weighted nodes. Ties in depth
        are broken by larger weight, then by smaller id.

        Args:
            weights: Weight per node; ids not in the tree are ignored
            percent: Required share of the total weight (0-100]

        Returns:
            Covering node id, or 0 if no weight lies in the tree
        """
        subtree: dict[int, float] = defaultdict(float)
        total = 0.0
        for node, weight in weights.items():
            if node not in self._nodes or weight <= 0:
                continue
            total += weight
            for ancestor in self.path_to_root(node):
                subtree[ancestor] += weight
        if total == 0:
            return 0

        threshold = total * percent / 100.0 - 1e-9
        best = self.root
        best_key = (self._depth[self.root], subtree[self.root], -self.root)
        for node, weight in subtree.items():
            if weight >= threshold:
                key = (self._depth[node], weight, -node)
                if key > best_key:
                    best, best_key = node, key
        return best

    # -------------------------------------------------------------------------
    # Disabled nodes
    # -------------------------------------------------------------------------

    def disable(self, nodes: Iterable[int]) -> None:
        """Mark nodes as disabled; reads are never kept on disabled nodes."""
        self._disabled.update(node for node in nodes if node in self._nodes and node != self.root)

    @property
    def disabled_ids(self) -> frozenset[int]:
        return frozenset(self._disabled)


def _read_dmp(path: Path, fields: list[str]) -> pl.DataFrame:
    """
    Read the leading fields of an NCBI .dmp file as raw strings.

    Fields are separated by tab-pipe-tab, so splitting on tabs puts field k
    in column 2k with the pipes in between. Columns are picked by position.
    """
    raw = pl.read_csv(
        path,
        separator="\t",
        has_header=False,
        quote_char=None,
        infer_schema_length=0,
        truncate_ragged_lines=True,
    )
    if raw.width < 2 * len(fields) - 1:
        raise MalformedTreeError(str(path), f"expected at least {len(fields)} '|'-separated fields")
    return pl.DataFrame([raw.to_series(2 * k).alias(field) for k, field in enumerate(fields)])


class ClassificationTreeService(Protocol):
    """Access to the trees and id sets of the classifications of a run."""

    def get_tree(self, classification: str) -> ClassificationTree: ...

    def is_ancestor(self, classification: str, ancestor: int, node: int) -> bool: ...

    def known_ids(self, classification: str) -> frozenset[int]: ...

    def disabled_ids(self, classification: str) -> frozenset[int]: ...


class ClassificationRegistry:
    """
    In-memory ClassificationTreeService.

    Classifications binned with an LCA algorithm need a tree; functional
    classifications binned by best hit only need their set of known ids,
    which can be registered without a tree.
    """

    def __init__(self) -> None:
        self._trees: dict[str, ClassificationTree] = {}
        self._ids: dict[str, frozenset[int]] = {}

    def register_tree(self, tree: ClassificationTree) -> None:
        self._trees[tree.name] = tree
        self._ids[tree.name] = tree.nodes | SENTINEL_IDS

    def register_ids(self, classification: str, ids: Iterable[int]) -> None:
        """Register the known ids of a classification that has no tree."""
        self._ids[classification] = frozenset(i for i in ids if i > 0) | SENTINEL_IDS

    @property
    def classifications(self) -> list[str]:
        return sorted(self._ids)

    def __contains__(self, classification: str) -> bool:
        return classification in self._ids

    def has_tree(self, classification: str) -> bool:
        return classification in self._trees

    def get_tree(self, classification: str) -> ClassificationTree:
        try:
            return self._trees[classification]
        except KeyError:
            raise UnknownClassificationError(classification, self._trees) from None

    def is_ancestor(self, classification: str, ancestor: int, node: int) -> bool:
        return self.get_tree(classification).is_ancestor(ancestor, node)

    def known_ids(self, classification: str) -> frozenset[int]:
        """All ids of the classification, including the sentinel ids."""
        try:
            return self._ids[classification]
        except KeyError:
            raise UnknownClassificationError(classification, self._ids) from None

    def disabled_ids(self, classification: str) -> frozenset[int]:
        tree = self._trees.get(classification)
        return tree.disabled_ids if tree is not None else frozenset()
