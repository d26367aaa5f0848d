"""
Shared pytest fixtures for metabin tests.

Provides a small classification tree, read and match factories,
temporary input files and a CLI runner for unit and end-to-end tests.
"""

from __future__ import annotations

import tempfile
from collections.abc import Callable, Iterator
from itertools import count
from pathlib import Path
from typing import Any

import polars as pl
import pytest
from typer.testing import CliRunner

from metabin.core.taxonomy import ClassificationRegistry, ClassificationTree
from metabin.models.alignments import Match, Read

# =============================================================================
# Classification Tree Fixtures
# =============================================================================

# id: (parent, rank, name)
TAXONOMY_NODES: dict[int, tuple[int, str, str]] = {
    1: (1, "no rank", "root"),
    2: (1, "superkingdom", "Bacteria"),
    1239: (2, "phylum", "Firmicutes"),
    1386: (1239, "genus", "Bacillus"),
    1423: (1386, "species", "Bacillus subtilis"),
    1279: (1239, "genus", "Staphylococcus"),
    1280: (1279, "species", "Staphylococcus aureus"),
    1224: (2, "phylum", "Proteobacteria"),
    561: (1224, "genus", "Escherichia"),
    562: (561, "species", "Escherichia coli"),
    2759: (1, "superkingdom", "Eukaryota"),
    9605: (2759, "genus", "Homo"),
    9606: (9605, "species", "Homo sapiens"),
}

KEGG_IDS = {100, 200, 300, 400}


@pytest.fixture
def taxonomy() -> ClassificationTree:
    """Small taxonomy: Bacteria (Firmicutes, Proteobacteria) and Eukaryota."""
    return ClassificationTree(
        "Taxonomy",
        {node: parent for node, (parent, _, _) in TAXONOMY_NODES.items()},
        ranks={node: rank for node, (_, rank, _) in TAXONOMY_NODES.items()},
        names={node: name for node, (_, _, name) in TAXONOMY_NODES.items()},
    )


@pytest.fixture
def registry(taxonomy: ClassificationTree) -> ClassificationRegistry:
    """Registry with the taxonomy tree and a tree-less KEGG classification."""
    registry = ClassificationRegistry()
    registry.register_tree(taxonomy)
    registry.register_ids("KEGG", KEGG_IDS)
    return registry


# =============================================================================
# Read and Match Factories
# =============================================================================


@pytest.fixture
def make_match() -> Callable[..., Match]:
    """Factory for matches with sequential uids.

    Usage: make_match(taxonomy=1423, bit_score=100, kegg=200, query_start=1, query_end=100)
    """
    uids = count(1)

    def _make(
        taxonomy: int | None = None,
        bit_score: float = 100.0,
        kegg: int | None = None,
        query_start: int = 1,
        query_end: int = 100,
        uid: int | None = None,
        **kwargs: Any,
    ) -> Match:
        class_ids = {}
        if taxonomy is not None:
            class_ids["Taxonomy"] = taxonomy
        if kegg is not None:
            class_ids["KEGG"] = kegg
        kwargs.setdefault("expected", 1e-20)
        return Match(
            uid=uid if uid is not None else next(uids),
            bit_score=bit_score,
            query_start=query_start,
            query_end=query_end,
            class_ids=class_ids,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_read() -> Callable[..., Read]:
    """Factory for reads; uids are sequential unless given."""
    uids = count(1)

    def _make(matches: list[Match] | None = None, uid: int | None = None, **kwargs: Any) -> Read:
        read_uid = uid if uid is not None else next(uids)
        kwargs.setdefault("name", f"read_{read_uid:03d}")
        return Read(uid=read_uid, matches=matches or [], **kwargs)

    return _make


# =============================================================================
# Temporary File Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Temporary directory that is cleaned up after tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def taxonomy_file(temp_dir: Path) -> Path:
    """Taxonomy tree as TSV with columns id, parent, rank, name."""
    path = temp_dir / "taxonomy.tsv"
    pl.DataFrame(
        {
            "id": list(TAXONOMY_NODES),
            "parent": [parent for parent, _, _ in TAXONOMY_NODES.values()],
            "rank": [rank for _, rank, _ in TAXONOMY_NODES.values()],
            "name": [name for _, _, name in TAXONOMY_NODES.values()],
        }
    ).write_csv(path, separator="\t")
    return path


ALIGNMENT_HEADER = "read_id\tbitscore\tevalue\tpident\tqstart\tqend\tread_length\tTaxonomy\tKEGG\n"


@pytest.fixture
def alignment_file(temp_dir: Path) -> Path:
    """Alignment table with five reads.

    read_001: two Bacillus subtilis hits -> 1423
    read_002: B. subtilis and S. aureus hits -> Firmicutes (1239)
    read_003: E. coli hit with a KEGG id -> 562 / KEGG 200
    read_004: no alignments
    read_005: only a hit below the default min score
    """
    path = temp_dir / "sample.alignments.tsv"
    path.write_text(
        ALIGNMENT_HEADER
        + "read_001\t250.0\t1e-60\t99.0\t1\t150\t150\t1423\t100\n"
        + "read_001\t240.0\t1e-55\t98.0\t1\t148\t150\t1423\t\n"
        + "read_002\t200.0\t1e-50\t97.0\t1\t150\t150\t1423\t\n"
        + "read_002\t195.0\t1e-48\t96.0\t1\t150\t150\t1280\t\n"
        + "read_003\t180.0\t1e-45\t99.5\t1\t140\t150\t562\t200\n"
        + "read_004\t\t\t\t\t\t150\t\t\n"
        + "read_005\t30.0\t1e-3\t90.0\t1\t60\t150\t9606\t\n"
    )
    return path


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a CLI runner."""
    return CliRunner()
