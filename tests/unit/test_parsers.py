"""
Unit tests for read sources.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from metabin.core.exceptions import EmptyAlignmentFileError, MalformedAlignmentFileError
from metabin.core.parsers import AlignmentTableSource, InMemoryReadSource

ALIGNMENT_HEADER = "read_id\tbitscore\tevalue\tpident\tqstart\tqend\tread_length\tTaxonomy\tKEGG\n"


class TestAlignmentTableSource:
    """Tests for AlignmentTableSource."""

    def test_infers_classifications(self, alignment_file: Path) -> None:
        """Integer columns outside the alignment schema are classifications."""
        source = AlignmentTableSource(alignment_file)
        assert source.classifications == ["Taxonomy", "KEGG"]
        assert not source.has_mates

    def test_groups_rows_into_reads(self, alignment_file: Path) -> None:
        """Adjacent rows of one read form a single Read with uids in file order."""
        reads = list(AlignmentTableSource(alignment_file).iter_reads())

        assert [r.name for r in reads] == [f"read_00{i}" for i in range(1, 6)]
        assert [r.uid for r in reads] == [1, 2, 3, 4, 5]
        assert [r.num_matches for r in reads] == [2, 2, 1, 0, 1]
        assert reads[0].length == 150

    def test_match_fields(self, alignment_file: Path) -> None:
        """Matches carry scores, coordinates and class ids; empty ids are dropped."""
        reads = list(AlignmentTableSource(alignment_file).iter_reads())
        first, second = reads[0].matches

        assert first.uid == 1
        assert first.bit_score == 250.0
        assert first.class_ids == {"Taxonomy": 1423, "KEGG": 100}
        assert second.class_ids == {"Taxonomy": 1423}
        assert second.query_end == 148
        assert reads[2].matches[0].class_id("KEGG") == 200

    def test_score_filter(self, alignment_file: Path) -> None:
        """Matches below min_score are dropped but the read is still reported."""
        reads = list(AlignmentTableSource(alignment_file).iter_reads(min_score=50))
        assert len(reads) == 5
        assert reads[4].num_matches == 0

    def test_without_matches(self, alignment_file: Path) -> None:
        """want_matches=False yields reads without alignments."""
        reads = list(AlignmentTableSource(alignment_file).iter_reads(want_matches=False))
        assert all(r.num_matches == 0 for r in reads)

    def test_small_chunks(self, alignment_file: Path) -> None:
        """Reads spanning batch boundaries are assembled correctly."""
        reads = list(AlignmentTableSource(alignment_file, chunk_size=1).iter_reads())
        assert [r.num_matches for r in reads] == [2, 2, 1, 0, 1]

    def test_explicit_classifications(self, alignment_file: Path) -> None:
        """Only requested classification columns are read."""
        source = AlignmentTableSource(alignment_file, classifications=["Taxonomy"])
        reads = list(source.iter_reads())
        assert reads[0].matches[0].class_ids == {"Taxonomy": 1423}

    def test_malformed_read_is_skipped(self, temp_dir: Path) -> None:
        """A read with invalid values is skipped and counted."""
        path = temp_dir / "bad.tsv"
        path.write_text(
            ALIGNMENT_HEADER
            + "r1\t100.0\t1e-10\t99.0\t1\t100\t100\t1423\t\n"
            + "r2\t-5.0\t1e-10\t99.0\t1\t100\t100\t1423\t\n"
            + "r3\t100.0\t1e-10\t99.0\t1\t100\t100\t562\t\n"
        )
        source = AlignmentTableSource(path)
        reads = list(source.iter_reads())

        assert [r.name for r in reads] == ["r1", "r3"]
        assert [r.uid for r in reads] == [1, 3]
        assert source.skipped_reads == 1

    def test_empty_file(self, temp_dir: Path) -> None:
        path = temp_dir / "empty.tsv"
        path.write_text("")
        with pytest.raises(EmptyAlignmentFileError):
            AlignmentTableSource(path)

    def test_header_only(self, temp_dir: Path) -> None:
        """A header without rows raises on iteration."""
        path = temp_dir / "header.tsv"
        path.write_text(ALIGNMENT_HEADER)
        with pytest.raises(EmptyAlignmentFileError):
            list(AlignmentTableSource(path).iter_reads())

    def test_missing_columns(self, temp_dir: Path) -> None:
        path = temp_dir / "partial.tsv"
        path.write_text("read_id\tbitscore\tTaxonomy\nr1\t100.0\t1423\n")
        with pytest.raises(MalformedAlignmentFileError) as exc_info:
            AlignmentTableSource(path)
        assert exc_info.value.missing_columns == ["evalue", "pident", "qend", "qstart"]

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(FileNotFoundError):
            AlignmentTableSource(temp_dir / "nope.tsv")

    @pytest.mark.parametrize("chunk_size", [0, -1, 100_000_001])
    def test_invalid_chunk_size(self, alignment_file: Path, chunk_size: int) -> None:
        with pytest.raises(ValueError, match="chunk_size must be between"):
            AlignmentTableSource(alignment_file, chunk_size=chunk_size)

    def test_distinct_class_ids(self, alignment_file: Path) -> None:
        """Positive ids of a column, without nulls."""
        source = AlignmentTableSource(alignment_file)
        assert source.distinct_class_ids("Taxonomy") == {1423, 1280, 562, 9606}
        assert source.distinct_class_ids("KEGG") == {100, 200}

    def test_mates(self, temp_dir: Path) -> None:
        """Mate names resolve to uids and the mate reader finds them."""
        path = temp_dir / "paired.tsv"
        path.write_text(
            "read_id\tbitscore\tevalue\tpident\tqstart\tqend\tmate_id\tTaxonomy\n"
            "r1/1\t100.0\t1e-10\t99.0\t1\t100\tr1/2\t1423\n"
            "r1/2\t100.0\t1e-10\t99.0\t1\t100\tr1/1\t1386\n"
            "r2\t100.0\t1e-10\t99.0\t1\t100\t\t562\n"
        )
        source = AlignmentTableSource(path)
        reads = list(source.iter_reads())

        assert source.has_mates
        assert [r.mate_uid for r in reads] == [2, 1, 0]

        mates = source.open_mate_reader()
        mates.seek(2)
        mate = mates.read_one()
        assert mate is not None
        assert mate.name == "r1/2"
        mates.seek(99)
        assert mates.read_one() is None
        mates.close()


class TestInMemoryReadSource:
    """Tests for InMemoryReadSource."""

    def test_filters_and_copies(self, make_read, make_match) -> None:
        """Matches are filtered per iteration and reads are copies."""
        read = make_read([make_match(taxonomy=1423, bit_score=100), make_match(bit_score=20)])
        source = InMemoryReadSource([read])

        (copy,) = source.iter_reads(min_score=50)
        copy.weight = 5.0

        assert copy.num_matches == 1
        assert read.num_matches == 2
        assert read.weight == 1.0

    def test_iterators_closed(self, make_read) -> None:
        """Exhausted and closed iterators are both counted."""
        source = InMemoryReadSource([make_read(), make_read()])
        list(source.iter_reads())

        iterator = source.iter_reads()
        next(iterator)
        iterator.close()

        assert source.iterators_closed == 2

    def test_mate_reader(self, make_read, make_match) -> None:
        source = InMemoryReadSource([make_read([make_match(taxonomy=1423)], uid=7)])
        mates = source.open_mate_reader()
        mates.seek(7)
        assert mates.read_one().uid == 7
        mates.close()
        assert mates.closed
