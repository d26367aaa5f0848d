"""
Unit tests for read, match and result models.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from metabin.core.constants import NOHITS_ID
from metabin.models.alignments import Match, Read
from metabin.models.assignment import AssignmentResult, BinningStats


class TestMatch:
    """Tests for the Match model."""

    def test_percent_identity_clamped(self) -> None:
        """Identities slightly above 100 are clamped."""
        match = Match(uid=1, bit_score=50, percent_identity=100.4, query_start=1, query_end=10)
        assert match.percent_identity == 100.0

    def test_negative_score_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Match(uid=1, bit_score=-1, query_start=1, query_end=10)

    def test_strand_and_length(self) -> None:
        """Reverse alignments have start > end; the length counts both ends."""
        match = Match(uid=1, bit_score=50, query_start=100, query_end=51)
        assert match.is_reverse
        assert match.aligned_length == 50

    def test_class_id(self) -> None:
        match = Match(uid=1, bit_score=50, query_start=1, query_end=10, class_ids={"KEGG": 7})
        assert match.class_id("KEGG") == 7
        assert match.class_id("Taxonomy") == 0

    def test_frozen(self) -> None:
        match = Match(uid=1, bit_score=50, query_start=1, query_end=10)
        with pytest.raises(ValidationError):
            match.bit_score = 60


class TestRead:
    """Tests for the Read model."""

    def test_best_match_tie_break(self, make_match) -> None:
        """Equal scores are broken by the lower match uid."""
        read = Read(
            uid=1,
            matches=[
                make_match(bit_score=90, uid=3),
                make_match(bit_score=120, uid=7),
                make_match(bit_score=120, uid=5),
            ],
        )
        assert read.best_match.uid == 5
        assert read.num_matches == 3

    def test_defaults(self) -> None:
        read = Read(uid=1)
        assert read.weight == 1.0
        assert read.mate_uid == 0
        assert read.best_match is None


class TestAssignmentResult:
    """Tests for AssignmentResult."""

    def test_sentinel(self) -> None:
        assert AssignmentResult(NOHITS_ID).is_sentinel
        assert not AssignmentResult(1423).is_sentinel
        assert AssignmentResult(1423).additional == ()


class TestBinningStats:
    """Tests for the run summary."""

    def test_percent_with_hits(self) -> None:
        assert BinningStats().percent_with_hits == 0.0
        stats = BinningStats(total_weight=8, reads_with_hits=2)
        assert stats.percent_with_hits == 25.0

    def test_json_round_trip(self, tmp_path: Path) -> None:
        """Summaries load back from their JSON file."""
        stats = BinningStats(
            total_reads=10,
            total_weight=10.0,
            assigned={"Taxonomy": 7},
            min_support_changes={"Taxonomy": 2},
        )
        path = tmp_path / "summary.json"
        stats.to_json(path)

        loaded = BinningStats.from_json(path)
        assert loaded.assigned == {"Taxonomy": 7}
        assert loaded.min_support_changes == {"Taxonomy": 2}
        assert loaded.percent_with_hits == 0.0
