"""
Unit tests for configuration models.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from metabin.models.config import BinningConfig, LCAAlgorithm, ReadAssignmentMode


class TestEnums:
    """Tests for the string-backed enums."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("naive", LCAAlgorithm.NAIVE),
            ("WEIGHTED", LCAAlgorithm.WEIGHTED),
            ("longreads", LCAAlgorithm.LONG_READS),
            ("long_reads", LCAAlgorithm.LONG_READS),
        ],
    )
    def test_lca_algorithm_from_string(self, value, expected) -> None:
        """Lookup is case-insensitive by value or member name."""
        assert LCAAlgorithm.from_string(value) is expected

    def test_read_assignment_mode_from_string(self) -> None:
        """Read assignment modes resolve from their value."""
        assert ReadAssignmentMode.from_string("alignedBases") is ReadAssignmentMode.ALIGNED_BASES

    def test_unknown_value(self) -> None:
        """Unknown names raise ValueError."""
        with pytest.raises(ValueError, match="Unknown LCA algorithm"):
            LCAAlgorithm.from_string("median")
        with pytest.raises(ValueError, match="Unknown read assignment mode"):
            ReadAssignmentMode.from_string("bases")


class TestBinningConfig:
    """Tests for BinningConfig."""

    def test_defaults(self) -> None:
        """Default values match the documented defaults."""
        config = BinningConfig()
        assert config.min_score == 50.0
        assert config.max_expected == 0.01
        assert config.top_percent == 10.0
        assert config.min_support_percent == 0.05
        assert config.lca_algorithm is LCAAlgorithm.NAIVE
        assert config.lca_coverage_percent == 100.0
        assert config.classifications == ["Taxonomy"]
        assert config.read_assignment_mode is ReadAssignmentMode.READ_COUNT

    def test_frozen(self) -> None:
        """Config instances are immutable."""
        config = BinningConfig()
        with pytest.raises(ValidationError):
            config.min_score = 10.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_score": -1},
            {"top_percent": 150},
            {"lca_coverage_percent": 0},
            {"min_support": -1},
            {"classifications": []},
            {"classifications": ["Taxonomy", "Taxonomy"]},
            {"classifications": ["  "]},
        ],
    )
    def test_invalid_values(self, kwargs) -> None:
        """Out-of-range values and bad classification lists are rejected."""
        with pytest.raises(ValidationError):
            BinningConfig(**kwargs)

    @pytest.mark.parametrize(
        ("percent", "count", "total_weight", "expected"),
        [
            (0.05, 0, 10_000, 5),
            (0.05, 0, 100, 1),
            (1.0, 0, 250, 2),
            (0.0, 7, 10_000, 7),
        ],
    )
    def test_effective_min_support(self, percent, count, total_weight, expected) -> None:
        """The percentage wins when positive and never drops below 1."""
        config = BinningConfig(min_support_percent=percent, min_support=count)
        assert config.effective_min_support(total_weight) == expected

    def test_uses_lca(self) -> None:
        """Only taxonomic classifications use LCA, unless best hit is forced."""
        config = BinningConfig(classifications=["Taxonomy", "KEGG"])
        assert config.uses_lca("Taxonomy")
        assert not config.uses_lca("KEGG")

        forced = BinningConfig(use_best_hit_for_taxonomy=True)
        assert not forced.uses_lca("Taxonomy")

    def test_long_read_mode(self) -> None:
        """The long-read algorithm implies long-read mode and disables top-percent."""
        config = BinningConfig(lca_algorithm=LCAAlgorithm.LONG_READS, top_percent=10)
        assert config.uses_long_read_algorithm
        assert config.is_long_read_mode
        assert config.active_match_top_percent == 0.0

        flagged = BinningConfig(long_reads=True)
        assert flagged.is_long_read_mode
        assert not flagged.uses_long_read_algorithm
        assert flagged.active_match_top_percent == 10.0

    def test_parameter_string(self) -> None:
        """Parameters render as key=value pairs."""
        text = BinningConfig(min_score=35).parameter_string()
        assert "minScore=35" in text
        assert "lcaAlgorithm=naive" in text
        assert "readAssignmentMode=readCount" in text


class TestYamlConfig:
    """Tests for YAML loading and saving."""

    def test_round_trip(self, temp_dir: Path) -> None:
        """A saved config loads back unchanged."""
        config = BinningConfig(
            min_score=80,
            top_percent=5,
            lca_algorithm=LCAAlgorithm.WEIGHTED,
            lca_coverage_percent=80,
            read_assignment_mode=ReadAssignmentMode.READ_LENGTH,
            classifications=["Taxonomy", "KEGG"],
            paired_reads=True,
        )
        path = temp_dir / "config.yaml"
        config.to_yaml(path)

        assert BinningConfig.from_yaml(path) == config

    def test_nested_keys(self, temp_dir: Path) -> None:
        """Nested sections map onto flat fields; missing keys keep defaults."""
        path = temp_dir / "config.yaml"
        path.write_text(
            "filters:\n"
            "  min_score: 40\n"
            "min_support:\n"
            "  percent: 0\n"
            "  count: 3\n"
            "lca:\n"
            "  algorithm: longReads\n"
            "reads:\n"
            "  min_length: 100\n"
            "  assignment_mode: alignedBases\n"
            "classifications:\n"
            "  active: [Taxonomy, EGGNOG]\n"
        )
        config = BinningConfig.from_yaml(path)

        assert config.min_score == 40
        assert config.min_support == 3
        assert config.min_support_percent == 0
        assert config.lca_algorithm is LCAAlgorithm.LONG_READS
        assert config.min_read_length == 100
        assert config.read_assignment_mode is ReadAssignmentMode.ALIGNED_BASES
        assert config.classifications == ["Taxonomy", "EGGNOG"]
        assert config.max_expected == 0.01

    def test_empty_file(self, temp_dir: Path) -> None:
        """An empty file gives the default config."""
        path = temp_dir / "config.yaml"
        path.write_text("")
        assert BinningConfig.from_yaml(path) == BinningConfig()

    def test_not_a_mapping(self, temp_dir: Path) -> None:
        """Top-level YAML must be a mapping."""
        path = temp_dir / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="must contain a mapping"):
            BinningConfig.from_yaml(path)
