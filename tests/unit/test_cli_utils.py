"""
Unit tests for CLI utility functions.

Tests for parse_named_paths, QuietConsole and SpinnerProgressListener.
"""

from __future__ import annotations

from io import StringIO
from pathlib import Path

import pytest
import typer
from rich.console import Console

from metabin.cli.utils import (
    QuietConsole,
    SpinnerProgressListener,
    parse_named_paths,
    spinner_progress,
)


class TestParseNamedPaths:
    """Tests for parse_named_paths function."""

    def test_parses_pairs(self, tmp_path: Path) -> None:
        """NAME=PATH values become a mapping."""
        tree = tmp_path / "gtdb.tsv"
        tree.write_text("id\tparent\n")
        assert parse_named_paths([f"GTDB={tree}"], "--tree") == {"GTDB": tree}

    def test_none(self) -> None:
        assert parse_named_paths(None, "--tree") == {}

    @pytest.mark.parametrize("value", ["GTDB", "=tree.tsv", "GTDB="])
    def test_malformed(self, value: str) -> None:
        """Values without a name or a path are rejected."""
        with pytest.raises(typer.BadParameter, match="expects NAME=PATH"):
            parse_named_paths([value], "--tree")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(typer.BadParameter, match="file not found"):
            parse_named_paths([f"GTDB={tmp_path / 'nope.tsv'}"], "--tree")


class TestQuietConsole:
    """Tests for QuietConsole wrapper."""

    def test_prints_when_not_quiet(self) -> None:
        buffer = StringIO()
        QuietConsole(Console(file=buffer), quiet=False).print("hello")
        assert "hello" in buffer.getvalue()

    def test_suppressed_when_quiet(self) -> None:
        """Print output is dropped in quiet mode."""
        buffer = StringIO()
        QuietConsole(Console(file=buffer), quiet=True).print("hello")
        assert buffer.getvalue() == ""

    def test_delegates_attributes(self) -> None:
        """Other attributes come from the wrapped console."""
        console = Console(file=StringIO(), width=73)
        quiet = QuietConsole(console, quiet=True)
        assert quiet.width == 73
        assert quiet.console is console


class TestSpinnerProgressListener:
    """Tests for the progress listener used by the bin command."""

    def test_updates_every_n_reads(self) -> None:
        with spinner_progress("Binning reads...", quiet=True) as progress:
            task_id = progress.tasks[0].id
            listener = SpinnerProgressListener(progress, task_id, every=2)
            listener.set_progress(1)
            assert progress.tasks[0].description == "Binning reads..."
            listener.set_progress(2)
            assert progress.tasks[0].description == "Binning reads... 2 processed"
            assert not listener.is_cancelled()
