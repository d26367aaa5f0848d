"""
Shared CLI utilities for metabin commands.

Provides common functionality used across CLI modules.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)


@contextmanager
def spinner_progress(
    description: str,
    console: Console | None = None,
    quiet: bool = False,
) -> Generator[Progress, None, None]:
    """Context manager for spinner-style progress display.

    Creates a standardized spinner progress bar used throughout the CLI.
    The spinner is suppressed when quiet mode is enabled.

    Args:
        description: Task description to display.
        console: Rich Console instance. If None and not quiet, creates one.
        quiet: If True, suppress the progress display entirely.

    Yields:
        Progress instance (even when quiet, for API consistency).

    Example:
        >>> with spinner_progress("Loading data...", console, quiet) as progress:
        ...     # Perform work
        ...     pass
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console if not quiet else None,
        disable=quiet,
    ) as progress:
        progress.add_task(description=description, total=None)
        yield progress


class SpinnerProgressListener:
    """Reports pipeline progress by updating a spinner task description.

    Args:
        progress: Rich Progress instance.
        task_id: Task whose description is updated.
        every: Update the display every this many reads.
    """

    def __init__(self, progress: Progress, task_id: TaskID, every: int = 10_000):
        self._progress = progress
        self._task_id = task_id
        self._every = every

    def set_progress(self, reads_processed: int) -> None:
        if reads_processed % self._every == 0:
            self._progress.update(
                self._task_id,
                description=f"Binning reads... {reads_processed:,} processed",
            )

    def is_cancelled(self) -> bool:
        return False


def setup_logging(verbose: bool) -> None:
    """Route log records through Rich when verbose output is requested.

    Args:
        verbose: If True, log DEBUG and above to stderr via RichHandler.
    """
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def parse_named_paths(values: list[str] | None, option: str) -> dict[str, Path]:
    """Parse repeated NAME=PATH option values.

    Args:
        values: Raw option values.
        option: Option name used in error messages.

    Returns:
        Mapping of name to path.

    Raises:
        typer.BadParameter: If a value is not of the form NAME=PATH or the
            file does not exist.

    Example:
        >>> parse_named_paths(["GTDB=gtdb_tree.tsv"], "--classification-tree")
        {'GTDB': PosixPath('gtdb_tree.tsv')}
    """
    result: dict[str, Path] = {}
    for value in values or []:
        name, sep, raw_path = value.partition("=")
        if not sep or not name.strip() or not raw_path.strip():
            msg = f"{option} expects NAME=PATH, got '{value}'"
            raise typer.BadParameter(msg)
        path = Path(raw_path.strip())
        if not path.is_file():
            msg = f"{option}: file not found: {path}"
            raise typer.BadParameter(msg)
        result[name.strip()] = path
    return result


class QuietConsole:
    """Console wrapper that suppresses output in quiet mode.

    This class wraps a Rich Console instance and conditionally suppresses
    print output when quiet mode is enabled. All other console methods
    are delegated to the wrapped instance.

    Example:
        >>> console = Console()
        >>> qc = QuietConsole(console, quiet=True)
        >>> qc.print("This won't be shown")  # Suppressed
    """

    def __init__(self, console: Console, quiet: bool = False):
        self._console = console
        self._quiet = quiet

    @property
    def console(self) -> Console:
        """The underlying Rich Console, for output that ignores quiet mode."""
        return self._console

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Print to console unless quiet mode is enabled."""
        if not self._quiet:
            self._console.print(*args, **kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._console, name)
