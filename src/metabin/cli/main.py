"""
Main CLI entry point for metabin.

Provides the subcommands:
- bin: Assign reads to taxonomic and functional classes from alignments
- apply-lca: Replace lists of taxon ids by their lowest common ancestor
"""

from __future__ import annotations

import typer
from rich import print as rprint

from metabin import __version__

app = typer.Typer(
    name="metabin",
    help="Alignment-based binning of sequencing reads into taxonomic and functional classes",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        rprint(f"metabin version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Metabin: assign reads to classes using the lowest common ancestor.

    Reads are binned from pre-computed alignments against reference
    sequences that carry taxonomic (and optionally functional) class ids.
    """


# Import subcommands
from metabin.cli import binning, lca  # noqa: E402

# Register subcommands
app.command(name="bin")(binning.bin_reads)
app.command(name="apply-lca")(lca.apply_lca)


if __name__ == "__main__":
    app()
