"""
Apply-LCA command: replace lists of taxon ids by their LCA.

Each input row has a name followed by any number of taxon ids; the output
row has the name and the lowest common ancestor of the positive ids.
"""

from __future__ import annotations

import re
import sys
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import TextIO

import typer
from rich.console import Console

from metabin.cli.utils import setup_logging
from metabin.core.assignment import LCAAssignment
from metabin.core.constants import TAXONOMY
from metabin.core.exceptions import MetabinError
from metabin.core.taxonomy import ClassificationTree

console = Console(stderr=True)

SEPARATORS = {"detect": None, "tab": "\t", "\\t": "\t", ",": ",", ";": ";"}


def detect_separator(line: str) -> str:
    """
    Guess the column separator from the first line.

    Tab wins over comma, comma over semicolon.

    Raises:
        ValueError: If the line contains none of them
    """
    for candidate in ("\t", ",", ";"):
        if candidate in line:
            return candidate
    msg = "Can't detect separator (no tab, comma or semicolon in first line)"
    raise ValueError(msg)


def lca_of_tokens(algorithm: LCAAssignment, tokens: list[str]) -> int:
    """
    LCA of the id tokens of one row.

    Returns:
        The LCA of all positive ids, -1 if there are none, and 0 as soon as
        a token is not an integer.
    """
    taxon_id = -1
    for token in tokens:
        token = token.strip()
        try:
            class_id = int(token)
        except ValueError:
            return 0
        if class_id > 0:
            taxon_id = class_id if taxon_id == -1 else algorithm.get_lca(taxon_id, class_id)
    return taxon_id


def apply_to_lines(
    lines: Iterable[str],
    algorithm: LCAAssignment,
    separator: str | None = None,
    has_header: bool = True,
) -> Iterator[str]:
    """
    Yield one output line per input line.

    With has_header, the first line is passed through unchanged. A separator
    of None is detected from the first line.
    """
    first = True
    splitter = re.compile(r"\t")
    for line in lines:
        line = line.rstrip("\r\n")
        if first:
            first = False
            if separator is None:
                separator = detect_separator(line)
            splitter = re.compile(r"\s*" + re.escape(separator) + r"\s*")
            if has_header:
                yield line
                continue
        if not line:
            continue
        tokens = splitter.split(line)
        yield f"{tokens[0]}{separator}{lca_of_tokens(algorithm, tokens[1:])}"


def _open_input(value: str) -> TextIO:
    if value in ("-", "stdin"):
        return sys.stdin
    path = Path(value)
    if not path.is_file():
        msg = f"Input file not found: {path}"
        raise typer.BadParameter(msg, param_hint="--input")
    return path.open()


def apply_lca(
    input_file: str = typer.Option(
        ...,
        "--input",
        "-i",
        help="Input file of rows 'name, id1, id2, ...' ('-' or 'stdin' for standard input)",
    ),
    tree: Path = typer.Option(
        ...,
        "--tree",
        "-t",
        help="Taxonomy tree: TSV with columns id, parent, rank, name, or NCBI nodes.dmp",
        exists=True,
        dir_okay=False,
    ),
    tree_names: Path | None = typer.Option(
        None,
        "--tree-names",
        help="NCBI names.dmp to go with a nodes.dmp taxonomy",
        exists=True,
        dir_okay=False,
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file (default: stdout)",
    ),
    separator: str = typer.Option(
        "detect",
        "--separator",
        "-s",
        help="Column separator: 'detect', 'TAB', ',' or ';'",
    ),
    no_header: bool = typer.Option(
        False,
        "--no-header",
        help="First line is data, not a header",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
) -> None:
    """
    Replace the taxon ids of each row by their lowest common ancestor.

    Rows whose ids include a non-numeric token are reported with id 0, rows
    without any positive id with -1.

    Example:

        metabin apply-lca --input hits.tsv --tree taxonomy.tsv --output lca.tsv
    """
    setup_logging(verbose)

    key = separator.lower() if separator.lower() in SEPARATORS else separator
    if key not in SEPARATORS:
        console.print(
            f"[red]Error: Invalid separator '{separator}'. "
            f"Use 'detect', 'TAB', ',' or ';'.[/red]"
        )
        raise typer.Exit(code=1) from None

    try:
        taxonomy = ClassificationTree.from_file(tree, tree_names, name=TAXONOMY)
    except MetabinError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None
    algorithm = LCAAssignment(TAXONOMY, taxonomy)

    reader = _open_input(input_file)
    writer = output.open("w") if output else sys.stdout
    try:
        for line in apply_to_lines(reader, algorithm, SEPARATORS[key], has_header=not no_header):
            writer.write(line + "\n")
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None
    finally:
        if reader is not sys.stdin:
            reader.close()
        if writer is not sys.stdout:
            writer.close()
        else:
            writer.flush()

    if output:
        console.print(f"[green]Written:[/green] {output}")
