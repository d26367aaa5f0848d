"""
Bin command: assign reads to classes from an alignment table.

This is the command most users will interact with. It loads the
classification trees, streams the alignment table through the binning
pipeline and writes per-read assignments and per-class counts.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from metabin.cli.utils import (
    QuietConsole,
    SpinnerProgressListener,
    parse_named_paths,
    setup_logging,
    spinner_progress,
)
from metabin.core.constants import TAXONOMY
from metabin.core.contaminants import ContaminantManager
from metabin.core.exceptions import BinningCancelled, MetabinError
from metabin.core.io_utils import TableUpdateSink
from metabin.core.parsers import AlignmentTableSource
from metabin.core.pipeline import BinningResult, ClassificationPipeline
from metabin.core.taxonomy import ClassificationRegistry, ClassificationTree
from metabin.models.config import BinningConfig, LCAAlgorithm, ReadAssignmentMode

logger = logging.getLogger(__name__)

console = Console()


def build_config(config_file: Path | None, overrides: dict[str, Any]) -> BinningConfig:
    """
    Build the run configuration from an optional YAML file and CLI overrides.

    CLI values that were not given (None) keep the file's or the default value.
    """
    base = BinningConfig.from_yaml(config_file) if config_file else BinningConfig()
    given = {key: value for key, value in overrides.items() if value is not None}
    if not given:
        return base
    return BinningConfig(**{**base.model_dump(), **given})


def load_trees(
    config: BinningConfig,
    tree: Path,
    tree_names: Path | None,
    extra_trees: dict[str, Path],
    source: AlignmentTableSource,
) -> ClassificationRegistry:
    """
    Register the trees of all active classifications.

    The taxonomy comes from --tree; other classifications from
    --classification-tree. Functional classifications without a tree are
    registered with the ids found in the alignment table.

    Raises:
        typer.BadParameter: If a taxonomic classification has no tree
    """
    registry = ClassificationRegistry()
    registry.register_tree(ClassificationTree.from_file(tree, tree_names, name=TAXONOMY))
    for name, path in extra_trees.items():
        registry.register_tree(ClassificationTree.from_file(path, name=name))

    for name in config.classifications:
        if name in registry:
            continue
        if config.uses_lca(name):
            msg = f"Classification '{name}' is binned with an LCA algorithm and needs a tree"
            raise typer.BadParameter(msg, param_hint="--classification-tree")
        registry.register_ids(name, source.distinct_class_ids(name))
        logger.debug("Registered %s without a tree", name)
    return registry


def bin_reads(
    alignments: Path = typer.Option(
        ...,
        "--alignments",
        "-a",
        help="Path to tab-separated alignment table (read_id, bitscore, evalue, pident, qstart, qend, one column per classification)",
        exists=True,
        dir_okay=False,
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
    classification_tree: list[str] | None = typer.Option(
        None,
        "--classification-tree",
        help="Tree for another classification as NAME=PATH (repeatable), e.g. GTDB=gtdb.tsv",
    ),
    output: Path = typer.Option(
        ...,
        "--output",
        "-o",
        help="Output directory for assignments, counts and run summary",
        file_okay=False,
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file; command-line options override its values",
        exists=True,
        dir_okay=False,
    ),
    classification: list[str] | None = typer.Option(
        None,
        "--classification",
        help="Classification to bin into (repeatable, default: Taxonomy)",
    ),
    min_score: float | None = typer.Option(
        None, "--min-score", help="Minimum bit score of a match [default: 50]", min=0
    ),
    max_expected: float | None = typer.Option(
        None, "--max-expected", help="Maximum e-value of a match [default: 0.01]", min=0
    ),
    min_percent_identity: float | None = typer.Option(
        None,
        "--min-percent-identity",
        help="Minimum percent identity of a match [default: 0]",
        min=0,
        max=100,
    ),
    top_percent: float | None = typer.Option(
        None,
        "--top-percent",
        help="Only use matches within this percentage of the best score [default: 10]",
        min=0,
        max=100,
    ),
    min_support: int | None = typer.Option(
        None, "--min-support", help="Minimum number of reads a class needs [default: 0]", min=0
    ),
    min_support_percent: float | None = typer.Option(
        None,
        "--min-support-percent",
        help="Minimum support as percentage of all reads; wins over --min-support [default: 0.05]",
        min=0,
        max=100,
    ),
    lca_algorithm: str | None = typer.Option(
        None,
        "--lca-algorithm",
        help="LCA algorithm: 'naive', 'weighted' or 'longReads' [default: naive]",
    ),
    lca_coverage_percent: float | None = typer.Option(
        None,
        "--lca-coverage-percent",
        help="Percentage of matches the LCA must cover [default: 100]",
        min=1,
        max=100,
    ),
    min_percent_read_to_cover: float | None = typer.Option(
        None,
        "--min-percent-read-to-cover",
        help="Minimum percentage of a read covered by alignments [default: 0]",
        min=0,
        max=100,
    ),
    min_percent_reference_to_cover: float | None = typer.Option(
        None,
        "--min-percent-reference-to-cover",
        help="Minimum percentage of a reference covered by the dataset [default: 0]",
        min=0,
        max=100,
    ),
    min_read_length: int | None = typer.Option(
        None, "--min-read-length", help="Reads shorter than this are not assigned [default: 0]", min=0
    ),
    min_complexity: float | None = typer.Option(
        None,
        "--min-complexity",
        help="Reads of lower complexity are binned as low complexity [default: 0]",
        min=-1,
        max=1,
    ),
    long_reads: bool | None = typer.Option(
        None, "--long-reads/--short-reads", help="Treat reads as long (multi-gene) reads"
    ),
    paired_reads: bool | None = typer.Option(
        None, "--paired-reads/--unpaired-reads", help="Use mates in taxonomic assignment"
    ),
    use_identity_filter: bool | None = typer.Option(
        None,
        "--use-identity-filter/--no-identity-filter",
        help="Apply rank-specific minimum percent identities (16S)",
    ),
    best_hit_for_taxonomy: bool | None = typer.Option(
        None,
        "--best-hit-for-taxonomy/--lca-for-taxonomy",
        help="Bin taxonomic classifications with best hit instead of LCA",
    ),
    contaminants: Path | None = typer.Option(
        None,
        "--contaminants",
        help="File of contaminant taxon ids or names (one per line)",
        exists=True,
        dir_okay=False,
    ),
    read_assignment_mode: str | None = typer.Option(
        None,
        "--read-assignment-mode",
        help="How much a read counts: 'readCount', 'readLength', 'alignedBases' or 'readMagnitude'",
    ),
    output_format: str = typer.Option(
        "csv",
        "--format",
        "-f",
        help="Output format: 'csv' or 'parquet'. Parquet is 10x smaller/faster.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress progress output (for scripting)",
    ),
) -> None:
    """
    Bin reads into taxonomic and functional classes from alignments.

    Example:

        metabin bin \\
            --alignments sample.alignments.tsv \\
            --tree taxonomy.tsv \\
            --output binned/

        # NCBI taxdump, KEGG as functional classification, long reads:
        metabin bin \\
            --alignments sample.alignments.tsv \\
            --tree nodes.dmp --tree-names names.dmp \\
            --classification Taxonomy --classification KEGG \\
            --lca-algorithm longReads --long-reads \\
            --output binned/ --format parquet
    """
    setup_logging(verbose)
    out = QuietConsole(console, quiet=quiet)

    out.print("\n[bold blue]Metabin Read Binning[/bold blue]\n")

    output_format = output_format.lower()
    if output_format not in ("csv", "parquet"):
        console.print(
            f"[red]Error: Invalid format '{output_format}'. "
            f"Use 'csv' or 'parquet'.[/red]"
        )
        raise typer.Exit(code=1) from None

    try:
        config = build_config(
            config_file,
            {
                "classifications": classification or None,
                "min_score": min_score,
                "max_expected": max_expected,
                "min_percent_identity": min_percent_identity,
                "top_percent": top_percent,
                "min_support": min_support,
                "min_support_percent": min_support_percent,
                "lca_algorithm": LCAAlgorithm.from_string(lca_algorithm) if lca_algorithm else None,
                "lca_coverage_percent": lca_coverage_percent,
                "min_percent_read_to_cover": min_percent_read_to_cover,
                "min_percent_reference_to_cover": min_percent_reference_to_cover,
                "min_read_length": min_read_length,
                "min_complexity": min_complexity,
                "long_reads": long_reads,
                "paired_reads": paired_reads,
                "use_identity_filter": use_identity_filter,
                "use_best_hit_for_taxonomy": best_hit_for_taxonomy,
                "use_contaminant_filter": True if contaminants else None,
                "read_assignment_mode": (
                    ReadAssignmentMode.from_string(read_assignment_mode)
                    if read_assignment_mode
                    else None
                ),
            },
        )
        extra_trees = parse_named_paths(classification_tree, "--classification-tree")
    except (ValidationError, ValueError, typer.BadParameter) as e:
        console.print(f"[red]Error: Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1) from None

    if verbose:
        out.print(f"[dim]Parameters: {config.parameter_string()}[/dim]")

    try:
        with spinner_progress("Loading classification trees...", console, quiet):
            source = AlignmentTableSource(alignments, classifications=config.classifications)
            registry = load_trees(config, tree, tree_names, extra_trees, source)
    except (MetabinError, typer.BadParameter) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    taxonomy = registry.get_tree(TAXONOMY)
    out.print(f"[green]Loaded taxonomy with {len(taxonomy):,} nodes[/green]")

    manager: ContaminantManager | None = None
    if contaminants:
        manager = ContaminantManager(taxonomy)
        try:
            manager.read(contaminants)
        except MetabinError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None
        out.print(
            f"[green]Using contaminants profile: {manager.input_size:,} input, "
            f"{manager.size:,} total[/green]"
        )

    sink = TableUpdateSink(output, output_format, trees=registry)
    try:
        pipeline = ClassificationPipeline(config, registry, contaminants=manager)
        with spinner_progress("Binning reads...", console, quiet) as progress:
            listener = SpinnerProgressListener(progress, progress.task_ids[0])
            pipeline.progress = listener
            result = pipeline.run(source, sink)
    except BinningCancelled as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(code=130) from None
    except MetabinError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    result.stats.to_json(output / "binning_summary.json")
    config.to_yaml(output / "binning_config.yaml")

    if not quiet:
        _display_summary(result, config, sink)

    for path in sink.written:
        out.print(f"[green]Written:[/green] {path}")
    out.print(f"[green]Summary written to:[/green] {output / 'binning_summary.json'}\n")


def _display_summary(result: BinningResult, config: BinningConfig, sink: TableUpdateSink) -> None:
    """Print run statistics and per-classification counts as rich tables."""
    stats = result.stats

    table = Table(title="Binning Summary", show_header=True)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")

    table.add_row("Total reads", f"{stats.total_reads:,}")
    if stats.total_weight > stats.total_reads:
        table.add_row("Total weight", f"{stats.total_weight:,.0f}")
    table.add_row("With hits", f"{stats.reads_with_hits:,.0f} ({stats.percent_with_hits:.1f}%)")
    table.add_row("Alignments", f"{stats.total_matches:,}")
    if stats.low_complexity > 0:
        table.add_row("Low complexity", f"{stats.low_complexity:,.0f}")
    if stats.too_short > 0:
        table.add_row("Too short", f"{stats.too_short:,.0f}")
    if stats.low_covered > 0:
        table.add_row("Low covered", f"{stats.low_covered:,}")
    if stats.assigned_via_mate > 0:
        table.add_row("Assigned via mate", f"{stats.assigned_via_mate:,}")
    if stats.failed_reads > 0:
        table.add_row("Skipped (errors)", f"{stats.failed_reads:,}", style="red")
    table.add_row("Min support", f"{stats.min_support:,}")
    for name in config.classifications:
        table.add_row(
            f"Assigned: {name}",
            f"{stats.assigned.get(name, 0):,}",
            style="green",
        )
        if name in stats.min_support_changes:
            table.add_row(f"Min-support changes: {name}", f"{stats.min_support_changes[name]:,}")

    console.print()
    console.print(table)

    for name in config.classifications:
        counts = result.accumulator.counts_frame(name).sort("weight", descending=True)
        top = Table(title=f"Top {name} Classes", show_header=True)
        top.add_column("Class", style="cyan")
        top.add_column("Reads", justify="right", style="magenta")
        top.add_column("Weight", justify="right", style="green")
        for row in counts.head(10).iter_rows(named=True):
            class_id = row["class_id"]
            top.add_row(sink.label(name, class_id), f"{row['count']:,}", f"{row['weight']:,.1f}")
        console.print(top)
    console.print()
