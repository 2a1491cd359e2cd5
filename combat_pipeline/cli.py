#!/usr/bin/env python3
"""
Combat Pipeline CLI

Command-line interface for assembling GTEx/TCGA expression matrices per
tissue cluster, correcting batch effects with ComBat, and splitting the
result back into per-source files.
"""

import typer
import sys
from pathlib import Path
from typing import Optional
from rich.console import Console
import logging

from . import __version__
from .utils import setup_logging
from .genes import GeneTranslation
from .matrix import ColumnRange
from .pipeline import run_pipeline
from .quantify import QuantTool, QuantUnit
from .split import split_matrix
from .config import DEFAULT_CONFIG_FILE, DEFAULT_TISSUE_CONF

app = typer.Typer(
    name="combat_pipeline",
    help="Combat Pipeline - Build, batch-correct and split GTEx/TCGA expression matrices",
    add_completion=False,
)

console = Console()

# Global options
def version_callback(value: bool):
    if value:
        console.print(f"Combat Pipeline v{__version__}")
        raise typer.Exit()

def verbose_callback(value: bool):
    if value:
        setup_logging(level=logging.DEBUG)
    else:
        setup_logging(level=logging.INFO)

@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    ),
    verbose: bool = typer.Option(
        False, "--verbose",
        callback=verbose_callback,
        help="Enable verbose logging"
    ),
):
    """Combat Pipeline CLI"""
    pass

@app.command()
def run(
    tissue: str = typer.Option(..., "--tissue", "-t", help="Input tissue type"),
    tissue_conf: Path = typer.Option(Path(DEFAULT_TISSUE_CONF), "--tissue-conf", "-c", help="Tissue configuration file"),
    config: Path = typer.Option(Path(DEFAULT_CONFIG_FILE), "--config", help="Global configuration file"),
    run_combat: bool = typer.Option(False, "--run-combat", "-r", help="Run combat to correct batch biases"),
    quan_tool: QuantTool = typer.Option(QuantTool.RSEM, "--quan-tool", "-q", case_sensitive=False, help="Expression quantification tool"),
    quan_unit: QuantUnit = typer.Option(QuantUnit.FPKM, "--quan-unit", "-u", case_sensitive=False, help="Unit to measure gene expression"),
    output_dir: Path = typer.Option(Path("."), "--output-dir", "-o", help="Output directory"),
    combat_script: Optional[Path] = typer.Option(None, help="ComBat R script (default: bundled run-combat.R)"),
):
    """Build the cluster matrix for a tissue and split it per source."""
    console.print(f"[bold blue]Building {quan_tool.value}/{quan_unit.value} matrix for {tissue}[/bold blue]")

    try:
        results = run_pipeline(
            tissue=tissue,
            tissue_conf=tissue_conf,
            config_file=config,
            tool=quan_tool,
            unit=quan_unit,
            correct_batches=run_combat,
            output_dir=output_dir,
            combat_script=combat_script
        )
        console.print(f"[bold green]Matrix with {results['n_samples']} samples completed![/bold green]")
        for output_file in results["outputs"]:
            console.print(f"Results saved to: {output_file}")

    except Exception as e:
        console.print(f"[bold red]Error in pipeline run: {e}[/bold red]")
        sys.exit(1)

@app.command()
def split(
    matrix: Path = typer.Argument(..., help="Assembled or corrected matrix"),
    output_file: Path = typer.Argument(..., help="Per-source output file"),
    start: int = typer.Option(..., help="First column (1-indexed, inclusive)"),
    end: int = typer.Option(..., help="Last column (1-indexed, inclusive)"),
    genes: Path = typer.Option(..., help="Gene translation table (gene id, symbol, Entrez id)"),
):
    """Cut one column range out of a matrix."""
    console.print(f"[bold blue]Splitting columns {start}-{end} of {matrix}[/bold blue]")

    try:
        if start < 2 or end < start - 1:
            raise ValueError(f"Invalid column range {start}-{end}")
        translation = GeneTranslation.from_file(genes)
        split_matrix(matrix, output_file, ColumnRange(start, end), translation)
        console.print(f"[bold green]Split completed![/bold green]")
        console.print(f"Results saved to: {output_file}")

    except Exception as e:
        console.print(f"[bold red]Error splitting matrix: {e}[/bold red]")
        sys.exit(1)

if __name__ == "__main__":
    app()
