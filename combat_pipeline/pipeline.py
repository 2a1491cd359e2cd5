"""
End-to-end run for one tissue cluster.

Assemble the cluster's matrix, write the ComBat batch file, optionally
correct batch effects, and split the matrix back per source group.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from .combat import (
    adjusted_matrix_path, batch_file_path, run_combat, write_batch_file
)
from .config import load_config, resolve_cluster
from .errors import ConfigurationError
from .genes import GeneTranslation
from .matrix import MatrixAssembler, ProvenanceGroup
from .quantify import QuantReader, QuantTool, QuantUnit, QuartileNormalizer
from .split import split_groups
from .utils import validate_directory_exists, validate_file_exists

logger = logging.getLogger(__name__)


def build_matrix(
    groups: Iterable[ProvenanceGroup],
    reader: QuantReader,
    translation: GeneTranslation,
    matrix_file: Path
) -> MatrixAssembler:
    """
    Assemble the matrix of all groups into ``matrix_file``.

    The file is removed again if any group fails.
    """
    with MatrixAssembler(matrix_file, translation) as assembler:
        for group in groups:
            assembler.add_group(group, reader)
    return assembler


def make_reader(
    tool: QuantTool,
    unit: QuantUnit,
    translation: GeneTranslation,
    ubu_dir: Optional[Path]
) -> QuantReader:
    normalizer = None
    if (QuantTool(tool), QuantUnit(unit)) == (QuantTool.RSEM, QuantUnit.FPKM):
        if ubu_dir is None:
            raise ConfigurationError("ubu_dir must be configured for RSEM FPKM")
        normalizer = QuartileNormalizer(ubu_dir)
    return QuantReader(tool, unit, translation, normalizer)


def run_pipeline(
    tissue: str,
    tissue_conf: Union[str, Path],
    config_file: Union[str, Path],
    tool: QuantTool = QuantTool.RSEM,
    unit: QuantUnit = QuantUnit.FPKM,
    correct_batches: bool = False,
    output_dir: Union[str, Path] = ".",
    combat_script: Optional[Union[str, Path]] = None
) -> Dict[str, Any]:
    """
    Main function to build, correct and split one tissue cluster's matrix.

    Args:
        tissue: GTEx tissue or TCGA cohort name
        tissue_conf: Tissue-cluster file
        config_file: Global key=value configuration
        tool: Quantification tool
        unit: Expression unit
        correct_batches: Run ComBat and split the corrected matrix
        output_dir: Directory for the matrix, batch file and split outputs
        combat_script: R script overriding config and the bundled default

    Returns:
        Dictionary with output paths and matrix statistics
    """
    tool = QuantTool(tool)
    unit = QuantUnit(unit)

    config = load_config(config_file)
    plan = resolve_cluster(tissue, tissue_conf, config, tool, unit)
    validate_file_exists(config.gene_table)
    output_dir = validate_directory_exists(output_dir, create=True)

    translation = GeneTranslation.from_file(config.gene_table)
    reader = make_reader(tool, unit, translation, config.ubu_dir)

    matrix_file = output_dir / f"{plan.prefix}.txt"
    assembler = build_matrix(plan.groups, reader, translation, matrix_file)

    batch_file = write_batch_file(
        assembler.batch_annotations, batch_file_path(plan.prefix, output_dir)
    )

    source_matrix = matrix_file
    if correct_batches:
        source_matrix = run_combat(
            matrix_file, batch_file,
            adjusted_matrix_path(plan.prefix, output_dir),
            script=combat_script or config.combat_script,
        )

    logger.info("Splitting file")
    outputs = split_groups(
        source_matrix, assembler.column_ranges,
        tool.value, unit.value, translation, output_dir
    )

    return {
        "cluster": plan.cluster,
        "matrix": str(matrix_file),
        "batch_file": str(batch_file),
        "source_matrix": str(source_matrix),
        "n_samples": assembler.n_samples,
        "column_ranges": {
            group.output_name(tool.value, unit.value): str(column_range)
            for group, column_range in assembler.column_ranges.items()
        },
        "outputs": [str(path) for path in outputs],
    }
