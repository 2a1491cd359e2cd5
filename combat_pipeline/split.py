"""
Split an assembled (or corrected) matrix back into per-source files.
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

from .errors import PipelineError
from .genes import GeneTranslation
from .matrix import ColumnRange, ProvenanceGroup
from .utils import validate_file_exists, validate_directory_exists

logger = logging.getLogger(__name__)

OUTPUT_ID_COLUMNS = ["Hugo_Symbol", "Entrez_Gene_Id"]


def select_columns(fields: List[str], column_range: ColumnRange) -> List[str]:
    """Fields ``start``..``end`` (1-indexed, inclusive) of a split line."""
    return fields[column_range.start - 1:column_range.end]


def split_matrix(
    matrix_file: Union[str, Path],
    output_file: Union[str, Path],
    column_range: ColumnRange,
    translation: GeneTranslation
) -> Path:
    """
    Write one source's columns with HUGO symbol and Entrez id leading.

    Args:
        matrix_file: Matrix whose first column holds display symbols
        output_file: Per-source output file
        column_range: Columns owned by the source
        translation: Symbol -> Entrez id lookup

    Returns:
        Path to the output file

    Raises:
        PipelineError: If the output file cannot be created
    """
    matrix_file = validate_file_exists(matrix_file)
    output_file = Path(output_file)

    try:
        out = open(output_file, 'w')
    except OSError as e:
        raise PipelineError(f"Couldn't create file {output_file}") from e

    n_rows = 0
    with out, open(matrix_file, 'r') as src:
        header = src.readline().rstrip('\n').split('\t')
        out.write('\t'.join(OUTPUT_ID_COLUMNS + select_columns(header, column_range)) + '\n')

        for line in src:
            line = line.rstrip('\n')
            if not line:
                continue
            fields = line.split('\t')
            symbol = fields[0]
            row = [symbol, translation.entrez_id(symbol)] + select_columns(fields, column_range)
            out.write('\t'.join(row) + '\n')
            n_rows += 1

    logger.debug(f"Wrote {n_rows} genes, columns {column_range} to {output_file}")
    return output_file


def split_groups(
    matrix_file: Union[str, Path],
    column_ranges: Dict[ProvenanceGroup, ColumnRange],
    tool: str,
    unit: str,
    translation: GeneTranslation,
    output_dir: Union[str, Path]
) -> List[Path]:
    """
    Split the matrix into one file per recorded provenance group.

    Returns:
        Output files in group processing order
    """
    output_dir = validate_directory_exists(output_dir, create=True)
    logger.info(f"Splitting {matrix_file} into {len(column_ranges)} files")

    output_files = []
    for group, column_range in column_ranges.items():
        if column_range.width == 0:
            logger.warning(f"No samples from {group.path}; output has no sample columns")
        output_file = output_dir / group.output_name(tool, unit)
        output_files.append(split_matrix(matrix_file, output_file, column_range, translation))

    return output_files
