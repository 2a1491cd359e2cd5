"""
Sample barcode resolution.

GTEx source directories carry an SRA run table (``SraRunTable.txt``) and
TCGA directories a CGHub summary (``summary.tsv``). Both map an internal
run/analysis id to the human readable barcode used as matrix column label.
"""

import logging
from pathlib import Path
from typing import Dict, NamedTuple, Union

from .errors import FormatError
from .utils import find_header, column_index, iter_tsv_rows

logger = logging.getLogger(__name__)


class MetadataDialect(NamedTuple):
    filename: str
    sentinel: str
    id_column: str
    barcode_column: str


SRA_RUN_TABLE = MetadataDialect('SraRunTable.txt', 'Assay_Type_s', 'Run_s', 'Sample_Name_s')
CGHUB_SUMMARY = MetadataDialect('summary.tsv', 'study', 'analysis_id', 'barcode')

# Checked in order; the first file present wins
METADATA_DIALECTS = (SRA_RUN_TABLE, CGHUB_SUMMARY)


def detect_dialect(source_dir: Union[str, Path]) -> MetadataDialect:
    """
    Find which metadata file a source directory carries.

    Raises:
        FormatError: If neither SraRunTable.txt nor summary.tsv exists
    """
    source_dir = Path(source_dir)
    for dialect in METADATA_DIALECTS:
        if (source_dir / dialect.filename).exists():
            return dialect
    raise FormatError(
        source_dir,
        "File SraRunTable.txt or summary.tsv do not exist in",
    )


def parse_metadata(metadata_file: Union[str, Path], dialect: MetadataDialect) -> Dict[str, str]:
    """
    Parse a metadata table into an id -> barcode mapping.

    Args:
        metadata_file: SRA run table or CGHub summary
        dialect: Layout of the file

    Returns:
        Dictionary of internal sample id to barcode
    """
    header = find_header(metadata_file, dialect.sentinel)
    id_idx = column_index(header, dialect.id_column, metadata_file)
    barcode_idx = column_index(header, dialect.barcode_column, metadata_file)

    barcodes = {}
    for fields in iter_tsv_rows(metadata_file):
        if fields[0].startswith(dialect.sentinel):
            continue
        if len(fields) <= max(id_idx, barcode_idx):
            continue
        barcodes[fields[id_idx]] = fields[barcode_idx]

    return barcodes


def resolve_barcodes(source_dir: Union[str, Path]) -> Dict[str, str]:
    """
    Build the sample id -> barcode mapping for one source directory.

    Args:
        source_dir: GTEx tissue or TCGA cohort directory

    Returns:
        Dictionary of internal sample id to barcode

    Raises:
        FormatError: If no supported metadata file exists or a needed
            column is missing from its header
    """
    source_dir = Path(source_dir)
    dialect = detect_dialect(source_dir)
    metadata_file = source_dir / dialect.filename

    barcodes = parse_metadata(metadata_file, dialect)
    logger.debug(f"Resolved {len(barcodes)} barcodes from {metadata_file}")
    return barcodes
