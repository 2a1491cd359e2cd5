"""
Expression matrix assembly.

Samples from every provenance group of a tissue cluster are appended to a
single gene x sample matrix. Columns are append-only, so each group owns a
contiguous column range that the split step later cuts back out.
"""

import logging
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Set, Tuple, Union

from .barcodes import resolve_barcodes
from .genes import GeneTranslation
from .quantify import QuantReader, SampleRecords
from .utils import read_sample_manifest

logger = logging.getLogger(__name__)

MATRIX_ID_COLUMN = "Gene"
SAMPLE_MANIFEST = Path("QC") / "filtered_samples.txt"


class ProvenanceGroup(NamedTuple):
    """
    One GTEx tissue or TCGA cohort directory.

    ``label`` is the configured tissue or cohort name used in output file
    names. A tumor directory ``LIHC-t`` is labelled ``LIHC``, since its role
    ``tcga-t`` already marks it. Without a label the directory name is used.
    """
    path: Path
    condition: str
    batch: str
    role: str
    label: str = ""

    @property
    def name(self) -> str:
        return self.label or self.path.name

    def output_name(self, tool: str, unit: str) -> str:
        return f"{self.name}-{tool}-{unit}-{self.role}.txt"


class ColumnRange(NamedTuple):
    """1-indexed inclusive span of matrix columns, as taken by ``cut -f``."""
    start: int
    end: int

    @property
    def width(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


class MatrixAssembler:
    """
    Owns the matrix being built and everything needed to split it again.

    The header line is streamed to ``matrix_file`` as samples are appended;
    body rows are written once all groups are in. Use as a context manager:
    if anything raises while the file is open, the partial matrix is removed.

    Args:
        matrix_file: Output path of the assembled matrix
        translation: Gene id -> display symbol lookup for row labels
    """

    def __init__(self, matrix_file: Union[str, Path], translation: GeneTranslation):
        self.matrix_file = Path(matrix_file)
        self.translation = translation

        self._samples: List[str] = []
        self._barcodes: List[str] = []
        self._values: List[Dict[str, str]] = []
        self._genes: Dict[str, None] = {}
        self._batch_annotations: List[Tuple[str, str]] = []
        self._column_ranges: Dict[ProvenanceGroup, ColumnRange] = {}
        self._visited: Set[Path] = set()
        self._fh = None

    def __enter__(self) -> "MatrixAssembler":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.close()
        else:
            self.abort()
        return False

    @property
    def n_samples(self) -> int:
        return len(self._samples)

    @property
    def samples(self) -> Tuple[str, ...]:
        return tuple(self._samples)

    @property
    def barcodes(self) -> Tuple[str, ...]:
        return tuple(self._barcodes)

    @property
    def genes(self) -> Tuple[str, ...]:
        return tuple(self._genes)

    @property
    def batch_annotations(self) -> Tuple[Tuple[str, str], ...]:
        return tuple(self._batch_annotations)

    @property
    def column_ranges(self) -> Dict[ProvenanceGroup, ColumnRange]:
        return dict(self._column_ranges)

    def open(self) -> None:
        logger.info(f"Writing data matrix {self.matrix_file}")
        self._fh = open(self.matrix_file, 'w')
        self._fh.write(MATRIX_ID_COLUMN)

    def is_visited(self, group: ProvenanceGroup) -> bool:
        return group.path.resolve() in self._visited

    def mark_visited(self, group: ProvenanceGroup) -> None:
        self._visited.add(group.path.resolve())

    def value(self, ordinal: int, gene_id: str) -> Optional[str]:
        return self._values[ordinal].get(gene_id)

    def append_sample(self, group: ProvenanceGroup, records: SampleRecords, barcode: str) -> int:
        """
        Append one sample as the next matrix column.

        Returns:
            The sample's 0-based ordinal
        """
        if self._fh is None:
            raise RuntimeError(f"Matrix {self.matrix_file} is not open")

        ordinal = len(self._samples)
        self._samples.append(records.sample_id)
        self._barcodes.append(barcode)
        self._values.append(records.values)
        self._batch_annotations.append((group.condition, group.batch))
        for gene_id in records.values:
            self._genes.setdefault(gene_id)

        self._fh.write(f"\t{barcode}")
        return ordinal

    def record_group(self, group: ProvenanceGroup, prior_samples: int) -> ColumnRange:
        """Record the columns appended since ``prior_samples`` as ``group``'s range."""
        if group in self._column_ranges:
            raise ValueError(f"Column range already recorded for {group.path}")

        column_range = ColumnRange(prior_samples + 2, self.n_samples + 1)
        self._column_ranges[group] = column_range
        return column_range

    def add_group(self, group: ProvenanceGroup, reader: QuantReader) -> Optional[ColumnRange]:
        """
        Append every usable sample of ``group`` and record its column range.

        Returns:
            The group's ColumnRange, or None if its directory was already used
        """
        prior_samples = self.n_samples
        added = process_group(self, group, reader)
        if added is None:
            return None

        column_range = self.record_group(group, prior_samples)
        logger.info(f"{group.name} ({group.role}): {added} samples, columns {column_range}")
        return column_range

    def _write_body(self) -> int:
        self._fh.write("\n")
        n_rows = 0
        for gene_id in self._genes:
            symbol = self.translation.symbol(gene_id)
            if symbol is None:
                continue
            row = [symbol] + [values.get(gene_id, '') for values in self._values]
            self._fh.write('\t'.join(row) + '\n')
            n_rows += 1
        return n_rows

    def close(self) -> None:
        """Finish the header, write body rows and close the matrix file."""
        if self._fh is None:
            return
        try:
            n_rows = self._write_body()
        finally:
            self._fh.close()
            self._fh = None
        logger.info(f"Data matrix: {n_rows} genes x {self.n_samples} samples")

    def abort(self) -> None:
        """Close and delete a partially written matrix."""
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        if self.matrix_file.exists():
            logger.warning(f"Removing incomplete matrix {self.matrix_file}")
            self.matrix_file.unlink()


def process_group(
    assembler: MatrixAssembler,
    group: ProvenanceGroup,
    reader: QuantReader
) -> Optional[int]:
    """
    Read every filtered sample of one provenance group into the matrix.

    Args:
        assembler: Matrix receiving the samples
        group: Source directory with its condition and batch label
        reader: Per-sample record reader for the run's tool and unit

    Returns:
        Number of samples appended, or None if the directory was already
        processed in this run
    """
    if assembler.is_visited(group):
        logger.debug(f"Skipping already processed {group.path}")
        return None
    assembler.mark_visited(group)

    barcodes = resolve_barcodes(group.path)
    sample_ids = read_sample_manifest(group.path / SAMPLE_MANIFEST)
    logger.info(f"Reading {len(sample_ids)} samples from {group.path}")

    added = 0
    for sample_id in sample_ids:
        records = reader.read(group.path / sample_id)
        if records is None:
            continue

        barcode = barcodes.get(sample_id) or sample_id
        assembler.append_sample(group, records, barcode)
        added += 1
        logger.info(f"{sample_id}\t{barcode}({group.name})\t{records.n_records}")

    return added
