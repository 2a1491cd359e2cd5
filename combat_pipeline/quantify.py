"""
Quantification module for per-sample gene expression records.

This module locates the RSEM or featureCounts output of one sample for the
requested unit, optionally runs upper-quartile normalization on it, and
returns the gene id -> value records fed into the expression matrix.
"""

import logging
import subprocess
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, NamedTuple, Optional, Tuple, Union
import pandas as pd

from .errors import ExternalToolError
from .genes import GeneTranslation
from .utils import (
    validate_directory_exists, validate_file_exists, is_nonempty_file,
    locate_header, column_index, remove_files
)

logger = logging.getLogger(__name__)


class QuantTool(str, Enum):
    RSEM = "rsem"
    FEATURECOUNTS = "featurecounts"


class QuantUnit(str, Enum):
    TPM = "tpm"
    COUNT = "count"
    FPKM = "fpkm"


RSEM_RESULTS = "Quant.genes.results"
FCOUNTS_FPKM = "fcounts.fpkm"

# Both must be non-empty for a sample to be used, whatever the tool
REQUIRED_SAMPLE_FILES = (FCOUNTS_FPKM, RSEM_RESULTS)

RSEM_HEADER_SENTINEL = "gene_id"
RSEM_VALUE_COLUMNS = {
    QuantUnit.TPM: "TPM",
    QuantUnit.COUNT: "expected_count",
    QuantUnit.FPKM: "FPKM",
}

# Column names of a gene id / value table
VALUE_COLUMNS = ["gene_id", "value"]

# Per-sample scratch directory for normalization intermediates
WORK_DIR = "ubu-quan"


class SampleRecords(NamedTuple):
    sample_id: str
    values: Dict[str, str]
    # Rows read from the sample file, repeated gene ids included
    n_records: int = 0


class QuartileNormalizer:
    """
    Upper-quartile normalization through UBU's ``quartile_norm.pl``.

    The script rescales column 2 of a two-column table so that its 75th
    percentile equals 1000.
    """

    def __init__(
        self,
        ubu_dir: Union[str, Path],
        column: int = 2,
        quantile: int = 75,
        target: int = 1000,
        perl: str = "perl"
    ):
        self.ubu_dir = Path(ubu_dir)
        self.column = column
        self.quantile = quantile
        self.target = target
        self.perl = perl

    @property
    def script(self) -> Path:
        return self.ubu_dir / "perl" / "quartile_norm.pl"

    def run(self, input_file: Path, output_file: Path) -> Path:
        """
        Normalize ``input_file`` into ``output_file``.

        Raises:
            ExternalToolError: If the script fails or writes nothing
        """
        cmd = [
            self.perl, str(self.script),
            '-c', str(self.column),
            '-q', str(self.quantile),
            '-t', str(self.target),
            '-o', str(output_file),
            str(input_file)
        ]
        logger.debug(f"Running {' '.join(cmd)}")

        try:
            subprocess.run(cmd, check=True, capture_output=True, text=True)
        except (subprocess.CalledProcessError, OSError) as e:
            logger.error(f"quartile_norm.pl failed for {input_file}: {e}")
            raise ExternalToolError(self.script) from e

        if not is_nonempty_file(output_file):
            raise ExternalToolError(self.script, "No output produced by")
        return output_file


def read_rsem_table(results_file: Path, column_name: str) -> pd.DataFrame:
    """
    Project an RSEM genes.results file to its gene id and one value column.

    Args:
        results_file: RSEM output with a header row starting with gene_id
        column_name: Exact name of the value column

    Returns:
        DataFrame with VALUE_COLUMNS, one row per data line, values as text

    Raises:
        FormatError: If the header row or the column is missing
    """
    header_line, header = locate_header(results_file, RSEM_HEADER_SENTINEL)
    idx = column_index(header, column_name, results_file)

    df = pd.read_csv(
        results_file, sep='\t', dtype=str, keep_default_na=False,
        skiprows=header_line, usecols=[0, idx],
    )
    df.columns = VALUE_COLUMNS
    return df


def read_rsem_column(results_file: Path, column_name: str) -> Dict[str, str]:
    """Gene id -> value text for one column of an RSEM genes.results file."""
    return _to_dict(read_rsem_table(results_file, column_name))


def read_value_table(table_file: Path) -> pd.DataFrame:
    """
    Read the first two columns of a headerless gene id / value table.

    A row without a value column gets an empty value.
    """
    if not is_nonempty_file(table_file):
        validate_file_exists(table_file)
        return pd.DataFrame(columns=VALUE_COLUMNS)

    df = pd.read_csv(
        table_file, sep='\t', header=None, dtype=str, keep_default_na=False,
        usecols=[0, 1],
    ).fillna('')
    df.columns = VALUE_COLUMNS
    return df


def _to_dict(table: pd.DataFrame) -> Dict[str, str]:
    return dict(zip(table['gene_id'], table['value']))


def _write_table(table: pd.DataFrame, output_file: Path) -> None:
    table.to_csv(output_file, sep='\t', header=False, index=False)


class QuantReader:
    """
    Reads one sample's expression records for a fixed tool and unit.

    Args:
        tool: Quantification tool that produced the sample files
        unit: Expression unit to extract
        translation: Gene translation, used to filter before normalization
        normalizer: Required for RSEM + FPKM
    """

    def __init__(
        self,
        tool: QuantTool,
        unit: QuantUnit,
        translation: GeneTranslation,
        normalizer: Optional[QuartileNormalizer] = None
    ):
        self.tool = QuantTool(tool)
        self.unit = QuantUnit(unit)
        self.translation = translation
        self.normalizer = normalizer
        self._read_values = RECORD_READERS[(self.tool, self.unit)]

        if self.uses_normalization and normalizer is None:
            raise ValueError(f"{self.tool.value}/{self.unit.value} requires a normalizer")

    @property
    def uses_normalization(self) -> bool:
        return self._read_values is _read_rsem_normalized

    def has_required_files(self, sample_dir: Path) -> bool:
        return all(is_nonempty_file(sample_dir / name) for name in REQUIRED_SAMPLE_FILES)

    def read(self, sample_dir: Union[str, Path]) -> Optional[SampleRecords]:
        """
        Read one sample directory.

        Returns:
            SampleRecords, or None if the sample lacks its required files
        """
        sample_dir = Path(sample_dir)
        if not self.has_required_files(sample_dir):
            logger.warning(f"Skip {sample_dir.name}: missing {' or '.join(REQUIRED_SAMPLE_FILES)}")
            return None

        table = self._read_values(self, sample_dir)
        return SampleRecords(sample_dir.name, _to_dict(table), len(table))


def _read_rsem_direct(reader: QuantReader, sample_dir: Path) -> pd.DataFrame:
    table = read_rsem_table(sample_dir / RSEM_RESULTS, RSEM_VALUE_COLUMNS[reader.unit])
    remove_files(sample_dir / WORK_DIR, "temp*.txt")
    return table


def _read_rsem_normalized(reader: QuantReader, sample_dir: Path) -> pd.DataFrame:
    # Intermediates stay in ubu-quan/ after the run
    work_dir = validate_directory_exists(sample_dir / WORK_DIR, create=True)
    projected_file = work_dir / "temp0.txt"
    filtered_file = work_dir / "temp1.txt"
    normalized_file = work_dir / "temp2.txt"

    projected = read_rsem_table(sample_dir / RSEM_RESULTS, RSEM_VALUE_COLUMNS[QuantUnit.FPKM])
    _write_table(projected, projected_file)

    filtered = projected[projected['gene_id'].map(lambda gene_id: gene_id in reader.translation)]
    _write_table(filtered, filtered_file)

    reader.normalizer.run(filtered_file, normalized_file)
    return read_value_table(normalized_file)


def _read_fcounts(reader: QuantReader, sample_dir: Path) -> pd.DataFrame:
    table = read_value_table(sample_dir / f"fcounts.{reader.unit.value}")
    remove_files(sample_dir / WORK_DIR, "temp*.txt")
    return table


RECORD_READERS: Dict[Tuple[QuantTool, QuantUnit], Callable[[QuantReader, Path], pd.DataFrame]] = {
    (QuantTool.RSEM, QuantUnit.TPM): _read_rsem_direct,
    (QuantTool.RSEM, QuantUnit.COUNT): _read_rsem_direct,
    (QuantTool.RSEM, QuantUnit.FPKM): _read_rsem_normalized,
    (QuantTool.FEATURECOUNTS, QuantUnit.TPM): _read_fcounts,
    (QuantTool.FEATURECOUNTS, QuantUnit.COUNT): _read_fcounts,
    (QuantTool.FEATURECOUNTS, QuantUnit.FPKM): _read_fcounts,
}
