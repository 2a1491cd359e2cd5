"""
Configuration loading and tissue-cluster resolution.

Two files drive a run:

- ``config.txt``: ``key = value`` lines giving the GTEx/TCGA roots, the UBU
  install and the gene translation table.
- ``tissue-conf.txt``: tab-delimited rows ``cluster, GTEx tissue, GTEx batch,
  TCGA cohort, TCGA batch``. All rows sharing the requested tissue's cluster
  number are combined into one matrix.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Union

from .errors import ConfigurationError
from .matrix import ProvenanceGroup
from .quantify import QuantTool, QuantUnit

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.txt"
DEFAULT_TISSUE_CONF = "tissue-conf.txt"

REQUIRED_CONFIG_KEYS = ("gtex_path", "tcga_path", "ENSG_UCSC_common_genes")

_CONFIG_LINE = re.compile(r'^\s*([^=\s]+)\s*=\s*(.*)$')

TUMOR_SUFFIX = "-t"


class PipelineConfig(NamedTuple):
    gtex_path: Path
    tcga_path: Path
    gene_table: Path
    ubu_dir: Optional[Path] = None
    combat_script: Optional[Path] = None

    @property
    def gtex_sra_path(self) -> Path:
        return self.gtex_path / "sra"


class TissueRow(NamedTuple):
    cluster: str
    gtex_tissue: str
    gtex_batch: str
    tcga_tissue: str
    tcga_batch: str


class ClusterPlan(NamedTuple):
    """Everything needed to assemble one cluster's matrix."""
    cluster: str
    prefix: str
    groups: List[ProvenanceGroup]


def read_config_file(config_file: Union[str, Path]) -> Dict[str, str]:
    """
    Parse a ``key = value`` file; lines starting with ``#`` are ignored.

    Raises:
        ConfigurationError: If the file does not exist
    """
    config_file = Path(config_file)
    if not config_file.exists():
        raise ConfigurationError(f"The configuration file {config_file} does not exist")

    values = {}
    with open(config_file, 'r') as f:
        for line in f:
            if line.startswith('#'):
                continue
            match = _CONFIG_LINE.match(line.rstrip('\n'))
            if match:
                values[match.group(1)] = match.group(2).strip()
    return values


def load_config(config_file: Union[str, Path]) -> PipelineConfig:
    """Load and check the global configuration."""
    values = read_config_file(config_file)

    missing = [key for key in REQUIRED_CONFIG_KEYS if not values.get(key)]
    if missing:
        raise ConfigurationError(f"Missing keys in {config_file}: {', '.join(missing)}")

    return PipelineConfig(
        gtex_path=Path(values["gtex_path"]),
        tcga_path=Path(values["tcga_path"]),
        gene_table=Path(values["ENSG_UCSC_common_genes"]),
        ubu_dir=Path(values["ubu_dir"]) if values.get("ubu_dir") else None,
        combat_script=Path(values["combat_script"]) if values.get("combat_script") else None,
    )


def read_tissue_conf(tissue_conf: Union[str, Path]) -> List[TissueRow]:
    """Read the non-comment rows of a tissue-cluster file."""
    tissue_conf = Path(tissue_conf)
    if not tissue_conf.exists():
        raise ConfigurationError(f"Cannot find tissue configuration file {tissue_conf}")

    rows = []
    with open(tissue_conf, 'r') as f:
        for line in f:
            line = line.rstrip('\n').rstrip('\r')
            if not line.strip() or line.startswith('#'):
                continue
            fields = line.split('\t')
            if len(fields) < len(TissueRow._fields):
                raise ConfigurationError(f"Malformed row in {tissue_conf}: {line!r}")
            rows.append(TissueRow(*(field.strip() for field in fields[:len(TissueRow._fields)])))

    if not rows:
        raise ConfigurationError(f"{tissue_conf} is empty")
    return rows


def find_cluster(tissue: str, rows: List[TissueRow]) -> str:
    """
    Cluster number of ``tissue``, matched against GTEx or TCGA tissue names.

    Raises:
        ConfigurationError: If the tissue is unknown or in several clusters
    """
    clusters = {row.cluster for row in rows if tissue in (row.gtex_tissue, row.tcga_tissue)}
    if not clusters:
        raise ConfigurationError(f"{tissue} not found in tissue configuration")
    if len(clusters) > 1:
        raise ConfigurationError(
            f"{tissue} does not have a unique cluster #: {','.join(sorted(clusters))}"
        )
    return clusters.pop()


def _existing(base: Path, name: str) -> Optional[Path]:
    if not name:
        return None
    path = base / name
    return path if path.exists() else None


def row_groups(row: TissueRow, config: PipelineConfig) -> List[ProvenanceGroup]:
    """GTEx normal, TCGA normal and TCGA tumor groups of a row, where present."""
    groups = []

    gtex_dir = _existing(config.gtex_sra_path, row.gtex_tissue)
    if gtex_dir:
        groups.append(ProvenanceGroup(gtex_dir, "normal", row.gtex_batch, "gtex", row.gtex_tissue))

    tcga_dir = _existing(config.tcga_path, row.tcga_tissue)
    if tcga_dir:
        groups.append(ProvenanceGroup(tcga_dir, "normal", row.tcga_batch, "tcga", row.tcga_tissue))

    tumor_dir = _existing(config.tcga_path, row.tcga_tissue + TUMOR_SUFFIX) if row.tcga_tissue else None
    if tumor_dir:
        groups.append(ProvenanceGroup(tumor_dir, "tumor", row.tcga_batch, "tcga-t", row.tcga_tissue))

    return groups


def resolve_cluster(
    tissue: str,
    tissue_conf: Union[str, Path],
    config: PipelineConfig,
    tool: QuantTool,
    unit: QuantUnit
) -> ClusterPlan:
    """
    Resolve a tissue into its cluster's provenance groups and output prefix.

    Args:
        tissue: GTEx tissue or TCGA cohort name
        tissue_conf: Tissue-cluster file
        config: Global configuration
        tool: Quantification tool, part of the prefix
        unit: Expression unit, part of the prefix

    Returns:
        ClusterPlan with groups in configuration order

    Raises:
        ConfigurationError: On unknown/ambiguous tissue, rows without any
            source directory, or no row with both GTEx and TCGA normals
    """
    rows = read_tissue_conf(tissue_conf)
    cluster = find_cluster(tissue, rows)
    logger.info(f"{tissue} is in cluster {cluster}")

    prefix = None
    groups = []
    for row in (r for r in rows if r.cluster == cluster):
        row_sources = row_groups(row, config)
        if not row_sources:
            raise ConfigurationError(
                f"Nonexistent paths for {row.gtex_tissue}/{row.tcga_tissue}"
            )

        gtex_dir = _existing(config.gtex_sra_path, row.gtex_tissue)
        tcga_dir = _existing(config.tcga_path, row.tcga_tissue)
        # The last row with both normals names the matrix
        if (gtex_dir and (gtex_dir / "SraRunTable.txt").exists()
                and tcga_dir and (tcga_dir / "summary.tsv").exists()):
            prefix = f"{row.gtex_tissue}-{row.tcga_tissue}-{QuantTool(tool).value}-{QuantUnit(unit).value}"

        groups.extend(row_sources)

    if prefix is None:
        raise ConfigurationError("There should be >=1 tissue with both GTEx and TCGA normals")

    logger.debug(f"Cluster {cluster}: {len(groups)} source groups, prefix {prefix}")
    return ClusterPlan(cluster, prefix, groups)
