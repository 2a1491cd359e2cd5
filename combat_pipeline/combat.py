"""
Batch-effect correction with ComBat.

The correction itself runs in R; this module writes the per-sample batch
file the R script reads and checks that a corrected matrix came back.
"""

import logging
import subprocess
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from .errors import ExternalToolError
from .utils import validate_file_exists, is_nonempty_file

logger = logging.getLogger(__name__)

DEFAULT_COMBAT_SCRIPT = Path(__file__).parent / "data" / "run-combat.R"


def batch_file_path(prefix: str, output_dir: Path) -> Path:
    return output_dir / f"{prefix}-combat-batch.txt"


def adjusted_matrix_path(prefix: str, output_dir: Path) -> Path:
    return output_dir / f"{prefix}.adjusted.txt"


def write_batch_file(annotations: Iterable[Tuple[str, str]], output_file: Path) -> Path:
    """
    Write one ``condition<TAB>batch`` line per sample, in matrix column order.

    The file ends with an extra blank line.
    """
    with open(output_file, 'w') as f:
        for condition, batch in annotations:
            f.write(f"{condition}\t{batch}\n")
        f.write("\n")
    return output_file


def run_combat(
    matrix_file: Path,
    batch_file: Path,
    adjusted_file: Path,
    script: Optional[Union[str, Path]] = None,
    rscript: str = "Rscript"
) -> Path:
    """
    Run the ComBat R script unless a corrected matrix already exists.

    Args:
        matrix_file: Assembled matrix
        batch_file: Batch annotations, one row per matrix sample
        adjusted_file: Expected corrected matrix (``<prefix>.adjusted.txt``)
        script: R script; the bundled run-combat.R by default
        rscript: Rscript executable

    Returns:
        Path to the corrected matrix

    Raises:
        ExternalToolError: If no non-empty corrected matrix is produced
    """
    script = Path(script) if script else DEFAULT_COMBAT_SCRIPT

    if is_nonempty_file(adjusted_file):
        logger.info(f"Using existing corrected matrix {adjusted_file}")
        return adjusted_file

    validate_file_exists(matrix_file)
    validate_file_exists(batch_file)

    # The script appends .txt to its output prefix
    out_prefix = adjusted_file.parent / adjusted_file.name[:-len(".txt")]
    cmd = [rscript, str(script), str(matrix_file), str(out_prefix), str(batch_file)]
    logger.info(f"Correcting batch effects: {' '.join(cmd)}")

    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True)
    except (subprocess.CalledProcessError, OSError) as e:
        logger.error(f"ComBat failed: {e}")
        raise ExternalToolError(script) from e

    if not is_nonempty_file(adjusted_file):
        raise ExternalToolError(script)
    return adjusted_file
