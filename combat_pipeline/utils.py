"""
Utility functions for the Combat Pipeline.

This module provides common utility functions used across the pipeline,
including logging setup, file validation, and tab-delimited text helpers.
"""

import logging
from pathlib import Path
from typing import Iterator, List, Tuple, Union
from rich.logging import RichHandler
from rich.console import Console

from .errors import FormatError

console = Console()

# Number of leading lines searched for a metadata/results header row
HEADER_SEARCH_LINES = 10


def setup_logging(level: int = logging.INFO) -> None:
    """
    Set up logging with Rich handler for colored output.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )


def validate_file_exists(file_path: Union[str, Path]) -> Path:
    """
    Validate that a file exists and return Path object.

    Args:
        file_path: Path to file

    Returns:
        Path object if file exists

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return path


def validate_directory_exists(dir_path: Union[str, Path], create: bool = False) -> Path:
    """
    Validate that a directory exists, optionally create it.

    Args:
        dir_path: Path to directory
        create: Whether to create directory if it doesn't exist

    Returns:
        Path object

    Raises:
        FileNotFoundError: If directory doesn't exist and create=False
    """
    path = Path(dir_path)
    if not path.exists():
        if create:
            path.mkdir(parents=True, exist_ok=True)
        else:
            raise FileNotFoundError(f"Directory not found: {path}")
    return path


def is_nonempty_file(file_path: Union[str, Path]) -> bool:
    """True if the path is an existing file with size > 0."""
    path = Path(file_path)
    return path.is_file() and path.stat().st_size > 0


def iter_tsv_rows(file_path: Union[str, Path]) -> Iterator[List[str]]:
    """Yield the tab-separated fields of every non-blank line."""
    with open(file_path, 'r') as f:
        for line in f:
            line = line.rstrip('\n').rstrip('\r')
            if line:
                yield line.split('\t')


def locate_header(file_path: Union[str, Path], sentinel: str) -> Tuple[int, List[str]]:
    """
    Find the header row starting with ``sentinel``.

    Only the first HEADER_SEARCH_LINES lines are searched.

    Returns:
        0-based line number of the header and its fields

    Raises:
        FormatError: If no such row is found
    """
    with open(file_path, 'r') as f:
        for i, line in enumerate(f):
            if i >= HEADER_SEARCH_LINES:
                break
            if line.startswith(sentinel):
                return i, line.rstrip('\n').rstrip('\r').split('\t')
    raise FormatError(file_path)


def find_header(file_path: Union[str, Path], sentinel: str) -> List[str]:
    """Return the fields of the header row starting with ``sentinel``."""
    return locate_header(file_path, sentinel)[1]


def column_index(header: List[str], name: str, file_path: Union[str, Path]) -> int:
    """Position of ``name`` in ``header`` (exact match) or FormatError."""
    try:
        return header.index(name)
    except ValueError:
        raise FormatError(file_path) from None


def read_sample_manifest(manifest_path: Union[str, Path]) -> List[str]:
    """
    Read sample identifiers from a filtered sample list.

    Args:
        manifest_path: One sample per line; only the first tab field is used

    Returns:
        Sample identifiers in file order
    """
    return [fields[0] for fields in iter_tsv_rows(manifest_path) if fields[0]]


def remove_files(directory: Path, pattern: str) -> List[Path]:
    """Delete files in ``directory`` matching a glob pattern."""
    removed = []
    if not directory.is_dir():
        return removed
    for path in sorted(directory.glob(pattern)):
        if path.is_file():
            path.unlink()
            removed.append(path)
    return removed

