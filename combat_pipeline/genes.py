"""
Gene identifier translation.

Loads the Ensembl -> HUGO -> Entrez table used to label matrix rows and
split outputs.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union
import pandas as pd

from .utils import validate_file_exists

logger = logging.getLogger(__name__)

# Entrez id written for symbols missing from the translation table
MISSING_ENTREZ_ID = "0"


class GeneTranslation:
    """Gene id -> display symbol and display symbol -> Entrez id lookups."""

    def __init__(
        self,
        ensembl_to_symbol: Optional[Dict[str, str]] = None,
        symbol_to_entrez: Optional[Dict[str, str]] = None
    ):
        self.ensembl_to_symbol = dict(ensembl_to_symbol or {})
        self.symbol_to_entrez = dict(symbol_to_entrez or {})

    @classmethod
    def from_file(cls, table_file: Union[str, Path]) -> "GeneTranslation":
        """
        Load a translation table.

        Args:
            table_file: Tab-delimited file without header; columns are
                gene id, display symbol, Entrez id

        Returns:
            GeneTranslation built from the table (later rows win)
        """
        validate_file_exists(table_file)
        logger.info(f"Loading gene translation table {table_file}")

        df = pd.read_csv(
            table_file, sep='\t', header=None, dtype=str,
            keep_default_na=False, usecols=[0, 1, 2],
            names=['gene_id', 'symbol', 'entrez_id'],
        ).fillna('')
        ensembl_to_symbol = dict(zip(df['gene_id'], df['symbol']))
        symbol_to_entrez = dict(zip(df['symbol'], df['entrez_id']))

        logger.debug(f"Loaded {len(ensembl_to_symbol)} gene ids, {len(symbol_to_entrez)} symbols")
        return cls(ensembl_to_symbol, symbol_to_entrez)

    def __contains__(self, gene_id: str) -> bool:
        return gene_id in self.ensembl_to_symbol

    def symbol(self, gene_id: str) -> Optional[str]:
        return self.ensembl_to_symbol.get(gene_id)

    def entrez_id(self, symbol: str) -> str:
        """Entrez id for a symbol, MISSING_ENTREZ_ID when unknown or blank."""
        return self.symbol_to_entrez.get(symbol) or MISSING_ENTREZ_ID
