"""
Combat Pipeline

Assembles GTEx/TCGA expression matrices per tissue cluster, optionally
corrects batch effects with ComBat and splits the result per source.
"""

__version__ = "1.0.0"
