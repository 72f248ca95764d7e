"""
MaskCraft: batch ROI statistics and difference images for NIfTI volumes.

Extracts mean values of images inside binary masks over image x mask
pairings, and creates (optionally centered and masked) difference images
from Fixed/Subtract file pairs matched by name stem.
"""

__version__ = "0.1.0"
__author__ = "MaskCraft Contributors"

from maskcraft.config import Config
from maskcraft.core.difference import DifferenceComputer
from maskcraft.core.pairing import expand_pairings, pair_by_stem
from maskcraft.core.reslice import reconcile
from maskcraft.core.results import ResultAccumulator
from maskcraft.core.statistics import masked_mean
from maskcraft.core.volume import Volume, VolumeStore
from maskcraft.pipeline import MaskCraftPipeline

__all__ = [
    "Config",
    "DifferenceComputer",
    "expand_pairings",
    "pair_by_stem",
    "reconcile",
    "ResultAccumulator",
    "masked_mean",
    "Volume",
    "VolumeStore",
    "MaskCraftPipeline",
    "__version__",
]
