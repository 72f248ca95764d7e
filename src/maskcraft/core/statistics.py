"""
Masked statistics on volumes.
"""

import logging

import numpy as np

from maskcraft.core.errors import DimensionMismatchError
from maskcraft.core.volume import Volume

logger = logging.getLogger(__name__)


def masked_mean(image: Volume, mask: Volume) -> float:
    """
    Mean of ``image`` over the active voxels of ``mask``, ignoring NaNs.

    Parameters
    ----------
    image : Volume
        Image volume.
    mask : Volume
        Binarized mask with the same shape as ``image``.

    Returns
    -------
    float
        Mean of the selected non-NaN values, or NaN when the mask selects
        nothing or only NaN voxels.

    Raises
    ------
    DimensionMismatchError
        If image and mask shapes differ.
    """
    if image.shape != mask.shape:
        raise DimensionMismatchError(
            f"Dimension mismatch between image and mask: {image.name} "
            f"{image.shape} vs {mask.name} {mask.shape}",
            image.shape,
            mask.shape,
        )

    selected = image.data[mask.data.astype(bool, copy=False)]
    if selected.size == 0 or np.all(np.isnan(selected)):
        logger.debug(f"No valid voxels of {image.name} inside {mask.name}")
        return float("nan")

    return float(np.nanmean(selected))
