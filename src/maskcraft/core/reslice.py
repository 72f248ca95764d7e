"""
Shape reconciliation between volumes.

When two volumes must be combined voxel by voxel but their grids differ,
the target volume is resampled to the reference shape with
nearest-neighbour interpolation. Nearest-neighbour keeps mask values
binary; no higher-order interpolation is ever used.
"""

import logging
from typing import Optional, Sequence

import numpy as np
from scipy.ndimage import zoom

from maskcraft.core.errors import ShapeMismatchError
from maskcraft.core.volume import Volume

logger = logging.getLogger(__name__)


def resample_nearest(data: np.ndarray, target_shape: Sequence[int]) -> np.ndarray:
    """
    Resample an array to ``target_shape`` by nearest-neighbour lookup.

    Voxel centres are aligned the way image-resize routines do it
    (``grid_mode=True``), so each output voxel takes the value of the input
    voxel whose extent contains its centre.

    Parameters
    ----------
    data : np.ndarray
        Input array.
    target_shape : sequence of int
        Desired output shape, same rank as ``data``.

    Returns
    -------
    np.ndarray
        Resampled array of shape ``target_shape`` and the input dtype.
    """
    target_shape = tuple(int(s) for s in target_shape)
    if data.ndim != len(target_shape):
        raise ShapeMismatchError(
            f"Cannot reslice array of rank {data.ndim} to shape {target_shape}",
            data.shape,
            target_shape,
        )

    factors = [t / s for t, s in zip(target_shape, data.shape)]
    source = data.astype(np.uint8) if data.dtype == bool else data

    resampled = zoom(source, factors, order=0, mode="nearest", grid_mode=True)

    if data.dtype == bool:
        resampled = resampled.astype(bool)
    return resampled


def reconcile(
    reference_shape: Sequence[int],
    volume: Volume,
    label: Optional[str] = None,
) -> Volume:
    """
    Make ``volume`` match ``reference_shape``.

    Parameters
    ----------
    reference_shape : sequence of int
        Shape the volume has to match.
    volume : Volume
        Volume to reconcile (typically a mask).
    label : str, optional
        Context added to the reslice warning (e.g. the image being processed).

    Returns
    -------
    Volume
        ``volume`` itself when shapes already agree, otherwise a new volume
        holding the resampled data. The header of the new volume is still
        the input's; callers that persist it must substitute the reference
        header.
    """
    reference_shape = tuple(reference_shape)
    if volume.shape == reference_shape:
        return volume

    context = f" ({label})" if label else ""
    logger.warning(
        f"{volume.name} dimensions {volume.shape} mismatch {reference_shape}{context}. "
        f"Reslicing..."
    )
    return volume.with_data(resample_nearest(volume.data, reference_shape))
