"""
Difference images between paired volumes.

This module handles:
- Voxelwise subtraction of a "subtract" volume from a "fixed" volume
- Optional centering on the mean inside a centering mask
- Optional zeroing of voxels outside an output mask
- Naming and saving the resulting difference volume

Centering and masking are optional stages of an ordered pipeline. Each
stage takes the current difference volume and returns a new one; the
masks involved are only read, never modified.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple, Union

import numpy as np

from maskcraft.core.errors import ShapeMismatchError
from maskcraft.core.pairing import DifferencePair
from maskcraft.core.reslice import reconcile
from maskcraft.core.volume import Volume, VolumeStore, strip_nifti_extension

logger = logging.getLogger(__name__)

Stage = Callable[[Volume, Dict[str, Any]], Volume]


class DifferenceResult(NamedTuple):
    """Outcome of one fixed/subtract pair."""

    fixed: Optional[Path]
    subtract: Optional[Path]
    name: str
    volume: Volume
    center_mean: Optional[float]
    output_path: Optional[Path] = None


def difference_name(fixed: Union[str, Path], subtract: Union[str, Path]) -> str:
    """Output name ``<fixed>_minus_<subtract>_difference`` without extension."""
    return (
        f"{strip_nifti_extension(fixed)}_minus_"
        f"{strip_nifti_extension(subtract)}_difference"
    )


def subtract_volumes(fixed: Volume, subtract: Volume) -> Volume:
    """
    Compute ``fixed - subtract`` voxelwise.

    The result keeps the header and affine of ``fixed``.

    Raises
    ------
    ShapeMismatchError
        If the two volumes do not share a shape. No reslicing is attempted
        between fixed and subtract images.
    """
    if fixed.shape != subtract.shape:
        raise ShapeMismatchError(
            f"Shape mismatch between {fixed.name} {fixed.shape} and "
            f"{subtract.name} {subtract.shape}",
            fixed.shape,
            subtract.shape,
        )

    data = fixed.data.astype(np.float64, copy=False) - subtract.data.astype(np.float64, copy=False)
    return fixed.with_data(data)


def center_volume(volume: Volume, mask: Volume, label: Optional[str] = None) -> Tuple[Volume, float]:
    """
    Subtract the mean inside ``mask`` from every voxel of ``volume``.

    The mean is a plain mean: a NaN inside the mask makes it NaN.

    Returns
    -------
    tuple of (Volume, float)
        Centered volume and the mean that was removed.
    """
    mask = reconcile(volume.shape, mask, label=label)
    selected = volume.data[mask.data.astype(bool, copy=False)]

    if selected.size == 0:
        logger.warning(f"Centering mask {mask.name} selects no voxels ({label or volume.name})")
        mean_value = float("nan")
    else:
        mean_value = float(np.mean(selected))

    return volume.with_data(volume.data - mean_value), mean_value


def mask_volume(volume: Volume, mask: Volume, label: Optional[str] = None) -> Volume:
    """Set every voxel of ``volume`` outside ``mask`` to 0."""
    mask = reconcile(volume.shape, mask, label=label)
    keep = mask.data.astype(bool, copy=False)
    data = np.where(keep, volume.data, 0).astype(volume.data.dtype, copy=False)
    return volume.with_data(data)


class DifferenceComputer:
    """
    Computes difference volumes for fixed/subtract pairs.

    Parameters
    ----------
    center_mask : Volume, optional
        Binarized mask used to compute the centering mean.
    output_mask : Volume, optional
        Binarized mask applied to the final difference.
    center_enabled : bool, optional
        Whether to center. Defaults to True when ``center_mask`` is given.
    mask_enabled : bool, optional
        Whether to mask. Defaults to True when ``output_mask`` is given.
    store : VolumeStore, optional
        Loader/saver for volumes.
    output_extension : str
        Extension of written files, ".nii" or ".nii.gz".
    """

    def __init__(
        self,
        center_mask: Optional[Volume] = None,
        output_mask: Optional[Volume] = None,
        center_enabled: Optional[bool] = None,
        mask_enabled: Optional[bool] = None,
        store: Optional[VolumeStore] = None,
        output_extension: str = ".nii",
    ):
        self.center_enabled = center_mask is not None if center_enabled is None else center_enabled
        self.mask_enabled = output_mask is not None if mask_enabled is None else mask_enabled

        if self.center_enabled and center_mask is None:
            raise ValueError("Centering is enabled but no centering mask was given")
        if self.mask_enabled and output_mask is None:
            raise ValueError("Masking is enabled but no output mask was given")

        self.center_mask = center_mask
        self.output_mask = output_mask
        self.store = store or VolumeStore()
        self.output_extension = output_extension
        self.stages: List[Tuple[str, Stage]] = self._build_stages()

    def _build_stages(self) -> List[Tuple[str, Stage]]:
        stages: List[Tuple[str, Stage]] = []
        if self.center_enabled:
            stages.append(("center", self._center_stage))
        if self.mask_enabled:
            stages.append(("mask", self._mask_stage))
        return stages

    def _center_stage(self, volume: Volume, notes: Dict[str, Any]) -> Volume:
        centered, mean_value = center_volume(volume, self.center_mask, label=notes.get("label"))
        notes["center_mean"] = mean_value
        logger.info(f"Centered difference image with mean value: {mean_value:g}")
        return centered

    def _mask_stage(self, volume: Volume, notes: Dict[str, Any]) -> Volume:
        return mask_volume(volume, self.output_mask, label=notes.get("label"))

    def compute(self, fixed: Volume, subtract: Volume) -> DifferenceResult:
        """
        Run subtraction and the enabled stages on two loaded volumes.

        Parameters
        ----------
        fixed : Volume
            Minuend; its header is kept for the output.
        subtract : Volume
            Subtrahend.

        Returns
        -------
        DifferenceResult
            Result with the final volume and the centering mean (if any).
        """
        name = difference_name(fixed.name, subtract.name)
        notes: Dict[str, Any] = {"label": fixed.name, "center_mean": None}

        volume = subtract_volumes(fixed, subtract)
        for stage_name, stage in self.stages:
            logger.debug(f"{name}: running stage '{stage_name}'")
            volume = stage(volume, notes)

        return DifferenceResult(
            fixed=fixed.path,
            subtract=subtract.path,
            name=name,
            volume=volume.with_data(volume.data, path=f"{name}{self.output_extension}"),
            center_mean=notes["center_mean"],
        )

    def process(
        self,
        pair: DifferencePair,
        output_dir: Optional[Union[str, Path]] = None,
    ) -> DifferenceResult:
        """
        Load a pair, compute its difference and optionally save it.

        Parameters
        ----------
        pair : DifferencePair
            Fixed and subtract paths.
        output_dir : str or Path, optional
            Folder to write the result to. Nothing is written when None.

        Returns
        -------
        DifferenceResult
            Result, with ``output_path`` set when saved.
        """
        fixed = self.store.load(pair.fixed)
        subtract = self.store.load(pair.subtract)
        result = self.compute(fixed, subtract)

        if output_dir is None:
            return result

        output_path = Path(output_dir) / f"{result.name}{self.output_extension}"
        self.store.save(result.volume, output_path)
        logger.info(f"Processed and saved: {fixed.name} minus {subtract.name}")
        return result._replace(output_path=output_path)
