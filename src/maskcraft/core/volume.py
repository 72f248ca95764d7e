"""
Volume loading and saving.

This module handles:
- Loading NIfTI volumes (array + header + affine)
- Loading and binarizing masks
- Building derived volumes that share a reference header
- Saving volumes back to NIfTI
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import nibabel as nib
import numpy as np
from nibabel.filebasedimages import ImageFileError
from nibabel.spatialimages import HeaderDataError
from nilearn.image import new_img_like

from maskcraft.core.errors import VolumeReadError

logger = logging.getLogger(__name__)

NIFTI_EXTENSIONS = (".nii.gz", ".nii")


def strip_nifti_extension(path: Union[str, Path]) -> str:
    """Return the file name of ``path`` without its .nii/.nii.gz extension."""
    name = Path(path).name
    for ext in NIFTI_EXTENSIONS:
        if name.lower().endswith(ext):
            return name[: -len(ext)]
    return Path(name).stem


class Volume:
    """
    A volumetric image: data array plus spatial metadata.

    Parameters
    ----------
    data : np.ndarray
        Voxel array of rank 3 or 4.
    affine : np.ndarray
        4x4 voxel-to-world transform.
    header : nibabel header, optional
        Header copied from the source (or reference) image.
    path : Path, optional
        File the data came from, if any.

    Notes
    -----
    Volumes are treated as immutable. Operations that change the data
    return a new Volume via :meth:`with_data`.
    """

    def __init__(
        self,
        data: np.ndarray,
        affine: np.ndarray,
        header: Optional[nib.Nifti1Header] = None,
        path: Optional[Union[str, Path]] = None,
    ):
        self.data = data
        self.affine = affine
        self.header = header
        self.path = Path(path) if path is not None else None

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self.data.shape)

    @property
    def name(self) -> str:
        return self.path.name if self.path is not None else "<in-memory>"

    @property
    def is_mask(self) -> bool:
        return self.data.dtype == bool

    def with_data(
        self,
        data: np.ndarray,
        path: Optional[Union[str, Path]] = None,
    ) -> "Volume":
        """Return a new volume with this volume's header and affine and new data."""
        return Volume(
            data=data,
            affine=self.affine,
            header=self.header,
            path=path if path is not None else self.path,
        )

    def to_image(self) -> nib.Nifti1Image:
        """Build a nibabel image from this volume."""
        data = self.data.astype(np.uint8) if self.is_mask else self.data
        reference = nib.Nifti1Image(data, self.affine, self.header)
        img = new_img_like(reference, data, affine=self.affine, copy_header=True)
        # Header dtype of the reference would otherwise truncate float results
        img.set_data_dtype(data.dtype)
        return img

    def __repr__(self) -> str:
        return f"Volume(name={self.name!r}, shape={self.shape}, dtype={self.data.dtype})"


class VolumeStore:
    """
    Reads and writes volumes with nibabel.

    Parameters
    ----------
    dtype : numpy dtype
        Floating type used for image data (default: float64).
    """

    def __init__(self, dtype=np.float64):
        self.dtype = dtype

    def load(self, path: Union[str, Path]) -> Volume:
        """
        Load an image volume.

        Parameters
        ----------
        path : str or Path
            Path to a .nii or .nii.gz file.

        Returns
        -------
        Volume
            Loaded volume with floating point data.
            Trailing singleton axes beyond the third are dropped.

        Raises
        ------
        VolumeReadError
            If the file is not a readable NIfTI image.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"NIfTI file not found: {path}")

        try:
            img = nib.load(path)
            data = img.get_fdata(dtype=self.dtype)
        except (ImageFileError, HeaderDataError) as e:
            raise VolumeReadError(f"Cannot read {path} as NIfTI: {e}") from e

        # (X, Y, Z, 1) volumes are 3-D for every voxelwise operation
        while data.ndim > 3 and data.shape[-1] == 1:
            data = data[..., 0]

        logger.debug(f"Loaded {path.name} with shape {data.shape}")
        return Volume(data=data, affine=img.affine, header=img.header, path=path)

    def load_mask(self, path: Union[str, Path]) -> Volume:
        """
        Load a mask and binarize it (``value > 0``).

        Binarization happens here and nowhere else; the returned
        volume holds a boolean array.
        """
        volume = self.load(path)
        mask = volume.data > 0
        logger.debug(f"Mask {volume.name}: {int(mask.sum())} active voxels")
        return volume.with_data(mask)

    def save(self, volume: Volume, path: Union[str, Path]) -> Path:
        """
        Save a volume to NIfTI.

        Parameters
        ----------
        volume : Volume
            Volume to write.
        path : str or Path
            Destination file (.nii or .nii.gz).

        Returns
        -------
        Path
            Path of the written file.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        nib.save(volume.to_image(), path)
        logger.debug(f"Saved {path}")
        return path
