"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path

import nibabel as nib
import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def affine():
    """2mm isotropic affine with an origin offset."""
    affine = np.eye(4)
    affine[0, 0] = 2
    affine[1, 1] = 2
    affine[2, 2] = 2
    affine[:3, 3] = [-20, -20, -20]
    return affine


@pytest.fixture
def write_nifti(temp_dir, affine):
    """Return a helper writing an array to a NIfTI file under temp_dir."""

    def _write(name, data, folder=None, img_affine=None):
        folder = temp_dir / folder if folder else temp_dir
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / name
        img = nib.Nifti1Image(
            np.asarray(data, dtype=np.float32),
            affine if img_affine is None else img_affine,
        )
        nib.save(img, path)
        return path

    return _write


@pytest.fixture
def roi_mask_data():
    """10x10x10 binary mask with a 4x4x4 active cube."""
    data = np.zeros((10, 10, 10), dtype=np.float32)
    data[3:7, 3:7, 3:7] = 1
    return data


@pytest.fixture
def sample_images(write_nifti):
    """Three constant-valued images (1, 2, 3) in an images/ folder."""
    paths = []
    for i in range(1, 4):
        data = np.full((10, 10, 10), float(i), dtype=np.float32)
        paths.append(write_nifti(f"sub-0{i}_pet.nii", data, folder="images"))
    return paths
