"""Tests for volume loading and saving."""

import nibabel as nib
import numpy as np
import pytest

from maskcraft.core.errors import VolumeReadError
from maskcraft.core.volume import Volume, VolumeStore, strip_nifti_extension


class TestStripExtension:

    @pytest.mark.parametrize("path,expected", [
        ("sub-01_Fixed.nii", "sub-01_Fixed"),
        ("/data/sub-01_Fixed.nii.gz", "sub-01_Fixed"),
        ("scan.NII", "scan"),
        ("table.csv", "table"),
    ])
    def test_strip(self, path, expected):
        assert strip_nifti_extension(path) == expected


class TestVolumeStore:
    """Tests for VolumeStore."""

    def test_load(self, write_nifti, affine):
        path = write_nifti("img.nii", np.full((4, 4, 4), 2.0))

        volume = VolumeStore().load(path)

        assert volume.shape == (4, 4, 4)
        assert volume.data.dtype == np.float64
        assert volume.name == "img.nii"
        np.testing.assert_allclose(volume.affine, affine)

    def test_load_missing(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            VolumeStore().load(temp_dir / "missing.nii")

    def test_load_not_nifti(self, temp_dir):
        """Unreadable files raise a MaskCraft error naming the file."""
        path = temp_dir / "notes.txt"
        path.write_text("not an image")

        with pytest.raises(VolumeReadError, match="notes.txt"):
            VolumeStore().load(path)

    def test_load_drops_trailing_singleton(self, write_nifti):
        """(X, Y, Z, 1) images load as 3-D volumes."""
        path = write_nifti("pet4d.nii", np.full((4, 5, 6, 1), 3.0))

        volume = VolumeStore().load(path)

        assert volume.shape == (4, 5, 6)
        np.testing.assert_allclose(volume.data, 3.0)

    def test_load_keeps_real_fourth_axis(self, write_nifti):
        path = write_nifti("series.nii", np.ones((4, 4, 4, 3)))
        assert VolumeStore().load(path).shape == (4, 4, 4, 3)

    def test_load_mask_binarizes(self, write_nifti):
        """Any positive value is inside the mask; zero and negatives are not."""
        data = np.array([[[0.0, 0.2], [1.0, -1.0]], [[3.0, 0.0], [0.0, 0.0]]])
        path = write_nifti("mask.nii", data)

        mask = VolumeStore().load_mask(path)

        assert mask.is_mask
        np.testing.assert_array_equal(mask.data, data > 0)

    def test_save_roundtrip_keeps_float(self, temp_dir, affine):
        """Float results are not truncated by an integer source header."""
        source = nib.Nifti1Image(np.ones((3, 3, 3), dtype=np.int16), affine)
        volume = Volume(np.full((3, 3, 3), 0.25), affine, header=source.header)

        path = VolumeStore().save(volume, temp_dir / "nested" / "out.nii")

        img = nib.load(path)
        np.testing.assert_allclose(img.get_fdata(), 0.25)
        np.testing.assert_allclose(img.affine, affine)

    def test_save_mask(self, temp_dir):
        data = np.zeros((3, 3, 3), dtype=bool)
        data[1, 1, 1] = True

        path = VolumeStore().save(Volume(data, np.eye(4)), temp_dir / "mask.nii.gz")

        np.testing.assert_array_equal(nib.load(path).get_fdata() > 0, data)


class TestVolume:

    def test_with_data_keeps_metadata(self, affine):
        volume = Volume(np.zeros((2, 2, 2)), affine, path="a.nii")
        derived = volume.with_data(np.ones((2, 2, 2)))

        assert derived is not volume
        assert derived.affine is volume.affine
        assert derived.name == "a.nii"
        assert volume.data.sum() == 0

    def test_in_memory_name(self):
        assert Volume(np.zeros((2, 2, 2)), np.eye(4)).name == "<in-memory>"
