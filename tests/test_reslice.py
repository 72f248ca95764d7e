"""Tests for nearest-neighbour reslicing."""

import logging

import numpy as np
import pytest

from maskcraft.core.errors import ShapeMismatchError
from maskcraft.core.reslice import reconcile, resample_nearest
from maskcraft.core.volume import Volume


class TestResampleNearest:
    """Tests for resample_nearest."""

    def test_upsample_repeats_voxels(self):
        """Doubling the grid repeats every voxel along each axis."""
        data = np.arange(8, dtype=float).reshape(2, 2, 2)

        out = resample_nearest(data, (4, 4, 4))

        expected = data.repeat(2, axis=0).repeat(2, axis=1).repeat(2, axis=2)
        np.testing.assert_array_equal(out, expected)

    def test_bool_stays_binary(self):
        """Boolean masks come back boolean after resampling."""
        mask = np.zeros((8, 8, 8), dtype=bool)
        mask[2:6, 2:6, 2:6] = True

        out = resample_nearest(mask, (4, 4, 4))

        assert out.shape == (4, 4, 4)
        assert out.dtype == bool
        assert out.any()

    def test_binary_values_preserved(self):
        """Nearest-neighbour introduces no intermediate values."""
        data = np.zeros((6, 6, 6))
        data[1:4, 1:4, 1:4] = 1.0

        out = resample_nearest(data, (9, 5, 7))

        assert out.shape == (9, 5, 7)
        assert set(np.unique(out)) <= {0.0, 1.0}

    def test_rank_mismatch(self):
        """Arrays cannot change rank."""
        with pytest.raises(ShapeMismatchError):
            resample_nearest(np.zeros((4, 4, 4)), (4, 4))


class TestReconcile:
    """Tests for reconcile."""

    def test_same_shape_returns_input(self, caplog):
        """No work and no warning when shapes already match."""
        volume = Volume(np.ones((3, 3, 3), dtype=bool), np.eye(4), path="mask.nii")

        with caplog.at_level(logging.WARNING):
            result = reconcile((3, 3, 3), volume)

        assert result is volume
        assert "Reslicing" not in caplog.text

    def test_mismatch_reslices_and_warns(self, caplog):
        """Mismatched volumes are resampled with a warning naming them."""
        volume = Volume(np.ones((2, 2, 2), dtype=bool), np.eye(4), path="mask.nii")

        with caplog.at_level(logging.WARNING):
            result = reconcile((4, 4, 4), volume, label="sub-01.nii")

        assert result is not volume
        assert result.shape == (4, 4, 4)
        assert result.data.dtype == bool
        assert result.data.all()
        assert "mask.nii" in caplog.text
        assert "Reslicing" in caplog.text

    def test_input_not_modified(self):
        """The original volume keeps its data and shape."""
        data = np.zeros((2, 2, 2), dtype=bool)
        data[0, 0, 0] = True
        volume = Volume(data, np.eye(4))

        reconcile((4, 4, 4), volume)

        assert volume.shape == (2, 2, 2)
        assert volume.data.sum() == 1
