"""
Exceptions raised by MaskCraft.

Selection and matching errors are raised before any pair is processed.
Shape errors are raised per pair and are subject to the run-level
``on_error`` policy of the pipeline.
"""


class MaskCraftError(Exception):
    """Base class for all MaskCraft errors."""


class NoSelectionError(MaskCraftError):
    """No images, masks or input folder were provided."""


class NoPairsFoundError(MaskCraftError):
    """Stem matching produced no fixed/subtract pairs."""


class CountMismatchCancelled(MaskCraftError):
    """The user declined expanding mismatched collections into all combinations."""

    def __init__(self, n_images: int, n_masks: int):
        self.n_images = n_images
        self.n_masks = n_masks
        super().__init__(
            f"Number of masks ({n_masks}) does not match number of images "
            f"({n_images}); operation cancelled by user."
        )


class PreviewRejected(MaskCraftError):
    """The user aborted after reviewing the pairing preview."""


class SaveCancelled(MaskCraftError):
    """No output destination was provided for the results table."""


class VolumeReadError(MaskCraftError):
    """A file could not be read as a NIfTI volume."""


class ShapeError(MaskCraftError, ValueError):
    """Base class for shape incompatibilities between two volumes."""

    def __init__(self, message: str, shape_a=None, shape_b=None):
        self.shape_a = shape_a
        self.shape_b = shape_b
        super().__init__(message)


class DimensionMismatchError(ShapeError):
    """An image and its mask do not have the same shape."""


class ShapeMismatchError(ShapeError):
    """Fixed and subtract volumes differ in shape, or a reslice is impossible."""
