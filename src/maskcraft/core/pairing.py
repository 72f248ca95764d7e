"""
Pairing of input files.

This module handles:
- Discovering fixed/subtract files in a folder by their name stems
- Matching fixed files to subtract files by stem substitution
- Expanding image and mask collections into (image, mask) pairings
"""

import logging
from collections import OrderedDict
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple, Union

from maskcraft.core.errors import (
    CountMismatchCancelled,
    NoPairsFoundError,
    NoSelectionError,
)

logger = logging.getLogger(__name__)

BROADCAST = "broadcast"
POSITIONAL = "positional"
CROSS_PRODUCT = "cross-product"


class Pairing(NamedTuple):
    """One unit of ROI-mean work."""

    image: Path
    mask: Path


class DifferencePair(NamedTuple):
    """One unit of difference work."""

    fixed: Path
    subtract: Path


class CountMismatch(NamedTuple):
    """Payload handed to the confirmation callback when counts differ."""

    n_images: int
    n_masks: int

    @property
    def n_combinations(self) -> int:
        return self.n_images * self.n_masks

    def message(self) -> str:
        return (
            f"Number of masks ({self.n_masks}) does not match number of images "
            f"({self.n_images}).\n"
            f"Do you want to run each mask against all images "
            f"({self.n_combinations} combinations)?"
        )


# =============================================================================
# Stem matching
# =============================================================================

def discover_pair_files(
    folder: Union[str, Path],
    stem: str,
    extensions: Sequence[str] = (".nii", ".nii.gz"),
) -> List[str]:
    """
    List file names in ``folder`` that contain ``stem``.

    Hidden AppleDouble files (``._*``) are ignored.

    Parameters
    ----------
    folder : str or Path
        Folder to search (non-recursive).
    stem : str
        Identifier the file name must contain (e.g. "Fixed").
    extensions : sequence of str
        Accepted file extensions.

    Returns
    -------
    list of str
        Sorted file names (not paths).
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise NoSelectionError(f"Input folder not found: {folder}")

    names = set()
    for ext in extensions:
        for path in folder.glob(f"*{stem}*{ext}"):
            if not path.is_file() or path.name.startswith("._"):
                continue
            # "*.nii" must not pick up "x.nii.gz" nor the reverse
            if not path.name.endswith(ext):
                continue
            names.add(path.name)

    logger.debug(f"Found {len(names)} file(s) with stem '{stem}' in {folder}")
    return sorted(names)


def pair_by_stem(
    fixed_files: Sequence[str],
    subtract_files: Sequence[str],
    fixed_stem: str,
    subtract_stem: str,
) -> "OrderedDict[str, str]":
    """
    Match each fixed file to the subtract file that differs only by its stem.

    The expected partner of a fixed file is its name with ``fixed_stem``
    replaced by ``subtract_stem``. Only exact name equality counts as a
    match. Fixed files without a partner are skipped with a warning.

    Parameters
    ----------
    fixed_files : sequence of str
        Fixed file names, in processing order.
    subtract_files : sequence of str
        Candidate subtract file names.
    fixed_stem, subtract_stem : str
        Identifiers distinguishing the two sets.

    Returns
    -------
    OrderedDict
        ``fixed name -> subtract name``, ordered like ``fixed_files``.

    Raises
    ------
    NoPairsFoundError
        If no fixed file has a partner.
    """
    available = set(subtract_files)
    pairs: "OrderedDict[str, str]" = OrderedDict()

    for fixed_file in fixed_files:
        if fixed_file in pairs:
            continue
        expected = fixed_file.replace(fixed_stem, subtract_stem)
        if expected in available:
            pairs[fixed_file] = expected
        else:
            logger.warning(f"No matching subtract file found for {fixed_file}. Skipping...")

    if not pairs:
        raise NoPairsFoundError(
            "No matching pairs of NIfTI files found. "
            f"Ensure files differ only by the stems '{fixed_stem}' and '{subtract_stem}'."
        )

    logger.info(f"Matched {len(pairs)} fixed/subtract pair(s)")
    return pairs


def build_difference_pairs(
    folder: Union[str, Path],
    fixed_stem: str,
    subtract_stem: str,
    extensions: Sequence[str] = (".nii", ".nii.gz"),
) -> List[DifferencePair]:
    """Discover and match fixed/subtract files in ``folder``."""
    folder = Path(folder)
    fixed_files = discover_pair_files(folder, fixed_stem, extensions)
    subtract_files = discover_pair_files(folder, subtract_stem, extensions)

    if not fixed_files:
        raise NoPairsFoundError(f"No files containing '{fixed_stem}' found in {folder}")

    pairs = pair_by_stem(fixed_files, subtract_files, fixed_stem, subtract_stem)
    return [DifferencePair(folder / f, folder / s) for f, s in pairs.items()]


# =============================================================================
# Image/mask expansion
# =============================================================================

def plan_pairings(n_images: int, n_masks: int) -> str:
    """
    Decide how ``n_images`` images and ``n_masks`` masks are combined.

    Returns one of ``"broadcast"``, ``"positional"`` or ``"cross-product"``.
    Counts where one is a multiple of the other are not special: they
    need the full cross product like any other mismatch.
    """
    if n_images == 0 or n_masks == 0:
        raise NoSelectionError("No images or no masks selected.")
    if n_masks == 1 and n_images > 1:
        return BROADCAST
    if n_masks == n_images:
        return POSITIONAL
    return CROSS_PRODUCT


def expand_pairings(
    images: Sequence[Union[str, Path]],
    masks: Sequence[Union[str, Path]],
    confirm: Optional[Callable[[CountMismatch], bool]] = None,
) -> Tuple[List[Pairing], str]:
    """
    Combine images and masks into pairings.

    Parameters
    ----------
    images : sequence of str or Path
        Image paths (M).
    masks : sequence of str or Path
        Mask paths (N).
    confirm : callable, optional
        Called with a :class:`CountMismatch` when M and N cannot be matched
        directly. Must return True to accept all M x N combinations.

    Returns
    -------
    tuple of (list of Pairing, str)
        Pairings in processing order and the mode used.

    Raises
    ------
    NoSelectionError
        If either collection is empty.
    CountMismatchCancelled
        If the cross product was needed and not confirmed.
    """
    images = [Path(p) for p in images]
    masks = [Path(p) for p in masks]
    mode = plan_pairings(len(images), len(masks))

    if mode == BROADCAST:
        pairings = [Pairing(image, masks[0]) for image in images]
    elif mode == POSITIONAL:
        pairings = [Pairing(image, mask) for image, mask in zip(images, masks)]
    else:
        request = CountMismatch(n_images=len(images), n_masks=len(masks))
        if confirm is None or not confirm(request):
            raise CountMismatchCancelled(request.n_images, request.n_masks)
        # Image index varies fastest: every image against mask 0, then mask 1, ...
        pairings = [Pairing(image, mask) for mask in masks for image in images]

    logger.info(
        f"{len(pairings)} pairing(s) from {len(images)} image(s) and "
        f"{len(masks)} mask(s) ({mode})"
    )
    return pairings, mode
