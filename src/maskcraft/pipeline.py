"""
Main pipeline module for MaskCraft.

This module orchestrates the two batch workflows:
1. ROI means: pair images with masks, compute the mean inside each mask,
   collect one row per pairing and write the results table.
2. Difference images: pair fixed and subtract files by name stem, compute
   fixed - subtract, optionally center and mask, save each difference.

Interactive decisions (count mismatch expansion, pairing preview) are
delegated to callables supplied by the caller; the pipeline never prompts.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Union

import pandas as pd

from maskcraft.config import Config, load_config
from maskcraft.core.difference import DifferenceComputer, DifferenceResult
from maskcraft.core.errors import NoSelectionError, PreviewRejected, ShapeError
from maskcraft.core.pairing import (
    CountMismatch,
    DifferencePair,
    Pairing,
    build_difference_pairs,
    expand_pairings,
)
from maskcraft.core.reslice import reconcile
from maskcraft.core.results import ResultAccumulator, short_name
from maskcraft.core.statistics import masked_mean
from maskcraft.core.volume import Volume, VolumeStore

logger = logging.getLogger(__name__)

ConfirmMismatch = Callable[[CountMismatch], bool]
ConfirmPreview = Callable[[pd.DataFrame], bool]


class PairFailure(NamedTuple):
    """A pair skipped under the ``skip`` error policy."""

    first: str
    second: str
    reason: str


class MaskCraftPipeline:
    """
    Batch pipeline for masked ROI means and difference images.

    Parameters
    ----------
    config : Config, dict, str or Path, optional
        Configuration object, dictionary of overrides, or config file path.
    confirm_mismatch : callable, optional
        Asked whether mismatched image/mask counts may be expanded into all
        combinations. Receives a :class:`CountMismatch`, returns bool.
    confirm_preview : callable, optional
        Shown the pairing table before processing; returning False aborts.
    store : VolumeStore, optional
        Volume loader/saver.

    Attributes
    ----------
    config : Config
        Resolved configuration.
    failures : list of PairFailure
        Pairs skipped during the last run (``on_error: skip`` only).
    """

    def __init__(
        self,
        config: Optional[Union[Config, str, Path, Dict]] = None,
        confirm_mismatch: Optional[ConfirmMismatch] = None,
        confirm_preview: Optional[ConfirmPreview] = None,
        store: Optional[VolumeStore] = None,
    ):
        if config is None:
            self.config = Config()
        elif isinstance(config, Config):
            self.config = config
        elif isinstance(config, dict):
            self.config = Config(**config)
        else:
            self.config = load_config(config)

        self._setup_logging()

        self.confirm_mismatch = confirm_mismatch
        self.confirm_preview = confirm_preview
        self.store = store or VolumeStore()
        self.failures: List[PairFailure] = []
        self._mask_cache: Dict[str, Volume] = {}

    def _setup_logging(self) -> None:
        """Configure logging based on verbosity setting."""
        verbose = self.config.get("verbose", 1)

        if verbose == 0:
            level = logging.WARNING
        elif verbose == 1:
            level = logging.INFO
        else:
            level = logging.DEBUG

        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    @property
    def assume_yes(self) -> bool:
        return bool(self.config.get("confirm.assume_yes", False))

    # =========================================================================
    # Confirmation and error policy
    # =========================================================================

    def _confirm_mismatch(self, request: CountMismatch) -> bool:
        if self.assume_yes:
            logger.info(f"{request.message()} -> yes (assumed)")
            return True
        if self.confirm_mismatch is None:
            logger.warning(request.message())
            return False
        return bool(self.confirm_mismatch(request))

    def _review(self, table: pd.DataFrame) -> None:
        """Hand the pairing table to the preview callback."""
        logger.debug("Pairings:\n" + table.to_string(index=False))
        if not self.config.get("confirm.preview", True) or self.assume_yes:
            return
        if self.confirm_preview is None:
            return
        if not self.confirm_preview(table):
            raise PreviewRejected("Aborted by user.")

    def _handle_failure(self, first: Path, second: Path, error: ShapeError) -> None:
        """Apply the ``on_error`` policy to a per-pair shape failure."""
        if self.config.get("on_error") == "halt":
            raise error
        logger.warning(f"Skipping pair {first.name} / {second.name}: {error}")
        self.failures.append(PairFailure(str(first), str(second), str(error)))

    def _load_mask(self, path: Union[str, Path]) -> Volume:
        """Load a mask once per run; masks are shared read-only across pairs."""
        key = str(Path(path))
        if key not in self._mask_cache:
            self._mask_cache[key] = self.store.load_mask(path)
        return self._mask_cache[key]

    def _reset_run(self) -> None:
        self.failures = []
        self._mask_cache = {}

    # =========================================================================
    # ROI means
    # =========================================================================

    def prepare_roi_pairings(
        self,
        images: Optional[Sequence[Union[str, Path]]] = None,
        masks: Optional[Sequence[Union[str, Path]]] = None,
    ) -> List[Pairing]:
        """
        Build (image, mask) pairings.

        Parameters
        ----------
        images, masks : sequence of str or Path, optional
            Inputs; default to ``roi_means.images`` / ``roi_means.masks``.

        Returns
        -------
        list of Pairing
            Pairings in processing order.
        """
        images = list(images) if images is not None else list(self.config.get("roi_means.images") or [])
        masks = list(masks) if masks is not None else list(self.config.get("roi_means.masks") or [])

        if not images:
            raise NoSelectionError("No image files selected.")
        if not masks:
            raise NoSelectionError("No mask files selected.")

        pairings, _ = expand_pairings(images, masks, confirm=self._confirm_mismatch)
        return pairings

    @staticmethod
    def preview_roi_pairings(pairings: Sequence[Pairing]) -> pd.DataFrame:
        """Table of short image/mask names for review."""
        return pd.DataFrame(
            {
                "Image File": [short_name(p.image) for p in pairings],
                "Mask File": [short_name(p.mask) for p in pairings],
            }
        )

    def compute_roi_means(self, pairings: Sequence[Pairing]) -> ResultAccumulator:
        """
        Compute the masked mean for each pairing.

        Parameters
        ----------
        pairings : sequence of Pairing
            Pairings to process, in order.

        Returns
        -------
        ResultAccumulator
            One record per successfully processed pairing.
        """
        reslice = bool(self.config.get("roi_means.reslice_masks", False))
        results = ResultAccumulator()

        for i, pairing in enumerate(pairings, start=1):
            image = self.store.load(pairing.image)
            mask = self._load_mask(pairing.mask)

            try:
                if reslice:
                    mask = reconcile(image.shape, mask, label=image.name)
                mean_value = masked_mean(image, mask)
            except ShapeError as e:
                self._handle_failure(pairing.image, pairing.mask, e)
                continue

            results.append(pairing.image, pairing.mask, mean_value)
            logger.debug(f"[{i}/{len(pairings)}] {image.name} in {mask.name}: {mean_value}")

        logger.info(f"Computed {len(results)} mean value(s)")
        return results

    def run_roi_means(
        self,
        images: Optional[Sequence[Union[str, Path]]] = None,
        masks: Optional[Sequence[Union[str, Path]]] = None,
        output_file: Optional[Union[str, Path]] = None,
    ) -> Dict[str, Any]:
        """
        Run the ROI mean workflow.

        Parameters
        ----------
        images, masks : sequence of str or Path, optional
            Inputs; default to the configuration.
        output_file : str or Path, optional
            Results table; defaults to ``roi_means.output_file``. When no
            output is configured, results are returned but not written.

        Returns
        -------
        dict
            ``pairings``, ``accumulator`` (ResultAccumulator), ``results``
            (DataFrame), ``failures`` and ``saved_files``.
        """
        self._reset_run()

        pairings = self.prepare_roi_pairings(images, masks)
        self._review(self.preview_roi_pairings(pairings))

        results = self.compute_roi_means(pairings)

        saved_files: Dict[str, Path] = {}
        output_file = output_file if output_file is not None else self.config.get("roi_means.output_file")
        if output_file:
            saved_files["results"] = results.save(output_file)
        else:
            logger.info("No output file configured; results not saved.")

        return {
            "pairings": pairings,
            "accumulator": results,
            "results": results.to_dataframe(),
            "failures": list(self.failures),
            "saved_files": saved_files,
        }

    # =========================================================================
    # Difference images
    # =========================================================================

    def prepare_difference_pairs(
        self,
        input_dir: Optional[Union[str, Path]] = None,
    ) -> List[DifferencePair]:
        """Match fixed and subtract files in ``input_dir`` by their stems."""
        input_dir = input_dir or self.config.get("difference.input_dir")
        if not input_dir:
            raise NoSelectionError("No input folder selected.")

        return build_difference_pairs(
            input_dir,
            fixed_stem=self.config.get("difference.fixed_stem"),
            subtract_stem=self.config.get("difference.subtract_stem"),
            extensions=self.config.get("difference.extensions"),
        )

    @staticmethod
    def preview_difference_pairs(pairs: Sequence[DifferencePair]) -> pd.DataFrame:
        """Table of fixed/subtract names for review."""
        return pd.DataFrame(
            {
                "Fixed File": [p.fixed.name for p in pairs],
                "Subtract File": [p.subtract.name for p in pairs],
            }
        )

    def _stage_mask(self, stage: str) -> Optional[Volume]:
        """Load the mask of an optional stage if that stage is enabled."""
        enabled = self.config.get(f"difference.{stage}.enabled")
        mask_path = self.config.get(f"difference.{stage}.mask")

        if enabled is None:
            enabled = bool(mask_path)
        if not enabled:
            return None
        if not mask_path:
            raise NoSelectionError(f"No {stage} mask selected.")
        return self._load_mask(mask_path)

    def build_difference_computer(self) -> DifferenceComputer:
        """Resolve centering and masking once for the whole run."""
        center_mask = self._stage_mask("center")
        output_mask = self._stage_mask("mask")

        return DifferenceComputer(
            center_mask=center_mask,
            output_mask=output_mask,
            store=self.store,
            output_extension=self.config.get("difference.output_extension", ".nii"),
        )

    def run_difference(
        self,
        input_dir: Optional[Union[str, Path]] = None,
        output_dir: Optional[Union[str, Path]] = None,
    ) -> Dict[str, Any]:
        """
        Run the difference image workflow.

        Parameters
        ----------
        input_dir : str or Path, optional
            Folder holding fixed and subtract files.
        output_dir : str or Path, optional
            Folder receiving the difference images.

        Returns
        -------
        dict
            ``pairs``, ``results`` (list of DifferenceResult), ``summary``
            (DataFrame), ``failures`` and ``saved_files``.
        """
        self._reset_run()

        output_dir = output_dir or self.config.get("difference.output_dir")
        if not output_dir:
            raise NoSelectionError("No output folder selected.")
        output_dir = Path(output_dir)

        logger.info("Ensure all images are in the same spatial coordinate system.")

        pairs = self.prepare_difference_pairs(input_dir)
        computer = self.build_difference_computer()
        self._review(self.preview_difference_pairs(pairs))

        output_dir.mkdir(parents=True, exist_ok=True)
        results: List[DifferenceResult] = []

        for pair in pairs:
            try:
                result = computer.process(pair, output_dir=output_dir)
            except ShapeError as e:
                self._handle_failure(pair.fixed, pair.subtract, e)
                continue
            results.append(result)

        logger.info(f"Saved {len(results)} difference image(s) to {output_dir}")
        if self.failures:
            logger.warning(f"{len(self.failures)} pair(s) skipped")

        summary = pd.DataFrame(
            {
                "FixedFile": [str(r.fixed) for r in results],
                "SubtractFile": [str(r.subtract) for r in results],
                "OutputFile": [str(r.output_path) for r in results],
                "CenterMean": [r.center_mean for r in results],
            }
        )

        return {
            "pairs": pairs,
            "results": results,
            "summary": summary,
            "failures": list(self.failures),
            "saved_files": {r.name: r.output_path for r in results},
        }
