"""
Configuration handling for MaskCraft.

This module handles:
- Configuration file parsing (YAML/JSON)
- Configuration validation
- Default values
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)


VALID_ON_ERROR = ["halt", "skip"]
VALID_OUTPUT_EXTENSIONS = [".nii", ".nii.gz"]

# Default configuration values
DEFAULT_CONFIG = {
    # ROI mean extraction (images x masks)
    "roi_means": {
        "images": [],
        "masks": [],
        "output_file": None,  # .xlsx, .csv or .tsv
        "reslice_masks": False,  # Reslice masks to image shape instead of failing
    },

    # Difference images (fixed - subtract)
    "difference": {
        "input_dir": None,
        "output_dir": None,
        "fixed_stem": "Fixed",
        "subtract_stem": "Subtract",
        "extensions": [".nii", ".nii.gz"],
        # enabled: null means "ask" on the CLI; the pipeline treats it as
        # "enabled if a mask path is set"
        "center": {
            "enabled": None,
            "mask": None,
        },
        "mask": {
            "enabled": None,
            "mask": None,
        },
        "output_extension": ".nii",
    },

    # Confirmation behaviour
    "confirm": {
        "assume_yes": False,  # Accept count-mismatch expansion and previews
        "preview": True,  # Show the pairing preview before processing
    },

    # Per-pair failure policy: "halt" stops the run, "skip" logs and continues
    "on_error": "halt",

    "verbose": 1,
}


class Config:
    """
    Configuration manager for MaskCraft.

    Parameters
    ----------
    config_file : str or Path, optional
        Path to configuration file (YAML or JSON).
    **kwargs
        Additional configuration options to override defaults.

    Attributes
    ----------
    data : dict
        Configuration dictionary.
    """

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        **kwargs,
    ):
        self.data = copy.deepcopy(DEFAULT_CONFIG)

        if config_file is not None:
            self.load_from_file(config_file)

        self.update(kwargs)
        self.validate()

    def update(self, updates: Dict) -> None:
        """Deep-merge ``updates`` into the configuration."""
        self._update_nested(self.data, updates)

    def _update_nested(self, base: Dict, updates: Dict) -> None:
        for key, value in updates.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._update_nested(base[key], value)
            else:
                base[key] = value

    def load_from_file(self, filepath: Union[str, Path]) -> None:
        """
        Load configuration from a YAML or JSON file.

        Parameters
        ----------
        filepath : str or Path
            Path to configuration file.
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        logger.info(f"Loading configuration from: {filepath}")

        with open(filepath, "r") as f:
            if filepath.suffix == ".json":
                file_config = json.load(f)
            else:
                file_config = yaml.safe_load(f)

        if file_config is None:
            return
        if not isinstance(file_config, dict):
            raise ValueError(f"Configuration file must contain a mapping: {filepath}")

        self._update_nested(self.data, file_config)

    def save_to_file(self, filepath: Union[str, Path]) -> None:
        """
        Save configuration to a YAML or JSON file.

        Parameters
        ----------
        filepath : str or Path
            Path to output file.
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, "w") as f:
            if filepath.suffix in [".yaml", ".yml"]:
                yaml.safe_dump(self.data, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(self.data, f, indent=2)

        logger.info(f"Configuration saved to: {filepath}")

    def validate(self) -> None:
        """
        Validate the configuration.

        Raises
        ------
        ValueError
            If configuration is invalid.
        """
        errors = []

        if self.data["on_error"] not in VALID_ON_ERROR:
            errors.append(f"Invalid on_error: {self.data['on_error']}. Must be one of {VALID_ON_ERROR}")

        diff = self.data["difference"]
        for key in ("fixed_stem", "subtract_stem"):
            if not diff.get(key):
                errors.append(f"difference.{key} must be a non-empty string")
        if diff.get("fixed_stem") and diff.get("fixed_stem") == diff.get("subtract_stem"):
            errors.append("difference.fixed_stem and difference.subtract_stem must differ")

        if diff["output_extension"] not in VALID_OUTPUT_EXTENSIONS:
            errors.append(
                f"Invalid difference.output_extension: {diff['output_extension']}. "
                f"Must be one of {VALID_OUTPUT_EXTENSIONS}"
            )

        for stage in ("center", "mask"):
            settings = diff[stage]
            if settings.get("enabled") not in (None, True, False):
                errors.append(f"difference.{stage}.enabled must be true, false or null")
            if settings.get("enabled") is True and not settings.get("mask"):
                errors.append(f"difference.{stage}.mask is required when difference.{stage}.enabled is true")

        roi = self.data["roi_means"]
        for key in ("images", "masks"):
            if not isinstance(roi.get(key), list):
                errors.append(f"roi_means.{key} must be a list of paths")

        if errors:
            raise ValueError("Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by key (supports dot notation).

        Parameters
        ----------
        key : str
            Configuration key (e.g., "difference.center.mask").
        default : any
            Default value if key not found.

        Returns
        -------
        any
            Configuration value.
        """
        value = self.data
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value by key (supports dot notation)."""
        keys = key.split(".")
        data = self.data

        for k in keys[:-1]:
            if k not in data:
                data[k] = {}
            data = data[k]

        data[keys[-1]] = value

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def to_dict(self) -> Dict:
        """Return configuration as dictionary."""
        return copy.deepcopy(self.data)

    def summary(self) -> str:
        """
        Get a text summary of the configuration.

        Returns
        -------
        str
            Configuration summary.
        """
        roi = self.data["roi_means"]
        diff = self.data["difference"]

        lines = ["Configuration Summary", "=" * 40]

        lines.append("\nROI Means:")
        lines.append(f"  Images: {len(roi['images'])}")
        lines.append(f"  Masks: {len(roi['masks'])}")
        lines.append(f"  Output: {roi['output_file']}")
        lines.append(f"  Reslice masks: {roi['reslice_masks']}")

        lines.append("\nDifference Images:")
        lines.append(f"  Input: {diff['input_dir']}")
        lines.append(f"  Output: {diff['output_dir']}")
        lines.append(f"  Stems: {diff['fixed_stem']} - {diff['subtract_stem']}")
        lines.append(f"  Centering mask: {diff['center']['mask']} (enabled: {diff['center']['enabled']})")
        lines.append(f"  Output mask: {diff['mask']['mask']} (enabled: {diff['mask']['enabled']})")

        lines.append(f"\nOn error: {self.data['on_error']}")

        return "\n".join(lines)


def load_config(
    config_file: Optional[Union[str, Path]] = None,
    **kwargs,
) -> Config:
    """
    Load configuration from file and/or keyword arguments.

    Parameters
    ----------
    config_file : str or Path, optional
        Path to configuration file.
    **kwargs
        Additional configuration options.

    Returns
    -------
    Config
        Configuration object.
    """
    return Config(config_file=config_file, **kwargs)


def create_default_config(output_path: Union[str, Path]) -> Path:
    """
    Create a documented default configuration file.

    Parameters
    ----------
    output_path : str or Path
        Path for the output configuration file.

    Returns
    -------
    Path
        Path to created configuration file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    template = """# ===============================================================================
# MaskCraft Configuration File
# ===============================================================================
# USAGE:
#   maskcraft -c this_file.yaml roi-means
#   maskcraft -c this_file.yaml difference
#
# CLI arguments take precedence over values in this file.
# ===============================================================================

# -------------------------------------------------------------------------------
# ROI MEANS
# -------------------------------------------------------------------------------
# Mean image value inside each mask, for every (image, mask) pairing.
#   - 1 mask, several images: the mask is used for every image
#   - as many masks as images: paired by position
#   - any other counts: every image against every mask (asks for confirmation)
roi_means:
  # CLI equivalent: --images
  images: []

  # CLI equivalent: --masks
  masks: []

  # Results table (.xlsx, .csv or .tsv)
  # CLI equivalent: --output / -o
  output_file: null

  # Reslice masks (nearest neighbour) to the image shape instead of failing
  # CLI equivalent: --reslice-masks
  reslice_masks: false

# -------------------------------------------------------------------------------
# DIFFERENCE IMAGES
# -------------------------------------------------------------------------------
# Fixed and Subtract files are paired when their names differ only by the
# stems, e.g. sub-01_Fixed.nii and sub-01_Subtract.nii.
# Output: <fixed>_minus_<subtract>_difference.nii
difference:
  # CLI equivalent: INPUT_DIR
  input_dir: null

  # CLI equivalent: OUTPUT_DIR
  output_dir: null

  # CLI equivalent: --fixed-stem
  fixed_stem: Fixed

  # CLI equivalent: --subtract-stem
  subtract_stem: Subtract

  # File extensions considered when looking for pairs
  extensions: [".nii", ".nii.gz"]

  # Subtract the mean inside this mask from every voxel
  # enabled: true / false / null (null: ask, or enabled if mask is set)
  # CLI equivalent: --center-mask / --no-center
  center:
    enabled: null
    mask: null

  # Set voxels outside this mask to 0
  # CLI equivalent: --mask / --no-mask
  mask:
    enabled: null
    mask: null

  # ".nii" or ".nii.gz"
  # CLI equivalent: --output-extension
  output_extension: .nii

# -------------------------------------------------------------------------------
# CONFIRMATION
# -------------------------------------------------------------------------------
confirm:
  # Accept all prompts (count mismatch expansion, pairing preview)
  # CLI equivalent: --yes / -y
  assume_yes: false

  # Show the pairing table before processing
  # CLI equivalent: --no-preview
  preview: true

# -------------------------------------------------------------------------------
# ERROR POLICY
# -------------------------------------------------------------------------------
# What to do when a pair has incompatible shapes:
#   halt: stop the whole run (default)
#   skip: log a warning, skip the pair and continue
# CLI equivalent: --on-error
on_error: halt

# Verbosity level: 0 warnings, 1 info, 2 debug
# CLI equivalent: --verbose / -v
verbose: 1
"""

    with open(output_path, "w") as f:
        f.write(template)

    logger.info(f"Configuration file created: {output_path}")
    return output_path
