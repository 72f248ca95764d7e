"""
Command-line interface for MaskCraft.

This module provides the CLI entry point for extracting mean values inside
ROI masks and for creating difference images from paired NIfTI files.
"""

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import List, Optional

import pandas as pd

from maskcraft import __version__
from maskcraft.config import Config, create_default_config
from maskcraft.core.errors import (
    CountMismatchCancelled,
    MaskCraftError,
    NoPairsFoundError,
    NoSelectionError,
    PreviewRejected,
    SaveCancelled,
    ShapeError,
)
from maskcraft.core.pairing import CountMismatch
from maskcraft.pipeline import MaskCraftPipeline

logger = logging.getLogger(__name__)


class Colors:
    """ANSI color codes for terminal output."""
    BOLD = '\033[1m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    END = '\033[0m'


class ColoredHelpFormatter(argparse.RawDescriptionHelpFormatter):
    """Custom formatter with colored section headers."""

    def __init__(self, prog, indent_increment=2, max_help_position=40, width=100):
        super().__init__(prog, indent_increment, max_help_position, width)

    def start_section(self, heading):
        if heading:
            heading = f'{Colors.BOLD}{Colors.CYAN}{heading}{Colors.END}'
        super().start_section(heading)


# =============================================================================
# Terminal prompts
# =============================================================================

def _interactive() -> bool:
    return sys.stdin is not None and sys.stdin.isatty()


def _ask_yes_no(question: str, default: bool) -> bool:
    """Ask a yes/no question; non-interactive sessions get ``default``."""
    if not _interactive():
        return default
    hint = "[Y/n]" if default else "[y/N]"
    answer = input(f"{question} {hint} ").strip().lower()
    if not answer:
        return default
    return answer in ("y", "yes")


def _ask_text(question: str, default: Optional[str] = None) -> Optional[str]:
    """Ask for a string; empty input returns ``default``."""
    if not _interactive():
        return default
    suffix = f" [{default}]" if default else ""
    answer = input(f"{question}{suffix}: ").strip()
    return answer or default


def confirm_mismatch(request: CountMismatch) -> bool:
    """Ask whether every mask should run against every image."""
    print(f"{Colors.YELLOW}⚠ {request.message().splitlines()[0]}{Colors.END}")
    return _ask_yes_no(request.message().splitlines()[1], default=False)


def confirm_preview(table: pd.DataFrame) -> bool:
    """Print the pairing table and ask whether to continue."""
    print(f"\n{Colors.BOLD}Review pairings below:{Colors.END}")
    print(table.to_string(index=False))
    print()
    return _ask_yes_no("Continue?", default=True)


def _fail(message: str, code: int = 1) -> int:
    print(f"{Colors.RED}✗ {message}{Colors.END}", file=sys.stderr)
    return code


def _cancel(message: str) -> int:
    print(f"{Colors.YELLOW}{message}{Colors.END}")
    return 0


# =============================================================================
# Parser
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""

    description = textwrap.dedent(f"""
    {Colors.BOLD}{Colors.GREEN}MaskCraft v{__version__}{Colors.END}
      Batch ROI statistics and difference images for NIfTI volumes.

    {Colors.BOLD}Commands:{Colors.END}
      roi-means     Mean image value inside each mask, saved as a table
      difference    Fixed - Subtract difference images, optionally centered/masked
      init-config   Write a documented default configuration file
    """)

    epilog = textwrap.dedent(f"""
    {Colors.BOLD}Examples:{Colors.END}

      {Colors.YELLOW}# One mask applied to every image{Colors.END}
      maskcraft roi-means --images pet/*.nii --masks vta.nii -o means.xlsx

      {Colors.YELLOW}# Difference images, centered within a brain mask{Colors.END}
      maskcraft difference /data/in /data/out --fixed-stem Post \\
          --subtract-stem Pre --center-mask brain.nii --no-mask
    """)

    common = argparse.ArgumentParser(add_help=False)
    general = common.add_argument_group(f'{Colors.BOLD}General Options{Colors.END}')
    general.add_argument(
        "-v", "--verbose",
        action="count",
        default=argparse.SUPPRESS,
        help="Enable verbose output (can be specified multiple times).",
    )
    general.add_argument(
        "-c", "--config",
        type=Path,
        metavar="FILE",
        default=argparse.SUPPRESS,
        help="Path to configuration file (.json, .yaml, or .yml). "
             "CLI arguments override config file settings.",
    )
    general.add_argument(
        "-y", "--yes",
        action="store_true",
        dest="assume_yes",
        default=argparse.SUPPRESS,
        help="Answer yes to all confirmations (count mismatch, pairing preview).",
    )
    general.add_argument(
        "--no-preview",
        action="store_true",
        dest="no_preview",
        default=argparse.SUPPRESS,
        help="Do not show the pairing table before processing.",
    )
    general.add_argument(
        "--on-error",
        choices=["halt", "skip"],
        dest="on_error",
        default=argparse.SUPPRESS,
        help="Stop the run (halt) or skip the pair (skip) on shape mismatches.",
    )

    parser = argparse.ArgumentParser(
        prog="maskcraft",
        description=description,
        epilog=epilog,
        formatter_class=ColoredHelpFormatter,
        parents=[common],
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"maskcraft {__version__}",
        help="Show program version and exit.",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # =========================================================================
    # ROI MEANS
    # =========================================================================
    roi = subparsers.add_parser(
        "roi-means",
        parents=[common],
        formatter_class=ColoredHelpFormatter,
        help="Mean value of each image inside each mask.",
        description="Compute the mean of each image within mask voxels (NaNs ignored).",
    )
    roi_inputs = roi.add_argument_group(f'{Colors.BOLD}Inputs{Colors.END}')
    roi_inputs.add_argument(
        "--images",
        nargs="+",
        type=Path,
        metavar="FILE",
        help="Image files (connectivity maps, PET, ...).",
    )
    roi_inputs.add_argument(
        "--masks",
        nargs="+",
        type=Path,
        metavar="FILE",
        help="Mask files. One mask is applied to all images; as many masks as "
             "images are paired by position; any other count runs all combinations.",
    )
    roi_outputs = roi.add_argument_group(f'{Colors.BOLD}Output Options{Colors.END}')
    roi_outputs.add_argument(
        "-o", "--output",
        type=Path,
        metavar="FILE",
        help="Results table (.xlsx, .csv or .tsv).",
    )
    roi_outputs.add_argument(
        "--reslice-masks",
        action="store_true",
        dest="reslice_masks",
        help="Reslice masks (nearest neighbour) to the image shape instead of failing.",
    )

    # =========================================================================
    # DIFFERENCE
    # =========================================================================
    diff = subparsers.add_parser(
        "difference",
        parents=[common],
        formatter_class=ColoredHelpFormatter,
        help="Difference images from paired Fixed/Subtract files.",
        description="Create Fixed - Subtract difference images. Ensure all images are "
                    "in the same spatial coordinate system; masks are resliced to the "
                    "images if necessary.",
    )
    diff.add_argument(
        "input_dir",
        nargs="?",
        type=Path,
        metavar="INPUT_DIR",
        help="Folder containing Fixed and Subtract NIfTI files.",
    )
    diff.add_argument(
        "output_dir",
        nargs="?",
        type=Path,
        metavar="OUTPUT_DIR",
        help="Output folder for difference images.",
    )
    stems = diff.add_argument_group(f'{Colors.BOLD}Pairing Options{Colors.END}')
    stems.add_argument(
        "--fixed-stem",
        metavar="STRING",
        dest="fixed_stem",
        help="Identifier of Fixed files (default: Fixed).",
    )
    stems.add_argument(
        "--subtract-stem",
        metavar="STRING",
        dest="subtract_stem",
        help="Identifier of Subtract files (default: Subtract).",
    )
    stages = diff.add_argument_group(f'{Colors.BOLD}Centering and Masking{Colors.END}')
    stages.add_argument(
        "--center-mask",
        type=Path,
        metavar="FILE",
        dest="center_mask",
        help="Binary mask for the mean subtracted from each difference image.",
    )
    stages.add_argument(
        "--no-center",
        action="store_true",
        dest="no_center",
        help="Do not center the difference images.",
    )
    stages.add_argument(
        "--mask",
        type=Path,
        metavar="FILE",
        dest="mask",
        help="Binary mask; voxels outside it are set to 0.",
    )
    stages.add_argument(
        "--no-mask",
        action="store_true",
        dest="no_mask",
        help="Do not mask the difference images.",
    )
    stages.add_argument(
        "--output-extension",
        choices=[".nii", ".nii.gz"],
        dest="output_extension",
        help="Extension of written difference images (default: .nii).",
    )

    # =========================================================================
    # INIT CONFIG
    # =========================================================================
    init = subparsers.add_parser(
        "init-config",
        formatter_class=ColoredHelpFormatter,
        help="Generate a default configuration file and exit.",
    )
    init.add_argument("path", type=Path, metavar="FILE", help="Output configuration file.")

    return parser


# =============================================================================
# Configuration from arguments
# =============================================================================

def build_config(args: argparse.Namespace) -> Config:
    """Merge config file and CLI arguments into a validated Config."""
    # Global options are only present on the namespace when given
    overrides = {}

    if "verbose" in args:
        overrides["verbose"] = args.verbose
    if "on_error" in args:
        overrides["on_error"] = args.on_error

    confirm = {}
    if getattr(args, "assume_yes", False):
        confirm["assume_yes"] = True
    if getattr(args, "no_preview", False):
        confirm["preview"] = False
    if confirm:
        overrides["confirm"] = confirm

    if args.command == "roi-means":
        roi = {}
        if args.images:
            roi["images"] = [str(p) for p in args.images]
        if args.masks:
            roi["masks"] = [str(p) for p in args.masks]
        if args.output:
            roi["output_file"] = str(args.output)
        if args.reslice_masks:
            roi["reslice_masks"] = True
        overrides["roi_means"] = roi

    elif args.command == "difference":
        diff = {"center": {}, "mask": {}}
        if args.input_dir:
            diff["input_dir"] = str(args.input_dir)
        if args.output_dir:
            diff["output_dir"] = str(args.output_dir)
        if args.fixed_stem:
            diff["fixed_stem"] = args.fixed_stem
        if args.subtract_stem:
            diff["subtract_stem"] = args.subtract_stem
        if args.output_extension:
            diff["output_extension"] = args.output_extension

        if args.no_center:
            diff["center"]["enabled"] = False
        elif args.center_mask:
            diff["center"] = {"enabled": True, "mask": str(args.center_mask)}
        if args.no_mask:
            diff["mask"]["enabled"] = False
        elif args.mask:
            diff["mask"] = {"enabled": True, "mask": str(args.mask)}
        overrides["difference"] = diff

    config_file = getattr(args, "config", None)
    cfg = Config(config_file=config_file) if config_file else Config()
    cfg.update(overrides)
    cfg.validate()
    return cfg


def _resolve_difference_prompts(cfg: Config, args: argparse.Namespace) -> None:
    """
    Fill unanswered difference settings from terminal prompts.

    Only runs in interactive sessions; otherwise unanswered settings keep
    their configured values.
    """
    if not _interactive() or cfg.get("confirm.assume_yes"):
        return

    if not cfg.get("difference.input_dir"):
        cfg.set("difference.input_dir", _ask_text("Folder containing Fixed and Subtract NIfTI files"))
    if not args.fixed_stem:
        cfg.set("difference.fixed_stem", _ask_text(
            "Identifier for Fixed files", cfg.get("difference.fixed_stem")))
    if not args.subtract_stem:
        cfg.set("difference.subtract_stem", _ask_text(
            "Identifier for Subtract files", cfg.get("difference.subtract_stem")))
    if not cfg.get("difference.output_dir"):
        cfg.set("difference.output_dir", _ask_text("Output directory for difference images"))

    questions = {
        "mask": ("Do you want to apply a mask to the difference images?", False,
                 "Binary mask for the difference images"),
        "center": ("Do you want to center the difference images? "
                   "Recommended if using parametric tests afterwards.", True,
                   "Binary mask for mean calculation"),
    }
    for stage, (question, default, mask_question) in questions.items():
        if cfg.get(f"difference.{stage}.enabled") is not None:
            continue
        enabled = _ask_yes_no(question, default=default)
        cfg.set(f"difference.{stage}.enabled", enabled)
        if enabled and not cfg.get(f"difference.{stage}.mask"):
            mask_path = _ask_text(mask_question)
            if not mask_path:
                raise NoSelectionError(f"User canceled {stage} mask selection.")
            cfg.set(f"difference.{stage}.mask", mask_path)

    cfg.validate()


# =============================================================================
# Commands
# =============================================================================

def run_roi_means(cfg: Config) -> int:
    pipeline = MaskCraftPipeline(
        config=cfg,
        confirm_mismatch=confirm_mismatch,
        confirm_preview=confirm_preview,
    )

    output_file = cfg.get("roi_means.output_file")
    results = pipeline.run_roi_means(output_file=output_file)

    if not output_file:
        output_file = _ask_text("Save results as (.xlsx, .csv or .tsv)")
        if not output_file:
            raise SaveCancelled("Save canceled.")
        results["accumulator"].save(output_file)

    print(f"\n{Colors.GREEN}✓ Computed {len(results['results'])} mean value(s){Colors.END}")
    print(f"  Results saved to: {output_file}")
    if results["failures"]:
        print(f"{Colors.YELLOW}⚠ {len(results['failures'])} pair(s) skipped{Colors.END}")
    return 0


def run_difference(cfg: Config, args: argparse.Namespace) -> int:
    _resolve_difference_prompts(cfg, args)

    pipeline = MaskCraftPipeline(config=cfg, confirm_preview=confirm_preview)
    results = pipeline.run_difference()

    for result in results["results"]:
        message = f"  {result.output_path.name}"
        if result.center_mean is not None:
            message += f" (centered, mean {result.center_mean:g})"
        print(message)

    print(f"\n{Colors.GREEN}✓ {len(results['results'])} difference image(s) saved to "
          f"{cfg.get('difference.output_dir')}{Colors.END}")
    if results["failures"]:
        print(f"{Colors.YELLOW}⚠ {len(results['failures'])} pair(s) skipped{Colors.END}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "init-config":
        output_path = args.path
        if not output_path.suffix:
            output_path = output_path.with_suffix(".yaml")
        create_default_config(output_path)
        print(f"{Colors.GREEN}✓ Configuration file created: {output_path}{Colors.END}")
        return 0

    try:
        cfg = build_config(args)
    except (FileNotFoundError, ValueError) as e:
        return _fail(f"Invalid configuration: {e}")

    print(f"{Colors.BOLD}{Colors.GREEN}MaskCraft v{__version__}{Colors.END}")
    print("=" * 40)

    try:
        if args.command == "roi-means":
            return run_roi_means(cfg)
        return run_difference(cfg, args)

    except (NoSelectionError, CountMismatchCancelled, PreviewRejected, SaveCancelled) as e:
        return _cancel(str(e))
    except NoPairsFoundError as e:
        return _fail(str(e))
    except ShapeError as e:
        return _fail(f"{e}. Processing halted.")
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Interrupted by user{Colors.END}", file=sys.stderr)
        return 130
    except (MaskCraftError, OSError) as e:
        logger.debug("Run failed", exc_info=True)
        return _fail(str(e))


if __name__ == "__main__":
    sys.exit(main())
