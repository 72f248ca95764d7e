"""Tests for the command-line interface."""

import nibabel as nib
import numpy as np
import pandas as pd
import pytest

from maskcraft import cli
from maskcraft.cli import build_config, create_parser, main


@pytest.fixture(autouse=True)
def non_interactive(monkeypatch):
    """Never prompt during tests."""
    monkeypatch.setattr(cli, "_interactive", lambda: False)


@pytest.fixture
def pair_folder(write_nifti, temp_dir):
    write_nifti("sub1_Fixed.nii", np.full((4, 4, 4), 3.0), folder="in")
    write_nifti("sub1_Subtract.nii", np.full((4, 4, 4), 1.0), folder="in")
    return temp_dir / "in"


class TestParser:
    """Tests for argument parsing and config merging."""

    def test_global_options_after_subcommand(self):
        args = create_parser().parse_args(["roi-means", "--images", "a.nii", "--masks", "m.nii", "-vv", "-y"])
        cfg = build_config(args)

        assert cfg.get("verbose") == 2
        assert cfg.get("confirm.assume_yes") is True
        assert cfg.get("roi_means.images") == ["a.nii"]

    def test_config_file_overridden_by_cli(self, temp_dir):
        config_file = temp_dir / "cfg.yaml"
        config_file.write_text("on_error: skip\ndifference:\n  fixed_stem: Post\n  subtract_stem: Pre\n")

        args = create_parser().parse_args(
            ["difference", "-c", str(config_file), "--fixed-stem", "After", "in", "out"]
        )
        cfg = build_config(args)

        assert cfg.get("on_error") == "skip"
        assert cfg.get("difference.fixed_stem") == "After"
        assert cfg.get("difference.subtract_stem") == "Pre"
        assert cfg.get("difference.input_dir") == "in"

    def test_stage_flags(self):
        args = create_parser().parse_args(["difference", "in", "out", "--center-mask", "c.nii", "--no-mask"])
        cfg = build_config(args)

        assert cfg.get("difference.center.enabled") is True
        assert cfg.get("difference.center.mask") == "c.nii"
        assert cfg.get("difference.mask.enabled") is False

    def test_unset_globals_keep_config_values(self, temp_dir):
        """Subcommands do not reset options given only in the config file."""
        config_file = temp_dir / "cfg.yaml"
        config_file.write_text("verbose: 0\non_error: skip\n")

        args = create_parser().parse_args(["-c", str(config_file), "roi-means"])
        cfg = build_config(args)

        assert cfg.get("verbose") == 0
        assert cfg.get("on_error") == "skip"


class TestMain:
    """Tests for the main entry point."""

    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--version"])
        assert excinfo.value.code == 0
        assert "maskcraft" in capsys.readouterr().out

    def test_init_config(self, temp_dir):
        assert main(["init-config", str(temp_dir / "maskcraft")]) == 0
        assert (temp_dir / "maskcraft.yaml").exists()

    def test_invalid_config(self, temp_dir, capsys):
        assert main(["roi-means", "-c", str(temp_dir / "missing.yaml")]) == 1

    def test_unreadable_image(self, write_nifti, roi_mask_data, temp_dir, capsys):
        """A non-NIfTI input ends the run with a one-line message."""
        notes = temp_dir / "notes.txt"
        notes.write_text("not an image")
        mask = write_nifti("vta.nii", roi_mask_data, folder="masks")

        code = main(
            ["roi-means", "--images", str(notes), "--masks", str(mask), "-o", str(temp_dir / "r.csv"), "-y"]
        )

        err = capsys.readouterr().err
        messages = [line for line in err.splitlines() if "✗" in line]
        assert code == 1
        assert len(messages) == 1
        assert "notes.txt" in messages[0]
        assert "Traceback" not in err
        assert not (temp_dir / "r.csv").exists()

    def test_roi_means(self, sample_images, write_nifti, roi_mask_data, temp_dir):
        mask = write_nifti("vta.nii", roi_mask_data, folder="masks")
        output = temp_dir / "means.xlsx"

        code = main(
            ["roi-means", "--images", *map(str, sample_images), "--masks", str(mask), "-o", str(output), "-y"]
        )

        assert code == 0
        df = pd.read_excel(output, engine="openpyxl")
        assert list(df["MeanValue"]) == pytest.approx([1.0, 2.0, 3.0])

    def test_roi_means_without_output_is_cancelled(self, sample_images, write_nifti, roi_mask_data, capsys):
        mask = write_nifti("vta.nii", roi_mask_data, folder="masks")

        code = main(["roi-means", "--images", *map(str, sample_images), "--masks", str(mask), "-y"])

        assert code == 0
        assert "Save canceled" in capsys.readouterr().out

    def test_roi_means_mismatch_declined(self, sample_images, write_nifti, roi_mask_data, temp_dir):
        """Without --yes a count mismatch is declined and nothing is written."""
        masks = [str(write_nifti(f"m{i}.nii", roi_mask_data, folder="masks")) for i in range(2)]
        output = temp_dir / "means.csv"

        code = main(["roi-means", "--images", *map(str, sample_images), "--masks", *masks, "-o", str(output)])

        assert code == 0
        assert not output.exists()

    def test_roi_means_no_selection(self, capsys):
        assert main(["roi-means"]) == 0
        assert "No image files selected" in capsys.readouterr().out

    def test_difference(self, pair_folder, temp_dir):
        out = temp_dir / "out"

        code = main(["difference", str(pair_folder), str(out), "--no-center", "--no-mask", "-y"])

        assert code == 0
        img = nib.load(out / "sub1_Fixed_minus_sub1_Subtract_difference.nii")
        np.testing.assert_allclose(img.get_fdata(), 2.0)

    def test_difference_no_pairs(self, write_nifti, temp_dir):
        write_nifti("a_Fixed.nii", np.ones((3, 3, 3)), folder="in")

        assert main(["difference", str(temp_dir / "in"), str(temp_dir / "out"), "-y"]) == 1

    def test_difference_shape_error(self, pair_folder, write_nifti, temp_dir, capsys):
        write_nifti("sub2_Fixed.nii", np.ones((4, 4, 4)), folder="in")
        write_nifti("sub2_Subtract.nii", np.ones((4, 4, 3)), folder="in")

        code = main(["difference", str(pair_folder), str(temp_dir / "out"), "-y"])

        assert code == 1
        assert "Processing halted" in capsys.readouterr().err

    def test_difference_skip(self, pair_folder, write_nifti, temp_dir):
        write_nifti("sub2_Fixed.nii", np.ones((4, 4, 4)), folder="in")
        write_nifti("sub2_Subtract.nii", np.ones((4, 4, 3)), folder="in")

        code = main(["difference", str(pair_folder), str(temp_dir / "out"), "-y", "--on-error", "skip"])

        assert code == 0
        assert (temp_dir / "out" / "sub1_Fixed_minus_sub1_Subtract_difference.nii").exists()
