"""Tests for result accumulation and saving."""

import numpy as np
import pandas as pd
import pytest

from maskcraft.core.errors import SaveCancelled
from maskcraft.core.results import RESULT_COLUMNS, ResultAccumulator, short_name


@pytest.fixture
def accumulator():
    results = ResultAccumulator()
    results.append("/data/pet/sub-01.nii", "/data/masks/vta.nii", 1.5)
    results.append("/data/pet/sub-02.nii", "/data/masks/vta.nii", float("nan"))
    results.append("/data/pet/sub-01.nii", "/data/masks/vta.nii", 1.5)
    return results


class TestResultAccumulator:
    """Tests for ResultAccumulator."""

    def test_order_and_duplicates_kept(self, accumulator):
        """Records keep insertion order and are never deduplicated."""
        assert len(accumulator) == 3
        assert [r.image_file for r in accumulator] == [
            "/data/pet/sub-01.nii",
            "/data/pet/sub-02.nii",
            "/data/pet/sub-01.nii",
        ]

    def test_records_is_copy(self, accumulator):
        accumulator.records.clear()
        assert len(accumulator) == 3

    def test_dataframe(self, accumulator):
        df = accumulator.to_dataframe()

        assert list(df.columns) == RESULT_COLUMNS
        assert df["MeanValue"].iloc[0] == 1.5
        assert np.isnan(df["MeanValue"].iloc[1])

    def test_empty_dataframe(self):
        df = ResultAccumulator().to_dataframe()
        assert list(df.columns) == RESULT_COLUMNS
        assert len(df) == 0

    def test_save_csv(self, accumulator, temp_dir):
        path = accumulator.save(temp_dir / "results.csv")

        df = pd.read_csv(path)
        assert list(df.columns) == RESULT_COLUMNS
        assert len(df) == 3
        assert df["MaskFile"].iloc[0] == "/data/masks/vta.nii"

    def test_save_tsv(self, accumulator, temp_dir):
        path = accumulator.save(temp_dir / "results.tsv")

        df = pd.read_csv(path, sep="\t")
        assert list(df.columns) == RESULT_COLUMNS
        assert len(df) == 3

    def test_save_xlsx(self, accumulator, temp_dir):
        """Excel output has a single results sheet with the three columns."""
        path = accumulator.save(temp_dir / "sub" / "results.xlsx")

        df = pd.read_excel(path, sheet_name="Results", engine="openpyxl")
        assert list(df.columns) == RESULT_COLUMNS
        assert df["MeanValue"].iloc[2] == pytest.approx(1.5)

    @pytest.mark.parametrize("path", [None, ""])
    def test_save_without_destination(self, accumulator, path):
        with pytest.raises(SaveCancelled):
            accumulator.save(path)


def test_short_name():
    """Only the last folder and file name are kept."""
    assert short_name("/data/study/pet/sub-01.nii") == "pet/sub-01.nii"
