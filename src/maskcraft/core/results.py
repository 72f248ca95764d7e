"""
Accumulation and persistence of ROI mean results.
"""

import logging
from pathlib import Path
from typing import Iterator, List, NamedTuple, Optional, Union

import pandas as pd

from maskcraft.core.errors import SaveCancelled

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["ImageFile", "MaskFile", "MeanValue"]


class ResultRecord(NamedTuple):
    """Mean value of one image inside one mask."""

    image_file: str
    mask_file: str
    mean_value: float


def short_name(path: Union[str, Path]) -> str:
    """Last folder plus file name, for compact display."""
    path = Path(path)
    return str(Path(path.parent.name) / path.name)


class ResultAccumulator:
    """
    Ordered, append-only collection of :class:`ResultRecord`.

    One record is appended per processed pairing; there is no
    deduplication or aggregation.
    """

    def __init__(self):
        self._records: List[ResultRecord] = []

    def append(
        self,
        image_file: Union[str, Path],
        mask_file: Union[str, Path],
        mean_value: float,
    ) -> ResultRecord:
        record = ResultRecord(str(image_file), str(mask_file), float(mean_value))
        self._records.append(record)
        return record

    @property
    def records(self) -> List[ResultRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ResultRecord]:
        return iter(list(self._records))

    def to_dataframe(self) -> pd.DataFrame:
        """Results as a table with columns ImageFile, MaskFile, MeanValue."""
        return pd.DataFrame(
            [tuple(r) for r in self._records],
            columns=RESULT_COLUMNS,
        ).astype({"MeanValue": float})

    def save(self, path: Optional[Union[str, Path]]) -> Path:
        """
        Write the results table.

        The format follows the file suffix: ``.xlsx`` (Excel), ``.tsv``
        or ``.csv``. Any other suffix is written as CSV.

        Parameters
        ----------
        path : str or Path
            Output file.

        Returns
        -------
        Path
            Path of the written file.

        Raises
        ------
        SaveCancelled
            If no path was given.
        """
        if path is None or str(path) == "":
            raise SaveCancelled("Save canceled: no output file given.")

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        table = self.to_dataframe()
        suffix = path.suffix.lower()

        if suffix == ".xlsx":
            with pd.ExcelWriter(path, engine="openpyxl") as writer:
                table.to_excel(writer, sheet_name="Results", index=False)
        elif suffix == ".tsv":
            table.to_csv(path, sep="\t", index=False)
        else:
            table.to_csv(path, index=False)

        logger.info(f"Results saved to: {path} ({len(table)} rows)")
        return path
