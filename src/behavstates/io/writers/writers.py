"""Module containing the output classes for writing data to files."""

import datetime
import json
import pathlib
from typing import Any, Dict, Optional

import polars as pl
import pydantic

from behavstates.core import config, exceptions, models

VALID_FILE_TYPES = (".csv", ".parquet")

logger = config.get_logger()


class OrchestratorResults(pydantic.BaseModel):
    """Dataclass containing results of orchestrator.classify_states().

    The five behavioral states, the NoData periods and the unclassified remainder
    are pairwise disjoint and together cover the recording span.
    """

    freezing: models.IntervalSet
    quiet_wake: models.IntervalSet
    sws: models.IntervalSet
    rem: models.IntervalSet
    movement: models.IntervalSet
    no_data: models.IntervalSet
    unclassified: models.IntervalSet
    processing_params: Optional[Dict[str, Any]] = None

    def state_table(self) -> pl.DataFrame:
        """Collect every interval in one long table.

        Returns:
            A DataFrame with columns 'state', 'start' and 'end', sorted by start.
        """
        frames = [
            value.to_data_frame().select(
                pl.lit(name).alias("state"), pl.col("start"), pl.col("end")
            )
            for name, value in self
            if name != "processing_params"
        ]
        return pl.concat(frames).sort("start")

    def save_results(self, output: pathlib.Path) -> None:
        """Save the state intervals as a csv or parquet file.

        Args:
            output: The path and file name of the data to be saved. as either a csv or
                parquet files.
        """
        logger.debug("Saving results.")
        self.validate_output(output=output)
        output.parent.mkdir(parents=True, exist_ok=True)

        results_dataframe = self.state_table()

        if output.suffix == ".csv":
            results_dataframe.write_csv(output, separator=",")
        elif output.suffix == ".parquet":
            results_dataframe.write_parquet(output)

        logger.info("Results saved in: %s", output)

        if self.processing_params:
            self.save_config_as_json(output)

    def save_config_as_json(self, output_path: pathlib.Path) -> None:
        """Save processing parameters as a JSON configuration file.

        Args:
            output_path: Path where the data file was saved. The JSON file will use
                the same name but with .json extension.
        """
        if not self.processing_params:
            logger.warning("No processing parameters to save as JSON")
            return

        config_data = {
            "processing_time": datetime.datetime.now().isoformat(timespec="seconds"),
            "behavstates_version": config.get_version(),
            "processing_parameters": self.processing_params,
        }

        config_path = output_path.with_suffix(".json")

        with open(config_path, "w") as f:
            json.dump(config_data, f, indent=4)

        logger.debug("Configuration saved in: %s", config_path)

    @classmethod
    def validate_output(cls, output: pathlib.Path) -> None:
        """Validates that the output path is a valid format.

        Args:
            output: the name of the file to be saved, and the directory it will
                be saved in. Must be a .csv or .parquet file.

        Raises:
            InvalidFileTypeError:If the output file path ends with any extension other
                    than csv or parquet.
        """
        if output.suffix not in VALID_FILE_TYPES:
            raise exceptions.InvalidFileTypeError(
                f"The extension: {output.suffix} is not supported."
                "Please save the file as .csv or .parquet",
            )
