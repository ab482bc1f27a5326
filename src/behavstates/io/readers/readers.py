"""Functions to read the speed and power tables produced upstream."""

import pathlib
from typing import Union

import numpy as np
import polars as pl

from behavstates.core import exceptions, models

VALID_FILE_TYPES = (".csv", ".parquet")


def read_table(file_name: Union[pathlib.Path, str]) -> pl.DataFrame:
    """Read a csv or parquet table with a 'time' column in seconds.

    Args:
        file_name: The file to read.

    Returns:
        The table, sorted by time.

    Raises:
        InvalidFileTypeError: If the file extension is not supported.
        ValueError: If the table has no 'time' column.
    """
    file_name = pathlib.Path(file_name)
    if file_name.suffix == ".csv":
        data = pl.read_csv(file_name)
    elif file_name.suffix == ".parquet":
        data = pl.read_parquet(file_name)
    else:
        raise exceptions.InvalidFileTypeError(
            f"File type {file_name.suffix} is not supported. "
            f"Use one of {VALID_FILE_TYPES}."
        )

    if "time" not in data.columns:
        raise ValueError(f"{file_name} has no 'time' column.")
    return data.with_columns(pl.col("time").cast(pl.Float64)).sort("time")


def read_speed(file_name: Union[pathlib.Path, str]) -> models.Measurement:
    """Read the animal speed.

    Args:
        file_name: A csv or parquet file with 'time' and 'speed' columns. Empty
            speed cells are read as missing values.

    Returns:
        The speed as a Measurement.

    Raises:
        ValueError: If the table has no 'speed' column.
    """
    data = read_table(file_name)
    if "speed" not in data.columns:
        raise ValueError(f"{file_name} has no 'speed' column.")
    speed = data["speed"].cast(pl.Float64).fill_null(np.nan).to_numpy()
    return models.Measurement(measurements=speed, time=data["time"])


def read_power_signal(file_name: Union[pathlib.Path, str]) -> models.PowerSignal:
    """Read a 1 Hz power table.

    Every column other than 'time' and 'noisy' is a power band, kept in file
    order. Theta power tables list the control bands first and theta last.

    Args:
        file_name: A csv or parquet file with a 'time' column, an optional
            boolean 'noisy' column and one or more band columns.

    Returns:
        The power and its noisy mask as a PowerSignal.

    Raises:
        ValueError: If the table has no band column.
    """
    data = read_table(file_name)
    band_columns = [name for name in data.columns if name not in ("time", "noisy")]
    if not band_columns:
        raise ValueError(f"{file_name} has no power column.")

    power = data.select(
        pl.col(band_columns).cast(pl.Float64).fill_null(np.nan)
    ).to_numpy()
    if power.shape[1] == 1:
        power = power[:, 0]
    noisy = (
        data["noisy"].cast(pl.Boolean).fill_null(False).to_numpy()
        if "noisy" in data.columns
        else None
    )
    return models.PowerSignal(
        power=models.Measurement(measurements=power, time=data["time"]),
        noisy=noisy,
    )
