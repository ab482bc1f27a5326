"""Internal data model."""

from typing import Any, Optional

import numpy as np
import polars as pl
import pydantic
from pydantic import BaseModel, field_validator, model_validator


class Measurement(BaseModel):
    """A sampled scalar (or multi-band) signal and its time stamps in seconds."""

    model_config = pydantic.ConfigDict(arbitrary_types_allowed=True)

    measurements: np.ndarray
    time: pl.Series

    @classmethod
    def from_data_frame(cls, data_frame: pl.DataFrame) -> "Measurement":
        """Creates a measurement from a Polars DataFrame.

        Args:
            data_frame: The Polars DataFrame, must have a time column. All
                non-time columns will be used as the 'measurements' input.
        """
        values = data_frame.drop("time").to_numpy()
        if values.shape[1] == 1:
            values = values[:, 0]
        return Measurement(measurements=values, time=data_frame["time"])

    @property
    def timestamps(self) -> np.ndarray:
        """The time stamps as a float numpy array."""
        return self.time.to_numpy()

    @field_validator("measurements")
    def validate_measurements_not_empty(cls, v: np.ndarray) -> np.ndarray:
        """Validate that the measurements array is not empty.

        Args:
            cls: The class.
            v: The measurements array to validate.

        Returns:
            v: The measurements array if it is not empty.

        Raises:
            ValueError: If the measurements array is empty or has more than two
                dimensions.
        """
        if v.size == 0:
            raise ValueError("measurements array must not be empty")
        if v.ndim > 2:
            raise ValueError("measurements must be one or two dimensional")
        return v

    @field_validator("time")
    def validate_time(cls, v: pl.Series) -> pl.Series:
        """Validate the time series.

        Check that the time series holds finite numbers of seconds, contains only
        unique entries, and is sorted.

        Args:
            cls: The class.
            v: The time series to validate.

        Returns:
            v: The time series, cast to Float64.

        Raises:
            ValueError: If the time series is empty, not numeric, not finite, not
                unique or not sorted.
        """
        if v.is_empty():
            raise ValueError("Time series cannot be empty")
        if not v.dtype.is_numeric():
            raise ValueError("Time must be a numeric series of seconds")
        v = v.cast(pl.Float64)
        if not v.is_finite().all():
            raise ValueError("Time series must be finite")
        if not v.is_unique().all():
            raise ValueError("Time series must contain unique entries")
        if not v.is_sorted():
            raise ValueError("Time series must be sorted")
        return v

    @model_validator(mode="after")
    def validate_lengths(self) -> "Measurement":
        """Validate that there is one row of measurements per time stamp."""
        if self.measurements.shape[0] != len(self.time):
            raise ValueError(
                "measurements and time must have the same number of samples"
            )
        return self


class PowerSignal(BaseModel):
    """A 1 Hz physiological power signal with its noisy-sample mask.

    The power measurement is either a single series, or one column per frequency
    band. Samples flagged as noisy carry no information and are treated as
    missing values.
    """

    model_config = pydantic.ConfigDict(arbitrary_types_allowed=True)

    power: Measurement
    noisy: Optional[np.ndarray] = None

    @model_validator(mode="after")
    def validate_noisy(self) -> "PowerSignal":
        """Validate that the noisy mask is a boolean vector aligned with power."""
        if self.noisy is None:
            return self
        mask = np.asarray(self.noisy)
        if mask.ndim != 1 or mask.shape[0] != len(self.power.time):
            raise ValueError("noisy mask must have one entry per power sample")
        self.noisy = mask.astype(bool)
        return self

    @property
    def noisy_mask(self) -> np.ndarray:
        """The noisy mask; all False when no mask was given."""
        if self.noisy is None:
            return np.zeros(len(self.power.time), dtype=bool)
        return self.noisy

    def masked(self) -> np.ndarray:
        """Returns the power values as floats with noisy samples set to NaN."""
        values = np.array(self.power.measurements, dtype=np.float64)
        values[self.noisy_mask] = np.nan
        return values


class IntervalSet(BaseModel):
    """A collection of [start, end) intervals, in seconds.

    Every interval must have a positive duration. Sets returned by the functions
    in behavstates.processing.intervals are additionally sorted by start and
    non-overlapping.
    """

    model_config = pydantic.ConfigDict(arbitrary_types_allowed=True)

    bounds: np.ndarray = pydantic.Field(
        default_factory=lambda: np.empty((0, 2), dtype=np.float64)
    )

    @field_validator("bounds", mode="before")
    def validate_bounds(cls, v: Any) -> np.ndarray:
        """Coerce the bounds to an (n, 2) float array and check each interval.

        Args:
            cls: The class.
            v: Anything numpy can turn into an (n, 2) array.

        Returns:
            The bounds as a float64 array of shape (n, 2).

        Raises:
            ValueError: If the bounds are not finite, not pairs, or any interval has
                a non-positive duration.
        """
        bounds = np.asarray(v, dtype=np.float64)
        if bounds.size == 0:
            return np.empty((0, 2), dtype=np.float64)
        if bounds.ndim == 1 and bounds.shape[0] == 2:
            bounds = bounds.reshape(1, 2)
        if bounds.ndim != 2 or bounds.shape[1] != 2:
            raise ValueError("bounds must have shape (n, 2)")
        if not np.isfinite(bounds).all():
            raise ValueError("bounds must be finite")
        if np.any(bounds[:, 1] <= bounds[:, 0]):
            raise ValueError("every interval must end after it starts")
        return bounds

    @classmethod
    def empty(cls) -> "IntervalSet":
        """Returns a set with no intervals."""
        return cls()

    @classmethod
    def span(cls, start: float, end: float) -> "IntervalSet":
        """Returns a set holding the single interval [start, end)."""
        return cls(bounds=[[start, end]])

    @classmethod
    def from_data_frame(cls, data_frame: pl.DataFrame) -> "IntervalSet":
        """Creates an interval set from a frame with 'start' and 'end' columns."""
        return cls(bounds=data_frame.select("start", "end").to_numpy())

    def to_data_frame(self) -> pl.DataFrame:
        """Exports the intervals as a two column (start, end) table."""
        return pl.DataFrame(
            {"start": self.bounds[:, 0], "end": self.bounds[:, 1]},
            schema={"start": pl.Float64, "end": pl.Float64},
        )

    @property
    def starts(self) -> np.ndarray:
        """Start time of each interval."""
        return self.bounds[:, 0]

    @property
    def ends(self) -> np.ndarray:
        """End time of each interval."""
        return self.bounds[:, 1]

    @property
    def durations(self) -> np.ndarray:
        """Duration of each interval."""
        return self.bounds[:, 1] - self.bounds[:, 0]

    @property
    def midpoints(self) -> np.ndarray:
        """Temporal midpoint of each interval."""
        return self.bounds.mean(axis=1)

    @property
    def total_duration(self) -> float:
        """Summed duration of all intervals."""
        return float(self.durations.sum())

    @property
    def is_empty(self) -> bool:
        """True when the set holds no intervals."""
        return self.bounds.shape[0] == 0

    def __len__(self) -> int:
        """Number of intervals in the set."""
        return self.bounds.shape[0]

    def __eq__(self, other: object) -> bool:
        """Two sets are equal when they hold exactly the same bounds."""
        if not isinstance(other, IntervalSet):
            return NotImplemented
        return bool(np.array_equal(self.bounds, other.bounds))
