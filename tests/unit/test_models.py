"""Test the behavstates data models."""

import numpy as np
import polars as pl
import pytest

from behavstates.core import models


def test_measurement_casts_time() -> None:
    """Test integer time stamps are stored as seconds in Float64."""
    measurement = models.Measurement(
        measurements=np.arange(5.0), time=pl.Series([0, 1, 2, 3, 4])
    )

    assert measurement.time.dtype == pl.Float64
    np.testing.assert_array_equal(measurement.timestamps, np.arange(5.0))


def test_measurement_from_data_frame() -> None:
    """Test a single value column becomes a vector and several a matrix."""
    data = pl.DataFrame({"time": [0.0, 1.0], "a": [1.0, 2.0], "b": [3.0, 4.0]})

    vector = models.Measurement.from_data_frame(data.select("time", "a"))
    matrix = models.Measurement.from_data_frame(data)

    assert vector.measurements.shape == (2,)
    assert matrix.measurements.shape == (2, 2)


@pytest.mark.parametrize(
    "measurements, time, match",
    [
        (np.array([]), pl.Series([0.0]), "must not be empty"),
        (np.ones((2, 2, 2)), pl.Series([0.0, 1.0]), "one or two dimensional"),
        (np.ones(2), pl.Series([1.0, 0.0]), "sorted"),
        (np.ones(2), pl.Series([1.0, 1.0]), "unique"),
        (np.ones(2), pl.Series(["a", "b"]), "numeric"),
        (np.ones(2), pl.Series([0.0, float("inf")]), "finite"),
        (np.ones(3), pl.Series([0.0, 1.0]), "same number of samples"),
    ],
)
def test_measurement_invalid(
    measurements: np.ndarray, time: pl.Series, match: str
) -> None:
    """Test invalid measurements are rejected."""
    with pytest.raises(ValueError, match=match):
        models.Measurement(measurements=measurements, time=time)


def test_power_signal_masked() -> None:
    """Test noisy samples are replaced by NaN."""
    signal = models.PowerSignal(
        power=models.Measurement(
            measurements=np.array([1, 2, 3]), time=pl.Series([0.0, 1.0, 2.0])
        ),
        noisy=np.array([0, 1, 0]),
    )

    masked = signal.masked()

    np.testing.assert_array_equal(signal.noisy_mask, [False, True, False])
    np.testing.assert_array_equal(masked, [1.0, np.nan, 3.0])


def test_power_signal_without_mask() -> None:
    """Test a missing mask means no sample is noisy."""
    signal = models.PowerSignal(
        power=models.Measurement(
            measurements=np.ones((3, 2)), time=pl.Series([0.0, 1.0, 2.0])
        )
    )

    assert not signal.noisy_mask.any()
    assert signal.masked().shape == (3, 2)


def test_power_signal_misaligned_mask() -> None:
    """Test a mask with the wrong length is rejected."""
    with pytest.raises(ValueError, match="one entry per power sample"):
        models.PowerSignal(
            power=models.Measurement(
                measurements=np.ones(3), time=pl.Series([0.0, 1.0, 2.0])
            ),
            noisy=np.zeros(2, dtype=bool),
        )


def test_interval_set_properties() -> None:
    """Test the derived interval quantities."""
    interval_set = models.IntervalSet(bounds=[[0.0, 2.0], [5.0, 9.0]])

    np.testing.assert_array_equal(interval_set.starts, [0.0, 5.0])
    np.testing.assert_array_equal(interval_set.ends, [2.0, 9.0])
    np.testing.assert_array_equal(interval_set.durations, [2.0, 4.0])
    np.testing.assert_array_equal(interval_set.midpoints, [1.0, 7.0])
    assert interval_set.total_duration == 6.0
    assert len(interval_set) == 2
    assert not interval_set.is_empty


def test_interval_set_empty() -> None:
    """Test the empty set."""
    empty = models.IntervalSet.empty()

    assert empty.is_empty
    assert empty.bounds.shape == (0, 2)
    assert empty.total_duration == 0.0
    assert empty == models.IntervalSet(bounds=[])


def test_interval_set_single_pair() -> None:
    """Test a single (start, end) pair is accepted."""
    assert models.IntervalSet(bounds=[1.0, 2.0]) == models.IntervalSet.span(1.0, 2.0)


@pytest.mark.parametrize(
    "bounds, match",
    [
        ([[1.0, 1.0]], "end after it starts"),
        ([[2.0, 1.0]], "end after it starts"),
        ([[0.0, np.nan]], "finite"),
        ([[0.0, 1.0, 2.0]], r"shape \(n, 2\)"),
    ],
)
def test_interval_set_invalid(bounds: list, match: str) -> None:
    """Test degenerate intervals are rejected."""
    with pytest.raises(ValueError, match=match):
        models.IntervalSet(bounds=bounds)


def test_interval_set_data_frame() -> None:
    """Test the export to a (start, end) table and back."""
    interval_set = models.IntervalSet(bounds=[[0.0, 2.0], [5.0, 9.0]])

    data_frame = interval_set.to_data_frame()

    assert data_frame.columns == ["start", "end"]
    assert data_frame.schema == {"start": pl.Float64, "end": pl.Float64}
    assert models.IntervalSet.from_data_frame(data_frame) == interval_set
