"""Fixtures used by pytest."""

import pathlib
from typing import Dict

import numpy as np
import polars as pl
import pytest

from behavstates.core import config, models

RECORDING_LENGTH = 2000


@pytest.fixture
def two_probe_settings() -> config.ClassifierSettings:
    """Default settings with the two probe REM method."""
    return config.ClassifierSettings(rem_method="two_probe")


@pytest.fixture
def recording_arrays() -> Dict[str, np.ndarray]:
    """A synthetic 2000 s recording sampled at 1 Hz.

    The animal moves for the first 300 s, rests until 500 s, is in SWS until 900 s
    and in REM until 999 s. It then moves again, with a speed dropout between
    1200 s and 1205 s and a 10 s pause at 1500 s. The spindle signal is noisy
    between 50 s and 60 s.
    """
    time = np.arange(RECORDING_LENGTH, dtype=np.float64)

    speed = np.full(RECORDING_LENGTH, 10.0)
    speed[300:1000] = 0.0
    speed[1201:1205] = np.nan
    speed[1500:1511] = 0.0

    spindle = np.ones(RECORDING_LENGTH)
    spindle[500:901] = 10.0
    spindle_noisy = np.zeros(RECORDING_LENGTH, dtype=bool)
    spindle_noisy[50:61] = True

    control = np.ones(RECORDING_LENGTH)
    theta = np.full(RECORDING_LENGTH, 0.5)
    theta[900:1000] = 2.0

    return {
        "time": time,
        "speed": speed,
        "spindle": spindle,
        "spindle_noisy": spindle_noisy,
        "control": control,
        "theta": theta,
    }


@pytest.fixture
def speed_measurement(recording_arrays: Dict[str, np.ndarray]) -> models.Measurement:
    """The speed of the synthetic recording."""
    return models.Measurement(
        measurements=recording_arrays["speed"],
        time=pl.Series(recording_arrays["time"]),
    )


@pytest.fixture
def spindle_signal(recording_arrays: Dict[str, np.ndarray]) -> models.PowerSignal:
    """The spindle power of the synthetic recording."""
    return models.PowerSignal(
        power=models.Measurement(
            measurements=recording_arrays["spindle"],
            time=pl.Series(recording_arrays["time"]),
        ),
        noisy=recording_arrays["spindle_noisy"],
    )


@pytest.fixture
def theta_signal(recording_arrays: Dict[str, np.ndarray]) -> models.PowerSignal:
    """The control band and theta power of the synthetic recording."""
    return models.PowerSignal(
        power=models.Measurement(
            measurements=np.column_stack(
                (recording_arrays["control"], recording_arrays["theta"])
            ),
            time=pl.Series(recording_arrays["time"]),
        ),
    )


@pytest.fixture
def recording_files(
    recording_arrays: Dict[str, np.ndarray], tmp_path: pathlib.Path
) -> Dict[str, pathlib.Path]:
    """The synthetic recording written to csv files."""
    speed_file = tmp_path / "speed.csv"
    spindle_file = tmp_path / "spindle.csv"
    theta_file = tmp_path / "theta.csv"

    pl.DataFrame(
        {"time": recording_arrays["time"], "speed": recording_arrays["speed"]}
    ).with_columns(pl.col("speed").fill_nan(None)).write_csv(speed_file)
    pl.DataFrame(
        {
            "time": recording_arrays["time"],
            "spindle": recording_arrays["spindle"],
            "noisy": recording_arrays["spindle_noisy"],
        }
    ).write_csv(spindle_file)
    pl.DataFrame(
        {
            "time": recording_arrays["time"],
            "delta": recording_arrays["control"],
            "theta": recording_arrays["theta"],
        }
    ).write_csv(theta_file)

    return {"speed": speed_file, "spindle": spindle_file, "theta": theta_file}
