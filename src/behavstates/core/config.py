"""Configuration module for behavstates."""

import logging
from importlib import metadata
from typing import Literal

import pydantic


def get_version() -> str:
    """Return behavstates version."""
    try:
        return metadata.version("behavstates")
    except metadata.PackageNotFoundError:
        return "Version unknown"


def get_logger() -> logging.Logger:
    """Gets the behavstates logger."""
    logger = logging.getLogger("behavstates")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)s - %(funcName)s - %(message)s",  # noqa: E501
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


class ClassifierSettings(pydantic.BaseModel):
    """Durations and switches controlling the state classification.

    All durations are in seconds. Field names are snake_case; the historical
    camelCase option names (e.g. 'immobilityTolerance', 'SWStoREMmaxTransition')
    are accepted as aliases. Unknown names and negative durations are rejected
    when the settings are constructed, before any classification runs.

    Attributes:
        immobility_tolerance: Immobility runs shorter than this do not interrupt
            movement.
        sleep_move_tolerance: Maximum gap bridged inside SWS and REM episodes.
        sws_to_rem_max_transition: How far before its start a REM episode looks for
            a preceding SWS episode.
        rest_prior_sws: Time before each sleep episode that cannot be freezing.
        min_sleep_length: Minimum duration of SWS and REM episodes.
        freezing_move_tolerance: Maximum gap bridged inside freezing episodes.
        min_freezing_length: Minimum duration of freezing episodes.
        quiet_move_tolerance: Maximum gap bridged inside quiet wakefulness.
        min_quiet_length: Minimum duration of quiet wakefulness episodes.
        max_speed_gap: Gaps between speed samples longer than this become NoData.
        speed_smoothing: Standard deviation, in samples, of the Gaussian kernel
            applied to the speed trace. 0 disables smoothing.
        ratio_smoothing: Standard deviation, in samples, of the Gaussian kernel
            applied to the theta/delta ratio in single probe mode.
        rem_method: 'two_probe' compares theta power against the control bands
            directly, 'single_probe' splits the theta/delta ratio with Otsu.
    """

    model_config = pydantic.ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
        allow_inf_nan=False,
    )

    immobility_tolerance: float = pydantic.Field(
        0.2, ge=0, alias="immobilityTolerance"
    )
    sleep_move_tolerance: float = pydantic.Field(1.5, ge=0, alias="sleepMoveTolerance")
    sws_to_rem_max_transition: float = pydantic.Field(
        120.0, ge=0, alias="SWStoREMmaxTransition"
    )
    rest_prior_sws: float = pydantic.Field(120.0, ge=0, alias="restPriorSWS")
    min_sleep_length: float = pydantic.Field(30.0, ge=0, alias="minSleepLength")
    freezing_move_tolerance: float = pydantic.Field(
        0.2, ge=0, alias="freezingMoveTolerance"
    )
    min_freezing_length: float = pydantic.Field(2.0, ge=0, alias="minFreezingLength")
    quiet_move_tolerance: float = pydantic.Field(0.5, ge=0, alias="QuietMoveTolerance")
    min_quiet_length: float = pydantic.Field(2.0, ge=0, alias="minQuietLength")
    max_speed_gap: float = pydantic.Field(1.0, gt=0, alias="maxSpeedGap")
    speed_smoothing: float = pydantic.Field(0.0, ge=0, alias="speedSmoothing")
    ratio_smoothing: float = pydantic.Field(8.0, ge=0, alias="ratioSmoothing")
    rem_method: Literal["two_probe", "single_probe"] = pydantic.Field(
        "single_probe", alias="remMethod"
    )
