"""Python based runner."""

import abc
import contextlib
import logging
import pathlib
import time
from typing import Iterator, Optional, Tuple, Union

import numpy as np
from rich import progress

from behavstates.core import config, exceptions, models
from behavstates.io.readers import readers
from behavstates.io.writers import writers
from behavstates.processing import analytics, intervals

logger = config.get_logger()

STAGES = (
    "movement",
    "slow wave sleep",
    "REM sleep",
    "freezing",
    "quiet wakefulness",
)


class StageObserver(abc.ABC):
    """Receives notifications as the classification stages run.

    Observers are a side channel for logging and progress reporting; they never
    influence the classification.
    """

    @abc.abstractmethod
    def stage_started(self, stage: str) -> None:
        """Called before a stage runs."""
        pass

    @abc.abstractmethod
    def stage_finished(self, stage: str, elapsed: float) -> None:
        """Called after a stage completed, with its duration in seconds."""
        pass


class LoggingObserver(StageObserver):
    """Logs the start and duration of each stage."""

    def stage_started(self, stage: str) -> None:
        """Log the stage name."""
        logger.info("Detecting %s...", stage)

    def stage_finished(self, stage: str, elapsed: float) -> None:
        """Log the stage duration."""
        logger.info("...done detecting %s (this took %.2f seconds).", stage, elapsed)


class ProgressObserver(StageObserver):
    """Advances a rich progress bar by one step per stage."""

    def __init__(self, progress_bar: progress.Progress) -> None:
        """Initialize the observer and register its task on the progress bar.

        Args:
            progress_bar: A started rich Progress instance.
        """
        self.progress_bar = progress_bar
        self.task = progress_bar.add_task(
            "[cyan]Classifying states...", total=len(STAGES)
        )

    def stage_started(self, stage: str) -> None:
        """Show the running stage."""
        self.progress_bar.update(self.task, description=f"[cyan]Detecting {stage}...")

    def stage_finished(self, stage: str, elapsed: float) -> None:
        """Advance the bar."""
        self.progress_bar.update(self.task, advance=1)


@contextlib.contextmanager
def _observed(observer: StageObserver, stage: str) -> Iterator[None]:
    """Time a stage and report it to the observer, also when the stage raises."""
    observer.stage_started(stage)
    start = time.perf_counter()
    try:
        yield
    finally:
        observer.stage_finished(stage, time.perf_counter() - start)


def _validate_inputs(
    speed: models.Measurement,
    spindle: Optional[models.PowerSignal],
    theta: Optional[models.PowerSignal],
    speed_threshold: float,
    recording_span: Optional[Tuple[float, float]],
    settings: config.ClassifierSettings,
) -> Tuple[models.IntervalSet, models.PowerSignal, models.PowerSignal]:
    """Check the inputs before any stage runs.

    Args:
        speed: The speed trace.
        spindle: The spindle-band power.
        theta: The theta-band power.
        speed_threshold: Speed below which the animal is immobile.
        recording_span: The (start, end) of the recording, or None.
        settings: The classifier settings.

    Returns:
        The recording span as a single interval, then the spindle and theta
        power. When no span is given the span runs from the earliest to the latest
        time stamp of the inputs.

    Raises:
        ConfigurationError: If an input is missing or has the wrong shape, the
            threshold is not finite, or the span is empty.
    """
    if not isinstance(settings, config.ClassifierSettings):
        raise exceptions.ConfigurationError(
            f"settings must be ClassifierSettings, got {type(settings).__name__}."
        )
    if not np.isfinite(speed_threshold):
        raise exceptions.ConfigurationError("The speed threshold must be finite.")
    if speed.measurements.ndim != 1:
        raise exceptions.ConfigurationError("Speed must be a single series.")
    if spindle is None:
        raise exceptions.ConfigurationError(
            "Spindle-band power is required to detect slow wave sleep."
        )
    if spindle.power.measurements.ndim != 1:
        raise exceptions.ConfigurationError("Spindle power must be a single series.")
    if theta is None:
        raise exceptions.ConfigurationError(
            "Theta-band power is required to detect REM sleep with either method."
        )

    theta_power = theta.power.measurements
    has_control_bands = theta_power.ndim == 2 and theta_power.shape[1] >= 2
    if settings.rem_method == "two_probe" and not has_control_bands:
        raise exceptions.ConfigurationError(
            "The two probe REM method needs theta power and at least one control "
            "band, with theta in the last column."
        )
    if settings.rem_method == "single_probe" and not (
        theta_power.ndim == 1 or has_control_bands
    ):
        raise exceptions.ConfigurationError(
            "The single probe REM method needs a theta/delta ratio, or theta power "
            "and at least one control band."
        )

    if recording_span is None:
        all_time = [speed.time, spindle.power.time, theta.power.time]
        recording_span = (
            min(float(series.min()) for series in all_time),  # type: ignore[arg-type]
            max(float(series.max()) for series in all_time),  # type: ignore[arg-type]
        )
    start, end = recording_span
    if not (np.isfinite(start) and np.isfinite(end) and start < end):
        raise exceptions.ConfigurationError(
            f"Invalid recording span ({start}, {end}), start must precede end."
        )
    return models.IntervalSet.span(start, end), spindle, theta


def classify_states(
    speed: models.Measurement,
    spindle: Optional[models.PowerSignal],
    theta: Optional[models.PowerSignal],
    speed_threshold: float,
    recording_span: Optional[Tuple[float, float]] = None,
    settings: Optional[config.ClassifierSettings] = None,
    observer: Optional[StageObserver] = None,
    n_jobs: int = 1,
) -> writers.OrchestratorResults:
    """Partition a recording into behavioral and brain states.

    The stages run in a fixed order: movement, slow wave sleep, REM sleep,
    freezing and quiet wakefulness. Each stage only uses the intervals found before
    it. The outputs are then resolved into a partition of the recording.

    Args:
        speed: The animal speed, any sampling. Missing values are allowed.
        spindle: The smoothed 1 Hz spindle-band power with its noisy mask.
        theta: The 1 Hz theta power: control bands first and theta last, or a
            theta/delta ratio in single probe mode. Includes its noisy mask.
        speed_threshold: Speed below which the animal is immobile.
        recording_span: The (start, end) of the recording in seconds. Defaults to
            the range of the input time stamps.
        settings: The classifier settings, defaults to ClassifierSettings().
        observer: Receives stage notifications, defaults to a LoggingObserver.
        n_jobs: Worker threads for the Otsu scan, -1 for all CPUs.

    Returns:
        The partition as OrchestratorResults.

    Raises:
        ConfigurationError: If the inputs are rejected; nothing is computed.
        AmbiguousBipartitionError: If the single probe REM split is ambiguous; no
            partial result is returned.
    """
    settings = settings if settings is not None else config.ClassifierSettings()
    observer = observer if observer is not None else LoggingObserver()
    span, spindle_power, theta_power = _validate_inputs(
        speed, spindle, theta, speed_threshold, recording_span, settings
    )

    with _observed(observer, STAGES[0]):
        movement_result = analytics.detect_movement(
            speed, speed_threshold, span, settings
        )
    movement = movement_result.movement
    noisy = analytics.noisy_intervals(spindle_power, theta_power)
    no_data = intervals.union(movement_result.no_data, noisy)

    with _observed(observer, STAGES[1]):
        sws = analytics.detect_slow_wave_sleep(spindle_power, movement, settings)

    with _observed(observer, STAGES[2]):
        rem = analytics.detect_rem_sleep(
            theta_power, sws, movement, settings, n_jobs=n_jobs
        )

    with _observed(observer, STAGES[3]):
        freezing = analytics.detect_freezing(
            span, sws, rem, movement, noisy, no_data, settings
        )

    with _observed(observer, STAGES[4]):
        quiet_wake = analytics.detect_quiet_wake(
            span, sws, rem, freezing, movement, noisy, settings
        )

    partition = analytics.resolve_partition(
        span,
        {
            "sws": sws,
            "rem": rem,
            "freezing": freezing,
            "quiet_wake": quiet_wake,
            "movement": movement,
        },
        no_data,
        settings,
    )

    start, end = span.bounds[0]
    processing_params = {
        "speed_threshold": float(speed_threshold),
        "recording_span": [float(start), float(end)],
        "n_jobs": n_jobs,
        "settings": settings.model_dump(),
    }
    return writers.OrchestratorResults(**partition, processing_params=processing_params)


def run(
    speed_file: Union[pathlib.Path, str],
    spindle_file: Union[pathlib.Path, str],
    theta_file: Union[pathlib.Path, str],
    speed_threshold: float,
    output: Optional[Union[pathlib.Path, str]] = None,
    recording_span: Optional[Tuple[float, float]] = None,
    settings: Optional[config.ClassifierSettings] = None,
    n_jobs: int = 1,
    verbosity: int = logging.WARNING,
    observer: Optional[StageObserver] = None,
) -> writers.OrchestratorResults:
    """Reads the input tables, classifies the states and optionally saves them.

    Args:
        speed_file: Table with 'time' and 'speed' columns.
        spindle_file: Table with 'time', the spindle power and optionally 'noisy'.
        theta_file: Table with 'time', the control bands followed by theta (or a
            single ratio column) and optionally 'noisy'.
        speed_threshold: Speed below which the animal is immobile.
        output: Path to save the state intervals to, as .csv or .parquet.
        recording_span: The (start, end) of the recording in seconds.
        settings: The classifier settings.
        n_jobs: Worker threads for the Otsu scan, -1 for all CPUs.
        verbosity: The logging level for the logger.
        observer: Receives stage notifications.

    Returns:
        The partition as OrchestratorResults.

    Raises:
        InvalidFileTypeError: If the output extension is not supported.
        ConfigurationError: If the inputs are rejected.
        AmbiguousBipartitionError: If the single probe REM split is ambiguous.
    """
    logger.setLevel(verbosity)
    output = pathlib.Path(output) if output is not None else None
    if output is not None:
        writers.OrchestratorResults.validate_output(output=output)

    speed = readers.read_speed(speed_file)
    spindle = readers.read_power_signal(spindle_file)
    theta = readers.read_power_signal(theta_file)

    results = classify_states(
        speed=speed,
        spindle=spindle,
        theta=theta,
        speed_threshold=speed_threshold,
        recording_span=recording_span,
        settings=settings,
        observer=observer,
        n_jobs=n_jobs,
    )
    if results.processing_params is not None:
        results.processing_params["input_files"] = {
            "speed": str(speed_file),
            "spindle": str(spindle_file),
            "theta": str(theta_file),
        }

    if output is not None:
        try:
            results.save_results(output=output)
        except (PermissionError, FileExistsError) as exc_info:
            # Allowed to pass to recover in Jupyter Notebook scenarios.
            logger.error(
                "Could not save output due to: %s. Call save_results on the output "
                "object with a correct filename to save these results.",
                exc_info,
            )
    logger.info(
        "Processing for %s completed successfully.", pathlib.Path(speed_file).stem
    )
    return results
