"""CLI for behavstates."""

import logging
import pathlib
from enum import Enum
from typing import Dict, Optional, Tuple

import pydantic
import typer
from rich import progress

from behavstates.core import config, exceptions

logger = config.get_logger()
app = typer.Typer(
    help="Classify a rodent recording into behavioral and brain states.",
)


class RemMethod(str, Enum):
    """Setting a REM detection method for typer.

    This class is used to define the literal types that are allowed for REM
    detection, and parsing the strings for the orchestrator.
    """

    two_probe = "two_probe"
    single_probe = "single_probe"


def version_check(version: bool) -> None:
    """Print the current version of behavstates and exit."""
    if version:
        typer.echo(f"behavstates version: {config.get_version()}")
        raise typer.Exit()


def _parse_settings(
    overrides: Optional[list[str]], rem_method: RemMethod
) -> config.ClassifierSettings:
    """Parse 'name=value' duration overrides into classifier settings.

    Args:
        overrides: Strings such as 'minSleepLength=60' or 'min_sleep_length=60'.
        rem_method: The REM detection method.

    Returns:
        The classifier settings.

    Raises:
        typer.BadParameter: If an override is malformed, names an unknown setting
            or holds an invalid value.
    """
    values: Dict[str, float] = {}
    for override in overrides or []:
        name, separator, value = override.partition("=")
        name = name.strip()
        if not separator or not name:
            raise typer.BadParameter(f"Expected name=value, got: {override}")
        if name in ("rem_method", "remMethod"):
            raise typer.BadParameter("Use --rem-method to pick the REM method.")
        try:
            values[name] = float(value)
        except ValueError:
            raise typer.BadParameter(f"Invalid float in setting: {override}")

    try:
        return config.ClassifierSettings(
            **values,  # type: ignore[arg-type]
            rem_method=rem_method.value,
        )
    except pydantic.ValidationError as exc_info:
        raise typer.BadParameter(f"Invalid settings: {exc_info}")


def _parse_span(
    start: Optional[float], end: Optional[float]
) -> Optional[Tuple[float, float]]:
    """Combine the span options; both or neither must be given."""
    if start is None and end is None:
        return None
    if start is None or end is None:
        raise typer.BadParameter("Give both --start and --end, or neither.")
    return (start, end)


@app.command()
def main(
    speed: pathlib.Path = typer.Argument(
        ..., help="Table with 'time' and 'speed' columns.", exists=True
    ),
    spindle: pathlib.Path = typer.Argument(
        ...,
        help="Table with 'time', the spindle-band power and an optional 'noisy' "
        "column.",
        exists=True,
    ),
    theta: pathlib.Path = typer.Argument(
        ...,
        help="Table with 'time', the control bands followed by theta (or a single "
        "theta/delta ratio column) and an optional 'noisy' column.",
        exists=True,
    ),
    speed_threshold: float = typer.Option(
        ...,
        "-t",
        "--speed-threshold",
        help="Speed below which the animal is considered immobile.",
    ),
    output: pathlib.Path = typer.Option(
        None,
        "-o",
        "--output",
        help="Path where the state intervals will be saved. "
        "Supports .csv and .parquet formats.",
    ),
    rem_method: RemMethod = typer.Option(
        RemMethod.single_probe,
        "-r",
        "--rem-method",
        help="Pick how REM candidates are found. 'two_probe' compares theta with "
        "the control bands, 'single_probe' splits the theta/delta ratio.",
        case_sensitive=False,
    ),
    start: Optional[float] = typer.Option(
        None,
        "--start",
        help="Start of the recording in seconds. Defaults to the first time stamp.",
    ),
    end: Optional[float] = typer.Option(
        None,
        "--end",
        help="End of the recording in seconds. Defaults to the last time stamp.",
    ),
    settings: list[str] = typer.Option(
        None,
        "-s",
        "--setting",
        help="Override a duration setting, in seconds. Format: name=value. "
        "Use multiple times for multiple settings: "
        "'-s minSleepLength=60 -s restPriorSWS=90' etc.",
    ),
    n_jobs: int = typer.Option(
        1,
        "-j",
        "--n-jobs",
        help="Worker threads for the theta/delta split. -1 uses every CPU.",
    ),
    verbosity: bool = typer.Option(
        False,
        "-v",
        "--verbosity",
        help="Determines the level of verbosity. Use -v for DEBUG. "
        "Defaults to INFO if not included.",
    ),
    version: bool = typer.Option(
        False,
        "-V",
        "--version",
        help="Print the current version of behavstates and exit.",
        is_eager=True,
        callback=version_check,
    ),
) -> None:
    """Run the behavstates orchestrator with command line arguments."""
    from behavstates.core import orchestrator

    log_level = logging.INFO
    if verbosity:
        log_level = logging.DEBUG
    logger.setLevel(log_level)

    classifier_settings = _parse_settings(settings, rem_method)
    recording_span = _parse_span(start, end)

    logger.debug("Running behavstates. arguments given: %s", locals())
    try:
        with progress.Progress(transient=True) as progress_bar:
            orchestrator.run(
                speed_file=speed,
                spindle_file=spindle,
                theta_file=theta,
                speed_threshold=speed_threshold,
                output=output,
                recording_span=recording_span,
                settings=classifier_settings,
                n_jobs=n_jobs,
                verbosity=log_level,
                observer=orchestrator.ProgressObserver(progress_bar),
            )
    except (
        exceptions.ConfigurationError,
        exceptions.AmbiguousBipartitionError,
        exceptions.InvalidFileTypeError,
    ) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
