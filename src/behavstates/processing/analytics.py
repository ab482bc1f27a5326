"""Classify movement, sleep, freezing and quiet wakefulness epochs.

The stages run in a fixed order and each one only consumes the interval sets
produced before it:

1. Movement, from the speed trace.
2. Slow wave sleep (SWS): high spindle-band power outside movement.
3. REM sleep: theta dominated epochs that follow SWS.
4. Freezing: immobility that is neither sleep nor the rest preceding it.
5. Quiet wakefulness: whatever remains.

A final step resolves the few overlaps that gap bridging introduces, so that the
returned states tile the recording without overlapping.
"""

import warnings
from dataclasses import dataclass
from typing import Dict

import numpy as np
from sklearn import cluster

from behavstates.core import computations, config, exceptions, models
from behavstates.processing import intervals, otsu

logger = config.get_logger()

STATE_NAMES = ("sws", "rem", "freezing", "quiet_wake", "movement")


@dataclass
class MovementResult:
    """Dataclass to store the outcome of movement detection.

    Attributes:
        movement: periods during which the animal moves.
        immobility: periods with speed below threshold, long enough to interrupt
            movement.
        no_data: periods without any valid speed sample.
    """

    movement: models.IntervalSet
    immobility: models.IntervalSet
    no_data: models.IntervalSet


def detect_movement(
    speed: models.Measurement,
    speed_threshold: float,
    span: models.IntervalSet,
    settings: config.ClassifierSettings,
) -> MovementResult:
    """Find movement periods from the animal speed.

    Samples with a missing speed are removed. Gaps between the remaining samples
    longer than max_speed_gap become NoData. Immobility is every run of samples
    below the speed threshold that lasts at least immobility_tolerance; movement is
    the rest of the recording, minus NoData. A movement period whose midpoint
    cannot be interpolated from the speed samples is discarded, since movement
    cannot be asserted without data.

    Args:
        speed: The speed trace, any sampling.
        speed_threshold: Speed below which the animal is immobile.
        span: The recording span, a single interval.
        settings: The classifier settings.

    Returns:
        The movement, immobility and NoData intervals.
    """
    logger.debug("Detecting movement, speed threshold: %s", speed_threshold)
    start, end = span.bounds[0]
    values = np.asarray(speed.measurements, dtype=np.float64).reshape(-1)
    valid = np.isfinite(values)
    time = speed.timestamps[valid]
    values = values[valid]

    no_data = intervals.find_gaps(time, settings.max_speed_gap, start, end)
    if time.size == 0:
        logger.warning("No valid speed samples, the whole recording is NoData.")
        return MovementResult(
            movement=models.IntervalSet.empty(),
            immobility=models.IntervalSet.empty(),
            no_data=span,
        )

    if settings.speed_smoothing > 0:
        values = computations.nan_gaussian_smooth(values, settings.speed_smoothing)

    immobility = intervals.filter_by_min_duration(
        intervals.find_runs(time, values < speed_threshold),
        settings.immobility_tolerance,
    )
    movement = intervals.subtract(span, intervals.union(no_data, immobility))

    speed_at_midpoints = computations.interpolate_at(time, values, movement.midpoints)
    supported = np.isfinite(speed_at_midpoints)
    if not supported.all():
        logger.debug(
            "Discarding %s movement periods without speed data.",
            int((~supported).sum()),
        )
    movement = models.IntervalSet(bounds=movement.bounds[supported])

    logger.debug(
        "Movement: %s periods, immobility: %s periods, NoData: %s periods.",
        len(movement),
        len(immobility),
        len(no_data),
    )
    return MovementResult(movement=movement, immobility=immobility, no_data=no_data)


def noisy_intervals(*signals: models.PowerSignal) -> models.IntervalSet:
    """Periods flagged as noisy in any of the physiological signals."""
    return intervals.union(
        *[
            intervals.find_runs(signal.power.timestamps, signal.noisy_mask)
            for signal in signals
        ]
    )


def _high_power_samples(power: np.ndarray) -> np.ndarray:
    """Split power samples into a low and a high group with 2-means clustering.

    Args:
        power: 1-D power values, NaN where no information is available.

    Returns:
        A boolean array, True for samples in the cluster with the higher mean.
        Missing samples are never high.
    """
    valid = np.isfinite(power)
    high = np.zeros(power.shape, dtype=bool)
    if np.unique(power[valid]).size < 2:
        logger.warning("Spindle power has fewer than two distinct values, no SWS.")
        return high

    kmeans = cluster.KMeans(n_clusters=2, random_state=0, n_init=10)
    labels = kmeans.fit_predict(power[valid].reshape(-1, 1))

    cluster_means = np.array([power[valid][labels == k].mean() for k in range(2)])
    high[valid] = labels == int(np.argmax(cluster_means))
    return high


def detect_slow_wave_sleep(
    spindle: models.PowerSignal,
    movement: models.IntervalSet,
    settings: config.ClassifierSettings,
) -> models.IntervalSet:
    """Find slow wave sleep from the spindle-band power.

    Noisy samples are set to missing, the remaining (already smoothed) power is
    clustered into a low and a high group, and runs of high power outside of
    movement become SWS. Brief movements inside sleep are bridged with
    sleep_move_tolerance and episodes shorter than min_sleep_length are dropped.

    Args:
        spindle: The 1 Hz spindle-band (9-17 Hz) power, smoothed, with its noisy
            mask.
        movement: The movement periods.
        settings: The classifier settings.

    Returns:
        The SWS intervals.
    """
    logger.debug("Detecting slow wave sleep.")
    high = _high_power_samples(spindle.masked())
    high_power = intervals.find_runs(spindle.power.timestamps, high)

    sws = intervals.subtract(high_power, movement)
    sws = intervals.consolidate(sws, settings.sleep_move_tolerance)
    sws = intervals.filter_by_min_duration(sws, settings.min_sleep_length)
    logger.debug("SWS episodes found: %s", len(sws))
    return sws


def _control_band_mean(bands: np.ndarray) -> np.ndarray:
    """Mean power of the control bands (all columns but the last)."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        return np.nanmean(bands[:, :-1], axis=1)


def _theta_dominant_samples(bands: np.ndarray) -> np.ndarray:
    """Samples where theta power exceeds the mean of the control bands."""
    return bands[:, -1] > _control_band_mean(bands)


def _theta_delta_ratio(bands: np.ndarray) -> np.ndarray:
    """Theta power over the mean control band power; a 1-D input is the ratio."""
    if bands.ndim == 1:
        return bands.astype(np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = bands[:, -1] / _control_band_mean(bands)
    ratio[~np.isfinite(ratio)] = np.nan
    return ratio


def _high_theta_delta_samples(
    bands: np.ndarray, smoothing: float, n_jobs: int = 1
) -> np.ndarray:
    """Split the smoothed theta/delta ratio with Otsu and pick the REM group.

    REM occupies less of a recording than SWS, so the REM group must be the smaller
    one, and it must sit entirely above the other group.

    Args:
        bands: Band power, theta in the last column, or a precomputed ratio.
        smoothing: Gaussian smoothing of the ratio, in samples.
        n_jobs: Worker threads for the Otsu scan.

    Returns:
        A boolean array, True for samples in the REM group.

    Raises:
        AmbiguousBipartitionError: If the high ratio group is not the smaller one,
            or the group ranges overlap.
    """
    smoothed = computations.nan_gaussian_smooth(_theta_delta_ratio(bands), smoothing)
    valid = np.isfinite(smoothed)
    rem_samples = np.zeros(smoothed.shape, dtype=bool)
    if not valid.any():
        logger.warning("No valid theta/delta samples, no REM.")
        return rem_samples

    split = otsu.otsu(smoothed[valid], n_jobs=n_jobs)
    high_values = smoothed[valid][split.groups]
    low_values = smoothed[valid][~split.groups]
    logger.debug(
        "Theta/delta split: %s high, %s low samples, effectiveness %s.",
        high_values.size,
        low_values.size,
        split.effectiveness,
    )
    if (
        high_values.size == 0
        or high_values.size >= low_values.size
        or high_values.min() <= low_values.max()
    ):
        raise exceptions.AmbiguousBipartitionError(
            "Cannot separate REM from SWS: the high theta/delta group has "
            f"{high_values.size} samples and the low group {low_values.size}. "
            "More REM than SWS samples."
        )

    rem_samples[valid] = split.groups
    return rem_samples


def _preceded_by(
    candidates: models.IntervalSet, reference: models.IntervalSet, lookback: float
) -> np.ndarray:
    """Whether each candidate is preceded by reference within lookback seconds.

    Args:
        candidates: The intervals to test.
        reference: The intervals that must precede them.
        lookback: Length of the window before each candidate start.

    Returns:
        A boolean array aligned with candidates, True where some reference interval
        overlaps [start - lookback, start]. With a lookback of 0, a reference
        interval must be running at the candidate start.
    """
    if candidates.is_empty:
        return np.zeros(0, dtype=bool)
    if lookback > 0:
        windows = models.IntervalSet(
            bounds=np.column_stack((candidates.starts - lookback, candidates.starts))
        )
        return intervals.intersects(windows, reference)

    reference = intervals.consolidate(reference)
    preceded = np.zeros(len(candidates), dtype=bool)
    if reference.is_empty:
        return preceded
    starts = candidates.starts
    running = np.searchsorted(reference.ends, starts, side="right")
    in_range = running < len(reference)
    preceded[in_range] = reference.starts[running[in_range]] < starts[in_range]
    return preceded


def detect_rem_sleep(
    theta: models.PowerSignal,
    sws: models.IntervalSet,
    movement: models.IntervalSet,
    settings: config.ClassifierSettings,
    n_jobs: int = 1,
) -> models.IntervalSet:
    """Find REM sleep from theta-band power.

    With rem_method 'two_probe' (theta recorded independently of the spindle
    channel) REM candidates are the samples where theta power exceeds the mean of
    the lower control bands. With 'single_probe' the smoothed theta/delta ratio is
    split with Otsu's method.

    Candidates then end at the first subsequent movement onset, must be preceded by
    SWS within sws_to_rem_max_transition seconds, exclude SWS, have brief gaps
    bridged with sleep_move_tolerance, and last at least min_sleep_length.

    Args:
        theta: The 1 Hz band power with theta in the last column and the control
            bands before it, with its noisy mask. In single probe mode a 1-D
            theta/delta ratio is also accepted.
        sws: The SWS intervals.
        movement: The movement periods.
        settings: The classifier settings.
        n_jobs: Worker threads for the Otsu scan.

    Returns:
        The REM intervals.

    Raises:
        AmbiguousBipartitionError: If the single probe split cannot separate REM
            from SWS.
    """
    logger.debug("Detecting REM sleep, method: %s", settings.rem_method)
    time = theta.power.timestamps
    bands = theta.masked()

    if settings.rem_method == "two_probe":
        candidates = intervals.find_runs(time, _theta_dominant_samples(bands))
    else:
        candidates = intervals.find_runs(
            time,
            _high_theta_delta_samples(bands, settings.ratio_smoothing, n_jobs=n_jobs),
        )
    logger.debug("REM candidates: %s", len(candidates))

    rem = intervals.truncate_at_onsets(candidates, movement)
    preceded = _preceded_by(rem, sws, settings.sws_to_rem_max_transition)
    rem = models.IntervalSet(bounds=rem.bounds[preceded])

    rem = intervals.subtract(rem, sws)
    rem = intervals.consolidate(rem, settings.sleep_move_tolerance)
    rem = intervals.filter_by_min_duration(rem, settings.min_sleep_length)
    logger.debug("REM episodes found: %s", len(rem))
    return rem


def detect_freezing(
    span: models.IntervalSet,
    sws: models.IntervalSet,
    rem: models.IntervalSet,
    movement: models.IntervalSet,
    noisy: models.IntervalSet,
    no_data: models.IntervalSet,
    settings: config.ClassifierSettings,
) -> models.IntervalSet:
    """Find freezing: immobility that is not sleep or the rest preceding sleep.

    Args:
        span: The recording span.
        sws: The SWS intervals.
        rem: The REM intervals.
        movement: The movement periods.
        noisy: Periods with noisy physiological signals.
        no_data: Periods without speed or physiological data.
        settings: The classifier settings.

    Returns:
        The freezing intervals.
    """
    logger.debug("Detecting freezing.")
    cannot_freeze = intervals.union(
        intervals.extend_backward(sws, settings.rest_prior_sws),
        movement,
        noisy,
        intervals.extend_backward(rem, settings.rest_prior_sws),
    )
    freezing = intervals.subtract(span, intervals.union(cannot_freeze, no_data))
    freezing = intervals.consolidate(freezing, settings.freezing_move_tolerance)
    freezing = intervals.filter_by_min_duration(
        freezing, settings.min_freezing_length
    )
    logger.debug("Freezing episodes found: %s", len(freezing))
    return freezing


def detect_quiet_wake(
    span: models.IntervalSet,
    sws: models.IntervalSet,
    rem: models.IntervalSet,
    freezing: models.IntervalSet,
    movement: models.IntervalSet,
    noisy: models.IntervalSet,
    settings: config.ClassifierSettings,
) -> models.IntervalSet:
    """Find quiet wakefulness: time that is neither sleep, freezing nor movement.

    Args:
        span: The recording span.
        sws: The SWS intervals.
        rem: The REM intervals.
        freezing: The freezing intervals.
        movement: The movement periods.
        noisy: Periods with noisy physiological signals.
        settings: The classifier settings.

    Returns:
        The quiet wakefulness intervals.
    """
    logger.debug("Detecting quiet wakefulness.")
    quiet_wake = intervals.subtract(
        span, intervals.union(rem, sws, freezing, movement, noisy)
    )
    quiet_wake = intervals.consolidate(quiet_wake, settings.quiet_move_tolerance)
    quiet_wake = intervals.filter_by_min_duration(
        quiet_wake, settings.min_quiet_length
    )
    logger.debug("Quiet wakefulness episodes found: %s", len(quiet_wake))
    return quiet_wake


def resolve_partition(
    span: models.IntervalSet,
    states: Dict[str, models.IntervalSet],
    no_data: models.IntervalSet,
    settings: config.ClassifierSettings,
) -> Dict[str, models.IntervalSet]:
    """Turn the stage outputs into a gapless, non-overlapping partition.

    Bridging short gaps can let a state spill over a brief movement or a short
    stretch of NoData. Time is therefore claimed in order of precedence: NoData,
    SWS, REM, freezing, quiet wakefulness, then movement. Each state is clipped to
    the recording, loses what was already claimed, and is filtered again by its
    minimum duration. Time no state keeps is reported as 'unclassified'.

    Args:
        span: The recording span.
        states: The stage outputs, keyed by 'sws', 'rem', 'freezing',
            'quiet_wake' and 'movement'.
        no_data: Periods without speed or physiological data.
        settings: The classifier settings.

    Returns:
        The five states, 'no_data' and 'unclassified'. Together they cover the
        recording span exactly once.
    """
    min_lengths = {
        "sws": settings.min_sleep_length,
        "rem": settings.min_sleep_length,
        "freezing": settings.min_freezing_length,
        "quiet_wake": settings.min_quiet_length,
        "movement": 0.0,
    }
    claimed = intervals.intersection(no_data, span)
    partition = {"no_data": claimed}
    for name in STATE_NAMES:
        kept = intervals.subtract(intervals.intersection(states[name], span), claimed)
        kept = intervals.filter_by_min_duration(kept, min_lengths[name])
        if kept.total_duration < states[name].total_duration:
            logger.debug(
                "%s lost %.2f s to higher precedence states.",
                name,
                states[name].total_duration - kept.total_duration,
            )
        partition[name] = kept
        claimed = intervals.union(claimed, kept)

    partition["unclassified"] = intervals.subtract(span, claimed)
    return partition
