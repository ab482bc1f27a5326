"""Interval algebra on sets of [start, end) intervals.

Every function returns a new, normalized IntervalSet: sorted by start,
non-overlapping, and made of intervals with a positive duration. Inputs are never
modified. Stages that bridge short gaps always consolidate before filtering by
minimum duration, so two short runs separated by a tolerated gap can combine into
a qualifying interval.
"""

import numpy as np

from behavstates.core import config, models

logger = config.get_logger()


def find_runs(time: np.ndarray, condition: np.ndarray) -> models.IntervalSet:
    """Find the maximal runs of consecutive samples where a condition holds.

    Each run spans from the time stamp of its first true sample to the time stamp
    of its last true sample. A run made of a single sample has no duration and is
    dropped.

    Args:
        time: Sorted sample times, in seconds.
        condition: Per-sample truth values. Boolean arrays should come from
            comparisons, which are False for NaN samples; float arrays are true
            where finite and non-zero.

    Returns:
        The runs as an IntervalSet.

    Raises:
        ValueError: If time and condition differ in length.
    """
    time = np.asarray(time, dtype=np.float64).reshape(-1)
    condition = np.asarray(condition).reshape(-1)
    if time.shape != condition.shape:
        raise ValueError("time and condition must have the same length")
    if condition.dtype.kind == "f":
        mask = np.isfinite(condition) & (condition != 0)
    else:
        mask = condition.astype(bool)

    edges = np.diff(np.concatenate(([0], mask.astype(np.int8), [0])))
    first = np.flatnonzero(edges == 1)
    last = np.flatnonzero(edges == -1) - 1
    bounds = np.column_stack((time[first], time[last]))
    bounds = bounds[bounds[:, 1] > bounds[:, 0]]

    logger.debug("Found %s runs.", len(bounds))
    return models.IntervalSet(bounds=bounds)


def consolidate(
    intervals: models.IntervalSet, epsilon: float = 0.0
) -> models.IntervalSet:
    """Merge overlapping intervals and intervals separated by short gaps.

    Two neighbouring intervals merge when the gap between them (next start minus
    previous end) is at most epsilon. With epsilon 0 only touching or overlapping
    intervals merge. Consolidating an already consolidated set with the same
    epsilon returns it unchanged.

    Args:
        intervals: The intervals to merge, in any order.
        epsilon: The largest gap to bridge, in seconds.

    Returns:
        The consolidated intervals.

    Raises:
        ValueError: If epsilon is negative.
    """
    if epsilon < 0:
        raise ValueError("epsilon must be non-negative")
    if intervals.is_empty:
        return models.IntervalSet.empty()

    bounds = intervals.bounds[np.lexsort((intervals.ends, intervals.starts))]
    running_end = np.maximum.accumulate(bounds[:, 1])
    opens_group = np.concatenate(([True], bounds[1:, 0] - running_end[:-1] > epsilon))
    group_first = np.flatnonzero(opens_group)
    group_last = np.concatenate((group_first[1:] - 1, [len(bounds) - 1]))

    return models.IntervalSet(
        bounds=np.column_stack((bounds[group_first, 0], running_end[group_last]))
    )


def union(*interval_sets: models.IntervalSet) -> models.IntervalSet:
    """Union of any number of interval sets."""
    non_empty = [item.bounds for item in interval_sets if not item.is_empty]
    if not non_empty:
        return models.IntervalSet.empty()
    return consolidate(models.IntervalSet(bounds=np.concatenate(non_empty)))


def subtract(
    base: models.IntervalSet, remove: models.IntervalSet
) -> models.IntervalSet:
    """Boolean set difference, base minus remove.

    A base interval overlapped in its middle by a removed interval is split in two;
    a base interval that is fully covered vanishes.

    Args:
        base: The intervals to subtract from.
        remove: The intervals to take out.

    Returns:
        The parts of base not covered by remove.
    """
    base = consolidate(base)
    remove = consolidate(remove)
    if base.is_empty or remove.is_empty:
        return base

    pieces = []
    for start, end in base.bounds:
        first = np.searchsorted(remove.ends, start, side="right")
        stop = np.searchsorted(remove.starts, end, side="left")
        cursor = start
        for remove_start, remove_end in remove.bounds[first:stop]:
            if remove_start > cursor:
                pieces.append((cursor, remove_start))
            cursor = max(cursor, remove_end)
        if cursor < end:
            pieces.append((cursor, end))

    return models.IntervalSet(bounds=pieces)


def intersection(a: models.IntervalSet, b: models.IntervalSet) -> models.IntervalSet:
    """The time covered by both a and b."""
    return subtract(a, subtract(a, b))


def intersects(a: models.IntervalSet, b: models.IntervalSet) -> np.ndarray:
    """Test each interval of a for overlap with b.

    Args:
        a: The intervals to test, in any order.
        b: The intervals to test against.

    Returns:
        A boolean array aligned with a, True where the interval shares a non-zero
        length of time with some interval of b.
    """
    result = np.zeros(len(a), dtype=bool)
    b = consolidate(b)
    if a.is_empty or b.is_empty:
        return result

    candidate = np.searchsorted(b.ends, a.starts, side="right")
    in_range = candidate < len(b)
    result[in_range] = b.starts[candidate[in_range]] < a.ends[in_range]
    return result


def filter_by_min_duration(
    intervals: models.IntervalSet, min_duration: float
) -> models.IntervalSet:
    """Drop intervals strictly shorter than min_duration.

    Args:
        intervals: The intervals to filter.
        min_duration: The shortest duration to keep, in seconds. Intervals exactly
            this long are kept.

    Returns:
        The remaining intervals.

    Raises:
        ValueError: If min_duration is negative.
    """
    if min_duration < 0:
        raise ValueError("min_duration must be non-negative")
    intervals = consolidate(intervals)
    return models.IntervalSet(
        bounds=intervals.bounds[intervals.durations >= min_duration]
    )


def extend_backward(
    intervals: models.IntervalSet, seconds: float
) -> models.IntervalSet:
    """Move the start of every interval earlier by a fixed amount.

    Args:
        intervals: The intervals to extend.
        seconds: How far back to move each start.

    Returns:
        The extended intervals, consolidated.

    Raises:
        ValueError: If seconds is negative.
    """
    if seconds < 0:
        raise ValueError("seconds must be non-negative")
    bounds = intervals.bounds.copy()
    bounds[:, 0] -= seconds
    return consolidate(models.IntervalSet(bounds=bounds))


def truncate_at_onsets(
    intervals: models.IntervalSet, events: models.IntervalSet
) -> models.IntervalSet:
    """End each interval at the first event that starts after it.

    Only events starting strictly after an interval's start are considered; an
    interval is shortened when that event starts before the interval ends.

    Args:
        intervals: The intervals to truncate.
        events: The events whose onsets cut the intervals.

    Returns:
        The truncated intervals.
    """
    if intervals.is_empty or events.is_empty:
        return consolidate(intervals)

    onsets = np.sort(events.starts)
    bounds = intervals.bounds.copy()
    following = np.searchsorted(onsets, bounds[:, 0], side="right")
    has_following = following < len(onsets)
    next_onset = onsets[np.minimum(following, len(onsets) - 1)]
    cut = has_following & (next_onset < bounds[:, 1])
    bounds[cut, 1] = next_onset[cut]

    logger.debug("Truncated %s of %s intervals.", int(cut.sum()), len(bounds))
    return consolidate(models.IntervalSet(bounds=bounds))


def find_gaps(
    time: np.ndarray, max_gap: float, start: float, end: float
) -> models.IntervalSet:
    """Find stretches without samples.

    The sample times are padded with the start and end of the recording, so a
    missing beginning or end of the recording is reported as well. Consecutive gaps
    are merged.

    Args:
        time: Sorted sample times, in seconds.
        max_gap: Spacing between consecutive samples above which the stretch
            between them counts as a gap.
        start: Start of the recording.
        end: End of the recording.

    Returns:
        The gaps as an IntervalSet.
    """
    padded = np.concatenate(([start], np.asarray(time, dtype=np.float64), [end]))
    long_gap = np.diff(padded) > max_gap
    bounds = np.column_stack((padded[:-1][long_gap], padded[1:][long_gap]))
    logger.debug("Found %s gaps longer than %s s.", len(bounds), max_gap)
    return consolidate(models.IntervalSet(bounds=bounds))
