"""Test the interval algebra."""

from typing import Callable

import numpy as np
import pytest

from behavstates.core import models
from behavstates.processing import intervals


def _is_normalized(interval_set: models.IntervalSet) -> bool:
    """Sorted by start, non-overlapping and positive durations."""
    bounds = interval_set.bounds
    return bool(
        np.all(bounds[:, 1] > bounds[:, 0])
        and np.all(np.diff(bounds[:, 0]) > 0)
        and np.all(bounds[1:, 0] > bounds[:-1, 1])
    )


@pytest.fixture
def unsorted_intervals() -> models.IntervalSet:
    """Overlapping, unsorted intervals with a short and a long gap."""
    return models.IntervalSet(
        bounds=[[10.0, 12.0], [0.0, 2.0], [1.0, 3.0], [3.5, 5.0], [20.0, 21.0]]
    )


def test_find_runs() -> None:
    """Test runs span from their first to their last true sample."""
    time = np.arange(10, dtype=float)
    condition = np.array([0, 1, 1, 1, 0, 0, 1, 1, 0, 1], dtype=bool)

    result = intervals.find_runs(time, condition)

    assert result == models.IntervalSet(bounds=[[1.0, 3.0], [6.0, 7.0]])


def test_find_runs_float_condition() -> None:
    """Test float conditions are true where finite and non-zero."""
    time = np.arange(6, dtype=float)
    condition = np.array([1.0, 2.0, np.nan, 3.0, 4.0, 0.0])

    result = intervals.find_runs(time, condition)

    assert result == models.IntervalSet(bounds=[[0.0, 1.0], [3.0, 4.0]])


def test_find_runs_no_runs() -> None:
    """Test an all-false condition yields an empty set."""
    result = intervals.find_runs(np.arange(5.0), np.zeros(5, dtype=bool))

    assert result.is_empty


def test_find_runs_length_mismatch() -> None:
    """Test mismatched lengths raise."""
    with pytest.raises(ValueError, match="same length"):
        intervals.find_runs(np.arange(5.0), np.ones(4, dtype=bool))


def test_consolidate(unsorted_intervals: models.IntervalSet) -> None:
    """Test overlapping intervals merge and gaps within epsilon are bridged."""
    result = intervals.consolidate(unsorted_intervals, epsilon=0.5)

    assert result == models.IntervalSet(
        bounds=[[0.0, 5.0], [10.0, 12.0], [20.0, 21.0]]
    )
    assert _is_normalized(result)


def test_consolidate_touching_intervals() -> None:
    """Test touching intervals merge with epsilon 0."""
    touching = models.IntervalSet(bounds=[[0.0, 1.0], [1.0, 2.0]])

    result = intervals.consolidate(touching)

    assert result == models.IntervalSet(bounds=[[0.0, 2.0]])


@pytest.mark.parametrize("epsilon", [0.0, 0.5, 1.0, 8.0])
def test_consolidate_idempotent(
    unsorted_intervals: models.IntervalSet, epsilon: float
) -> None:
    """Test consolidating twice gives the same result as consolidating once."""
    once = intervals.consolidate(unsorted_intervals, epsilon)

    twice = intervals.consolidate(once, epsilon)

    assert once == twice


def test_consolidate_negative_epsilon(unsorted_intervals: models.IntervalSet) -> None:
    """Test a negative epsilon raises."""
    with pytest.raises(ValueError, match="epsilon"):
        intervals.consolidate(unsorted_intervals, epsilon=-1.0)


def test_consolidate_does_not_modify_input(
    unsorted_intervals: models.IntervalSet,
) -> None:
    """Test the input set is left untouched."""
    original = unsorted_intervals.bounds.copy()

    intervals.consolidate(unsorted_intervals, epsilon=10.0)

    np.testing.assert_array_equal(unsorted_intervals.bounds, original)


def test_subtract_identities(unsorted_intervals: models.IntervalSet) -> None:
    """Test subtracting nothing keeps the set and subtracting itself empties it."""
    normalized = intervals.consolidate(unsorted_intervals)

    assert intervals.subtract(normalized, models.IntervalSet.empty()) == normalized
    assert intervals.subtract(normalized, normalized).is_empty


def test_subtract_splits_interval() -> None:
    """Test a removed interval in the middle splits the base interval."""
    base = models.IntervalSet.span(0.0, 10.0)
    remove = models.IntervalSet(bounds=[[2.0, 3.0], [5.0, 6.0]])

    result = intervals.subtract(base, remove)

    assert result == models.IntervalSet(
        bounds=[[0.0, 2.0], [3.0, 5.0], [6.0, 10.0]]
    )


def test_subtract_covering_interval() -> None:
    """Test fully covered base intervals vanish and edges are clipped."""
    base = models.IntervalSet(bounds=[[0.0, 2.0], [4.0, 8.0], [9.0, 12.0]])
    remove = models.IntervalSet(bounds=[[-1.0, 5.0], [10.0, 20.0]])

    result = intervals.subtract(base, remove)

    assert result == models.IntervalSet(bounds=[[5.0, 8.0], [9.0, 10.0]])


def test_intersection() -> None:
    """Test the intersection keeps the time covered by both sets."""
    a = models.IntervalSet(bounds=[[0.0, 5.0], [8.0, 12.0]])
    b = models.IntervalSet(bounds=[[3.0, 9.0]])

    result = intervals.intersection(a, b)

    assert result == models.IntervalSet(bounds=[[3.0, 5.0], [8.0, 9.0]])


def test_union() -> None:
    """Test the union merges any number of sets."""
    result = intervals.union(
        models.IntervalSet(bounds=[[0.0, 1.0]]),
        models.IntervalSet.empty(),
        models.IntervalSet(bounds=[[0.5, 2.0], [4.0, 5.0]]),
    )

    assert result == models.IntervalSet(bounds=[[0.0, 2.0], [4.0, 5.0]])


def test_union_of_nothing() -> None:
    """Test the union of no sets is empty."""
    assert intervals.union().is_empty


def test_intersects() -> None:
    """Test overlap flags, touching intervals do not overlap."""
    a = models.IntervalSet(bounds=[[0.0, 1.0], [2.0, 3.0], [5.0, 6.0], [8.0, 9.0]])
    b = models.IntervalSet(bounds=[[1.0, 2.0], [2.5, 5.5]])

    result = intervals.intersects(a, b)

    np.testing.assert_array_equal(result, [False, True, True, False])


def test_intersects_empty_reference() -> None:
    """Test nothing overlaps an empty set."""
    a = models.IntervalSet(bounds=[[0.0, 1.0], [2.0, 3.0]])

    result = intervals.intersects(a, models.IntervalSet.empty())

    np.testing.assert_array_equal(result, [False, False])


def test_filter_by_min_duration() -> None:
    """Test intervals exactly min_duration long are kept."""
    interval_set = models.IntervalSet(bounds=[[0.0, 2.0], [5.0, 6.0], [10.0, 13.0]])

    result = intervals.filter_by_min_duration(interval_set, 2.0)

    assert result == models.IntervalSet(bounds=[[0.0, 2.0], [10.0, 13.0]])


def test_filter_by_min_duration_negative() -> None:
    """Test a negative minimum raises."""
    with pytest.raises(ValueError, match="min_duration"):
        intervals.filter_by_min_duration(models.IntervalSet.empty(), -1.0)


def test_consolidate_then_filter_combines_short_runs() -> None:
    """Test two short runs separated by a tolerated gap form a kept interval."""
    short_runs = models.IntervalSet(bounds=[[0.0, 1.5], [2.0, 3.5]])

    result = intervals.filter_by_min_duration(
        intervals.consolidate(short_runs, 1.0), 3.0
    )

    assert result == models.IntervalSet(bounds=[[0.0, 3.5]])


def test_extend_backward() -> None:
    """Test starts move earlier and overlapping results merge."""
    interval_set = models.IntervalSet(bounds=[[10.0, 20.0], [25.0, 30.0]])

    result = intervals.extend_backward(interval_set, 8.0)

    assert result == models.IntervalSet(bounds=[[2.0, 30.0]])


def test_truncate_at_onsets() -> None:
    """Test intervals end at the first onset strictly after their start."""
    candidates = models.IntervalSet(bounds=[[0.0, 10.0], [20.0, 30.0], [40.0, 50.0]])
    events = models.IntervalSet(bounds=[[5.0, 7.0], [20.0, 22.0], [55.0, 60.0]])

    result = intervals.truncate_at_onsets(candidates, events)

    assert result == models.IntervalSet(
        bounds=[[0.0, 5.0], [20.0, 30.0], [40.0, 50.0]]
    )


def test_find_gaps() -> None:
    """Test gaps include a missing beginning and end of the recording."""
    time = np.array([2.0, 3.0, 4.0, 8.0, 9.0])

    result = intervals.find_gaps(time, max_gap=1.0, start=0.0, end=9.5)

    assert result == models.IntervalSet(bounds=[[0.0, 2.0], [4.0, 8.0]])


def test_find_gaps_without_samples() -> None:
    """Test the whole recording is a gap when there are no samples."""
    result = intervals.find_gaps(np.array([]), max_gap=1.0, start=0.0, end=10.0)

    assert result == models.IntervalSet.span(0.0, 10.0)


@pytest.mark.parametrize(
    "operation",
    [
        lambda a, b: intervals.subtract(a, b),
        lambda a, b: intervals.union(a, b),
        lambda a, b: intervals.intersection(a, b),
        lambda a, b: intervals.truncate_at_onsets(a, b),
        lambda a, b: intervals.extend_backward(a, 3.0),
        lambda a, b: intervals.filter_by_min_duration(a, 1.0),
    ],
)
def test_results_are_normalized(
    operation: Callable[[models.IntervalSet, models.IntervalSet], models.IntervalSet],
) -> None:
    """Test every operation returns sorted, disjoint, positive intervals."""
    rng = np.random.default_rng(42)
    starts = rng.uniform(0, 100, 30)
    a = models.IntervalSet(
        bounds=np.column_stack((starts, starts + rng.uniform(0.1, 5, 30)))
    )
    starts = rng.uniform(0, 100, 20)
    b = models.IntervalSet(
        bounds=np.column_stack((starts, starts + rng.uniform(0.1, 5, 20)))
    )

    result = operation(a, b)

    assert _is_normalized(result)
