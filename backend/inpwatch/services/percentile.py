"""Discrete percentiles using nearest-rank selection.

Every rollup and report path computes percentiles through this module, or
through a database primitive verified to agree with it: sort ascending and
take the value at 1-based rank ``ceil(p * n)``, clamped to ``[1, n]``.
"""
import math
from decimal import Decimal
from typing import Dict, Iterable, List, NamedTuple, Sequence

from inpwatch.constants import ROLLUP_PERCENTILES
from inpwatch.utils.exceptions import PercentileError


class LatencySummary(NamedTuple):
    """The five statistics stored on a rollup row."""
    p50: int
    p75: int
    p95: int
    count: int
    worst: int


def rank_index(p: float, n: int) -> int:
    """
    0-based index of the nearest-rank ``p`` percentile in a sorted sample of ``n``.

    Args:
        p: Percentile in [0, 1]
        n: Sample size, at least 1

    Returns:
        ``ceil(p * n) - 1`` clamped to ``[0, n - 1]``
    """
    if n < 1:
        raise PercentileError("percentile of an empty sample is undefined")
    if not 0 <= p <= 1:
        raise PercentileError(f"percentile must be within [0, 1], got {p}")
    # Decimal keeps exact ranks exact (0.7 * 10 is 7.000000000000001 in binary)
    rank = math.ceil(Decimal(str(p)) * n)
    return min(max(rank - 1, 0), n - 1)


def percentile_of_sorted(ordered: Sequence[int], p: float) -> int:
    """Nearest-rank percentile of an already ascending sequence."""
    return ordered[rank_index(p, len(ordered))]


def percentile(values: Iterable[int], p: float) -> int:
    """
    Nearest-rank percentile of ``values``.

    Sorts a private copy; the input is left untouched.

    >>> percentile([40, 10, 30, 20], 0.75)
    30
    """
    return percentile_of_sorted(sorted(values), p)


def percentiles(values: Iterable[int], ps: Sequence[float]) -> Dict[float, int]:
    """Several percentiles from a single sort."""
    ordered = sorted(values)
    return {p: percentile_of_sorted(ordered, p) for p in ps}


def summarize(values: Iterable[int]) -> LatencySummary:
    """
    Rollup statistics for one partition.

    Args:
        values: Latencies of the partition, any order, at least one

    Returns:
        LatencySummary with p50 <= p75 <= p95 <= worst
    """
    ordered: List[int] = sorted(values)
    p50, p75, p95 = (percentile_of_sorted(ordered, p) for p in ROLLUP_PERCENTILES)
    return LatencySummary(p50=p50, p75=p75, p95=p95, count=len(ordered), worst=ordered[-1])


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer quotient of non-negative integers, halves rounded up."""
    if denominator <= 0:
        raise ZeroDivisionError("mean of an empty group")
    return (2 * numerator + denominator) // (2 * denominator)
