"""
Pure functions over half-open ``[start, end)`` time ranges.

No validation happens here: ranges are guaranteed well-formed by
``TimeRange`` and callers reject malformed requests before reaching this layer.
"""

from typing import List

from .models import TimeRange


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """True iff the two ranges share at least one instant."""
    return a.start < b.end and b.start < a.end


def contains(outer: TimeRange, inner: TimeRange) -> bool:
    """True iff ``inner`` lies entirely within ``outer``."""
    return outer.start <= inner.start and inner.end <= outer.end


def subtract(window: TimeRange, blocked: TimeRange) -> List[TimeRange]:
    """
    Remove ``blocked`` from ``window``.

    Returns the 0, 1 or 2 pieces of ``window`` left over, in order.

    Example:
    Window: 09:00 - 17:00
    Blocked: 12:00 - 13:00
    Result: [09:00-12:00, 13:00-17:00]
    """
    if not overlaps(window, blocked):
        return [window]

    remaining: List[TimeRange] = []

    if window.start < blocked.start:
        remaining.append(TimeRange(start=window.start, end=blocked.start))

    if blocked.end < window.end:
        remaining.append(TimeRange(start=blocked.end, end=window.end))

    return remaining
