# tourbook/core/intervals.py
"""
Half-open interval algebra over datetimes.

All intervals are [start, end). Functions take and return plain Interval
tuples so they work on any comparable endpoint type; the scheduling code
uses timezone-aware datetimes throughout.
"""
from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Iterable, Iterator, List, NamedTuple, Optional, Sequence


class Interval(NamedTuple):
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def is_empty(self) -> bool:
        return self.end <= self.start


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """True when [a_start, a_end) and [b_start, b_end) share any instant"""
    return a_start < b_end and a_end > b_start


def clip(interval: Interval, bounds: Interval) -> Optional[Interval]:
    """Intersect an interval with bounds, None when they don't meet"""
    start = max(interval.start, bounds.start)
    end = min(interval.end, bounds.end)
    if end <= start:
        return None
    return Interval(start, end)


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """
    Union of intervals as maximal disjoint intervals, ascending.

    Touching intervals ([9, 12) and [12, 15)) merge into one.
    """
    ordered = sorted(i for i in intervals if not i.is_empty())
    merged: List[Interval] = []
    for current in ordered:
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)
    return merged


def subtract_intervals(windows: Sequence[Interval], cuts: Iterable[Interval]) -> List[Interval]:
    """
    Remove every cut from the (merged, ascending) windows.

    A window fully covered by a cut disappears; a partially covered window
    splits into the pieces left on either side.
    """
    cuts = merge_intervals(cuts)
    if not cuts:
        return list(windows)

    cut_starts = [c.start for c in cuts]
    remaining: List[Interval] = []
    for window in windows:
        cursor = window.start
        # first cut that could reach into this window
        idx = max(bisect_right(cut_starts, window.start) - 1, 0)
        while idx < len(cuts) and cuts[idx].start < window.end:
            cut = cuts[idx]
            if cut.end > cursor:
                if cut.start > cursor:
                    remaining.append(Interval(cursor, cut.start))
                cursor = max(cursor, cut.end)
            idx += 1
        if cursor < window.end:
            remaining.append(Interval(cursor, window.end))
    return remaining


def covers(windows: Sequence[Interval], start, end) -> bool:
    """True when [start, end) lies entirely inside one of the merged windows"""
    starts = [w.start for w in windows]
    idx = bisect_right(starts, start) - 1
    if idx < 0:
        return False
    window = windows[idx]
    return window.start <= start and end <= window.end


def discretize(window: Interval, duration: timedelta, step: timedelta) -> Iterator[Interval]:
    """Fixed-length slots from the window start, advancing by step, that fit entirely"""
    if duration <= timedelta(0) or step <= timedelta(0):
        raise ValueError("duration and step must be positive")
    slot_start = window.start
    while slot_start + duration <= window.end:
        yield Interval(slot_start, slot_start + duration)
        slot_start += step


def overlaps_any(merged: Sequence[Interval], start, end, starts: Optional[Sequence] = None) -> bool:
    """
    True when [start, end) shares any instant with one of the merged
    (disjoint, ascending) intervals. Pass precomputed starts when probing
    the same list repeatedly.
    """
    if not merged:
        return False
    if starts is None:
        starts = [m.start for m in merged]
    idx = bisect_right(starts, start) - 1
    if idx >= 0 and merged[idx].end > start:
        return True
    nxt = idx + 1
    return nxt < len(merged) and merged[nxt].start < end
