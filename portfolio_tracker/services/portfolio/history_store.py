"""Valuation history series with tiered retention.

Retention by age relative to ``now``:
- under 7 days: every point is kept
- 7 to 30 days: at most one point per hour bucket (the earliest)
- 30 to 365 days: at most one point per day bucket (the earliest)
- 365 days and older: dropped

Compaction is idempotent for a fixed ``now``: a compacted series holds one
point per coarse bucket already, so a second pass keeps every point.
"""

import bisect
import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from portfolio_tracker.config import settings
from portfolio_tracker.constants import HistoryWindow
from portfolio_tracker.schemas.history import HistoryPoint, HistoryWindowResult, PeriodChange

logger = logging.getLogger(__name__)

HOUR_SECONDS = 60 * 60
DAY_SECONDS = 24 * HOUR_SECONDS

# (max age, bucket size in seconds); None keeps every point
RETENTION_TIERS: tuple[tuple[timedelta, int | None], ...] = (
    (timedelta(days=7), None),
    (timedelta(days=30), HOUR_SECONDS),
    (timedelta(days=365), DAY_SECONDS),
)

_DROP = -1


def _by_timestamp(point: HistoryPoint) -> datetime:
    return point.timestamp


def _bucket_seconds(age: timedelta) -> int | None:
    for max_age, bucket in RETENTION_TIERS:
        if age < max_age:
            return bucket
    return _DROP


def compact(series: Iterable[HistoryPoint], now: datetime) -> list[HistoryPoint]:
    """Downsample ``series`` under the retention tiers.

    Returns:
        A new list sorted ascending by timestamp
    """
    kept: list[HistoryPoint] = []
    seen_buckets: set[tuple[int, int]] = set()

    for point in sorted(series, key=_by_timestamp):
        bucket = _bucket_seconds(now - point.timestamp)
        if bucket == _DROP:
            continue
        if bucket is not None:
            key = (bucket, int(point.epoch_seconds // bucket))
            if key in seen_buckets:
                continue
            seen_buckets.add(key)
        kept.append(point)

    return kept


def query_window(
    series: Sequence[HistoryPoint], window: str, now: datetime
) -> list[HistoryPoint]:
    """Return the suffix of ``series`` with ``timestamp >= now - window``.

    Raises:
        ValueError: If ``window`` is not one of the HistoryWindow values
    """
    if window not in HistoryWindow.DURATIONS:
        raise ValueError(f"Unknown history window: {window}")

    duration = HistoryWindow.DURATIONS[window]
    if duration is None:
        return list(series)

    start = bisect.bisect_left(series, now - duration, key=_by_timestamp)
    return list(series[start:])


def period_change(points: Sequence[HistoryPoint]) -> PeriodChange:
    """Change between the first and last point of a window."""
    if len(points) < 2:
        return PeriodChange()

    first, last = points[0].value, points[-1].value
    delta = last - first
    percent = (delta / first * 100) if first else Decimal("0")
    return PeriodChange(value=delta, percent=percent)


class HistoryStore:
    """In-memory history series, compacted every N appended points."""

    def __init__(
        self,
        points: Iterable[HistoryPoint] | None = None,
        compaction_interval: int | None = None,
    ) -> None:
        self._points: list[HistoryPoint] = sorted(points or [], key=_by_timestamp)
        self.compaction_interval = compaction_interval or settings.history_compaction_interval
        self._appends_since_compaction = 0

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> tuple[HistoryPoint, ...]:
        return tuple(self._points)

    def append(self, point: HistoryPoint, now: datetime | None = None) -> bool:
        """Append a point, compacting when the interval is reached.

        Returns:
            True if this append triggered a compaction
        """
        if self._points and point.timestamp < self._points[-1].timestamp:
            logger.warning(
                f"History point at {point.timestamp.isoformat()} is older than the latest, "
                "inserting in order"
            )
            bisect.insort(self._points, point, key=_by_timestamp)
        else:
            self._points.append(point)

        self._appends_since_compaction += 1
        if self._appends_since_compaction >= self.compaction_interval:
            self.compact(now)
            return True
        return False

    def compact(self, now: datetime | None = None) -> int:
        """Apply the retention tiers in place.

        Returns:
            Number of points removed
        """
        before = len(self._points)
        self._points = compact(self._points, now or datetime.now(UTC))
        self._appends_since_compaction = 0

        removed = before - len(self._points)
        logger.info(f"Compacted history: {before} -> {len(self._points)} points")
        return removed

    def window(self, window: str, now: datetime | None = None) -> HistoryWindowResult:
        """Points of a chart window with their period change."""
        now = now or datetime.now(UTC)
        points = query_window(self._points, window, now)
        duration = HistoryWindow.DURATIONS[window]
        return HistoryWindowResult(
            window=window,
            start=now - duration if duration is not None else None,
            points=points,
            change=period_change(points),
        )

    def clear(self) -> None:
        self._points = []
        self._appends_since_compaction = 0
