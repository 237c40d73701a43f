"""Analytics aggregation over daily snapshots, and export rendering."""

from __future__ import annotations

import csv
import io
import json
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone

from src.copilot.social.schemas import (
    RANGE_DAYS,
    AnalyticsRange,
    ChartPoint,
    ExportFormat,
    MetricChange,
    PlatformAnalytics,
    SnapshotRead,
)

METRICS = ("followers", "engagement_rate", "reach", "impressions")

EXPORT_COLUMNS = ("platform", "snapshot_date", *METRICS)


def range_start(range_: AnalyticsRange, today: date | None = None) -> date:
    today = today or datetime.now(timezone.utc).date()
    return today - timedelta(days=RANGE_DAYS[range_])


def _change(first: float, last: float) -> MetricChange:
    delta = last - first
    percent = round(delta / first * 100, 1) if first else 0.0
    return MetricChange(current=last, change=round(delta, 2), change_percent=percent)


def aggregate(snapshots: list[SnapshotRead]) -> list[PlatformAnalytics]:
    """Per-platform latest values, change over the window and chart series.

    Change is measured between the oldest and newest snapshot in the list,
    so callers pass snapshots already limited to the requested range.
    """
    by_platform: dict[str, list[SnapshotRead]] = defaultdict(list)
    for snapshot in snapshots:
        by_platform[snapshot.platform].append(snapshot)

    results = []
    for platform in sorted(by_platform):
        series = sorted(by_platform[platform], key=lambda s: s.snapshot_date)
        first, last = series[0], series[-1]
        results.append(
            PlatformAnalytics(
                platform=platform,
                metrics={
                    name: _change(float(getattr(first, name)), float(getattr(last, name)))
                    for name in METRICS
                },
                chart_data=[
                    ChartPoint(
                        date=s.snapshot_date,
                        followers=s.followers,
                        engagement_rate=s.engagement_rate,
                        reach=s.reach,
                    )
                    for s in series
                ],
            )
        )
    return results


def export_snapshots(snapshots: list[SnapshotRead], fmt: ExportFormat) -> tuple[str, str]:
    """Render snapshots for download.

    Returns:
        Tuple of (body, media_type).
    """
    rows = [s.model_dump(mode="json") for s in snapshots]
    if fmt == ExportFormat.JSON:
        return json.dumps(rows, indent=2), "application/json"

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    for row in rows:
        writer.writerow({k: row[k] for k in EXPORT_COLUMNS})
    return buffer.getvalue(), "text/csv"


def export_filename(platform: str, fmt: ExportFormat, today: date | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"{platform}-analytics-{today.isoformat()}.{fmt.value}"
