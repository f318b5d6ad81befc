"""
Summary builder.

Turns the final aggregator state into the :class:`HealthSummary` consumed by
every presentation layer: top metrics by observation count, the overall
date span, and convenience rollups for heart rate, steps and calories.
Also exposes the aggregate as pandas DataFrames for charting.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from health_digest.aggregate.engine import HealthAggregator
from health_digest.config import CALORIE_METRICS, STEP_METRIC, TOP_METRICS
from health_digest.etl.entities import MetricAggregate, Waveform


@dataclass(frozen=True)
class TopMetric:
    type: str
    count: int
    average: float
    min: float
    max: float
    unit: Optional[str] = None


@dataclass(frozen=True)
class Rollup:
    """Combined statistics for one category of metric types."""
    count: int
    total: float
    average: float
    min: float
    max: float


@dataclass(frozen=True)
class SummaryStats:
    total_records: int
    total_workouts: int
    metrics_available: List[str]
    unique_dates: int
    date_range: Optional[Tuple[int, int]]
    top_metrics: List[TopMetric]
    heart_rate: Optional[Rollup] = None
    steps: Optional[Rollup] = None
    calories: Optional[Rollup] = None


@dataclass
class HealthSummary:
    """Finalized result of one ingestion call."""
    total_records: int
    total_workouts: int
    metrics_by_type: Dict[str, MetricAggregate]
    workouts_by_date: Dict[str, int]
    all_dates: List[str]
    summary: SummaryStats
    truncated: bool = False
    original_size: Optional[int] = None
    clinical_records: int = 0
    waveforms: Dict[str, Waveform] = field(default_factory=dict)
    tracks: Dict[str, list] = field(default_factory=dict)

    def to_dict(self) -> dict:
        summary = self.summary
        return {
            "totalRecords": self.total_records,
            "totalWorkouts": self.total_workouts,
            "metricsByType": {k: v.to_dict() for k, v in self.metrics_by_type.items()},
            "workoutsByDate": dict(self.workouts_by_date),
            "allDates": list(self.all_dates),
            "summary": {
                "totalRecords": summary.total_records,
                "totalWorkouts": summary.total_workouts,
                "metricsAvailable": list(summary.metrics_available),
                "uniqueDates": summary.unique_dates,
                "dateRange": {
                    "start": summary.date_range[0] if summary.date_range else None,
                    "end": summary.date_range[1] if summary.date_range else None,
                },
                "topMetrics": [
                    {"type": m.type, "count": m.count, "avg": m.average,
                     "min": m.min, "max": m.max, "unit": m.unit}
                    for m in summary.top_metrics
                ],
                "heartRate": _rollup_dict(summary.heart_rate),
                "steps": _rollup_dict(summary.steps),
                "calories": _rollup_dict(summary.calories),
            },
            "truncated": self.truncated,
            "originalSize": self.original_size,
            "clinicalRecords": self.clinical_records,
            "waveforms": {
                name: {
                    "timestamp": w.timestamp,
                    "heartRate": w.heart_rate,
                    "classification": w.classification,
                    "sampleRate": w.sample_rate,
                    "samples": [list(s) for s in w.samples],
                }
                for name, w in self.waveforms.items()
            },
            "tracks": {
                name: [_point_dict(p) for p in points]
                for name, points in self.tracks.items()
            },
        }


def _rollup_dict(rollup: Optional[Rollup]) -> Optional[dict]:
    if rollup is None:
        return None
    return {"count": rollup.count, "total": rollup.total, "average": rollup.average,
            "min": rollup.min, "max": rollup.max}


def _point_dict(point) -> dict:
    # json has no NaN; unparseable coordinates are written as null
    return {
        "lat": point.lat if math.isfinite(point.lat) else None,
        "lon": point.lon if math.isfinite(point.lon) else None,
        "elevation": point.elevation,
        "time": point.time,
        "speed": point.speed,
    }


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def top_metrics(metrics: Dict[str, MetricAggregate], n: int = TOP_METRICS) -> List[TopMetric]:
    """Rank metric types by count, descending; ties keep first-seen order."""
    ranked = sorted(metrics.items(), key=lambda item: item[1].count, reverse=True)
    result = []
    for name, metric in ranked[:n]:
        final = metric.finalized()
        result.append(TopMetric(
            type=name,
            count=final.count,
            average=round(final.sum / final.count, 2),
            min=final.min,
            max=final.max,
            unit=final.unit,
        ))
    return result


def _rollup(metrics: List[MetricAggregate], decimals: int = 0) -> Optional[Rollup]:
    numeric_metrics = [m for m in metrics if math.isfinite(m.min)]
    if not numeric_metrics:
        return None
    count = sum(m.count for m in numeric_metrics)
    total = sum(m.sum for m in numeric_metrics)
    return Rollup(
        count=count,
        total=round(total, decimals),
        average=round(total / count, decimals),
        min=min(m.min for m in numeric_metrics),
        max=max(m.max for m in numeric_metrics),
    )


def build_summary(acc: HealthAggregator) -> SummaryStats:
    metrics = acc.metrics
    date_range = None
    if acc.min_timestamp is not None:
        date_range = (acc.min_timestamp, acc.max_timestamp)

    return SummaryStats(
        total_records=acc.total_records,
        total_workouts=acc.total_workouts,
        metrics_available=list(metrics),
        unique_dates=len(acc.dates),
        date_range=date_range,
        top_metrics=top_metrics(metrics),
        heart_rate=_rollup([m for k, m in metrics.items() if "HeartRate" in k], decimals=1),
        steps=_rollup([m for k, m in metrics.items() if k == STEP_METRIC]),
        calories=_rollup([m for k, m in metrics.items() if k in CALORIE_METRICS]),
    )


def finalize(acc: HealthAggregator, **extra) -> HealthSummary:
    """Freeze aggregator state into a :class:`HealthSummary`."""
    return HealthSummary(
        total_records=acc.total_records,
        total_workouts=acc.total_workouts,
        metrics_by_type=acc.finalized_metrics(),
        workouts_by_date=dict(acc.workouts_by_date),
        all_dates=acc.sorted_dates(),
        summary=build_summary(acc),
        **extra,
    )


# ---------------------------------------------------------------------------
# DataFrame views
# ---------------------------------------------------------------------------

def metrics_frame(metrics: Dict[str, MetricAggregate]) -> pd.DataFrame:
    """One row per metric type, sorted by count descending."""
    cols = ["metric_type", "count", "sum", "average", "min", "max",
            "unit", "source", "n_sampled"]
    if not metrics:
        return pd.DataFrame(columns=cols)

    rows = []
    for name, metric in metrics.items():
        final = metric.finalized()
        rows.append({
            "metric_type": name,
            "count": final.count,
            "sum": final.sum,
            "average": final.average if final.count else np.nan,
            "min": final.min,
            "max": final.max,
            "unit": final.unit,
            "source": final.source,
            "n_sampled": len(final.sampled_values),
        })
    df = pd.DataFrame(rows, columns=cols)
    df.sort_values("count", ascending=False, kind="stable", inplace=True)
    df.reset_index(drop=True, inplace=True)
    return df


def daily_series_frame(metrics: Dict[str, MetricAggregate], metric_type: str) -> pd.DataFrame:
    """
    Daily mean / count of the sampled values of one metric, for charting.
    Empty (with the same columns) when the metric is unknown.
    """
    cols = ["date", "value_mean", "value_count"]
    metric = metrics.get(metric_type)
    if metric is None or not metric.sampled_values:
        return pd.DataFrame(columns=cols)

    df = pd.DataFrame(metric.sampled_values, columns=["date_key", "value", "timestamp"])
    daily = df.groupby("date_key")["value"].agg(["mean", "count"]).reset_index()
    daily.columns = cols
    daily["date"] = pd.to_datetime(daily["date"])
    daily.sort_values("date", inplace=True)
    daily.reset_index(drop=True, inplace=True)
    return daily


def workouts_frame(workouts_by_date: Dict[str, int]) -> pd.DataFrame:
    """Workout count per day, sorted by date (heatmap input)."""
    if not workouts_by_date:
        return pd.DataFrame(columns=["date", "workouts"])
    df = pd.DataFrame(sorted(workouts_by_date.items()), columns=["date", "workouts"])
    df["date"] = pd.to_datetime(df["date"])
    return df
