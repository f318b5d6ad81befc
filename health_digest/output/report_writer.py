"""
Write a finalized :class:`HealthSummary` to disk: the full aggregate as JSON
and the per-metric table as CSV.
"""
import dataclasses
import json
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from health_digest.aggregate.summary import HealthSummary, metrics_frame, workouts_frame
from health_digest.etl.gpx_parser import summarize_track


class SummaryEncoder(json.JSONEncoder):
    """JSON encoder for numpy scalars, timestamps and result dataclasses."""

    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return None if np.isnan(obj) else float(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, pd.Timestamp):
            return obj.isoformat()
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        return super().default(obj)


def summary_payload(summary: HealthSummary) -> dict:
    """``HealthSummary.to_dict`` plus a rollup of every workout route."""
    payload = summary.to_dict()
    payload["routeSummaries"] = {
        name: summarize_track(points) for name, points in summary.tracks.items()
    }
    return payload


def save_summary_json(summary: HealthSummary, output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(summary_payload(summary), f, indent=2, cls=SummaryEncoder)
    return output_path


def save_metrics_csv(summary: HealthSummary, output_path: Union[str, Path],
                     workouts_path: Optional[Union[str, Path]] = None) -> Path:
    """
    Save one row per metric type; optionally also the workouts-per-day table.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    metrics_frame(summary.metrics_by_type).to_csv(output_path, index=False, encoding="utf-8")
    if workouts_path is not None:
        workouts_frame(summary.workouts_by_date).to_csv(workouts_path, index=False,
                                                        encoding="utf-8")
    return output_path
