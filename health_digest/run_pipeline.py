"""
Health Digest — Command line pipeline
Ingest an Apple Health export (ZIP or export.xml) and write the aggregate:
Open → Stream + Aggregate → Derived entities → Summary → Output
"""
import argparse
import asyncio
import sys
from pathlib import Path

from health_digest.aggregate.summary import HealthSummary
from health_digest.config import CHUNK_SIZE, STRATEGIES, STRATEGY_STREAM
from health_digest.errors import HealthDigestError
from health_digest.etl.chunk_feeder import ProgressEvent
from health_digest.etl.dates import date_key
from health_digest.etl.gpx_parser import summarize_track
from health_digest.output.report_writer import save_metrics_csv, save_summary_json
from health_digest.pipeline import ingest_export, ingest_export_async


def _print_progress(event: ProgressEvent):
    print(f"  {event.message}")


def print_summary(result: HealthSummary):
    s = result.summary
    print("\n" + "=" * 60)
    print("INGESTION COMPLETE")
    print("=" * 60)
    print(f"  Records:      {s.total_records:,}")
    print(f"  Workouts:     {s.total_workouts:,}")
    print(f"  Metric types: {len(s.metrics_available)}")
    print(f"  Unique days:  {s.unique_dates}")
    if s.date_range is not None:
        print(f"  Date range:   {date_key(s.date_range[0])} to {date_key(s.date_range[1])}")
    if result.truncated:
        print(f"  NOTE: summary built from the first part of a "
              f"{result.original_size / 1024 / 1024:.1f}MB document")
    if result.clinical_records:
        print(f"  Clinical records: {result.clinical_records:,}")

    print("\nTop metrics:")
    for m in s.top_metrics:
        unit = m.unit or ""
        print(f"  {m.type:<52s} {m.count:>9,}  avg {m.average:>10.2f} {unit}"
              f"  [{m.min:g} .. {m.max:g}]")

    if s.heart_rate is not None:
        print(f"\nHeart rate: avg {s.heart_rate.average} "
              f"(min {s.heart_rate.min:g}, max {s.heart_rate.max:g}, n={s.heart_rate.count:,})")
    if s.steps is not None:
        print(f"Steps:      total {s.steps.total:,.0f}, avg {s.steps.average:,.0f}")
    if s.calories is not None:
        print(f"Calories:   total {s.calories.total:,.0f}, avg {s.calories.average:,.0f}")

    if result.waveforms:
        print(f"\nECG recordings: {len(result.waveforms)}")
    if result.tracks:
        print(f"Workout routes: {len(result.tracks)}")
        for name, points in list(result.tracks.items())[:5]:
            route = summarize_track(points)
            if route is not None:
                print(f"  {Path(name).name}: {route.distance_km} km, "
                      f"{route.duration_min} min, +{route.elevation_gain_m:.0f} m")


def run_pipeline(export_path, out=None, csv=None, strategy=STRATEGY_STREAM,
                 window_size=CHUNK_SIZE, use_async=False, skip_derived=False) -> HealthSummary:
    print("=" * 60)
    print("HEALTH DIGEST")
    print(f"  Input:    {export_path}")
    print(f"  Strategy: {strategy}")
    print("=" * 60)

    print("\n▶ Streaming export...")
    kwargs = dict(strategy=strategy, window_size=window_size,
                  on_progress=_print_progress, include_derived=not skip_derived)
    if use_async:
        result = asyncio.run(ingest_export_async(export_path, **kwargs))
    else:
        result = ingest_export(export_path, **kwargs)

    print_summary(result)

    if out:
        path = save_summary_json(result, out)
        print(f"\nSaved summary to: {path}")
    if csv:
        path = save_metrics_csv(result, csv)
        print(f"Saved metric table to: {path}")
    return result


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Aggregate an Apple Health export into a queryable summary.")
    parser.add_argument("export", help="Path to export.zip or export.xml")
    parser.add_argument("--out", default=None, help="Write the summary as JSON")
    parser.add_argument("--csv", default=None, help="Write the per-metric table as CSV")
    parser.add_argument("--strategy", choices=STRATEGIES, default=STRATEGY_STREAM,
                        help="Large documents: stream everything, or sample the first 5MB")
    parser.add_argument("--window-mb", type=float, default=CHUNK_SIZE / 1024 / 1024,
                        help="Window size in MB (default: 3)")
    parser.add_argument("--async", dest="use_async", action="store_true",
                        help="Run on an event loop, yielding between windows")
    parser.add_argument("--skip-derived", action="store_true",
                        help="Skip ECG and workout-route documents")
    args = parser.parse_args(argv)

    if not Path(args.export).exists():
        print(f"ERROR: File not found: {args.export}")
        return 1

    try:
        run_pipeline(args.export, out=args.out, csv=args.csv, strategy=args.strategy,
                     window_size=max(1, int(args.window_mb * 1024 * 1024)),
                     use_async=args.use_async, skip_derived=args.skip_derived)
    except HealthDigestError as e:
        print(f"ERROR: Failed to parse file: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
